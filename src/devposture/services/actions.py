"""Recommended-action plan for a device.

Rules are evaluated top to bottom and each appends at most one action. The
plan keeps the first ``MAX_ACTIONS`` in evaluation order; it is not
re-sorted by severity.
"""

import math
from datetime import datetime
from typing import Any

from devposture.models.derived import Action, ActionLevel
from devposture.models.profile import NormalizedProfile
from devposture.utils.coercion import first_defined, parse_timestamp, utc_now

MAX_ACTIONS = 3
OFFLINE_AFTER_HOURS = 24
UNSUPPORTED_OS_MARKERS = ("Windows 7", "Windows 8")


def _hours_since_heartbeat(profile: NormalizedProfile, now: datetime) -> float | None:
    latest = profile.telemetry_detail.latest
    heartbeat = first_defined(
        profile.device.last_heartbeat,
        latest.timestamp if latest else None,
    )
    moment = parse_timestamp(heartbeat)
    if moment is None:
        return None
    return (now - moment).total_seconds() / 3600


def _protection_disabled(value: Any) -> bool:
    if value is False:
        return True
    text = str(value).strip().lower() if value is not None else ""
    return text == "false" or "disabled" in text


def build_action_plan(profile: NormalizedProfile, now: datetime | None = None) -> list[Action]:
    """Evaluate the action rules for a device.

    Args:
        profile: Normalized device profile.
        now: Reference time for the offline rule. Defaults to current UTC time.

    Returns:
        Up to three actions in rule order, or a single success action when
        no rule fires.
    """
    now = utc_now(now)
    actions: list[Action] = []
    fields = profile.telemetry_detail.fields
    summary = profile.cves.summary

    hours = _hours_since_heartbeat(profile, now)
    if hours is not None and hours > OFFLINE_AFTER_HOURS:
        actions.append(
            Action(
                level=ActionLevel.WARNING,
                icon="ti-wifi-off",
                title="Device is Offline",
                desc=f"Last seen {math.floor(hours)} hours ago. Security status may be outdated.",
            )
        )

    kev_count = summary.with_known_exploit
    if kev_count > 0:
        actions.append(
            Action(
                level=ActionLevel.CRITICAL,
                icon="ti-alert-octagon",
                title="Active Exploits Detected",
                desc=(
                    f"{kev_count} vulnerabilities on this device are currently being exploited "
                    "in the wild (CISA KEV). Patch immediately."
                ),
            )
        )

    if _protection_disabled(first_defined(fields.get("AVProduct"), fields.get("DefenderEnabled"))):
        actions.append(
            Action(
                level=ActionLevel.CRITICAL,
                icon="ti-shield-off",
                title="Endpoint Protection Disabled",
                desc="Anti-virus / Endpoint security appears to be disabled or missing.",
            )
        )

    if summary.critical > 0 and kev_count == 0:
        actions.append(
            Action(
                level=ActionLevel.WARNING,
                icon="ti-bug",
                title="Critical Vulnerabilities",
                desc=f"{summary.critical} critical vulnerabilities found in installed software.",
            )
        )

    os_version = str(
        first_defined(
            fields.get("OSVersion"),
            fields.get("OSEdition"),
            fields.get("OS"),
            profile.device.os,
            "",
        )
    )
    if any(marker in os_version for marker in UNSUPPORTED_OS_MARKERS):
        actions.append(
            Action(
                level=ActionLevel.CRITICAL,
                icon="ti-device-desktop-analytics",
                title="Unsupported OS",
                desc="This operating system no longer receives security updates. Upgrade immediately.",
            )
        )

    if not actions:
        actions.append(
            Action(
                level=ActionLevel.SUCCESS,
                icon="ti-shield-check",
                title="Device Secure",
                desc="No immediate security actions required. Device conforms to baseline.",
            )
        )

    # TODO: confirm with product whether the cap should keep the most severe actions.
    return actions[:MAX_ACTIONS]
