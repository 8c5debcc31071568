"""Composite risk scoring and key-risk metrics.

The final risk score is the maximum of the backend-reported value and a
locally derived one, so an optimistic or stale backend value never hides
risk that is visible in the device's own data.
"""

from datetime import datetime

from devposture.models.derived import DevicePresence, KrMetrics, PostureSummary, ScoreModel
from devposture.models.profile import NormalizedProfile
from devposture.services.classification import is_risky_app
from devposture.utils.coercion import (
    clamp,
    first_defined,
    js_round,
    parse_timestamp,
    round_half_up,
    to_number,
    utc_now,
)

# Points per CVE, by severity, before dividing by installed app count.
CRITICAL_WEIGHT = 12
HIGH_WEIGHT = 7
MEDIUM_WEIGHT = 3
LOW_WEIGHT = 1

WEIGHTED_CVE_CAP = 70
EXPLOIT_CAP = 20
DENSITY_CAP = 15
APP_CAP = 10
STALE_CAP = 10
STALE_AFTER_HOURS = 6

ONLINE_WITHIN_MINUTES = 20
STALE_WITHIN_MINUTES = 1440
MAX_STALE_FAILURES = 12


def last_seen(profile: NormalizedProfile) -> str | None:
    """Most authoritative last-contact timestamp for the device."""
    value = first_defined(
        profile.telemetry_status.last_heartbeat,
        profile.telemetry_status.last_telemetry,
        profile.telemetry_detail.latest.timestamp if profile.telemetry_detail.latest else None,
        profile.device.last_heartbeat,
    )
    return str(value) if value is not None else None


def _age_hours(timestamp: str | None, now: datetime) -> float | None:
    moment = parse_timestamp(timestamp)
    if moment is None:
        return None
    return max(0.0, (now - moment).total_seconds() / 3600)


def _stale_penalty(profile: NormalizedProfile, now: datetime) -> int:
    """Penalty for confirmed telemetry staleness; missing data is not penalized."""
    age_hours = _age_hours(last_seen(profile), now)
    if age_hours is None or age_hours <= STALE_AFTER_HOURS:
        return 0
    return min(STALE_CAP, js_round(age_hours / 12))


def build_score_model(profile: NormalizedProfile, now: datetime | None = None) -> ScoreModel:
    """Compute the composite 0-100 risk score for a device.

    Args:
        profile: Normalized device profile.
        now: Reference time for telemetry staleness. Defaults to current UTC time.

    Returns:
        ScoreModel with the final score and every contributing count.
    """
    now = utc_now(now)
    summary = profile.cves.summary
    backend_risk = to_number(profile.device.risk_score, 0.0)

    critical, high = summary.critical, summary.high
    medium, low = summary.medium, summary.low
    known_exploit = summary.with_known_exploit
    total_cves = profile.cves.count
    installed = max(1, profile.apps.summary.installed)

    severity_load = (
        critical * CRITICAL_WEIGHT + high * HIGH_WEIGHT + medium * MEDIUM_WEIGHT + low * LOW_WEIGHT
    ) / installed
    weighted_cve_risk = min(WEIGHTED_CVE_CAP, js_round(severity_load * 8))
    exploit_penalty = min(EXPLOIT_CAP, known_exploit * 10)
    density_penalty = min(DENSITY_CAP, js_round(total_cves / installed * 12))
    risky_apps = sum(1 for app in profile.apps.items if is_risky_app(app))
    app_penalty = min(APP_CAP, js_round(risky_apps / installed * 10))
    stale_penalty = _stale_penalty(profile, now)

    derived_risk = min(
        100,
        weighted_cve_risk + exploit_penalty + density_penalty + app_penalty + stale_penalty,
    )
    risk_score = int(clamp(js_round(max(backend_risk, derived_risk)), 0, 100))

    return ScoreModel(
        risk_score=risk_score,
        security_score=100 - risk_score,
        backend_risk=clamp(backend_risk, 0, 100),
        derived_risk=derived_risk,
        total_cves=total_cves,
        installed=installed,
        risky_apps=risky_apps,
        known_exploit=known_exploit,
        critical=critical,
        high=high,
        medium=medium,
        low=low,
    )


def _mttr_days(profile: NormalizedProfile) -> str:
    durations: list[float] = []
    for cve in profile.cves.items:
        start = parse_timestamp(cve.first_detected)
        end = parse_timestamp(cve.last_detected)
        if start is None or end is None or end < start:
            continue
        durations.append((end - start).total_seconds() / 86400)

    if not durations:
        return "N/A"
    average = sum(durations) / len(durations)
    # Same-day detections would read as "remediated instantly".
    if average < 0.1:
        return "N/A"
    return f"{round_half_up(average, 1):.1f}d"


def build_kr_metrics(
    profile: NormalizedProfile,
    score_model: ScoreModel | None = None,
) -> KrMetrics:
    """Compute key-risk metrics (density, exposure, exploitability, readiness, MTTR).

    Args:
        profile: Normalized device profile.
        score_model: Previously computed score model; built when omitted.

    Returns:
        KrMetrics for the device.
    """
    score_model = score_model or build_score_model(profile)
    installed = max(1, score_model.installed)
    total_cves = max(0, score_model.total_cves)

    critical_exposure = js_round(score_model.critical / total_cves * 100) if total_cves else 0
    exploitability_index = min(
        100,
        js_round(score_model.known_exploit * 20 + score_model.high * 2 + score_model.critical * 4),
    )
    remediation_readiness = int(
        clamp(js_round(profile.apps.summary.updated / installed * 100), 0, 100)
    )

    return KrMetrics(
        vulnerability_density=round_half_up(total_cves / installed, 2),
        critical_exposure=critical_exposure,
        exploitability_index=exploitability_index,
        remediation_readiness=remediation_readiness,
        mttr_days=_mttr_days(profile),
    )


def get_device_presence(profile: NormalizedProfile, now: datetime | None = None) -> DevicePresence:
    """Classify the device as Online, Stale, Offline, Blocked or Disabled."""
    now = utc_now(now)
    state = profile.device.device_state.upper()
    seen = last_seen(profile)
    age_hours = _age_hours(seen, now)
    age_minutes = age_hours * 60 if age_hours is not None else None
    failures = profile.telemetry_status.consecutive_failures

    def presence(status_text: str, is_online: bool) -> DevicePresence:
        return DevicePresence(
            status_text=status_text,
            is_online=is_online,
            age_minutes=age_minutes,
            latest_seen=seen,
        )

    if state == "BLOCKED":
        return presence("Blocked", False)
    if state == "DISABLED":
        return presence("Disabled", False)
    if age_minutes is not None and age_minutes <= ONLINE_WITHIN_MINUTES:
        return presence("Online", True)
    if (
        age_minutes is not None
        and age_minutes <= STALE_WITHIN_MINUTES
        and failures <= MAX_STALE_FAILURES
    ):
        return presence("Stale", True)
    return presence("Offline", False)


def build_posture_summary(
    profile: NormalizedProfile,
    score_model: ScoreModel | None = None,
) -> PostureSummary:
    """Derive compliance/posture scores and display tones from the score model."""
    score_model = score_model or build_score_model(profile)
    security = score_model.security_score
    compliance = int(clamp(js_round(security - profile.cves.summary.critical * 2), 0, 100))
    posture = int(clamp(js_round(security * 0.5 + compliance * 0.5), 0, 100))
    ip_addresses = profile.telemetry_detail.fields.get("IPAddresses") or []

    if score_model.risk_score >= 70:
        risk_tone = "danger"
    elif score_model.risk_score >= 40:
        risk_tone = "warning"
    else:
        risk_tone = "success"

    if security >= 85:
        security_label = "Strong"
    elif security >= 60:
        security_label = "Watch"
    else:
        security_label = "Critical"

    return PostureSummary(
        compliance_score=compliance,
        posture_score=posture,
        network_exposure="Medium" if len(ip_addresses) > 1 else "Low",
        risk_tone=risk_tone,
        security_label=security_label,
    )
