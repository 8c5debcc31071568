"""Detection trends and highlight insights."""

from datetime import date, datetime, timedelta
from typing import Any

from devposture.models.derived import (
    AppExposure,
    AppPathCounts,
    HighlightInsights,
    MatchCounts,
    RemediationCounts,
    TrendBucket,
    TrendMetricBucket,
)
from devposture.models.profile import NormalizedCve, NormalizedProfile
from devposture.services.classification import (
    get_cve_match_type,
    get_cve_remediation_bucket,
    get_severity_weight,
)
from devposture.utils.coercion import (
    clamp,
    parse_timestamp,
    round_half_up,
    to_iso,
    to_number,
    utc_now,
)

MAX_TREND_DAYS = 30
EPSS_HIGH_THRESHOLD = 0.70
EXPLOIT_PRESSURE_BONUS = 2


def _window(days: Any, now: datetime | None) -> list[date]:
    """Consecutive UTC calendar days ending today, oldest first."""
    safe_days = int(clamp(to_number(days, MAX_TREND_DAYS), 1, MAX_TREND_DAYS))
    today = utc_now(now).date()
    return [today - timedelta(days=offset) for offset in range(safe_days - 1, -1, -1)]


def _detection_day(cve: NormalizedCve) -> str | None:
    moment = parse_timestamp(cve.first_detected or cve.last_detected)
    return moment.date().isoformat() if moment else None


def get_trend(
    profile: NormalizedProfile,
    days: Any = MAX_TREND_DAYS,
    now: datetime | None = None,
) -> list[TrendBucket]:
    """Count CVE detections per day over a fixed window.

    Args:
        profile: Normalized device profile.
        days: Window length, clamped to 1-30.
        now: Reference time; the window ends on its UTC date.

    Returns:
        One bucket per day, oldest first. CVEs with unparseable or
        out-of-window dates are skipped.
    """
    counts: dict[str, int] = {day.isoformat(): 0 for day in _window(days, now)}
    for cve in profile.cves.items:
        key = _detection_day(cve)
        if key in counts:
            counts[key] += 1

    return [
        TrendBucket(key=key, label=f"{int(key[5:7])}/{int(key[8:10])}", count=count)
        for key, count in counts.items()
    ]


def get_trend_metrics(
    profile: NormalizedProfile,
    days: Any = MAX_TREND_DAYS,
    now: datetime | None = None,
) -> list[TrendMetricBucket]:
    """Extend the daily trend with severity pressure and exploited counts."""
    pressure: dict[str, int] = {}
    exploited: dict[str, int] = {}
    for cve in profile.cves.items:
        key = _detection_day(cve)
        if key is None:
            continue
        bonus = EXPLOIT_PRESSURE_BONUS if cve.has_known_exploit else 0
        pressure[key] = pressure.get(key, 0) + get_severity_weight(cve) + bonus
        if cve.has_known_exploit:
            exploited[key] = exploited.get(key, 0) + 1

    return [
        TrendMetricBucket(
            **bucket.model_dump(),
            pressure=pressure.get(bucket.key, 0),
            exploited=exploited.get(bucket.key, 0),
        )
        for bucket in get_trend(profile, days, now)
    ]


def get_highlight_insights(profile: NormalizedProfile) -> HighlightInsights:
    """Scan all CVEs once for detection range, bucket counts and EPSS stats."""
    moments: list[datetime] = []
    match = {"absolute": 0, "heuristic": 0, "unknown": 0}
    remediation = {"patch": 0, "config": 0, "mitigate": 0, "nofix": 0, "unknown": 0}
    epss_values: list[float] = []

    for cve in profile.cves.items:
        for value in (cve.first_detected, cve.last_detected):
            moment = parse_timestamp(value)
            if moment is not None:
                moments.append(moment)
        match[get_cve_match_type(cve)] += 1
        remediation[get_cve_remediation_bucket(cve)] += 1
        if cve.epss_probability > 0:
            epss_values.append(cve.epss_probability)

    epss_avg = (
        round_half_up(sum(epss_values) / len(epss_values) * 100, 1) if epss_values else 0.0
    )
    apps = profile.apps.items

    return HighlightInsights(
        first_detected_at=to_iso(min(moments)) if moments else None,
        last_detected_at=to_iso(max(moments)) if moments else None,
        match=MatchCounts(**match),
        remediation=RemediationCounts(**remediation),
        epss_high=sum(1 for value in epss_values if value >= EPSS_HIGH_THRESHOLD),
        epss_avg=epss_avg,
        apps=AppPathCounts(
            with_install_path=sum(1 for app in apps if app.install_path),
            running_with_path=sum(1 for app in apps if app.is_running and app.running_path),
        ),
    )


def get_app_exposure(profile: NormalizedProfile) -> AppExposure:
    """Split applications into risky (has CVEs), outdated and clean counts."""
    apps = profile.apps.items
    risky = sum(1 for app in apps if app.cve_count > 0)
    return AppExposure(
        risky=risky,
        outdated=sum(1 for app in apps if app.outdated),
        clean=max(0, len(apps) - risky),
    )
