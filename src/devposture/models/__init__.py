"""Data models for devposture."""

from devposture.models.derived import (
    Action,
    ActionLevel,
    AppExposure,
    AppPathCounts,
    DevicePresence,
    HighlightInsights,
    KrMetrics,
    MatchCounts,
    PostureSummary,
    RemediationCounts,
    ScoreModel,
    TrendBucket,
    TrendMetricBucket,
)
from devposture.models.facets import CveFacets, SoftwareFacets
from devposture.models.intel import KEVCatalog, KEVEntry, ThreatIntel
from devposture.models.profile import (
    AppCollection,
    AppSummary,
    CveCollection,
    CveSummary,
    NormalizedApp,
    NormalizedCve,
    NormalizedDevice,
    NormalizedProfile,
    Severity,
    TelemetryDetail,
    TelemetrySnapshot,
    TelemetryStatus,
)

__all__ = [
    "Action",
    "ActionLevel",
    "AppCollection",
    "AppExposure",
    "AppPathCounts",
    "AppSummary",
    "CveCollection",
    "CveFacets",
    "CveSummary",
    "DevicePresence",
    "HighlightInsights",
    "KEVCatalog",
    "KEVEntry",
    "KrMetrics",
    "MatchCounts",
    "NormalizedApp",
    "NormalizedCve",
    "NormalizedDevice",
    "NormalizedProfile",
    "PostureSummary",
    "RemediationCounts",
    "ScoreModel",
    "Severity",
    "SoftwareFacets",
    "TelemetryDetail",
    "TelemetrySnapshot",
    "TelemetryStatus",
    "ThreatIntel",
    "TrendBucket",
    "TrendMetricBucket",
]
