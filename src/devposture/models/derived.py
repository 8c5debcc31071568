"""Derived view models computed from a NormalizedProfile.

These hold no state of their own; they are recomputed on every request.
"""

from enum import StrEnum

from pydantic import Field

from devposture.models.base import CanonicalModel


class ScoreModel(CanonicalModel):
    """Composite risk score and the inputs that produced it."""

    risk_score: int = Field(..., ge=0, le=100, description="Composite risk (0-100)")
    security_score: int = Field(..., ge=0, le=100, description="100 - risk score")
    backend_risk: float = Field(default=0.0, ge=0, le=100)
    derived_risk: int = Field(default=0, ge=0, le=100)
    total_cves: int = 0
    installed: int = Field(default=1, ge=1)
    risky_apps: int = 0
    known_exploit: int = 0
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0


class KrMetrics(CanonicalModel):
    """Secondary key-risk metrics for analysts."""

    vulnerability_density: float = 0.0
    critical_exposure: int = Field(default=0, ge=0, le=100)
    exploitability_index: int = Field(default=0, ge=0, le=100)
    remediation_readiness: int = Field(default=0, ge=0, le=100)
    mttr_days: str = Field(default="N/A", description='"<n>.<d>d" or "N/A"')


class ActionLevel(StrEnum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"
    SUCCESS = "success"


class Action(CanonicalModel):
    """One recommended action in the device action plan."""

    level: ActionLevel
    title: str
    desc: str
    icon: str = ""


class MatchCounts(CanonicalModel):
    absolute: int = 0
    heuristic: int = 0
    unknown: int = 0


class RemediationCounts(CanonicalModel):
    patch: int = 0
    config: int = 0
    mitigate: int = 0
    nofix: int = 0
    unknown: int = 0


class AppPathCounts(CanonicalModel):
    with_install_path: int = 0
    running_with_path: int = 0


class HighlightInsights(CanonicalModel):
    """Summary counts shown on the device highlights panel."""

    first_detected_at: str | None = None
    last_detected_at: str | None = None
    match: MatchCounts = Field(default_factory=MatchCounts)
    remediation: RemediationCounts = Field(default_factory=RemediationCounts)
    epss_high: int = 0
    epss_avg: float = Field(default=0.0, description="Mean positive EPSS, percent")
    apps: AppPathCounts = Field(default_factory=AppPathCounts)


class AppExposure(CanonicalModel):
    risky: int = 0
    outdated: int = 0
    clean: int = 0


class TrendBucket(CanonicalModel):
    """Detections for one UTC calendar day."""

    key: str = Field(..., description="YYYY-MM-DD")
    label: str = Field(..., description="M/D")
    count: int = 0


class TrendMetricBucket(TrendBucket):
    pressure: int = 0
    exploited: int = 0


class DevicePresence(CanonicalModel):
    """Connectivity status derived from heartbeat age and device state."""

    status_text: str
    is_online: bool
    age_minutes: float | None = Field(default=None, description="None when never seen")
    latest_seen: str | None = None


class PostureSummary(CanonicalModel):
    """Headline posture figures derived from the score model."""

    compliance_score: int = Field(..., ge=0, le=100)
    posture_score: int = Field(..., ge=0, le=100)
    network_exposure: str
    risk_tone: str
    security_label: str
