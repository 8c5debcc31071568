"""Scoring, classification and enrichment services for devposture."""

from devposture.services.actions import build_action_plan
from devposture.services.classification import (
    get_cve_match_type,
    get_cve_remediation_bucket,
    get_risk_level_for_app,
    get_risk_rank,
    get_severity_rank,
    get_severity_weight,
    is_risky_app,
)
from devposture.services.filtering import filter_cves, filter_software, sort_cves, sort_software
from devposture.services.scoring import (
    build_kr_metrics,
    build_posture_summary,
    build_score_model,
    get_device_presence,
)
from devposture.services.threat_intel import ThreatIntelService
from devposture.services.trends import (
    get_app_exposure,
    get_highlight_insights,
    get_trend,
    get_trend_metrics,
)

__all__ = [
    "ThreatIntelService",
    "build_action_plan",
    "build_kr_metrics",
    "build_posture_summary",
    "build_score_model",
    "filter_cves",
    "filter_software",
    "get_app_exposure",
    "get_cve_match_type",
    "get_cve_remediation_bucket",
    "get_device_presence",
    "get_highlight_insights",
    "get_risk_level_for_app",
    "get_risk_rank",
    "get_severity_rank",
    "get_severity_weight",
    "get_trend",
    "get_trend_metrics",
    "is_risky_app",
    "sort_cves",
    "sort_software",
]
