"""Per-vulnerability and per-application bucketing.

Every classifier resolves to a bucket; ``unknown`` and ``low`` are valid
terminal states.
"""

from typing import Literal

from devposture.models.profile import NormalizedApp, NormalizedCve, Severity

MatchBucket = Literal["absolute", "heuristic", "unknown"]
RemediationBucket = Literal["patch", "config", "mitigate", "nofix", "unknown"]
RiskLevel = Literal["high", "medium", "low"]

_SEVERITY_RANK = {Severity.CRITICAL: 4, Severity.HIGH: 3, Severity.MEDIUM: 2}
_RISK_RANK = {"high": 3, "medium": 2}

# First matching group wins.
_REMEDIATION_KEYWORDS: tuple[tuple[RemediationBucket, tuple[str, ...]], ...] = (
    ("patch", ("patch", "update", "upgrade", "hotfix")),
    ("config", ("config", "setting", "policy", "hardening")),
    ("mitigate", ("mitig", "workaround", "compensat")),
    ("nofix", ("no fix", "unavailable", "none")),
)


def get_cve_match_type(cve: NormalizedCve) -> MatchBucket:
    """Classify how confidently a CVE was matched to installed software.

    Numeric confidence takes priority over the free-text match type.
    """
    if cve.match_confidence >= 2:
        return "absolute"
    if cve.match_confidence == 1:
        return "heuristic"

    text = cve.match_type.lower()
    if any(word in text for word in ("absolute", "exact", "direct")):
        return "absolute"
    if any(word in text for word in ("heuristic", "fuzzy", "approx")):
        return "heuristic"
    return "unknown"


def get_cve_remediation_bucket(cve: NormalizedCve) -> RemediationBucket:
    """Classify the free-text remediation type of a CVE."""
    text = cve.remediation_type.lower()
    if not text:
        return "unknown"
    for bucket, keywords in _REMEDIATION_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return bucket
    return "unknown"


def get_severity_rank(severity: str) -> int:
    """CRITICAL=4, HIGH=3, MEDIUM=2, anything else 1."""
    return _SEVERITY_RANK.get(Severity.parse(severity), 1)


def get_severity_weight(cve: NormalizedCve) -> int:
    """Trend pressure weight of a CVE's severity (4/3/2/1)."""
    return get_severity_rank(cve.severity)


def get_risk_level_for_app(app: NormalizedApp) -> RiskLevel:
    if app.cve_count >= 5 or app.outdated:
        return "high"
    if app.cve_count >= 1:
        return "medium"
    return "low"


def get_risk_rank(level: str) -> int:
    return _RISK_RANK.get(level, 1)


def is_risky_app(app: NormalizedApp) -> bool:
    """An app is risky when it has matched CVEs or a newer version available."""
    return get_risk_level_for_app(app) != "low"
