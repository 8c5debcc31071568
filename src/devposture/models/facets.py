"""Filter and sort state for application and vulnerability lists.

Facet values are plain strings so unrecognised selections fall back to the
default ordering instead of failing validation.
"""

from devposture.models.base import CanonicalModel


class SoftwareFacets(CanonicalModel):
    """Application list facets.

    ``risk`` is one of all/high/medium/low, ``runtime`` one of
    all/running/installPath, ``sort`` one of risk/name/vendor/version
    (anything else orders by CVE count).
    """

    search: str = ""
    risk: str = "all"
    runtime: str = "all"
    sort: str = "risk"


class CveFacets(CanonicalModel):
    """Vulnerability list facets.

    ``sort`` is one of risk/severity/exploitability/recent; ``app`` narrows
    the list to one application name.
    """

    search: str = ""
    severity: str = "ALL"
    known_exploit_only: bool = False
    match: str = "all"
    remediation: str = "all"
    app: str = ""
    sort: str = "risk"
