"""Multi-facet filtering and ordering of application and CVE lists.

Filters form an AND-chain. Sorting uses Python's stable sort, so items that
compare equal keep their input order.
"""

from collections.abc import Callable, Iterable

from devposture.models.facets import CveFacets, SoftwareFacets
from devposture.models.profile import NormalizedApp, NormalizedCve, NormalizedProfile
from devposture.services.classification import (
    get_cve_match_type,
    get_cve_remediation_bucket,
    get_risk_level_for_app,
    get_risk_rank,
    get_severity_rank,
)
from devposture.utils.coercion import parse_timestamp


def _haystack(*values: object) -> str:
    return " ".join(str(value or "").lower() for value in values)


def _search(query: str) -> str:
    return query.strip().lower()


def _detected_millis(cve: NormalizedCve) -> float:
    moment = parse_timestamp(cve.last_detected)
    return moment.timestamp() * 1000 if moment else 0.0


_APP_SORT_KEYS: dict[str, Callable[[NormalizedApp], object]] = {
    "name": lambda app: app.name.casefold(),
    "vendor": lambda app: app.vendor.casefold(),
    "version": lambda app: app.version.casefold(),
    "risk": lambda app: (-get_risk_rank(get_risk_level_for_app(app)), -app.cve_count),
}

_CVE_SORT_KEYS: dict[str, Callable[[NormalizedCve], object]] = {
    "recent": lambda cve: -_detected_millis(cve),
    "exploitability": lambda cve: (-int(cve.has_known_exploit), -cve.cvss_score),
    "severity": lambda cve: (-get_severity_rank(cve.severity), -cve.cvss_score),
}


def sort_software(items: Iterable[NormalizedApp], sort: str = "risk") -> list[NormalizedApp]:
    """Order apps; unknown sort modes order by CVE count, most first."""
    key = _APP_SORT_KEYS.get(sort, lambda app: -app.cve_count)
    return sorted(items, key=key)  # type: ignore[arg-type]


def sort_cves(items: Iterable[NormalizedCve], sort: str = "risk") -> list[NormalizedCve]:
    """Order CVEs; ``risk`` and unknown modes order by CVSS score, highest first."""
    key = _CVE_SORT_KEYS.get(sort, lambda cve: -cve.cvss_score)
    return sorted(items, key=key)  # type: ignore[arg-type]


def filter_software(
    profile: NormalizedProfile,
    facets: SoftwareFacets | None = None,
) -> list[NormalizedApp]:
    """Apply software facets to the profile's application list.

    Args:
        profile: Normalized device profile.
        facets: Current facet selection; defaults select everything.

    Returns:
        Filtered and sorted applications.
    """
    facets = facets or SoftwareFacets()
    items = list(profile.apps.items)
    query = _search(facets.search)

    if query:
        items = [
            app
            for app in items
            if query in _haystack(app.name, app.vendor, app.version, app.latest_version, app.status)
        ]

    if facets.risk != "all":
        items = [app for app in items if get_risk_level_for_app(app) == facets.risk]

    if facets.runtime == "running":
        items = [app for app in items if app.is_running]
    elif facets.runtime == "installPath":
        items = [app for app in items if app.install_path]

    return sort_software(items, facets.sort)


def filter_cves(
    profile: NormalizedProfile,
    facets: CveFacets | None = None,
) -> list[NormalizedCve]:
    """Apply vulnerability facets to the profile's CVE list.

    Args:
        profile: Normalized device profile.
        facets: Current facet selection; defaults select everything.

    Returns:
        Filtered and sorted CVEs.
    """
    facets = facets or CveFacets()
    items = list(profile.cves.items)

    if facets.app:
        app_name = facets.app.lower()
        items = [cve for cve in items if cve.app_name.lower() == app_name]

    severity = facets.severity.strip().upper()
    if severity and severity != "ALL":
        items = [cve for cve in items if cve.severity == severity]

    if facets.known_exploit_only:
        items = [cve for cve in items if cve.has_known_exploit]

    if facets.match != "all":
        items = [cve for cve in items if get_cve_match_type(cve) == facets.match]

    if facets.remediation != "all":
        items = [cve for cve in items if get_cve_remediation_bucket(cve) == facets.remediation]

    query = _search(facets.search)
    if query:
        items = [
            cve
            for cve in items
            if query
            in _haystack(cve.cve_id, cve.severity, cve.description, cve.app_name, cve.app_vendor)
        ]

    return sort_cves(items, facets.sort)
