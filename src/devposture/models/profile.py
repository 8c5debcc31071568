"""Canonical device profile models.

Each model knows how to build itself from the loosely-shaped payload the
device API returns. Builders never raise: every field goes through the
coercion helpers with an explicit default.
"""

from collections import Counter
from collections.abc import Iterable
from enum import StrEnum
from typing import Any

from loguru import logger
from pydantic import Field

from devposture.models.base import CanonicalModel
from devposture.utils.coercion import (
    as_array,
    as_mapping,
    decode_maybe_base64,
    lookup,
    pick,
    round_half_up,
    text_or_none,
    to_boolean,
    to_number,
)


class Severity(StrEnum):
    """Vulnerability severity buckets."""

    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @classmethod
    def parse(cls, value: Any) -> "Severity":
        """Parse a severity label, defaulting to LOW for anything unrecognised."""
        text = str(value if value not in (None, "") else "LOW").strip().upper()
        try:
            return cls(text)
        except ValueError:
            return cls.LOW


def app_key(name: Any) -> str:
    """Key used to match CVEs to applications (trimmed, lowercase)."""
    return str(name or "").strip().lower()


class NormalizedCve(CanonicalModel):
    """A vulnerability matched to software on the device."""

    cve_id: str = Field(default="N/A", description="CVE identifier")
    severity: Severity = Field(default=Severity.LOW, description="Severity bucket")
    cvss_score: float = Field(default=0.0, ge=0, description="CVSS base score")
    description: str = Field(default="No description available.")
    app_name: str = Field(default="Unknown Product", description="Affected application")
    app_vendor: str = Field(default="")
    application_version: str = Field(default="")
    has_known_exploit: bool = Field(default=False, description="Listed as known exploited")
    first_detected: str | None = None
    last_detected: str | None = None
    epss_probability: float = Field(default=0.0, ge=0, le=1, description="EPSS probability")
    epss_percentile: float = Field(default=0.0)
    remediation_type: str = Field(default="", description="Free-text remediation hint")
    match_type: str = Field(default="", description="Free-text match method")
    match_confidence: int = Field(
        default=0,
        description="2 = absolute, 1 = heuristic, 0 = unknown",
    )

    @staticmethod
    def _epss_probability(value: Any) -> float:
        """Interpret EPSS values above 1 as percentages."""
        raw = to_number(value, 0.0)
        probability = round_half_up(raw / 100, 4) if raw > 1 else raw
        return max(0.0, min(1.0, probability))

    @classmethod
    def from_raw(cls, item: Any) -> "NormalizedCve":
        """Create a NormalizedCve from one raw vulnerability entry.

        Args:
            item: Raw vulnerability object in any supported casing.

        Returns:
            NormalizedCve with every field defaulted.
        """
        raw = as_mapping(item)
        confidence = int(
            to_number(
                pick(
                    raw,
                    "matchConfidence",
                    "MatchConfidence",
                    "matchScore",
                    "MatchScore",
                    "matchLevel",
                    "MatchLevel",
                ),
                0,
            )
        )
        if to_boolean(pick(raw, "absoluteMatch", "AbsoluteMatch", default=False)):
            confidence = max(confidence, 2)

        return cls(
            cve_id=str(pick(raw, "cveId", "CveId", "id", "Id", default="N/A")),
            severity=Severity.parse(pick(raw, "severity", "Severity")),
            cvss_score=max(0.0, to_number(pick(raw, "cvssScore", "Score", "cvss", "Cvss"), 0.0)),
            description=str(
                pick(
                    raw,
                    "description",
                    "cveDescription",
                    "CveDescription",
                    default="No description available.",
                )
            ),
            app_name=str(
                pick(raw, "appName", "AppName", "productName", "ProductName", default="Unknown Product")
            ),
            app_vendor=str(pick(raw, "appVendor", "AppVendor", default="")),
            application_version=str(
                pick(raw, "applicationVersion", "ApplicationVersion", default="")
            ),
            has_known_exploit=to_boolean(
                pick(raw, "hasKnownExploit", "knownExploit", "KnownExploit", default=False)
            ),
            first_detected=text_or_none(pick(raw, "firstDetected", "FirstDetected")),
            last_detected=text_or_none(
                pick(raw, "lastDetected", "LastDetected", "lastUpdated", "LastUpdated")
            ),
            epss_probability=cls._epss_probability(
                pick(raw, "epssProbability", "EpssProbability", "epss", "EPSS", "Epss")
            ),
            epss_percentile=to_number(
                pick(raw, "epssPercentile", "EpssPercentile", "epssRank", "EpssRank"), 0.0
            ),
            remediation_type=str(
                pick(
                    raw,
                    "remediationType",
                    "RemediationType",
                    "fixType",
                    "FixType",
                    "patchType",
                    "PatchType",
                    default="",
                )
            ),
            match_type=str(
                pick(raw, "matchType", "MatchType", "matchMethod", "MatchMethod", default="")
            ),
            match_confidence=confidence,
        )


class CveSummary(CanonicalModel):
    """Severity bucket counts. Every CVE lands in exactly one bucket."""

    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    with_known_exploit: int = 0

    @classmethod
    def from_items(cls, items: Iterable[NormalizedCve]) -> "CveSummary":
        items = list(items)
        counts = Counter(item.severity for item in items)
        return cls(
            critical=counts[Severity.CRITICAL],
            high=counts[Severity.HIGH],
            medium=counts[Severity.MEDIUM],
            low=counts[Severity.LOW],
            with_known_exploit=sum(1 for item in items if item.has_known_exploit),
        )


class CveCollection(CanonicalModel):
    """Vulnerabilities detected on the device."""

    items: list[NormalizedCve] = Field(default_factory=list)
    count: int = 0
    has_more: bool = False
    summary: CveSummary = Field(default_factory=CveSummary)

    @classmethod
    def from_items(cls, items: Iterable[NormalizedCve], has_more: bool = False) -> "CveCollection":
        items = list(items)
        return cls(
            items=items,
            count=len(items),
            has_more=has_more,
            summary=CveSummary.from_items(items),
        )

    @classmethod
    def from_raw(cls, raw_cves: Any) -> "CveCollection":
        """Create a CveCollection from the raw ``cves`` block (object or bare list)."""
        if isinstance(raw_cves, list):
            raw_items: list[Any] = raw_cves
            raw: dict[str, Any] = {}
        else:
            raw = as_mapping(raw_cves)
            raw_items = as_array(pick(raw, "items", "Items"))
        return cls.from_items(
            (NormalizedCve.from_raw(item) for item in raw_items),
            has_more=to_boolean(pick(raw, "hasMore", "HasMore"), False),
        )

    def counts_by_app(self) -> Counter[str]:
        """Count vulnerabilities per normalized application name."""
        return Counter(key for item in self.items if (key := app_key(item.app_name)))


class NormalizedApp(CanonicalModel):
    """An application observed on the device."""

    name: str = "Unknown Application"
    vendor: str = "Unknown Publisher"
    version: str = "Unknown"
    latest_version: str | None = None
    outdated: bool = False
    status: str = "installed"
    is_running: bool = False
    install_path: str = ""
    running_path: str = ""
    first_seen: str | None = None
    last_seen: str | None = None
    cve_count: int = Field(default=0, ge=0, description="Derived from the CVE list")
    description: str | None = None

    @classmethod
    def from_raw(cls, item: Any, cve_counts: Counter[str] | None = None) -> "NormalizedApp":
        """Create a NormalizedApp from one raw application entry.

        Args:
            item: Raw application object.
            cve_counts: Vulnerability counts keyed by normalized app name.

        Returns:
            NormalizedApp whose ``cve_count`` comes from ``cve_counts`` only.
        """
        raw = as_mapping(item)
        name = str(pick(raw, "name", "appName", "AppName", default="Unknown Application"))
        status = str(pick(raw, "appStatus", "status", "AppStatus", default="installed")).lower()
        latest_version = text_or_none(pick(raw, "latestVersion", "nextVersion", "NextVersion"))
        return cls(
            name=name,
            vendor=str(pick(raw, "vendor", "appVendor", "AppVendor", default="Unknown Publisher")),
            version=str(
                pick(raw, "version", "applicationVersion", "ApplicationVersion", default="Unknown")
            ),
            latest_version=latest_version,
            outdated=latest_version is not None and status == "installed",
            status=status,
            is_running=to_boolean(
                pick(raw, "isRunning", "IsRunning", "running", "Running"),
                status == "running",
            ),
            install_path=str(
                pick(
                    raw,
                    "installPath",
                    "InstallPath",
                    "path",
                    "Path",
                    "exePath",
                    "ExecutablePath",
                    default="",
                )
            ),
            running_path=str(
                pick(
                    raw,
                    "runningPath",
                    "RunningPath",
                    "processPath",
                    "ProcessPath",
                    "currentPath",
                    "CurrentPath",
                    default="",
                )
            ),
            first_seen=text_or_none(pick(raw, "firstSeen", "FirstSeen")),
            last_seen=text_or_none(pick(raw, "lastSeen", "LastSeen")),
            cve_count=(cve_counts or Counter())[app_key(name)],
            description=text_or_none(pick(raw, "description", "appDescription")),
        )


class AppSummary(CanonicalModel):
    installed: int = 0
    updated: int = 0
    uninstalled: int = 0


class AppCollection(CanonicalModel):
    """Applications observed on the device."""

    items: list[NormalizedApp] = Field(default_factory=list)
    count: int = 0
    has_more: bool = False
    summary: AppSummary = Field(default_factory=AppSummary)

    @classmethod
    def from_raw(cls, raw_apps: Any, cves: CveCollection) -> "AppCollection":
        """Create an AppCollection, deriving per-app CVE counts from ``cves``.

        Summary counts reported by the API win; missing ones are counted
        from the item statuses.
        """
        if isinstance(raw_apps, list):
            raw_items: list[Any] = raw_apps
            raw: dict[str, Any] = {}
        else:
            raw = as_mapping(raw_apps)
            raw_items = as_array(pick(raw, "items", "Items"))

        cve_counts = cves.counts_by_app()
        items = [NormalizedApp.from_raw(item, cve_counts) for item in raw_items]
        statuses = Counter(item.status for item in items)
        summary_raw = as_mapping(pick(raw, "summary", "Summary"))

        def summary_count(key: str) -> int:
            reported = pick(summary_raw, key, key.capitalize())
            return int(to_number(reported, statuses[key]))

        return cls(
            items=items,
            count=int(to_number(pick(raw, "count", "Count"), len(items))),
            has_more=to_boolean(pick(raw, "hasMore", "HasMore"), False),
            summary=AppSummary(
                installed=summary_count("installed"),
                updated=summary_count("updated"),
                uninstalled=summary_count("uninstalled"),
            ),
        )

    def with_cve_counts(self, cves: CveCollection) -> "AppCollection":
        """Return a copy whose app ``cve_count`` values are recomputed from ``cves``."""
        counts = cves.counts_by_app()
        items = [app.model_copy(update={"cve_count": counts[app_key(app.name)]}) for app in self.items]
        return self.model_copy(update={"items": items})


class NormalizedDevice(CanonicalModel):
    """Identity and state of the endpoint."""

    device_id: str | None = None
    device_name: str | None = None
    device_state: str = "ACTIVE"
    last_heartbeat: str | None = None
    client_version: str | None = None
    os: str | None = None
    risk_score: float | None = Field(default=None, description="Backend-reported risk")
    summary: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_raw(cls, device_raw: Any) -> "NormalizedDevice":
        raw = as_mapping(device_raw)
        summary = as_mapping(pick(raw, "summary", "Summary"))
        backend_risk = next(
            (
                value
                for value in (
                    summary.get("riskScore"),
                    summary.get("RiskScore"),
                    raw.get("riskScore"),
                    raw.get("RiskScore"),
                )
                if value is not None
            ),
            None,
        )
        return cls(
            device_id=text_or_none(pick(raw, "deviceId", "DeviceId")),
            device_name=text_or_none(
                pick(
                    raw,
                    "deviceName",
                    "DeviceName",
                    "machineName",
                    "MachineName",
                    "deviceId",
                    "DeviceId",
                )
            ),
            device_state=str(pick(raw, "deviceState", "state", "State", default="ACTIVE")).upper(),
            last_heartbeat=text_or_none(pick(raw, "lastHeartbeat", "LastHeartbeat")),
            client_version=text_or_none(pick(raw, "clientVersion", "ClientVersion")),
            os=text_or_none(pick(raw, "os", "OS", "Os")),
            risk_score=to_number(backend_risk, None),
            summary=summary,
        )


class TelemetrySnapshot(CanonicalModel):
    """Most recent telemetry sample."""

    timestamp: str | None = None
    fields: dict[str, Any] = Field(default_factory=dict)

    @staticmethod
    def normalize_fields(fields_raw: dict[str, Any]) -> dict[str, Any]:
        """Overlay canonical telemetry keys on top of the raw fields.

        ``IPAddresses`` is always a list, never a bare string.
        """
        ip_list = [ip for ip in as_array(pick(fields_raw, "IPAddresses", "ipAddresses")) if ip]
        return {
            **fields_raw,
            "IPAddresses": ip_list,
            "ipAddresses": ip_list,
            "Username": decode_maybe_base64(
                pick(fields_raw, "Username", "UserName", "LoggedOnUser", "CurrentUser")
            ),
            "OSVersion": pick(fields_raw, "OSVersion", "osVersion", "OS", "OSEdition"),
            "OSEdition": pick(fields_raw, "OSEdition", "OS", "OSVersion"),
            "CPUName": pick(fields_raw, "CPUName", "CPU", "ProcessorName"),
            "CPUCores": pick(fields_raw, "CPUCores", "Cores"),
            "TotalRAMMB": pick(fields_raw, "TotalRAMMB", "TotalRamMb", "RAMMB"),
            "SystemDriveSizeGB": pick(fields_raw, "SystemDriveSizeGB", "TotalDiskGb", "DiskGB"),
            "AVProduct": pick(fields_raw, "AVProduct", "DefenderStatus", "DefenderEnabled"),
        }

    @classmethod
    def from_raw(cls, latest_raw: Any) -> "TelemetrySnapshot":
        raw = as_mapping(latest_raw)
        return cls(
            timestamp=text_or_none(pick(raw, "timestamp", "Timestamp")),
            fields=cls.normalize_fields(as_mapping(pick(raw, "fields", "Fields"))),
        )


class TelemetryDetail(CanonicalModel):
    latest: TelemetrySnapshot | None = None
    history: list[Any] = Field(default_factory=list)
    changes: list[Any] = Field(default_factory=list)

    @classmethod
    def from_raw(cls, telemetry_raw: Any) -> "TelemetryDetail":
        raw = as_mapping(telemetry_raw)
        latest = pick(raw, "latest", "Latest")
        return cls(
            latest=TelemetrySnapshot.from_raw(latest) if latest is not None else None,
            history=as_array(pick(raw, "history", "History")),
            changes=as_array(pick(raw, "changes", "Changes")),
        )

    @property
    def fields(self) -> dict[str, Any]:
        """Fields of the latest snapshot, empty when there is none."""
        return self.latest.fields if self.latest else {}


class TelemetryStatus(CanonicalModel):
    last_telemetry: str | None = None
    last_heartbeat: str | None = None
    consecutive_failures: int = 0
    errors: Any = None

    @classmethod
    def from_raw(cls, status_raw: Any) -> "TelemetryStatus":
        raw = as_mapping(status_raw)
        return cls(
            last_telemetry=text_or_none(pick(raw, "lastTelemetry", "LastTelemetry")),
            last_heartbeat=text_or_none(pick(raw, "lastHeartbeat", "LastHeartbeat")),
            consecutive_failures=int(
                to_number(pick(raw, "consecutiveFailures", "ConsecutiveFailures"), 0)
            ),
            errors=pick(raw, "errors", "Errors"),
        )


class NormalizedProfile(CanonicalModel):
    """Root value object for one device, immutable per fetch."""

    device: NormalizedDevice = Field(default_factory=NormalizedDevice)
    telemetry_detail: TelemetryDetail = Field(default_factory=TelemetryDetail)
    telemetry_status: TelemetryStatus = Field(default_factory=TelemetryStatus)
    apps: AppCollection = Field(default_factory=AppCollection)
    cves: CveCollection = Field(default_factory=CveCollection)

    @classmethod
    def from_raw(cls, raw_profile: Any) -> "NormalizedProfile":
        """Normalize a raw device profile payload.

        CVEs are normalized first so each app's ``cve_count`` is derived from
        the final vulnerability list.

        Args:
            raw_profile: Decoded JSON object for one device. Any key may be
                missing or oddly cased.

        Returns:
            Fully defaulted NormalizedProfile.
        """
        raw = as_mapping(raw_profile)
        cves = CveCollection.from_raw(lookup(raw, "cves", "CVEs", "Cves"))
        apps = AppCollection.from_raw(lookup(raw, "apps", "Apps"), cves)
        profile = cls(
            device=NormalizedDevice.from_raw(lookup(raw, "device", "Device")),
            telemetry_detail=TelemetryDetail.from_raw(
                lookup(raw, "telemetry", "Telemetry", "telemetryDetail", "TelemetryDetail")
            ),
            telemetry_status=TelemetryStatus.from_raw(
                lookup(raw, "telemetryStatus", "TelemetryStatus")
            ),
            apps=apps,
            cves=cves,
        )
        logger.debug(
            f"Normalized profile {profile.device.device_name or '<unnamed>'}: "
            f"{cves.count} CVEs, {len(apps.items)} apps"
        )
        return profile

    def with_cves(self, items: Iterable[NormalizedCve]) -> "NormalizedProfile":
        """Return a copy with a new CVE list and recomputed app CVE counts."""
        cves = CveCollection.from_items(items, has_more=self.cves.has_more)
        return self.model_copy(update={"cves": cves, "apps": self.apps.with_cve_counts(cves)})
