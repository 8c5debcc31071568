"""Public threat-intelligence models used to enrich a single CVE."""

from datetime import date, datetime
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field, ValidationError, field_validator

from devposture.models.base import CanonicalModel


class KEVEntry(BaseModel):
    """Single entry in the CISA Known Exploited Vulnerabilities catalog."""

    cve_id: str = Field(..., description="CVE identifier")
    vendor_project: str = Field(default="", description="Vendor or project name")
    product: str = Field(default="", description="Affected product name")
    vulnerability_name: str = Field(default="", description="Vulnerability name/title")
    date_added: date | None = Field(default=None, description="Date added to KEV catalog")
    short_description: str = Field(default="", description="Brief vulnerability description")
    required_action: str = Field(default="", description="Required remediation action")
    due_date: date | None = Field(default=None, description="Federal remediation due date")
    known_ransomware_campaign_use: bool = Field(
        default=False,
        description="Known to be used in ransomware campaigns",
    )
    notes: str = Field(default="")

    @field_validator("cve_id", mode="before")
    @classmethod
    def normalize_cve_id(cls, v: str) -> str:
        """Normalize CVE ID to uppercase."""
        return str(v).strip().upper() if v else ""

    @field_validator("date_added", "due_date", mode="before")
    @classmethod
    def parse_date(cls, v: str | date | None) -> date | None:
        """Parse ``YYYY-MM-DD`` strings; anything unparseable becomes None."""
        if isinstance(v, date):
            return v
        if isinstance(v, str) and v:
            try:
                return datetime.strptime(v[:10], "%Y-%m-%d").date()
            except ValueError:
                return None
        return None

    @field_validator("known_ransomware_campaign_use", mode="before")
    @classmethod
    def parse_ransomware_use(cls, v: str | bool | None) -> bool:
        """CISA reports ``Known``/``Unknown`` rather than a boolean."""
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            return v.strip().lower() == "known"
        return False

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "KEVEntry":
        """Create a KEVEntry from one ``vulnerabilities`` item of the CISA feed."""
        return cls(
            cve_id=data.get("cveID", ""),
            vendor_project=data.get("vendorProject", "") or "",
            product=data.get("product", "") or "",
            vulnerability_name=data.get("vulnerabilityName", "") or "",
            date_added=data.get("dateAdded"),
            short_description=data.get("shortDescription", "") or "",
            required_action=data.get("requiredAction", "") or "",
            due_date=data.get("dueDate"),
            known_ransomware_campaign_use=data.get("knownRansomwareCampaignUse"),
            notes=data.get("notes", "") or "",
        )


class KEVCatalog(BaseModel):
    """CISA KEV catalog indexed by CVE ID."""

    catalog_version: str = ""
    entries: dict[str, KEVEntry] = Field(default_factory=dict)

    def get_entry(self, cve_id: str) -> KEVEntry | None:
        """Get the KEV entry for a CVE, matching case-insensitively."""
        return self.entries.get(cve_id.strip().upper())

    @classmethod
    def from_api(cls, data: Any) -> "KEVCatalog":
        """Create a KEVCatalog from the CISA feed, skipping malformed entries."""
        payload = data if isinstance(data, dict) else {}
        entries: dict[str, KEVEntry] = {}
        for vuln in payload.get("vulnerabilities") or []:
            if not isinstance(vuln, dict):
                continue
            try:
                entry = KEVEntry.from_api(vuln)
            except ValidationError as e:
                logger.debug(f"Skipping malformed KEV entry {vuln.get('cveID')!r}: {e}")
                continue
            if entry.cve_id:
                entries[entry.cve_id] = entry
        return cls(catalog_version=str(payload.get("catalogVersion", "")), entries=entries)


class ThreatIntel(CanonicalModel):
    """Enrichment result for one CVE."""

    cve_id: str
    circl: dict[str, Any] | None = Field(default=None, description="CIRCL CVE record")
    kev: KEVEntry | None = Field(default=None, description="CISA KEV entry")
    error: str = ""

    @property
    def found(self) -> bool:
        return self.circl is not None or self.kev is not None
