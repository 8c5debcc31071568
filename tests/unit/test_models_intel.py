"""Tests for threat-intel data models."""

from datetime import date

from devposture.models import KEVCatalog, KEVEntry, ThreatIntel


class TestKEVEntry:
    """Tests for KEVEntry model."""

    def test_create_kev_entry(self):
        """Test creating a KEV entry."""
        entry = KEVEntry(
            cve_id="cve-2024-12345",
            vendor_project="Example Corp",
            product="Example Software",
            date_added=date(2024, 1, 10),
            known_ransomware_campaign_use=True,
        )

        assert entry.cve_id == "CVE-2024-12345"
        assert entry.known_ransomware_campaign_use is True
        assert entry.due_date is None

    def test_parse_date_string(self):
        """Test parsing dates from strings."""
        entry = KEVEntry(cve_id="CVE-2024-12345", date_added="2024-01-10", due_date="soon")

        assert entry.date_added == date(2024, 1, 10)
        assert entry.due_date is None

    def test_parse_ransomware_use(self):
        """Test parsing the Known/Unknown ransomware flag."""
        for value, expected in (("Known", True), ("Unknown", False), (None, False)):
            entry = KEVEntry(cve_id="X", known_ransomware_campaign_use=value)
            assert entry.known_ransomware_campaign_use is expected

    def test_from_api(self, sample_kev_response):
        """Test creating KEVEntry from API response."""
        entry = KEVEntry.from_api(sample_kev_response["vulnerabilities"][0])

        assert entry.cve_id == "CVE-2024-0001"
        assert entry.vendor_project == "Google"
        assert entry.date_added == date(2024, 6, 10)
        assert entry.known_ransomware_campaign_use is True


class TestKEVCatalog:
    """Tests for KEVCatalog model."""

    def test_from_api(self, sample_kev_response):
        """Test creating KEVCatalog from API response."""
        catalog = KEVCatalog.from_api(sample_kev_response)

        assert catalog.catalog_version == "2024.06.14"
        assert set(catalog.entries) == {"CVE-2024-0001", "CVE-2023-9999"}

    def test_get_entry(self, sample_kev_response):
        """Test case-insensitive entry lookup."""
        catalog = KEVCatalog.from_api(sample_kev_response)

        entry = catalog.get_entry(" cve-2024-0001 ")
        assert entry is not None
        assert entry.product == "Chromium V8"
        assert catalog.get_entry("CVE-9999-99999") is None

    def test_skips_malformed_entries(self):
        """Test entries that are not objects or lack an id are skipped."""
        catalog = KEVCatalog.from_api(
            {"vulnerabilities": ["oops", {"product": "No id"}, {"cveID": "CVE-1"}]}
        )

        assert list(catalog.entries) == ["CVE-1"]

    def test_skips_entries_failing_validation(self, sample_kev_response):
        """Test an entry with mistyped fields does not discard the catalog."""
        sample_kev_response["vulnerabilities"][1]["vendorProject"] = 123

        catalog = KEVCatalog.from_api(sample_kev_response)

        assert list(catalog.entries) == ["CVE-2024-0001"]

    def test_non_object_payload(self):
        """Test a non-object payload yields an empty catalog."""
        assert KEVCatalog.from_api(None).entries == {}


class TestThreatIntel:
    """Tests for ThreatIntel model."""

    def test_found(self):
        """Test found reflects either source."""
        assert not ThreatIntel(cve_id="CVE-1").found
        assert ThreatIntel(cve_id="CVE-1", circl={"id": "CVE-1"}).found
        assert ThreatIntel(cve_id="CVE-1", kev=KEVEntry(cve_id="CVE-1")).found

    def test_to_dict(self):
        """Test serialization keys."""
        data = ThreatIntel(cve_id="CVE-1", error="nope").to_dict()

        assert data == {"cveId": "CVE-1", "circl": None, "kev": None, "error": "nope"}
