"""Tests for the public threat-intel service."""

import asyncio

import httpx
import pytest

from devposture.services.threat_intel import NO_IDENTIFIER, NOTHING_FOUND, ThreatIntelService
from devposture.utils.http_client import NonRetryableHTTPError, RetryableHTTPError, handle_response

CIRCL_RECORD = {"id": "CVE-2024-0001", "summary": "Type confusion in V8.", "cvss3": 8.8}


def _service(test_settings, handler):
    return ThreatIntelService(test_settings, transport=httpx.MockTransport(handler))


class TestHandleResponse:
    """Tests for handle_response."""

    def test_success(self):
        """Test a JSON body is returned."""
        assert handle_response(httpx.Response(200, json={"a": 1})) == {"a": 1}

    def test_invalid_json(self):
        """Test an unparseable body is a non-retryable error."""
        response = httpx.Response(200, text="<html>", request=httpx.Request("GET", "https://x"))

        with pytest.raises(NonRetryableHTTPError):
            handle_response(response)

    @pytest.mark.parametrize(
        ("status", "error"),
        [(429, RetryableHTTPError), (503, RetryableHTTPError), (404, NonRetryableHTTPError)],
    )
    def test_error_statuses(self, status, error):
        """Test error classification by status code."""
        with pytest.raises(error) as excinfo:
            handle_response(httpx.Response(status, text="boom"))

        assert excinfo.value.status_code == status


class TestThreatIntelService:
    """Tests for ThreatIntelService."""

    def test_lookup_both_sources(self, test_settings, sample_kev_response):
        """Test a CVE found in CIRCL and KEV."""
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            if request.url.host == "cve.circl.lu":
                return httpx.Response(200, json=CIRCL_RECORD)
            return httpx.Response(200, json=sample_kev_response)

        result = asyncio.run(_service(test_settings, handler).lookup("CVE-2024-0001"))

        assert result.found
        assert result.error == ""
        assert result.circl == CIRCL_RECORD
        assert result.kev is not None
        assert result.kev.vendor_project == "Google"
        assert "https://cve.circl.lu/api/cve/CVE-2024-0001" in seen

    def test_missing_identifier(self, test_settings):
        """Test empty and N/A identifiers are not looked up."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        service = _service(test_settings, handler)

        for cve_id in (None, "", "  ", "N/A"):
            result = asyncio.run(service.lookup(cve_id))
            assert result.cve_id == "N/A"
            assert result.error == NO_IDENTIFIER
            assert not result.found

    def test_nothing_found(self, test_settings, sample_kev_response):
        """Test a CVE neither source knows about."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "cve.circl.lu":
                return httpx.Response(200, content=b"null")
            return httpx.Response(200, json=sample_kev_response)

        result = asyncio.run(_service(test_settings, handler).lookup("CVE-2020-0000"))

        assert not result.found
        assert result.error == NOTHING_FOUND

    def test_source_failure_is_absorbed(self, test_settings):
        """Test a failing source degrades to missing data."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "cve.circl.lu":
                return httpx.Response(200, json=CIRCL_RECORD)
            return httpx.Response(404, text="not found")

        result = asyncio.run(_service(test_settings, handler).lookup("CVE-2024-0001"))

        assert result.circl == CIRCL_RECORD
        assert result.kev is None
        assert result.error == ""

    def test_both_sources_fail(self, test_settings):
        """Test both sources failing reads as nothing found."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, text="forbidden")

        result = asyncio.run(_service(test_settings, handler).lookup("CVE-2024-0001"))

        assert not result.found
        assert result.error == NOTHING_FOUND

    def test_catalog_cached(self, test_settings, sample_kev_response):
        """Test the KEV catalog is downloaded once per service."""
        kev_calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal kev_calls
            if request.url.host == "cve.circl.lu":
                return httpx.Response(200, content=b"null")
            kev_calls += 1
            return httpx.Response(200, json=sample_kev_response)

        service = _service(test_settings, handler)

        async def run() -> None:
            await service.lookup("CVE-2024-0001")
            await service.lookup("CVE-2023-9999")

        asyncio.run(run())

        assert kev_calls == 1
        assert service.catalog is not None
        assert service.catalog.get_entry("CVE-2023-9999") is not None

    def test_concurrent_lookups_share_catalog_download(self, test_settings, sample_kev_response):
        """Test concurrent lookups on one service download the catalog once."""
        kev_calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal kev_calls
            if request.url.host == "cve.circl.lu":
                return httpx.Response(200, content=b"null")
            kev_calls += 1
            return httpx.Response(200, json=sample_kev_response)

        service = _service(test_settings, handler)

        async def run() -> list:
            return await asyncio.gather(
                service.lookup("CVE-2024-0001"),
                service.lookup("CVE-2023-9999"),
                service.lookup("CVE-2020-0000"),
            )

        results = asyncio.run(run())

        assert kev_calls == 1
        assert [result.kev is not None for result in results] == [True, True, False]

    def test_malformed_kev_entry_keeps_catalog(self, test_settings, sample_kev_response):
        """Test one mistyped catalog entry does not hide the others."""
        sample_kev_response["vulnerabilities"][1]["vendorProject"] = 123

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "cve.circl.lu":
                return httpx.Response(200, content=b"null")
            return httpx.Response(200, json=sample_kev_response)

        result = asyncio.run(_service(test_settings, handler).lookup("CVE-2024-0001"))

        assert result.kev is not None
        assert result.kev.cve_id == "CVE-2024-0001"
        assert result.error == ""
