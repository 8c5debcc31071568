"""Public threat-intelligence enrichment for a single CVE.

Looks a CVE up in the CIRCL CVE search API and the CISA KEV catalog. Both
sources are optional: failures are logged and absorbed so enrichment never
blocks the device review.

Data sources:
    https://cve.circl.lu/
    https://www.cisa.gov/known-exploited-vulnerabilities-catalog
"""

import asyncio
from typing import Any
from urllib.parse import quote

import httpx
from loguru import logger

from devposture.config import Settings
from devposture.models.intel import KEVCatalog, KEVEntry, ThreatIntel
from devposture.utils.http_client import (
    HTTPClientError,
    create_http_client,
    create_retry_decorator,
    handle_response,
)

NO_IDENTIFIER = "No CVE identifier available for enrichment."
NOTHING_FOUND = "Public intelligence sources did not return additional data for this CVE right now."


class ThreatIntelService:
    """Fetches CIRCL and CISA KEV data for individual CVEs.

    The KEV catalog is downloaded once per service instance and reused for
    subsequent lookups.
    """

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        """Initialize the threat-intel service.

        Args:
            settings: Application settings.
            transport: Optional httpx transport, used to stub the network.
        """
        self.settings = settings
        self.transport = transport
        self._catalog: KEVCatalog | None = None
        self._catalog_lock = asyncio.Lock()

    @property
    def catalog(self) -> KEVCatalog | None:
        """Get the cached KEV catalog."""
        return self._catalog

    async def fetch_circl(self, cve_id: str) -> dict[str, Any] | None:
        """Fetch the CIRCL record for a CVE.

        Returns:
            The decoded record, or None when CIRCL has nothing for this CVE.
        """
        url = f"{self.settings.intel.circl_url.rstrip('/')}/{quote(cve_id, safe='')}"
        logger.info(f"Fetching CIRCL record from {url}")
        async with create_http_client(
            timeout=self.settings.intel.timeout, transport=self.transport
        ) as client:
            data = handle_response(await client.get(url))
        return data if isinstance(data, dict) and data else None

    async def fetch_kev_catalog(self) -> KEVCatalog:
        """Fetch and cache the CISA KEV catalog.

        Concurrent callers share a single download.
        """
        async with self._catalog_lock:
            if self._catalog is None:
                self._catalog = await self._download_kev_catalog()
            return self._catalog

    @create_retry_decorator(max_attempts=2)  # type: ignore[misc]
    async def _download_kev_catalog(self) -> KEVCatalog:
        url = self.settings.intel.kev_url
        logger.info(f"Fetching CISA KEV catalog from {url}")
        async with create_http_client(
            timeout=self.settings.intel.timeout, transport=self.transport
        ) as client:
            data = handle_response(await client.get(url))

        catalog = KEVCatalog.from_api(data)
        logger.info(f"Loaded {len(catalog.entries)} KEV entries")
        return catalog

    async def fetch_kev_entry(self, cve_id: str) -> KEVEntry | None:
        catalog = await self.fetch_kev_catalog()
        return catalog.get_entry(cve_id)

    async def lookup(self, cve_id: str | None) -> ThreatIntel:
        """Enrich one CVE from both sources concurrently.

        Args:
            cve_id: CVE identifier; empty and ``"N/A"`` are not looked up.

        Returns:
            ThreatIntel with whatever the sources returned.
        """
        cve_id = (cve_id or "").strip()
        if not cve_id or cve_id == "N/A":
            return ThreatIntel(cve_id=cve_id or "N/A", error=NO_IDENTIFIER)

        circl_result, kev_result = await asyncio.gather(
            self.fetch_circl(cve_id),
            self.fetch_kev_entry(cve_id),
            return_exceptions=True,
        )

        circl = self._settled(circl_result, "CIRCL", cve_id)
        kev = self._settled(kev_result, "CISA KEV", cve_id)
        intel = ThreatIntel(cve_id=cve_id, circl=circl, kev=kev)
        if not intel.found:
            return intel.model_copy(update={"error": NOTHING_FOUND})
        return intel

    @staticmethod
    def _settled(result: Any, source: str, cve_id: str) -> Any:
        """Unwrap a gathered result, logging and discarding failures."""
        if isinstance(result, (HTTPClientError, httpx.HTTPError, ValueError)):
            logger.warning(f"{source} lookup for {cve_id} failed: {result}")
            return None
        if isinstance(result, BaseException):
            raise result
        return result
