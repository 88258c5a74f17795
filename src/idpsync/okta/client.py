"""
Read-only async client for the Okta management API.

Every list call is eagerly aggregated: the first page is requested with
`limit=<page size>` and following pages are read from the
`Link: <...>; rel="next"` header until Okta stops sending one. Responses
are returned as raw Okta dicts; mapping to our models happens in
idpsync.okta.normalizer.

Rate limits (HTTP 429) and transport hiccups are retried with back-off.
Any other non-2xx status raises ProviderUnavailableError immediately, and
exhausted transport retries raise ProviderUnreachableError.
"""
import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Tuple

import httpx

from idpsync.config import Settings
from idpsync.errors import NotConfiguredError, ProviderUnavailableError, ProviderUnreachableError

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 200
MAX_RATE_LIMIT_WAIT_SECONDS = 60.0


class OktaClient:
    """
    Thin async wrapper over the Okta REST endpoints we ingest from.

    Use as an async context manager so the underlying httpx client is
    closed when the run ends.
    """

    def __init__(
        self,
        domain: str,
        api_token: str,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_retries: int = 3,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            domain: Okta org domain, with or without the https:// scheme.
            api_token: Okta API token (sent as `SSWS <token>`).
            page_size: Records requested per page.
            max_retries: Retries for 429 and transport errors.
            timeout: Per-request timeout in seconds.
            http_client: Pre-built httpx.AsyncClient (tests pass one with a
                MockTransport). Built from the other args when omitted.
        """
        if not domain or not api_token:
            raise NotConfiguredError(
                "Okta is not configured. Add OKTA_DOMAIN and OKTA_API_TOKEN environment variables."
            )
        self.base_url = _base_url(domain)
        self.page_size = page_size
        self.max_retries = max_retries
        self._http = http_client or httpx.AsyncClient(timeout=timeout)
        self._headers = {
            "Authorization": f"SSWS {api_token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    @classmethod
    def from_settings(cls, settings: Settings) -> "OktaClient":
        return cls(
            domain=settings.okta_domain,
            api_token=settings.okta_api_token,
            page_size=settings.okta_page_size,
            max_retries=settings.okta_max_retries,
            timeout=settings.okta_request_timeout,
        )

    async def __aenter__(self) -> "OktaClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ─── Public API ───────────────────────────────────────────────────────────

    async def list_users(self) -> List[Dict[str, Any]]:
        """Fetch every user in the org."""
        logger.info("Fetching Okta users...")
        users = await self._fetch_all("/users")
        logger.info("Fetched %d Okta users", len(users))
        return users

    async def list_applications(self) -> List[Dict[str, Any]]:
        """Fetch every application (any status) in the org."""
        logger.info("Fetching Okta applications...")
        apps = await self._fetch_all("/apps")
        logger.info("Fetched %d Okta applications", len(apps))
        return apps

    async def list_application_assignments(self, app_id: str) -> List[Dict[str, Any]]:
        """Fetch the user assignments of one application."""
        return await self._fetch_all(f"/apps/{app_id}/users")

    # ─── Internal helpers ─────────────────────────────────────────────────────

    async def _fetch_all(self, endpoint: str) -> List[Dict[str, Any]]:
        url: Optional[str] = f"{self.base_url}/api/v1{endpoint}"
        params: Optional[Dict[str, Any]] = {"limit": self.page_size}
        records: List[Dict[str, Any]] = []
        page_count = 0

        while url:
            data, next_url = await self._get_page(url, params)
            records.extend(data)
            page_count += 1
            if next_url:
                logger.debug("Fetched page %d of %s, total records: %d", page_count, endpoint, len(records))
            # The next link already carries limit and cursor
            url, params = next_url, None

        return records

    async def _get_page(
        self, url: str, params: Optional[Dict[str, Any]]
    ) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """GET one page, retrying rate limits and transport errors."""
        attempt = 0
        while True:
            try:
                response = await self._http.get(url, params=params, headers=self._headers)
            except httpx.TransportError as exc:
                if attempt >= self.max_retries:
                    raise ProviderUnreachableError(self.base_url, exc) from exc
                backoff = 2 ** attempt
                logger.warning("Transient Okta error, retrying in %ss: %s", backoff, exc)
                await asyncio.sleep(backoff)
                attempt += 1
                continue

            if response.status_code == 429 and attempt < self.max_retries:
                wait = _rate_limit_wait(response, attempt)
                logger.warning(
                    "Okta rate limited. Waiting %.1fs before retry %d/%d",
                    wait, attempt + 1, self.max_retries,
                )
                await asyncio.sleep(wait)
                attempt += 1
                continue

            if not response.is_success:
                raise ProviderUnavailableError(response.status_code, response.text, url=str(response.url))

            next_link = response.links.get("next", {}).get("url")
            return response.json(), next_link


def _base_url(domain: str) -> str:
    domain = domain.strip().rstrip("/")
    if domain.startswith("https://") or domain.startswith("http://"):
        return domain
    return f"https://{domain}"


def _rate_limit_wait(response: httpx.Response, attempt: int) -> float:
    """Seconds to wait after a 429: until X-Rate-Limit-Reset, else exponential."""
    reset = response.headers.get("x-rate-limit-reset")
    wait = float(2 ** attempt)
    if reset:
        try:
            wait = max(0.0, int(reset) - time.time())
        except ValueError:
            pass  # malformed header; keep exponential back-off
    return min(wait, MAX_RATE_LIMIT_WAIT_SECONDS)
