"""
Meta Marketing API Client
Compatible with Graph API v21.0

Handles the per-call throttle, retries with backoff and cursor pagination.
"""
import asyncio
import logging
from typing import Optional, Dict, List, Any, Callable, Awaitable, Sequence
from urllib.parse import urlsplit

import httpx

from adsync.core.config import settings
from adsync.services.meta.errors import MetaAPIError, ErrorKind

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


def _safe_url(url: str) -> str:
    """URL without its query string (keeps the token out of logs)"""
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}{parts.path}"


class MetaAPI:
    """
    Rate-limited Meta Marketing API client.

    Every request carries a hard timeout. Responses with an error envelope
    are failures even on HTTP 200. The only shared state is the throttle.
    """

    def __init__(
        self,
        access_token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        retry_delays: Optional[Sequence[float]] = None,
        page_throttle: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[SleepFunc] = None,
    ):
        self.access_token = access_token or settings.META_ACCESS_TOKEN
        self.base_url = (base_url or settings.meta_api_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.META_REQUEST_TIMEOUT
        self.retry_delays = list(retry_delays if retry_delays is not None else settings.META_RETRY_DELAYS)
        self.page_throttle = page_throttle if page_throttle is not None else settings.META_PAGE_THROTTLE_SECONDS
        self._transport = transport
        self._sleep = sleep or asyncio.sleep
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self):
        """Close the HTTP client"""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "MetaAPI":
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    def url(self, path: str) -> str:
        """Absolute URL for a Graph path such as 'act_123/campaigns'"""
        return f"{self.base_url}/{path.lstrip('/')}"

    async def sleep(self, seconds: float):
        if seconds > 0:
            await self._sleep(seconds)

    # ========================================
    # Single request
    # ========================================

    async def fetch_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Issue one GET and return the decoded JSON body.

        Raises MetaAPIError for timeouts, transport failures, non-JSON bodies
        and error envelopes.
        """
        if params is not None:
            params = {**params}
            params.setdefault("access_token", self.access_token)

        try:
            response = await asyncio.wait_for(
                self.client.get(url, params=params),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            raise MetaAPIError(f"Timeout after {self.timeout:.0f}s", kind=ErrorKind.TIMEOUT)
        except httpx.TransportError as e:
            raise MetaAPIError(f"Network error: {e}", kind=ErrorKind.NETWORK)

        try:
            data = response.json()
        except ValueError:
            if response.status_code >= 400:
                raise MetaAPIError(
                    f"HTTP {response.status_code}: {response.text[:200]}",
                    status_code=response.status_code,
                )
            raise MetaAPIError(
                f"Invalid JSON: {response.text[:200]}",
                kind=ErrorKind.PERMANENT,
                status_code=response.status_code,
            )

        if isinstance(data, dict) and isinstance(data.get("error"), dict):
            raise MetaAPIError.from_envelope(data["error"], status_code=response.status_code)

        if response.status_code >= 400:
            raise MetaAPIError(f"HTTP {response.status_code}", status_code=response.status_code)

        if not isinstance(data, dict):
            raise MetaAPIError(f"Unexpected response: {str(data)[:200]}", kind=ErrorKind.PERMANENT)

        return data

    async def fetch_with_retry(self, url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """fetch_json with the fixed backoff schedule for retryable errors"""
        attempt = 0
        while True:
            try:
                return await self.fetch_json(url, params)
            except MetaAPIError as e:
                if not e.retryable or attempt >= len(self.retry_delays):
                    raise
                delay = self.retry_delays[attempt]
                attempt += 1
                logger.warning(
                    f"Retry {attempt}/{len(self.retry_delays)} in {delay:.0f}s "
                    f"({_safe_url(url)}): {e}"
                )
                await self.sleep(delay)

    # ========================================
    # Pagination
    # ========================================

    async def fetch_all_pages(self, url: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        Follow paging.next until absent and concatenate every page's data.

        The throttle runs before each page, including the first.
        """
        results: List[Dict[str, Any]] = []
        next_url: Optional[str] = url
        pages = 0

        while next_url:
            await self.sleep(self.page_throttle)
            data = await self.fetch_with_retry(next_url, params)
            results.extend(data.get("data") or [])
            pages += 1

            paging = data.get("paging") or {}
            next_url = paging.get("next")
            params = None  # Next URL contains all params

        logger.debug(f"Fetched {len(results)} records in {pages} pages from {_safe_url(url)}")
        return results

    # ========================================
    # Convenience
    # ========================================

    async def get(self, path: str, **params: Any) -> Dict[str, Any]:
        """Single object/edge read with retry"""
        return await self.fetch_with_retry(self.url(path), params)

    async def get_all(self, path: str, **params: Any) -> List[Dict[str, Any]]:
        """Paginated edge read"""
        return await self.fetch_all_pages(self.url(path), params)
