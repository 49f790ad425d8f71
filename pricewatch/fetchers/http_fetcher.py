"""
Resource Fetcher - polite async HTTP client wrapper.

Single GET/HEAD requests through one pooled httpx.AsyncClient. There are no
retries here: retry policy belongs to the callers (the soft-block retry pass,
the next scheduled run). 4xx/5xx responses are returned to the caller, only
transport problems raise.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

import httpx

from django.conf import settings

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """Base class for transport-level fetch failures."""

    def __init__(self, url: str, message: str):
        super().__init__(message)
        self.url = url


class FetchTimeout(FetchError):
    """The request did not complete within the configured timeout."""


class NetworkError(FetchError):
    """Connection could not be established or was dropped."""


class HttpStatusError(Exception):
    """A response arrived with a non-2xx status code."""

    def __init__(self, url: str, status_code: int):
        super().__init__(f"HTTP {status_code}")
        self.url = url
        self.status_code = status_code


@dataclass
class FetchResponse:
    """Response from a fetch operation."""

    url: str
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    content: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None

    def raise_for_status(self) -> "FetchResponse":
        if not self.ok:
            raise HttpStatusError(self.url, self.status_code)
        return self


class ResourceFetcher:
    """
    Async HTTP fetcher shared by every crawl stage of a run.

    Features:
    - One connection pool per run (async context manager or explicit close())
    - Browser User-Agent, redirects followed
    - Per-request timeout override
    - Injectable transport for tests
    """

    DEFAULT_HEADERS = {
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "es-CR,es;q=0.9,en;q=0.8",
        "Accept-Encoding": "gzip, deflate",
        "Connection": "keep-alive",
    }

    def __init__(
        self,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the fetcher.

        Args:
            timeout: Default request timeout in seconds (default from settings)
            user_agent: Custom User-Agent string (default from settings)
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.timeout = timeout or getattr(settings, "CRAWLER_REQUEST_TIMEOUT", 30)
        self.user_agent = user_agent or getattr(settings, "CRAWLER_USER_AGENT", "")
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        await self._init_http_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _init_http_client(self):
        if self._http_client is None:
            headers = dict(self.DEFAULT_HEADERS)
            if self.user_agent:
                headers["User-Agent"] = self.user_agent

            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers=headers,
                follow_redirects=True,
                transport=self._transport,
            )

    async def close(self):
        """Close HTTP client connection."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def fetch(
        self,
        url: str,
        method: str = "GET",
        timeout: Optional[float] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> FetchResponse:
        """
        Issue a single request.

        Args:
            url: URL to fetch
            method: HTTP method (GET or HEAD)
            timeout: Timeout in seconds for this request only
            headers: Additional request headers

        Returns:
            FetchResponse for any status code

        Raises:
            FetchTimeout: the request timed out
            NetworkError: any other transport failure
        """
        if self._http_client is None:
            await self._init_http_client()

        request_timeout = httpx.Timeout(timeout) if timeout else httpx.USE_CLIENT_DEFAULT

        try:
            response = await self._http_client.request(
                method,
                url,
                headers=headers,
                timeout=request_timeout,
            )
        except httpx.TimeoutException as e:
            logger.debug(f"Timeout on {method} {url}: {e}")
            raise FetchTimeout(url, f"Timeout: {e}") from e
        except httpx.HTTPError as e:
            logger.debug(f"Network error on {method} {url}: {e}")
            raise NetworkError(url, f"{type(e).__name__}: {e}") from e

        if response.status_code >= 400:
            logger.debug(f"HTTP {response.status_code} on {method} {url}")

        return FetchResponse(
            url=url,
            status_code=response.status_code,
            headers=dict(response.headers),
            content=response.content,
        )

    async def get(self, url: str, **kwargs) -> FetchResponse:
        return await self.fetch(url, method="GET", **kwargs)

    async def head(self, url: str, **kwargs) -> FetchResponse:
        return await self.fetch(url, method="HEAD", **kwargs)
