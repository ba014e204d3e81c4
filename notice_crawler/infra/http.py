"""
Async page fetcher with polite defaults (shared headers, per-host spacing).

There are no retries; a failed fetch is left for the next
scheduled run.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from notice_crawler.errors import FetchError, FetchTimeout
from notice_crawler.infra.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchResult:
    url: str
    body: bytes
    content_type: str


class HttpFetcher:
    """
    Thin wrapper over httpx.AsyncClient mapping failures onto FetchError/FetchTimeout.
    """

    def __init__(
        self,
        user_agent: str,
        min_delay: float = 0.2,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.timeout = timeout
        self.limiter = RateLimiter(min_interval=min_delay)
        self.client = httpx.AsyncClient(
            headers={
                "User-Agent": user_agent,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                "Accept-Language": "ko-KR,ko;q=0.9,en-US;q=0.8",
            },
            follow_redirects=True,
            transport=transport,
        )

    async def __aenter__(self) -> "HttpFetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    async def fetch(self, url: str, timeout: Optional[float] = None) -> FetchResult:
        await self.limiter.wait(self._extract_domain(url))
        try:
            response = await self.client.get(url, timeout=timeout if timeout is not None else self.timeout)
        except httpx.TimeoutException as exc:
            raise FetchTimeout(url, "request timed out") from exc
        except httpx.HTTPError as exc:
            raise FetchError(url, f"transport failure: {exc}") from exc
        if not response.is_success:
            raise FetchError(url, f"HTTP {response.status_code}", status_code=response.status_code)
        content_type = response.headers.get("Content-Type", "application/octet-stream")
        logger.debug("Fetched %s (%d bytes, %s)", url, len(response.content), content_type)
        return FetchResult(url=str(response.url), body=response.content, content_type=content_type)

    @staticmethod
    def _extract_domain(url: str) -> str:
        return url.split("/")[2] if "://" in url else url
