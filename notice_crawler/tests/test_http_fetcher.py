import asyncio
import time
import unittest

import httpx

from notice_crawler.errors import FetchError, FetchTimeout
from notice_crawler.infra.http import HttpFetcher
from notice_crawler.infra.rate_limiter import RateLimiter
from notice_crawler.tests.fakes import Site


class HttpFetcherTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.site = Site()
        self.fetcher = HttpFetcher(user_agent="test-agent", min_delay=0, transport=self.site.transport())

    async def asyncTearDown(self):
        await self.fetcher.aclose()

    async def test_returns_body_and_content_type(self):
        self.site.set("https://board.test/img.png", (200, b"\x89PNG", "image/png"))

        result = await self.fetcher.fetch("https://board.test/img.png")

        self.assertEqual(result.body, b"\x89PNG")
        self.assertEqual(result.content_type, "image/png")

    async def test_sends_user_agent(self):
        seen = {}

        def handler(request):
            seen["ua"] = request.headers["User-Agent"]
            return httpx.Response(200, content=b"ok")

        self.site.set("https://board.test/", handler)
        await self.fetcher.fetch("https://board.test/")
        self.assertEqual(seen["ua"], "test-agent")

    async def test_non_2xx_is_fetch_error(self):
        self.site.set("https://board.test/gone", (503, b"busy", "text/plain"))

        with self.assertRaises(FetchError) as ctx:
            await self.fetcher.fetch("https://board.test/gone")
        self.assertEqual(ctx.exception.status_code, 503)
        self.assertNotIsInstance(ctx.exception, FetchTimeout)

    async def test_timeout_is_fetch_timeout(self):
        self.site.set("https://board.test/slow", httpx.ReadTimeout("too slow"))

        with self.assertRaises(FetchTimeout):
            await self.fetcher.fetch("https://board.test/slow", timeout=0.1)

    async def test_transport_failure_is_fetch_error(self):
        self.site.set("https://board.test/down", httpx.ConnectError("refused"))

        with self.assertRaises(FetchError):
            await self.fetcher.fetch("https://board.test/down")

    async def test_no_retries(self):
        self.site.set("https://board.test/flaky", (500, b"", "text/plain"))
        with self.assertRaises(FetchError):
            await self.fetcher.fetch("https://board.test/flaky")
        self.assertEqual(self.site.hits["https://board.test/flaky"], 1)


class RateLimiterTests(unittest.IsolatedAsyncioTestCase):
    async def test_spaces_hits_on_same_key(self):
        limiter = RateLimiter(min_interval=0.05)
        start = time.monotonic()
        await asyncio.gather(limiter.wait("board.test"), limiter.wait("board.test"), limiter.wait("board.test"))
        self.assertGreaterEqual(time.monotonic() - start, 0.09)

    async def test_zero_interval_never_waits(self):
        limiter = RateLimiter()
        start = time.monotonic()
        for _ in range(5):
            await limiter.wait("a")
        self.assertLess(time.monotonic() - start, 0.05)


if __name__ == "__main__":
    unittest.main()
