"""
Tests for the ResourceFetcher.
"""

import httpx
import pytest

from pricewatch.fetchers import (
    FetchResponse,
    FetchTimeout,
    HttpStatusError,
    NetworkError,
    ResourceFetcher,
)


class TestResourceFetcher:
    """Requests go through one client; only transport problems raise."""

    @pytest.mark.asyncio
    async def test_get_returns_body_and_headers(self, fake_site):
        fake_site.add("https://shop.example.com/a", (200, "hello", {"ETag": '"v1"'}))

        async with ResourceFetcher(transport=fake_site.transport) as fetcher:
            response = await fetcher.get("https://shop.example.com/a")

        assert response.ok
        assert response.content == b"hello"
        assert response.text == "hello"
        assert response.header("etag") == '"v1"'

    @pytest.mark.asyncio
    async def test_non_2xx_is_returned_not_raised(self, fake_site):
        fake_site.add("https://shop.example.com/gone", 404)

        async with ResourceFetcher(transport=fake_site.transport) as fetcher:
            response = await fetcher.get("https://shop.example.com/gone")

        assert response.status_code == 404
        assert not response.ok
        with pytest.raises(HttpStatusError) as exc_info:
            response.raise_for_status()
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_timeout_maps_to_fetch_timeout(self, fake_site):
        fake_site.add("https://shop.example.com/slow", httpx.ReadTimeout)

        async with ResourceFetcher(transport=fake_site.transport) as fetcher:
            with pytest.raises(FetchTimeout) as exc_info:
                await fetcher.get("https://shop.example.com/slow", timeout=1)

        assert exc_info.value.url == "https://shop.example.com/slow"

    @pytest.mark.asyncio
    async def test_connection_error_maps_to_network_error(self, fake_site):
        fake_site.add("https://shop.example.com/down", httpx.ConnectError)

        async with ResourceFetcher(transport=fake_site.transport) as fetcher:
            with pytest.raises(NetworkError):
                await fetcher.get("https://shop.example.com/down")

    @pytest.mark.asyncio
    async def test_head_uses_head_method(self, fake_site):
        fake_site.add("https://shop.example.com/sitemap.xml", 200, method="HEAD")

        async with ResourceFetcher(transport=fake_site.transport) as fetcher:
            await fetcher.head("https://shop.example.com/sitemap.xml")

        assert fake_site.requests == [("HEAD", "https://shop.example.com/sitemap.xml")]

    @pytest.mark.asyncio
    async def test_user_agent_header_is_sent(self):
        seen = {}

        def handler(request):
            seen["ua"] = request.headers.get("user-agent")
            return httpx.Response(200)

        async with ResourceFetcher(user_agent="TestBot/1.0", transport=httpx.MockTransport(handler)) as fetcher:
            await fetcher.get("https://shop.example.com/")

        assert seen["ua"] == "TestBot/1.0"

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, fake_site):
        fetcher = ResourceFetcher(transport=fake_site.transport)
        await fetcher.get("https://shop.example.com/x")

        await fetcher.close()
        await fetcher.close()

        assert fetcher._http_client is None


class TestFetchResponse:
    def test_header_lookup_is_case_insensitive(self):
        response = FetchResponse(url="u", status_code=200, headers={"Last-Modified": "Mon"})

        assert response.header("last-modified") == "Mon"
        assert response.header("etag") is None
