"""
Pytest configuration and fixtures for the price crawler test suite.
"""

import asyncio

import httpx
import pytest

SITE = "https://shop.example.com"
SITEMAP_URL = f"{SITE}/sitemap.xml"


@pytest.fixture(scope="session")
def django_db_setup(django_db_blocker):
    """Configure the test database and run migrations."""
    from django.core.management import call_command

    with django_db_blocker.unblock():
        call_command("migrate", "--run-syncdb", verbosity=0)


@pytest.fixture
def crawl_loop():
    """A fresh event loop, like the one a crawl run owns."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    yield loop
    loop.close()
    asyncio.set_event_loop(None)


@pytest.fixture
def sitemap_dir(tmp_path, settings):
    """Point the local sitemap cache at a temporary directory."""
    directory = tmp_path / "sitemaps"
    settings.CRAWLER_SITEMAP_CACHE_DIR = directory
    return directory


class FakeSite:
    """
    In-memory website served through httpx.MockTransport.

    Routes map (method, url) or url to a canned reply: bytes/str body
    (status 200), an int status code, a (status, body, headers) tuple, an
    httpx exception class, or a list of such replies consumed one per request.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.requests = []

    def add(self, url, reply, method=None):
        self.routes[(method, url) if method else url] = reply

    def count(self, url, method="GET"):
        return sum(1 for m, u in self.requests if u == url and m == method)

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append((request.method, url))

        reply = self.routes.get((request.method, url), self.routes.get(url))
        if reply is None:
            return httpx.Response(404, content=b"not found")

        if isinstance(reply, list):
            reply = reply.pop(0) if len(reply) > 1 else reply[0]

        if isinstance(reply, type) and issubclass(reply, Exception):
            raise reply("simulated failure", request=request)
        if isinstance(reply, int):
            return httpx.Response(reply, content=b"")
        if isinstance(reply, tuple):
            status, body, headers = reply
            body = body.encode("utf-8") if isinstance(body, str) else body
            return httpx.Response(status, content=body, headers=headers)

        body = reply.encode("utf-8") if isinstance(reply, str) else reply
        return httpx.Response(200, content=body)

    @property
    def transport(self):
        return httpx.MockTransport(self.handler)


@pytest.fixture
def fake_site():
    return FakeSite()


@pytest.fixture
def fetcher(fake_site, crawl_loop):
    """ResourceFetcher wired to the fake site, closed after the test."""
    from pricewatch.fetchers import ResourceFetcher

    instance = ResourceFetcher(transport=fake_site.transport)
    yield instance
    crawl_loop.run_until_complete(instance.close())


def sitemap_index(*locations):
    entries = "".join(f"<sitemap><loc>{loc}</loc></sitemap>" for loc in locations)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
        f"{entries}</sitemapindex>"
    )


def urlset(*locations):
    entries = "".join(f"<url><loc>{loc}</loc></url>" for loc in locations)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
        f"{entries}</urlset>"
    )


def product_page(title="Cafe Britt 340g", price="₡4,700", sku="UM00IPM5"):
    sku_script = (
        f'<script>var meta = {{"product": {{"sku": "{sku}", "id": 1}}}};</script>' if sku else ""
    )
    price_html = f'<span class="money">{price}</span>' if price else ""
    return (
        f"<html><head><title>{title} | Shop</title>{sku_script}</head>"
        f"<body><h1>{title}</h1>{price_html}</body></html>"
    )
