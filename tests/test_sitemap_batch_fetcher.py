"""
Tests for the Sub-sitemap Batch Fetcher.

Covers de-duplication across sub-sitemaps, the local cache (preferred and
fallback), hard failures and the soft-block retry pass.
"""

from unittest.mock import patch

import httpx
import pytest

from pricewatch.services.local_sitemap_cache import LocalSitemapCache
from pricewatch.services.progress_tracker import CrawlWindow
from pricewatch.services.sitemap_batch_fetcher import SubSitemapBatchFetcher
from tests.conftest import SITE, urlset


def sub(n):
    return f"{SITE}/products/sitemap_products_{n}.xml"


def page(slug):
    return f"{SITE}/products/{slug}"


def full_window(urls):
    return CrawlWindow(start=0, end=len(urls), total=len(urls))


@pytest.fixture
def cache(sitemap_dir):
    return LocalSitemapCache(sitemap_dir)


@pytest.fixture
def batch_fetcher(fetcher, crawl_loop, cache):
    return SubSitemapBatchFetcher(fetcher, crawl_loop, site_root=SITE, cache=cache, concurrency=2)


class TestMerging:
    def test_url_in_two_sitemaps_appears_once(self, batch_fetcher, fake_site):
        fake_site.add(sub(1), urlset(page("a"), page("b")))
        fake_site.add(sub(2), urlset(page("b"), page("c")))
        fake_site.add(sub(3), urlset(page("a"), page("d")))
        subs = [sub(1), sub(2), sub(3)]

        result = batch_fetcher.fetch_window(subs, full_window(subs))

        assert result.urls == [page("a"), page("b"), page("c"), page("d")]
        assert result.processed == 3
        assert result.failed == 0

    def test_only_window_is_fetched(self, batch_fetcher, fake_site):
        subs = [sub(n) for n in range(1, 6)]
        for n in range(1, 6):
            fake_site.add(sub(n), urlset(page(f"p{n}")))

        result = batch_fetcher.fetch_window(subs, CrawlWindow(start=1, end=3, total=5))

        assert result.urls == [page("p2"), page("p3")]
        assert fake_site.count(sub(1)) == 0
        assert fake_site.count(sub(4)) == 0

    def test_network_body_is_written_to_cache(self, batch_fetcher, fake_site, cache):
        body = urlset(page("a"))
        fake_site.add(sub(1), body)

        batch_fetcher.fetch_window([sub(1)], full_window([sub(1)]))

        assert cache.read(sub(1)) == body.encode("utf-8")
        assert (cache.directory / "sitemap_products_1.xml").is_file()


class TestLocalCache:
    def test_prefer_local_uses_cached_file(self, batch_fetcher, fake_site, cache):
        cache.write(sub(1), urlset(page("cached")).encode("utf-8"))
        fake_site.add(sub(1), urlset(page("fresh")))

        result = batch_fetcher.fetch_window([sub(1)], full_window([sub(1)]), prefer_local=True)

        assert result.urls == [page("cached")]
        assert result.from_cache == 1
        assert fake_site.count(sub(1)) == 0

    def test_changed_index_ignores_cached_file(self, batch_fetcher, fake_site, cache):
        cache.write(sub(1), urlset(page("cached")).encode("utf-8"))
        fake_site.add(sub(1), urlset(page("fresh")))

        result = batch_fetcher.fetch_window([sub(1)], full_window([sub(1)]), prefer_local=False)

        assert result.urls == [page("fresh")]
        assert result.from_cache == 0

    def test_network_failure_falls_back_to_cache(self, batch_fetcher, fake_site, cache):
        cache.write(sub(1), urlset(page("cached")).encode("utf-8"))
        fake_site.add(sub(1), httpx.ConnectError)

        result = batch_fetcher.fetch_window([sub(1)], full_window([sub(1)]))

        assert result.urls == [page("cached")]
        assert result.failed == 0
        assert result.from_cache == 1


class TestUnusableCacheDirectory:
    @pytest.fixture
    def broken_fetcher(self, fetcher, crawl_loop, tmp_path):
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("")
        cache = LocalSitemapCache(blocker / "sitemaps")
        return SubSitemapBatchFetcher(fetcher, crawl_loop, site_root=SITE, cache=cache, concurrency=2)

    def test_write_error_keeps_urls(self, broken_fetcher, fake_site):
        fake_site.add(sub(1), urlset(page("a")))
        fake_site.add(sub(2), urlset(page("b")))
        subs = [sub(1), sub(2)]

        result = broken_fetcher.fetch_window(subs, full_window(subs))

        assert result.urls == [page("a"), page("b")]
        assert result.failed == 0

    def test_read_error_falls_through_to_network(self, broken_fetcher, fake_site):
        fake_site.add(sub(1), urlset(page("a")))

        with patch.object(broken_fetcher.cache, "read", side_effect=PermissionError("denied")):
            result = broken_fetcher.fetch_window([sub(1)], full_window([sub(1)]), prefer_local=True)

        assert result.urls == [page("a")]
        assert result.from_cache == 0

    def test_read_error_on_fallback_is_a_plain_failure(self, broken_fetcher, fake_site):
        fake_site.add(sub(1), httpx.ConnectError)
        fake_site.add(sub(2), urlset(page("b")))
        subs = [sub(1), sub(2)]

        with patch.object(broken_fetcher.cache, "read", side_effect=PermissionError("denied")):
            result = broken_fetcher.fetch_window(subs, full_window(subs))

        assert result.failed == 1
        assert result.urls == [page("b")]

    def test_retry_write_error_keeps_recovered_urls(self, broken_fetcher, fake_site):
        fake_site.add(sub(1), [urlset(f"{SITE}/"), urlset(page("a"), page("b"))])

        result = broken_fetcher.fetch_window([sub(1)], full_window([sub(1)]))

        assert result.recovered == 1
        assert page("a") in result.urls


class TestFailures:
    def test_unreachable_sitemap_without_cache_is_a_hard_failure(self, batch_fetcher, fake_site):
        fake_site.add(sub(1), httpx.ConnectError)
        fake_site.add(sub(2), urlset(page("b")))
        subs = [sub(1), sub(2)]

        result = batch_fetcher.fetch_window(subs, full_window(subs))

        assert result.failed == 1
        assert result.urls == [page("b")]

    def test_error_status_is_a_hard_failure(self, batch_fetcher, fake_site):
        fake_site.add(sub(1), 500)

        result = batch_fetcher.fetch_window([sub(1)], full_window([sub(1)]))

        assert result.failed == 1

    def test_parse_error_fails_only_that_sitemap(self, batch_fetcher, fake_site, cache):
        fake_site.add(sub(1), "<urlset><url><loc>broken")
        fake_site.add(sub(2), urlset(page("b")))
        subs = [sub(1), sub(2)]

        result = batch_fetcher.fetch_window(subs, full_window(subs))

        assert result.failed == 1
        assert result.urls == [page("b")]
        assert not cache.has(sub(1))


class TestSoftBlock:
    def test_root_only_sitemap_is_detected(self, batch_fetcher):
        assert batch_fetcher.is_soft_blocked([f"{SITE}/"])
        assert batch_fetcher.is_soft_blocked([SITE])
        assert not batch_fetcher.is_soft_blocked([])
        assert not batch_fetcher.is_soft_blocked([page("a")])
        assert not batch_fetcher.is_soft_blocked([f"{SITE}/", page("a")])

    def test_retry_recovers_and_overwrites_local_file(self, batch_fetcher, fake_site, cache):
        """Root-only response is retried once; the 5 recovered URLs are merged and cached."""
        recovered_body = urlset(*[page(f"r{n}") for n in range(5)])
        fake_site.add(sub(1), [urlset(f"{SITE}/"), recovered_body])

        result = batch_fetcher.fetch_window([sub(1)], full_window([sub(1)]))

        assert fake_site.count(sub(1)) == 2
        assert result.retried == 1
        assert result.recovered == 1
        assert result.still_empty == 0
        for n in range(5):
            assert page(f"r{n}") in result.urls
        assert cache.read(sub(1)) == recovered_body.encode("utf-8")

    def test_still_empty_after_retry(self, batch_fetcher, fake_site):
        fake_site.add(sub(1), urlset(f"{SITE}/"))

        result = batch_fetcher.fetch_window([sub(1)], full_window([sub(1)]))

        assert fake_site.count(sub(1)) == 2
        assert result.recovered == 0
        assert result.empty_sitemaps == [sub(1)]
        assert result.failed == 0

    def test_retry_always_uses_network(self, batch_fetcher, fake_site, cache):
        """A soft-blocked cached copy is refreshed from the network on retry."""
        cache.write(sub(1), urlset(f"{SITE}/").encode("utf-8"))
        fake_site.add(sub(1), urlset(page("a"), page("b")))

        result = batch_fetcher.fetch_window([sub(1)], full_window([sub(1)]), prefer_local=True)

        assert fake_site.count(sub(1)) == 1
        assert result.recovered == 1
        assert page("a") in result.urls

    def test_retry_error_counts_as_failure(self, batch_fetcher, fake_site):
        fake_site.add(sub(1), [urlset(f"{SITE}/"), httpx.ConnectError])

        result = batch_fetcher.fetch_window([sub(1)], full_window([sub(1)]))

        assert result.retried == 1
        assert result.failed == 1
