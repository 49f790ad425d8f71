"""
Sub-sitemap Batch Fetcher.

Downloads the product sub-sitemaps of the current crawl window in polite
concurrent batches and merges their URLs into one de-duplicated list.

Features:
- Fixed-size batches driven by asyncio.gather, delay between batches only
- Local cache: preferred while the index is unchanged, fallback on errors
- Soft-block detection (a sitemap listing only the site root) with a single
  slower retry pass after the main loop
- Local files are written in the synchronous step after each batch
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence
from urllib.parse import urlparse

from django.conf import settings

from pricewatch.fetchers import FetchError, HttpStatusError, ResourceFetcher

from .local_sitemap_cache import LocalSitemapCache
from .progress_tracker import CrawlWindow
from .sitemap_parser import SitemapParseError, SitemapParser

logger = logging.getLogger(__name__)


class SitemapSource:
    NETWORK = "network"
    CACHE = "cache"
    CACHE_FALLBACK = "cache_fallback"


@dataclass
class SubSitemapOutcome:
    """Result of fetching and parsing one sub-sitemap."""

    url: str
    locations: List[str] = field(default_factory=list)
    source: Optional[str] = None
    body: Optional[bytes] = None
    error: Optional[str] = None
    soft_blocked: bool = False

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def needs_write(self) -> bool:
        return self.success and self.source == SitemapSource.NETWORK and self.body is not None


@dataclass
class SitemapBatchResult:
    """
    Aggregate result for one crawl window.

    Attributes:
        urls: Discovered page URLs, de-duplicated, in first-seen order
        processed: Sub-sitemaps attempted
        failed: Sub-sitemaps with a hard failure (fetch or parse)
        from_cache: Sub-sitemaps served from the local cache
        empty_sitemaps: Sub-sitemaps still soft-blocked after the retry pass
        retried: Sub-sitemaps retried because they looked soft-blocked
        recovered: Retried sub-sitemaps that came back with real content
    """

    urls: List[str] = field(default_factory=list)
    processed: int = 0
    failed: int = 0
    from_cache: int = 0
    empty_sitemaps: List[str] = field(default_factory=list)
    retried: int = 0
    recovered: int = 0

    @property
    def still_empty(self) -> int:
        return len(self.empty_sitemaps)


class SubSitemapBatchFetcher:
    """
    Fetches a window of sub-sitemaps with bounded concurrency.
    """

    def __init__(
        self,
        fetcher: ResourceFetcher,
        loop: asyncio.AbstractEventLoop,
        site_root: Optional[str] = None,
        cache: Optional[LocalSitemapCache] = None,
        concurrency: Optional[int] = None,
        delay: Optional[float] = None,
        timeout: Optional[float] = None,
        retry_concurrency: Optional[int] = None,
        retry_delay: Optional[float] = None,
        retry_timeout: Optional[float] = None,
    ):
        """
        Args:
            fetcher: Shared ResourceFetcher of the run
            loop: Event loop of the run
            site_root: Any URL of the site; its scheme://host is the soft-block marker
                (default CRAWLER_SITEMAP_URL)
            cache: Local sitemap cache
            concurrency: Sub-sitemaps fetched at once (default CRAWLER_SITEMAP_CONCURRENCY)
            delay: Seconds between batches (default CRAWLER_SITEMAP_DELAY)
            timeout: Per-request timeout (default CRAWLER_SITEMAP_TIMEOUT)
            retry_concurrency: Batch size of the retry pass
            retry_delay: Seconds before each retry batch
            retry_timeout: Per-request timeout of the retry pass
        """
        self.fetcher = fetcher
        self.loop = loop
        self.cache = cache or LocalSitemapCache()
        self.parser = SitemapParser()

        root = urlparse(site_root or getattr(settings, "CRAWLER_SITEMAP_URL"))
        bare_root = f"{root.scheme}://{root.netloc}"
        self.root_urls = {bare_root, f"{bare_root}/"}

        self.concurrency = concurrency or getattr(settings, "CRAWLER_SITEMAP_CONCURRENCY", 15)
        self.delay = delay if delay is not None else getattr(settings, "CRAWLER_SITEMAP_DELAY", 4.0)
        self.timeout = timeout or getattr(settings, "CRAWLER_SITEMAP_TIMEOUT", 10)
        self.retry_concurrency = retry_concurrency or getattr(
            settings, "CRAWLER_SITEMAP_RETRY_CONCURRENCY", 3
        )
        self.retry_delay = (
            retry_delay
            if retry_delay is not None
            else getattr(settings, "CRAWLER_SITEMAP_RETRY_DELAY", 8.0)
        )
        self.retry_timeout = retry_timeout or getattr(settings, "CRAWLER_SITEMAP_RETRY_TIMEOUT", 15)

    def fetch_window(
        self,
        sub_sitemaps: Sequence[str],
        window: CrawlWindow,
        prefer_local: bool = False,
    ) -> SitemapBatchResult:
        """
        Fetch the sub-sitemaps in ``window`` and merge their URLs.

        Args:
            sub_sitemaps: All product sub-sitemap URLs in index order
            window: Range of indexes to process in this run
            prefer_local: Serve from the local cache when a file exists
                (the index is unchanged since the last synced run)

        Returns:
            SitemapBatchResult for the window
        """
        targets = list(sub_sitemaps[window.start:window.end])
        result = SitemapBatchResult()
        seen: Dict[str, None] = {}
        soft_blocked: List[str] = []

        logger.info(
            f"Fetching sub-sitemaps {window.start + 1}-{window.end} of {window.total} "
            f"(batch size {self.concurrency}, prefer_local={prefer_local})"
        )

        for offset in range(0, len(targets), self.concurrency):
            if offset and self.delay:
                time.sleep(self.delay)

            batch = targets[offset:offset + self.concurrency]
            outcomes = self.loop.run_until_complete(
                self._gather([self._fetch_one(url, prefer_local) for url in batch])
            )

            for outcome in outcomes:
                result.processed += 1
                self._merge(outcome, result, seen)
                if outcome.soft_blocked:
                    soft_blocked.append(outcome.url)

        if soft_blocked:
            self._retry_soft_blocked(soft_blocked, result, seen)

        result.urls = list(seen)

        logger.info(
            f"Sub-sitemaps done: {result.processed} processed, {result.failed} failed, "
            f"{result.from_cache} from cache, {len(result.urls)} unique URLs"
        )
        return result

    def is_soft_blocked(self, locations: Sequence[str]) -> bool:
        """A sitemap that lists at most the bare site root is a blocked response."""
        return len(locations) <= 1 and any(loc in self.root_urls for loc in locations)

    def _merge(self, outcome: SubSitemapOutcome, result: SitemapBatchResult, seen: Dict[str, None]):
        if not outcome.success:
            result.failed += 1
            logger.warning(f"Sub-sitemap failed: {outcome.url}: {outcome.error}")
            return

        if outcome.source in (SitemapSource.CACHE, SitemapSource.CACHE_FALLBACK):
            result.from_cache += 1

        if outcome.needs_write:
            self._write_local(outcome.url, outcome.body)

        for loc in outcome.locations:
            seen.setdefault(loc, None)

    def _retry_soft_blocked(self, urls: List[str], result: SitemapBatchResult, seen: Dict[str, None]):
        logger.warning(f"Retrying {len(urls)} sub-sitemap(s) that look soft-blocked")

        for offset in range(0, len(urls), self.retry_concurrency):
            if self.retry_delay:
                time.sleep(self.retry_delay)

            batch = urls[offset:offset + self.retry_concurrency]
            outcomes = self.loop.run_until_complete(
                self._gather([self._fetch_network(url, self.retry_timeout) for url in batch])
            )

            for outcome in outcomes:
                result.retried += 1

                if not outcome.success:
                    result.failed += 1
                    result.empty_sitemaps.append(outcome.url)
                    logger.warning(f"Retry failed for {outcome.url}: {outcome.error}")
                    continue

                if outcome.soft_blocked:
                    result.empty_sitemaps.append(outcome.url)
                    logger.warning(f"Still empty after retry: {outcome.url}")
                    continue

                result.recovered += 1
                self._write_local(outcome.url, outcome.body)
                for loc in outcome.locations:
                    seen.setdefault(loc, None)
                logger.info(f"Recovered {len(outcome.locations)} URLs from retry: {outcome.url}")

    def _read_local(self, url: str) -> Optional[bytes]:
        try:
            return self.cache.read(url)
        except OSError as e:
            logger.warning(f"Could not read local copy of {url}: {e}")
            return None

    def _write_local(self, url: str, body: bytes) -> None:
        try:
            self.cache.write(url, body)
        except OSError as e:
            logger.warning(f"Could not save local copy of {url}: {e}")

    async def _gather(self, coros) -> List[SubSitemapOutcome]:
        return await asyncio.gather(*coros)

    async def _fetch_one(self, url: str, prefer_local: bool) -> SubSitemapOutcome:
        if prefer_local:
            cached = self._read_local(url)
            if cached is not None:
                logger.debug(f"Cache hit for sub-sitemap {url}")
                return self._parse(url, cached, SitemapSource.CACHE)

        try:
            response = await self.fetcher.get(url, timeout=self.timeout)
            response.raise_for_status()
        except (FetchError, HttpStatusError) as e:
            cached = self._read_local(url)
            if cached is None:
                return SubSitemapOutcome(url=url, error=str(e))
            logger.info(f"Fetch failed for {url} ({e}), using local copy")
            return self._parse(url, cached, SitemapSource.CACHE_FALLBACK)

        return self._parse(url, response.content, SitemapSource.NETWORK)

    async def _fetch_network(self, url: str, timeout: float) -> SubSitemapOutcome:
        try:
            response = await self.fetcher.get(url, timeout=timeout)
            response.raise_for_status()
        except (FetchError, HttpStatusError) as e:
            return SubSitemapOutcome(url=url, error=str(e))

        return self._parse(url, response.content, SitemapSource.NETWORK)

    def _parse(self, url: str, body: bytes, source: str) -> SubSitemapOutcome:
        try:
            parsed = self.parser.parse_urlset(body, url)
        except SitemapParseError as e:
            return SubSitemapOutcome(url=url, source=source, error=str(e))

        locations = parsed.locations
        return SubSitemapOutcome(
            url=url,
            locations=locations,
            source=source,
            body=body,
            soft_blocked=self.is_soft_blocked(locations),
        )
