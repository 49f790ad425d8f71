"""
Sitemap Index Resolver.

Resolves the configured top-level sitemap into the ordered list of product
sub-sitemaps for this run, using HTTP validators to tell whether the index
changed since the last fully processed run.

Flow:
1. HEAD the index (best effort) and compare ETag / Last-Modified against the
   stored SitemapCacheEntry. A match only counts while the entry is synced.
2. Changed: GET, hash and parse the body, store the new fingerprint with
   synced=False. A failing GET aborts the run (resolve() returns None).
3. Unchanged: GET anyway. If that fails, rebuild the sub-sitemap list from
   the local sitemap cache directory.
4. Keep only sub-sitemaps whose location contains the product pattern.
5. After the sub-sitemap window has been processed, mark_synced() records
   whether the index can be trusted on the next run.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from django.conf import settings
from django.utils import timezone

from pricewatch.fetchers import FetchError, HttpStatusError, ResourceFetcher
from pricewatch.models import SitemapCacheEntry

from .local_sitemap_cache import LocalSitemapCache
from .sitemap_parser import SitemapParseError, SitemapParser

logger = logging.getLogger(__name__)


@dataclass
class ResolvedIndex:
    """
    Outcome of resolving the top-level sitemap.

    Attributes:
        index_url: The top-level sitemap URL
        sub_sitemaps: Product sub-sitemap URLs in index order
        unchanged: Index fingerprint matched a synced cache entry
        etag: ETag returned by this run's HEAD
        last_modified: Last-Modified returned by this run's HEAD
        body_hash: SHA-256 of the body downloaded in this run
        from_local_listing: Sub-sitemaps were rebuilt from the local cache
        direct_urls: Page URLs, when the top-level document is a urlset
    """

    index_url: str
    sub_sitemaps: List[str] = field(default_factory=list)
    unchanged: bool = False
    etag: Optional[str] = None
    last_modified: Optional[str] = None
    body_hash: Optional[str] = None
    from_local_listing: bool = False
    direct_urls: Optional[List[str]] = None

    @property
    def is_urlset(self) -> bool:
        return self.direct_urls is not None


class SitemapIndexResolver:
    """
    Turns the top-level sitemap into the list of product sub-sitemaps.
    """

    def __init__(
        self,
        fetcher: ResourceFetcher,
        loop: asyncio.AbstractEventLoop,
        index_url: Optional[str] = None,
        product_pattern: Optional[str] = None,
        cache: Optional[LocalSitemapCache] = None,
        head_timeout: Optional[float] = None,
        timeout: Optional[float] = None,
    ):
        self.fetcher = fetcher
        self.loop = loop
        self.index_url = index_url or getattr(settings, "CRAWLER_SITEMAP_URL")
        self.product_pattern = (
            product_pattern
            if product_pattern is not None
            else getattr(settings, "CRAWLER_PRODUCT_SITEMAP_PATTERN", "/products/")
        )
        self.cache = cache or LocalSitemapCache()
        self.head_timeout = head_timeout or getattr(settings, "CRAWLER_SITEMAP_HEAD_TIMEOUT", 8)
        self.timeout = timeout or getattr(settings, "CRAWLER_SITEMAP_TIMEOUT", 10)
        self.parser = SitemapParser()

    def resolve(self) -> Optional[ResolvedIndex]:
        """
        Resolve the sub-sitemaps for this run.

        Returns:
            ResolvedIndex, or None when the index is unusable and the run
            must be aborted
        """
        etag, last_modified = self._head()

        entry = SitemapCacheEntry.objects.filter(sitemap_index_url=self.index_url).first()
        unchanged = bool(entry and entry.synced and entry.matches(etag, last_modified))

        resolved = ResolvedIndex(
            index_url=self.index_url,
            unchanged=unchanged,
            etag=etag,
            last_modified=last_modified,
        )

        if unchanged:
            logger.info(f"Sitemap index unchanged since {entry.fetched_at}: {self.index_url}")
            return self._resolve_unchanged(resolved)

        return self._resolve_changed(resolved)

    def mark_synced(self, resolved: ResolvedIndex, failures: int) -> None:
        """
        Record the outcome of processing the sub-sitemaps of ``resolved``.

        With zero hard failures the fingerprint is stored and trusted on the
        next run; otherwise the entry is left unsynced so the next run
        downloads and walks the index again.
        """
        entry = SitemapCacheEntry.objects.filter(sitemap_index_url=resolved.index_url).first()

        if failures:
            if entry is not None and entry.synced:
                entry.synced = False
                entry.save(update_fields=["synced"])
            logger.warning(
                f"{failures} sub-sitemap(s) failed, sitemap index left unsynced: "
                f"{resolved.index_url}"
            )
            return

        SitemapCacheEntry.objects.update_or_create(
            sitemap_index_url=resolved.index_url,
            defaults={
                "etag": resolved.etag or (entry.etag if entry else None),
                "last_modified": resolved.last_modified or (entry.last_modified if entry else None),
                "body_hash": resolved.body_hash or (entry.body_hash if entry else None),
                "fetched_at": timezone.now(),
                "synced": True,
            },
        )
        logger.info(f"Sitemap index marked synced: {resolved.index_url}")

    def _head(self):
        try:
            response = self.loop.run_until_complete(
                self.fetcher.head(self.index_url, timeout=self.head_timeout)
            )
        except FetchError as e:
            logger.debug(f"HEAD failed for {self.index_url}: {e}")
            return None, None

        if not response.ok:
            logger.debug(f"HEAD returned {response.status_code} for {self.index_url}")
            return None, None

        return response.header("ETag"), response.header("Last-Modified")

    def _download(self):
        """GET the index. Returns (body, SitemapResult) or (None, None)."""
        try:
            response = self.loop.run_until_complete(
                self.fetcher.get(self.index_url, timeout=self.timeout)
            )
            response.raise_for_status()
            result = self.parser.parse(response.content, self.index_url)
        except (FetchError, HttpStatusError, SitemapParseError) as e:
            logger.warning(f"Failed to download sitemap index {self.index_url}: {e}")
            return None, None

        return response.content, result

    def _resolve_changed(self, resolved: ResolvedIndex) -> Optional[ResolvedIndex]:
        body, result = self._download()
        if result is None:
            logger.error(f"Sitemap index unreachable and changed, aborting run: {self.index_url}")
            return None

        resolved.body_hash = SitemapCacheEntry.compute_body_hash(body)

        SitemapCacheEntry.objects.update_or_create(
            sitemap_index_url=self.index_url,
            defaults={
                "etag": resolved.etag,
                "last_modified": resolved.last_modified,
                "body_hash": resolved.body_hash,
                "fetched_at": timezone.now(),
                "synced": False,
            },
        )

        return self._apply_result(resolved, result)

    def _resolve_unchanged(self, resolved: ResolvedIndex) -> Optional[ResolvedIndex]:
        body, result = self._download()
        if result is not None:
            resolved.body_hash = SitemapCacheEntry.compute_body_hash(body)
            return self._apply_result(resolved, result)

        marker = self.product_pattern.strip("/")
        resolved.sub_sitemaps = self.cache.rebuild_urls(self.index_url, marker)
        resolved.from_local_listing = True

        if not resolved.sub_sitemaps:
            logger.error(
                f"Sitemap index unreachable and no local sitemaps in {self.cache.directory}, "
                f"aborting run"
            )
            return None

        logger.info(
            f"Rebuilt {len(resolved.sub_sitemaps)} sub-sitemaps from {self.cache.directory}"
        )
        return resolved

    def _apply_result(self, resolved: ResolvedIndex, result) -> ResolvedIndex:
        if not result.is_index:
            resolved.direct_urls = result.locations
            logger.info(
                f"Top-level sitemap is a urlset with {len(resolved.direct_urls)} URLs"
            )
            return resolved

        resolved.sub_sitemaps = self.parser.filter_locations(
            result.child_sitemaps, self.product_pattern
        )
        logger.info(
            f"Sitemap index lists {len(result.child_sitemaps)} sitemaps, "
            f"{len(resolved.sub_sitemaps)} product sitemaps"
        )
        return resolved
