"""
URL Reconciliation Engine.

Merges freshly discovered URLs with URLs known to have returned 404, drops
duplicates and non-product URLs, and orders the queue so that never-seen
URLs are crawled before previously tracked ones.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from django.conf import settings

from pricewatch.models import FailureRecord, Product, ProductStatus

logger = logging.getLogger(__name__)

# Chunk size for IN (...) lookups; SQLite limits bound parameters per query
LOOKUP_CHUNK_SIZE = 500


@dataclass
class ReconciledQueue:
    """
    Prioritised crawl queue plus the counts that produced it.
    """

    urls: List[str] = field(default_factory=list)
    discovered: int = 0
    retry: int = 0
    duplicates_removed: int = 0
    filtered: int = 0
    new: int = 0
    tracked: int = 0

    def __len__(self):
        return len(self.urls)

    def truncate(self, limit: int) -> int:
        """Keep the first ``limit`` URLs (0 keeps all). Returns how many were dropped."""
        if not limit or len(self.urls) <= limit:
            return 0
        dropped = len(self.urls) - limit
        self.urls = self.urls[:limit]
        return dropped

    def to_dict(self) -> Dict[str, int]:
        return {
            "queued": len(self.urls),
            "discovered": self.discovered,
            "retry": self.retry,
            "duplicates_removed": self.duplicates_removed,
            "filtered": self.filtered,
            "new": self.new,
            "tracked": self.tracked,
        }


class UrlReconciler:
    """
    Builds the crawl queue for a run.
    """

    def __init__(self, url_pattern: Optional[str] = None):
        """
        Args:
            url_pattern: Substring every product URL contains; empty disables
                the filter (default CRAWLER_PRODUCT_URL_PATTERN)
        """
        self.url_pattern = (
            url_pattern
            if url_pattern is not None
            else getattr(settings, "CRAWLER_PRODUCT_URL_PATTERN", "/products/")
        )

    def collect_retry_urls(self) -> List[str]:
        """
        URLs that should be re-checked for reappearance: products marked 404
        plus failure records with status 404, de-duplicated, in that order.
        """
        product_urls = Product.objects.filter(status=ProductStatus.NOT_FOUND).order_by("id").values_list(
            "url", flat=True
        )
        failure_urls = FailureRecord.objects.filter(status_code=404).order_by("id").values_list(
            "url", flat=True
        )

        merged: Dict[str, None] = {}
        for url in list(product_urls) + list(failure_urls):
            merged.setdefault(url, None)

        return list(merged)

    def reconcile(self, discovered: Iterable[str], retry_urls: Iterable[str] = ()) -> ReconciledQueue:
        """
        Merge, de-duplicate, filter and prioritise URLs.

        Duplicates are matched on the exact URL string; the first occurrence
        wins. Never-seen URLs come first, then URLs that already have a
        Product row, each group keeping its merged order.

        Args:
            discovered: URLs found in the sitemaps (or read from the store)
            retry_urls: Known-404 URLs to re-check

        Returns:
            ReconciledQueue
        """
        discovered = list(discovered)
        retry_urls = list(retry_urls)
        queue = ReconciledQueue(discovered=len(discovered), retry=len(retry_urls))

        merged: Dict[str, None] = {}
        for url in discovered + retry_urls:
            if url in merged:
                queue.duplicates_removed += 1
                continue
            merged[url] = None

        candidates = []
        for url in merged:
            if self.url_pattern and self.url_pattern not in url:
                queue.filtered += 1
                continue
            candidates.append(url)

        known = self._known_urls(candidates)
        new_urls = [url for url in candidates if url not in known]
        tracked_urls = [url for url in candidates if url in known]

        queue.new = len(new_urls)
        queue.tracked = len(tracked_urls)
        queue.urls = new_urls + tracked_urls

        logger.info(
            f"Reconciled {queue.discovered} discovered + {queue.retry} retry URLs: "
            f"{queue.duplicates_removed} duplicates, {queue.filtered} filtered, "
            f"{queue.new} new, {queue.tracked} tracked"
        )
        return queue

    def _known_urls(self, urls: List[str]) -> set:
        known = set()
        for i in range(0, len(urls), LOOKUP_CHUNK_SIZE):
            chunk = urls[i:i + LOOKUP_CHUNK_SIZE]
            known.update(Product.objects.filter(url__in=chunk).values_list("url", flat=True))
        return known
