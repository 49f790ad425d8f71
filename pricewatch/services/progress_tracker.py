"""
Crawl Progress Tracker.

Keeps the position of the crawl inside the ordered list of product
sub-sitemaps, so that one sitemap cycle can be spread over many runs.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from django.conf import settings
from django.utils import timezone

from pricewatch.models import CrawlCursor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CrawlWindow:
    """Half-open range [start, end) of sub-sitemap indexes for one run."""

    start: int
    end: int
    total: int

    @property
    def size(self) -> int:
        return self.end - self.start

    @property
    def completes_cycle(self) -> bool:
        return self.end >= self.total

    def __str__(self):
        return f"{self.start}-{self.end}/{self.total}"


class CrawlProgressTracker:
    """
    Loads, windows and advances the singleton CrawlCursor.

    Invariant: 0 <= last_sub_sitemap_index <= total_sub_sitemaps.
    """

    def __init__(self, batch_size: Optional[int] = None):
        """
        Args:
            batch_size: Sub-sitemaps per run, 0 meaning all remaining
                (default CRAWLER_MAX_SITEMAPS_PER_RUN)
        """
        if batch_size is None:
            batch_size = getattr(settings, "CRAWLER_MAX_SITEMAPS_PER_RUN", 0)
        self.batch_size = max(int(batch_size), 0)

    def load(self, total: int) -> CrawlCursor:
        """
        Load the cursor for a sitemap list of ``total`` entries.

        Creates it at 0 if missing. If the number of sub-sitemaps changed
        since the cursor was written, the cycle restarts at 0.
        """
        cursor, created = CrawlCursor.objects.get_or_create(
            pk=CrawlCursor.SINGLETON_ID,
            defaults={
                "last_sub_sitemap_index": 0,
                "total_sub_sitemaps": total,
                "last_updated": timezone.now(),
            },
        )

        if created:
            logger.info(f"Starting new sitemap cycle over {total} sub-sitemaps")
            return cursor

        if cursor.total_sub_sitemaps != total:
            logger.info(
                f"Sub-sitemap count changed ({cursor.total_sub_sitemaps} -> {total}), "
                f"restarting cycle at 0"
            )
            cursor.last_sub_sitemap_index = 0
            cursor.total_sub_sitemaps = total
            cursor.last_updated = timezone.now()
            cursor.save()

        return cursor

    def window(self, cursor: CrawlCursor) -> CrawlWindow:
        """Return the range of sub-sitemaps this run should process."""
        total = cursor.total_sub_sitemaps
        start = cursor.last_sub_sitemap_index
        if start >= total:
            start = 0

        if self.batch_size:
            end = min(start + self.batch_size, total)
        else:
            end = total

        return CrawlWindow(start=start, end=end, total=total)

    def advance(self, cursor: CrawlCursor, window: CrawlWindow) -> int:
        """
        Persist the position after ``window`` was processed.

        Returns:
            The new index, 0 when the cycle is complete
        """
        if window.completes_cycle:
            new_index = 0
            logger.info(f"Sitemap cycle complete ({window.total} sub-sitemaps), wrapping to 0")
        else:
            new_index = window.end

        cursor.last_sub_sitemap_index = new_index
        cursor.total_sub_sitemaps = window.total
        cursor.last_updated = timezone.now()
        cursor.save()

        logger.debug(f"Cursor advanced to {new_index}/{window.total}")
        return new_index
