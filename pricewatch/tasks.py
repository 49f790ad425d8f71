"""
Celery tasks for the price crawler.

Tasks:
- crawl_weekly: Sitemap discovery over the current window, plus 404 re-checks
- crawl_daily: Price refresh of every product not marked 404

Both run on the ``crawl`` queue (see config/celery.py) and are scheduled by
Celery Beat.
"""

import logging
from typing import Any, Dict, Optional

from celery import shared_task

from pricewatch.services.crawl_orchestrator import CrawlMode, CrawlOrchestrator

logger = logging.getLogger(__name__)


def _run(mode: str, **overrides) -> Dict[str, Any]:
    summary = CrawlOrchestrator(**overrides).run(mode)

    if summary.aborted:
        logger.error(f"Scheduled {mode} crawl aborted: {summary.abort_reason}")

    return summary.to_dict()


@shared_task(name="pricewatch.tasks.crawl_weekly")
def crawl_weekly(max_sitemaps: Optional[int] = None, max_products: Optional[int] = None) -> Dict[str, Any]:
    """
    Weekly discovery crawl.

    Args:
        max_sitemaps: Override CRAWLER_MAX_SITEMAPS_PER_RUN
        max_products: Override CRAWLER_MAX_PRODUCTS_PER_RUN

    Returns:
        Run summary as a dict
    """
    logger.info("Starting weekly sitemap crawl...")
    return _run(CrawlMode.WEEKLY, max_sitemaps=max_sitemaps, max_products=max_products)


@shared_task(name="pricewatch.tasks.crawl_daily")
def crawl_daily(max_products: Optional[int] = None) -> Dict[str, Any]:
    """
    Daily refresh of active products.

    Returns:
        Run summary as a dict
    """
    logger.info("Starting daily price refresh...")
    return _run(CrawlMode.DAILY, max_products=max_products)
