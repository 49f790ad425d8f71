"""
Services module for the price crawler.

Contains:
- sitemap_parser: Sitemap index / urlset parsing
- local_sitemap_cache: Local copies of sub-sitemaps
- sitemap_resolver: Top-level sitemap resolution with HTTP validators
- progress_tracker: Resumable position inside the sub-sitemap list
- sitemap_batch_fetcher: Concurrent sub-sitemap download with soft-block retry
- url_reconciler: Crawl queue construction
- page_extractor: Product field extraction
- product_store: Product, price and failure persistence
- crawl_runner: Concurrent page crawl
- crawl_orchestrator: Crawl modes and run summary
- store_stats / maintenance: Reporting and SQLite upkeep
"""

from pricewatch.services.sitemap_parser import (
    SitemapParser,
    SitemapURL,
    SitemapResult,
    SitemapParseError,
)
from pricewatch.services.local_sitemap_cache import LocalSitemapCache
from pricewatch.services.sitemap_resolver import ResolvedIndex, SitemapIndexResolver
from pricewatch.services.progress_tracker import CrawlProgressTracker, CrawlWindow
from pricewatch.services.sitemap_batch_fetcher import (
    SitemapBatchResult,
    SubSitemapBatchFetcher,
)
from pricewatch.services.url_reconciler import ReconciledQueue, UrlReconciler
from pricewatch.services.page_extractor import ExtractedProduct, PageExtractor
from pricewatch.services.product_store import PageFailure, ProductStore
from pricewatch.services.crawl_runner import BatchCrawlRunner, CrawlRunStats
from pricewatch.services.crawl_orchestrator import (
    CrawlMode,
    CrawlOrchestrator,
    CrawlRunSummary,
)

__all__ = [
    "SitemapParser",
    "SitemapURL",
    "SitemapResult",
    "SitemapParseError",
    "LocalSitemapCache",
    "ResolvedIndex",
    "SitemapIndexResolver",
    "CrawlProgressTracker",
    "CrawlWindow",
    "SitemapBatchResult",
    "SubSitemapBatchFetcher",
    "ReconciledQueue",
    "UrlReconciler",
    "ExtractedProduct",
    "PageExtractor",
    "PageFailure",
    "ProductStore",
    "BatchCrawlRunner",
    "CrawlRunStats",
    "CrawlMode",
    "CrawlOrchestrator",
    "CrawlRunSummary",
]
