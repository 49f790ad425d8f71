"""
Test settings for the Pricewatch crawler.

Uses in-memory SQLite and eager Celery for fast test execution.
"""

import tempfile
from pathlib import Path

from .base import *

# Test mode
DEBUG = False

ALLOWED_HOSTS = ["localhost", "127.0.0.1", "testserver"]

# Test database - in-memory SQLite for speed
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

# Test Celery - run tasks synchronously
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True

# Test logging - minimal output
LOGGING["loggers"]["django"]["level"] = "WARNING"
LOGGING["loggers"]["pricewatch"]["level"] = "WARNING"

# Disable Sentry in tests
SENTRY_DSN = ""

# Test crawler settings - no politeness delays, tiny timeouts
CRAWLER_SITEMAP_URL = "https://shop.example.com/sitemap.xml"
CRAWLER_REQUEST_TIMEOUT = 5
CRAWLER_PAGE_DELAY = 0
CRAWLER_PAGE_TIMEOUT = 5
CRAWLER_PAGE_CONCURRENCY = 10
CRAWLER_SITEMAP_DELAY = 0
CRAWLER_SITEMAP_RETRY_DELAY = 0
CRAWLER_SITEMAP_CONCURRENCY = 3
CRAWLER_SITEMAP_RETRY_CONCURRENCY = 2
CRAWLER_MAX_SITEMAPS_PER_RUN = 0
CRAWLER_MAX_PRODUCTS_PER_RUN = 0
CRAWLER_DEFAULT_CURRENCY = "CRC"
CRAWLER_SITEMAP_CACHE_DIR = Path(tempfile.gettempdir()) / "pricewatch-test-sitemaps"
