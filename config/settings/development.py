"""
Development settings for the Pricewatch crawler.

Uses a local SQLite file and relaxed crawler settings for development.
"""

import os
from .base import *

DEBUG = True

ALLOWED_HOSTS = ["localhost", "127.0.0.1"]

# Development database - SQLite next to the project
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.getenv("DB_PATH", str(BASE_DIR / "prices.db")),
    }
}

# Development Celery
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/1")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")

# Development logging - verbose output
LOGGING["loggers"]["django"]["level"] = "INFO"
LOGGING["loggers"]["pricewatch"]["level"] = "DEBUG"

# Smaller batches while developing against the live site
CRAWLER_PAGE_CONCURRENCY = int(os.getenv("CRAWLER_PAGE_CONCURRENCY", "20"))
CRAWLER_MAX_SITEMAPS_PER_RUN = int(os.getenv("CRAWLER_MAX_SITEMAPS_PER_RUN", "5"))
