"""
Django base settings for the Pricewatch crawler.

This module contains settings common to all environments.
For more information on this file, see
https://docs.djangoproject.com/en/4.2/topics/settings/
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent.parent


# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv(
    "SECRET_KEY",
    "django-insecure-pricewatch-dev-key-change-in-production"
)

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.getenv("DEBUG", "True") == "True"

ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",")


# Application definition
# The crawler has no HTTP surface; only the ORM and management commands are used.

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    # Local apps
    "pricewatch",
]


# Database
# https://docs.djangoproject.com/en/4.2/ref/settings/#databases
# Configured in environment-specific settings (development.py, production.py, test.py)

DATABASES = {
    # Override in environment-specific settings
}


# Internationalization
# https://docs.djangoproject.com/en/4.2/topics/i18n/

LANGUAGE_CODE = "en-us"

TIME_ZONE = "UTC"

USE_I18N = True

USE_TZ = True


# Default primary key field type
# https://docs.djangoproject.com/en/4.2/ref/settings/#default-auto-field

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


# Celery Configuration
# https://docs.celeryproject.org/en/stable/django/first-steps-with-django.html

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/1")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_TRACK_STARTED = True
# A full discovery pass over thousands of sub-sitemaps can take hours
CELERY_TASK_TIME_LIMIT = 6 * 60 * 60

CELERY_TASK_ROUTES = {
    "pricewatch.tasks.crawl_*": {"queue": "crawl"},
}


# Logging Configuration
# https://docs.djangoproject.com/en/4.2/topics/logging/

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {module} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": os.getenv("LOG_LEVEL", "INFO"),
        },
        "pricewatch": {
            "handlers": ["console"],
            "level": os.getenv("LOG_LEVEL", "INFO"),
        },
    },
}


# Sentry Configuration
# https://docs.sentry.io/platforms/python/guides/django/

SENTRY_DSN = os.getenv("SENTRY_DSN", "")
SENTRY_ENVIRONMENT = os.getenv("SENTRY_ENVIRONMENT", "development")
SENTRY_TRACES_SAMPLE_RATE = float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.0"))

# Initialize Sentry (an empty DSN leaves the SDK disabled)
import sentry_sdk

sentry_sdk.init(
    dsn=SENTRY_DSN,
    traces_sample_rate=SENTRY_TRACES_SAMPLE_RATE,
    environment=SENTRY_ENVIRONMENT,
)


# Crawler Configuration

# Top-level sitemap index of the tracked store
CRAWLER_SITEMAP_URL = os.getenv(
    "CRAWLER_SITEMAP_URL", "https://www.unimart.com/sitemap.xml"
)

# Substring a sub-sitemap <loc> must contain to be treated as product-bearing
CRAWLER_PRODUCT_SITEMAP_PATTERN = os.getenv("CRAWLER_PRODUCT_SITEMAP_PATTERN", "/products/")

# Substring a page URL must contain to be crawled (empty string disables the filter)
CRAWLER_PRODUCT_URL_PATTERN = os.getenv("CRAWLER_PRODUCT_URL_PATTERN", "/products/")

# Local copies of sub-sitemaps, one file per sub-sitemap
CRAWLER_SITEMAP_CACHE_DIR = Path(
    os.getenv("CRAWLER_SITEMAP_CACHE_DIR", str(BASE_DIR / "sitemaps"))
)

# Incremental processing: 0 means no limit
CRAWLER_MAX_SITEMAPS_PER_RUN = int(os.getenv("CRAWLER_MAX_SITEMAPS_PER_RUN", "0"))
CRAWLER_MAX_PRODUCTS_PER_RUN = int(os.getenv("CRAWLER_MAX_PRODUCTS_PER_RUN", "0"))

# Default timeout for HTTP requests (seconds)
CRAWLER_REQUEST_TIMEOUT = int(os.getenv("CRAWLER_REQUEST_TIMEOUT", "30"))

# Product page fetching
CRAWLER_PAGE_CONCURRENCY = int(os.getenv("CRAWLER_PAGE_CONCURRENCY", "200"))
CRAWLER_PAGE_DELAY = float(os.getenv("CRAWLER_PAGE_DELAY", "0.6"))
CRAWLER_PAGE_TIMEOUT = float(os.getenv("CRAWLER_PAGE_TIMEOUT", "40"))

# Sitemap fetching
CRAWLER_SITEMAP_HEAD_TIMEOUT = float(os.getenv("CRAWLER_SITEMAP_HEAD_TIMEOUT", "8"))
CRAWLER_SITEMAP_TIMEOUT = float(os.getenv("CRAWLER_SITEMAP_TIMEOUT", "10"))
CRAWLER_SITEMAP_CONCURRENCY = int(os.getenv("CRAWLER_SITEMAP_CONCURRENCY", "15"))
CRAWLER_SITEMAP_DELAY = float(os.getenv("CRAWLER_SITEMAP_DELAY", "4.0"))

# Soft-block retry pass (kept narrower and slower than the main pass)
CRAWLER_SITEMAP_RETRY_CONCURRENCY = int(os.getenv("CRAWLER_SITEMAP_RETRY_CONCURRENCY", "3"))
CRAWLER_SITEMAP_RETRY_DELAY = float(os.getenv("CRAWLER_SITEMAP_RETRY_DELAY", "8.0"))
CRAWLER_SITEMAP_RETRY_TIMEOUT = float(os.getenv("CRAWLER_SITEMAP_RETRY_TIMEOUT", "15"))

CRAWLER_USER_AGENT = os.getenv(
    "CRAWLER_USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)

# Currency assumed when the price text carries no recognisable symbol
CRAWLER_DEFAULT_CURRENCY = os.getenv("CRAWLER_DEFAULT_CURRENCY", "CRC")


# Monitoring Configuration

# Alert once a single URL has failed this many times in a row
CRAWLER_FAILURE_THRESHOLD = int(os.getenv("CRAWLER_FAILURE_THRESHOLD", "5"))

# Alert when a run's failed/processed ratio exceeds this value
CRAWLER_ERROR_RATE_THRESHOLD = float(os.getenv("CRAWLER_ERROR_RATE_THRESHOLD", "0.10"))
