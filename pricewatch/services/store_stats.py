"""
Read-only statistics about the price store.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from django.db import connection
from django.db.models import Count

from pricewatch.models import CrawlCursor, FailureRecord, PriceRecord, Product, SitemapCacheEntry

logger = logging.getLogger(__name__)

MB = 1024 * 1024

# (threshold in MB, level, message), largest first
SIZE_THRESHOLDS = [
    (10 * 1024, "critical", "Database larger than 10 GB, consider migrating to PostgreSQL"),
    (5 * 1024, "warning", "Database larger than 5 GB, monitor size, migration may be needed soon"),
    (1024, "info", "Database larger than 1 GB, still healthy for SQLite"),
]


@dataclass
class SizeHealth:
    size_mb: float
    level: str
    message: str


def database_path() -> Optional[Path]:
    """Path of the SQLite database file, None for other backends or in-memory databases."""
    if connection.vendor != "sqlite":
        return None
    name = str(connection.settings_dict.get("NAME") or "")
    if not name or name == ":memory:" or name.startswith("file:"):
        return None
    return Path(name)


def database_size_bytes() -> Optional[int]:
    path = database_path()
    if path is None or not path.is_file():
        return None
    return path.stat().st_size


def size_health(size_bytes: int) -> SizeHealth:
    """Classify a database size against the SQLite health thresholds."""
    size_mb = size_bytes / MB
    for threshold_mb, level, message in SIZE_THRESHOLDS:
        if size_mb > threshold_mb:
            return SizeHealth(size_mb, level, message)
    return SizeHealth(size_mb, "ok", "Database size is healthy for SQLite")


def totals() -> Dict[str, int]:
    return {
        "products": Product.objects.count(),
        "prices": PriceRecord.objects.count(),
        "failures": FailureRecord.objects.count(),
    }


def table_counts() -> Dict[str, int]:
    """Row counts keyed by database table name."""
    models = [Product, PriceRecord, FailureRecord, CrawlCursor, SitemapCacheEntry]
    return {model._meta.db_table: model.objects.count() for model in models}


def recent_failures(limit: int = 20) -> List[FailureRecord]:
    return list(FailureRecord.objects.order_by("-last_attempt", "-id")[:limit])


def status_code_distribution() -> List[Dict]:
    """Failure counts per HTTP status code, most frequent first."""
    return list(
        FailureRecord.objects.values("status_code")
        .annotate(count=Count("id"))
        .order_by("-count", "status_code")
    )
