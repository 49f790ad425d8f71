"""
SQLite maintenance operations for the price store.

Indexes are created by migrations; this module refreshes optimizer
statistics, applies performance pragmas and compacts the file.
"""

import logging
from typing import List, Tuple

from django.db import connection

logger = logging.getLogger(__name__)

# Applied in order by apply_pragmas()
PRAGMAS = [
    ("journal_mode", "WAL"),
    ("synchronous", "NORMAL"),
    ("cache_size", "-64000"),
    ("temp_store", "MEMORY"),
]


def is_sqlite() -> bool:
    return connection.vendor == "sqlite"


def list_indexes() -> List[Tuple[str, str, str]]:
    """(table, index name, CREATE statement) for every explicit SQLite index."""
    if not is_sqlite():
        return []
    with connection.cursor() as cursor:
        cursor.execute(
            "SELECT tbl_name, name, sql FROM sqlite_master "
            "WHERE type = 'index' AND sql IS NOT NULL ORDER BY tbl_name, name"
        )
        return list(cursor.fetchall())


def analyze() -> None:
    """Update query planner statistics."""
    with connection.cursor() as cursor:
        cursor.execute("ANALYZE")
    logger.info("ANALYZE complete")


def apply_pragmas() -> List[Tuple[str, str, str]]:
    """
    Apply the performance pragmas.

    Returns:
        (pragma, value before, value after) for each pragma
    """
    changes = []
    with connection.cursor() as cursor:
        for name, value in PRAGMAS:
            cursor.execute(f"PRAGMA {name}")
            before = cursor.fetchone()[0]
            cursor.execute(f"PRAGMA {name} = {value}")
            cursor.execute(f"PRAGMA {name}")
            after = cursor.fetchone()[0]
            changes.append((name, str(before), str(after)))
            logger.debug(f"PRAGMA {name}: {before} -> {after}")
    return changes


def vacuum() -> None:
    """Rebuild the database file to reclaim free pages."""
    with connection.cursor() as cursor:
        cursor.execute("VACUUM")
    logger.info("VACUUM complete")
