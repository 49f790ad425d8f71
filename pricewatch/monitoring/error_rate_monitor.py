"""
Per-run error rate monitoring for the crawler.

- Calculates the error rate of a crawl run (failed pages / processed pages)
- Alert threshold: > 10% error rate (CRAWLER_ERROR_RATE_THRESHOLD)
- Logs alert to Sentry

Usage:
    from pricewatch.monitoring import check_run_error_rate

    rate_info = check_run_error_rate(summary)
    # Returns: {"error_rate": 0.05, "failed": 50, "processed": 1000, "threshold_exceeded": False, ...}
"""

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from django.conf import settings
from django.utils import timezone

logger = logging.getLogger(__name__)

# Default threshold for the run error rate (10%)
DEFAULT_ERROR_RATE_THRESHOLD = 0.10


def check_run_error_rate(summary, threshold: Optional[float] = None) -> Dict[str, Any]:
    """
    Check the error rate of a finished run and alert if threshold is exceeded.

    Args:
        summary: CrawlRunSummary of the run (needs ``succeeded``, ``failed``, ``mode``)
        threshold: Error rate threshold (default: 0.10 = 10%)

    Returns:
        Dict with error rate metrics and threshold status
    """
    if threshold is None:
        threshold = getattr(
            settings, "CRAWLER_ERROR_RATE_THRESHOLD", DEFAULT_ERROR_RATE_THRESHOLD
        )

    processed = summary.succeeded + summary.failed
    error_rate = summary.failed / processed if processed else 0.0

    threshold_exceeded = error_rate > threshold

    result = {
        "mode": summary.mode,
        "error_rate": round(error_rate, 4),
        "failed": summary.failed,
        "processed": processed,
        "threshold": threshold,
        "threshold_exceeded": threshold_exceeded,
    }

    if threshold_exceeded:
        _alert_high_error_rate(result)

    logger.info(
        f"Run error rate check: {error_rate:.2%} "
        f"({summary.failed}/{processed} pages failed)"
    )

    return result


def _alert_high_error_rate(rate_info: Dict[str, Any]) -> None:
    """Send alert for high error rate."""
    from .sentry_integration import capture_alert

    message = (
        f"High error rate in {rate_info['mode']} crawl: "
        f"{rate_info['error_rate']:.2%} (threshold: {rate_info['threshold']:.2%})"
    )

    logger.warning(message)

    capture_alert(
        message=message,
        level="warning",
        alert_type="error_rate",
        extra_data=rate_info,
    )


def get_recent_failure_counts(days: int = 7) -> Dict[str, int]:
    """
    Count failure records touched in the last ``days`` days, by error type.

    Args:
        days: Number of days to include

    Returns:
        Dict mapping error types to counts
    """
    from django.db.models import Count

    from pricewatch.models import FailureRecord

    start_date = timezone.now() - timedelta(days=days)

    rows = (
        FailureRecord.objects.filter(last_attempt__gte=start_date)
        .values("error_type")
        .annotate(total=Count("id"))
        .order_by("error_type")
    )

    return {row["error_type"]: row["total"] for row in rows}
