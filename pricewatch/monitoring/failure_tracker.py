"""
Per-URL failure ledger.

- One FailureRecord row per failing URL
- Repeat failures increment ``attempts`` in a single UPDATE
- Success deletes the row
- Alert threshold: 5 failures of the same URL (configurable)

Usage:
    from pricewatch.monitoring import FailureTracker

    tracker = FailureTracker()

    # On failure
    attempts = tracker.record_failure(url, FailureType.HTTP, "HTTP 503", status_code=503)

    # On success
    tracker.record_success(url)
"""

import logging
from typing import Optional

from django.conf import settings
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from pricewatch.models import FailureRecord

logger = logging.getLogger(__name__)

# Default threshold for repeated failures before alerting
DEFAULT_FAILURE_THRESHOLD = 5


def trigger_threshold_alert(url: str, attempts: int, threshold: int, status_code=None) -> None:
    """
    Trigger an alert when a URL reaches the failure threshold.
    """
    from .sentry_integration import capture_alert

    message = f"Failure threshold reached for {url}: {attempts} failed attempts"

    logger.warning(message)

    capture_alert(
        message=message,
        level="warning",
        extra_data={
            "url": url,
            "attempts": attempts,
            "status_code": status_code,
            "threshold": threshold,
        },
    )


class FailureTracker:
    """
    Tracks failures per URL in the FailureRecord table.

    Alerts once, on the attempt that reaches the configured threshold.
    """

    def __init__(self, threshold: Optional[int] = None):
        """
        Initialize the failure tracker.

        Args:
            threshold: Number of failures of one URL before alerting
        """
        self.threshold = threshold or getattr(
            settings, "CRAWLER_FAILURE_THRESHOLD", DEFAULT_FAILURE_THRESHOLD
        )

    def record_failure(
        self,
        url: str,
        error_type: str,
        error_message: str = "",
        status_code: Optional[int] = None,
    ) -> int:
        """
        Record a failure for a URL.

        Inserts the row with attempts=1, or increments attempts and
        overwrites the other fields if the URL already failed before.

        Args:
            url: URL that failed
            error_type: One of FailureType
            error_message: Short description of the failure
            status_code: HTTP status code, None for network and parse errors

        Returns:
            Attempts count after this failure
        """
        now = timezone.now()
        fields = {
            "status_code": status_code,
            "error_type": error_type,
            "error_message": error_message[:1000],
            "last_attempt": now,
        }

        with transaction.atomic():
            updated = FailureRecord.objects.filter(url=url).update(
                attempts=F("attempts") + 1, **fields
            )
            if not updated:
                FailureRecord.objects.create(url=url, attempts=1, **fields)

        attempts = FailureRecord.objects.filter(url=url).values_list("attempts", flat=True).first() or 1

        logger.debug(
            f"Recorded failure for {url}: type={error_type}, "
            f"status={status_code}, attempts={attempts}"
        )

        if attempts == self.threshold:
            trigger_threshold_alert(url, attempts, self.threshold, status_code=status_code)

        return attempts

    def record_success(self, url: str) -> None:
        """Clear the failure record of a URL that was scraped successfully."""
        deleted, _ = FailureRecord.objects.filter(url=url).delete()
        if deleted:
            logger.debug(f"Cleared failure record for {url}")
