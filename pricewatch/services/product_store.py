"""
Persistence of crawl outcomes.

ProductStore is the only writer of Product and PriceRecord rows during a
crawl. Failures go through the FailureTracker so the ledger and its alert
threshold live in one place.
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from django.db import transaction
from django.utils import timezone

from pricewatch.models import FailureType, PriceRecord, Product, ProductStatus
from pricewatch.monitoring.failure_tracker import FailureTracker

from .page_extractor import ExtractedProduct

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


@dataclass
class PageFailure:
    """Why a page produced no price record."""

    error_type: str
    message: str = ""
    status_code: Optional[int] = None

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class ProductStore:
    """
    Writes products, price history and failures.
    """

    def __init__(self, failure_tracker: Optional[FailureTracker] = None):
        self.failure_tracker = failure_tracker or FailureTracker()

    def record_success(self, url: str, extracted: ExtractedProduct) -> PriceRecord:
        """
        Persist a successful scrape.

        In one transaction: upsert the Product as active, append one
        PriceRecord and clear the URL's failure record.

        Raises:
            ValueError: If ``extracted`` carries no positive price
        """
        if not extracted.has_price:
            raise ValueError(f"No positive price to record for {url}")

        now = timezone.now()
        price = extracted.price.quantize(CENT, rounding=ROUND_HALF_UP)

        with transaction.atomic():
            product, created = Product.objects.update_or_create(
                url=url,
                defaults={
                    "title": extracted.title,
                    "sku": extracted.sku,
                    "status": ProductStatus.ACTIVE,
                    "last_scraped": now,
                    "last_check": now,
                },
            )
            record = PriceRecord.objects.create(
                product=product,
                price=price,
                currency=extracted.currency,
                scraped_at=now,
            )
            self.failure_tracker.record_success(url)

        sku_info = f" (SKU: {extracted.sku})" if extracted.sku else ""
        logger.debug(
            f"{'Created' if created else 'Updated'}: {extracted.title}{sku_info} - "
            f"{extracted.currency} {price}"
        )
        return record

    def record_failure(self, url: str, failure: PageFailure) -> int:
        """
        Persist a failed scrape.

        Upserts the failure record (attempts incremented on repeat). A 404
        also creates or updates the Product with status "404" so the URL is
        re-checked by later discovery runs.

        Returns:
            Attempts count of the URL after this failure
        """
        with transaction.atomic():
            if failure.is_not_found:
                Product.objects.update_or_create(
                    url=url,
                    defaults={
                        "status": ProductStatus.NOT_FOUND,
                        "last_check": timezone.now(),
                    },
                )

            attempts = self.failure_tracker.record_failure(
                url,
                error_type=failure.error_type,
                error_message=failure.message,
                status_code=failure.status_code,
            )

        logger.debug(f"Recorded {failure.error_type} failure for {url} (attempt {attempts})")
        return attempts

    @staticmethod
    def failure_from_status(status_code: int) -> PageFailure:
        return PageFailure(
            error_type=FailureType.HTTP,
            message=f"HTTP {status_code}",
            status_code=status_code,
        )
