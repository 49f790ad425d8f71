"""
Django models for the Pricewatch crawler.

Models: Product, PriceRecord, FailureRecord, CrawlCursor, SitemapCacheEntry

Product/PriceRecord hold the scraped catalogue and its price history.
FailureRecord is the failure ledger keyed by URL. CrawlCursor and
SitemapCacheEntry carry crawl state between runs so that a sitemap cycle
can be split across many short invocations.
"""

import hashlib

from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone


class ProductStatus(models.TextChoices):
    """Whether a product page was reachable on its last check."""

    ACTIVE = "active", "Active"
    NOT_FOUND = "404", "Not Found (404)"


class FailureType(models.TextChoices):
    """Types of scrape failures."""

    CONNECTION = "connection", "Connection Error"
    TIMEOUT = "timeout", "Timeout"
    HTTP = "http", "HTTP Error"
    PARSE = "parse", "Parse Error"
    NO_PRICE = "no_price", "No Price Found"
    UNKNOWN = "unknown", "Unknown Error"


class Product(models.Model):
    """
    A product page discovered through the sitemaps.

    Created on the first successful scrape or the first 404, updated on
    every later scrape and never deleted automatically.
    """

    url = models.URLField(max_length=2000, unique=True)
    sku = models.CharField(max_length=100, blank=True, null=True)
    title = models.TextField(blank=True, default="")

    status = models.CharField(
        max_length=10,
        choices=ProductStatus.choices,
        default=ProductStatus.ACTIVE,
    )

    last_scraped = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Last time a price was scraped from the page",
    )
    last_check = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Last time the page was checked, successful or not",
    )

    class Meta:
        db_table = "products"
        indexes = [
            models.Index(fields=["sku"], name="idx_sku"),
            models.Index(fields=["status"], name="idx_products_status"),
            models.Index(fields=["last_scraped"], name="idx_products_last_scraped"),
        ]

    def __str__(self):
        return self.title or self.url


class PriceRecord(models.Model):
    """
    One observed price. Append-only: one row per successful scrape.
    """

    product = models.ForeignKey(
        Product,
        on_delete=models.CASCADE,
        related_name="price_records",
    )
    price = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        validators=[MinValueValidator(0.01)],
    )
    currency = models.CharField(
        max_length=3,
        default="CRC",
        help_text="ISO 4217 currency code",
    )
    scraped_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "prices"
        ordering = ["-scraped_at"]
        indexes = [
            models.Index(fields=["product", "-scraped_at"], name="idx_prices_product_date"),
            models.Index(fields=["scraped_at"], name="idx_scraped_at"),
        ]

    def __str__(self):
        return f"{self.product_id}: {self.currency} {self.price} ({self.scraped_at})"


class FailureRecord(models.Model):
    """
    Failure ledger entry for a URL.

    Inserted with attempts=1, incremented on every repeat failure and
    deleted as soon as the URL is scraped successfully.
    """

    url = models.URLField(max_length=2000, unique=True)
    status_code = models.IntegerField(
        null=True,
        blank=True,
        help_text="HTTP status code, empty for network errors",
    )
    error_type = models.CharField(
        max_length=20,
        choices=FailureType.choices,
        default=FailureType.UNKNOWN,
    )
    error_message = models.TextField(blank=True, default="")
    last_attempt = models.DateTimeField(default=timezone.now)
    attempts = models.PositiveIntegerField(default=1)

    class Meta:
        db_table = "scraping_failures"
        ordering = ["-last_attempt"]
        indexes = [
            models.Index(fields=["status_code"], name="idx_failures_status"),
            models.Index(fields=["attempts"], name="idx_failures_attempts"),
            models.Index(fields=["last_attempt"], name="idx_failures_last_attempt"),
        ]

    def __str__(self):
        return f"[{self.attempts}] {self.status_code or 'N/A'} {self.url}"


class CrawlCursor(models.Model):
    """
    Position of the crawl inside the ordered list of product sub-sitemaps.

    Exactly one row (primary key 1).
    """

    SINGLETON_ID = 1

    id = models.PositiveSmallIntegerField(primary_key=True, default=SINGLETON_ID, editable=False)
    last_sub_sitemap_index = models.PositiveIntegerField(default=0)
    total_sub_sitemaps = models.PositiveIntegerField(default=0)
    last_updated = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "scraping_state"

    def __str__(self):
        return f"{self.last_sub_sitemap_index}/{self.total_sub_sitemaps}"

    @classmethod
    def load(cls):
        """Return the singleton row, or None if no run has created it yet."""
        return cls.objects.filter(pk=cls.SINGLETON_ID).first()


class SitemapCacheEntry(models.Model):
    """
    Fingerprint of a top-level sitemap index as seen on its last download.

    ``synced`` is only true while the sub-sitemaps processed for this index
    all came back without hard failures; a fingerprint match is not trusted
    otherwise.
    """

    sitemap_index_url = models.URLField(max_length=2000, unique=True)
    etag = models.CharField(max_length=255, blank=True, null=True)
    last_modified = models.CharField(max_length=100, blank=True, null=True)
    body_hash = models.CharField(max_length=64, blank=True, null=True)
    fetched_at = models.DateTimeField(default=timezone.now)
    synced = models.BooleanField(default=False)

    class Meta:
        db_table = "sitemap_cache"
        verbose_name_plural = "Sitemap cache entries"

    def __str__(self):
        return self.sitemap_index_url

    @staticmethod
    def compute_body_hash(body: bytes) -> str:
        """Compute SHA-256 hash of a sitemap body."""
        return hashlib.sha256(body).hexdigest()

    def matches(self, etag=None, last_modified=None) -> bool:
        """True if either validator returned by the server equals the stored one."""
        if etag and self.etag and etag == self.etag:
            return True
        if last_modified and self.last_modified and last_modified == self.last_modified:
            return True
        return False
