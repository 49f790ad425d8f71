import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Product",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("url", models.URLField(max_length=2000, unique=True)),
                ("sku", models.CharField(blank=True, max_length=100, null=True)),
                ("title", models.TextField(blank=True, default="")),
                (
                    "status",
                    models.CharField(
                        choices=[("active", "Active"), ("404", "Not Found (404)")],
                        default="active",
                        max_length=10,
                    ),
                ),
                (
                    "last_scraped",
                    models.DateTimeField(
                        blank=True, help_text="Last time a price was scraped from the page", null=True
                    ),
                ),
                (
                    "last_check",
                    models.DateTimeField(
                        blank=True, help_text="Last time the page was checked, successful or not", null=True
                    ),
                ),
            ],
            options={
                "db_table": "products",
                "indexes": [
                    models.Index(fields=["sku"], name="idx_sku"),
                    models.Index(fields=["status"], name="idx_products_status"),
                    models.Index(fields=["last_scraped"], name="idx_products_last_scraped"),
                ],
            },
        ),
        migrations.CreateModel(
            name="FailureRecord",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("url", models.URLField(max_length=2000, unique=True)),
                (
                    "status_code",
                    models.IntegerField(
                        blank=True, help_text="HTTP status code, empty for network errors", null=True
                    ),
                ),
                (
                    "error_type",
                    models.CharField(
                        choices=[
                            ("connection", "Connection Error"),
                            ("timeout", "Timeout"),
                            ("http", "HTTP Error"),
                            ("parse", "Parse Error"),
                            ("no_price", "No Price Found"),
                            ("unknown", "Unknown Error"),
                        ],
                        default="unknown",
                        max_length=20,
                    ),
                ),
                ("error_message", models.TextField(blank=True, default="")),
                ("last_attempt", models.DateTimeField(default=django.utils.timezone.now)),
                ("attempts", models.PositiveIntegerField(default=1)),
            ],
            options={
                "db_table": "scraping_failures",
                "ordering": ["-last_attempt"],
                "indexes": [
                    models.Index(fields=["status_code"], name="idx_failures_status"),
                    models.Index(fields=["attempts"], name="idx_failures_attempts"),
                    models.Index(fields=["last_attempt"], name="idx_failures_last_attempt"),
                ],
            },
        ),
        migrations.CreateModel(
            name="CrawlCursor",
            fields=[
                (
                    "id",
                    models.PositiveSmallIntegerField(default=1, editable=False, primary_key=True, serialize=False),
                ),
                ("last_sub_sitemap_index", models.PositiveIntegerField(default=0)),
                ("total_sub_sitemaps", models.PositiveIntegerField(default=0)),
                ("last_updated", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                "db_table": "scraping_state",
            },
        ),
        migrations.CreateModel(
            name="SitemapCacheEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("sitemap_index_url", models.URLField(max_length=2000, unique=True)),
                ("etag", models.CharField(blank=True, max_length=255, null=True)),
                ("last_modified", models.CharField(blank=True, max_length=100, null=True)),
                ("body_hash", models.CharField(blank=True, max_length=64, null=True)),
                ("fetched_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("synced", models.BooleanField(default=False)),
            ],
            options={
                "db_table": "sitemap_cache",
                "verbose_name_plural": "Sitemap cache entries",
            },
        ),
        migrations.CreateModel(
            name="PriceRecord",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "price",
                    models.DecimalField(
                        decimal_places=2,
                        max_digits=14,
                        validators=[django.core.validators.MinValueValidator(0.01)],
                    ),
                ),
                ("currency", models.CharField(default="CRC", help_text="ISO 4217 currency code", max_length=3)),
                ("scraped_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="price_records",
                        to="pricewatch.product",
                    ),
                ),
            ],
            options={
                "db_table": "prices",
                "ordering": ["-scraped_at"],
                "indexes": [
                    models.Index(fields=["product", "-scraped_at"], name="idx_prices_product_date"),
                    models.Index(fields=["scraped_at"], name="idx_scraped_at"),
                ],
            },
        ),
    ]
