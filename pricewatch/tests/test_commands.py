"""
Tests for the management commands.
"""

from io import StringIO
from unittest.mock import patch

import httpx
import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from pricewatch.models import CrawlCursor, FailureRecord, FailureType, Product
from pricewatch.services.crawl_orchestrator import CrawlOrchestrator
from tests.conftest import SITE, SITEMAP_URL, product_page, sitemap_index, urlset


def run(command, *args):
    out = StringIO()
    call_command(command, *args, stdout=out)
    return out.getvalue()


@pytest.fixture
def orchestrator_on(fake_site):
    """Route the command's orchestrator through the fake site."""

    def build(**kwargs):
        return CrawlOrchestrator(transport=fake_site.transport, **kwargs)

    with patch("pricewatch.management.commands.run_crawl.CrawlOrchestrator", side_effect=build) as factory:
        yield factory


@pytest.mark.django_db
class TestRunCrawl:
    def test_weekly_crawl(self, fake_site, sitemap_dir, orchestrator_on):
        fake_site.add(SITEMAP_URL, sitemap_index(f"{SITE}/products/sitemap_products_1.xml"))
        fake_site.add(f"{SITE}/products/sitemap_products_1.xml", urlset(f"{SITE}/products/a"))
        fake_site.add(f"{SITE}/products/a", product_page())

        output = run("run_crawl", "--mode", "weekly")

        assert "CRAWL SUMMARY (weekly)" in output
        assert "Crawl finished: 1 succeeded, 0 failed" in output
        assert Product.objects.count() == 1

    def test_options_reach_orchestrator(self, sitemap_dir, orchestrator_on):
        run(
            "run_crawl",
            "--mode", "daily",
            "--max-sitemaps", "3",
            "--max-products", "50",
            "--concurrency", "7",
            "--sitemap-concurrency", "2",
            "--sitemap-url", "https://other.example.com/sitemap.xml",
        )

        orchestrator_on.assert_called_once_with(
            sitemap_url="https://other.example.com/sitemap.xml",
            max_sitemaps=3,
            max_products=50,
            page_concurrency=7,
            sitemap_concurrency=2,
        )

    def test_aborted_run_exits_non_zero(self, fake_site, sitemap_dir, orchestrator_on):
        fake_site.add(SITEMAP_URL, httpx.ConnectError)

        with pytest.raises(CommandError) as exc_info:
            run("run_crawl")

        assert exc_info.value.returncode == 1
        assert "aborted" in str(exc_info.value)

    def test_json_output(self, fake_site, sitemap_dir, orchestrator_on):
        import json

        output = run("run_crawl", "--mode", "from-db", "--json")

        summary = json.loads(output[output.index("{"):output.rindex("}") + 1])
        assert summary["mode"] == "from-db"
        assert summary["queued"] == 0

    def test_negative_option_rejected(self):
        with pytest.raises(CommandError):
            run("run_crawl", "--max-products", "-1")


@pytest.mark.django_db
class TestCrawlStats:
    def test_empty_store(self):
        output = run("crawl_stats")

        assert "Total products: 0" in output
        assert "No failures recorded" in output
        assert "No failures in the last 7 days" in output
        assert "No crawl has run yet" in output

    def test_failures_and_cursor(self):
        FailureRecord.objects.create(url=f"{SITE}/products/a", status_code=404, error_type=FailureType.HTTP, attempts=3)
        FailureRecord.objects.create(url=f"{SITE}/products/b", status_code=404, error_type=FailureType.HTTP)
        FailureRecord.objects.create(url=f"{SITE}/products/c", error_type=FailureType.TIMEOUT)
        CrawlCursor.objects.create(last_sub_sitemap_index=4, total_sub_sitemaps=10)

        output = run("crawl_stats", "--recent", "3")

        assert "Total failures: 3" in output
        assert "RECENT FAILURES (last 3)" in output
        assert f"[3 attempts] 404 - {SITE}/products/a" in output
        assert "Status 404: 2 failures" in output
        assert "Status NULL: 1 failures" in output
        assert "FAILURES BY TYPE (last 7 days)" in output
        assert "http: 2" in output
        assert "timeout: 1" in output
        assert "Sub-sitemap 4 of 10" in output

    def test_size_health_thresholds(self):
        from pricewatch.services.store_stats import MB, size_health

        assert size_health(10 * MB).level == "ok"
        assert size_health(2 * 1024 * MB).level == "info"
        assert size_health(6 * 1024 * MB).level == "warning"
        assert size_health(11 * 1024 * MB).level == "critical"


@pytest.mark.django_db(transaction=True)
class TestOptimizeDb:
    def test_skip_vacuum(self):
        output = run("optimize_db", "--skip-vacuum")

        assert "idx_prices_product_date" in output
        assert "Analysis complete" in output
        assert "journal_mode" in output
        assert "Skipping VACUUM" in output
        assert "products" in output

    def test_full_run(self):
        output = run("optimize_db")

        assert "Vacuum complete" in output
        assert "Optimization complete" in output

    def test_other_backends_only_analyze(self):
        with patch("pricewatch.services.maintenance.is_sqlite", return_value=False), patch(
            "pricewatch.services.maintenance.analyze"
        ) as analyze, patch("pricewatch.services.maintenance.vacuum") as vacuum:
            output = run("optimize_db")

        analyze.assert_called_once()
        vacuum.assert_not_called()
        assert "ANALYZE only" in output
