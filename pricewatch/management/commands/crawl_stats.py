"""
Management command to print store statistics.

Usage:
    python manage.py crawl_stats
    python manage.py crawl_stats --recent 50
"""

from django.core.management.base import BaseCommand

from pricewatch.models import CrawlCursor
from pricewatch.monitoring import get_recent_failure_counts
from pricewatch.services import store_stats


class Command(BaseCommand):
    """Print totals, database size health, recent failures and crawl position."""

    help = 'Show product, price and failure statistics of the price store'

    def add_arguments(self, parser):
        parser.add_argument(
            '--recent',
            type=int,
            default=20,
            help='Number of recent failures to list (default: 20)',
        )

    def handle(self, *args, **options):
        recent = max(options['recent'], 0)

        self._section('DATABASE STATS')
        counts = store_stats.totals()
        self.stdout.write(f'Total products: {counts["products"]}')
        self.stdout.write(f'Total price records: {counts["prices"]}')
        self.stdout.write(f'Total failures: {counts["failures"]}')

        size = store_stats.database_size_bytes()
        if size is None:
            self.stdout.write('Database file size: n/a')
        else:
            health = store_stats.size_health(size)
            self.stdout.write(f'Database file size: {health.size_mb:.2f} MB')
            style = {
                'critical': self.style.ERROR,
                'warning': self.style.WARNING,
                'info': self.style.NOTICE,
            }.get(health.level, self.style.SUCCESS)
            self.stdout.write(style(health.message))

        self._section(f'RECENT FAILURES (last {recent})')
        failures = store_stats.recent_failures(recent)
        if not failures:
            self.stdout.write(self.style.SUCCESS('No failures recorded'))
        for failure in failures:
            self.stdout.write(f'[{failure.attempts} attempts] {failure.status_code or "N/A"} - {failure.url}')
            self.stdout.write(f'  Error: {failure.error_type} {failure.error_message}')
            self.stdout.write(f'  Last: {failure.last_attempt:%Y-%m-%d %H:%M:%S}')

        self._section('FAILURE STATUS CODE DISTRIBUTION')
        for row in store_stats.status_code_distribution():
            self.stdout.write(f'Status {row["status_code"] or "NULL"}: {row["count"]} failures')

        self._section('FAILURES BY TYPE (last 7 days)')
        recent_counts = get_recent_failure_counts(days=7)
        if not recent_counts:
            self.stdout.write('No failures in the last 7 days')
        for error_type, count in recent_counts.items():
            self.stdout.write(f'{error_type}: {count}')

        self._section('CRAWL POSITION')
        cursor = CrawlCursor.load()
        if cursor is None:
            self.stdout.write('No crawl has run yet')
        else:
            self.stdout.write(
                f'Sub-sitemap {cursor.last_sub_sitemap_index} of {cursor.total_sub_sitemaps} '
                f'(updated {cursor.last_updated:%Y-%m-%d %H:%M:%S})'
            )

    def _section(self, title):
        self.stdout.write('')
        self.stdout.write('=' * 70)
        self.stdout.write(title)
        self.stdout.write('=' * 70)
