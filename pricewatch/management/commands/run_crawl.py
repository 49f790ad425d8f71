"""
Management command to run one crawl.

Usage:
    python manage.py run_crawl
    python manage.py run_crawl --mode daily
    python manage.py run_crawl --mode weekly --max-sitemaps 10 --concurrency 50
    python manage.py run_crawl --mode from-db --max-products 1000
"""

import json
import logging

from django.core.management.base import BaseCommand, CommandError

from pricewatch.services.crawl_orchestrator import CrawlMode, CrawlOrchestrator

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Run a crawl in the given mode and print its summary."""

    help = 'Crawl product pages discovered from the sitemaps (weekly), active products (daily) or the whole store (from-db)'

    def add_arguments(self, parser):
        parser.add_argument(
            '--mode',
            choices=CrawlMode.CHOICES,
            default=CrawlMode.WEEKLY,
            help='Crawl mode (default: weekly)',
        )
        parser.add_argument(
            '--max-sitemaps',
            type=int,
            default=None,
            help='Sub-sitemaps to process in this run, 0 for all (default: CRAWLER_MAX_SITEMAPS_PER_RUN)',
        )
        parser.add_argument(
            '--max-products',
            type=int,
            default=None,
            help='Pages to crawl in this run, 0 for all (default: CRAWLER_MAX_PRODUCTS_PER_RUN)',
        )
        parser.add_argument(
            '--concurrency',
            type=int,
            default=None,
            help='Pages fetched at once (default: CRAWLER_PAGE_CONCURRENCY)',
        )
        parser.add_argument(
            '--sitemap-concurrency',
            type=int,
            default=None,
            help='Sub-sitemaps fetched at once (default: CRAWLER_SITEMAP_CONCURRENCY)',
        )
        parser.add_argument(
            '--sitemap-url',
            default=None,
            help='Top-level sitemap URL (default: CRAWLER_SITEMAP_URL)',
        )
        parser.add_argument(
            '--json',
            action='store_true',
            help='Print the summary as JSON',
        )

    def handle(self, *args, **options):
        for name in ('max_sitemaps', 'max_products', 'concurrency', 'sitemap_concurrency'):
            if options[name] is not None and options[name] < 0:
                raise CommandError(f'--{name.replace("_", "-")} must not be negative')

        mode = options['mode']
        orchestrator = CrawlOrchestrator(
            sitemap_url=options['sitemap_url'],
            max_sitemaps=options['max_sitemaps'],
            max_products=options['max_products'],
            page_concurrency=options['concurrency'] or None,
            sitemap_concurrency=options['sitemap_concurrency'] or None,
        )

        self.stdout.write(f'Starting {mode} crawl...')
        summary = orchestrator.run(mode)

        if options['json']:
            self.stdout.write(json.dumps(summary.to_dict(), indent=2, default=str))
        else:
            self._print_summary(summary)

        if summary.aborted:
            raise CommandError(f'Crawl aborted: {summary.abort_reason}', returncode=1)

        self.stdout.write(self.style.SUCCESS(
            f'Crawl finished: {summary.succeeded} succeeded, {summary.failed} failed'
        ))

    def _print_summary(self, summary):
        self.stdout.write('=' * 70)
        self.stdout.write(f'CRAWL SUMMARY ({summary.mode})')
        self.stdout.write('=' * 70)

        if summary.window is not None:
            self.stdout.write(f'Sub-sitemap window:   {summary.window}')
            self.stdout.write(f'Index unchanged:      {summary.index_unchanged}')
            self.stdout.write(
                f'Sub-sitemaps:         {summary.sitemaps_processed} processed, '
                f'{summary.sitemaps_failed} failed, {summary.sitemaps_from_cache} from cache'
            )
            if summary.sitemaps_retried:
                self.stdout.write(
                    f'Soft-block retries:   {summary.sitemaps_recovered}/{summary.sitemaps_retried} recovered'
                )

        self.stdout.write(f'URLs discovered:      {summary.discovered}')
        if summary.reconciliation:
            rec = summary.reconciliation
            self.stdout.write(
                f'Queue:                {rec["queued"]} ({rec["new"]} new, {rec["tracked"]} tracked, '
                f'{rec["retry"]} retry, {rec["duplicates_removed"]} duplicates, {rec["filtered"]} filtered)'
            )
        self.stdout.write(f'Succeeded:            {summary.succeeded}')
        self.stdout.write(f'Failed:               {summary.failed} ({summary.not_found} not found)')
        self.stdout.write(f'Error rate:           {summary.error_rate:.2%}')
        self.stdout.write(f'Total products:       {summary.total_products}')
        self.stdout.write(f'Total price records:  {summary.total_prices}')
        self.stdout.write('=' * 70)
