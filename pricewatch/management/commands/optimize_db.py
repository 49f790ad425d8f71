"""
Management command to optimize the SQLite price store.

Usage:
    python manage.py optimize_db
    python manage.py optimize_db --skip-vacuum
"""

import logging

from django.core.management.base import BaseCommand

from pricewatch.services import maintenance, store_stats

logger = logging.getLogger(__name__)

MB = 1024 * 1024


class Command(BaseCommand):
    """Refresh planner statistics, tune pragmas and compact the database."""

    help = 'Run ANALYZE, apply performance pragmas and VACUUM the SQLite database'

    def add_arguments(self, parser):
        parser.add_argument(
            '--skip-vacuum',
            action='store_true',
            help='Do not VACUUM (VACUUM rewrites the whole file and can take a while)',
        )

    def handle(self, *args, **options):
        if not maintenance.is_sqlite():
            self.stdout.write(self.style.WARNING('Not a SQLite database, running ANALYZE only'))
            maintenance.analyze()
            self.stdout.write(self.style.SUCCESS('Analysis complete'))
            return

        initial_size = store_stats.database_size_bytes()
        if initial_size is not None:
            self.stdout.write(f'Initial database size: {initial_size / MB:.2f} MB')

        self._section('CURRENT INDEXES')
        for table, name, sql in maintenance.list_indexes():
            self.stdout.write(f'{table}.{name}')
            self.stdout.write(f'  {sql}')

        self._section('ANALYZING TABLES')
        maintenance.analyze()
        self.stdout.write(self.style.SUCCESS('Analysis complete'))

        self._section('PRAGMAS')
        for name, before, after in maintenance.apply_pragmas():
            self.stdout.write(f'{name}: {before} -> {after}')

        if options['skip_vacuum']:
            self.stdout.write(self.style.WARNING('Skipping VACUUM'))
        else:
            self._section('VACUUM')
            maintenance.vacuum()
            self.stdout.write(self.style.SUCCESS('Vacuum complete'))

            final_size = store_stats.database_size_bytes()
            if initial_size and final_size is not None:
                saved = initial_size - final_size
                self.stdout.write(f'Final size:  {final_size / MB:.2f} MB')
                self.stdout.write(f'Space saved: {saved / MB:.2f} MB ({saved / initial_size:.2%})')

        self._section('TABLE STATISTICS')
        for table, count in store_stats.table_counts().items():
            self.stdout.write(f'{table:<20}: {count:,} rows')

        self.stdout.write(self.style.SUCCESS('Optimization complete'))

    def _section(self, title):
        self.stdout.write('')
        self.stdout.write('=' * 70)
        self.stdout.write(title)
        self.stdout.write('=' * 70)
