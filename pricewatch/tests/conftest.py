"""
Fixtures shared with the service-level suite.
"""

from tests.conftest import (  # noqa: F401
    crawl_loop,
    django_db_setup,
    fake_site,
    fetcher,
    sitemap_dir,
)
