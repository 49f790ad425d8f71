"""
Monitoring and alerting for the crawler.

- Sentry error tracking with crawl context
- Per-URL failure ledger with threshold alerts
- Per-run error rate monitoring

Thresholds (configurable):
- Failures of a single URL: 5
- Run error rate: 10%
"""

from .sentry_integration import add_crawl_breadcrumb, capture_alert, capture_crawl_error
from .failure_tracker import FailureTracker
from .error_rate_monitor import check_run_error_rate, get_recent_failure_counts

__all__ = [
    "add_crawl_breadcrumb",
    "capture_alert",
    "capture_crawl_error",
    "FailureTracker",
    "check_run_error_rate",
    "get_recent_failure_counts",
]
