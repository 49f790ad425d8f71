"""
Sentry error tracking integration for the crawler.

- SDK is configured in settings/base.py (an empty SENTRY_DSN disables sending)
- Adds breadcrumbs for crawl context (stage, URL)
- Filters sensitive data (cookies, API keys)
- Captures exceptions and threshold alerts with proper context

Usage:
    from pricewatch.monitoring import capture_crawl_error

    try:
        store.record_success(url, extracted)
    except DatabaseError as e:
        capture_crawl_error(error=e, url=url, stage="persist")
"""

import logging
from typing import Any, Dict, Optional

import sentry_sdk

logger = logging.getLogger(__name__)

# Sensitive fields to filter from Sentry events
SENSITIVE_FIELDS = {
    "cookies",
    "cookie",
    "api_key",
    "apikey",
    "api-key",
    "authorization",
    "auth",
    "password",
    "secret",
    "token",
    "x-api-key",
}


def _filter_sensitive_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Filter sensitive data from a dictionary.

    Replaces values for keys that match sensitive field names, recursing
    into nested dicts.
    """
    if not isinstance(data, dict):
        return data

    filtered = {}
    for key, value in data.items():
        key_lower = key.lower()

        if any(sensitive in key_lower for sensitive in SENSITIVE_FIELDS):
            filtered[key] = "[Filtered]"
        elif isinstance(value, dict):
            filtered[key] = _filter_sensitive_data(value)
        else:
            filtered[key] = value

    return filtered


def add_crawl_breadcrumb(
    url: str,
    stage: str,
    message: str = "Crawl operation",
    level: str = "info",
    extra_data: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Add a breadcrumb to Sentry for crawl context.

    Args:
        url: URL being processed
        stage: Crawl stage (sitemap_index, sub_sitemap, page, persist)
        message: Description of the operation
        level: Log level (info, warning, error)
        extra_data: Additional context data
    """
    breadcrumb_data = {
        "url": url,
        "stage": stage,
    }

    if extra_data:
        breadcrumb_data.update(_filter_sensitive_data(extra_data))

    sentry_sdk.add_breadcrumb(
        category="crawl",
        message=message,
        level=level,
        data=breadcrumb_data,
    )


def capture_crawl_error(
    error: Exception,
    url: Optional[str] = None,
    stage: str = "unknown",
    extra_context: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Capture a crawl error to Sentry with full context.

    Args:
        error: The exception that occurred
        url: URL where error occurred
        stage: Crawl stage the error happened in
        extra_context: Additional context (will be filtered for sensitive data)
    """
    add_crawl_breadcrumb(
        url=url or "Unknown",
        stage=stage,
        message=f"Error: {type(error).__name__}",
        level="error",
        extra_data=extra_context,
    )

    with sentry_sdk.new_scope() as scope:
        scope.set_tag("crawler.stage", stage)

        if url:
            scope.set_extra("crawl_url", url)
        if extra_context:
            scope.set_extra("crawl_context", _filter_sensitive_data(extra_context))

        sentry_sdk.capture_exception(error)


def capture_alert(
    message: str,
    level: str = "warning",
    alert_type: str = "threshold_breach",
    extra_data: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Capture an alert message to Sentry.

    Used for threshold breaches and monitoring alerts.

    Args:
        message: Alert message
        level: Severity level (warning, error)
        alert_type: Tag value used to group alerts
        extra_data: Additional alert data
    """
    with sentry_sdk.new_scope() as scope:
        scope.set_tag("alert.type", alert_type)

        if extra_data:
            scope.set_extra("alert_data", _filter_sensitive_data(extra_data))

        sentry_sdk.capture_message(message, level=level)
