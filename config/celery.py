"""
Celery configuration for the Pricewatch crawler.

Crawl runs are long, network-bound and must never overlap on the same
store, so they go to a dedicated ``crawl`` queue that is expected to be
served by a single worker with concurrency 1.
"""

import os
from celery import Celery
from celery.schedules import crontab

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("pricewatch")

# - namespace='CELERY' means all celery-related configuration keys
#   should have a `CELERY_` prefix.
app.config_from_object("django.conf:settings", namespace="CELERY")

# Load task modules from all registered Django apps.
app.autodiscover_tasks()

app.conf.task_queues = {
    "crawl": {
        "exchange": "crawl",
        "routing_key": "crawl",
    },
    "default": {
        "exchange": "default",
        "routing_key": "default",
    },
}

app.conf.task_default_queue = "default"
app.conf.task_default_exchange = "default"
app.conf.task_default_routing_key = "default"

app.conf.task_routes = {
    "pricewatch.tasks.crawl_*": {"queue": "crawl"},
}

# Daily: refresh prices of every active product.
# Weekly: walk the sitemap window and re-check known 404s.
app.conf.beat_schedule = {
    "refresh-active-products-daily": {
        "task": "pricewatch.tasks.crawl_daily",
        "schedule": crontab(hour=3, minute=0),
    },
    "discover-from-sitemaps-weekly": {
        "task": "pricewatch.tasks.crawl_weekly",
        "schedule": crontab(hour=4, minute=0, day_of_week="sun"),
    },
}
