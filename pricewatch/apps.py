"""
Pricewatch application configuration.
"""

from django.apps import AppConfig


class PricewatchConfig(AppConfig):
    """Configuration for the pricewatch Django application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "pricewatch"
    verbose_name = "Price Watch Crawler"
