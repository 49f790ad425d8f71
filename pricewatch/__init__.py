"""
Pricewatch Django application.

Resumable sitemap crawler that discovers product pages, scrapes their
price/title/SKU and keeps a time-series price history with failure tracking.
"""
