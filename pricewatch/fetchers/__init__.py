"""
HTTP fetching for the crawler.

ResourceFetcher wraps a single pooled httpx.AsyncClient; every stage of a
run (sitemap index, sub-sitemaps, product pages) shares one instance.
"""

from .http_fetcher import (
    FetchError,
    FetchResponse,
    FetchTimeout,
    HttpStatusError,
    NetworkError,
    ResourceFetcher,
)

__all__ = [
    "FetchError",
    "FetchResponse",
    "FetchTimeout",
    "HttpStatusError",
    "NetworkError",
    "ResourceFetcher",
]
