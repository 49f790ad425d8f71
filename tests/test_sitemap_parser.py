"""
Tests for the Sitemap Parser Service.

Tests parsing of urlsets, sitemap indexes, gzipped sitemaps, namespace-less
documents and location filtering.
"""

import gzip
from datetime import datetime, timezone

import pytest

from pricewatch.services.sitemap_parser import (
    SitemapParser,
    SitemapParseError,
    SitemapResult,
    SitemapURL,
)


STANDARD_SITEMAP_XML = """<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <url>
    <loc>https://shop.example.com/products/cafe-britt</loc>
    <lastmod>2024-01-15</lastmod>
  </url>
  <url>
    <loc>https://shop.example.com/products/arroz-tio-pelon</loc>
    <lastmod>2024-01-10T08:30:00Z</lastmod>
  </url>
  <url>
    <loc>https://shop.example.com/pages/about</loc>
  </url>
</urlset>
"""

SITEMAP_INDEX_XML = """<?xml version="1.0" encoding="UTF-8"?>
<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <sitemap>
    <loc>https://shop.example.com/sitemap_products_1.xml?from=1&amp;to=99</loc>
  </sitemap>
  <sitemap>
    <loc>https://shop.example.com/sitemap_pages_1.xml</loc>
  </sitemap>
  <sitemap>
    <loc>https://shop.example.com/products/sitemap_2.xml</loc>
  </sitemap>
</sitemapindex>
"""

NO_NAMESPACE_URLSET_XML = """<?xml version="1.0" encoding="UTF-8"?>
<urlset>
  <url><loc>https://shop.example.com/products/a</loc></url>
  <url><loc>https://shop.example.com/products/b</loc></url>
</urlset>
"""

EMPTY_SITEMAP_XML = """<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
</urlset>
"""


@pytest.fixture
def parser():
    return SitemapParser()


class TestUrlsetParsing:
    """Tests for <urlset> documents."""

    def test_parses_locations_in_order(self, parser):
        """Locations are returned exactly as listed, in document order."""
        result = parser.parse(STANDARD_SITEMAP_XML, "https://shop.example.com/s.xml")

        assert isinstance(result, SitemapResult)
        assert result.is_index is False
        assert result.locations == [
            "https://shop.example.com/products/cafe-britt",
            "https://shop.example.com/products/arroz-tio-pelon",
            "https://shop.example.com/pages/about",
        ]
        assert result.total_urls == 3

    def test_lastmod_is_parsed_as_aware_datetime(self, parser):
        """Date-only and Zulu timestamps both become UTC datetimes."""
        result = parser.parse(STANDARD_SITEMAP_XML, "https://shop.example.com/s.xml")

        assert result.urls[0].lastmod == datetime(2024, 1, 15, tzinfo=timezone.utc)
        assert result.urls[1].lastmod == datetime(2024, 1, 10, 8, 30, tzinfo=timezone.utc)
        assert result.urls[2].lastmod is None

    def test_source_is_tracked(self, parser):
        result = parser.parse(STANDARD_SITEMAP_XML, "https://shop.example.com/s.xml")

        assert all(isinstance(u, SitemapURL) for u in result.urls)
        assert result.urls[0].sitemap_source == "https://shop.example.com/s.xml"

    def test_invalid_lastmod_is_a_soft_error(self, parser):
        """A bad date does not drop the URL."""
        xml = """<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
        <url><loc>https://shop.example.com/products/x</loc><lastmod>yesterday</lastmod></url>
        </urlset>"""

        result = parser.parse(xml, "https://shop.example.com/s.xml")

        assert result.locations == ["https://shop.example.com/products/x"]
        assert result.parse_errors == ["Invalid date format: yesterday"]

    def test_namespace_less_document(self, parser):
        result = parser.parse(NO_NAMESPACE_URLSET_XML, "https://shop.example.com/s.xml")

        assert result.locations == [
            "https://shop.example.com/products/a",
            "https://shop.example.com/products/b",
        ]

    def test_empty_urlset(self, parser):
        result = parser.parse(EMPTY_SITEMAP_XML, "https://shop.example.com/s.xml")

        assert result.is_index is False
        assert result.locations == []


class TestSitemapIndexParsing:
    """Tests for <sitemapindex> documents."""

    def test_child_sitemaps_in_order(self, parser):
        result = parser.parse(SITEMAP_INDEX_XML.encode("utf-8"), "https://shop.example.com/sitemap.xml")

        assert result.is_index is True
        assert result.urls == []
        assert result.child_sitemaps == [
            "https://shop.example.com/sitemap_products_1.xml?from=1&to=99",
            "https://shop.example.com/sitemap_pages_1.xml",
            "https://shop.example.com/products/sitemap_2.xml",
        ]

    def test_parse_urlset_rejects_index(self, parser):
        with pytest.raises(SitemapParseError):
            parser.parse_urlset(SITEMAP_INDEX_XML, "https://shop.example.com/sitemap.xml")


class TestGzipAndErrors:
    """Tests for compressed and malformed input."""

    def test_gzip_detected_by_magic_bytes(self, parser):
        body = gzip.compress(STANDARD_SITEMAP_XML.encode("utf-8"))

        result = parser.parse(body, "https://shop.example.com/s.xml")

        assert result.total_urls == 3

    def test_corrupt_gzip_raises(self, parser):
        with pytest.raises(SitemapParseError):
            parser.parse(b"not gzip at all", "https://shop.example.com/s.xml.gz")

    def test_invalid_xml_raises(self, parser):
        with pytest.raises(SitemapParseError):
            parser.parse("<urlset><url><loc>broken", "https://shop.example.com/s.xml")

    def test_html_error_page_raises(self, parser):
        """A storefront error page served in place of a sitemap is not a sitemap."""
        with pytest.raises(SitemapParseError):
            parser.parse("<html><body>Access denied</body></html>", "https://shop.example.com/s.xml")

    def test_empty_body_raises(self, parser):
        with pytest.raises(SitemapParseError):
            parser.parse(b"  ", "https://shop.example.com/s.xml")


class TestFilterLocations:
    def test_keeps_matching_in_order(self):
        locations = [
            "https://shop.example.com/products/sitemap_1.xml",
            "https://shop.example.com/pages/sitemap.xml",
            "https://shop.example.com/products/sitemap_2.xml",
        ]

        assert SitemapParser.filter_locations(locations, "/products/") == [
            "https://shop.example.com/products/sitemap_1.xml",
            "https://shop.example.com/products/sitemap_2.xml",
        ]

    def test_empty_pattern_keeps_everything(self):
        locations = ["a", "b"]

        assert SitemapParser.filter_locations(locations, "") == ["a", "b"]
