"""
Sitemap Parser Service.

Parses sitemap index documents and URL-set documents (plain or gzipped)
that have already been downloaded. Fetching is the caller's job so that the
same parser serves network bodies and local cache files alike.

Features:
- Detect sitemap index vs urlset from the root element
- Gzip support by magic bytes or .gz suffix
- Namespaced and namespace-less documents
- Substring filtering of <loc> values
"""

import gzip
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_timezone
from typing import Iterable, List, Optional, Union
from xml.etree import ElementTree as ET

logger = logging.getLogger(__name__)


# XML namespaces for sitemaps
SITEMAP_NS = {"sm": "http://www.sitemaps.org/schemas/sitemap/0.9"}


class SitemapParseError(Exception):
    """Exception raised for sitemap parsing errors."""

    pass


@dataclass
class SitemapURL:
    """
    Represents a URL entry from a sitemap.

    Attributes:
        url: The URL location, exactly as listed
        sitemap_source: The sitemap file this URL was parsed from
        lastmod: Last modification date
    """

    url: str
    sitemap_source: str
    lastmod: Optional[datetime] = None


@dataclass
class SitemapResult:
    """
    Result of parsing a sitemap.

    Attributes:
        urls: Parsed SitemapURL objects (urlset documents)
        is_index: Whether this is a sitemap index file
        child_sitemaps: Child sitemap URLs in document order (index documents)
        parse_errors: Non-fatal parse errors encountered
    """

    urls: List[SitemapURL]
    is_index: bool
    child_sitemaps: List[str]
    parse_errors: List[str] = field(default_factory=list)

    @property
    def locations(self) -> List[str]:
        return [u.url for u in self.urls]

    @property
    def total_urls(self) -> int:
        return len(self.urls)


class SitemapParser:
    """
    Parser for XML sitemaps and sitemap indexes.
    """

    def parse(self, content: Union[bytes, str], source_url: str) -> SitemapResult:
        """
        Parse a downloaded sitemap body.

        Args:
            content: Raw body (bytes or str), optionally gzipped
            source_url: URL the body came from (for tracking source)

        Returns:
            SitemapResult with parsed URLs or child sitemaps

        Raises:
            SitemapParseError: If the body cannot be decompressed or parsed
        """
        if source_url.endswith(".gz") or self._is_gzipped(content):
            try:
                content = self._decompress_gzip(content)
            except (OSError, EOFError, UnicodeDecodeError) as e:
                raise SitemapParseError(f"Failed to decompress gzipped sitemap: {e}")

        if isinstance(content, str):
            # ElementTree refuses str input carrying an encoding declaration
            content = content.encode("utf-8")

        if not content.strip():
            raise SitemapParseError(f"Empty sitemap body: {source_url}")

        return self._parse_xml(content, source_url)

    def parse_urlset(self, content: Union[bytes, str], source_url: str) -> SitemapResult:
        """Parse a body that must be a <urlset> document."""
        result = self.parse(content, source_url)
        if result.is_index:
            raise SitemapParseError(f"Expected urlset, got sitemap index: {source_url}")
        return result

    @staticmethod
    def filter_locations(locations: Iterable[str], pattern: str) -> List[str]:
        """
        Keep locations containing ``pattern``, preserving order.

        An empty pattern keeps everything.
        """
        if not pattern:
            return list(locations)
        return [loc for loc in locations if pattern in loc]

    def _is_gzipped(self, content: Union[bytes, str]) -> bool:
        """Check if content is gzip compressed by magic bytes."""
        if isinstance(content, str):
            return False
        return len(content) >= 2 and content[:2] == b"\x1f\x8b"

    def _decompress_gzip(self, content: Union[bytes, str]) -> bytes:
        if isinstance(content, str):
            content = content.encode("utf-8")
        return gzip.decompress(content)

    def _parse_xml(self, content: bytes, source_url: str) -> SitemapResult:
        try:
            root = ET.fromstring(content)
        except ET.ParseError as e:
            raise SitemapParseError(f"Invalid XML in {source_url}: {e}")

        # Detect sitemap type from root element
        root_tag = root.tag.lower()

        if "sitemapindex" in root_tag:
            return self._parse_sitemap_index_xml(root, source_url)
        elif "urlset" in root_tag:
            return self._parse_urlset_xml(root, source_url)
        else:
            raise SitemapParseError(f"Unknown sitemap root element: {root.tag}")

    def _parse_sitemap_index_xml(self, root: ET.Element, source_url: str) -> SitemapResult:
        child_sitemaps = []

        for sitemap in root.findall("sm:sitemap", SITEMAP_NS):
            loc = sitemap.find("sm:loc", SITEMAP_NS)
            if loc is not None and loc.text:
                child_sitemaps.append(loc.text.strip())

        # Try without namespace if no results
        if not child_sitemaps:
            for sitemap in root.findall("sitemap"):
                loc = sitemap.find("loc")
                if loc is not None and loc.text:
                    child_sitemaps.append(loc.text.strip())

        logger.debug(f"Parsed sitemap index {source_url} with {len(child_sitemaps)} child sitemaps")

        return SitemapResult(
            urls=[],
            is_index=True,
            child_sitemaps=child_sitemaps,
        )

    def _parse_urlset_xml(self, root: ET.Element, source_url: str) -> SitemapResult:
        urls = []
        parse_errors = []

        url_elements = root.findall("sm:url", SITEMAP_NS)
        if not url_elements:
            url_elements = root.findall("url")

        for url_elem in url_elements:
            parsed_url = self._parse_url_element(url_elem, source_url, parse_errors)
            if parsed_url:
                urls.append(parsed_url)

        logger.debug(f"Parsed sitemap {source_url} with {len(urls)} URLs")

        return SitemapResult(
            urls=urls,
            is_index=False,
            child_sitemaps=[],
            parse_errors=parse_errors,
        )

    def _parse_url_element(
        self, url_elem: ET.Element, source_url: str, parse_errors: List[str]
    ) -> Optional[SitemapURL]:
        loc = url_elem.find("sm:loc", SITEMAP_NS)
        if loc is None:
            loc = url_elem.find("loc")
        if loc is None or not loc.text:
            return None

        lastmod = None
        lastmod_elem = url_elem.find("sm:lastmod", SITEMAP_NS)
        if lastmod_elem is None:
            lastmod_elem = url_elem.find("lastmod")
        if lastmod_elem is not None and lastmod_elem.text:
            lastmod = self._parse_date(lastmod_elem.text.strip(), parse_errors)

        return SitemapURL(
            url=loc.text.strip(),
            sitemap_source=source_url,
            lastmod=lastmod,
        )

    def _parse_date(self, date_str: str, parse_errors: List[str]) -> Optional[datetime]:
        """
        Parse a lastmod value.

        Supported formats:
        - YYYY-MM-DD
        - YYYY-MM-DDTHH:MM:SSZ
        - YYYY-MM-DDTHH:MM:SS+HH:MM
        """
        try:
            parsed = datetime.fromisoformat(date_str.replace("Z", "+00:00"))
        except ValueError:
            parse_errors.append(f"Invalid date format: {date_str}")
            return None

        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=dt_timezone.utc)
        return parsed
