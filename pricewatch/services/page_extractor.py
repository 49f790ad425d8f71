"""
Page Extractor.

Pulls title, SKU and price out of a product page with BeautifulSoup.

Each field is extracted by an ordered list of strategies: callables that
take the parsed document and return a string or None. The first non-empty
result wins, so selectors for a redesigned storefront can be swapped in
through the constructor without touching the crawl engine.
"""

import logging
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Callable, List, Optional, Sequence

from bs4 import BeautifulSoup
from django.conf import settings

logger = logging.getLogger(__name__)

Strategy = Callable[[BeautifulSoup], Optional[str]]

PRICE_NUMBER_RE = re.compile(r"[\d,]+\.?\d*")
SKU_RE = re.compile(r'"sku"\s*:\s*"([^"]+)"')

# Checked in order; the first symbol found in the price text decides
CURRENCY_MARKERS = [
    (("₡",), "CRC"),
    (("$", "USD"), "USD"),
    (("€", "EUR"), "EUR"),
    (("£", "GBP"), "GBP"),
]


class ExtractionError(Exception):
    """Exception raised when a page cannot be processed at all."""

    pass


@dataclass
class ExtractedProduct:
    """
    Fields scraped from one product page.

    ``price`` is None when no usable price was found; such a page has
    nothing to persist.
    """

    title: str
    sku: Optional[str]
    price: Optional[Decimal]
    currency: str

    @property
    def has_price(self) -> bool:
        return self.price is not None and self.price > 0


def _first_text(selector: str) -> Strategy:
    def strategy(soup: BeautifulSoup) -> Optional[str]:
        element = soup.select_one(selector)
        return element.get_text(strip=True) if element else None

    strategy.__name__ = f"text({selector})"
    return strategy


def _meta_content(prop: str) -> Strategy:
    def strategy(soup: BeautifulSoup) -> Optional[str]:
        element = soup.find("meta", attrs={"property": prop})
        if element is None:
            return None
        content = element.get("content")
        return content.strip() if content else None

    strategy.__name__ = f"meta({prop})"
    return strategy


def sku_from_scripts(soup: BeautifulSoup) -> Optional[str]:
    """Find ``"sku": "..."`` in an inline script that describes a product."""
    for script in soup.find_all("script"):
        content = script.string or script.get_text()
        if not content or "product" not in content or "sku" not in content:
            continue
        match = SKU_RE.search(content)
        if match:
            return match.group(1)
    return None


DEFAULT_TITLE_STRATEGIES: List[Strategy] = [
    _first_text("h1"),
    _meta_content("og:title"),
    _first_text("title"),
]

DEFAULT_SKU_STRATEGIES: List[Strategy] = [
    sku_from_scripts,
]

DEFAULT_PRICE_STRATEGIES: List[Strategy] = [
    _first_text(".money"),
    _first_text(".price"),
    _first_text('[class*="price"]'),
    _first_text('[id*="price"]'),
    _meta_content("og:price:amount"),
]


def parse_price(text: Optional[str]) -> Optional[Decimal]:
    """
    Parse the first number in a price string.

    Handles formats like "₡4,700" or "$1,234.56". Commas are treated as
    thousands separators.
    """
    if not text:
        return None

    match = PRICE_NUMBER_RE.search(text)
    if not match:
        return None

    number = match.group(0).replace(",", "")
    if not number:
        return None

    try:
        return Decimal(number)
    except InvalidOperation:
        return None


def detect_currency(text: Optional[str], default: str = "CRC") -> str:
    """Detect the currency code from symbols in the price text."""
    if text:
        for markers, code in CURRENCY_MARKERS:
            if any(marker in text for marker in markers):
                return code
    return default


class PageExtractor:
    """
    Strategy-based product field extractor.
    """

    def __init__(
        self,
        title_strategies: Optional[Sequence[Strategy]] = None,
        sku_strategies: Optional[Sequence[Strategy]] = None,
        price_strategies: Optional[Sequence[Strategy]] = None,
        default_currency: Optional[str] = None,
    ):
        self.title_strategies = list(
            title_strategies if title_strategies is not None else DEFAULT_TITLE_STRATEGIES
        )
        self.sku_strategies = list(
            sku_strategies if sku_strategies is not None else DEFAULT_SKU_STRATEGIES
        )
        self.price_strategies = list(
            price_strategies if price_strategies is not None else DEFAULT_PRICE_STRATEGIES
        )
        self.default_currency = default_currency or getattr(
            settings, "CRAWLER_DEFAULT_CURRENCY", "CRC"
        )

    def extract(self, html: str, url: Optional[str] = None) -> ExtractedProduct:
        """
        Extract product fields from a page.

        Args:
            html: Page HTML
            url: Page URL, used as the title of last resort

        Returns:
            ExtractedProduct (price None when no price was found)

        Raises:
            ExtractionError: If the document cannot be parsed
        """
        try:
            soup = BeautifulSoup(html, "html.parser")
        except Exception as e:
            raise ExtractionError(f"Could not parse HTML: {e}") from e

        title = self._first(self.title_strategies, soup) or url or ""
        sku = self._first(self.sku_strategies, soup)
        price_text = self._first(self.price_strategies, soup)

        price = parse_price(price_text)
        currency = detect_currency(price_text, self.default_currency)

        if price is None:
            logger.debug(f"No price found on {url}")

        return ExtractedProduct(title=title, sku=sku, price=price, currency=currency)

    def _first(self, strategies: Sequence[Strategy], soup: BeautifulSoup) -> Optional[str]:
        for strategy in strategies:
            value = strategy(soup)
            if value:
                return value
        return None
