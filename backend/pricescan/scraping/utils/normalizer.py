"""Normalization utilities for scraped prices, URLs and currencies."""

import re
import time
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Dict, Optional
from urllib.parse import parse_qs, urlencode, urljoin, urlparse, urlunparse

import httpx
import structlog

from pricescan.config import settings

logger = structlog.get_logger(__name__)


OUT_OF_STOCK_MARKERS = (
    "out of stock",
    "sold out",
    "currently unavailable",
    "niet op voorraad",
    "niet leverbaar",
    "uitverkocht",
    "tijdelijk uitverkocht",
    "nicht verfügbar",
    "rupture de stock",
)

FREE_SHIPPING_MARKERS = (
    "free",
    "gratis",
    "kostenloos",
    "kostenlos",
    "offerte",
)

TRACKING_PARAMS = (
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_content",
    "utm_term",
    "ref",
    "fbclid",
    "gclid",
    "mc_cid",
    "mc_eid",
)


class PriceNormalizer:
    """Price string parsing for European and US formatted prices."""

    _CURRENCY_SYMBOLS = {"€": "EUR", "$": "USD", "£": "GBP"}

    @staticmethod
    def clean_price_string(raw: Optional[str]) -> Optional[Decimal]:
        """Parse a price string and extract its numeric value.

        Handles:
        - "€ 79,95" -> 79.95
        - "1.299,00" -> 1299.00
        - "$1,299.00" -> 1299.00
        - "79,-" -> 79
        - "1.299" -> 1299 (a single dot followed by three digits is a
          thousands separator)

        Args:
            raw: Raw price string

        Returns:
            Decimal price value, or None if parsing fails
        """
        if not raw:
            return None

        match = re.search(r"\d[\d.,\s]*", raw.replace("\xa0", " "))
        if not match:
            return None
        cleaned = re.sub(r"\s", "", match.group(0)).rstrip(".,")
        if not cleaned:
            return None

        last_comma = cleaned.rfind(",")
        last_dot = cleaned.rfind(".")

        if last_comma >= 0 and last_dot >= 0:
            if last_comma > last_dot:
                cleaned = cleaned.replace(".", "").replace(",", ".")
            else:
                cleaned = cleaned.replace(",", "")
        elif last_comma >= 0:
            groups = cleaned.split(",")
            if len(groups) > 2 or len(groups[-1]) == 3:
                cleaned = cleaned.replace(",", "")
            else:
                cleaned = cleaned.replace(",", ".")
        elif last_dot >= 0:
            groups = cleaned.split(".")
            if len(groups) > 2 or len(groups[-1]) == 3:
                cleaned = cleaned.replace(".", "")

        try:
            return Decimal(cleaned)
        except InvalidOperation:
            return None

    @classmethod
    def detect_currency(cls, raw: Optional[str], default: str = "EUR") -> str:
        """Guess the currency of a price string from its symbol or ISO code."""
        if not raw:
            return default
        for symbol, code in cls._CURRENCY_SYMBOLS.items():
            if symbol in raw:
                return code
        iso = re.search(r"\b(EUR|USD|GBP|CHF|SEK|DKK|PLN)\b", raw.upper())
        return iso.group(1) if iso else default

    @classmethod
    def parse_shipping_cost(cls, raw: Optional[str]) -> Optional[Decimal]:
        """Parse a shipping note into a cost; free-shipping markers yield 0."""
        if not raw:
            return None
        lowered = raw.lower()
        if any(marker in lowered for marker in FREE_SHIPPING_MARKERS):
            return Decimal("0")
        return cls.clean_price_string(raw)


def is_available(text: Optional[str]) -> bool:
    """Availability flag from a stock note; no note means available."""
    if not text:
        return True
    lowered = text.lower()
    return not any(marker in lowered for marker in OUT_OF_STOCK_MARKERS)


def resolve_url(href: Optional[str], base_url: str) -> str:
    """Make a scraped href absolute against the source base URL."""
    if not href:
        return ""
    href = href.strip()
    if href.startswith("//"):
        return f"https:{href}"
    return urljoin(base_url if base_url.endswith("/") else base_url + "/", href)


def normalize_url(url: str) -> str:
    """Normalize a URL by removing tracking parameters and fragments."""
    if not url:
        return url

    parsed = urlparse(url)
    query_params = parse_qs(parsed.query)
    filtered_params = {
        k: v for k, v in query_params.items() if k not in TRACKING_PARAMS
    }
    new_query = urlencode(filtered_params, doseq=True)

    return urlunparse(
        (parsed.scheme, parsed.netloc, parsed.path, parsed.params, new_query, "")
    )


class CurrencyConverter:
    """EUR-based exchange rates with optional live refresh.

    Live rates come from EXCHANGE_RATE_API_URL and are cached for
    ttl_seconds; fallback rates are used when the API is unavailable.
    Rates are expressed as units of the currency per 1 EUR.
    """

    FALLBACK_RATES: Dict[str, Decimal] = {
        "EUR": Decimal("1"),
        "USD": Decimal("1.08"),
        "GBP": Decimal("0.85"),
        "CHF": Decimal("0.95"),
        "SEK": Decimal("11.40"),
        "DKK": Decimal("7.46"),
        "PLN": Decimal("4.30"),
    }

    def __init__(self, ttl_seconds: int = 3600, api_url: Optional[str] = None):
        self.ttl_seconds = ttl_seconds
        self.api_url = api_url or settings.EXCHANGE_RATE_API_URL
        self._live_rates: Dict[str, Decimal] = {}
        self._last_fetched: float = 0.0

    async def refresh_rates(self, client: Optional[httpx.AsyncClient] = None) -> bool:
        """Fetch live exchange rates.

        Returns:
            True if rates were successfully updated
        """
        try:
            if client is None:
                async with httpx.AsyncClient(timeout=10) as own_client:
                    resp = await own_client.get(self.api_url)
            else:
                resp = await client.get(self.api_url)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("exchange_rate_fetch_failed", error=str(e))
            return False

        new_rates: Dict[str, Decimal] = {"EUR": Decimal("1")}
        for code, rate in (data.get("rates") or {}).items():
            try:
                value = Decimal(str(rate))
            except InvalidOperation:
                continue
            if value > 0:
                new_rates[code.upper()] = value

        self._live_rates = new_rates
        self._last_fetched = time.monotonic()
        logger.info("exchange_rates_updated", currencies=len(new_rates))
        return True

    def get_rate(self, currency: str) -> Decimal:
        """Units of `currency` per EUR."""
        currency = currency.upper()
        if self._live_rates and (time.monotonic() - self._last_fetched < self.ttl_seconds):
            rate = self._live_rates.get(currency)
            if rate is not None:
                return rate
        rate = self.FALLBACK_RATES.get(currency)
        if rate is None:
            raise ValueError(f"No exchange rate for currency: {currency}")
        return rate

    def convert(self, amount: Decimal, from_currency: str, to_currency: str) -> Decimal:
        """Convert an amount between currencies, rounded to cents."""
        if from_currency.upper() == to_currency.upper():
            return amount
        eur = amount / self.get_rate(from_currency)
        converted = eur * self.get_rate(to_currency)
        return converted.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
