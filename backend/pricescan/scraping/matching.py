"""Confidence scoring of scraped listings against catalog products.

A listing's score combines three signals:

- token overlap: brand tokens, product-name tokens and the variant size
  found in the listing title (an EAN found in the title counts as a full
  match),
- price plausibility: how well the listing price fits the expected
  retail band over the wholesale price,
- penalty rules for listing kinds that are rarely the same product
  (testers, gift sets, samples, ...).

score = overlap * ((1 - price_weight) + price_weight * plausibility) * (1 - penalties)

Listings without any brand-token overlap score 0. Scores are rounded to
four decimals so identical inputs always yield identical rankings.
"""

import re
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple

import structlog

from pricescan.config import settings
from pricescan.scraping.types import NormalizedProduct, PriceScrapingResult, ProductMatch

logger = structlog.get_logger(__name__)


STOP_WORDS = frozenset([
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "up", "about", "into", "through", "during",
    "before", "after", "above", "below", "between", "among", "within",
    "perfume", "cologne", "eau", "de", "parfum", "spray", "bottle",
    "voor", "met", "en", "het", "van",
])


@dataclass(frozen=True)
class PenaltyRule:
    pattern: str
    penalty: float
    description: str = ""


DEFAULT_PENALTY_RULES: Tuple[PenaltyRule, ...] = (
    PenaltyRule("tester", 0.3, "Tester product penalty"),
    PenaltyRule("gift set", 0.4, "Gift set penalty"),
    PenaltyRule("bundle", 0.3, "Bundle product penalty"),
    PenaltyRule("refill", 0.2, "Refill product penalty"),
    PenaltyRule("sample", 0.5, "Sample product penalty"),
    PenaltyRule("mini", 0.1, "Mini size penalty"),
    PenaltyRule("travel", 0.1, "Travel size penalty"),
)


@dataclass(frozen=True)
class MatchingConfig:
    brand_weight: float = 0.45
    name_weight: float = 0.35
    size_weight: float = 0.20
    price_weight: float = 0.30
    min_markup: float = field(default_factory=lambda: settings.MIN_PLAUSIBLE_MARKUP)
    max_markup: float = field(default_factory=lambda: settings.MAX_PLAUSIBLE_MARKUP)
    size_tolerance: float = 0.05
    unknown_size_score: float = 0.5
    penalty_rules: Tuple[PenaltyRule, ...] = DEFAULT_PENALTY_RULES


_TOKEN_RE = re.compile(r"[^\W_]+")

_SIZE_RE = re.compile(
    r"(\d+(?:[.,]\d+)?)\s*"
    r"(fl\.?\s*oz|milliliters?|millilitres?|ml|cl|liters?|litres?|l|kilograms?|kg|grams?|g|oz)\b",
    re.IGNORECASE,
)

# unit -> (dimension, factor to ml / g)
_UNITS = {
    "ml": ("volume", 1.0),
    "cl": ("volume", 10.0),
    "l": ("volume", 1000.0),
    "floz": ("volume", 29.5735),
    "g": ("mass", 1.0),
    "kg": ("mass", 1000.0),
    "oz": ("mass", 28.3495),
}


def tokenize(text: Optional[str]) -> List[str]:
    """Lower-case word tokens of a string."""
    if not text:
        return []
    return _TOKEN_RE.findall(text.casefold())


def _normalize_unit(unit: str) -> str:
    unit = re.sub(r"[\s.]", "", unit.lower())
    if unit.startswith("fl"):
        return "floz"
    if unit.startswith("milli") or unit == "ml":
        return "ml"
    if unit == "cl":
        return "cl"
    if unit.startswith("lit") or unit == "l":
        return "l"
    if unit.startswith("kilo") or unit == "kg":
        return "kg"
    if unit.startswith("gram") or unit == "g":
        return "g"
    return unit


def parse_sizes(text: Optional[str]) -> List[Tuple[str, float]]:
    """Sizes mentioned in a text as (dimension, amount in ml or g)."""
    sizes = []
    for amount, unit in _SIZE_RE.findall(text or ""):
        dimension, factor = _UNITS.get(_normalize_unit(unit), (None, None))
        if dimension is None:
            continue
        sizes.append((dimension, float(amount.replace(",", ".")) * factor))
    return sizes


def _overlap(needles: Sequence[str], haystack: set) -> float:
    if not needles:
        return 0.0
    return sum(1 for token in needles if token in haystack) / len(needles)


class ProductMatcher:
    """Scores and ranks candidate listings for one catalog product."""

    def __init__(self, config: Optional[MatchingConfig] = None):
        self.config = config or MatchingConfig()

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    @staticmethod
    def match_ean(ean: Optional[str], title: str) -> bool:
        """EAN present in the title, in full or by its last 8 digits."""
        digits = re.sub(r"\D", "", ean or "")
        if len(digits) < 8 or not title:
            return False
        title_digits = re.sub(r"\D", "", title)
        return digits in title_digits or digits[-8:] in title_digits

    def size_score(self, variant_size: Optional[str], title: str) -> Optional[float]:
        """1.0 when a title size matches the variant, 0.0 when all differ.

        Returns None when the variant has no parseable size, and
        unknown_size_score when the title mentions no size at all.
        """
        wanted = parse_sizes(variant_size)
        if not wanted:
            return None
        found = parse_sizes(title)
        if not found:
            return self.config.unknown_size_score
        for dimension, amount in wanted:
            for other_dimension, other_amount in found:
                if dimension != other_dimension:
                    continue
                tolerance = max(amount, other_amount) * self.config.size_tolerance
                if abs(amount - other_amount) <= tolerance:
                    return 1.0
        return 0.0

    def token_overlap(self, product: NormalizedProduct, title: str) -> float:
        """Weighted brand / name / size overlap in [0, 1].

        0.0 whenever no brand token appears in the title.
        """
        title_tokens = set(tokenize(title))
        brand_tokens = tokenize(product.brand)
        name_tokens = [
            t for t in tokenize(product.product_name)
            if t not in STOP_WORDS and t not in brand_tokens
        ]

        components = []
        if brand_tokens:
            brand = _overlap(brand_tokens, title_tokens)
            if brand == 0.0:
                return 0.0
            components.append((self.config.brand_weight, brand))
        if name_tokens:
            name = _overlap(name_tokens, title_tokens)
            if not brand_tokens and name == 0.0:
                return 0.0
            components.append((self.config.name_weight, name))
        size = self.size_score(product.variant_size, title)
        if size is not None:
            components.append((self.config.size_weight, size))

        total_weight = sum(w for w, _ in components)
        if total_weight == 0:
            return 0.0
        return sum(w * v for w, v in components) / total_weight

    def price_plausibility(self, wholesale_price: Decimal, price: Decimal) -> float:
        """1.0 inside the markup band, falling linearly to 0 outside it.

        Below the band the score reaches 0 at half the minimum markup;
        above it, at twice the maximum markup. Without a wholesale price
        every price is plausible.
        """
        if wholesale_price is None or wholesale_price <= 0:
            return 1.0
        ratio = float(price) / float(wholesale_price)
        low, high = self.config.min_markup, self.config.max_markup
        if low <= ratio <= high:
            return 1.0
        if ratio < low:
            floor = low / 2
            return max(0.0, (ratio - floor) / (low - floor)) if low > floor else 0.0
        return max(0.0, 1.0 - (ratio - high) / high)

    def penalty(self, product: NormalizedProduct, title: str) -> float:
        """Summed penalties for patterns in the title but not in the product itself."""
        title_lower = title.lower()
        product_text = " ".join(
            p for p in (product.brand, product.product_name, product.variant_size) if p
        ).lower()
        total = 0.0
        for rule in self.config.penalty_rules:
            pattern = r"\b" + re.escape(rule.pattern.lower()) + r"\b"
            if re.search(pattern, title_lower) and not re.search(pattern, product_text):
                total += rule.penalty
        return total

    # ------------------------------------------------------------------
    # Scoring and ranking
    # ------------------------------------------------------------------

    def score(self, product: NormalizedProduct, result: PriceScrapingResult) -> float:
        """Confidence in [0, 1] that a listing is the catalog product."""
        title = result.product_title or ""
        overlap = self.token_overlap(product, title)
        if overlap == 0.0:
            return 0.0
        if self.match_ean(product.ean, title):
            overlap = 1.0

        plausibility = self.price_plausibility(product.wholesale_price, result.price)
        price_factor = (1.0 - self.config.price_weight) + self.config.price_weight * plausibility
        penalty_factor = max(0.0, 1.0 - self.penalty(product, title))

        value = overlap * price_factor * penalty_factor
        return round(min(1.0, max(0.0, value)), 4)

    def find_matches(
        self,
        product: NormalizedProduct,
        results: Iterable[PriceScrapingResult],
        threshold: Optional[float] = None,
    ) -> ProductMatch:
        """Score, filter and rank candidate results for a product.

        Candidates scoring 0 or below the threshold are dropped. The rest
        are ordered by descending score, then ascending price, then input
        order, and carry their score as confidence_score.

        Args:
            product: Catalog product
            results: Candidate results gathered across sources
            threshold: Minimum confidence, defaults to
                settings.DEFAULT_CONFIDENCE_THRESHOLD

        Returns:
            ProductMatch with the ranked results and the best match
        """
        if threshold is None:
            threshold = settings.DEFAULT_CONFIDENCE_THRESHOLD

        scored = []
        for index, result in enumerate(results):
            value = self.score(product, result)
            if value > 0.0 and value >= threshold:
                scored.append((value, index, result))
            else:
                logger.debug(
                    "candidate_below_threshold",
                    product_id=product.id,
                    source_id=result.source_id,
                    score=value,
                    threshold=threshold,
                )

        scored.sort(key=lambda item: (-item[0], item[2].price, item[1]))
        ranked = tuple(replace(result, confidence_score=value) for value, _, result in scored)

        best = ranked[0] if ranked else None
        margin = None
        if best is not None and product.wholesale_price > 0:
            margin = round(
                float((best.price - product.wholesale_price) / product.wholesale_price * 100), 2
            )

        return ProductMatch(
            normalized_product=product,
            scraped_results=ranked,
            best_match=best,
            confidence_score=best.confidence_score if best else 0.0,
            margin_opportunity=margin,
        )
