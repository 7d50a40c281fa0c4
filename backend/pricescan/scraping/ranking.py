"""Selection of retained results and the lowest-price flag."""

from dataclasses import replace
from typing import List, Sequence

from pricescan.scraping.types import PriceScrapingResult, ProductMatch

MAX_RETAINED_RESULTS = 3


def rank_results(results: Sequence[PriceScrapingResult]) -> List[PriceScrapingResult]:
    """Order results by ascending price and flag only the cheapest.

    Equal prices keep the higher-confidence result first, then input
    order, so re-ranking an already ranked list reproduces it exactly.
    """
    ordered = sorted(
        enumerate(results),
        key=lambda pair: (pair[1].price, -pair[1].confidence_score, pair[0]),
    )
    return [
        replace(result, is_lowest_price=(position == 0))
        for position, (_, result) in enumerate(ordered)
    ]


def select_top_results(match: ProductMatch, limit: int = MAX_RETAINED_RESULTS) -> List[PriceScrapingResult]:
    """The `limit` best-scoring matches, ranked by price with the cheapest flagged."""
    return rank_results(match.scraped_results[:limit])
