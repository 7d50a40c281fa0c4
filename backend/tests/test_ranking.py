"""Tests for top-N selection and the lowest-price flag."""

from decimal import Decimal

from pricescan.scraping.ranking import MAX_RETAINED_RESULTS, rank_results, select_top_results
from pricescan.scraping.types import PriceScrapingResult, ProductMatch


def result(result_id: str, price: str, confidence: float = 0.9, lowest: bool = False) -> PriceScrapingResult:
    return PriceScrapingResult(
        id=result_id,
        normalized_product_id="p-1",
        source_id="bol",
        product_title="Dior Sauvage 100ml",
        merchant="bol.com",
        url=f"https://www.bol.com/p/{result_id}",
        price=Decimal(price),
        confidence_score=confidence,
        is_lowest_price=lowest,
    )


class TestRankResults:

    def test_orders_by_price_and_flags_cheapest(self):
        ranked = rank_results([result("a", "82.50"), result("b", "79.95"), result("c", "90.00")])

        assert [r.id for r in ranked] == ["b", "a", "c"]
        assert [r.is_lowest_price for r in ranked] == [True, False, False]

    def test_clears_stale_flags(self):
        ranked = rank_results([result("a", "82.50", lowest=True), result("b", "79.95")])

        assert sum(r.is_lowest_price for r in ranked) == 1
        assert ranked[0].id == "b"

    def test_equal_prices_prefer_higher_confidence(self):
        ranked = rank_results([result("a", "80.00", 0.6), result("b", "80.00", 0.9)])

        assert [r.id for r in ranked] == ["b", "a"]
        assert ranked[0].is_lowest_price

    def test_reranking_is_idempotent(self):
        once = rank_results([result("a", "80.00"), result("b", "80.00"), result("c", "75.00")])

        assert rank_results(once) == once

    def test_empty(self):
        assert rank_results([]) == []


def test_select_top_results_keeps_best_scored(make_product):
    scored = (
        result("best", "95.00", 0.99),
        result("good", "85.00", 0.90),
        result("fair", "99.00", 0.80),
        result("cheap-but-weak", "60.00", 0.55),
    )
    match = ProductMatch(normalized_product=make_product(), scraped_results=scored, best_match=scored[0])

    top = select_top_results(match)

    assert len(top) == MAX_RETAINED_RESULTS
    assert [r.id for r in top] == ["good", "best", "fair"]
    assert top[0].is_lowest_price
