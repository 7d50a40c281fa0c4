"""pricescan -- competitor price-scraping and matching engine.

Fetches comparable retail listings for a catalog of normalized wholesale
products from configured retail sources, scores them against the catalog
and reports ranked price observations per product.
"""

__version__ = "0.1.0"
