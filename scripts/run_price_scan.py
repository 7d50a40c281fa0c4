"""Manual price-scan runner.

Runs one scraping job from JSON files holding the source configurations
and the products to price, stores the job and its results, and prints a
summary with the retained prices per product.

Usage:
    python scripts/run_price_scan.py --sources sources.json --products products.json
    python scripts/run_price_scan.py --sources sources.json --products products.json \
        --batch-size 5 --delay-ms 2000 --threshold 0.6
"""

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import List

# Add backend to path so we can import pricescan without installing it
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "backend"))

from pydantic import ValidationError

from pricescan.config import settings
from pricescan.core.exceptions import PriceScanError
from pricescan.core.logging import configure_logging
from pricescan.db.session import build_engine, build_session_factory, create_tables
from pricescan.schemas.scraping import JobConfigIn, JobDescriptor, NormalizedProductIn, SourceConfigIn
from pricescan.scraping.manager import ScrapingManager
from pricescan.scraping.register_adapters import register_all_adapters
from pricescan.scraping.types import NormalizedProduct, SourceConfiguration
from pricescan.services.job_store import ScrapingJobStore
from pricescan.services.price_scan_service import PriceScanService


def _load_json_list(path: str) -> list:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        # Accept {"sources": [...]} / {"products": [...]} wrappers
        data = next((v for v in data.values() if isinstance(v, list)), [])
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a JSON list")
    return data


def load_sources(path: str) -> List[SourceConfiguration]:
    return [SourceConfigIn.model_validate(item).to_domain() for item in _load_json_list(path)]


def load_products(path: str) -> List[NormalizedProduct]:
    return [NormalizedProductIn.model_validate(item).to_domain() for item in _load_json_list(path)]


def build_job_config(args: argparse.Namespace, sources: List[SourceConfiguration]) -> JobConfigIn:
    """Job configuration from the CLI overrides; omitted values keep the defaults."""
    overrides = {
        "batch_size": args.batch_size,
        "delay_between_batches": args.delay_ms,
        "confidence_threshold": args.threshold,
    }
    return JobConfigIn(
        sources=[s.id for s in sources if s.is_active],
        **{key: value for key, value in overrides.items() if value is not None},
    )


async def run_price_scan(args: argparse.Namespace) -> int:
    sources = load_sources(args.sources)
    products = load_products(args.products)
    config = build_job_config(args, sources)

    engine = build_engine(args.database_url or settings.DATABASE_URL)
    try:
        await create_tables(engine)
        store = ScrapingJobStore(build_session_factory(engine))
        factory = register_all_adapters()
        service = PriceScanService(store, ScrapingManager(adapter_factory=factory))
        await run_job(args, service, store, sources, products, config)
    finally:
        await engine.dispose()
    return 0


async def run_job(
    args: argparse.Namespace,
    service: PriceScanService,
    store: ScrapingJobStore,
    sources: List[SourceConfiguration],
    products: List[NormalizedProduct],
    config: JobConfigIn,
) -> None:
    descriptor = JobDescriptor(name=args.name, total_products=len(products), config=config)

    print(f"\n{'='*70}")
    print(f"  Price scan: {descriptor.name}")
    print(f"{'='*70}")
    print(f"  Sources:  {len(sources)}")
    print(f"  Products: {len(products)}")
    print(f"  Estimate: ~{service.estimate_duration(len(products), len(config.sources))}s")
    print(f"{'='*70}\n")

    try:
        await service.manager.currency_converter.refresh_rates()
        job = await service.start_price_scan(descriptor, sources, products)
    finally:
        await service.close()

    print(f"  Status:     {job.status.value}")
    print(f"  Processed:  {job.processed_products}/{job.total_products}")
    print(f"  Successful: {job.successful_products}")
    print(f"  Failed:     {job.failed_products}\n")

    for product in products:
        results = await store.latest_results(product.id)
        if not results:
            print(f"[{product.id}] {product.search_term}: no match")
            continue
        print(f"[{product.id}] {product.search_term}")
        for result in results:
            marker = "*" if result.is_lowest_price else " "
            print(
                f"   {marker} {result.price} {result.currency}  "
                f"({result.confidence_score:.2f})  {result.merchant}  {result.url[:60]}"
            )


def main() -> int:
    parser = argparse.ArgumentParser(description="Run a competitor price scan")
    parser.add_argument("--sources", required=True, help="JSON file with source configurations")
    parser.add_argument("--products", required=True, help="JSON file with normalized products")
    parser.add_argument("--name", default="Manual price scan", help="Job name")
    parser.add_argument("--batch-size", type=int, default=None, help="Products per batch")
    parser.add_argument("--delay-ms", type=int, default=None, help="Pause between batches (ms)")
    parser.add_argument("--threshold", type=float, default=None, help="Minimum match confidence")
    parser.add_argument("--database-url", default=None, help="Overrides DATABASE_URL")
    parser.add_argument("--log-level", default=None, help="Overrides LOG_LEVEL")
    args = parser.parse_args()

    configure_logging(level=args.log_level)

    try:
        return asyncio.run(run_price_scan(args))
    except ValidationError as e:
        print(f"\nError: invalid input or job configuration:\n{e}", file=sys.stderr)
        return 2
    except (OSError, ValueError) as e:
        print(f"\nError: could not load input: {e}", file=sys.stderr)
        return 2
    except PriceScanError as e:
        print(f"\nError: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
