"""Tests for the manual price-scan runner script."""

import argparse
import importlib.util
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError

from pricescan.config import settings
from pricescan.core.exceptions import InvalidJobError

SCRIPT = Path(__file__).resolve().parents[2] / "scripts" / "run_price_scan.py"


@pytest.fixture(scope="module")
def runner():
    spec = importlib.util.spec_from_file_location("run_price_scan", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def make_args(**overrides) -> argparse.Namespace:
    values = {
        "sources": "sources.json",
        "products": "products.json",
        "name": "Manual price scan",
        "batch_size": None,
        "delay_ms": None,
        "threshold": None,
        "database_url": "sqlite+aiosqlite:///:memory:",
        "log_level": None,
    }
    values.update(overrides)
    return argparse.Namespace(**values)


class TestJobConfig:

    def test_overrides_are_applied(self, runner, make_source):
        sources = [make_source("bol"), make_source("off", is_active=False)]

        config = runner.build_job_config(make_args(batch_size=5, delay_ms=0, threshold=0.6), sources)

        assert config.sources == ["bol"]
        assert (config.batch_size, config.delay_between_batches, config.confidence_threshold) == (5, 0, 0.6)

    def test_omitted_values_keep_defaults(self, runner, make_source):
        config = runner.build_job_config(make_args(), [make_source("bol")])

        assert config.batch_size == settings.DEFAULT_BATCH_SIZE
        assert config.confidence_threshold == settings.DEFAULT_CONFIDENCE_THRESHOLD

    @pytest.mark.parametrize("overrides", [{"batch_size": 0}, {"delay_ms": -1}, {"threshold": 1.5}])
    def test_invalid_overrides_are_rejected(self, runner, make_source, overrides):
        with pytest.raises(ValidationError):
            runner.build_job_config(make_args(**overrides), [make_source("bol")])


class TestRunPriceScan:

    async def test_engine_is_disposed_when_the_scan_fails(self, runner, make_source, make_product, monkeypatch):
        engine = MagicMock()
        engine.dispose = AsyncMock()
        monkeypatch.setattr(runner, "load_sources", lambda path: [make_source("bol")])
        monkeypatch.setattr(runner, "load_products", lambda path: [make_product()])
        monkeypatch.setattr(runner, "build_engine", lambda url: engine)
        monkeypatch.setattr(runner, "create_tables", AsyncMock())
        monkeypatch.setattr(runner, "run_job", AsyncMock(side_effect=InvalidJobError("no adapters")))

        with pytest.raises(InvalidJobError):
            await runner.run_price_scan(make_args())

        engine.dispose.assert_awaited_once()
