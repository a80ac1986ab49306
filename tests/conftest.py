"""Pytest fixtures for cache bid tests.

Common fixtures for the escrow, registry, oracle and automation cycle. The
in-memory oracle runs on a virtual clock so decay offsets are zero unless a
test moves time forward.
"""

from __future__ import annotations

# Load environment variables from .env before any tests run
from dotenv import load_dotenv

load_dotenv()

from typing import Any

import pytest

from cachebid.config import reset_config
from cachebid.config_schema import AppConfig
from cachebid.core.automation import AutomationCycle
from cachebid.core.escrow import EscrowLedger
from cachebid.core.logger import EventLogger
from cachebid.core.oracle import InMemoryCacheOracle
from cachebid.core.pricing import PricingParams
from cachebid.core.registry import Registry
from cachebid.core.service import CacheBidService
from tests.testing_utils import VirtualClock


OPERATOR = "cachebid_automation"
HORIZON = 2_592_000


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "feature(name): mark test as belonging to a feature. "
        "Usage: @pytest.mark.feature('escrow')"
    )
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow (runs the asyncio loop with real sleeps)"
    )


@pytest.fixture(autouse=True)
def _reset_global_config() -> Any:
    """Keep the module-level config cache from leaking between tests."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def clock() -> VirtualClock:
    return VirtualClock()


@pytest.fixture
def event_logger() -> EventLogger:
    """Memory-only event logger."""
    return EventLogger()


@pytest.fixture
def escrow(event_logger: EventLogger) -> EscrowLedger:
    return EscrowLedger(operator_id=OPERATOR, event_logger=event_logger)


@pytest.fixture
def registry(event_logger: EventLogger) -> Registry:
    return Registry(max_entries_per_owner=5, max_page_size=3, event_logger=event_logger)


@pytest.fixture
def oracle(clock: VirtualClock) -> InMemoryCacheOracle:
    """Cache of capacity 100 with decay_rate 1/sec."""
    return InMemoryCacheOracle(capacity=100, decay_rate=1, clock=clock)


@pytest.fixture
def params() -> PricingParams:
    return PricingParams(horizon=HORIZON, threshold_bps=9_800, increment=1)


@pytest.fixture
def cycle(
    registry: Registry,
    escrow: EscrowLedger,
    oracle: InMemoryCacheOracle,
    params: PricingParams,
    event_logger: EventLogger,
) -> AutomationCycle:
    return AutomationCycle(
        registry, escrow, oracle, params, max_batch_size=4, event_logger=event_logger,
    )


@pytest.fixture
def app_config() -> AppConfig:
    """Default config with events kept in memory."""
    return AppConfig.model_validate({
        "logging": {"output_file": None},
        "automation": {"max_batch_size": 4, "interval_seconds": 0.01},
        "oracle": {"capacity": 100, "decay_rate": 1},
    })


@pytest.fixture
def service(app_config: AppConfig, clock: VirtualClock) -> CacheBidService:
    return CacheBidService.from_config(app_config, clock=clock)
