"""Unit tests for the bid pricing engine.

price() and evaluate_bid() are pure, so these tests need no ledger or
registry state.
"""

from __future__ import annotations

import itertools

import pytest

from cachebid.core.pricing import (
    FULL_UTILIZATION_BPS,
    MarketState,
    PricingParams,
    evaluate_bid,
    price,
    utilization_bps,
)
from cachebid.core.registry import ArtifactEntry


HORIZON = 2_592_000
THRESHOLD = 9_800


def _price(**overrides: int) -> int:
    args = {
        "ceiling": 100,
        "batch_index": 0,
        "min_bid": 10,
        "decay_rate": 0,
        "horizon": HORIZON,
        "utilization": 9_900,
        "threshold": THRESHOLD,
        "increment": 1,
    }
    args.update(overrides)
    return price(**args)


class TestPrice:
    """Tests for price()."""

    def test_clips_to_ceiling(self) -> None:
        """minBid=10, decay 1/sec over 30 days far exceeds a ceiling of 100."""
        assert _price(ceiling=100, min_bid=10, decay_rate=1) == 100

    def test_below_threshold_is_zero(self) -> None:
        assert _price(utilization=5_000, min_bid=1_000, decay_rate=7, ceiling=10**9) == 0

    def test_at_threshold_bids(self) -> None:
        """The threshold itself counts as over it."""
        assert _price(utilization=THRESHOLD, min_bid=10) == 10

    def test_decay_projection(self) -> None:
        assert _price(ceiling=10**12, min_bid=10, decay_rate=2, horizon=100) == 210

    def test_batch_index_separates_equal_bids(self) -> None:
        bids = [_price(ceiling=10**6, min_bid=10, batch_index=i, increment=3) for i in range(4)]
        assert bids == [10, 13, 16, 19]
        assert len(set(bids)) == len(bids)

    def test_zero_ceiling(self) -> None:
        assert _price(ceiling=0, min_bid=10) == 0

    @pytest.mark.parametrize("field", [
        "ceiling", "batch_index", "min_bid", "decay_rate",
        "horizon", "utilization", "threshold", "increment",
    ])
    def test_negative_inputs_rejected(self, field: str) -> None:
        with pytest.raises(ValueError):
            _price(**{field: -1})

    def test_result_always_within_ceiling(self) -> None:
        """price() is in [0, ceiling] across a grid of inputs."""
        grid = itertools.product(
            [0, 1, 50, 10**18],          # ceiling
            [0, 1, 49],                  # batch_index
            [0, 10, 10**6],              # min_bid
            [0, 1, 1_000],               # decay_rate
            [0, 9_799, 9_800, 10_000],   # utilization
        )
        for ceiling, batch_index, min_bid, decay_rate, utilization in grid:
            amount = price(
                ceiling, batch_index, min_bid, decay_rate, HORIZON, utilization, THRESHOLD, 1,
            )
            assert 0 <= amount <= ceiling

    def test_below_threshold_ignores_every_other_input(self) -> None:
        grid = itertools.product([0, 10, 10**18], [0, 5, 10**9], [0, 3, 10**6], [0, 9_799])
        for ceiling, min_bid, decay_rate, utilization in grid:
            assert price(ceiling, 3, min_bid, decay_rate, HORIZON, utilization, THRESHOLD, 1) == 0


class TestUtilization:

    def test_basis_points(self) -> None:
        assert utilization_bps(100, 99) == 9_900
        assert utilization_bps(3, 1) == 3_333

    def test_zero_capacity_is_full(self) -> None:
        assert utilization_bps(0, 0) == FULL_UTILIZATION_BPS

    def test_clamped_at_full(self) -> None:
        assert utilization_bps(10, 20) == FULL_UTILIZATION_BPS

    def test_negative_rejected(self) -> None:
        with pytest.raises(ValueError):
            utilization_bps(-1, 0)


class TestEvaluateBid:
    """Tests for evaluate_bid() eligibility."""

    @pytest.fixture
    def params(self) -> PricingParams:
        return PricingParams(horizon=HORIZON, threshold_bps=THRESHOLD, increment=1)

    @pytest.fixture
    def pressured(self) -> MarketState:
        return MarketState(min_bid=10, decay_rate=1, utilization_bps=9_900)

    def test_eligible_when_funded(self, params: PricingParams, pressured: MarketState) -> None:
        entry = ArtifactEntry("0xa1", 100)
        outcome = evaluate_bid(entry, 0, pressured, available_balance=150, params=params)
        assert outcome.eligible
        assert outcome.bid_amount == 100
        assert outcome.entry == entry
        assert outcome.reason is None

    def test_ineligible_when_balance_too_low(self, params: PricingParams, pressured: MarketState) -> None:
        outcome = evaluate_bid(ArtifactEntry("0xa1", 100), 0, pressured, available_balance=50, params=params)
        assert not outcome.eligible
        assert outcome.bid_amount == 100
        assert "balance" in (outcome.reason or "")

    def test_zero_bid_needs_no_balance(self, params: PricingParams) -> None:
        market = MarketState(min_bid=0, decay_rate=1, utilization_bps=5_000)
        outcome = evaluate_bid(ArtifactEntry("0xa1", 100), 0, market, available_balance=0, params=params)
        assert outcome.eligible
        assert outcome.bid_amount == 0

    def test_disabled_entry(self, params: PricingParams, pressured: MarketState) -> None:
        outcome = evaluate_bid(ArtifactEntry("0xa1", 100, enabled=False), 0, pressured, 150, params)
        assert not outcome.eligible
        assert outcome.reason == "disabled"

    def test_resident_artifact(self, params: PricingParams) -> None:
        market = MarketState(min_bid=0, decay_rate=0, utilization_bps=9_900, resident=True)
        outcome = evaluate_bid(ArtifactEntry("0xa1", 100), 0, market, 150, params)
        assert not outcome.eligible
        assert outcome.reason == "already resident"

    def test_min_bid_above_ceiling(self, params: PricingParams) -> None:
        """A bid clipped below the minimum would only be rejected."""
        market = MarketState(min_bid=101, decay_rate=0, utilization_bps=9_900)
        outcome = evaluate_bid(ArtifactEntry("0xa1", 100), 0, market, 10**6, params)
        assert not outcome.eligible
        assert "exceeds ceiling" in (outcome.reason or "")

    def test_params_from_config(self) -> None:
        from cachebid.config_schema import PricingConfig

        params = PricingParams.from_config(
            PricingConfig(horizon_seconds=60, threshold_bps=5_000, bid_increment=7)
        )
        assert params == PricingParams(horizon=60, threshold_bps=5_000, increment=7)
