"""Bid pricing engine - pure functions, no ledger or registry state.

price() maps cache pressure and the oracle's minimum bid to a bid amount:

- Below the utilization threshold the bid is 0. While the cache has room,
  a positive bid only starts a bidding war between cooperating agents.
- Above it, the bid front-runs the decay of the minimum bid over the
  configured horizon, plus batch_index * increment so that no two bids in
  one batch computed from the same minimum are equal (submission order
  breaks ties).
- The result never exceeds the owner's ceiling.

Utilization and threshold are integer basis points (10000 = 100%).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .registry import ArtifactEntry

if TYPE_CHECKING:
    from ..config_schema import PricingConfig


FULL_UTILIZATION_BPS = 10_000


@dataclass(frozen=True)
class PricingParams:
    """Configured inputs to price() that do not come from the oracle."""

    horizon: int = 2_592_000
    threshold_bps: int = 9_800
    increment: int = 1

    @classmethod
    def from_config(cls, config: "PricingConfig") -> "PricingParams":
        return cls(
            horizon=config.horizon_seconds,
            threshold_bps=config.threshold_bps,
            increment=config.bid_increment,
        )


@dataclass(frozen=True)
class MarketState:
    """Oracle readings for one artifact at one moment."""

    min_bid: int
    decay_rate: int
    utilization_bps: int
    resident: bool = False


@dataclass(frozen=True)
class BidOutcome:
    """Eligibility decision for one entry. Transient, never stored."""

    eligible: bool
    entry: ArtifactEntry
    bid_amount: int
    reason: str | None = None


def _non_negative(**values: int) -> None:
    for name, value in values.items():
        if value < 0:
            raise ValueError(f"{name} must not be negative, got {value}")


def utilization_bps(capacity: int, occupancy: int) -> int:
    """Occupancy as basis points of capacity, clamped to [0, 10000].

    A cache with no capacity counts as fully utilized.
    """
    _non_negative(capacity=capacity, occupancy=occupancy)
    if capacity == 0:
        return FULL_UTILIZATION_BPS
    return min(occupancy * FULL_UTILIZATION_BPS // capacity, FULL_UTILIZATION_BPS)


def price(
    ceiling: int,
    batch_index: int,
    min_bid: int,
    decay_rate: int,
    horizon: int,
    utilization: int,
    threshold: int,
    increment: int,
) -> int:
    """Bid amount in [0, ceiling].

    Args:
        ceiling: Owner's spending ceiling for the artifact
        batch_index: Position of the bid in the current execution batch
        min_bid: Oracle's current minimum acceptable bid
        decay_rate: Per-second increase of outstanding minimum bids
        horizon: Seconds of decay to front-run
        utilization: Current cache utilization (basis points)
        threshold: Utilization at which bidding starts (basis points)
        increment: Per-index bump that keeps bids in a batch distinct
    """
    _non_negative(
        ceiling=ceiling,
        batch_index=batch_index,
        min_bid=min_bid,
        decay_rate=decay_rate,
        horizon=horizon,
        utilization=utilization,
        threshold=threshold,
        increment=increment,
    )
    if utilization < threshold:
        return 0
    projection = min_bid + decay_rate * horizon + batch_index * increment
    return min(projection, ceiling)


def evaluate_bid(
    entry: ArtifactEntry,
    batch_index: int,
    market: MarketState,
    available_balance: int,
    params: PricingParams,
) -> BidOutcome:
    """Decide whether entry should be bid on, and for how much.

    Used by both phases of the automation cycle: evaluate() with the
    balance left after earlier worklist reservations, execute() with the
    owner's live balance.
    """
    if not entry.enabled:
        return BidOutcome(False, entry, 0, "disabled")
    if market.resident:
        return BidOutcome(False, entry, 0, "already resident")
    if market.min_bid > entry.ceiling:
        return BidOutcome(
            False, entry, 0,
            f"minimum bid {market.min_bid} exceeds ceiling {entry.ceiling}",
        )

    amount = price(
        ceiling=entry.ceiling,
        batch_index=batch_index,
        min_bid=market.min_bid,
        decay_rate=market.decay_rate,
        horizon=params.horizon,
        utilization=market.utilization_bps,
        threshold=params.threshold_bps,
        increment=params.increment,
    )
    if amount > available_balance:
        return BidOutcome(
            False, entry, amount,
            f"bid {amount} exceeds available balance {available_balance}",
        )
    return BidOutcome(True, entry, amount)
