"""Cache oracle - the external price, occupancy and residency authority.

CacheOracle is the interface the core consumes. Admission returns an
AdmissionResult instead of raising, so the automation cycle can branch on
it and refund in the same step.

InMemoryCacheOracle models a capacity-bounded cache with bid-based
eviction and decaying minimum bids. It backs local runs and the tests.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Protocol, TYPE_CHECKING, runtime_checkable

if TYPE_CHECKING:
    from ..config_schema import OracleConfig


logger = logging.getLogger(__name__)


@dataclass
class AdmissionResult:
    """Outcome of an admission attempt.

    Attributes:
        success: Whether the artifact was admitted.
        reason: Human-readable explanation when rejected.
        evicted: Artifacts evicted to make room.
    """

    success: bool
    reason: str = ""
    evicted: list[str] = field(default_factory=list)

    @classmethod
    def accepted(cls, evicted: list[str] | None = None) -> "AdmissionResult":
        return cls(success=True, evicted=evicted or [])

    @classmethod
    def rejected(cls, reason: str) -> "AdmissionResult":
        return cls(success=False, reason=reason)


# Use runtime_checkable so callers can isinstance() an injected oracle
@runtime_checkable
class CacheOracle(Protocol):
    """Read/act surface of the external cache."""

    def min_bid(self, artifact_id: str) -> int:
        """Current minimum acceptable admission price for artifact_id."""
        ...

    def cache_capacity(self) -> int:
        ...

    def cache_occupancy(self) -> int:
        ...

    def decay_rate(self) -> int:
        """Per-second increase applied to outstanding minimum bids."""
        ...

    def is_resident(self, artifact_id: str) -> bool:
        ...

    def admit(self, artifact_id: str, amount: int) -> AdmissionResult:
        """Attempt to place a bid of amount. May reject."""
        ...


@dataclass
class CachedArtifact:
    """A resident artifact and its decay-adjusted bid."""

    artifact_id: str
    size: int
    bid: int


class InMemoryCacheOracle:
    """Capacity-bounded cache with lowest-bid eviction.

    Bids are stored decay-adjusted: a bid of amount at time t is recorded as
    amount + decay_rate * t, so older bids lose priority as time passes.
    min_bid() is 0 while the artifact fits in free space; otherwise it is the
    highest recorded bid among the entries that would have to be evicted,
    minus the current decay offset.
    """

    def __init__(
        self,
        capacity: int = 100,
        decay_rate: int = 0,
        default_artifact_size: int = 1,
        clock: Callable[[], float] | None = None,
    ) -> None:
        """
        Args:
            capacity: Total cache capacity in size units
            decay_rate: Per-second decay applied to recorded bids
            default_artifact_size: Size of artifacts without an explicit size
            clock: Returns the current time in seconds (default: time.time)
        """
        self._capacity = capacity
        self._decay_rate = decay_rate
        self._default_size = default_artifact_size
        self._clock = clock or time.time
        self._sizes: dict[str, int] = {}
        self._resident: dict[str, CachedArtifact] = {}
        self._min_bid_overrides: dict[str, int] = {}
        self._pending_rejections: list[str] = []
        self.received: int = 0
        self.admissions: list[tuple[str, int]] = []

    @classmethod
    def from_config(
        cls,
        config: "OracleConfig",
        clock: Callable[[], float] | None = None,
    ) -> "InMemoryCacheOracle":
        return cls(
            capacity=config.capacity,
            decay_rate=config.decay_rate,
            default_artifact_size=config.default_artifact_size,
            clock=clock,
        )

    def _now(self) -> int:
        return int(self._clock())

    def _decay_offset(self) -> int:
        return self._decay_rate * self._now()

    def size_of(self, artifact_id: str) -> int:
        return self._sizes.get(artifact_id, self._default_size)

    def _eviction_plan(self, size: int) -> list[CachedArtifact]:
        """Lowest bidders that must leave for size units to fit."""
        free = self._capacity - self.cache_occupancy()
        plan: list[CachedArtifact] = []
        for cached in sorted(self._resident.values(), key=lambda c: c.bid):
            if free >= size:
                break
            plan.append(cached)
            free += cached.size
        return plan

    # ========== CacheOracle interface ==========

    def min_bid(self, artifact_id: str) -> int:
        if artifact_id in self._min_bid_overrides:
            return self._min_bid_overrides[artifact_id]
        plan = self._eviction_plan(self.size_of(artifact_id))
        if not plan:
            return 0
        return max(plan[-1].bid - self._decay_offset(), 0)

    def cache_capacity(self) -> int:
        return self._capacity

    def cache_occupancy(self) -> int:
        return sum(cached.size for cached in self._resident.values())

    def decay_rate(self) -> int:
        return self._decay_rate

    def is_resident(self, artifact_id: str) -> bool:
        return artifact_id in self._resident

    def admit(self, artifact_id: str, amount: int) -> AdmissionResult:
        if self._pending_rejections:
            return AdmissionResult.rejected(self._pending_rejections.pop(0))
        if artifact_id in self._resident:
            return AdmissionResult.rejected(f"{artifact_id} is already cached")
        size = self.size_of(artifact_id)
        if size > self._capacity:
            return AdmissionResult.rejected(
                f"{artifact_id} (size {size}) does not fit in a cache of {self._capacity}"
            )
        required = self.min_bid(artifact_id)
        if amount < required:
            return AdmissionResult.rejected(f"bid {amount} is below the minimum bid {required}")

        plan = self._eviction_plan(size)
        for cached in plan:
            del self._resident[cached.artifact_id]
        self._resident[artifact_id] = CachedArtifact(
            artifact_id=artifact_id,
            size=size,
            bid=amount + self._decay_offset(),
        )
        self._min_bid_overrides.pop(artifact_id, None)
        self.received += amount
        self.admissions.append((artifact_id, amount))
        evicted = [cached.artifact_id for cached in plan]
        if evicted:
            logger.debug("Admitting %s evicted %s", artifact_id, evicted)
        return AdmissionResult.accepted(evicted)

    # ========== Simulation controls ==========

    def set_size(self, artifact_id: str, size: int) -> None:
        if size <= 0:
            raise ValueError(f"size must be positive, got {size}")
        self._sizes[artifact_id] = size

    def set_min_bid(self, artifact_id: str, value: int | None) -> None:
        """Pin min_bid() for one artifact until it is admitted (None clears)."""
        if value is None:
            self._min_bid_overrides.pop(artifact_id, None)
        else:
            self._min_bid_overrides[artifact_id] = value

    def occupy(self, artifact_id: str, size: int, bid: int = 0) -> None:
        """Place an artifact directly, bypassing admission checks."""
        self._sizes[artifact_id] = size
        self._resident[artifact_id] = CachedArtifact(
            artifact_id=artifact_id,
            size=size,
            bid=bid + self._decay_offset(),
        )

    def reject_next(self, reason: str = "outbid by another bidder") -> None:
        """Make the next admit() call fail with reason."""
        self._pending_rejections.append(reason)

    def evict(self, artifact_id: str) -> bool:
        return self._resident.pop(artifact_id, None) is not None

    def evict_all(self) -> None:
        self._resident.clear()

    def resident_ids(self) -> list[str]:
        return list(self._resident)
