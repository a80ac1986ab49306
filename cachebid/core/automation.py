"""Automation cycle - evaluate then execute.

This module drives the bidding agent:
- evaluate(): read-only scan of the registry producing a bounded worklist
- execute(): withdraw, submit, and refund on failure for each worklist item
- run_cycle(): both, when there is work

evaluate() never mutates anything, so schedulers can call it as often as
they like. execute() re-validates every item against live oracle and escrow
state, because the worklist may be stale by the time it runs.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Literal, TYPE_CHECKING

from .errors import Paused, TooManyBids, execution_error
from .oracle import AdmissionResult
from .pricing import MarketState, PricingParams, evaluate_bid, utilization_bps

if TYPE_CHECKING:
    from .escrow import EscrowLedger
    from .logger import EventLogger
    from .oracle import CacheOracle
    from .registry import Registry


logger = logging.getLogger(__name__)

BidStatus = Literal["placed", "failed", "skipped"]


@dataclass(frozen=True)
class BidRequest:
    """One (owner, artifact) pair to bid for. Transient."""

    owner_id: str
    artifact_id: str

    def to_dict(self) -> dict[str, str]:
        return {"owner_id": self.owner_id, "artifact_id": self.artifact_id}


@dataclass(frozen=True)
class Worklist:
    """Output of evaluate(), input of execute()."""

    requests: tuple[BidRequest, ...] = ()

    @property
    def work_exists(self) -> bool:
        return bool(self.requests)

    def __len__(self) -> int:
        return len(self.requests)

    def to_dict(self) -> dict[str, Any]:
        return {
            "work_exists": self.work_exists,
            "requests": [request.to_dict() for request in self.requests],
        }


@dataclass
class BidResult:
    """What happened to one worklist item."""

    request: BidRequest
    status: BidStatus
    amount: int = 0
    reason: str | None = None
    error: dict[str, object] | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            **self.request.to_dict(),
            "status": self.status,
            "amount": self.amount,
        }
        if self.reason is not None:
            result["reason"] = self.reason
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass
class CycleReport:
    """Result of execute()."""

    results: list[BidResult] = field(default_factory=list)

    def _count(self, status: BidStatus) -> int:
        return sum(1 for result in self.results if result.status == status)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def successful(self) -> int:
        return self._count("placed")

    @property
    def failed(self) -> int:
        return self._count("failed")

    @property
    def skipped(self) -> int:
        return self._count("skipped")

    @property
    def amount_spent(self) -> int:
        return sum(r.amount for r in self.results if r.status == "placed")

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "skipped": self.skipped,
            "amount_spent": self.amount_spent,
            "results": [result.to_dict() for result in self.results],
        }


class AutomationCycle:
    """Runs the two-phase bidding cycle over a registry and an escrow ledger.

    Dependencies:
        registry: Source of (owner, entry) pairs
        escrow: Funds every bid; this cycle is its operator
        oracle: Pricing, residency and admission
        params: Configured pricing inputs
        event_logger: Receives bid_placed, bid_error and cycle_executed
    """

    def __init__(
        self,
        registry: Registry,
        escrow: EscrowLedger,
        oracle: CacheOracle,
        params: PricingParams,
        *,
        max_batch_size: int = 50,
        event_logger: "EventLogger | None" = None,
    ) -> None:
        self._registry = registry
        self._escrow = escrow
        self._oracle = oracle
        self._params = params
        self._max_batch_size = max_batch_size
        self._events = event_logger
        self._paused = False
        self._cycle_number = 0

    @property
    def max_batch_size(self) -> int:
        return self._max_batch_size

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def cycle_number(self) -> int:
        """Number of execute() calls that attempted at least one bid."""
        return self._cycle_number

    def pause(self) -> None:
        self._paused = True

    def unpause(self) -> None:
        self._paused = False

    def _market(self, artifact_id: str) -> MarketState:
        """Read the oracle for one artifact.

        Raises ValueError on a negative reading, so a misbehaving oracle
        fails this item like any other failed read.
        """
        oracle = self._oracle
        readings = {
            "min_bid": oracle.min_bid(artifact_id),
            "decay_rate": oracle.decay_rate(),
            "capacity": oracle.cache_capacity(),
            "occupancy": oracle.cache_occupancy(),
        }
        for name, value in readings.items():
            if value < 0:
                raise ValueError(f"oracle reported negative {name} {value}")
        return MarketState(
            min_bid=readings["min_bid"],
            decay_rate=readings["decay_rate"],
            utilization_bps=utilization_bps(readings["capacity"], readings["occupancy"]),
            resident=oracle.is_resident(artifact_id),
        )

    def _log(self, event_type: str, data: dict[str, Any]) -> None:
        if self._events is not None:
            self._events.log(event_type, data)

    # ========== Phase 1: evaluate ==========

    def evaluate(self) -> Worklist:
        """Scan enabled entries and return the bids worth placing now.

        Read-only. The worklist never exceeds max_batch_size. Each owner's
        balance is reserved across their items so the worklist does not
        promise more than the owner holds. Returns an empty worklist while
        paused.
        """
        if self._paused:
            return Worklist()

        requests: list[BidRequest] = []
        reserved: dict[str, int] = {}
        for page in self._registry.iter_pages():
            for owner in page.owners:
                for entry in owner.entries:
                    if len(requests) >= self._max_batch_size:
                        return Worklist(tuple(requests))
                    if not entry.enabled:
                        continue
                    try:
                        market = self._market(entry.artifact_id)
                    except Exception as e:  # external read; retried next cycle
                        logger.warning(
                            "Not bidding for %s/%s: oracle read failed: %s",
                            owner.owner_id, entry.artifact_id, e,
                        )
                        continue
                    available = self._escrow.balance_of(owner.owner_id) - reserved.get(owner.owner_id, 0)
                    outcome = evaluate_bid(
                        entry,
                        batch_index=len(requests),
                        market=market,
                        available_balance=available,
                        params=self._params,
                    )
                    if not outcome.eligible:
                        logger.debug(
                            "Not bidding for %s/%s: %s",
                            owner.owner_id, entry.artifact_id, outcome.reason,
                        )
                        continue
                    reserved[owner.owner_id] = reserved.get(owner.owner_id, 0) + outcome.bid_amount
                    requests.append(BidRequest(owner.owner_id, entry.artifact_id))
        return Worklist(tuple(requests))

    # ========== Phase 2: execute ==========

    def execute(self, worklist: Worklist | Iterable[BidRequest]) -> CycleReport:
        """Place bids for each request, in order.

        A rejected or failing admission is refunded in the same step and
        reported as a bid_error event; the batch continues. Items that are
        no longer eligible are skipped without touching the escrow.

        Raises:
            Paused: bidding is paused
            TooManyBids: more requests than max_batch_size
        """
        if self._paused:
            raise Paused("Bid execution is paused")
        requests = list(worklist.requests if isinstance(worklist, Worklist) else worklist)
        if len(requests) > self._max_batch_size:
            raise TooManyBids(
                f"{len(requests)} bid requests exceed the batch limit of {self._max_batch_size}",
                requested=len(requests),
                limit=self._max_batch_size,
            )

        report = CycleReport()
        for batch_index, request in enumerate(requests):
            report.results.append(self._execute_one(batch_index, request))

        attempted = report.successful + report.failed
        if attempted:
            self._cycle_number += 1
            self._log("cycle_executed", {
                "cycle_number": self._cycle_number,
                "total": report.total,
                "successful": report.successful,
                "failed": report.failed,
                "skipped": report.skipped,
                "timestamp": int(time.time()),
            })
        return report

    def _execute_one(self, batch_index: int, request: BidRequest) -> BidResult:
        owner_id, artifact_id = request.owner_id, request.artifact_id

        entry = self._registry.get_entry(owner_id, artifact_id)
        if entry is None:
            return BidResult(request, "skipped", reason="not registered")

        try:
            market = self._market(artifact_id)
        except Exception as e:  # external read; the batch continues
            reason = f"oracle read failed: {e}"
            logger.warning("Skipping %s/%s: %s", owner_id, artifact_id, reason)
            self._log("bid_error", {
                "owner_id": owner_id,
                "artifact_id": artifact_id,
                "amount": 0,
                "reason": reason,
            })
            return BidResult(request, "failed", reason=reason, error=execution_error(reason))

        outcome = evaluate_bid(
            entry,
            batch_index=batch_index,
            market=market,
            available_balance=self._escrow.balance_of(owner_id),
            params=self._params,
        )
        if not outcome.eligible:
            logger.debug("Skipping %s/%s: %s", owner_id, artifact_id, outcome.reason)
            return BidResult(request, "skipped", amount=outcome.bid_amount, reason=outcome.reason)

        operator = self._escrow.operator_id
        amount = self._escrow.withdraw_for_bid(owner_id, outcome.bid_amount, operator)
        try:
            result = self._oracle.admit(artifact_id, amount)
        except Exception as e:  # counts as a rejection
            result = AdmissionResult.rejected(f"admission error: {e}")

        if not result.success:
            self._escrow.deposit_back(owner_id, amount, operator)
            logger.info("Bid of %d for %s/%s rejected: %s", amount, owner_id, artifact_id, result.reason)
            self._log("bid_error", {
                "owner_id": owner_id,
                "artifact_id": artifact_id,
                "amount": amount,
                "reason": result.reason,
            })
            return BidResult(
                request, "failed", amount=amount, reason=result.reason,
                error=execution_error(result.reason, artifact_id=artifact_id, amount=amount),
            )

        balance = self._escrow.balance_of(owner_id)
        self._log("bid_placed", {
            "owner_id": owner_id,
            "artifact_id": artifact_id,
            "amount": amount,
            "ceiling": entry.ceiling,
            "balance": balance,
            "batch_index": batch_index,
            "evicted": result.evicted,
        })
        if amount:
            self._log("balance_updated", {
                "owner_id": owner_id,
                "balance": balance,
                "reason": "bid",
            })
        return BidResult(request, "placed", amount=amount)

    def run_cycle(self) -> CycleReport:
        """evaluate() then execute() when there is work; otherwise a no-op."""
        worklist = self.evaluate()
        if not worklist.work_exists:
            return CycleReport()
        return self.execute(worklist)
