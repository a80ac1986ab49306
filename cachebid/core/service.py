"""Cache bid service - the outward surface of the bidding agent"""

from __future__ import annotations

__all__ = [
    "CacheBidService",
    "StateSummary",
    "Snapshot",
]

import logging
from typing import Any, Callable, TypedDict, TYPE_CHECKING

from .automation import AutomationCycle, BidRequest, CycleReport, Worklist
from .errors import Unauthorized
from .escrow import EscrowLedger, Payout
from .logger import EventLogger
from .oracle import CacheOracle, InMemoryCacheOracle
from .pricing import PricingParams
from .registry import ArtifactEntry, OwnerPage, Registry

if TYPE_CHECKING:
    from ..config_schema import AppConfig


logger = logging.getLogger(__name__)


class StateSummary(TypedDict):
    """Totals for dashboards and the /api/state endpoint."""

    total_owners: int
    total_entries: int
    total_held: int
    paused: bool
    cycle_number: int
    max_batch_size: int


class Snapshot(TypedDict):
    """The persisted state: owner entries and owner balances."""

    entries: dict[str, list[dict[str, object]]]
    balances: dict[str, int]


class CacheBidService:
    """Registry, escrow and automation cycle behind one set of operations.

    Every mutation goes through one of the methods below, so the registry
    and ledger invariants can be checked at each boundary.
    """

    def __init__(
        self,
        registry: Registry,
        escrow: EscrowLedger,
        oracle: CacheOracle,
        params: PricingParams,
        *,
        admin_id: str = "admin",
        max_batch_size: int = 50,
        event_logger: EventLogger | None = None,
    ) -> None:
        self.registry = registry
        self.escrow = escrow
        self.oracle = oracle
        self.params = params
        self.events = event_logger or EventLogger()
        self.cycle = AutomationCycle(
            registry,
            escrow,
            oracle,
            params,
            max_batch_size=max_batch_size,
            event_logger=self.events,
        )
        self._admin_id = admin_id

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        *,
        oracle: CacheOracle | None = None,
        event_logger: EventLogger | None = None,
        payout: Payout | None = None,
        clock: Callable[[], float] | None = None,
        run_id: str | None = None,
    ) -> "CacheBidService":
        """Build a service from a validated AppConfig.

        Args:
            config: Validated configuration
            oracle: External oracle (default: InMemoryCacheOracle from config.oracle)
            event_logger: Event log (default: built from config.logging)
            payout: Withdrawal payout collaborator for the escrow
            clock: Time source for the in-memory oracle
            run_id: Enables per-run log directories under logging.logs_dir
        """
        if event_logger is None:
            log_cfg = config.logging
            if run_id:
                event_logger = EventLogger(
                    logs_dir=log_cfg.logs_dir,
                    run_id=run_id,
                    default_recent=log_cfg.default_recent,
                )
            else:
                event_logger = EventLogger(
                    output_file=log_cfg.output_file,
                    default_recent=log_cfg.default_recent,
                )
        if oracle is None:
            oracle = InMemoryCacheOracle.from_config(config.oracle, clock=clock)

        automation = config.automation
        return cls(
            registry=Registry.from_config(config.registry, event_logger=event_logger),
            escrow=EscrowLedger.from_config(
                config.escrow,
                operator_id=automation.operator_id,
                event_logger=event_logger,
                payout=payout,
            ),
            oracle=oracle,
            params=PricingParams.from_config(config.pricing),
            admin_id=automation.admin_id,
            max_batch_size=automation.max_batch_size,
            event_logger=event_logger,
        )

    # ========== Registry ==========

    def insert(
        self,
        owner_id: str,
        artifact_id: str,
        ceiling: int,
        enabled: bool = True,
        funding: int = 0,
    ) -> ArtifactEntry:
        """Register an artifact, optionally funding the escrow in the same call.

        Both validations run before either change, so a failing call changes
        nothing.
        """
        self.registry.validate_insert(owner_id, artifact_id, ceiling)
        if funding:
            self.escrow.validate_fund(owner_id, funding)
        entry = self.registry.insert(owner_id, artifact_id, ceiling, enabled)
        if funding:
            self.escrow.fund(owner_id, funding)
        return entry

    def update(self, owner_id: str, artifact_id: str, ceiling: int, enabled: bool) -> bool:
        return self.registry.update(owner_id, artifact_id, ceiling, enabled)

    def insert_or_update(
        self,
        owner_id: str,
        artifact_id: str,
        ceiling: int,
        enabled: bool = True,
        funding: int = 0,
    ) -> ArtifactEntry:
        """Update the entry if registered, insert it otherwise.

        Like insert(), funding is added to the escrow in the same call and
        everything is validated before anything changes.
        """
        registered = self.registry.get_entry(owner_id, artifact_id) is not None
        if registered:
            self.registry.validate_ceiling(ceiling)
        else:
            self.registry.validate_insert(owner_id, artifact_id, ceiling)
        if funding:
            self.escrow.validate_fund(owner_id, funding)

        if registered:
            self.registry.update(owner_id, artifact_id, ceiling, enabled)
            entry = ArtifactEntry(artifact_id, ceiling, bool(enabled))
        else:
            entry = self.registry.insert(owner_id, artifact_id, ceiling, enabled)
        if funding:
            self.escrow.fund(owner_id, funding)
        return entry

    def remove(self, owner_id: str, artifact_id: str) -> ArtifactEntry:
        return self.registry.remove(owner_id, artifact_id)

    def remove_all(self, owner_id: str) -> list[ArtifactEntry]:
        return self.registry.remove_all(owner_id)

    def entries_of(self, owner_id: str) -> list[ArtifactEntry]:
        return self.registry.entries_of(owner_id)

    def page(self, offset: int, limit: int) -> OwnerPage:
        return self.registry.page(offset, limit)

    def total_owners(self) -> int:
        return self.registry.total_owners()

    # ========== Escrow ==========

    def fund(self, owner_id: str, amount: int) -> int:
        return self.escrow.fund(owner_id, amount)

    def withdraw(self, owner_id: str) -> int:
        """Withdraw the whole balance. Available even while paused."""
        return self.escrow.withdraw(owner_id)

    def balance_of(self, owner_id: str) -> int:
        return self.escrow.balance_of(owner_id)

    # ========== Automation ==========

    def evaluate(self) -> Worklist:
        return self.cycle.evaluate()

    def execute(self, worklist: Worklist | list[BidRequest]) -> CycleReport:
        return self.cycle.execute(worklist)

    def run_cycle(self) -> CycleReport:
        return self.cycle.run_cycle()

    # ========== Admin ==========

    def _require_admin(self, caller_id: str, operation: str) -> None:
        if caller_id != self._admin_id:
            raise Unauthorized(f"{operation} is restricted to the admin", caller=caller_id)

    def pause(self, caller_id: str) -> bool:
        """Stop bid execution. Returns False if already paused."""
        self._require_admin(caller_id, "pause")
        if self.cycle.is_paused:
            return False
        self.cycle.pause()
        logger.warning("Bidding paused by %s", caller_id)
        self.events.log("paused", {"caller": caller_id})
        return True

    def unpause(self, caller_id: str) -> bool:
        """Resume bid execution. Returns False if not paused."""
        self._require_admin(caller_id, "unpause")
        if not self.cycle.is_paused:
            return False
        self.cycle.unpause()
        logger.warning("Bidding resumed by %s", caller_id)
        self.events.log("unpaused", {"caller": caller_id})
        return True

    @property
    def is_paused(self) -> bool:
        return self.cycle.is_paused

    @property
    def admin_id(self) -> str:
        return self._admin_id

    # ========== State ==========

    def state_summary(self) -> StateSummary:
        return {
            "total_owners": self.registry.total_owners(),
            "total_entries": self.registry.total_entries(),
            "total_held": self.escrow.total_held,
            "paused": self.cycle.is_paused,
            "cycle_number": self.cycle.cycle_number,
            "max_batch_size": self.cycle.max_batch_size,
        }

    def snapshot(self) -> Snapshot:
        return {
            "entries": self.registry.snapshot(),
            "balances": self.escrow.snapshot(),
        }

    def restore(self, snapshot: Snapshot | dict[str, Any], caller_id: str) -> None:
        """Replace registry and escrow state from snapshot(). Admin only.

        All or nothing: if either part is rejected, both keep their current
        state. Restored balances are held to the same per-owner cap as fund().

        Raises:
            Unauthorized: caller_id is not the admin
        """
        self._require_admin(caller_id, "restore")
        previous_balances = self.escrow.snapshot()
        self.escrow.restore(snapshot.get("balances", {}))
        try:
            self.registry.restore(snapshot.get("entries", {}))
        except Exception:
            self.escrow.restore(previous_balances)
            raise
        logger.info(
            "Restored %d owners and %d balances",
            self.registry.total_owners(), len(self.escrow.owners()),
        )
