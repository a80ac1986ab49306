"""Escrow ledger for owner-attributable bidding funds

The escrow is the only component that moves value in or out. Balances are
integer currency units keyed by owner id.

Balance mutations:
1. fund             - owner deposits value (bounded below and capped above)
2. withdraw         - owner takes the whole balance back
3. withdraw_for_bid - operator takes an exact bid amount out for submission
4. deposit_back     - operator returns an amount whose submission failed

Invariant: sum(balances) == total_held after every call, including the
refund path and a failed payout.
"""

# --- GOVERNANCE START (do not edit) ---
# All balance mutations go through here.
# Never allow negative balances - fail loud.
# --- GOVERNANCE END ---
from __future__ import annotations

import logging
from typing import Callable, TYPE_CHECKING

from .errors import (
    ExceedsCap,
    InsufficientBalance,
    InvalidAmount,
    Unauthorized,
)

if TYPE_CHECKING:
    from .logger import EventLogger
    from ..config_schema import EscrowConfig


logger = logging.getLogger(__name__)

# Receives (owner_id, amount) when an owner withdraws. May raise to abort.
Payout = Callable[[str, int], None]


def _require_amount(amount: object, what: str) -> int:
    """Reject non-integer and negative amounts (bool is not an amount)."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(
            f"{what} must be an integer, got {type(amount).__name__}: {amount!r}",
            amount=repr(amount),
        )
    if amount < 0:
        raise InvalidAmount(f"{what} must not be negative, got {amount}", amount=amount)
    return amount


class EscrowLedger:
    """
    Holds per-owner balances for bid funding.

    Only the configured operator (the automation cycle) may call
    withdraw_for_bid and deposit_back; owners fund and withdraw their own
    balance.

    Thread-safety: This class is NOT thread-safe. Every call runs to
    completion before the next one starts.
    """

    balances: dict[str, int]
    paid_out: dict[str, int]

    def __init__(
        self,
        operator_id: str,
        min_fund_amount: int = 1,
        max_balance_per_owner: int = 10**18,
        event_logger: "EventLogger | None" = None,
        payout: Payout | None = None,
    ) -> None:
        """
        Args:
            operator_id: Identity allowed to move funds for bids
            min_fund_amount: Smallest accepted fund() amount
            max_balance_per_owner: Cap on any single balance
            event_logger: Receives balance_updated events
            payout: Transfers withdrawn value to the owner. Defaults to
                recording the amount in paid_out.
        """
        self.balances = {}
        self.paid_out = {}
        self._total_held = 0
        self._operator_id = operator_id
        self._min_fund_amount = min_fund_amount
        self._max_balance = max_balance_per_owner
        self._events = event_logger
        self._payout = payout or self._record_payout

    @classmethod
    def from_config(
        cls,
        config: "EscrowConfig",
        operator_id: str,
        event_logger: "EventLogger | None" = None,
        payout: Payout | None = None,
    ) -> "EscrowLedger":
        """Create an EscrowLedger from the validated escrow config section."""
        return cls(
            operator_id=operator_id,
            min_fund_amount=config.min_fund_amount,
            max_balance_per_owner=config.max_balance_per_owner,
            event_logger=event_logger,
            payout=payout,
        )

    def _record_payout(self, owner_id: str, amount: int) -> None:
        self.paid_out[owner_id] = self.paid_out.get(owner_id, 0) + amount

    def _require_operator(self, caller_id: str, operation: str) -> None:
        if caller_id != self._operator_id:
            raise Unauthorized(
                f"{operation} is restricted to the automation operator",
                caller=caller_id,
            )

    def _emit_balance(self, owner_id: str, reason: str) -> None:
        if self._events is not None:
            self._events.log("balance_updated", {
                "owner_id": owner_id,
                "balance": self.balance_of(owner_id),
                "reason": reason,
            })

    # ========== Queries ==========

    def balance_of(self, owner_id: str) -> int:
        """Current balance; 0 for unknown owners."""
        return self.balances.get(owner_id, 0)

    @property
    def total_held(self) -> int:
        """Total value held by the escrow."""
        return self._total_held

    @property
    def operator_id(self) -> str:
        return self._operator_id

    def owners(self) -> list[str]:
        """Owners with a non-zero balance."""
        return [owner for owner, balance in self.balances.items() if balance > 0]

    def check_invariant(self) -> bool:
        """True if the per-owner balances add up to the held total."""
        return sum(self.balances.values()) == self._total_held

    # ========== Owner operations ==========

    def validate_fund(self, owner_id: str, amount: int) -> None:
        """Raise the error fund() would raise, without changing state."""
        _require_amount(amount, "Fund amount")
        if amount < self._min_fund_amount:
            raise InvalidAmount(
                f"Fund amount {amount} is below the minimum of {self._min_fund_amount}",
                amount=amount,
                minimum=self._min_fund_amount,
            )
        new_balance = self.balance_of(owner_id) + amount
        if new_balance > self._max_balance:
            raise ExceedsCap(
                f"Balance would be {new_balance}, above the cap of {self._max_balance}",
                balance=self.balance_of(owner_id),
                cap=self._max_balance,
            )

    def fund(self, owner_id: str, amount: int) -> int:
        """Add amount to the owner's balance. Returns the new balance.

        Raises:
            InvalidAmount: amount is below the configured minimum
            ExceedsCap: the balance would exceed the per-owner cap
        """
        self.validate_fund(owner_id, amount)
        self.balances[owner_id] = self.balance_of(owner_id) + amount
        self._total_held += amount
        logger.debug("Funded %s with %d (balance %d)", owner_id, amount, self.balances[owner_id])
        self._emit_balance(owner_id, "fund")
        return self.balances[owner_id]

    def withdraw(self, owner_id: str) -> int:
        """Pay the owner their whole balance. Returns the amount paid.

        The balance is zeroed before the payout call so a re-entrant
        withdraw sees nothing to take. If the payout raises, the balance
        is restored and the error propagates.

        Raises:
            InsufficientBalance: balance is zero
        """
        amount = self.balance_of(owner_id)
        if amount == 0:
            raise InsufficientBalance(f"{owner_id} has no balance to withdraw")

        self.balances[owner_id] = 0
        self._total_held -= amount
        try:
            self._payout(owner_id, amount)
        except Exception:
            self.balances[owner_id] = self.balance_of(owner_id) + amount
            self._total_held += amount
            logger.warning("Payout of %d to %s failed; balance restored", amount, owner_id)
            raise

        self._emit_balance(owner_id, "withdraw")
        return amount

    # ========== Operator operations ==========

    def withdraw_for_bid(self, owner_id: str, amount: int, caller_id: str) -> int:
        """Take exactly amount out of the owner's balance for a bid submission.

        Returns the amount, which the caller forwards to the oracle. A failed
        submission must be followed by deposit_back() with the same amount.

        Raises:
            Unauthorized: caller is not the operator
            InsufficientBalance: amount exceeds the balance
        """
        self._require_operator(caller_id, "withdraw_for_bid")
        _require_amount(amount, "Bid amount")
        balance = self.balance_of(owner_id)
        if amount > balance:
            raise InsufficientBalance(
                f"Bid of {amount} exceeds {owner_id}'s balance of {balance}",
                amount=amount,
                balance=balance,
            )
        self.balances[owner_id] = balance - amount
        self._total_held -= amount
        return amount

    def deposit_back(self, owner_id: str, amount: int, caller_id: str) -> int:
        """Re-credit an amount taken by withdraw_for_bid. Returns the new balance.

        Not capped: a refund restores a balance that was already within the cap.
        """
        self._require_operator(caller_id, "deposit_back")
        _require_amount(amount, "Refund amount")
        self.balances[owner_id] = self.balance_of(owner_id) + amount
        self._total_held += amount
        return self.balances[owner_id]

    # ========== Persistence ==========

    def snapshot(self) -> dict[str, int]:
        """Non-zero balances, suitable for JSON."""
        return {owner: balance for owner, balance in self.balances.items() if balance > 0}

    def restore(self, balances: dict[str, int]) -> None:
        """Replace all balances. The held total is recomputed from them.

        Raises:
            InvalidAmount: a balance is negative or not an integer
            ExceedsCap: a balance is above the per-owner cap
        """
        restored: dict[str, int] = {}
        for owner_id, balance in balances.items():
            restored[owner_id] = _require_amount(balance, "Balance")
            if balance > self._max_balance:
                raise ExceedsCap(
                    f"Restored balance {balance} for {owner_id} is above the cap of {self._max_balance}",
                    balance=balance,
                    cap=self._max_balance,
                )
        self.balances = restored
        self._total_held = sum(restored.values())
