"""JSONL event logger - observable record of every balance and bid change"""

from __future__ import annotations

import json
import shutil
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


class SummaryLogger:
    """Writes one summary line per automation cycle to summary.jsonl."""

    output_path: Path

    def __init__(self, path: Path) -> None:
        self.output_path = path
        self.output_path.parent.mkdir(parents=True, exist_ok=True)

    def log_summary(self, summary: dict[str, Any]) -> None:
        """Append a summary dict (see CycleSummaryCollector.finalize)."""
        with open(self.output_path, "a") as f:
            f.write(json.dumps(summary) + "\n")


class CycleSummaryCollector:
    """Accumulates metrics across automation cycles.

    The runner records every CycleReport here, then calls finalize() to get
    the summary dict for the period.
    """

    def __init__(self) -> None:
        self._reset()

    def _reset(self) -> None:
        self._cycles: int = 0
        self._bids_placed: int = 0
        self._bids_failed: int = 0
        self._bids_skipped: int = 0
        self._amount_spent: int = 0
        self._errors: int = 0
        # Per-owner tracking
        self._per_owner: dict[str, dict[str, int]] = {}

    def _owner(self, owner_id: str) -> dict[str, int]:
        if owner_id not in self._per_owner:
            self._per_owner[owner_id] = {"placed": 0, "failed": 0, "spent": 0}
        return self._per_owner[owner_id]

    def record_bid(self, owner_id: str, amount: int, success: bool) -> None:
        """Record one attempted admission.

        Args:
            owner_id: Owner the bid was placed for
            amount: Bid amount withdrawn from escrow
            success: Whether the oracle admitted the artifact
        """
        stats = self._owner(owner_id)
        if success:
            self._bids_placed += 1
            self._amount_spent += amount
            stats["placed"] += 1
            stats["spent"] += amount
        else:
            self._bids_failed += 1
            stats["failed"] += 1

    def record_skip(self) -> None:
        self._bids_skipped += 1

    def record_cycle(self) -> None:
        self._cycles += 1

    def record_error(self) -> None:
        """Record a cycle that failed with a caller error."""
        self._errors += 1

    def finalize(self, cycle_number: int) -> dict[str, Any]:
        """Return the counters gathered since the last call and start over."""
        summary: dict[str, Any] = {
            "cycle_number": cycle_number,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "cycles": self._cycles,
            "bids_placed": self._bids_placed,
            "bids_failed": self._bids_failed,
            "bids_skipped": self._bids_skipped,
            "amount_spent": self._amount_spent,
            "errors": self._errors,
            "per_owner": {k: v.copy() for k, v in self._per_owner.items()},
        }
        self._reset()
        return summary


def _relink_latest(logs_dir: Path, run_id: str) -> None:
    """Point logs_dir/latest at the run directory, replacing whatever is there."""
    latest = logs_dir / "latest"
    if latest.is_symlink() or latest.is_file():
        latest.unlink()
    elif latest.is_dir():
        shutil.rmtree(latest)
    # Relative target keeps the logs directory relocatable
    latest.symlink_to(run_id)


class EventLogger:
    """Sequenced JSONL log of balance, registry and bid events.

    Where events go depends on the arguments:
    - logs_dir + run_id: logs/{run_id}/events.jsonl, with summary.jsonl
      beside it and logs/latest pointing at the run
    - output_file: that one file, truncated on start
    - neither: memory only

    The last buffer_size events are kept in memory in every mode, which is
    what read_recent() and events_of_type() serve from.
    """

    output_path: Path | None
    summary_logger: SummaryLogger | None

    def __init__(
        self,
        output_file: str | None = None,
        logs_dir: str | None = None,
        run_id: str | None = None,
        default_recent: int = 50,
        buffer_size: int = 1000,
    ) -> None:
        self._logs_dir = Path(logs_dir) if logs_dir and run_id else None
        self._run_id = run_id if logs_dir else None
        self._sequence = 0
        self._default_recent = default_recent
        self._recent: deque[dict[str, Any]] = deque(maxlen=buffer_size)
        self.summary_logger = None
        self.output_path = None

        if self._logs_dir is not None and run_id:
            run_dir = self._logs_dir / run_id
            run_dir.mkdir(parents=True, exist_ok=True)
            self.output_path = run_dir / "events.jsonl"
            self.summary_logger = SummaryLogger(run_dir / "summary.jsonl")
            _relink_latest(self._logs_dir, run_id)
        elif output_file:
            self.output_path = Path(output_file)
            self.output_path.parent.mkdir(parents=True, exist_ok=True)

        if self.output_path is not None:
            self.output_path.write_text("")

    def log(self, event_type: str, data: dict[str, Any]) -> None:
        """Record an event in memory and, when configured, in the JSONL file."""
        self._sequence += 1
        event: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "sequence": self._sequence,
            "event_type": event_type,
            **data,
        }
        self._recent.append(event)
        if self.output_path is not None:
            with open(self.output_path, "a") as f:
                f.write(json.dumps(event) + "\n")

    def read_recent(self, n: int | None = None) -> list[dict[str, Any]]:
        """Return the last N events, oldest first."""
        if n is None:
            n = self._default_recent
        if n <= 0:
            return []
        return list(self._recent)[-n:]

    def events_of_type(self, event_type: str) -> list[dict[str, Any]]:
        """Return buffered events of one type, oldest first."""
        return [e for e in self._recent if e["event_type"] == event_type]

    @property
    def sequence(self) -> int:
        """Number of events logged so far."""
        return self._sequence

    @property
    def run_id(self) -> str | None:
        return self._run_id

    @property
    def logs_dir(self) -> Path | None:
        return self._logs_dir
