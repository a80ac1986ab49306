"""Automation runner - periodic evaluate/execute loop.

Calls CacheBidService.run_cycle() every interval_seconds until the duration
elapses, max_cycles is reached or stop() is called. A caller error in one
tick is logged and counted; the loop carries on with the next tick.

Usage:
    runner = AutomationRunner(service, interval_seconds=60)
    await runner.run(duration=3600)  # or runner.run_sync(...)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, TYPE_CHECKING

from .core.automation import CycleReport
from .core.errors import CacheBidError
from .core.logger import CycleSummaryCollector

if TYPE_CHECKING:
    from .config_schema import AppConfig
    from .core.service import CacheBidService


logger = logging.getLogger(__name__)


class AutomationRunner:
    """Drives the automation cycle on a fixed interval.

    Pausing the runner only stops scheduling; the service stays usable and
    its own admin pause is independent.
    """

    # Class-level reference for the API status route
    _active_runner: "AutomationRunner | None" = None

    @classmethod
    def get_active(cls) -> "AutomationRunner | None":
        """Get the currently running runner."""
        return cls._active_runner

    def __init__(
        self,
        service: CacheBidService,
        interval_seconds: float = 60.0,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self.service = service
        self.interval_seconds = interval_seconds
        self._paused = False
        self._running = False
        self._stop_requested = False
        self._stop_event: asyncio.Event | None = None
        self._cycles_run = 0
        self._errors = 0
        self._last_report: CycleReport | None = None
        self._collector = CycleSummaryCollector()

    @classmethod
    def from_config(cls, service: CacheBidService, config: AppConfig) -> "AutomationRunner":
        return cls(service, interval_seconds=config.automation.interval_seconds)

    def pause(self) -> None:
        """Skip ticks until resume() is called."""
        self._paused = True
        logger.info("Automation runner paused")

    def resume(self) -> None:
        self._paused = False
        logger.info("Automation runner resumed")

    def stop(self) -> None:
        """Ask a running loop to exit after the current tick."""
        self._stop_requested = True
        if self._stop_event is not None:
            self._stop_event.set()

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def cycles_run(self) -> int:
        return self._cycles_run

    def get_status(self) -> dict[str, Any]:
        """Get current runner status for the API."""
        return {
            "running": self._running,
            "paused": self._paused,
            "interval_seconds": self.interval_seconds,
            "cycles_run": self._cycles_run,
            "errors": self._errors,
            "last_report": self._last_report.to_dict() if self._last_report else None,
            "state": self.service.state_summary(),
        }

    def tick(self) -> CycleReport | None:
        """Run one evaluate/execute cycle. Returns None if the cycle raised."""
        self._cycles_run += 1
        try:
            report = self.service.run_cycle()
        except CacheBidError as e:
            self._errors += 1
            self._collector.record_error()
            logger.warning("Automation cycle failed: %s (%s)", e.message, e.code.value)
            self._flush_summary()
            return None

        self._last_report = report
        self._collector.record_cycle()
        for result in report.results:
            if result.status == "skipped":
                self._collector.record_skip()
            else:
                self._collector.record_bid(
                    result.request.owner_id,
                    result.amount,
                    success=result.status == "placed",
                )
        if report.total:
            logger.info(
                "Cycle %d: %d placed, %d failed, %d skipped",
                self.service.cycle.cycle_number,
                report.successful, report.failed, report.skipped,
            )
        self._flush_summary()
        return report

    def _flush_summary(self) -> None:
        summary_logger = self.service.events.summary_logger
        if summary_logger is not None:
            summary_logger.log_summary(
                self._collector.finalize(self.service.cycle.cycle_number)
            )

    async def run(
        self,
        duration: float | None = None,
        max_cycles: int | None = None,
    ) -> CacheBidService:
        """Run the loop asynchronously.

        Args:
            duration: Maximum seconds to run (runs until stopped if not provided)
            max_cycles: Maximum number of ticks (unbounded if not provided)

        Returns:
            The service after the loop exits.
        """
        AutomationRunner._active_runner = self
        self._running = True
        self._stop_requested = False
        self._stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        start_time = loop.time()
        ticks = 0

        try:
            while not self._stop_requested:
                elapsed = loop.time() - start_time
                if duration is not None and elapsed >= duration:
                    break
                if max_cycles is not None and ticks >= max_cycles:
                    break

                if not self._paused:
                    self.tick()
                    ticks += 1
                    if max_cycles is not None and ticks >= max_cycles:
                        break

                timeout = self.interval_seconds
                if duration is not None:
                    timeout = min(timeout, max(duration - (loop.time() - start_time), 0))
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=timeout)
                except asyncio.TimeoutError:
                    pass
        except asyncio.CancelledError:
            logger.info("Automation runner cancelled")
        finally:
            self._running = False
            self._stop_event = None
            AutomationRunner._active_runner = None

        return self.service

    def run_sync(
        self,
        duration: float | None = None,
        max_cycles: int | None = None,
    ) -> CacheBidService:
        """Run the loop synchronously.

        Wrapper around run() using asyncio.run(). For tests, use a short
        duration or max_cycles.
        """
        return asyncio.run(self.run(duration=duration, max_cycles=max_cycles))
