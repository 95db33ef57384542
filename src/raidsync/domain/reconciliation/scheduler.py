"""Periodic reconciliation driver.

Runs one loop per content type: an initial cycle at start-up, then one cycle
per configured interval (or sooner, on the backoff schedule, after fetch
failures). Loops for different content types are independent.
"""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

    from raidsync.domain.model import ContentType

    from .coordinator import ReconciliationCoordinator
    from .status import CycleResult

log = getLogger(__name__)


class ReconciliationScheduler:
    def __init__(
        self,
        coordinator: ReconciliationCoordinator,
        intervals: Mapping[ContentType, float],
    ) -> None:
        for content_type, interval in intervals.items():
            if interval <= 0:
                raise ValueError(f"Interval for {content_type} must be positive")
        self._coordinator = coordinator
        self._intervals = dict(intervals)
        self._stop = asyncio.Event()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def run(self, *, max_cycles: int | None = None) -> None:
        """Drive every scheduled content type until :meth:`stop` is called.

        ``max_cycles`` bounds the cycles per content type, mainly for
        one-shot runs and tests.
        """

        if self._running:
            raise RuntimeError("Scheduler is already running")
        self._running = True
        self._stop.clear()
        log.info(
            "Scheduling %s",
            ", ".join(f"{ct}={interval:g}s" for ct, interval in self._intervals.items()),
        )
        try:
            async with asyncio.TaskGroup() as group:
                for content_type, interval in self._intervals.items():
                    group.create_task(
                        self._loop(content_type, interval, max_cycles=max_cycles),
                        name=f"reconcile-{content_type}",
                    )
        finally:
            self._running = False
        log.info("Scheduler stopped")

    def stop(self) -> None:
        """Stop scheduling and ask in-flight cycles to cancel at their next transition."""

        self._stop.set()
        for content_type in self._intervals:
            self._coordinator.cancel(content_type)

    async def _loop(
        self,
        content_type: ContentType,
        interval: float,
        *,
        max_cycles: int | None,
    ) -> None:
        cycles = 0
        while not self._stop.is_set():
            result = await self._coordinator.reconcile(content_type)
            cycles += 1
            self._log_result(result)
            if max_cycles is not None and cycles >= max_cycles:
                return
            delay = self._coordinator.next_delay(content_type, interval)
            log.debug("Next %s cycle in %.1fs", content_type, delay)
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=delay)
            except TimeoutError:
                continue

    def _log_result(self, result: CycleResult) -> None:
        if result.outcome.failed:
            log.warning("%s cycle %s: %s", result.content_type, result.outcome, result.error)
        else:
            log.info(
                "%s cycle %s (version %s)",
                result.content_type,
                result.outcome,
                result.version,
            )
