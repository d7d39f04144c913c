"""Periodic sweep that credits matured deposits."""

from __future__ import annotations

import asyncio
import contextlib
from typing import Callable, Optional

from .ops import StructuredLogger


class MaturityScheduler:
    """Run ``check`` every ``interval_seconds`` on the running event loop.

    ``check`` must be idempotent: the periodic tick and a manual
    :meth:`run_once` may interleave freely.
    """

    def __init__(
        self,
        check: Callable[[], int],
        *,
        interval_seconds: float = 30.0,
        logger: Optional[StructuredLogger] = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._check = check
        self.interval_seconds = interval_seconds
        self._logger = logger or StructuredLogger()
        self._task: Optional[asyncio.Task[None]] = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_once(self) -> int:
        return self._check()

    def start(self) -> asyncio.Task[None]:
        """Start the periodic sweep; calling it again reuses the existing task."""

        if self._task is not None and not self._task.done():
            return self._task
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(), name="kidledger-maturity-check")
        self._logger.log("scheduler_started", interval_seconds=self.interval_seconds)
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        self._logger.log("scheduler_stopped", ticks=self.ticks)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            self.ticks += 1
            try:
                self._check()
            except Exception as exc:  # a failed sweep must not end the loop
                self._logger.log("maturity_check_failed", error=repr(exc))


__all__ = ["MaturityScheduler"]
