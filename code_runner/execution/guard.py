"""
Deadline enforcement for sandbox runs.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from ..core.exceptions import ExecutionTimeoutError
from ..core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

CleanupHook = Callable[[], Awaitable[None]]


class ExecutionTimer:
    """Wall-clock stopwatch in milliseconds."""

    def __init__(self) -> None:
        self._start: float | None = None
        self._end: float | None = None

    def start(self) -> "ExecutionTimer":
        self._start = time.perf_counter()
        self._end = None
        return self

    def stop(self) -> float:
        self._end = time.perf_counter()
        return self.elapsed_ms

    @property
    def elapsed_ms(self) -> float:
        if self._start is None:
            return 0.0
        end = self._end if self._end is not None else time.perf_counter()
        return (end - self._start) * 1000

    def __enter__(self) -> "ExecutionTimer":
        return self.start()

    def __exit__(self, *exc_info) -> None:
        self.stop()


class ResourceGuard:
    """
    Races one operation against an independent deadline.

    A guard is single-use: it belongs to exactly one sandbox run. When the
    deadline wins, the operation is cancelled, ``on_timeout`` runs to
    release whatever the operation held (such as a child process), and
    ExecutionTimeoutError is raised.
    """

    def __init__(self, timeout_ms: int):
        if timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")
        self.timeout_ms = timeout_ms
        self._used = False
        self.timed_out = False

    async def run(self, operation: Awaitable[T], *, on_timeout: CleanupHook | None = None) -> T:
        if self._used:
            raise RuntimeError("ResourceGuard instances cannot be reused")
        self._used = True

        try:
            return await asyncio.wait_for(operation, timeout=self.timeout_ms / 1000)
        except asyncio.TimeoutError:
            self.timed_out = True
            logger.debug(f"Deadline of {self.timeout_ms}ms reached")
            if on_timeout is not None:
                await on_timeout()
            raise ExecutionTimeoutError(self.timeout_ms) from None


async def with_deadline(
    operation: Awaitable[T],
    timeout_ms: int,
    *,
    on_timeout: CleanupHook | None = None,
) -> T:
    """Await ``operation`` under a fresh ResourceGuard."""
    return await ResourceGuard(timeout_ms).run(operation, on_timeout=on_timeout)
