"""Cancel Signal — one per turn, propagated to every suspension point.

Invariants:
    - cancel() is idempotent; once set the signal never clears
    - race() raises CancellationRequested as soon as the signal fires, without
      waiting for the raced awaitable to reach a checkpoint of its own
    - race(interrupt=False) lets the awaitable finish and discards its result
    - Nested agents receive the same instance (propagation is downward only)
"""

import asyncio
from typing import Awaitable, TypeVar

from agentcore.core.errors import CancellationRequested

T = TypeVar("T")


class CancelSignal:
    """asyncio.Event wrapper with race/sleep helpers."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled by caller") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancellationRequested(self.reason or "cancelled")

    async def race(self, aw: Awaitable[T], *, interrupt: bool = True) -> T:
        """Await `aw` unless the signal fires first."""
        if self._event.is_set():
            if asyncio.iscoroutine(aw):
                aw.close()
            raise CancellationRequested(self.reason or "cancelled")

        task = asyncio.ensure_future(aw)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait(
                {task, waiter}, return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task.done():
            return task.result()

        if interrupt:
            task.cancel()
        # Wait for the task to unwind (interrupted) or finish (result discarded)
        await asyncio.gather(task, return_exceptions=True)
        raise CancellationRequested(self.reason or "cancelled")

    async def sleep(self, seconds: float) -> bool:
        """Sleep up to `seconds`. Returns True if cancelled meanwhile."""
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True
