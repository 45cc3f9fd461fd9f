"""Cooperative cancellation shared by the batch loop and in-flight calls."""

from __future__ import annotations

import asyncio
import contextlib
from typing import Awaitable, Optional, TypeVar

from ..errors import OperationCancelled

T = TypeVar("T")


class CancellationToken:
    """A one-shot cancellation signal.

    The batch loop checks ``cancelled`` between controls; provider calls are
    wrapped with ``run`` so a pending HTTP request is abandoned as soon as
    the signal fires.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled(self.reason or "cancelled")

    async def sleep(self, seconds: float) -> bool:
        """Wait up to ``seconds``. Returns True if cancelled while waiting."""
        if seconds <= 0:
            return self.cancelled
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first."""
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise OperationCancelled(self.reason or "cancelled")
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {work, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()

        if work in done:
            return work.result()

        work.cancel()
        # The abandoned call may also finish with its own error.
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await work
        raise OperationCancelled(self.reason or "cancelled")


async def run_cancellable(
    awaitable: Awaitable[T], cancel: Optional[CancellationToken]
) -> T:
    if cancel is None:
        return await awaitable
    return await cancel.run(awaitable)
