from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

T = TypeVar("T")


class RunCancelledError(RuntimeError):
    pass


class CancellationToken:
    """Cooperative per-run cancellation signal.

    Checked between steps with :meth:`raise_if_cancelled` and raced against the
    suspension points (model calls, tool dispatches) with :meth:`guard`.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "Run cancelled") -> None:
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelledError(self.reason or "Run cancelled")

    async def wait(self) -> None:
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T], timeout: float | None = None) -> T:
        """Await ``awaitable`` unless the token fires first.

        Raises :class:`RunCancelledError` on cancellation and
        :class:`asyncio.TimeoutError` when ``timeout`` elapses.
        """
        self.raise_if_cancelled()
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {work, waiter},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()
        if work in done:
            return work.result()
        work.cancel()
        if waiter in done:
            raise RunCancelledError(self.reason or "Run cancelled")
        raise asyncio.TimeoutError(f"operation timed out after {timeout}s")
