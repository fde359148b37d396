"""Per-call trace id, deadline and cancellation."""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Awaitable
from typing import TypeVar

_T = TypeVar("_T")


class RequestContext:
    """Explicit per-call context threaded through service and DAO methods.

    The deadline is a ``time.monotonic()`` instant; ``None`` means no limit.
    Cancelling collapses the remaining time to zero, so every later storage
    call fails fast with a timeout, and interrupts a call already running
    under :meth:`run`.
    """

    def __init__(
        self,
        *,
        trace_id: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.trace_id = trace_id or str(uuid.uuid4())
        self.deadline: float | None = (
            time.monotonic() + timeout if timeout is not None else None
        )
        self._cancel_event = asyncio.Event()

    @classmethod
    def background(cls) -> RequestContext:
        """Context with a fresh trace id and no deadline (CLI, startup)."""
        return cls()

    def cancel(self) -> None:
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def remaining(self) -> float | None:
        """Seconds left before the deadline, clamped at zero.

        ``None`` when the context has no deadline and is not cancelled.
        """
        if self.cancelled:
            return 0.0
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    @property
    def expired(self) -> bool:
        left = self.remaining()
        return left is not None and left <= 0.0

    async def run(self, aw: Awaitable[_T]) -> _T:
        """Await *aw* until it finishes, the deadline passes, or :meth:`cancel` is called.

        On deadline or cancellation the inner task is cancelled, allowed to
        unwind (rolling back any open transaction), and
        :class:`asyncio.TimeoutError` is raised.
        """
        task = asyncio.ensure_future(aw)
        watcher = asyncio.ensure_future(self._cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, watcher},
                timeout=self.remaining(),
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            watcher.cancel()
            if not task.done():
                task.cancel()
                await asyncio.wait({task})

        if task in done:
            return task.result()
        raise asyncio.TimeoutError

    def __repr__(self) -> str:
        return f"RequestContext(trace_id={self.trace_id!r}, remaining={self.remaining()!r})"
