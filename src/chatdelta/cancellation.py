from __future__ import annotations

import asyncio
import time


class CancellationToken:
    """Cancellation signal shared by one logical call.

    Fires when ``cancel()`` is called or, if a ``timeout`` was given, when the
    deadline passes. Only waits observe it; a request already sent to the
    transport is bounded by the client timeout instead.
    """

    def __init__(self, *, timeout: float | None = None):
        self._event = asyncio.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self._deadline_passed()

    @property
    def reason(self) -> str:
        if self._event.is_set():
            return "cancelled"
        if self._deadline_passed():
            return "deadline exceeded"
        return ""

    def remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    async def wait(self, delay: float) -> bool:
        """Sleep for ``delay`` seconds. Returns True if the token fired first."""
        if self.cancelled:
            return True
        remaining = self.remaining()
        bounded_by_deadline = remaining is not None and remaining <= delay
        timeout = remaining if bounded_by_deadline else delay
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
        except TimeoutError:
            return bounded_by_deadline
        return True

    def _deadline_passed(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline
