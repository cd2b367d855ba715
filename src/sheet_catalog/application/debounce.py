"""Keystroke debouncing for interactive search inputs."""

import asyncio
import logging
from typing import Any, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_DEBOUNCE_SECONDS = 0.3


class Debouncer(Generic[T]):
    """
    Deliver the last pushed value once input has been quiet for ``delay``.

    Each push cancels the pending delivery, so only the settled value
    reaches the callback. Must be used from within a running event loop.

    Example:
        debouncer = Debouncer(lambda q: print(suggest(songs, q)))
        debouncer.push("am")
        debouncer.push("amaz")   # "am" is never delivered
        ...
        debouncer.close()        # on teardown
    """

    def __init__(self, callback: Callable[[T], Any], delay: float = DEFAULT_DEBOUNCE_SECONDS):
        if delay < 0:
            raise ValueError(f"delay must not be negative, got {delay}")
        self.callback = callback
        self.delay = delay
        self._task: Optional[asyncio.Task] = None
        self._pending_value: Optional[T] = None
        self._closed = False

    @property
    def pending(self) -> bool:
        """Whether a delivery is scheduled."""
        return self._task is not None and not self._task.done()

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, value: T) -> None:
        """Record a new raw input value and restart the quiet period."""
        if self._closed:
            raise RuntimeError("Debouncer is closed")
        self.cancel()
        self._pending_value = value
        self._task = asyncio.get_running_loop().create_task(self._deliver_later(value))

    def cancel(self) -> None:
        """Drop the pending delivery, if any."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def flush(self) -> None:
        """Deliver the pending value immediately instead of waiting."""
        if not self.pending:
            return
        value = self._pending_value
        self.cancel()
        await self._deliver(value)

    async def wait(self) -> None:
        """Wait for the pending delivery to happen (or be cancelled)."""
        task = self._task
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    def close(self) -> None:
        """Cancel any pending delivery and refuse further input."""
        self.cancel()
        self._closed = True

    async def _deliver_later(self, value: T) -> None:
        await asyncio.sleep(self.delay)
        # Detach first so a push from inside the callback schedules a fresh
        # delivery instead of cancelling this one mid-flight.
        self._task = None
        await self._deliver(value)

    async def _deliver(self, value: T) -> None:
        try:
            result = self.callback(value)
            if asyncio.iscoroutine(result):
                await result
        except Exception:
            logger.exception("Debounced callback failed for %r", value)
