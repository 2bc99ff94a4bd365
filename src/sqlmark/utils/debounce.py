"""Quiescence-window debouncing on top of the asyncio event loop."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Generic, Sequence, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")
BatchHandler = Callable[[Sequence[T]], None]


class DebouncedHandler(Generic[T]):
    """Collects payloads and hands them to one handler after a quiet period.

    Every :meth:`submit` restarts the timer; once ``delay`` seconds pass
    without a new submission the queued payloads are delivered together, in
    submission order. The target can be swapped through :attr:`handler` at
    any time and the next delivery uses whichever function is current, so
    the queue survives the swap.

    Without a running event loop (or with ``delay <= 0``) submissions are
    delivered synchronously.
    """

    def __init__(
        self,
        handler: BatchHandler[T],
        *,
        delay: float,
        loop: asyncio.AbstractEventLoop | None = None,
        name: str = "debounced",
    ) -> None:
        self._handler = handler
        self._delay = max(0.0, float(delay))
        self._loop = loop
        self._name = name
        self._queue: list[T] = []
        self._timer: asyncio.TimerHandle | None = None

    @property
    def handler(self) -> BatchHandler[T]:
        return self._handler

    @handler.setter
    def handler(self, handler: BatchHandler[T]) -> None:
        self._handler = handler

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def pending(self) -> int:
        return len(self._queue)

    @property
    def is_scheduled(self) -> bool:
        return self._timer is not None

    def submit(self, payload: T) -> None:
        self._queue.append(payload)
        loop = self._resolve_loop()
        if loop is None or self._delay <= 0:
            self._deliver_safely()
            return
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(self._delay, self._on_timer)

    def flush(self) -> bool:
        """Deliver queued payloads now; returns ``False`` when nothing was queued.

        Handler exceptions propagate to the caller.
        """

        self._cancel_timer()
        if not self._queue:
            return False
        batch, self._queue = self._queue, []
        LOGGER.debug("%s: delivering %d payload(s)", self._name, len(batch))
        self._handler(batch)
        return True

    def cancel(self) -> int:
        """Drop queued payloads without delivering them."""

        self._cancel_timer()
        dropped = len(self._queue)
        self._queue = []
        return dropped

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _on_timer(self) -> None:
        self._timer = None
        self._deliver_safely()

    def _deliver_safely(self) -> None:
        try:
            self.flush()
        except Exception:
            LOGGER.exception("%s: handler failed", self._name)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _resolve_loop(self) -> asyncio.AbstractEventLoop | None:
        if self._loop is not None:
            return None if self._loop.is_closed() else self._loop
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            return None


__all__ = ["BatchHandler", "DebouncedHandler"]
