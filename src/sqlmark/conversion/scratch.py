"""Private scratch surfaces used by the markup converter."""

from __future__ import annotations

import asyncio
import itertools
import logging

from ..editor.text_buffer import TrackedTextBuffer
from ..errors import ConversionTimeoutError

LOGGER = logging.getLogger(__name__)


class ScratchHost:
    """Hands out throwaway tracked buffers once the host signals readiness.

    Embedding applications that back the scratch surface with something
    slow to start (a hidden widget, a worker) construct the host with
    ``ready=False`` and call :meth:`mark_ready` when it is usable.
    """

    def __init__(self, *, ready: bool = True, prefix: str = "scratch") -> None:
        self._ready = asyncio.Event()
        if ready:
            self._ready.set()
        self._prefix = prefix
        self._seq = itertools.count(1)

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    def mark_ready(self) -> None:
        self._ready.set()

    def mark_unready(self) -> None:
        self._ready.clear()

    async def wait_ready(self, timeout: float | None = None) -> None:
        """Wait until the host is ready; raises :class:`ConversionTimeoutError` on expiry."""

        if self._ready.is_set():
            return
        LOGGER.debug("Waiting up to %ss for scratch surface", timeout)
        try:
            await asyncio.wait_for(self._ready.wait(), timeout)
        except asyncio.TimeoutError as exc:
            LOGGER.warning("Scratch surface not ready after %ss", timeout)
            raise ConversionTimeoutError(timeout=timeout) from exc

    def create_buffer(self, text: str = "") -> TrackedTextBuffer:
        return TrackedTextBuffer(text, buffer_id=f"{self._prefix}{next(self._seq)}")


__all__ = ["ScratchHost"]
