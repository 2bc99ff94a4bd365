"""Event bus used to tell embedding applications what the session did.

The session publishes an event for every reference lifecycle change and
for each completed conversion, so a UI layer can redraw decorations or
refresh a source list without reaching into the registry.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, TypeVar
from weakref import WeakMethod

LOGGER = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")

Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for all session events."""


# =============================================================================
# Reference lifecycle
# =============================================================================


@dataclass(slots=True)
class ReferenceInserted(Event):
    """A reference was inserted into the live buffer.

    Attributes:
        markup: Markup of the new reference.
        source_type: Wire value of the reference's source type.
        text: Rendered text placed in the buffer.
    """

    markup: str
    source_type: str
    text: str


@dataclass(slots=True)
class ReferenceUpdated(Event):
    """A reference was re-rendered after its configuration changed."""

    markup: str
    text: str


@dataclass(slots=True)
class ReferenceRemoved(Event):
    """A reference was removed on request."""

    markup: str


@dataclass(slots=True)
class ReferencesInvalidated(Event):
    """An invalidation pass purged references whose text was edited.

    Attributes:
        markups: Markups of the purged references, in the order judged.
    """

    markups: tuple[str, ...]


# =============================================================================
# Conversion
# =============================================================================


@dataclass(slots=True)
class DocumentCanonicalized(Event):
    """The live buffer was exported to the canonical exchange form."""

    query: str
    source_count: int
    skipped: tuple[str, ...] = ()


@dataclass(slots=True)
class DocumentMaterialized(Event):
    """An exchange document was loaded into the live buffer."""

    text: str
    source_count: int
    skipped: int = 0
    skipped_markups: tuple[str, ...] = field(default_factory=tuple)


class EventBus(Generic[E]):
    """Typed publish/subscribe hub.

    Bound methods are held through :class:`weakref.WeakMethod` so a
    subscriber going away unsubscribes itself; plain functions and lambdas
    are held strongly. Handler exceptions are logged and never reach the
    publisher. Not thread-safe: use it from the event loop thread.
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        self._handlers: defaultdict[type[Event], list[_HandlerRef]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        self._handlers[event_type].append(_HandlerRef.create(handler))
        LOGGER.debug("Subscribed %s to %s", _handler_name(handler), event_type.__name__)

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Remove the first registration of ``handler``; unknown handlers are ignored."""

        handlers = self._handlers.get(event_type)
        if not handlers:
            return
        for index, handler_ref in enumerate(handlers):
            if handler_ref.matches(handler):
                handlers.pop(index)
                LOGGER.debug("Unsubscribed %s from %s", _handler_name(handler), event_type.__name__)
                return

    def publish(self, event: E) -> None:
        event_type = type(event)
        handlers = self._handlers.get(event_type)
        if not handlers:
            return
        LOGGER.debug("Publishing %s to %d handler(s)", event_type.__name__, len(handlers))

        dead: list[_HandlerRef] = []
        for handler_ref in list(handlers):
            handler = handler_ref.resolve()
            if handler is None:
                dead.append(handler_ref)
                continue
            try:
                handler(event)
            except Exception:
                LOGGER.exception(
                    "Handler %s raised for event %s",
                    _handler_name(handler),
                    event_type.__name__,
                )
        for handler_ref in dead:
            if handler_ref in handlers:
                handlers.remove(handler_ref)

    def clear(self) -> None:
        self._handlers.clear()

    def handler_count(self, event_type: type[E] | None = None) -> int:
        if event_type is not None:
            return len(self._handlers.get(event_type, []))
        return sum(len(handlers) for handlers in self._handlers.values())


class _HandlerRef:
    """Weak reference for bound methods, strong reference for everything else."""

    __slots__ = ("_ref", "_is_weak")

    def __init__(self, handler_ref: Any, is_weak: bool) -> None:
        self._ref = handler_ref
        self._is_weak = is_weak

    @classmethod
    def create(cls, handler: Handler) -> _HandlerRef:
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                return cls(WeakMethod(handler), is_weak=True)
            except TypeError:
                pass
        return cls(handler, is_weak=False)

    def resolve(self) -> Handler | None:
        if not self._is_weak:
            return self._ref
        return self._ref()

    def matches(self, handler: Handler) -> bool:
        resolved = self.resolve()
        return resolved is not None and resolved == handler


def _handler_name(handler: Handler) -> str:
    if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
        return f"{type(handler.__self__).__name__}.{handler.__func__.__name__}"
    return getattr(handler, "__name__", repr(handler))


__all__ = [
    "Event",
    "EventBus",
    "Handler",
    "ReferenceInserted",
    "ReferenceUpdated",
    "ReferenceRemoved",
    "ReferencesInvalidated",
    "DocumentCanonicalized",
    "DocumentMaterialized",
]
