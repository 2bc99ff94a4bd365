"""Tests for the session event bus."""

from __future__ import annotations

import gc

from sqlmark.events import (
    DocumentMaterialized,
    EventBus,
    ReferenceInserted,
    ReferenceRemoved,
    ReferencesInvalidated,
)


class _Recorder:
    def __init__(self) -> None:
        self.events: list[object] = []

    def on_event(self, event: object) -> None:
        self.events.append(event)


def test_publish_reaches_subscribers_of_that_type() -> None:
    bus = EventBus()
    inserted: list[ReferenceInserted] = []
    removed: list[ReferenceRemoved] = []
    bus.subscribe(ReferenceInserted, inserted.append)
    bus.subscribe(ReferenceRemoved, removed.append)

    event = ReferenceInserted(markup="m1", source_type="asset_table", text='"table_1"')
    bus.publish(event)

    assert inserted == [event]
    assert removed == []


def test_handler_errors_are_contained() -> None:
    bus = EventBus()
    seen: list[ReferencesInvalidated] = []

    def broken(_event: ReferencesInvalidated) -> None:
        raise RuntimeError("subscriber failed")

    bus.subscribe(ReferencesInvalidated, broken)
    bus.subscribe(ReferencesInvalidated, seen.append)

    bus.publish(ReferencesInvalidated(markups=("m1",)))

    assert [event.markups for event in seen] == [("m1",)]


def test_unsubscribe() -> None:
    bus = EventBus()
    seen: list[ReferenceRemoved] = []
    bus.subscribe(ReferenceRemoved, seen.append)

    bus.unsubscribe(ReferenceRemoved, seen.append)
    bus.unsubscribe(ReferenceRemoved, seen.append)
    bus.publish(ReferenceRemoved(markup="m1"))

    assert seen == []
    assert bus.handler_count(ReferenceRemoved) == 0


def test_bound_methods_are_held_weakly() -> None:
    bus = EventBus()
    recorder = _Recorder()
    bus.subscribe(DocumentMaterialized, recorder.on_event)

    bus.publish(DocumentMaterialized(text="select 1", source_count=0))
    assert len(recorder.events) == 1

    del recorder
    gc.collect()
    bus.publish(DocumentMaterialized(text="select 2", source_count=0))

    assert bus.handler_count(DocumentMaterialized) == 0


def test_handler_count_and_clear() -> None:
    bus = EventBus()
    bus.subscribe(ReferenceInserted, lambda event: None)
    bus.subscribe(ReferenceRemoved, lambda event: None)

    assert bus.handler_count() == 2

    bus.clear()

    assert bus.handler_count() == 0
