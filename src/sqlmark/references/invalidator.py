"""Purges references whose tracked text no longer matches what was rendered."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Sequence

from ..core.ranges import EditorRange
from ..editor.text_buffer import ContentChange, ContentChangedEvent
from .models import SourceReference
from .registry import ReferenceRegistry
from .rendering import REFERENCE_STYLE_PREFIX

LOGGER = logging.getLogger(__name__)

RemovalCallback = Callable[[tuple[SourceReference, ...]], None]


@dataclass(slots=True, frozen=True)
class InvalidationReport:
    """Outcome of one invalidation pass."""

    removed: tuple[SourceReference, ...] = ()
    examined: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.removed)

    @property
    def removed_markups(self) -> tuple[str, ...]:
        return tuple(reference.markup for reference in self.removed)


class EditInvalidator:
    """Judges references touched by text changes and removes the stale ones.

    A reference is stale when its primary range is gone or its live text
    differs from ``expected_content``. With ``validate_secondary`` enabled
    the cosmetic sub-spans are compared against ``secondary_contents`` too.
    Passes are idempotent: judging an unchanged buffer twice removes nothing
    the first pass kept.
    """

    def __init__(
        self,
        registry: ReferenceRegistry,
        *,
        validate_secondary: bool = False,
        on_removed: RemovalCallback | None = None,
    ) -> None:
        self._registry = registry
        self.validate_secondary = validate_secondary
        self._on_removed = on_removed

    @property
    def registry(self) -> ReferenceRegistry:
        return self._registry

    def affected_region(self, change: ContentChange) -> EditorRange:
        """Return the region to inspect for ``change``.

        When the inserted text spans more lines than the replaced range, the
        region is widened through the end of the last inserted line.
        """

        provider = self._registry.provider
        line_count = max(1, provider.line_count)
        region = change.range
        inserted_lines = change.text.count("\n")
        replaced_lines = region.end_line - region.start_line
        if inserted_lines > replaced_lines:
            end_line = min(region.start_line + inserted_lines, line_count)
            region = region.with_end(end_line, provider.line_max_column(end_line))
        elif change.text and not inserted_lines:
            end_column = region.start_column + len(change.text)
            if region.is_single_line and end_column > region.end_column:
                region = region.with_end(region.end_line, end_column)
        if region.end_line > line_count:
            region = region.with_end(line_count, provider.line_max_column(line_count))
        return region

    def handle_event(self, event: ContentChangedEvent) -> InvalidationReport:
        if event.is_flush:
            # A full reset drops every tracked range; everything left is dead.
            return self.sweep()
        return self.run(event.changes)

    def handle_events(self, events: Sequence[ContentChangedEvent]) -> InvalidationReport:
        """Judge a queued window of change events in one pass.

        Change ranges are recorded in pre-edit coordinates, so they only
        describe the live buffer for the most recent event. A window holding
        more than one event is judged with :meth:`sweep`.
        """

        if not events:
            return InvalidationReport()
        if len(events) == 1:
            return self.handle_event(events[0])
        return self.sweep()

    def run(self, changes: Iterable[ContentChange]) -> InvalidationReport:
        """Judge every reference whose ranges intersect one of ``changes``."""

        provider = self._registry.provider
        candidates: dict[str, SourceReference] = {}
        for change in changes:
            region = self.affected_region(change)
            try:
                hits = provider.ranges_in(region, style_prefix=REFERENCE_STYLE_PREFIX)
            except Exception:
                LOGGER.exception("Failed to query tracked ranges for region %s", region)
                continue
            for hit in hits:
                owner = self._registry.lookup_by_range(hit.id)
                if owner is not None and owner.markup not in candidates:
                    candidates[owner.markup] = owner
        return self._purge(candidates.values())

    def sweep(self) -> InvalidationReport:
        """Judge every registered reference regardless of where edits happened."""

        return self._purge(self._registry.list())

    def is_stale(self, reference: SourceReference) -> bool:
        provider = self._registry.provider
        primary = provider.get_range(reference.primary_range_id)
        if primary is None:
            return True
        if provider.get_content(primary) != reference.expected_content:
            return True
        if not self.validate_secondary:
            return False
        for range_id, expected in zip(reference.secondary_range_ids, reference.secondary_contents):
            current = provider.get_range(range_id)
            if current is None or provider.get_content(current) != expected:
                return True
        return False

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _purge(self, references: Sequence[SourceReference] | Iterable[SourceReference]) -> InvalidationReport:
        examined = 0
        removed: list[SourceReference] = []
        for reference in list(references):
            examined += 1
            try:
                stale = self.is_stale(reference)
            except Exception:
                LOGGER.exception("Failed to judge reference %s; removing it", reference.markup)
                stale = True
            if not stale:
                continue
            try:
                dropped = self._registry.remove(reference.markup)
            except Exception:
                LOGGER.exception("Failed to remove stale reference %s", reference.markup)
                continue
            if dropped is not None:
                removed.append(dropped)
                LOGGER.debug("Invalidated reference markup=%s", reference.markup)

        report = InvalidationReport(removed=tuple(removed), examined=examined)
        if report.changed and self._on_removed is not None:
            try:
                self._on_removed(report.removed)
            except Exception:
                LOGGER.exception("Invalidation callback failed")
        return report


__all__ = ["EditInvalidator", "InvalidationReport", "RemovalCallback"]
