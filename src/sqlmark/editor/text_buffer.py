"""Headless text buffer with editor-style tracked ranges.

The buffer keeps a plain string plus a table of tracked ranges stored as
absolute offsets. Every edit relocates the ranges so callers can keep
asking "where is this span now?" without doing offset arithmetic
themselves. Positions exposed to callers use 1-based line/column
coordinates (:class:`~sqlmark.core.ranges.EditorRange`).

Stickiness follows the "never grows when typing at edges" rule: inserting
text at a range's start pushes the range right, inserting at its end leaves
the range untouched, and replacing exactly a range's span keeps the range
wrapped around the replacement.
"""

from __future__ import annotations

import bisect
import itertools
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Protocol, Sequence

from ..core.ranges import EditorRange, TextRange

LOGGER = logging.getLogger(__name__)

ChangeListener = Callable[["ContentChangedEvent"], None]


@dataclass(slots=True, frozen=True)
class RangeSpec:
    """Request to start tracking ``range`` on a buffer."""

    range: EditorRange
    style_tag: str = ""
    attached_data: Any = None


@dataclass(slots=True, frozen=True)
class TextEdit:
    """Replace the text covered by ``range`` with ``text``."""

    range: EditorRange
    text: str


@dataclass(slots=True, frozen=True)
class ContentChange:
    """One applied edit, described in pre-edit coordinates."""

    range: EditorRange
    range_offset: int
    range_length: int
    text: str


@dataclass(slots=True, frozen=True)
class ContentChangedEvent:
    """Batch of changes produced by a single ``apply_edits``/``set_text`` call."""

    changes: tuple[ContentChange, ...]
    version_id: int
    is_flush: bool = False


@dataclass(slots=True, frozen=True)
class TrackedRangeInfo:
    """Read-only view of a tracked range at its current position."""

    id: str
    range: EditorRange
    style_tag: str
    attached_data: Any = None


class TrackedRangeProvider(Protocol):
    """Range-tracking capability consumed by the reference engine."""

    @property
    def text(self) -> str:
        ...

    @property
    def line_count(self) -> int:
        ...

    def line_max_column(self, line: int) -> int:
        ...

    def create_ranges(self, specs: Sequence[RangeSpec]) -> list[str]:
        ...

    def get_range(self, range_id: str) -> EditorRange | None:
        ...

    def get_content(self, range: EditorRange) -> str:
        ...

    def apply_edits(self, edits: Sequence[TextEdit]) -> ContentChangedEvent:
        ...

    def remove_ranges(self, range_ids: Iterable[str]) -> None:
        ...

    def ranges_in(self, region: EditorRange, *, style_prefix: str | None = None) -> list[TrackedRangeInfo]:
        ...


@dataclass(slots=True)
class _TrackedRange:
    start: int
    end: int
    style_tag: str
    attached_data: Any


class TrackedTextBuffer:
    """In-memory text surface implementing :class:`TrackedRangeProvider`."""

    def __init__(self, text: str = "", *, buffer_id: str | None = None) -> None:
        self._buffer_id = buffer_id or uuid.uuid4().hex[:8]
        self._text = ""
        self._line_starts: list[int] = [0]
        self._ranges: dict[str, _TrackedRange] = {}
        self._range_seq = itertools.count(1)
        self._version_id = 1
        self._listeners: list[ChangeListener] = []
        self._replace_text(_normalize_newlines(text))

    # ------------------------------------------------------------------
    # Text access
    # ------------------------------------------------------------------
    @property
    def buffer_id(self) -> str:
        return self._buffer_id

    @property
    def text(self) -> str:
        return self._text

    @property
    def version_id(self) -> int:
        return self._version_id

    @property
    def line_count(self) -> int:
        return len(self._line_starts)

    def line_text(self, line: int) -> str:
        index = self._check_line(line)
        start = self._line_starts[index]
        end = self._line_starts[index + 1] - 1 if index + 1 < len(self._line_starts) else len(self._text)
        return self._text[start:end]

    def line_max_column(self, line: int) -> int:
        return len(self.line_text(line)) + 1

    def full_range(self) -> EditorRange:
        last = self.line_count
        return EditorRange(1, 1, last, self.line_max_column(last))

    def get_content(self, range: EditorRange) -> str:
        span = self.to_offsets(range)
        return self._text[span.start : span.end]

    def set_text(self, text: str) -> ContentChangedEvent:
        """Replace the whole content, dropping every tracked range."""

        previous = self.full_range()
        previous_length = len(self._text)
        normalized = _normalize_newlines(text)
        dropped = len(self._ranges)
        self._ranges.clear()
        self._replace_text(normalized)
        self._version_id += 1
        event = ContentChangedEvent(
            changes=(ContentChange(previous, 0, previous_length, normalized),),
            version_id=self._version_id,
            is_flush=True,
        )
        LOGGER.debug(
            "Buffer %s reset: chars=%d, dropped_ranges=%d, version=%d",
            self._buffer_id,
            len(normalized),
            dropped,
            self._version_id,
        )
        self._notify(event)
        return event

    # ------------------------------------------------------------------
    # Coordinate conversion
    # ------------------------------------------------------------------
    def offset_at(self, line: int, column: int, *, strict: bool = False) -> int:
        """Return the absolute offset of ``line``/``column``.

        Out-of-range coordinates are clamped unless ``strict`` is set, in
        which case a :class:`ValueError` is raised.
        """

        if strict and not self.is_valid_position(line, column):
            raise ValueError(f"Position {line}:{column} is outside the buffer")
        line = min(max(1, line), self.line_count)
        column = min(max(1, column), self.line_max_column(line))
        return self._line_starts[line - 1] + column - 1

    def position_at(self, offset: int) -> tuple[int, int]:
        offset = min(max(0, offset), len(self._text))
        index = bisect.bisect_right(self._line_starts, offset) - 1
        return index + 1, offset - self._line_starts[index] + 1

    def to_offsets(self, range: EditorRange, *, strict: bool = False) -> TextRange:
        start = self.offset_at(range.start_line, range.start_column, strict=strict)
        end = self.offset_at(range.end_line, range.end_column, strict=strict)
        return TextRange(start, end)

    def to_range(self, start: int, end: int) -> EditorRange:
        start_line, start_column = self.position_at(start)
        end_line, end_column = self.position_at(end)
        return EditorRange(start_line, start_column, end_line, end_column)

    def is_valid_position(self, line: int, column: int) -> bool:
        if line < 1 or line > self.line_count:
            return False
        return 1 <= column <= self.line_max_column(line)

    def is_valid_range(self, range: EditorRange) -> bool:
        return self.is_valid_position(range.start_line, range.start_column) and self.is_valid_position(
            range.end_line, range.end_column
        )

    # ------------------------------------------------------------------
    # Tracked ranges
    # ------------------------------------------------------------------
    def create_ranges(self, specs: Sequence[RangeSpec]) -> list[str]:
        ids: list[str] = []
        for spec in specs:
            span = self.to_offsets(spec.range)
            range_id = f"{self._buffer_id}-r{next(self._range_seq)}"
            self._ranges[range_id] = _TrackedRange(span.start, span.end, spec.style_tag, spec.attached_data)
            ids.append(range_id)
        return ids

    def get_range(self, range_id: str) -> EditorRange | None:
        tracked = self._ranges.get(range_id)
        if tracked is None:
            return None
        return self.to_range(tracked.start, tracked.end)

    def get_tracked(self, range_id: str) -> TrackedRangeInfo | None:
        tracked = self._ranges.get(range_id)
        if tracked is None:
            return None
        return TrackedRangeInfo(
            id=range_id,
            range=self.to_range(tracked.start, tracked.end),
            style_tag=tracked.style_tag,
            attached_data=tracked.attached_data,
        )

    def remove_ranges(self, range_ids: Iterable[str]) -> None:
        for range_id in range_ids:
            self._ranges.pop(range_id, None)

    def has_range(self, range_id: str) -> bool:
        return range_id in self._ranges

    def range_ids(self) -> tuple[str, ...]:
        return tuple(self._ranges)

    def ranges_in(self, region: EditorRange, *, style_prefix: str | None = None) -> list[TrackedRangeInfo]:
        """Return ranges overlapping or touching ``region``, ordered by position."""

        probe = self.to_offsets(region)
        matches: list[tuple[int, int, str, _TrackedRange]] = []
        for range_id, tracked in self._ranges.items():
            if style_prefix is not None and not tracked.style_tag.startswith(style_prefix):
                continue
            if TextRange(tracked.start, tracked.end).touches(probe):
                matches.append((tracked.start, tracked.end, range_id, tracked))
        matches.sort(key=lambda item: (item[0], item[1]))
        return [
            TrackedRangeInfo(
                id=range_id,
                range=self.to_range(start, end),
                style_tag=tracked.style_tag,
                attached_data=tracked.attached_data,
            )
            for start, end, range_id, tracked in matches
        ]

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------
    def apply_edits(self, edits: Sequence[TextEdit]) -> ContentChangedEvent:
        """Apply a batch of non-overlapping edits and relocate tracked ranges."""

        if not edits:
            return ContentChangedEvent(changes=(), version_id=self._version_id)

        prepared: list[tuple[int, int, int, str, EditorRange]] = []
        for index, edit in enumerate(edits):
            span = self.to_offsets(edit.range, strict=True)
            prepared.append((span.start, index, span.end, _normalize_newlines(edit.text), edit.range))
        prepared.sort(key=lambda item: (item[0], item[1]))

        previous_end = -1
        for start, _index, end, _text, _range in prepared:
            if start < previous_end:
                raise ValueError("Edits in one batch may not overlap")
            previous_end = max(previous_end, end)

        changes = tuple(
            ContentChange(range=self.to_range(start, end), range_offset=start, range_length=end - start, text=text)
            for start, _index, end, text, _range in prepared
        )

        updated = self._text
        for start, _index, end, text, _range in reversed(prepared):
            updated = updated[:start] + text + updated[end:]
            for tracked in self._ranges.values():
                new_start = _map_offset(tracked.start, start, end, len(text), is_start=True)
                new_end = _map_offset(tracked.end, start, end, len(text), is_start=False)
                if new_end < new_start:
                    new_start = new_end
                tracked.start, tracked.end = new_start, new_end

        self._replace_text(updated)
        self._version_id += 1
        event = ContentChangedEvent(changes=changes, version_id=self._version_id)
        self._notify(event)
        return event

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------
    def add_change_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def remove_change_listener(self, listener: ChangeListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def _notify(self, event: ContentChangedEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                LOGGER.exception("Change listener %r failed for buffer %s", listener, self._buffer_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _replace_text(self, text: str) -> None:
        self._text = text
        starts = [0]
        position = text.find("\n")
        while position != -1:
            starts.append(position + 1)
            position = text.find("\n", position + 1)
        self._line_starts = starts

    def _check_line(self, line: int) -> int:
        if line < 1 or line > self.line_count:
            raise ValueError(f"Line {line} is outside the buffer (1..{self.line_count})")
        return line - 1


def _map_offset(position: int, start: int, end: int, length: int, *, is_start: bool) -> int:
    """Relocate ``position`` across the replacement of ``[start, end)`` by ``length`` chars."""

    if position < start:
        return position
    if position > end:
        return position + length - (end - start)
    if start == end:
        return position + length if is_start else position
    if position == start:
        return start
    if position == end:
        return start + length
    return start if is_start else start + length


def _normalize_newlines(text: str) -> str:
    if "\r" not in text:
        return text
    return text.replace("\r\n", "\n").replace("\r", "\n")


__all__ = [
    "ChangeListener",
    "ContentChange",
    "ContentChangedEvent",
    "RangeSpec",
    "TextEdit",
    "TrackedRangeInfo",
    "TrackedRangeProvider",
    "TrackedTextBuffer",
]
