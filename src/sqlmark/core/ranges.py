"""Structured helpers for representing text spans."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Iterator


@dataclass(slots=True, frozen=True)
class TextRange(Sequence[int]):
    """Half-open span of absolute character offsets inside a buffer."""

    start: int
    end: int

    def __post_init__(self) -> None:
        start = _coerce_index(self.start, "TextRange", "start", minimum=0)
        end = _coerce_index(self.end, "TextRange", "end", minimum=0)
        if end < start:
            start, end = end, start
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "end", end)

    def __len__(self) -> int:
        return 2

    def __getitem__(self, index: int | slice) -> int | tuple[int, ...]:
        if isinstance(index, slice):
            return self.to_tuple()[index]
        if index == 0:
            return self.start
        if index == 1:
            return self.end
        raise IndexError("TextRange index out of range")

    def __iter__(self) -> Iterator[int]:
        yield self.start
        yield self.end

    @property
    def length(self) -> int:
        """Return the width of the range."""

        return self.end - self.start

    @property
    def is_caret(self) -> bool:
        """Return ``True`` when the range collapses to a caret."""

        return self.start == self.end

    def overlaps(self, other: TextRange) -> bool:
        """Return ``True`` when both spans share at least one character."""

        return self.start < other.end and other.start < self.end

    def touches(self, other: TextRange) -> bool:
        """Return ``True`` when the spans overlap or share a boundary."""

        return self.start <= other.end and other.start <= self.end

    def to_tuple(self) -> tuple[int, int]:
        return (self.start, self.end)

    def to_dict(self) -> dict[str, int]:
        return {"start": self.start, "end": self.end}

    @classmethod
    def from_value(cls, value: Any) -> TextRange:
        """Coerce ``value`` into a :class:`TextRange`."""

        if isinstance(value, TextRange):
            return value
        if isinstance(value, Mapping):
            start = value.get("start")
            end = value.get("end")
            if start is None or end is None:
                raise ValueError("TextRange mappings require start and end keys")
            return cls(start, end)
        if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
            seq = list(value)
            if len(seq) != 2:
                raise ValueError("TextRange sequences must have exactly two entries")
            return cls(seq[0], seq[1])
        raise TypeError("Unsupported TextRange input")


@dataclass(slots=True, frozen=True)
class EditorRange:
    """Line/column span using 1-based lines and columns (end column exclusive).

    This is the coordinate system shared with the editor surface and the
    exchange format, where it serializes as ``startLineNumber`` /
    ``startColumn`` / ``endLineNumber`` / ``endColumn``.
    """

    start_line: int
    start_column: int
    end_line: int
    end_column: int

    def __post_init__(self) -> None:
        start_line = _coerce_index(self.start_line, "EditorRange", "start_line", minimum=1)
        start_column = _coerce_index(self.start_column, "EditorRange", "start_column", minimum=1)
        end_line = _coerce_index(self.end_line, "EditorRange", "end_line", minimum=1)
        end_column = _coerce_index(self.end_column, "EditorRange", "end_column", minimum=1)
        if (end_line, end_column) < (start_line, start_column):
            start_line, start_column, end_line, end_column = end_line, end_column, start_line, start_column
        object.__setattr__(self, "start_line", start_line)
        object.__setattr__(self, "start_column", start_column)
        object.__setattr__(self, "end_line", end_line)
        object.__setattr__(self, "end_column", end_column)

    @property
    def start(self) -> tuple[int, int]:
        return (self.start_line, self.start_column)

    @property
    def end(self) -> tuple[int, int]:
        return (self.end_line, self.end_column)

    @property
    def is_empty(self) -> bool:
        return self.start == self.end

    @property
    def is_single_line(self) -> bool:
        return self.start_line == self.end_line

    def intersects(self, other: EditorRange) -> bool:
        """Return ``True`` when the spans overlap or touch at a boundary."""

        return self.start <= other.end and other.start <= self.end

    def contains(self, other: EditorRange) -> bool:
        return self.start <= other.start and other.end <= self.end

    def with_end(self, line: int, column: int) -> EditorRange:
        return EditorRange(self.start_line, self.start_column, line, column)

    def to_dict(self) -> dict[str, int]:
        """Return the wire representation used by the exchange format."""

        return {
            "startLineNumber": self.start_line,
            "startColumn": self.start_column,
            "endLineNumber": self.end_line,
            "endColumn": self.end_column,
        }

    @classmethod
    def from_value(cls, value: Any) -> EditorRange:
        """Coerce wire mappings, 4-sequences or ranges into an :class:`EditorRange`."""

        if isinstance(value, EditorRange):
            return value
        if isinstance(value, Mapping):
            keys = ("startLineNumber", "startColumn", "endLineNumber", "endColumn")
            if not all(key in value for key in keys):
                keys = ("start_line", "start_column", "end_line", "end_column")
            missing = [key for key in keys if value.get(key) is None]
            if missing:
                raise ValueError(f"EditorRange mapping is missing {', '.join(missing)}")
            return cls(*(value[key] for key in keys))
        if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
            seq = list(value)
            if len(seq) != 4:
                raise ValueError("EditorRange sequences must have exactly four entries")
            return cls(*seq)
        raise TypeError("Unsupported EditorRange input")

    @classmethod
    def caret(cls, line: int, column: int) -> EditorRange:
        """Return an empty range positioned at ``line``/``column``."""

        return cls(line, column, line, column)


def _coerce_index(value: Any, owner: str, label: str, *, minimum: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{owner} {label} must be an integer") from exc
    if number < minimum:
        return minimum
    return number


__all__ = ["TextRange", "EditorRange"]
