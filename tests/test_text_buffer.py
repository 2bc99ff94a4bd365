"""Tests for the headless tracked-range buffer."""

from __future__ import annotations

import pytest

from sqlmark.core.ranges import EditorRange
from sqlmark.editor.text_buffer import (
    ContentChangedEvent,
    RangeSpec,
    TextEdit,
    TrackedTextBuffer,
)


def _track(buffer: TrackedTextBuffer, start: int, end: int, tag: str = "__app__reference") -> str:
    (range_id,) = buffer.create_ranges([RangeSpec(buffer.to_range(start, end), tag)])
    return range_id


def _insert(buffer: TrackedTextBuffer, offset: int, text: str) -> ContentChangedEvent:
    return buffer.apply_edits([TextEdit(buffer.to_range(offset, offset), text)])


def _replace(buffer: TrackedTextBuffer, start: int, end: int, text: str) -> ContentChangedEvent:
    return buffer.apply_edits([TextEdit(buffer.to_range(start, end), text)])


class TestCoordinates:
    def test_empty_buffer_has_one_line(self) -> None:
        buffer = TrackedTextBuffer()

        assert buffer.line_count == 1
        assert buffer.full_range() == EditorRange(1, 1, 1, 1)

    def test_line_access(self) -> None:
        buffer = TrackedTextBuffer("select 1\nfrom dual\n")

        assert buffer.line_count == 3
        assert buffer.line_text(2) == "from dual"
        assert buffer.line_max_column(2) == 10
        assert buffer.line_text(3) == ""

    def test_line_text_rejects_unknown_line(self) -> None:
        with pytest.raises(ValueError):
            TrackedTextBuffer("a").line_text(2)

    def test_offsets_and_positions_agree(self) -> None:
        buffer = TrackedTextBuffer("ab\ncd")

        assert buffer.offset_at(2, 2) == 4
        assert buffer.position_at(4) == (2, 2)
        assert buffer.position_at(2) == (1, 3)

    def test_offset_at_clamps_unless_strict(self) -> None:
        buffer = TrackedTextBuffer("abc")

        assert buffer.offset_at(5, 40) == 3
        with pytest.raises(ValueError):
            buffer.offset_at(1, 5, strict=True)

    def test_validity_checks(self) -> None:
        buffer = TrackedTextBuffer("abc\nd")

        assert buffer.is_valid_range(EditorRange(1, 1, 2, 2))
        assert not buffer.is_valid_range(EditorRange(1, 1, 2, 3))
        assert not buffer.is_valid_position(3, 1)

    def test_carriage_returns_are_normalized(self) -> None:
        buffer = TrackedTextBuffer("a\r\nb\rc")

        assert buffer.text == "a\nb\nc"
        assert buffer.line_count == 3

    def test_get_content_spans_lines(self) -> None:
        buffer = TrackedTextBuffer("one\ntwo")

        assert buffer.get_content(EditorRange(1, 2, 2, 3)) == "ne\ntw"


class TestTrackedRanges:
    def test_ids_are_unique_and_buffer_scoped(self) -> None:
        buffer = TrackedTextBuffer("hello world", buffer_id="buf")

        first = _track(buffer, 0, 5)
        second = _track(buffer, 6, 11)

        assert first != second
        assert first.startswith("buf-")
        assert buffer.range_ids() == (first, second)

    def test_get_tracked_exposes_tag_and_data(self) -> None:
        buffer = TrackedTextBuffer("hello")
        (range_id,) = buffer.create_ranges([RangeSpec(EditorRange(1, 1, 1, 6), "__app__reference", "m1")])

        info = buffer.get_tracked(range_id)

        assert info is not None
        assert info.range == EditorRange(1, 1, 1, 6)
        assert info.style_tag == "__app__reference"
        assert info.attached_data == "m1"

    def test_insert_before_range_shifts_it(self) -> None:
        buffer = TrackedTextBuffer("abc TABLE def")
        range_id = _track(buffer, 4, 9)

        _insert(buffer, 0, "xx")

        assert buffer.get_range(range_id) == EditorRange(1, 7, 1, 12)
        assert buffer.get_content(buffer.get_range(range_id)) == "TABLE"

    def test_insert_at_start_does_not_grow_range(self) -> None:
        buffer = TrackedTextBuffer("abc TABLE def")
        range_id = _track(buffer, 4, 9)

        _insert(buffer, 4, "Z")

        assert buffer.get_content(buffer.get_range(range_id)) == "TABLE"

    def test_insert_at_end_does_not_grow_range(self) -> None:
        buffer = TrackedTextBuffer("abc TABLE def")
        range_id = _track(buffer, 4, 9)

        _insert(buffer, 9, "Z")

        assert buffer.get_content(buffer.get_range(range_id)) == "TABLE"
        assert buffer.text == "abc TABLEZ def"

    def test_insert_inside_range_grows_it(self) -> None:
        buffer = TrackedTextBuffer("abc TABLE def")
        range_id = _track(buffer, 4, 9)

        _insert(buffer, 6, "--")

        assert buffer.get_content(buffer.get_range(range_id)) == "TA--BLE"

    def test_exact_replacement_keeps_range_wrapped(self) -> None:
        buffer = TrackedTextBuffer("abc TABLE def")
        range_id = _track(buffer, 4, 9)

        _replace(buffer, 4, 9, '"table_1"')

        assert buffer.get_content(buffer.get_range(range_id)) == '"table_1"'

    def test_deleting_range_collapses_it(self) -> None:
        buffer = TrackedTextBuffer("abc TABLE def")
        range_id = _track(buffer, 4, 9)

        _replace(buffer, 2, 11, "")

        current = buffer.get_range(range_id)
        assert current is not None
        assert current.is_empty

    def test_remove_ranges_ignores_unknown_ids(self) -> None:
        buffer = TrackedTextBuffer("abc")
        range_id = _track(buffer, 0, 1)

        buffer.remove_ranges([range_id, "missing"])

        assert not buffer.has_range(range_id)
        assert buffer.get_range(range_id) is None

    def test_ranges_in_filters_by_prefix_and_sorts(self) -> None:
        buffer = TrackedTextBuffer("one two three")
        late = _track(buffer, 8, 13)
        early = _track(buffer, 0, 3)
        _track(buffer, 4, 7, tag="other")

        found = buffer.ranges_in(buffer.full_range(), style_prefix="__app__")

        assert [info.id for info in found] == [early, late]

    def test_ranges_in_includes_touching_ranges(self) -> None:
        buffer = TrackedTextBuffer("one two")
        range_id = _track(buffer, 0, 3)

        found = buffer.ranges_in(EditorRange(1, 4, 1, 4))

        assert [info.id for info in found] == [range_id]

    def test_set_text_drops_every_range(self) -> None:
        buffer = TrackedTextBuffer("abc")
        _track(buffer, 0, 1)

        event = buffer.set_text("new text")

        assert event.is_flush
        assert buffer.range_ids() == ()
        assert buffer.text == "new text"


class TestEditing:
    def test_batch_edits_apply_against_original_coordinates(self) -> None:
        buffer = TrackedTextBuffer("aaa bbb ccc")

        buffer.apply_edits(
            [
                TextEdit(EditorRange(1, 9, 1, 12), "Z"),
                TextEdit(EditorRange(1, 1, 1, 4), "X"),
            ]
        )

        assert buffer.text == "X bbb Z"

    def test_overlapping_edits_are_rejected(self) -> None:
        buffer = TrackedTextBuffer("abcdef")

        with pytest.raises(ValueError):
            buffer.apply_edits(
                [
                    TextEdit(EditorRange(1, 1, 1, 4), "x"),
                    TextEdit(EditorRange(1, 3, 1, 5), "y"),
                ]
            )
        assert buffer.text == "abcdef"

    def test_out_of_bounds_edit_is_rejected(self) -> None:
        buffer = TrackedTextBuffer("abc")

        with pytest.raises(ValueError):
            buffer.apply_edits([TextEdit(EditorRange(2, 1, 2, 1), "x")])

    def test_empty_batch_is_a_no_op(self) -> None:
        buffer = TrackedTextBuffer("abc")
        version = buffer.version_id

        event = buffer.apply_edits([])

        assert event.changes == ()
        assert buffer.version_id == version

    def test_one_event_per_batch_in_pre_edit_coordinates(self) -> None:
        buffer = TrackedTextBuffer("ab\ncd")
        events: list[ContentChangedEvent] = []
        buffer.add_change_listener(events.append)

        buffer.apply_edits(
            [
                TextEdit(EditorRange(2, 1, 2, 2), "Q"),
                TextEdit(EditorRange(1, 1, 1, 1), "line\n"),
            ]
        )

        assert len(events) == 1
        (event,) = events
        assert event.version_id == buffer.version_id
        assert [change.range for change in event.changes] == [EditorRange(1, 1, 1, 1), EditorRange(2, 1, 2, 2)]
        assert [change.text for change in event.changes] == ["line\n", "Q"]
        assert buffer.text == "line\nab\nQd"

    def test_listener_failures_do_not_block_edits(self) -> None:
        buffer = TrackedTextBuffer("abc")
        seen: list[int] = []

        def broken(_event: ContentChangedEvent) -> None:
            raise RuntimeError("boom")

        buffer.add_change_listener(broken)
        buffer.add_change_listener(lambda event: seen.append(event.version_id))

        _insert(buffer, 3, "d")

        assert buffer.text == "abcd"
        assert seen == [buffer.version_id]

    def test_removed_listener_is_not_called(self) -> None:
        buffer = TrackedTextBuffer("abc")
        events: list[ContentChangedEvent] = []
        buffer.add_change_listener(events.append)
        buffer.remove_change_listener(events.append)
        buffer.remove_change_listener(events.append)

        _insert(buffer, 0, "x")

        assert events == []
