"""Registry of active source references for one document session."""

from __future__ import annotations

import logging

from ..editor.text_buffer import TrackedRangeProvider
from ..errors import DuplicateMarkupError, RangeOwnershipError, UnknownReferenceError
from .models import SourceReference

LOGGER = logging.getLogger(__name__)


class ReferenceRegistry:
    """Stores references by markup with a reverse index from range id.

    The registry owns the tracked ranges of registered references: removing
    a reference releases its ranges through the provider. Stored references
    are frozen, so :meth:`list` hands out a value snapshot that later
    mutations cannot affect.
    """

    def __init__(self, provider: TrackedRangeProvider) -> None:
        self._provider = provider
        self._by_markup: dict[str, SourceReference] = {}
        self._by_range: dict[str, str] = {}

    @property
    def provider(self) -> TrackedRangeProvider:
        return self._provider

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def register(self, reference: SourceReference) -> SourceReference:
        """Add ``reference``; raises on a duplicate markup or a claimed range."""

        if reference.markup in self._by_markup:
            raise DuplicateMarkupError(markup=reference.markup)
        self._check_ranges_free(reference)
        self._index(reference)
        LOGGER.debug(
            "Registered reference markup=%s type=%s ranges=%d",
            reference.markup,
            reference.source_type.value,
            len(reference.range_ids),
        )
        return reference

    def replace(self, reference: SourceReference) -> SourceReference:
        """Swap the stored reference with the same markup; returns the old one.

        Ranges held by the old reference and not reused by the new one are
        released through the provider.
        """

        previous = self._by_markup.get(reference.markup)
        if previous is None:
            raise UnknownReferenceError(markup=reference.markup)
        self._unindex_ranges(previous)
        try:
            self._check_ranges_free(reference)
        except RangeOwnershipError:
            self._index_ranges(previous)
            raise
        # Assigning over the existing key keeps the registration order.
        self._by_markup[reference.markup] = reference
        self._index_ranges(reference)
        stale = [range_id for range_id in previous.range_ids if range_id not in reference.range_ids]
        if stale:
            self._provider.remove_ranges(stale)
        LOGGER.debug("Replaced reference markup=%s released_ranges=%d", reference.markup, len(stale))
        return previous

    def remove(self, markup: str, *, release_ranges: bool = True) -> SourceReference | None:
        """Drop the reference for ``markup`` and release its tracked ranges."""

        reference = self._by_markup.get(markup)
        if reference is None:
            return None
        self._unindex(reference)
        if release_ranges:
            self._provider.remove_ranges(reference.range_ids)
        LOGGER.debug("Removed reference markup=%s", markup)
        return reference

    def clear(self, *, release_ranges: bool = True) -> tuple[SourceReference, ...]:
        removed = tuple(self._by_markup.values())
        if release_ranges:
            for reference in removed:
                self._provider.remove_ranges(reference.range_ids)
        self._by_markup.clear()
        self._by_range.clear()
        return removed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get(self, markup: str) -> SourceReference | None:
        return self._by_markup.get(markup)

    def lookup_by_range(self, range_id: str) -> SourceReference | None:
        markup = self._by_range.get(range_id)
        if markup is None:
            return None
        return self._by_markup.get(markup)

    def list(self) -> tuple[SourceReference, ...]:
        """Return a snapshot of the active references in registration order."""

        return tuple(self._by_markup.values())

    def markups(self) -> tuple[str, ...]:
        return tuple(self._by_markup)

    def __len__(self) -> int:
        return len(self._by_markup)

    def __contains__(self, markup: object) -> bool:
        return markup in self._by_markup

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _check_ranges_free(self, reference: SourceReference) -> None:
        seen: set[str] = set()
        for range_id in reference.range_ids:
            owner = self._by_range.get(range_id)
            if owner is not None or range_id in seen:
                raise RangeOwnershipError(range_id=range_id, owner=owner or reference.markup)
            seen.add(range_id)

    def _index(self, reference: SourceReference) -> None:
        self._by_markup[reference.markup] = reference
        self._index_ranges(reference)

    def _unindex(self, reference: SourceReference) -> None:
        self._by_markup.pop(reference.markup, None)
        self._unindex_ranges(reference)

    def _index_ranges(self, reference: SourceReference) -> None:
        for range_id in reference.range_ids:
            self._by_range[range_id] = reference.markup

    def _unindex_ranges(self, reference: SourceReference) -> None:
        for range_id in reference.range_ids:
            if self._by_range.get(range_id) == reference.markup:
                self._by_range.pop(range_id, None)


__all__ = ["ReferenceRegistry"]
