"""Conversion between rendered editor text and canonical query text.

Both directions work through tracked ranges instead of offset arithmetic:
each replacement is applied at the range's *current* position, so earlier
replacements of a different length shift later ones automatically.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Sequence

from ..core.ranges import EditorRange
from ..editor.text_buffer import RangeSpec, TextEdit, TrackedRangeInfo, TrackedRangeProvider, TrackedTextBuffer
from ..errors import UnresolvedRangeError
from ..query.models import QueryDocument, QueryParameter, SourceDto
from ..references.models import SourceConfig, SourceReference, source_id_for, source_type_for
from ..references.registry import ReferenceRegistry
from ..references.rendering import (
    BOOKKEEPING_TAG,
    RenderedReference,
    SourceCatalog,
    canonical_token,
    render_reference,
)
from .scratch import ScratchHost

LOGGER = logging.getLogger(__name__)

DEFAULT_CONVERSION_TIMEOUT = 5.0


@dataclass(slots=True, frozen=True)
class CanonicalResult:
    """Output of :meth:`MarkupConverter.canonicalize`."""

    query: str
    sources: tuple[SourceDto, ...] = ()
    skipped: tuple[str, ...] = ()

    def to_document(self, parameters: Sequence[QueryParameter] = ()) -> QueryDocument:
        return QueryDocument(query=self.query, sources=self.sources, parameters=tuple(parameters))


@dataclass(slots=True, frozen=True)
class MaterializeResult:
    """Output of :meth:`MarkupConverter.materialize`.

    ``skipped`` counts sources that could not be placed; their markups are
    listed in ``skipped_markups`` in document order.
    """

    text: str
    references: tuple[SourceReference, ...] = ()
    skipped: int = 0
    skipped_markups: tuple[str, ...] = ()


def place_reference(
    buffer: TrackedTextBuffer,
    markup: str,
    config: SourceConfig,
    rendered: RenderedReference,
    offset: int,
) -> SourceReference:
    """Track ``rendered`` (already present in ``buffer`` at ``offset``) as a reference.

    Creates the primary range plus one range per secondary segment and
    returns the unregistered :class:`SourceReference` describing them.
    """

    specs = [
        RangeSpec(
            buffer.to_range(offset + segment.start, offset + segment.end),
            style_tag=segment.style_tag,
            attached_data=markup,
        )
        for segment in (rendered.primary, *rendered.secondary)
    ]
    range_ids = buffer.create_ranges(specs)
    return SourceReference(
        markup=markup,
        source_type=source_type_for(config),
        source_id=source_id_for(config),
        source_config=config,
        primary_range_id=range_ids[0],
        secondary_range_ids=tuple(range_ids[1:]),
        expected_content=rendered.segment_text(rendered.primary),
        secondary_contents=rendered.secondary_contents,
    )


class MarkupConverter:
    """Canonicalizes live buffers and materializes exchange documents."""

    def __init__(
        self,
        catalog: SourceCatalog,
        host: ScratchHost | None = None,
        *,
        timeout: float | None = DEFAULT_CONVERSION_TIMEOUT,
    ) -> None:
        self._catalog = catalog
        self._host = host or ScratchHost()
        self._timeout = timeout

    @property
    def catalog(self) -> SourceCatalog:
        return self._catalog

    @property
    def host(self) -> ScratchHost:
        return self._host

    # ------------------------------------------------------------------
    # Rendered -> canonical
    # ------------------------------------------------------------------
    async def canonicalize(
        self,
        surface: TrackedRangeProvider,
        references: Sequence[SourceReference],
    ) -> CanonicalResult:
        """Replace every live reference in a copy of ``surface`` with its token.

        The text and primary positions are captured before the first await,
        so edits made while waiting for the scratch surface do not leak into
        the result. References whose primary range is gone or no longer
        holds ``expected_content`` are skipped.
        """

        text = surface.text
        snapshot: list[tuple[SourceReference, EditorRange]] = []
        skipped: list[str] = []
        for reference in tuple(references):
            current = surface.get_range(reference.primary_range_id)
            if current is None or surface.get_content(current) != reference.expected_content:
                skipped.append(reference.markup)
                continue
            snapshot.append((reference, current))

        await self._host.wait_ready(self._timeout)
        scratch = self._host.create_buffer(text)
        range_ids = scratch.create_ranges(
            [RangeSpec(current, style_tag=BOOKKEEPING_TAG, attached_data=ref.markup) for ref, current in snapshot]
        )

        placed: list[tuple[SourceReference, str]] = []
        for (reference, _), range_id in zip(snapshot, range_ids):
            current = scratch.get_range(range_id)
            if current is None or current.is_empty:
                skipped.append(reference.markup)
                continue
            scratch.apply_edits([TextEdit(current, canonical_token(reference.markup, reference.source_type))])
            placed.append((reference, range_id))

        sources = tuple(
            SourceDto.from_reference(reference, scratch.get_range(range_id)) for reference, range_id in placed
        )
        result = CanonicalResult(query=scratch.text, sources=sources, skipped=tuple(skipped))
        LOGGER.debug(
            "Canonicalized %d reference(s), skipped=%d, chars=%d",
            len(sources),
            len(skipped),
            len(result.query),
        )
        return result

    # ------------------------------------------------------------------
    # Canonical -> rendered
    # ------------------------------------------------------------------
    async def materialize(
        self,
        document: QueryDocument,
        surface: TrackedTextBuffer,
        registry: ReferenceRegistry,
    ) -> MaterializeResult:
        """Load ``document`` into ``surface`` and register its references.

        All-or-nothing: if placing a source fails midway the previous text
        and references are restored before the error propagates.
        """

        await self._host.wait_ready(self._timeout)

        previous_text = surface.text
        previous = [_capture(surface, reference) for reference in registry.list()]
        registry.clear(release_ranges=True)
        surface.set_text(document.query)

        created: list[SourceReference] = []
        try:
            plan, skipped = self._plan(document, surface)
            bookkeeping = surface.create_ranges(
                [RangeSpec(source.markup_range, style_tag=BOOKKEEPING_TAG, attached_data=source.markup) for source, _ in plan]
            )
            for (source, config), range_id in zip(plan, bookkeeping):
                current = surface.get_range(range_id)
                if current is None:
                    raise UnresolvedRangeError(range_id=range_id)
                rendered = render_reference(config, self._catalog)
                offset = surface.to_offsets(current).start
                surface.apply_edits([TextEdit(current, rendered.text)])
                reference = place_reference(surface, source.markup, config, rendered, offset)
                try:
                    registry.register(reference)
                except Exception:
                    surface.remove_ranges(reference.range_ids)
                    raise
                created.append(reference)
            surface.remove_ranges(bookkeeping)
        except Exception:
            LOGGER.warning("Materialize failed after %d reference(s); rolling back", len(created))
            self._rollback(surface, registry, previous_text, previous)
            raise

        result = MaterializeResult(
            text=surface.text,
            references=tuple(created),
            skipped=len(skipped),
            skipped_markups=tuple(skipped),
        )
        LOGGER.debug("Materialized %d reference(s), skipped=%d", len(created), len(skipped))
        return result

    def _plan(
        self,
        document: QueryDocument,
        surface: TrackedTextBuffer,
    ) -> tuple[list[tuple[SourceDto, SourceConfig]], list[str]]:
        """Split sources into placeable ones (document order) and skipped markups."""

        candidates: list[tuple[int, int, int, SourceDto, SourceConfig]] = []
        skipped: list[tuple[int, str]] = []
        for index, source in enumerate(document.sources):
            config = source.typed_config()
            span = source.markup_range
            if config is None or span is None or span.is_empty or not surface.is_valid_range(span):
                LOGGER.debug("Skipping source %s: missing config or canonical range", source.markup)
                skipped.append((index, source.markup))
                continue
            offsets = surface.to_offsets(span)
            candidates.append((offsets.start, offsets.end, index, source, config))

        by_position = sorted(candidates, key=lambda item: (item[0], item[1]))
        overlapping: set[int] = set()
        previous_end = -1
        for start, end, index, _, _ in by_position:
            if start < previous_end:
                overlapping.add(index)
                continue
            previous_end = end

        plan: list[tuple[SourceDto, SourceConfig]] = []
        for _, _, index, source, config in candidates:
            if index in overlapping:
                LOGGER.debug("Skipping source %s: canonical range overlaps another source", source.markup)
                skipped.append((index, source.markup))
                continue
            plan.append((source, config))
        skipped.sort()
        return plan, [markup for _, markup in skipped]

    def _rollback(
        self,
        surface: TrackedTextBuffer,
        registry: ReferenceRegistry,
        previous_text: str,
        previous: list[tuple[SourceReference, list[TrackedRangeInfo | None]]],
    ) -> None:
        registry.clear(release_ranges=True)
        surface.set_text(previous_text)
        for reference, infos in previous:
            primary = infos[0] if infos else None
            if primary is None:
                continue
            kept = [
                (info, content)
                for info, content in zip(infos[1:], reference.secondary_contents)
                if info is not None
            ]
            range_ids = surface.create_ranges(
                [
                    RangeSpec(info.range, style_tag=info.style_tag, attached_data=info.attached_data)
                    for info in (primary, *(info for info, _ in kept))
                ]
            )
            restored = dataclasses.replace(
                reference,
                primary_range_id=range_ids[0],
                secondary_range_ids=tuple(range_ids[1:]),
                secondary_contents=tuple(content for _, content in kept),
            )
            registry.register(restored)


def _capture(
    surface: TrackedTextBuffer,
    reference: SourceReference,
) -> tuple[SourceReference, list[TrackedRangeInfo | None]]:
    return reference, [surface.get_tracked(range_id) for range_id in reference.range_ids]


__all__ = [
    "CanonicalResult",
    "DEFAULT_CONVERSION_TIMEOUT",
    "MarkupConverter",
    "MaterializeResult",
    "place_reference",
]
