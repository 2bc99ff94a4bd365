"""Editing session tying the buffer, references, conversion and execution together."""

from __future__ import annotations

import contextlib
import itertools
import logging
from typing import Any, Iterable, Iterator, Mapping, Sequence

from .conversion.converter import MarkupConverter, MaterializeResult, place_reference
from .conversion.scratch import ScratchHost
from .core.ranges import EditorRange
from .editor.text_buffer import ContentChangedEvent, TextEdit, TrackedTextBuffer
from .errors import UnknownReferenceError, UnresolvedRangeError
from .events import (
    DocumentCanonicalized,
    DocumentMaterialized,
    EventBus,
    ReferenceInserted,
    ReferenceRemoved,
    ReferencesInvalidated,
    ReferenceUpdated,
)
from .query.client import QueryExecutionClient
from .query.models import ExecuteQueryResponse, QueryArgument, QueryDocument, QueryParameter
from .references.invalidator import EditInvalidator
from .references.models import SourceConfig, SourceReference, table_config, timeseries_config
from .references.registry import ReferenceRegistry
from .references.rendering import SourceCatalog, StaticSourceCatalog, render_reference
from .services.settings import Settings
from .utils.debounce import DebouncedHandler

LOGGER = logging.getLogger(__name__)


class QueryEditorSession:
    """One query being edited: text, live references and their exchange form.

    Buffer changes are queued on a :class:`DebouncedHandler` and judged by
    the :class:`EditInvalidator` once typing pauses. Export paths flush the
    queue first so stale references never reach the canonical document.
    """

    def __init__(
        self,
        buffer: TrackedTextBuffer | None = None,
        *,
        settings: Settings | None = None,
        catalog: SourceCatalog | None = None,
        event_bus: EventBus | None = None,
        converter: MarkupConverter | None = None,
        host: ScratchHost | None = None,
        client: QueryExecutionClient | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._buffer = buffer or TrackedTextBuffer()
        self._catalog = catalog or StaticSourceCatalog()
        self._bus = event_bus or EventBus()
        self._registry = ReferenceRegistry(self._buffer)
        self._invalidator = EditInvalidator(
            self._registry,
            validate_secondary=self._settings.validate_secondary_ranges,
            on_removed=self._publish_invalidated,
        )
        self._debouncer: DebouncedHandler[ContentChangedEvent] = DebouncedHandler(
            self._invalidate,
            delay=self._settings.invalidation_delay,
            name="invalidation",
        )
        self._converter = converter or MarkupConverter(
            self._catalog,
            host,
            timeout=self._settings.conversion_timeout,
        )
        self._client = client
        self._owns_client = False
        self._parameters: list[QueryParameter] = []
        self._markup_seq = itertools.count(1)
        self._suspended = 0
        self._buffer.add_change_listener(self._on_buffer_changed)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def buffer(self) -> TrackedTextBuffer:
        return self._buffer

    @property
    def text(self) -> str:
        return self._buffer.text

    @property
    def registry(self) -> ReferenceRegistry:
        return self._registry

    @property
    def invalidator(self) -> EditInvalidator:
        return self._invalidator

    @property
    def debouncer(self) -> DebouncedHandler[ContentChangedEvent]:
        return self._debouncer

    @property
    def converter(self) -> MarkupConverter:
        return self._converter

    @property
    def event_bus(self) -> EventBus:
        return self._bus

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def references(self) -> tuple[SourceReference, ...]:
        return self._registry.list()

    @property
    def parameters(self) -> tuple[QueryParameter, ...]:
        return tuple(self._parameters)

    def set_parameters(self, parameters: Iterable[QueryParameter]) -> None:
        self._parameters = list(parameters)

    def add_parameter(self, parameter: QueryParameter) -> None:
        self._parameters.append(parameter)

    def get_reference(self, markup: str) -> SourceReference:
        reference = self._registry.get(markup)
        if reference is None:
            raise UnknownReferenceError(markup=markup)
        return reference

    def next_markup(self) -> str:
        """Return the next unused markup; ids taken by loaded documents are skipped."""

        while True:
            markup = f"{self._settings.markup_prefix}{next(self._markup_seq)}"
            if markup not in self._registry:
                return markup

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def insert_table(self, table_id: str, at: EditorRange | None = None) -> SourceReference:
        """Insert a table reference at ``at`` (default: end of the buffer)."""

        return self.insert_reference(table_config(table_id), at)

    def insert_timeseries(
        self,
        asset_id: str,
        target: str | None = None,
        at: EditorRange | None = None,
    ) -> SourceReference:
        """Insert a timeseries reference; a ``target`` selects a single series."""

        return self.insert_reference(timeseries_config(asset_id, target), at)

    def insert_reference(self, config: SourceConfig, at: EditorRange | None = None) -> SourceReference:
        target = at or self._end_caret()
        rendered = render_reference(config, self._catalog)
        offset = self._buffer.to_offsets(target, strict=True).start
        self._buffer.apply_edits([TextEdit(target, rendered.text)])
        reference = place_reference(self._buffer, self.next_markup(), config, rendered, offset)
        self._registry.register(reference)
        LOGGER.debug("Inserted %s reference %s at %s", reference.kind.value, reference.markup, target)
        self._bus.publish(ReferenceInserted(reference.markup, reference.kind.value, rendered.text))
        return reference

    def update_reference(self, markup: str, config: SourceConfig) -> SourceReference:
        """Re-render ``markup`` with ``config``, keeping the markup stable."""

        reference = self.get_reference(markup)
        current = self._buffer.get_range(reference.primary_range_id)
        if current is None:
            raise UnresolvedRangeError(range_id=reference.primary_range_id)
        rendered = render_reference(config, self._catalog)
        offset = self._buffer.to_offsets(current).start
        with self._invalidation_suspended():
            self._buffer.apply_edits([TextEdit(current, rendered.text)])
        updated = place_reference(self._buffer, markup, config, rendered, offset)
        self._registry.replace(updated)
        self._bus.publish(ReferenceUpdated(markup, rendered.text))
        return updated

    def remove_reference(self, markup: str, *, delete_text: bool = False) -> SourceReference:
        """Stop tracking ``markup``; with ``delete_text`` its rendered text goes too."""

        reference = self.get_reference(markup)
        current = self._buffer.get_range(reference.primary_range_id)
        self._registry.remove(markup)
        if delete_text and current is not None:
            self._buffer.apply_edits([TextEdit(current, "")])
        self._bus.publish(ReferenceRemoved(markup))
        return reference

    def flush_invalidation(self) -> bool:
        return self._debouncer.flush()

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------
    async def export_document(self, parameters: Sequence[QueryParameter] | None = None) -> QueryDocument:
        """Canonicalize the live buffer into a :class:`QueryDocument`."""

        self.flush_invalidation()
        result = await self._converter.canonicalize(self._buffer, self._registry.list())
        document = result.to_document(self._parameters if parameters is None else parameters)
        self._bus.publish(DocumentCanonicalized(document.query, len(document.sources), result.skipped))
        return document

    async def copy_model(self) -> str:
        """Return the exchange document as JSON, ready for a clipboard."""

        document = await self.export_document()
        return document.to_json()

    async def load_document(self, document: QueryDocument | Mapping[str, Any] | str) -> MaterializeResult:
        """Replace the buffer with ``document`` rendered for display."""

        if isinstance(document, str):
            document = QueryDocument.from_json(document)
        elif not isinstance(document, QueryDocument):
            document = QueryDocument.from_dict(document)
        self._debouncer.cancel()
        result = await self._converter.materialize(document, self._buffer, self._registry)
        # Edits made by materialize only touch references it just validated.
        self._debouncer.cancel()
        self._parameters = list(document.parameters)
        self._bus.publish(
            DocumentMaterialized(result.text, len(result.references), result.skipped, result.skipped_markups)
        )
        return result

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------
    async def execute(self, arguments: Iterable[QueryArgument] = ()) -> ExecuteQueryResponse:
        document = await self.export_document()
        client = self._ensure_client()
        return await client.execute(document, arguments)

    async def aclose(self) -> None:
        self._debouncer.cancel()
        self._buffer.remove_change_listener(self._on_buffer_changed)
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _ensure_client(self) -> QueryExecutionClient:
        if self._client is None:
            self._client = QueryExecutionClient(self._settings.client_settings())
            self._owns_client = True
        return self._client

    def _end_caret(self) -> EditorRange:
        line, column = self._buffer.position_at(len(self._buffer.text))
        return EditorRange.caret(line, column)

    def _on_buffer_changed(self, event: ContentChangedEvent) -> None:
        if self._suspended:
            return
        self._debouncer.submit(event)

    def _invalidate(self, events: Sequence[ContentChangedEvent]) -> None:
        self._invalidator.handle_events(events)

    def _publish_invalidated(self, removed: tuple[SourceReference, ...]) -> None:
        self._bus.publish(ReferencesInvalidated(tuple(reference.markup for reference in removed)))

    @contextlib.contextmanager
    def _invalidation_suspended(self) -> Iterator[None]:
        self._suspended += 1
        try:
            yield
        finally:
            self._suspended -= 1


__all__ = ["QueryEditorSession"]
