"""Shared test helpers.

Import from here instead of duplicating reference set-up in individual
test files::

    from helpers import insert_rendered
"""

from __future__ import annotations

from sqlmark.conversion.converter import place_reference
from sqlmark.editor.text_buffer import TextEdit, TrackedTextBuffer
from sqlmark.references.models import SourceConfig, SourceReference
from sqlmark.references.registry import ReferenceRegistry
from sqlmark.references.rendering import SourceCatalog, render_reference

DEFAULT_UUID = "00000000-0000-0000-0000-000000000000"
ASSET_ID = "6f1c2a9e-0b7d-4a55-9d3e-2c1f0e8b7a61"


def append_text(buffer: TrackedTextBuffer, text: str) -> None:
    end = len(buffer.text)
    buffer.apply_edits([TextEdit(buffer.to_range(end, end), text)])


def insert_rendered(
    buffer: TrackedTextBuffer,
    catalog: SourceCatalog,
    markup: str,
    config: SourceConfig,
    *,
    offset: int | None = None,
    registry: ReferenceRegistry | None = None,
) -> SourceReference:
    """Insert the rendered form of ``config`` and track it like an editor insertion would."""

    at = len(buffer.text) if offset is None else offset
    rendered = render_reference(config, catalog)
    buffer.apply_edits([TextEdit(buffer.to_range(at, at), rendered.text)])
    reference = place_reference(buffer, markup, config, rendered, at)
    if registry is not None:
        registry.register(reference)
    return reference
