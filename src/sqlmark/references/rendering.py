"""Rendering rules turning a source config into display text and sub-spans."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

from .models import (
    SourceConfig,
    SourceType,
    TableSourceConfig,
    TimeseriesMode,
    TimeseriesSourceConfig,
)

REFERENCE_STYLE_PREFIX = "__app__"
TABLE_TAG = f"{REFERENCE_STYLE_PREFIX}asset-table-tag"
TIMESERIES_TAG = f"{REFERENCE_STYLE_PREFIX}asset-timeseries-tag"
TIMESERIES_CONTAINER_TAG = f"{REFERENCE_STYLE_PREFIX}asset-timeseries-container"
TIMESERIES_DOT_TAG = f"{REFERENCE_STYLE_PREFIX}asset-timeseries-dot"
ATTRIBUTE_TAG = f"{REFERENCE_STYLE_PREFIX}asset-attribute-tag"
BOOKKEEPING_TAG = "convert-bookkeeping"


class SourceCatalog(Protocol):
    """Resolves backend ids into human-readable names."""

    def table_name(self, table_id: str) -> str:
        ...

    def asset_name(self, asset_id: str) -> str:
        ...


class StaticSourceCatalog:
    """Mapping-backed catalog that falls back to the raw id for unknown entries."""

    def __init__(
        self,
        tables: Mapping[str, str] | None = None,
        assets: Mapping[str, str] | None = None,
    ) -> None:
        self._tables: dict[str, str] = dict(tables or {})
        self._assets: dict[str, str] = dict(assets or {})

    def register_table(self, table_id: str, name: str) -> None:
        self._tables[table_id] = name

    def register_asset(self, asset_id: str, name: str) -> None:
        self._assets[asset_id] = name

    def table_name(self, table_id: str) -> str:
        return self._tables.get(table_id, table_id)

    def asset_name(self, asset_id: str) -> str:
        return self._assets.get(asset_id, asset_id)


@dataclass(slots=True, frozen=True)
class RenderedSegment:
    """Span within a rendered string, relative to its first character."""

    start: int
    end: int
    style_tag: str

    @property
    def length(self) -> int:
        return self.end - self.start


@dataclass(slots=True, frozen=True)
class RenderedReference:
    """Display text of a reference plus the spans to track inside it."""

    text: str
    primary: RenderedSegment
    secondary: tuple[RenderedSegment, ...] = ()

    def segment_text(self, segment: RenderedSegment) -> str:
        return self.text[segment.start : segment.end]

    @property
    def secondary_contents(self) -> tuple[str, ...]:
        return tuple(self.segment_text(segment) for segment in self.secondary)


def quote_identifier(name: str) -> str:
    """Quote ``name`` as a SQL identifier, doubling embedded quotes."""

    return '"' + name.replace('"', '""') + '"'


def render_reference(config: SourceConfig, catalog: SourceCatalog) -> RenderedReference:
    """Return the rendered form of a reference built from ``config``.

    Segment boundaries come from the lengths of the quoted substrings, so
    escaping is applied before any boundary is computed.
    """

    if isinstance(config, TableSourceConfig):
        text = quote_identifier(catalog.table_name(config.table_id))
        return RenderedReference(text=text, primary=RenderedSegment(0, len(text), TABLE_TAG))

    if isinstance(config, TimeseriesSourceConfig):
        asset_text = quote_identifier(catalog.asset_name(config.asset_id))
        if config.mode is TimeseriesMode.MULTIPLE or not config.target:
            return RenderedReference(
                text=asset_text,
                primary=RenderedSegment(0, len(asset_text), TIMESERIES_TAG),
            )
        attribute_text = quote_identifier(config.target)
        text = f"{asset_text}.{attribute_text}"
        dot = len(asset_text)
        return RenderedReference(
            text=text,
            primary=RenderedSegment(0, len(text), TIMESERIES_CONTAINER_TAG),
            secondary=(
                RenderedSegment(0, dot, TIMESERIES_TAG),
                RenderedSegment(dot, dot + 1, TIMESERIES_DOT_TAG),
                RenderedSegment(dot + 1, len(text), ATTRIBUTE_TAG),
            ),
        )

    raise TypeError(f"Unsupported source config: {type(config).__name__}")


def canonical_token(markup: str, source_type: SourceType) -> str:
    """Return the backend token standing in for a reference."""

    if source_type.is_timeseries:
        return "'{{" + markup + "}}'"
    return '"{{' + markup + '}}"'


__all__ = [
    "REFERENCE_STYLE_PREFIX",
    "TABLE_TAG",
    "TIMESERIES_TAG",
    "TIMESERIES_CONTAINER_TAG",
    "TIMESERIES_DOT_TAG",
    "ATTRIBUTE_TAG",
    "BOOKKEEPING_TAG",
    "SourceCatalog",
    "StaticSourceCatalog",
    "RenderedSegment",
    "RenderedReference",
    "quote_identifier",
    "render_reference",
    "canonical_token",
]
