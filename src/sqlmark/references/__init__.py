"""Source references: models, rendering rules, registry and invalidation."""

from .invalidator import EditInvalidator, InvalidationReport
from .models import (
    SourceConfig,
    SourceKind,
    SourceReference,
    SourceType,
    TableSourceConfig,
    TimeseriesMode,
    TimeseriesSourceConfig,
    parse_source_config,
    source_id_for,
    source_type_for,
    table_config,
    timeseries_config,
)
from .registry import ReferenceRegistry
from .rendering import (
    REFERENCE_STYLE_PREFIX,
    RenderedReference,
    RenderedSegment,
    SourceCatalog,
    StaticSourceCatalog,
    canonical_token,
    quote_identifier,
    render_reference,
)

__all__ = [
    "EditInvalidator",
    "InvalidationReport",
    "REFERENCE_STYLE_PREFIX",
    "ReferenceRegistry",
    "RenderedReference",
    "RenderedSegment",
    "SourceCatalog",
    "SourceConfig",
    "SourceKind",
    "SourceReference",
    "SourceType",
    "StaticSourceCatalog",
    "TableSourceConfig",
    "TimeseriesMode",
    "TimeseriesSourceConfig",
    "canonical_token",
    "parse_source_config",
    "quote_identifier",
    "render_reference",
    "source_id_for",
    "source_type_for",
    "table_config",
    "timeseries_config",
]
