"""Dataclasses describing source references and their configuration payloads."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union


class SourceKind(str, Enum):
    """Source type as spelled on the wire."""

    ASSET_TABLE = "asset_table"
    TIMESERIES = "timeseries"
    QUERY = "query"


class TimeseriesMode(str, Enum):
    SINGLE = "single"
    MULTIPLE = "multiple"


class SourceType(str, Enum):
    """Reference flavour; decides the rendered shape and the canonical token quoting."""

    TABLE = "table"
    TIMESERIES_SINGLE = "timeseries_single"
    TIMESERIES_MULTIPLE = "timeseries_multiple"

    @property
    def kind(self) -> SourceKind:
        if self is SourceType.TABLE:
            return SourceKind.ASSET_TABLE
        return SourceKind.TIMESERIES

    @property
    def is_timeseries(self) -> bool:
        return self is not SourceType.TABLE


@dataclass(slots=True, frozen=True)
class TableSourceConfig:
    """Configuration of an ``asset_table`` reference."""

    table_id: str

    def to_dict(self) -> dict[str, Any]:
        return {"tableId": self.table_id}


@dataclass(slots=True, frozen=True)
class TimeseriesSourceConfig:
    """Configuration of a ``timeseries`` reference.

    ``mode`` is derived from ``target`` when omitted: a target attribute
    selects a single series, no target selects every series of the asset.
    """

    asset_id: str
    target: str | None = None
    mode: TimeseriesMode | None = None

    def __post_init__(self) -> None:
        target = self.target or None
        object.__setattr__(self, "target", target)
        if self.mode is None:
            mode = TimeseriesMode.SINGLE if target else TimeseriesMode.MULTIPLE
        else:
            mode = TimeseriesMode(self.mode)
        if mode is TimeseriesMode.SINGLE and not target:
            raise ValueError("Single timeseries references require a target attribute")
        object.__setattr__(self, "mode", mode)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"assetId": self.asset_id}
        if self.target is not None:
            payload["target"] = self.target
        payload["mode"] = self.mode.value if self.mode is not None else None
        return payload


SourceConfig = Union[TableSourceConfig, TimeseriesSourceConfig]


def source_type_for(config: SourceConfig) -> SourceType:
    """Return the :class:`SourceType` implied by ``config``."""

    if isinstance(config, TableSourceConfig):
        return SourceType.TABLE
    if isinstance(config, TimeseriesSourceConfig):
        if config.mode is TimeseriesMode.SINGLE:
            return SourceType.TIMESERIES_SINGLE
        return SourceType.TIMESERIES_MULTIPLE
    raise TypeError(f"Unsupported source config: {type(config).__name__}")


def source_id_for(config: SourceConfig) -> str:
    if isinstance(config, TableSourceConfig):
        return config.table_id
    return config.asset_id


def parse_source_config(
    kind: SourceKind | str,
    payload: Mapping[str, Any] | None,
    *,
    source_id: str | None = None,
) -> SourceConfig | None:
    """Build a typed config from a wire payload.

    Missing ids fall back to ``source_id``. Returns ``None`` for kinds that
    carry no reference config (``query``) or when no id can be determined.
    """

    kind = SourceKind(kind)
    data = dict(payload or {})
    if kind is SourceKind.ASSET_TABLE:
        table_id = data.get("tableId") or source_id
        if not table_id:
            return None
        return TableSourceConfig(table_id=str(table_id))
    if kind is SourceKind.TIMESERIES:
        asset_id = data.get("assetId") or source_id
        if not asset_id:
            return None
        target = data.get("target")
        raw_mode = data.get("mode")
        mode = TimeseriesMode(raw_mode) if raw_mode else None
        return TimeseriesSourceConfig(
            asset_id=str(asset_id),
            target=str(target) if target else None,
            mode=mode,
        )
    return None


def table_config(table_id: str) -> TableSourceConfig:
    return TableSourceConfig(table_id=table_id)


def timeseries_config(asset_id: str, target: str | None = None) -> TimeseriesSourceConfig:
    return TimeseriesSourceConfig(asset_id=asset_id, target=target)


@dataclass(slots=True, frozen=True)
class SourceReference:
    """An active binding between tracked text ranges and a backend entity.

    Only the primary range decides validity: ``expected_content`` is the
    literal text that range held when the reference was created or last
    re-rendered. ``secondary_range_ids`` are cosmetic sub-spans (asset,
    dot, attribute) with their creation-time text in ``secondary_contents``.
    """

    markup: str
    source_type: SourceType
    source_id: str
    source_config: SourceConfig
    primary_range_id: str
    secondary_range_ids: tuple[str, ...] = ()
    expected_content: str = ""
    secondary_contents: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.markup:
            raise ValueError("SourceReference requires a markup")
        object.__setattr__(self, "source_type", SourceType(self.source_type))
        object.__setattr__(self, "secondary_range_ids", tuple(self.secondary_range_ids))
        object.__setattr__(self, "secondary_contents", tuple(self.secondary_contents))
        implied = source_type_for(self.source_config)
        if implied is not self.source_type:
            raise ValueError(
                f"Source type {self.source_type.value} does not match config ({implied.value})"
            )

    @property
    def range_ids(self) -> tuple[str, ...]:
        return (self.primary_range_id, *self.secondary_range_ids)

    @property
    def kind(self) -> SourceKind:
        return self.source_type.kind

    def identity(self) -> tuple[SourceType, str, SourceConfig]:
        """Return the fields that survive a canonicalize/materialize round-trip."""

        return (self.source_type, self.source_id, self.source_config)


__all__ = [
    "SourceKind",
    "TimeseriesMode",
    "SourceType",
    "TableSourceConfig",
    "TimeseriesSourceConfig",
    "SourceConfig",
    "SourceReference",
    "parse_source_config",
    "source_id_for",
    "source_type_for",
    "table_config",
    "timeseries_config",
]
