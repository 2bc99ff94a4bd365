"""Exchange-format dataclasses: query documents, parameters and results."""

from __future__ import annotations

import json
import re
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping

from ..core.ranges import EditorRange
from ..references.models import SourceConfig, SourceKind, SourceReference, parse_source_config
from .schema import validate_document, validate_response

TOKEN_PATTERN = re.compile(r"\{\{([^{}]+)\}\}")
DEFAULT_ERROR_MESSAGE = "An error occurred while executing the query"


class GenericDataType(str, Enum):
    TEXT = "text"
    INT = "int"
    DOUBLE = "double"
    BOOLEAN = "boolean"
    DATETIME = "datetime"


@dataclass(slots=True, frozen=True)
class SourceDto:
    """Wire form of one reference inside a :class:`QueryDocument`.

    ``markup_range`` is the reference's token position in the canonical
    query; it is only present on documents produced by canonicalization.
    """

    markup: str
    source_type: SourceKind
    source_id: str
    source_config: Mapping[str, Any] | None = None
    markup_range: EditorRange | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "source_type", SourceKind(self.source_type))
        if self.source_config is not None:
            object.__setattr__(self, "source_config", dict(self.source_config))

    @classmethod
    def from_reference(cls, reference: SourceReference, markup_range: EditorRange | None = None) -> SourceDto:
        return cls(
            markup=reference.markup,
            source_type=reference.kind,
            source_id=reference.source_id,
            source_config=reference.source_config.to_dict(),
            markup_range=markup_range,
        )

    def typed_config(self) -> SourceConfig | None:
        """Return the typed config, or ``None`` when the source cannot be rendered."""

        try:
            return parse_source_config(self.source_type, self.source_config, source_id=self.source_id)
        except ValueError:
            return None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "markup": self.markup,
            "sourceType": self.source_type.value,
            "sourceId": self.source_id,
        }
        if self.source_config is not None:
            payload["sourceConfig"] = dict(self.source_config)
        if self.markup_range is not None:
            payload["markupRange"] = self.markup_range.to_dict()
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> SourceDto:
        raw_range = payload.get("markupRange")
        return cls(
            markup=str(payload["markup"]),
            source_type=SourceKind(payload["sourceType"]),
            source_id=str(payload.get("sourceId") or ""),
            source_config=payload.get("sourceConfig"),
            markup_range=EditorRange.from_value(raw_range) if raw_range else None,
        )


@dataclass(slots=True, frozen=True)
class QueryParameter:
    """Named, typed placeholder the backend substitutes at execution time."""

    name: str
    data_type: GenericDataType = GenericDataType.TEXT
    default_value: Any = None
    id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "data_type", GenericDataType(self.data_type))

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": self.name, "dataType": self.data_type.value}
        if self.id is not None:
            payload["id"] = self.id
        if self.default_value is not None:
            payload["defaultValue"] = self.default_value
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> QueryParameter:
        return cls(
            name=str(payload.get("name", "")),
            data_type=GenericDataType(payload.get("dataType", GenericDataType.TEXT.value)),
            default_value=payload.get("defaultValue"),
            id=payload.get("id"),
        )


@dataclass(slots=True, frozen=True)
class QueryArgument:
    """Value bound to a :class:`QueryParameter` for one execution."""

    parameter: QueryParameter
    value: Any = None

    @property
    def name(self) -> str:
        return self.parameter.name.strip()

    @property
    def is_set(self) -> bool:
        return bool(self.name) and self.value is not None and self.value != ""

    def to_dict(self) -> dict[str, Any]:
        return {"parameterName": self.name, "parameter": self.parameter.to_dict(), "value": self.value}


def arguments_to_dict(arguments: Iterable[QueryArgument]) -> dict[str, QueryArgument]:
    """Key usable arguments by trimmed parameter name; later duplicates win."""

    result: dict[str, QueryArgument] = {}
    for argument in arguments:
        if argument.is_set:
            result[argument.name] = argument
    return result


@dataclass(slots=True, frozen=True)
class QueryDocument:
    """Canonical query text plus the sources and parameters it refers to."""

    query: str
    sources: tuple[SourceDto, ...] = ()
    parameters: tuple[QueryParameter, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "sources", tuple(self.sources))
        object.__setattr__(self, "parameters", tuple(self.parameters))

    # ------------------------------------------------------------------
    # Token/source correspondence
    # ------------------------------------------------------------------
    def tokens(self) -> list[str]:
        """Return the markups of every ``{{markup}}`` token in query order."""

        return [match.group(1) for match in TOKEN_PATTERN.finditer(self.query)]

    def orphan_tokens(self) -> list[str]:
        known = {source.markup for source in self.sources}
        return [token for token in self.tokens() if token not in known]

    def unreferenced_sources(self) -> list[SourceDto]:
        present = set(self.tokens())
        return [source for source in self.sources if source.markup not in present]

    def check_correspondence(self) -> list[str]:
        """Describe every break of the one-token-per-source rule; empty when sound."""

        problems: list[str] = []
        for token in self.orphan_tokens():
            problems.append(f"Token {{{{{token}}}}} has no matching source")
        for source in self.unreferenced_sources():
            problems.append(f"Source {source.markup} does not appear in the query")
        for token, count in Counter(self.tokens()).items():
            if count > 1:
                problems.append(f"Token {{{{{token}}}}} appears {count} times")
        for markup, count in Counter(source.markup for source in self.sources).items():
            if count > 1:
                problems.append(f"Source {markup} is listed {count} times")
        return problems

    def source(self, markup: str) -> SourceDto | None:
        for source in self.sources:
            if source.markup == markup:
                return source
        return None

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------
    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "sources": [source.to_dict() for source in self.sources],
            "parameters": [parameter.to_dict() for parameter in self.parameters],
        }

    def to_json(self, *, indent: int | None = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> QueryDocument:
        """Validate ``payload`` against the document schema and build a document."""

        validate_document(payload)
        return cls(
            query=payload["query"],
            sources=tuple(SourceDto.from_dict(item) for item in payload.get("sources") or ()),
            parameters=tuple(QueryParameter.from_dict(item) for item in payload.get("parameters") or ()),
        )

    @classmethod
    def from_json(cls, text: str) -> QueryDocument:
        return cls.from_dict(json.loads(text))


@dataclass(slots=True, frozen=True)
class ExecuteQueryRequest:
    """Body POSTed to the execution backend."""

    query: str
    sources: tuple[SourceDto, ...] = ()
    parameters: tuple[QueryParameter, ...] = ()
    arguments: Mapping[str, QueryArgument] = field(default_factory=dict)

    @classmethod
    def from_document(
        cls,
        document: QueryDocument,
        arguments: Iterable[QueryArgument] = (),
    ) -> ExecuteQueryRequest:
        return cls(
            query=document.query,
            sources=document.sources,
            parameters=document.parameters,
            arguments=arguments_to_dict(arguments),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "sources": [source.to_dict() for source in self.sources],
            "parameters": [parameter.to_dict() for parameter in self.parameters],
            "arguments": {name: argument.to_dict() for name, argument in self.arguments.items()},
        }


@dataclass(slots=True, frozen=True)
class ResultColumn:
    name: str
    underlying_data_type: str = ""
    generic_data_type: str = ""

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> ResultColumn:
        return cls(
            name=str(payload["name"]),
            underlying_data_type=str(payload.get("underlyingDataType") or ""),
            generic_data_type=str(payload.get("genericDataType") or ""),
        )


@dataclass(slots=True, frozen=True)
class ExecuteQueryResponse:
    """Tabular result returned by the execution backend."""

    columns: tuple[ResultColumn, ...] = ()
    records: tuple[tuple[Any, ...], ...] = ()

    @property
    def row_count(self) -> int:
        return len(self.records)

    @property
    def column_names(self) -> list[str]:
        return [column.name for column in self.columns]

    def as_records(self) -> list[dict[str, Any]]:
        names = self.column_names
        return [dict(zip(names, row)) for row in self.records]

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> ExecuteQueryResponse:
        validate_response(payload)
        return cls(
            columns=tuple(ResultColumn.from_dict(item) for item in payload["columns"]),
            records=tuple(tuple(row) for row in payload["records"]),
        )


__all__ = [
    "DEFAULT_ERROR_MESSAGE",
    "TOKEN_PATTERN",
    "ExecuteQueryRequest",
    "ExecuteQueryResponse",
    "GenericDataType",
    "QueryArgument",
    "QueryDocument",
    "QueryParameter",
    "ResultColumn",
    "SourceDto",
    "arguments_to_dict",
]
