"""Tests for exchange-format dataclasses."""

from __future__ import annotations

import json

import pytest

from sqlmark.core.ranges import EditorRange
from sqlmark.errors import MalformedDocumentError
from sqlmark.query.models import (
    ExecuteQueryRequest,
    ExecuteQueryResponse,
    GenericDataType,
    QueryArgument,
    QueryDocument,
    QueryParameter,
    SourceDto,
    arguments_to_dict,
)
from sqlmark.references.models import (
    SourceKind,
    SourceReference,
    SourceType,
    TableSourceConfig,
    TimeseriesMode,
    TimeseriesSourceConfig,
)

from helpers import ASSET_ID, DEFAULT_UUID


def _document_payload() -> dict:
    return {
        "query": "select * from \"{{m1}}\" where ts > '{{m2}}'",
        "sources": [
            {
                "markup": "m1",
                "sourceType": "asset_table",
                "sourceId": DEFAULT_UUID,
                "sourceConfig": {"tableId": DEFAULT_UUID},
                "markupRange": {"startLineNumber": 1, "startColumn": 15, "endLineNumber": 1, "endColumn": 23},
            },
            {
                "markup": "m2",
                "sourceType": "timeseries",
                "sourceId": ASSET_ID,
                "sourceConfig": {"assetId": ASSET_ID, "mode": "multiple"},
            },
        ],
        "parameters": [{"id": "p1", "name": "limit", "dataType": "int", "defaultValue": 10}],
    }


class TestQueryDocument:
    def test_from_dict_builds_typed_document(self) -> None:
        document = QueryDocument.from_dict(_document_payload())

        assert document.tokens() == ["m1", "m2"]
        m1 = document.source("m1")
        assert m1 is not None
        assert m1.markup_range == EditorRange(1, 15, 1, 23)
        assert m1.typed_config() == TableSourceConfig(DEFAULT_UUID)
        assert document.source("m2").typed_config() == TimeseriesSourceConfig(ASSET_ID, None, TimeseriesMode.MULTIPLE)
        assert document.parameters == (QueryParameter("limit", GenericDataType.INT, 10, "p1"),)
        assert document.source("missing") is None

    def test_json_round_trip(self) -> None:
        payload = _document_payload()
        document = QueryDocument.from_json(json.dumps(payload))

        assert json.loads(document.to_json()) == payload

    def test_missing_query_is_malformed(self) -> None:
        payload = _document_payload()
        del payload["query"]

        with pytest.raises(MalformedDocumentError) as excinfo:
            QueryDocument.from_dict(payload)

        assert any("query" in problem for problem in excinfo.value.details["problems"])

    def test_correspondence_of_sound_document(self) -> None:
        assert QueryDocument.from_dict(_document_payload()).check_correspondence() == []

    def test_correspondence_problems_are_described(self) -> None:
        document = QueryDocument(
            query="{{a}} {{a}} {{ghost}}",
            sources=(
                SourceDto("a", SourceKind.ASSET_TABLE, "t"),
                SourceDto("unused", SourceKind.ASSET_TABLE, "t"),
                SourceDto("unused", SourceKind.ASSET_TABLE, "t"),
            ),
        )

        assert document.orphan_tokens() == ["ghost"]
        assert [source.markup for source in document.unreferenced_sources()] == ["unused", "unused"]
        assert document.check_correspondence() == [
            "Token {{ghost}} has no matching source",
            "Source unused does not appear in the query",
            "Source unused does not appear in the query",
            "Token {{a}} appears 2 times",
            "Source unused is listed 2 times",
        ]


class TestSourceDto:
    def test_from_reference(self) -> None:
        config = TimeseriesSourceConfig(ASSET_ID, "pressure")
        reference = SourceReference(
            markup="m2",
            source_type=SourceType.TIMESERIES_SINGLE,
            source_id=ASSET_ID,
            source_config=config,
            primary_range_id="r1",
        )

        dto = SourceDto.from_reference(reference, EditorRange(2, 1, 2, 9))

        assert dto.to_dict() == {
            "markup": "m2",
            "sourceType": "timeseries",
            "sourceId": ASSET_ID,
            "sourceConfig": {"assetId": ASSET_ID, "target": "pressure", "mode": "single"},
            "markupRange": {"startLineNumber": 2, "startColumn": 1, "endLineNumber": 2, "endColumn": 9},
        }
        assert dto.typed_config() == config

    def test_config_falls_back_to_source_id(self) -> None:
        dto = SourceDto("m1", "asset_table", DEFAULT_UUID)

        assert dto.typed_config() == TableSourceConfig(DEFAULT_UUID)
        assert "sourceConfig" not in dto.to_dict()
        assert "markupRange" not in dto.to_dict()

    def test_invalid_config_is_unrenderable(self) -> None:
        dto = SourceDto("m1", "timeseries", ASSET_ID, {"mode": "bogus"})

        assert dto.typed_config() is None


class TestArguments:
    def test_only_named_non_empty_arguments_are_sent(self) -> None:
        limit = QueryParameter("limit", GenericDataType.INT)
        arguments = [
            QueryArgument(QueryParameter("  name "), "pump"),
            QueryArgument(limit, 5),
            QueryArgument(QueryParameter("   "), "ignored"),
            QueryArgument(QueryParameter("empty"), ""),
            QueryArgument(QueryParameter("unset")),
        ]

        mapped = arguments_to_dict(arguments)

        assert list(mapped) == ["name", "limit"]
        assert mapped["limit"].to_dict() == {
            "parameterName": "limit",
            "parameter": {"name": "limit", "dataType": "int"},
            "value": 5,
        }

    def test_zero_and_false_are_valid_values(self) -> None:
        mapped = arguments_to_dict(
            [
                QueryArgument(QueryParameter("n", GenericDataType.INT), 0),
                QueryArgument(QueryParameter("flag", GenericDataType.BOOLEAN), False),
            ]
        )

        assert set(mapped) == {"n", "flag"}

    def test_request_body(self) -> None:
        document = QueryDocument.from_dict(_document_payload())
        request = ExecuteQueryRequest.from_document(
            document, [QueryArgument(document.parameters[0], 25)]
        )

        body = request.to_dict()

        assert body["query"] == document.query
        assert [source["markup"] for source in body["sources"]] == ["m1", "m2"]
        assert body["parameters"] == [{"name": "limit", "dataType": "int", "id": "p1", "defaultValue": 10}]
        assert body["arguments"]["limit"]["value"] == 25


class TestResponse:
    def test_records_are_keyed_by_column(self) -> None:
        response = ExecuteQueryResponse.from_dict(
            {
                "columns": [
                    {"name": "ts", "underlyingDataType": "timestamp", "genericDataType": "datetime"},
                    {"name": "value"},
                ],
                "records": [["2024-01-01T00:00:00Z", 1.5], ["2024-01-01T00:01:00Z", 2.0]],
            }
        )

        assert response.row_count == 2
        assert response.column_names == ["ts", "value"]
        assert response.columns[0].generic_data_type == "datetime"
        assert response.as_records()[1] == {"ts": "2024-01-01T00:01:00Z", "value": 2.0}

    def test_malformed_response(self) -> None:
        with pytest.raises(MalformedDocumentError) as excinfo:
            ExecuteQueryResponse.from_dict({"columns": "nope"})

        assert excinfo.value.message == "Execution response is malformed"
