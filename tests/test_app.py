"""Tests for the ``sqlmark`` command-line entry point."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import httpx
import pytest

from sqlmark import app
from sqlmark.query.client import ClientSettings, QueryExecutionClient
from sqlmark.query.models import GenericDataType, QueryParameter
from sqlmark.services.settings import Settings

from helpers import ASSET_ID, DEFAULT_UUID


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(app, "configure_logging", lambda debug=False, force=False: None)


@pytest.fixture
def settings_path(tmp_path: Path) -> Path:
    return tmp_path / "settings.json"


@pytest.fixture
def catalog_path(tmp_path: Path) -> Path:
    path = tmp_path / "catalog.json"
    path.write_text(
        json.dumps({"tables": {DEFAULT_UUID: "table_1"}, "assets": {ASSET_ID: "asset_1"}}),
        encoding="utf-8",
    )
    return path


def _write_model(tmp_path: Path, payload: Any) -> Path:
    path = tmp_path / "model.json"
    path.write_text(payload if isinstance(payload, str) else json.dumps(payload), encoding="utf-8")
    return path


def _model() -> dict[str, Any]:
    return {
        "query": "select * from {{m1}} join {{m2}} limit {{limit}}",
        "sources": [
            {
                "markup": "m1",
                "sourceType": "asset_table",
                "sourceId": DEFAULT_UUID,
                "sourceConfig": {"tableId": DEFAULT_UUID},
                "markupRange": {"startLineNumber": 1, "startColumn": 15, "endLineNumber": 1, "endColumn": 21},
            },
            {
                "markup": "m2",
                "sourceType": "timeseries",
                "sourceId": ASSET_ID,
                "sourceConfig": {"assetId": ASSET_ID, "target": "pressure", "mode": "single"},
                "markupRange": {"startLineNumber": 1, "startColumn": 27, "endLineNumber": 1, "endColumn": 33},
            },
        ],
        "parameters": [{"name": "limit", "dataType": "int"}],
    }


def test_render_prints_text_and_references(
    tmp_path: Path, settings_path: Path, catalog_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    model = _write_model(tmp_path, _model())

    exit_code = app.main(["--settings", str(settings_path), "--catalog", str(catalog_path), "render", str(model)])

    out = capsys.readouterr().out.splitlines()
    assert exit_code == 0
    assert out[0] == 'select * from "table_1" join "asset_1"."pressure" limit {{limit}}'
    assert out[2] == f'm1\tasset_table\t{DEFAULT_UUID}\t1:15-1:24\t"table_1"'
    assert out[3] == f'm2\ttimeseries\t{ASSET_ID}\t1:30-1:50\t"asset_1"."pressure"'


def test_render_reports_skipped_sources(
    tmp_path: Path, settings_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    payload = _model()
    payload["sources"][1]["markupRange"] = None
    model = _write_model(tmp_path, payload)

    exit_code = app.main(["--settings", str(settings_path), "render", str(model)])

    out = capsys.readouterr().out
    assert exit_code == 0
    assert f'"{DEFAULT_UUID}"' in out
    assert "skipped 1 source(s): m2" in out


def test_check_accepts_sound_document(
    tmp_path: Path, settings_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    payload = _model()
    payload["query"] = "select * from {{m1}} join {{m2}}"
    model = _write_model(tmp_path, payload)

    exit_code = app.main(["--settings", str(settings_path), "check", str(model)])

    assert exit_code == 0
    assert capsys.readouterr().out == "OK: 2 source(s), 1 parameter(s)\n"


def test_check_reports_correspondence_problems(
    tmp_path: Path, settings_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    model = _write_model(tmp_path, {"query": "select {{x}}", "sources": []})

    exit_code = app.main(["--settings", str(settings_path), "check", str(model)])

    assert exit_code == 1
    assert capsys.readouterr().out == "Token {{x}} has no matching source\n"


def test_malformed_document_exits_with_problems(
    tmp_path: Path, settings_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    model = _write_model(tmp_path, {"sources": []})

    exit_code = app.main(["--settings", str(settings_path), "check", str(model)])

    err = capsys.readouterr().err
    assert exit_code == 1
    assert "[malformed_document]" in err
    assert "  - 'query' is a required property" in err


@pytest.mark.parametrize("body", ["{broken", None])
def test_unreadable_model_exits_with_usage_error(
    tmp_path: Path, settings_path: Path, capsys: pytest.CaptureFixture[str], body: str | None
) -> None:
    model = _write_model(tmp_path, body) if body is not None else tmp_path / "absent.json"

    exit_code = app.main(["--settings", str(settings_path), "render", str(model)])

    assert exit_code == 2
    assert capsys.readouterr().err.startswith("error: ")


def test_invalid_override_is_rejected(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    model = _write_model(tmp_path, _model())

    exit_code = app.main(["--set", "no_such_setting=1", "check", str(model)])

    assert exit_code == 2
    assert "Unknown setting 'no_such_setting'" in capsys.readouterr().err


def test_execute_prints_records(
    tmp_path: Path,
    settings_path: Path,
    catalog_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    bodies: list[dict[str, Any]] = []
    used: list[ClientSettings] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"columns": [{"name": "ts"}, {"name": "v"}], "records": [["t0", 1.5]]})

    def factory(settings: ClientSettings) -> QueryExecutionClient:
        used.append(settings)
        return QueryExecutionClient(settings, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    monkeypatch.setattr(app, "QueryExecutionClient", factory)
    model = _write_model(tmp_path, _model())

    exit_code = app.main(
        [
            "--settings",
            str(settings_path),
            "--catalog",
            str(catalog_path),
            "--set",
            "backend_url=http://backend.test",
            "execute",
            str(model),
            "--arg",
            "limit=5",
        ]
    )

    assert exit_code == 0
    assert json.loads(capsys.readouterr().out) == {"columns": ["ts", "v"], "records": [{"ts": "t0", "v": 1.5}]}
    (body,) = bodies
    assert body["query"] == "select * from \"{{m1}}\" join '{{m2}}' limit {{limit}}"
    assert body["arguments"]["limit"]["value"] == 5
    assert used[0].execute_url == "http://backend.test/dqry/queries/execute"


def test_execute_reports_backend_errors(
    tmp_path: Path, settings_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    def factory(settings: ClientSettings) -> QueryExecutionClient:
        transport = httpx.MockTransport(lambda request: httpx.Response(400, json={"message": "bad query"}))
        return QueryExecutionClient(settings, client=httpx.AsyncClient(transport=transport))

    monkeypatch.setattr(app, "QueryExecutionClient", factory)
    model = _write_model(tmp_path, _model())

    exit_code = app.main(["--settings", str(settings_path), "execute", str(model)])

    assert exit_code == 1
    assert "bad query" in capsys.readouterr().err


def test_arguments_are_coerced_by_parameter_type() -> None:
    parameters = [
        QueryParameter("n", GenericDataType.INT),
        QueryParameter("ratio", GenericDataType.DOUBLE),
        QueryParameter("flag", GenericDataType.BOOLEAN),
    ]

    arguments = app._parse_arguments(["n=3", "ratio=0.5", "flag=yes", "free= text "], parameters)

    assert [(argument.name, argument.value) for argument in arguments] == [
        ("n", 3),
        ("ratio", 0.5),
        ("flag", True),
        ("free", " text "),
    ]


def test_cli_overrides_are_typed() -> None:
    overrides = app._coerce_cli_overrides(["max_retries=4", "validate_secondary_ranges=on", "conversion_timeout=1.5"])

    assert overrides == {"max_retries": 4, "validate_secondary_ranges": True, "conversion_timeout": 1.5}


def test_load_settings_reads_store(settings_path: Path) -> None:
    settings_path.write_text(json.dumps({"markup_prefix": "ref_"}), encoding="utf-8")

    assert app.load_settings(settings_path).markup_prefix == "ref_"
    assert app.load_settings(settings_path, overrides={"markup_prefix": "x_"}) == Settings(markup_prefix="x_")


def test_debug_flag_reports_log_file(
    tmp_path: Path, settings_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    log_path = tmp_path / "logs" / "sqlmark.log"
    requested: list[bool] = []

    def fake_configure(debug: bool = False, force: bool = False) -> Path:
        requested.append(debug)
        return log_path

    monkeypatch.setattr(app, "configure_logging", fake_configure)
    payload = _model()
    payload["query"] = "select * from {{m1}} join {{m2}}"
    model = _write_model(tmp_path, payload)

    exit_code = app.main(["--debug", "--settings", str(settings_path), "check", str(model)])

    captured = capsys.readouterr()
    assert exit_code == 0
    assert requested == [True]
    assert captured.err == f"Debug log: {log_path}\n"
    assert captured.out == "OK: 2 source(s), 1 parameter(s)\n"
