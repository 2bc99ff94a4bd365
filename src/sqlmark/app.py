"""Command-line entry point: render, check and execute exchange documents."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, TextIO, get_type_hints

from .errors import SqlmarkError
from .query.client import QueryExecutionClient
from .query.models import GenericDataType, QueryArgument, QueryDocument, QueryParameter
from .references.rendering import StaticSourceCatalog
from .services.settings import Settings, SettingsStore
from .session import QueryEditorSession
from .utils import logging as logging_utils

_LOGGER = logging.getLogger(__name__)
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}


def configure_logging(debug: bool = False, *, force: bool = False) -> Optional[Path]:
    level = logging.DEBUG if debug else logging.WARNING
    logging_utils.setup_logging(level, force=force)
    log_path = logging_utils.get_log_path()
    _LOGGER.debug("Logging configured (level=%s, file=%s)", logging.getLevelName(level), log_path)
    return log_path


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        return active_store.load(overrides=overrides)
    except OSError as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        return Settings()


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point invoked by the ``sqlmark`` console script."""

    parser = _build_parser()
    args = parser.parse_args(argv)

    debug = bool(args.debug) or _env_flag("SQLMARK_DEBUG")
    log_path = configure_logging(debug)
    if debug and log_path is not None:
        print(f"Debug log: {log_path}", file=sys.stderr)

    try:
        overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        return 2

    settings_path = args.settings or os.environ.get("SQLMARK_SETTINGS_PATH")
    settings = load_settings(Path(settings_path).expanduser() if settings_path else None, overrides=overrides or None)
    if settings.debug_logging and not debug:
        configure_logging(True, force=True)

    try:
        document = _read_document(Path(args.model))
        catalog = _read_catalog(Path(args.catalog)) if args.catalog else StaticSourceCatalog()
        if args.command == "render":
            return asyncio.run(_render(document, settings, catalog, sys.stdout))
        if args.command == "check":
            return _check(document, sys.stdout)
        arguments = _parse_arguments(args.arguments or [], document.parameters)
        return asyncio.run(_execute(document, settings, catalog, arguments, sys.stdout))
    except (OSError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    except SqlmarkError as exc:
        print(f"error: {exc}", file=sys.stderr)
        for problem in exc.details.get("problems", []):
            print(f"  - {problem}", file=sys.stderr)
        return 1


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------
async def _render(
    document: QueryDocument,
    settings: Settings,
    catalog: StaticSourceCatalog,
    stream: TextIO,
) -> int:
    session = QueryEditorSession(settings=settings, catalog=catalog)
    try:
        result = await session.load_document(document)
    finally:
        await session.aclose()
    stream.write(result.text + "\n")
    if result.references:
        stream.write("\n")
    for reference in result.references:
        current = session.buffer.get_range(reference.primary_range_id)
        position = f"{current.start_line}:{current.start_column}-{current.end_line}:{current.end_column}" if current else "?"
        stream.write(
            f"{reference.markup}\t{reference.kind.value}\t{reference.source_id}\t{position}\t{reference.expected_content}\n"
        )
    if result.skipped:
        stream.write(f"\nskipped {result.skipped} source(s): {', '.join(result.skipped_markups)}\n")
    return 0


def _check(document: QueryDocument, stream: TextIO) -> int:
    problems = document.check_correspondence()
    for problem in problems:
        stream.write(f"{problem}\n")
    if problems:
        return 1
    stream.write(f"OK: {len(document.sources)} source(s), {len(document.parameters)} parameter(s)\n")
    return 0


async def _execute(
    document: QueryDocument,
    settings: Settings,
    catalog: StaticSourceCatalog,
    arguments: Sequence[QueryArgument],
    stream: TextIO,
) -> int:
    async with QueryExecutionClient(settings.client_settings()) as client:
        session = QueryEditorSession(settings=settings, catalog=catalog, client=client)
        try:
            await session.load_document(document)
            response = await session.execute(arguments)
        finally:
            await session.aclose()
    payload = {"columns": response.column_names, "records": response.as_records()}
    stream.write(json.dumps(payload, indent=2, ensure_ascii=False, default=str) + "\n")
    return 0


# ----------------------------------------------------------------------
# Parsing helpers
# ----------------------------------------------------------------------
def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sqlmark",
        description="Render, check or execute query documents with inline source references.",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    parser.add_argument(
        "--settings",
        metavar="PATH",
        help="Override the default ~/.sqlmark/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override a persisted setting for this run (repeatable).",
    )
    parser.add_argument(
        "--catalog",
        metavar="PATH",
        help='JSON file mapping ids to display names: {"tables": {...}, "assets": {...}}.',
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    render = subparsers.add_parser("render", help="Print the rendered text and its references.")
    render.add_argument("model", metavar="MODEL.json")

    check = subparsers.add_parser("check", help="Report token/source correspondence problems.")
    check.add_argument("model", metavar="MODEL.json")

    execute = subparsers.add_parser("execute", help="Send the document to the execution backend.")
    execute.add_argument("model", metavar="MODEL.json")
    execute.add_argument(
        "--arg",
        dest="arguments",
        metavar="NAME=VALUE",
        action="append",
        default=[],
        help="Bind a value to a query parameter (repeatable).",
    )
    return parser


def _read_document(path: Path) -> QueryDocument:
    text = path.read_text(encoding="utf-8")
    try:
        return QueryDocument.from_json(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path} is not valid JSON: {exc}") from exc


def _read_catalog(path: Path) -> StaticSourceCatalog:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path} is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ValueError(f"{path} must contain a JSON object")
    return StaticSourceCatalog(tables=payload.get("tables") or {}, assets=payload.get("assets") or {})


def _parse_arguments(items: Sequence[str], parameters: Sequence[QueryParameter]) -> list[QueryArgument]:
    by_name = {parameter.name.strip(): parameter for parameter in parameters}
    arguments: list[QueryArgument] = []
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Argument '{entry}' must use NAME=VALUE syntax.")
        name, raw_value = entry.split("=", 1)
        name = name.strip()
        if not name:
            raise ValueError("Argument is missing a parameter name.")
        parameter = by_name.get(name) or QueryParameter(name=name)
        arguments.append(QueryArgument(parameter=parameter, value=_coerce_argument(parameter.data_type, raw_value)))
    return arguments


def _coerce_argument(data_type: GenericDataType, raw_value: str) -> Any:
    normalized = raw_value.strip()
    if data_type is GenericDataType.INT:
        return int(normalized, 10)
    if data_type is GenericDataType.DOUBLE:
        return float(normalized)
    if data_type is GenericDataType.BOOLEAN:
        return _parse_bool(normalized)
    return raw_value


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    type_hints = get_type_hints(Settings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in type_hints:
            raise ValueError(f"Unknown setting '{key}'.")
        overrides[key] = _coerce_value(type_hints[key], raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    if annotation is bool:
        return _parse_bool(raw_value)
    if annotation is int:
        return int(raw_value, 10)
    if annotation is float:
        return float(raw_value)
    return raw_value


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
