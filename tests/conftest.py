"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from sqlmark.editor.text_buffer import TrackedTextBuffer
from sqlmark.references.registry import ReferenceRegistry
from sqlmark.references.rendering import StaticSourceCatalog
from sqlmark.services.settings import Settings

from helpers import ASSET_ID, DEFAULT_UUID


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory) -> None:
    for name in (
        "SQLMARK_BACKEND_URL",
        "SQLMARK_EXECUTE_PATH",
        "SQLMARK_MARKUP_PREFIX",
        "SQLMARK_DEBUG_LOGGING",
        "SQLMARK_VALIDATE_SECONDARY_RANGES",
        "SQLMARK_REQUEST_TIMEOUT",
        "SQLMARK_CONVERSION_TIMEOUT",
        "SQLMARK_RETRY_MIN_SECONDS",
        "SQLMARK_RETRY_MAX_SECONDS",
        "SQLMARK_MAX_RETRIES",
        "SQLMARK_INVALIDATION_DEBOUNCE_MS",
        "SQLMARK_DEBUG",
        "SQLMARK_SETTINGS_PATH",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SQLMARK_LOG_DIR", str(tmp_path_factory.getbasetemp() / "logs"))


@pytest.fixture
def catalog() -> StaticSourceCatalog:
    return StaticSourceCatalog(tables={DEFAULT_UUID: "table_1"}, assets={ASSET_ID: "asset_1"})


@pytest.fixture
def buffer() -> TrackedTextBuffer:
    return TrackedTextBuffer(buffer_id="live")


@pytest.fixture
def registry(buffer: TrackedTextBuffer) -> ReferenceRegistry:
    return ReferenceRegistry(buffer)


@pytest.fixture
def settings() -> Settings:
    return Settings(markup_prefix="m", invalidation_debounce_ms=100, conversion_timeout=1.0)
