"""Settings dataclass and JSON persistence with environment overrides."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

from ..query.client import ClientSettings

__all__ = ["Settings", "SettingsStore", "DEFAULT_SETTINGS_PATH"]

LOGGER = logging.getLogger(__name__)
_SETTINGS_DIR = Path.home() / ".sqlmark"
DEFAULT_SETTINGS_PATH = _SETTINGS_DIR / "settings.json"
_SETTINGS_VERSION = 1
_ENV_OVERRIDES: Mapping[str, str] = {
    "SQLMARK_BACKEND_URL": "backend_url",
    "SQLMARK_EXECUTE_PATH": "execute_path",
    "SQLMARK_MARKUP_PREFIX": "markup_prefix",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "SQLMARK_DEBUG_LOGGING": "debug_logging",
    "SQLMARK_VALIDATE_SECONDARY_RANGES": "validate_secondary_ranges",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "SQLMARK_REQUEST_TIMEOUT": "request_timeout",
    "SQLMARK_CONVERSION_TIMEOUT": "conversion_timeout",
    "SQLMARK_RETRY_MIN_SECONDS": "retry_min_seconds",
    "SQLMARK_RETRY_MAX_SECONDS": "retry_max_seconds",
}
_INT_ENV_OVERRIDES: Mapping[str, str] = {
    "SQLMARK_MAX_RETRIES": "max_retries",
    "SQLMARK_INVALIDATION_DEBOUNCE_MS": "invalidation_debounce_ms",
}
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}


@dataclass(slots=True)
class Settings:
    """User-configurable settings persisted between sessions."""

    backend_url: str = "http://localhost:5053"
    execute_path: str = "/dqry/queries/execute"
    request_timeout: float = 30.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    invalidation_debounce_ms: int = 100
    conversion_timeout: float = 5.0
    validate_secondary_ranges: bool = False
    markup_prefix: str = "markup_"
    debug_logging: bool = False

    @property
    def invalidation_delay(self) -> float:
        return max(0, self.invalidation_debounce_ms) / 1000.0

    def client_settings(self) -> ClientSettings:
        return ClientSettings(
            base_url=self.backend_url,
            execute_path=self.execute_path,
            request_timeout=self.request_timeout,
            max_retries=self.max_retries,
            retry_min_seconds=self.retry_min_seconds,
            retry_max_seconds=self.retry_max_seconds,
            debug_logging=self.debug_logging,
        )


class SettingsStore:
    """Persistence adapter for :class:`Settings`."""

    def __init__(self, path: Path | str | None = None) -> None:
        self._path = Path(path).expanduser() if path else DEFAULT_SETTINGS_PATH

    @property
    def path(self) -> Path:
        return self._path

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Load settings from disk, then apply runtime and environment overrides."""

        payload = self._read_payload()
        settings = Settings()
        if payload:
            data = _filter_fields(payload)
            try:
                settings = Settings(**data)
            except TypeError as exc:
                LOGGER.warning("Settings payload contained unexpected data: %s", exc)
                settings = Settings()
            LOGGER.debug("Settings loaded from %s: keys=%s", self._path, sorted(data))

        if overrides:
            settings = self._apply_overrides(settings, overrides, source="runtime")
        return self._apply_env_overrides(settings)

    def save(self, settings: Settings) -> Path:
        """Persist settings to disk with an atomic rename."""

        payload: Dict[str, Any] = asdict(settings)
        payload["version"] = _SETTINGS_VERSION
        body = json.dumps(payload, indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(payload, dict):
            LOGGER.warning("Settings file %s does not contain an object", self._path)
            return {}
        return payload

    def _apply_overrides(
        self,
        settings: Settings,
        overrides: Mapping[str, Any],
        *,
        source: str,
    ) -> Settings:
        allowed = {item.name for item in fields(Settings)}
        filtered = {key: value for key, value in overrides.items() if key in allowed and value is not None}
        if filtered:
            LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
            settings = replace(settings, **filtered)
        return settings

    def _apply_env_overrides(self, settings: Settings) -> Settings:
        overrides: Dict[str, Any] = {}
        for env_name, field_name in _ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value
        for env_name, field_name in _BOOL_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value.strip().lower() in _TRUE_VALUES
        for env_name, field_name in _INT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = int(value, 10)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid integer", env_name, value)
        for env_name, field_name in _FLOAT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = float(value)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid float", env_name, value)
        if overrides:
            settings = self._apply_overrides(settings, overrides, source="environment")
        return settings


def _filter_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    allowed = {item.name for item in fields(Settings)}
    return {key: value for key, value in payload.items() if key in allowed}
