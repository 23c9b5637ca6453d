from __future__ import annotations

import os
from typing import Any

from .json_store import read_json_dict, write_json_atomic
from .logger import get_logger

_logger = get_logger("settings")

# Credentials may come from the environment so they stay out of the settings file.
_ENV_OVERRIDES = {
    "supabase_url": "CLOUD_NOTES_SUPABASE_URL",
    "supabase_key": "CLOUD_NOTES_SUPABASE_KEY",
}

AUTH_STORAGE_FILENAME = "auth_session.json"


class SettingsManager:
    """JSON-file settings. Lookup order: environment override, stored value, DEFAULTS."""

    DEFAULTS: dict[str, Any] = {
        "supabase_url": "",
        "supabase_key": "",
        "notes_table": "NoteData",
        "images_bucket": "images",
        "oauth_provider": "github",
        "redirect_to": "cloudnotes://auth-callback",
        # Empty: AUTH_STORAGE_FILENAME next to the settings file.
        "auth_storage_path": "",
        "request_workers": 4,
    }

    def __init__(self, settings_path: str):
        self.settings_path = settings_path
        self._stored: dict[str, Any] = {}
        self.load()

    def load(self) -> None:
        try:
            self._stored = read_json_dict(self.settings_path)
        except (OSError, ValueError) as e:
            _logger.warning("settings load failed, using defaults: %s", e)
            self._stored = {}
            return
        if self._stored:
            _logger.debug("settings loaded: %s (%d keys)", self.settings_path, len(self._stored))

    def save(self) -> None:
        try:
            write_json_atomic(self.settings_path, self._stored)
        except OSError as e:
            _logger.error("settings save failed: %s", e)
            return
        _logger.debug("settings saved: %s", self.settings_path)

    def _env_value(self, key: str) -> str | None:
        env_name = _ENV_OVERRIDES.get(key)
        value = (os.getenv(env_name) or "").strip() if env_name else ""
        return value or None

    def get(self, key: str, default: Any = None) -> Any:
        env_value = self._env_value(key)
        if env_value is not None:
            return env_value
        if key in self._stored:
            return self._stored[key]
        return default if default is not None else self.DEFAULTS.get(key)

    def has(self, key: str) -> bool:
        return key in self._stored

    def set(self, key: str, value: Any) -> None:
        if key in self._stored and self._stored[key] == value:
            return
        self._stored[key] = value
        self.save()

    @property
    def data(self) -> dict[str, Any]:
        return self._stored

    # ---- typed accessors ----
    @property
    def supabase_url(self) -> str:
        return str(self.get("supabase_url") or "").strip()

    @property
    def supabase_key(self) -> str:
        return str(self.get("supabase_key") or "").strip()

    @property
    def auth_storage_path(self) -> str:
        configured = str(self.get("auth_storage_path") or "").strip()
        if configured:
            return os.path.expanduser(configured)
        return os.path.join(os.path.dirname(os.path.abspath(self.settings_path)), AUTH_STORAGE_FILENAME)

    @property
    def request_workers(self) -> int:
        raw = self.get("request_workers")
        try:
            return max(1, int(raw))
        except (TypeError, ValueError):
            fallback = int(self.DEFAULTS["request_workers"])
            _logger.warning("invalid request_workers %r, using %d", raw, fallback)
            return fallback
