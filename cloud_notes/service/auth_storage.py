"""Auth session store kept on disk.

The Supabase auth client keeps the session and, during a hosted sign-in, the
PKCE code verifier in this store. The browser redirect relaunches the app, so
the verifier written by the first process must be readable by the second.
"""
from __future__ import annotations

import threading

from supabase_auth import SyncSupportedStorage

from cloud_notes.json_store import read_json_dict, write_json_atomic
from cloud_notes.logger import get_logger

_logger = get_logger("supabase")


class FileAuthStorage(SyncSupportedStorage):
    """Key/value items in one JSON file; every call reads the file afresh."""

    def __init__(self, path: str) -> None:
        self.path = path
        self._lock = threading.Lock()

    def _items(self) -> dict[str, str]:
        try:
            return read_json_dict(self.path)
        except (OSError, ValueError) as e:
            _logger.warning("auth storage unreadable, starting empty: %s", e)
            return {}

    def get_item(self, key: str) -> str | None:
        with self._lock:
            value = self._items().get(key)
        return None if value is None else str(value)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            items = self._items()
            items[key] = value
            write_json_atomic(self.path, items)

    def remove_item(self, key: str) -> None:
        with self._lock:
            items = self._items()
            if items.pop(key, None) is None:
                return
            write_json_atomic(self.path, items)
