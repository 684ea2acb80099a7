# ui/local_storage.py
"""
Pulseboard Local Storage — v1.0.0

A small JSON file of string keys, standing in for browser localStorage:

    cursor_tokens_highest   persisted token floor
    cursor_lines_highest    persisted line floor
    last_login_at           epoch ms of the last successful login
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from core.records import now_ms


logger = logging.getLogger("pulse.local")

STORAGE_KEY_TOKENS = "cursor_tokens_highest"
STORAGE_KEY_LINES = "cursor_lines_highest"
LAST_LOGIN_KEY = "last_login_at"

RECENT_LOGIN_MS = 24 * 60 * 60 * 1000


class LocalStorage:
    """Key-value file. Unreadable files start empty rather than failing."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._data: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
            return data if isinstance(data, dict) else {}
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("local storage unreadable (%s); starting empty", e)
            return {}

    def _save(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2)
        except OSError as e:
            logger.warning("local storage write failed: %s", e)

    def get_item(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._data.get(key)

    def set_item(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value
            self._save()

    def remove_item(self, key: str) -> None:
        with self._lock:
            if self._data.pop(key, None) is not None:
                self._save()

    def get_number(self, key: str) -> int:
        value = self.get_item(key)
        try:
            return int(value or 0)
        except (TypeError, ValueError):
            return 0


class JsonFloorStore:
    """FloorStore backed by LocalStorage. Values never go down."""

    def __init__(self, storage: LocalStorage):
        self.storage = storage

    def load_floor(self) -> Tuple[int, int]:
        return (
            self.storage.get_number(STORAGE_KEY_TOKENS),
            self.storage.get_number(STORAGE_KEY_LINES),
        )

    def save_floor(self, tokens: int, lines: int) -> None:
        stored_tokens, stored_lines = self.load_floor()
        if tokens > stored_tokens:
            self.storage.set_item(STORAGE_KEY_TOKENS, tokens)
        if lines > stored_lines:
            self.storage.set_item(STORAGE_KEY_LINES, lines)


def record_login(storage: LocalStorage, now: Optional[int] = None) -> None:
    storage.set_item(LAST_LOGIN_KEY, now if now is not None else now_ms())


def has_recent_login(storage: LocalStorage, now: Optional[int] = None) -> bool:
    """True if the last login was within the past 24 hours."""
    last = storage.get_number(LAST_LOGIN_KEY)
    if not last:
        return False
    if now is None:
        now = now_ms()
    return now - last < RECENT_LOGIN_MS


__all__ = [
    "STORAGE_KEY_TOKENS",
    "STORAGE_KEY_LINES",
    "LAST_LOGIN_KEY",
    "LocalStorage",
    "JsonFloorStore",
    "record_login",
    "has_recent_login",
]
