# storage/kv_file.py
"""
Pulseboard KV Store — Local JSON File Implementation

One pretty-printed JSON file per key under data_dir:
    priorities -> data/priorities.json

Used for local development and tests.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Optional

from core.errors import TransientIOFailure

from .kv_store import KVStore, KVConfig


logger = logging.getLogger("pulse.storage")


class FileKVStore(KVStore):
    """File-backed KVStore. The prefix is not used on disk."""

    def __init__(self, config: KVConfig):
        super().__init__(config)
        self.data_dir = Path(config.data_dir)
        self._lock = threading.Lock()

    def _path(self, key: str) -> Path:
        return self.data_dir / f"{key}.json"

    def get_json(self, key: str) -> Optional[Any]:
        path = self._path(key)
        with self._lock:
            if not path.exists():
                return None
            try:
                with open(path, "r", encoding="utf-8") as f:
                    return json.load(f)
            except json.JSONDecodeError as e:
                # Unreadable documents fall back to "nothing stored"
                logger.warning("corrupt document %s: %s", path, e)
                return None
            except OSError as e:
                logger.error("read failed for %s: %s", path, e)
                raise TransientIOFailure(f"could not read {key}") from e

    def set_json(self, key: str, value: Any) -> None:
        path = self._path(key)
        tmp = path.with_suffix(".json.tmp")
        with self._lock:
            try:
                self.data_dir.mkdir(parents=True, exist_ok=True)
                with open(tmp, "w", encoding="utf-8") as f:
                    json.dump(value, f, indent=2, ensure_ascii=False)
                os.replace(tmp, path)
            except (OSError, TypeError) as e:
                logger.error("write failed for %s: %s", path, e)
                raise TransientIOFailure(f"could not write {key}") from e

    def delete(self, key: str) -> bool:
        path = self._path(key)
        with self._lock:
            if not path.exists():
                return False
            try:
                path.unlink()
            except OSError as e:
                logger.error("delete failed for %s: %s", path, e)
                raise TransientIOFailure(f"could not delete {key}") from e
            return True


__all__ = ["FileKVStore"]
