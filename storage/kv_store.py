# storage/kv_store.py
"""
Pulseboard KV Store Protocol — v1.0.0

Abstract interface for document storage backends.
All document reads/writes go through this interface.

Each key holds one JSON document (an array or an object). Writes replace
the whole document; last writer wins.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional


PROVIDERS = ("file", "upstash")


def is_production() -> bool:
    return os.getenv("PULSE_ENV", "development").lower() == "production"


@dataclass
class KVConfig:
    """Configuration for the document store."""
    provider: str  # "file" or "upstash"
    url: str = ""
    token: Optional[str] = None  # Required for Upstash
    prefix: str = "pulse"
    data_dir: Path = Path("data")

    @classmethod
    def from_env(cls) -> "KVConfig":
        """
        Load config from environment variables.

        KV_PROVIDER wins when set; otherwise production uses upstash and
        everything else uses local JSON files.
        """
        default_provider = "upstash" if is_production() else "file"
        return cls(
            provider=os.getenv("KV_PROVIDER", default_provider).lower(),
            url=os.getenv("KV_URL", ""),
            token=os.getenv("KV_TOKEN"),
            prefix=os.getenv("KV_PREFIX", "pulse"),
            data_dir=Path(os.getenv("PULSE_DATA_DIR", "data")),
        )

    def is_configured(self) -> bool:
        """Check if the selected provider has what it needs."""
        if self.provider == "file":
            return True
        if self.provider == "upstash":
            return bool(self.url and self.token)
        return False


class KVStore(ABC):
    """
    Abstract base class for document store implementations.

    Implementations raise TransientIOFailure when the backend cannot be
    read or written. A missing key is not an error: get_json returns None.
    """

    def __init__(self, config: KVConfig):
        self.config = config
        self.prefix = config.prefix

    def _prefixed_key(self, key: str) -> str:
        """Add prefix to key to prevent collisions."""
        return f"{self.prefix}:{key}"

    # =========================================================================
    # ABSTRACT METHODS - Must be implemented by subclasses
    # =========================================================================

    @abstractmethod
    def get_json(self, key: str) -> Optional[Any]:
        """
        Get the JSON document stored under key.

        Args:
            key: Key without prefix

        Returns:
            Parsed JSON value or None if not found
        """

    @abstractmethod
    def set_json(self, key: str, value: Any) -> None:
        """
        Replace the JSON document stored under key.

        Args:
            key: Key without prefix
            value: JSON-serializable value
        """

    @abstractmethod
    def delete(self, key: str) -> bool:
        """
        Delete a key.

        Returns:
            True if key existed and was deleted
        """

    # =========================================================================
    # CONVENIENCE METHODS
    # =========================================================================

    def exists(self, key: str) -> bool:
        """Check if key exists."""
        return self.get_json(key) is not None


__all__ = [
    "PROVIDERS",
    "is_production",
    "KVConfig",
    "KVStore",
]
