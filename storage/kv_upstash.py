# storage/kv_upstash.py
"""
Pulseboard KV Store — Upstash Redis Implementation

Uses the Upstash REST API via upstash-redis SDK.
Documents are stored as JSON strings without expiry.

Install: pip install upstash-redis
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from core.errors import TransientIOFailure

from .kv_store import KVStore, KVConfig


logger = logging.getLogger("pulse.storage")


class UpstashKVStore(KVStore):
    """
    Upstash Redis implementation of KVStore.

    Uses Upstash's REST API which is serverless-friendly.
    """

    def __init__(self, config: KVConfig, client=None):
        super().__init__(config)
        self._client = client
        if self._client is None:
            self._init_client()

    def _init_client(self) -> None:
        """Initialize Upstash Redis client."""
        from upstash_redis import Redis

        self._client = Redis(url=self.config.url, token=self.config.token)
        logger.info("connected to %s...", self.config.url[:30])

    @property
    def client(self):
        """Get the Upstash Redis client."""
        if self._client is None:
            self._init_client()
        return self._client

    # =========================================================================
    # KVStore Implementation
    # =========================================================================

    def get_json(self, key: str) -> Optional[Any]:
        prefixed = self._prefixed_key(key)
        try:
            value = self.client.get(prefixed)
        except Exception as e:
            logger.error("get_json error for %s: %s", key, e)
            raise TransientIOFailure(f"could not read {key}") from e

        if value is None:
            return None
        # Upstash may return a string or an already parsed value
        if isinstance(value, (dict, list)):
            return value
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        try:
            return json.loads(value)
        except (TypeError, json.JSONDecodeError) as e:
            logger.warning("corrupt document %s: %s", key, e)
            return None

    def set_json(self, key: str, value: Any) -> None:
        prefixed = self._prefixed_key(key)
        try:
            self.client.set(prefixed, json.dumps(value))
        except Exception as e:
            logger.error("set_json error for %s: %s", key, e)
            raise TransientIOFailure(f"could not write {key}") from e

    def delete(self, key: str) -> bool:
        prefixed = self._prefixed_key(key)
        try:
            return self.client.delete(prefixed) > 0
        except Exception as e:
            logger.error("delete error for %s: %s", key, e)
            raise TransientIOFailure(f"could not delete {key}") from e

    # =========================================================================
    # Upstash-specific methods
    # =========================================================================

    def ping(self) -> bool:
        """Test connection to Upstash."""
        try:
            result = self.client.ping()
            return result == "PONG" or result is True
        except Exception as e:
            logger.warning("ping error: %s", e)
            return False


__all__ = ["UpstashKVStore"]
