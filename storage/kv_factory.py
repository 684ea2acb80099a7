# storage/kv_factory.py
"""
Pulseboard KV Store Factory — v1.0.0

Returns the KVStore implementation selected by KVConfig (KV_PROVIDER,
falling back to PULSE_ENV).
"""

from __future__ import annotations

from typing import Optional

from core.errors import NotConfigured

from .kv_store import KVStore, KVConfig


# Singleton instance
_kv_instance: Optional[KVStore] = None


def create_kv_store(config: KVConfig) -> KVStore:
    """
    Build a store for config without touching the singleton.

    Raises:
        NotConfigured: If the provider is unknown or missing credentials
    """
    if not config.is_configured():
        raise NotConfigured(
            f"KV store '{config.provider}' not configured. "
            "Set KV_URL and KV_TOKEN, or KV_PROVIDER=file."
        )

    provider = config.provider.lower()

    if provider == "file":
        from .kv_file import FileKVStore
        return FileKVStore(config)

    if provider == "upstash":
        from .kv_upstash import UpstashKVStore
        return UpstashKVStore(config)

    raise NotConfigured(f"Unknown KV provider: {provider}. Supported: file, upstash")


def get_kv_store(config: Optional[KVConfig] = None) -> KVStore:
    """
    Get or create the KV store singleton.

    Args:
        config: Optional config (uses env vars if not provided)
    """
    global _kv_instance

    if _kv_instance is not None:
        return _kv_instance

    if config is None:
        config = KVConfig.from_env()

    _kv_instance = create_kv_store(config)
    return _kv_instance


def reset_kv_store() -> None:
    """Reset the singleton (for testing)."""
    global _kv_instance
    _kv_instance = None


def is_kv_configured() -> bool:
    """Check if KV store is configured via environment."""
    return KVConfig.from_env().is_configured()


__all__ = [
    "create_kv_store",
    "get_kv_store",
    "reset_kv_store",
    "is_kv_configured",
]
