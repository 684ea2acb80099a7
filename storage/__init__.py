# storage/__init__.py
"""
Pulseboard Storage — JSON documents behind a KV backend.

Providers: local JSON files (development, tests) and Upstash Redis
(production).
"""

from .kv_store import KVConfig, KVStore
from .kv_factory import create_kv_store, get_kv_store, reset_kv_store, is_kv_configured
from .documents import TaskStore, TagStore, FlowTaskStore
from .repository import PulseRepository

__all__ = [
    "KVConfig",
    "KVStore",
    "create_kv_store",
    "get_kv_store",
    "reset_kv_store",
    "is_kv_configured",
    "TaskStore",
    "TagStore",
    "FlowTaskStore",
    "PulseRepository",
]
