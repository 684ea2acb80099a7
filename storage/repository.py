# storage/repository.py
"""
Pulseboard Repository — v1.0.0

The single entry point the HTTP layer uses for records. Combines the three
document stores and adds the cross-store rule: a tag cannot be deleted
while any task references it.
"""

from __future__ import annotations

import logging
import threading
from typing import Iterable, List, Optional, Tuple

from core.errors import Conflict
from core.records import FlowCompletion, FlowTask, TagEntry, Task

from .documents import FlowTaskStore, TagStore, TaskStore
from .kv_factory import get_kv_store
from .kv_store import KVStore


logger = logging.getLogger("pulse.storage")


class PulseRepository:
    """Tasks, tags and flowkeeper records over one KV store."""

    def __init__(self, kv: Optional[KVStore] = None):
        self.kv = kv or get_kv_store()
        self.tasks = TaskStore(self.kv)
        self.tags = TagStore(self.kv)
        self.flow = FlowTaskStore(self.kv)
        # Serializes save_tasks with delete_tag's in-use check (per process)
        self._tag_usage_lock = threading.Lock()

    # ─────────────────────────────────────────────────────────────────────
    # Priorities
    # ─────────────────────────────────────────────────────────────────────

    def load_tasks(self, authorized: bool = False) -> List[Task]:
        return self.tasks.load_tasks(authorized)

    def save_tasks(self, tasks: List[Task]) -> None:
        with self._tag_usage_lock:
            self.tasks.save_tasks(tasks)
        logger.info("saved %d priorities", len(tasks))

    def delete_task(self, task_id: str) -> List[Task]:
        return self.tasks.delete_task(task_id)

    # ─────────────────────────────────────────────────────────────────────
    # Tags
    # ─────────────────────────────────────────────────────────────────────

    def load_tags(self) -> List[TagEntry]:
        return self.tags.load_tags()

    def add_tag(self, value: Optional[str], label: Optional[str]) -> List[TagEntry]:
        return self.tags.add_tag(value, label)

    def tag_in_use(self, value: str, extra_tasks: Iterable[Task] = ()) -> bool:
        stored = self.tasks.load_tasks(authorized=False)
        return any(t.tag == value for t in list(stored) + list(extra_tasks))

    def delete_tag(self, value: str, draft_tasks: Iterable[Task] = ()) -> List[TagEntry]:
        """
        Delete a tag unless a stored task (or a task in draft_tasks)
        references it. Checked before any write.
        """
        with self._tag_usage_lock:
            if self.tag_in_use(value, draft_tasks):
                raise Conflict(f'Cannot delete tag "{value}": it is used by one or more priorities')
            return self.tags.delete_tag(value)

    # ─────────────────────────────────────────────────────────────────────
    # Flowkeeper
    # ─────────────────────────────────────────────────────────────────────

    def load_flow(self, now: Optional[int] = None) -> Tuple[List[FlowTask], List[FlowCompletion]]:
        return self.flow.load(now)

    def save_flow_tasks(self, tasks: List[FlowTask]) -> None:
        self.flow.save_tasks(tasks)

    def delete_flow_task(self, task_id: str) -> List[FlowTask]:
        return self.flow.delete_task(task_id)

    def complete_flow_task(self, task_id: str, now: Optional[int] = None) -> FlowCompletion:
        return self.flow.complete_task(task_id, now)


__all__ = ["PulseRepository"]
