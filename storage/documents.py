# storage/documents.py
"""
Pulseboard Document Stores — v1.0.0

One JSON array per store, read and replaced wholesale:

    priorities        -> [Task]
    tags              -> [TagEntry]      (default catalog until first write)
    flowkeeper        -> [FlowTask]
    flow-completions  -> [FlowCompletion]

Read-modify-write operations hold the store's lock so two requests in the
same process cannot interleave. Across processes the last writer wins.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, List, Optional, Tuple, TypeVar

from core.errors import NotFound, TransientIOFailure, ValidationError
from core.flow_decay import prune_completions
from core.records import (
    DEFAULT_TAGS,
    FlowCompletion,
    FlowTask,
    TagEntry,
    Task,
    now_ms,
)

from .kv_store import KVStore


logger = logging.getLogger("pulse.storage")

T = TypeVar("T")

PRIORITIES_KEY = "priorities"
TAGS_KEY = "tags"
FLOW_TASKS_KEY = "flowkeeper"
COMPLETIONS_KEY = "flow-completions"


def _parse_list(raw: Any, parse: Callable[[Any], T], key: str) -> List[T]:
    """Parse a stored array, skipping entries that no longer validate."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        logger.warning("%s is not a list; treating as empty", key)
        return []
    items = []
    for entry in raw:
        try:
            items.append(parse(entry))
        except ValidationError as e:
            logger.warning("skipping invalid %s entry: %s", key, e.message)
    return items


# =============================================================================
# TASKS (PRIORITIES)
# =============================================================================

class TaskStore:
    """Priority tasks. Labels are private."""

    def __init__(self, kv: KVStore):
        self.kv = kv
        self._lock = threading.Lock()

    def _read(self) -> List[Task]:
        return _parse_list(self.kv.get_json(PRIORITIES_KEY), Task.from_dict, PRIORITIES_KEY)

    def load_tasks(self, authorized: bool = False) -> List[Task]:
        """All tasks; unauthorized callers get no labels."""
        tasks = self._read()
        if authorized:
            return tasks
        return [t.public() for t in tasks]

    def save_tasks(self, tasks: List[Task]) -> None:
        """Replace the full task list."""
        self.kv.set_json(PRIORITIES_KEY, [t.to_dict() for t in tasks])

    def delete_task(self, task_id: str) -> List[Task]:
        with self._lock:
            tasks = self._read()
            remaining = [t for t in tasks if t.id != task_id]
            if len(remaining) == len(tasks):
                raise NotFound(f"Priority not found: {task_id}")
            self.save_tasks(remaining)
            return remaining


# =============================================================================
# TAG CATALOG
# =============================================================================

class TagStore:
    """Tag catalog. Serves the default catalog until something is written."""

    def __init__(self, kv: KVStore):
        self.kv = kv
        self._lock = threading.Lock()

    def load_tags(self) -> List[TagEntry]:
        raw = self.kv.get_json(TAGS_KEY)
        if raw is None:
            return [TagEntry(t.value, t.label) for t in DEFAULT_TAGS]
        return _parse_list(raw, TagEntry.from_dict, TAGS_KEY)

    def _write(self, tags: List[TagEntry]) -> None:
        self.kv.set_json(TAGS_KEY, [t.to_dict() for t in tags])

    def add_tag(self, value: Optional[str], label: Optional[str]) -> List[TagEntry]:
        value = (value or "").strip()
        label = (label or "").strip()
        if not value or not label:
            raise ValidationError("Value and label required")

        with self._lock:
            tags = self.load_tags()
            if any(t.value == value for t in tags):
                raise ValidationError(f"Tag already exists: {value}")
            tags.append(TagEntry(value=value, label=label))
            self._write(tags)
            return tags

    def delete_tag(self, value: str) -> List[TagEntry]:
        with self._lock:
            tags = self.load_tags()
            remaining = [t for t in tags if t.value != value]
            if len(remaining) == len(tags):
                raise NotFound(f"Tag not found: {value}")
            self._write(remaining)
            return remaining


# =============================================================================
# FLOWKEEPER
# =============================================================================

class FlowTaskStore:
    """Flow tasks plus their append-only completion log."""

    def __init__(self, kv: KVStore):
        self.kv = kv
        self._lock = threading.Lock()

    def _read_tasks(self) -> List[FlowTask]:
        return _parse_list(self.kv.get_json(FLOW_TASKS_KEY), FlowTask.from_dict, FLOW_TASKS_KEY)

    def _read_completions(self) -> List[FlowCompletion]:
        return _parse_list(
            self.kv.get_json(COMPLETIONS_KEY), FlowCompletion.from_dict, COMPLETIONS_KEY
        )

    def _write_completions(self, completions: List[FlowCompletion]) -> None:
        self.kv.set_json(COMPLETIONS_KEY, [c.to_dict() for c in completions])

    def load(self, now: Optional[int] = None) -> Tuple[List[FlowTask], List[FlowCompletion]]:
        """
        Tasks and completions still inside the retention window.

        Pruned completions are written back opportunistically; a failed
        write-back is logged and does not fail the read.
        """
        tasks = self._read_tasks()
        raw = self._read_completions()
        completions = prune_completions(raw, now)
        if len(completions) != len(raw):
            try:
                self._write_completions(completions)
            except TransientIOFailure as e:
                logger.warning("pruning write-back failed: %s", e.message)
        return tasks, completions

    def save_tasks(self, tasks: List[FlowTask]) -> None:
        self.kv.set_json(FLOW_TASKS_KEY, [t.to_dict() for t in tasks])

    def delete_task(self, task_id: str) -> List[FlowTask]:
        with self._lock:
            tasks = self._read_tasks()
            remaining = [t for t in tasks if t.id != task_id]
            if len(remaining) == len(tasks):
                raise NotFound(f"Flow task not found: {task_id}")
            self.save_tasks(remaining)
            return remaining

    def complete_task(self, task_id: str, now: Optional[int] = None) -> FlowCompletion:
        """
        Remove the task and log a completion for its difficulty.

        Both documents change or neither does: if the completion write
        fails after the task list was written, the task list is restored.
        """
        if now is None:
            now = now_ms()

        with self._lock:
            tasks = self._read_tasks()
            task = next((t for t in tasks if t.id == task_id), None)
            if task is None:
                raise NotFound(f"Task not found: {task_id}")

            remaining = [t for t in tasks if t.id != task_id]
            completions = self._read_completions()
            completion = FlowCompletion(difficulty=task.difficulty, completed_at=now)

            self.save_tasks(remaining)
            try:
                self._write_completions(completions + [completion])
            except TransientIOFailure:
                logger.error("completion write failed; restoring task %s", task_id)
                self.save_tasks(tasks)
                raise

            logger.info("completed flow task %s (difficulty %s)", task_id, task.difficulty)
            return completion


__all__ = [
    "PRIORITIES_KEY",
    "TAGS_KEY",
    "FLOW_TASKS_KEY",
    "COMPLETIONS_KEY",
    "TaskStore",
    "TagStore",
    "FlowTaskStore",
]
