# core/draft_buffer.py
"""
Pulseboard Edit Buffer — v1.0.0

Two named snapshots of an editable list:
- committed: what was last saved (or loaded)
- draft:     the working copy while an edit session is open

begin_edit -> mutate draft -> commit_edit(saver) | discard_edit

commit_edit is the only path that persists. The draft is promoted only
after the saver returns; if the saver raises, the draft is kept and the
session stays open so nothing is lost.
"""

from __future__ import annotations

import copy
from typing import Callable, Generic, List, Optional, TypeVar

from .errors import NotFound
from .records import apply_changes


T = TypeVar("T")


class EditBuffer(Generic[T]):
    """Optimistic edit buffer over a list of records that carry an `id`."""

    def __init__(self, committed: Optional[List[T]] = None):
        self.committed: List[T] = list(committed or [])
        self.draft: Optional[List[T]] = None

    @property
    def editing(self) -> bool:
        return self.draft is not None

    @property
    def active(self) -> List[T]:
        """The draft while editing, else the committed list."""
        return self.draft if self.draft is not None else self.committed

    def replace_committed(self, items: List[T]) -> None:
        """Accept a fresh load from storage. Leaves any open draft alone."""
        self.committed = list(items)

    # ─────────────────────────────────────────────────────────────────────
    # Session
    # ─────────────────────────────────────────────────────────────────────

    def begin_edit(self, snapshot: Optional[List[T]] = None) -> None:
        source = self.committed if snapshot is None else snapshot
        self.draft = copy.deepcopy(list(source))

    def commit_edit(
        self,
        saver: Callable[[List[T]], None],
        promote: Optional[Callable[[T], T]] = None,
    ) -> List[T]:
        """
        Save the draft and make it the committed list.

        promote: optional per-item transform applied to the committed
        copy (e.g. stripping private fields for the public view).
        """
        if self.draft is None:
            return self.committed
        saver(self.draft)
        items = self.draft
        self.committed = [promote(i) for i in items] if promote else list(items)
        self.draft = None
        return self.committed

    def discard_edit(self) -> None:
        self.draft = None

    # ─────────────────────────────────────────────────────────────────────
    # Draft mutation
    # ─────────────────────────────────────────────────────────────────────

    def _require_draft(self) -> List[T]:
        if self.draft is None:
            raise RuntimeError("no edit session open")
        return self.draft

    def append(self, item: T) -> T:
        self._require_draft().append(item)
        return item

    def update_item(self, item_id: str, **changes) -> T:
        """Apply validated field changes; the item is untouched if any is invalid."""
        for item in self._require_draft():
            if getattr(item, "id", None) == item_id:
                return apply_changes(item, changes)
        raise NotFound(f"Task not found: {item_id}")

    def remove(self, item_id: str) -> bool:
        draft = self._require_draft()
        kept = [i for i in draft if getattr(i, "id", None) != item_id]
        removed = len(kept) != len(draft)
        self.draft = kept
        return removed


__all__ = ["EditBuffer"]
