# core/records.py
"""
Pulseboard Records — v1.0.0

Plain dataclasses for the four record kinds held by the document store,
plus the cached usage totals.

JSON keys follow the stored wire format:
- Task:            {id, label?, tag, risk, urgency, importance}
- TagEntry:        {value, label}
- FlowTask:        {id, label, difficulty}
- FlowCompletion:  {difficulty, completedAt}
- UsageTotals:     {tokens, linesOfCode, fetchedAt}

Timestamps (completedAt, fetchedAt) are epoch milliseconds.
"""

from __future__ import annotations

import re
import time
import uuid
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

from .errors import ValidationError


# =============================================================================
# CONSTANTS
# =============================================================================

LEVELS = (1, 2, 3)

DEFAULT_TAG = "misc"
DEFAULT_TASK_LABEL = "New Priority"
DEFAULT_FLOW_LABEL = "New task"

DIFFICULTY_LABELS: Dict[int, str] = {1: "Easy", 2: "Medium", 3: "Hard"}


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def _level(data: Dict[str, Any], key: str) -> int:
    value = data.get(key)
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or value not in LEVELS:
        raise ValidationError(f"{key} must be one of 1, 2, 3 (got {value!r})")
    return int(value)


def _required_str(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{key} is required")
    return str(value)


LEVEL_FIELDS = ("risk", "urgency", "importance", "difficulty")


def apply_changes(record: Any, changes: Dict[str, Any]) -> Any:
    """
    Validate `changes` against the record's own fields, then set them.

    Nothing is applied unless every change is valid. `id` never changes.
    """
    allowed = {f.name: f for f in fields(record) if f.name != "id"}
    unknown = sorted(set(changes) - set(allowed))
    if unknown:
        raise ValidationError(f"unknown field(s): {', '.join(unknown)}")

    checked: Dict[str, Any] = {}
    for key, value in changes.items():
        if key in LEVEL_FIELDS:
            value = _level(changes, key)
        elif key == "tag":
            value = _required_str(changes, key).strip()
        elif value is not None:
            value = str(value)
        elif allowed[key].default is not None:
            raise ValidationError(f"{key} is required")
        checked[key] = value

    for key, value in checked.items():
        setattr(record, key, value)
    return record


def slugify_tag(text: str) -> str:
    """
    Derive a tag value from a display label.

    "Side Project!" -> "side-project"
    """
    slug = re.sub(r"\s+", "-", text.strip().lower())
    return re.sub(r"[^a-z0-9-]", "", slug)


# =============================================================================
# TASK (PRIORITY)
# =============================================================================

@dataclass
class Task:
    """
    A workload item scored by the weight model.

    risk / urgency / importance: 1=low, 2=medium, 3=high
    label: private; only present for authorized reads
    """
    id: str
    tag: str = DEFAULT_TAG
    risk: int = 1
    urgency: int = 1
    importance: int = 2
    label: Optional[str] = None

    @classmethod
    def new(cls, label: str = DEFAULT_TASK_LABEL) -> "Task":
        """Create a task with the default attributes."""
        return cls(id=f"pri_{uuid.uuid4().hex[:12]}", label=label)

    def to_dict(self, include_label: bool = True) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id}
        if include_label and self.label is not None:
            data["label"] = self.label
        data.update({
            "tag": self.tag,
            "risk": self.risk,
            "urgency": self.urgency,
            "importance": self.importance,
        })
        return data

    def public(self) -> "Task":
        """Copy of this task without its private label."""
        return Task(
            id=self.id,
            tag=self.tag,
            risk=self.risk,
            urgency=self.urgency,
            importance=self.importance,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        if not isinstance(data, dict):
            raise ValidationError("task must be an object")
        label = data.get("label")
        return cls(
            id=_required_str(data, "id"),
            tag=str(data.get("tag") or DEFAULT_TAG),
            risk=_level(data, "risk"),
            urgency=_level(data, "urgency"),
            importance=_level(data, "importance"),
            label=str(label) if label is not None else None,
        )


# =============================================================================
# TAG CATALOG
# =============================================================================

@dataclass
class TagEntry:
    """A tag catalog entry; `value` is the unique key referenced by tasks."""
    value: str
    label: str

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "label": self.label}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TagEntry":
        if not isinstance(data, dict):
            raise ValidationError("tag must be an object")
        return cls(value=_required_str(data, "value"), label=_required_str(data, "label"))


DEFAULT_TAGS = [
    # Documentation & Communication
    TagEntry("docs-general", "Documentation & Reporting"),
    TagEntry("docs-design", "Solution Design"),
    TagEntry("communications", "Communications"),
    TagEntry("emails", "Catching Up on Messages"),
    # Programming
    TagEntry("prog-bugfix", "Programming - Bug Fixes"),
    TagEntry("prog-features", "Programming - New Features"),
    TagEntry("prog-newapp", "Programming - New Project"),
    TagEntry("prog-refactor", "Programming - Refactoring"),
    TagEntry("prog-review", "Code Review"),
    # Meetings & Collaboration
    TagEntry("meetings", "Meetings & Calls"),
    TagEntry("planning", "Planning & Strategy"),
    TagEntry("review", "Review & Feedback"),
    # Research & Learning
    TagEntry("research", "Research & Analysis"),
    TagEntry("learning", "Learning & Development"),
    # Admin & Personal
    TagEntry("admin-work", "Administrative Tasks"),
    TagEntry("admin-personal", "Personal Admin"),
    TagEntry("scheduling", "Scheduling & Coordination"),
    TagEntry("errands", "Errands"),
    TagEntry("health", "Health & Wellness"),
    # Projects
    TagEntry("side-project", "Side Project"),
    TagEntry("creative", "Creative Work"),
    # Catch-all
    TagEntry("misc", "Miscellaneous"),
]


# =============================================================================
# FLOWKEEPER
# =============================================================================

@dataclass
class FlowTask:
    """A task that grants flow when completed."""
    id: str
    label: str = DEFAULT_FLOW_LABEL
    difficulty: int = 1

    @classmethod
    def new(cls, label: str = DEFAULT_FLOW_LABEL) -> "FlowTask":
        return cls(id=f"flow_{uuid.uuid4().hex[:12]}", label=label)

    @property
    def difficulty_label(self) -> str:
        return DIFFICULTY_LABELS.get(self.difficulty, "Easy")

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "label": self.label, "difficulty": self.difficulty}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FlowTask":
        if not isinstance(data, dict):
            raise ValidationError("flow task must be an object")
        return cls(
            id=_required_str(data, "id"),
            label=str(data.get("label") or ""),
            difficulty=_level(data, "difficulty"),
        )


@dataclass(frozen=True)
class FlowCompletion:
    """Immutable record of a completed flow task."""
    difficulty: int
    completed_at: int  # epoch ms

    def to_dict(self) -> Dict[str, Any]:
        return {"difficulty": self.difficulty, "completedAt": self.completed_at}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FlowCompletion":
        if not isinstance(data, dict):
            raise ValidationError("completion must be an object")
        completed_at = data.get("completedAt")
        if isinstance(completed_at, bool) or not isinstance(completed_at, (int, float)):
            raise ValidationError("completedAt must be a number")
        return cls(difficulty=_level(data, "difficulty"), completed_at=int(completed_at))


# =============================================================================
# USAGE TOTALS
# =============================================================================

TOKEN_BASELINE = 21_000_000_000


@dataclass(frozen=True)
class UsageTotals:
    """Cumulative usage totals from the metering source."""
    tokens: int
    lines_of_code: int
    fetched_at: int  # epoch ms, 0 = never fetched

    @classmethod
    def baseline(cls) -> "UsageTotals":
        return cls(tokens=TOKEN_BASELINE, lines_of_code=0, fetched_at=0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tokens": self.tokens,
            "linesOfCode": self.lines_of_code,
            "fetchedAt": self.fetched_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UsageTotals":
        if not isinstance(data, dict):
            raise ValidationError("usage totals must be an object")
        return cls(
            tokens=int(data.get("tokens") or 0),
            lines_of_code=int(data.get("linesOfCode") or 0),
            fetched_at=int(data.get("fetchedAt") or 0),
        )


__all__ = [
    "LEVELS",
    "DEFAULT_TAG",
    "DIFFICULTY_LABELS",
    "DEFAULT_TAGS",
    "TOKEN_BASELINE",
    "now_ms",
    "slugify_tag",
    "LEVEL_FIELDS",
    "apply_changes",
    "Task",
    "TagEntry",
    "FlowTask",
    "FlowCompletion",
    "UsageTotals",
]
