# core/weight_model.py
"""
Pulseboard Weight Model — v1.0.0

Pure scoring engine: task attributes -> weight -> aggregate load -> mood.

Scales:
- Attribute weight: level 1 -> 0.5, level 2 -> 1.5, level 3 -> 3.0
  (low items barely count, high items hit hard)
- Aggregate mood (sum of weights):
    load < 15        -> calm
    15 <= load < 35  -> busy
    load >= 35       -> stress
- Segment mood (a single task's own weight, used for the segmented bar):
    weight >= 6 -> stress, weight >= 3 -> busy, else calm

The segment scale is independent of the aggregate scale. One max-severity
task weighs 9.0 and is stress-colored as a segment while the aggregate
mood stays calm; only accumulation moves the aggregate.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Sequence

from .records import Task


# =============================================================================
# TYPES
# =============================================================================

class Mood(str, Enum):
    CALM = "calm"
    BUSY = "busy"
    STRESS = "stress"


# =============================================================================
# CONSTANTS
# =============================================================================

WEIGHT_MAP: Dict[int, float] = {
    1: 0.5,  # Low
    2: 1.5,  # Medium
    3: 3.0,  # High
}

# Thresholds calibrated to a realistic max load of ~48
LOAD_THRESHOLDS = {
    "calm": 15,
    "busy": 35,
    "max": 50,  # visual max for the load bar
}

SEGMENT_THRESHOLDS = {
    "stress": 6,
    "busy": 3,
}

MOOD_LABELS: Dict[Mood, str] = {
    Mood.CALM: "Feeling Good",
    Mood.BUSY: "Busy",
    Mood.STRESS: "Under Pressure",
}

MOOD_EMOJI: Dict[Mood, str] = {
    Mood.CALM: "✨",
    Mood.BUSY: "⚡",
    Mood.STRESS: "🔥",
}

VERY_BUSY_LABEL = "Very Busy"
VERY_BUSY_PERCENT = 50


# =============================================================================
# SCORING
# =============================================================================

def weight(task: Task) -> float:
    """Weight of one task, in [1.5, 9.0]."""
    return WEIGHT_MAP[task.risk] + WEIGHT_MAP[task.urgency] + WEIGHT_MAP[task.importance]


def effective_load(tasks: Iterable[Task]) -> float:
    """Sum of task weights (0 for no tasks)."""
    return sum((weight(t) for t in tasks), 0.0)


def mood_for_load(load: float) -> Mood:
    if load < LOAD_THRESHOLDS["calm"]:
        return Mood.CALM
    if load < LOAD_THRESHOLDS["busy"]:
        return Mood.BUSY
    return Mood.STRESS


def mood(tasks: Iterable[Task]) -> Mood:
    return mood_for_load(effective_load(tasks))


def load_percent(load: float) -> float:
    """Load as a percentage of the visual max, capped at 100."""
    return min(load / LOAD_THRESHOLDS["max"] * 100, 100.0)


def mood_label(current: Mood, percent: float) -> str:
    """
    Display label for a mood.

    A busy mood past half of the visual max reads "Very Busy"; this is a
    label refinement only, the mood itself stays BUSY.
    """
    if current == Mood.BUSY and percent > VERY_BUSY_PERCENT:
        return VERY_BUSY_LABEL
    return MOOD_LABELS[current]


def segment_mood(task_weight: float) -> Mood:
    """Color class for a single task's bar segment (separate scale)."""
    if task_weight >= SEGMENT_THRESHOLDS["stress"]:
        return Mood.STRESS
    if task_weight >= SEGMENT_THRESHOLDS["busy"]:
        return Mood.BUSY
    return Mood.CALM


# =============================================================================
# PRESENTATION ORDERING
# =============================================================================

@dataclass(frozen=True)
class BarSegment:
    """One task's slice of the segmented load bar."""
    task: Task
    weight: float
    width_percent: float
    mood: Mood


def bar_segments(tasks: Sequence[Task]) -> List[BarSegment]:
    """Segments sorted ascending by weight (smallest left, largest right)."""
    total = effective_load(tasks)
    segments = []
    for task in sorted(tasks, key=weight):
        w = weight(task)
        segments.append(BarSegment(
            task=task,
            weight=w,
            width_percent=(w / total * 100) if total > 0 else 0.0,
            mood=segment_mood(w),
        ))
    return segments


def ranked_tasks(tasks: Sequence[Task], editing: bool = False) -> List[Task]:
    """
    Tasks for the list view: heaviest first.

    While editing, insertion order is kept so rows don't jump around.
    """
    if editing:
        return list(tasks)
    return sorted(tasks, key=weight, reverse=True)


__all__ = [
    "Mood",
    "WEIGHT_MAP",
    "LOAD_THRESHOLDS",
    "SEGMENT_THRESHOLDS",
    "MOOD_LABELS",
    "MOOD_EMOJI",
    "weight",
    "effective_load",
    "mood_for_load",
    "mood",
    "load_percent",
    "mood_label",
    "segment_mood",
    "BarSegment",
    "bar_segments",
    "ranked_tasks",
]
