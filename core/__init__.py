# core/__init__.py
"""
Pulseboard Core — scoring, flow decay and counter animation.

Pure models with no framework or storage dependencies:
- weight_model:     task attributes -> weight -> load -> mood
- flow_decay:       completions + now -> flow percentage
- counter_animator: target-seeking token/line counters
- draft_buffer:     committed/draft edit snapshots
"""

from .errors import (
    PulseError,
    Unauthorized,
    NotFound,
    Conflict,
    ValidationError,
    NotConfigured,
    TransientIOFailure,
)
from .records import Task, TagEntry, FlowTask, FlowCompletion, UsageTotals
from .weight_model import Mood, weight, effective_load, mood, mood_for_load
from .flow_decay import flow_percent, prune_completions
from .counter_animator import CounterAnimator, CounterFrame, Phase
from .draft_buffer import EditBuffer

__all__ = [
    "PulseError",
    "Unauthorized",
    "NotFound",
    "Conflict",
    "ValidationError",
    "NotConfigured",
    "TransientIOFailure",
    "Task",
    "TagEntry",
    "FlowTask",
    "FlowCompletion",
    "UsageTotals",
    "Mood",
    "weight",
    "effective_load",
    "mood",
    "mood_for_load",
    "flow_percent",
    "prune_completions",
    "CounterAnimator",
    "CounterFrame",
    "Phase",
    "EditBuffer",
]
