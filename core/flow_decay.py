# core/flow_decay.py
"""
Pulseboard Flow Decay Model — v1.0.0

Flow is a percentage (0-100) built from recent flow task completions.

Each completion grants a difficulty-specific percentage that decays
linearly to zero over a difficulty-specific duration:

    difficulty 1: 33% over 4h
    difficulty 2: 43% over 8h
    difficulty 3: 53% over 12h

Total flow is the sum of live contributions, capped at 100. Everything is
recomputed from (completions, now) on each call; there is no accumulator.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from .records import FlowCompletion, now_ms


# =============================================================================
# CONSTANTS
# =============================================================================

HOUR_MS = 3600_000

DIFFICULTY_HOURS: Dict[int, int] = {1: 4, 2: 8, 3: 12}

FLOW_GRANT: Dict[int, float] = {1: 33, 2: 43, 3: 53}

MAX_FLOW = 100.0

# Storage retention, well past every decay duration
RETENTION_MS = 7 * 24 * HOUR_MS

# Refresh cadence for visibly smooth decay
TICK_SECONDS = 0.1


# =============================================================================
# DECAY
# =============================================================================

def duration_ms(difficulty: int) -> int:
    return DIFFICULTY_HOURS.get(difficulty, DIFFICULTY_HOURS[1]) * HOUR_MS


def contribution(completion: FlowCompletion, now: int) -> float:
    """Current contribution of one completion (0 once expired)."""
    span = duration_ms(completion.difficulty)
    # A completion stamped slightly ahead of `now` counts as just completed
    elapsed = max(0, now - completion.completed_at)
    if elapsed >= span:
        return 0.0
    grant = FLOW_GRANT.get(completion.difficulty, FLOW_GRANT[1])
    return grant * (1 - elapsed / span)


def is_expired(completion: FlowCompletion, now: int) -> bool:
    return now - completion.completed_at >= duration_ms(completion.difficulty)


def flow_percent(completions: Iterable[FlowCompletion], now: Optional[int] = None) -> float:
    """Current flow in [0, 100]."""
    if now is None:
        now = now_ms()
    total = sum((contribution(c, now) for c in completions), 0.0)
    return max(0.0, min(MAX_FLOW, total))


def prune_completions(
    completions: Iterable[FlowCompletion],
    now: Optional[int] = None,
) -> List[FlowCompletion]:
    """Drop completions past the retention window. Does not affect flow_percent."""
    if now is None:
        now = now_ms()
    return [c for c in completions if now - c.completed_at < RETENTION_MS]


__all__ = [
    "DIFFICULTY_HOURS",
    "FLOW_GRANT",
    "RETENTION_MS",
    "TICK_SECONDS",
    "duration_ms",
    "contribution",
    "is_expired",
    "flow_percent",
    "prune_completions",
]
