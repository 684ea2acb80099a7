# core/counter_animator.py
"""
Pulseboard Counter Animator — v1.0.0

Target-seeking animation of two usage counters (tokens, lines).

Each axis holds:
- displayed: continuous value advanced every frame
- target:    raised (never lowered) on each usage poll
- floor:     monotonic watermark, persisted so a reload never shows less

Phases, decided per tick from the token gap (target - displayed):
- CATCH_UP: gap > NORMAL_ZONE. Speed proportional to the gap so the
  normal zone is reached in ~3s. No pauses.
- NORMAL:   gap <= NORMAL_ZONE. Base speed closes the gap in ~RAMP_SECONDS,
  capped at MAX_TOKENS_PER_SECOND, times a random multiplier.
- PAUSED:   short random pauses inside the normal zone.
- IDLE:     nothing to do (no target yet, or caught up).

Lines follow tokens. In catch-up they move by the observed tokens-per-line
ratio; in the normal zone each line must be paid off from a repeating
token-cost sequence, which gives bursty, uneven line timing.

The caller owns the clock: tick(now) takes monotonic seconds.
"""

from __future__ import annotations

import logging
import math
import random
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, Tuple


logger = logging.getLogger("pulse.animator")


# =============================================================================
# CONSTANTS
# =============================================================================

TOKEN_BUFFER = 50_000_000         # displayed target trails the true total by this
POLL_INTERVAL_SECONDS = 30
RAMP_SECONDS = 35
SAVE_LAG_TOKENS = 500_000         # persisted floor trails displayed by this
NORMAL_ZONE = SAVE_LAG_TOKENS     # within this of target = normal speed

MAX_TOKENS_PER_SECOND = 1_500
MIN_TOKENS_PER_SECOND = 100
CATCH_UP_SECONDS = 3
MIN_CATCH_UP_PER_SECOND = 500_000

SPEED_MULTIPLIER_RANGE = (0.3, 3.0)
SPEED_CHANGE_RANGE = (5.0, 20.0)
FIRST_PAUSE_RANGE = (10.0, 60.0)
PAUSE_GAP_RANGE = (30.0, 300.0)
PAUSE_LENGTH_RANGE = (0.3, 5.0)

SAVE_INTERVAL_SECONDS = 10

DEFAULT_TOKENS_PER_LINE = 21_000

# Tokens consumed per line, in sequence. Zero entries appear for free.
LINE_TOKEN_SEQ = (
    10, 0, 13, 0, 4, 25, 21, 22, 0, 7, 12, 18, 1, 0, 10, 11, 1, 0, 11, 0,
    4, 7, 8, 1, 0, 24, 3, 20, 6, 4, 8, 9, 2, 10, 2, 0, 15, 7, 14, 2,
    0, 8, 8, 6, 4, 3, 2, 1, 0, 9, 0, 4, 5, 6, 6, 7, 7, 7, 2, 8,
    1, 0, 5, 8, 4, 6, 5, 5, 6, 2, 8, 1, 0, 7, 5, 5, 5, 5, 5, 10,
    3, 20, 6, 4, 8, 9, 2, 14, 2, 0, 15, 7, 19, 2, 0, 9, 6, 4, 4, 2,
    1, 0, 11, 18, 8, 7, 7, 0, 6, 17, 12, 0, 11, 8, 14, 14, 2, 2, 0, 10,
    3, 0, 10, 6, 2, 0, 5, 1, 0, 9, 12, 10, 0, 12, 6, 19, 2, 0, 10, 22,
    9, 2, 0, 7, 21, 25, 0, 7, 18, 9, 8, 13, 14, 5, 2, 0, 10, 8, 0, 15,
    20, 13, 0, 10, 9, 16, 2, 11, 10, 15, 2, 2, 0, 8, 7, 0, 15, 9, 17, 6,
    2, 0, 5, 12, 7, 2, 2, 0, 5, 10, 10, 7, 2, 0, 6, 7, 1,
)

LINE_COST_MULTIPLIER = 200  # display tokens per sequence unit

SEQ_AVG = sum(LINE_TOKEN_SEQ) / len(LINE_TOKEN_SEQ)
VISUAL_TOKENS_PER_LINE = SEQ_AVG * LINE_COST_MULTIPLIER  # ~1,354

LINES_BUFFER = round(TOKEN_BUFFER / VISUAL_TOKENS_PER_LINE)
SAVE_LAG_LINES = round(SAVE_LAG_TOKENS / VISUAL_TOKENS_PER_LINE)


# =============================================================================
# TYPES
# =============================================================================

class Phase(str, Enum):
    IDLE = "idle"
    CATCH_UP = "catch_up"
    NORMAL = "normal"
    PAUSED = "paused"


class FloorStore(Protocol):
    """Persistence for the (tokens, lines) floor."""

    def load_floor(self) -> Tuple[int, int]:
        ...

    def save_floor(self, tokens: int, lines: int) -> None:
        ...


class MemoryFloorStore:
    """In-process floor store; values only ever go up."""

    def __init__(self, tokens: int = 0, lines: int = 0):
        self.tokens = tokens
        self.lines = lines

    def load_floor(self) -> Tuple[int, int]:
        return self.tokens, self.lines

    def save_floor(self, tokens: int, lines: int) -> None:
        self.tokens = max(self.tokens, tokens)
        self.lines = max(self.lines, lines)


@dataclass
class AxisState:
    displayed: float = 0.0
    target: float = 0.0
    floor: int = 0
    start: float = 0.0

    @property
    def gap(self) -> float:
        return self.target - self.displayed

    def visible(self) -> int:
        return max(math.floor(self.displayed), self.floor)

    def raise_floor(self) -> None:
        animated = math.floor(self.displayed)
        if animated > self.floor:
            self.floor = animated


@dataclass(frozen=True)
class CounterFrame:
    """What one tick produced."""
    tokens: int
    lines: int
    phase: Phase
    changed: bool


# =============================================================================
# ANIMATOR
# =============================================================================

class CounterAnimator:
    """
    Free-running animation of the token and line counters.

    Usage:
        animator = CounterAnimator(floor_store)
        animator.apply_totals(totals.tokens, totals.lines_of_code)   # on poll
        frame = animator.tick(time.monotonic())                      # per frame
    """

    def __init__(
        self,
        floor_store: Optional[FloorStore] = None,
        rng: Optional[random.Random] = None,
        now: Optional[float] = None,
    ):
        self.floor_store = floor_store or MemoryFloorStore()
        self.rng = rng or random.Random()
        self._lock = threading.Lock()

        self.tokens = AxisState()
        self.lines = AxisState()
        self.tokens_per_line = float(DEFAULT_TOKENS_PER_LINE)

        self.seq_index = 0
        self.line_accum = 0.0
        self.was_in_catch_up = True

        start = time.monotonic() if now is None else now
        self.last_frame: Optional[float] = None
        self.last_save = start
        self.paused = False
        self.pause_end = 0.0
        self.next_pause_at = start + self.rng.uniform(*FIRST_PAUSE_RANGE)
        self.speed_multiplier = self.rng.uniform(*SPEED_MULTIPLIER_RANGE)
        self.speed_change_at = start + self.rng.uniform(*SPEED_CHANGE_RANGE)

    # ─────────────────────────────────────────────────────────────────────
    # Poll side
    # ─────────────────────────────────────────────────────────────────────

    def apply_totals(self, tokens: int, lines_of_code: int) -> None:
        """Raise targets from a fresh usage reading. Targets never go down."""
        with self._lock:
            if lines_of_code > 0:
                self.tokens_per_line = tokens / lines_of_code

            self.tokens.target = max(tokens - TOKEN_BUFFER, self.tokens.target)
            self.lines.target = max(lines_of_code - LINES_BUFFER, self.lines.target)

            self.tokens.start = self.tokens.displayed
            self.lines.start = self.lines.displayed

            if self.tokens.floor == 0 and self.lines.floor == 0 and self.tokens.displayed == 0:
                self._seed_from_floor()

            self.line_accum = 0.0
            # Each target bump gets its own catch-up -> normal handoff
            if self.tokens.gap > NORMAL_ZONE:
                self.was_in_catch_up = True

    def _seed_from_floor(self) -> None:
        stored_tokens, stored_lines = self.floor_store.load_floor()
        for axis, stored in ((self.tokens, stored_tokens), (self.lines, stored_lines)):
            axis.floor = stored
            # Raw value stays at or below target; the floor carries the rest
            axis.displayed = float(min(stored, axis.target)) if axis.target > 0 else 0.0
            axis.start = axis.displayed
        logger.debug("seeded from floor tokens=%s lines=%s", stored_tokens, stored_lines)

    # ─────────────────────────────────────────────────────────────────────
    # Frame side
    # ─────────────────────────────────────────────────────────────────────

    def tick(self, now: float) -> CounterFrame:
        with self._lock:
            if self.last_frame is None:
                self.last_frame = now
            delta = max(0.0, now - self.last_frame)
            self.last_frame = now

            if self._pause_step(now):
                return self._frame(Phase.PAUSED, changed=False)

            if now >= self.speed_change_at:
                self.speed_multiplier = self.rng.uniform(*SPEED_MULTIPLIER_RANGE)
                self.speed_change_at = now + self.rng.uniform(*SPEED_CHANGE_RANGE)

            token_inc, phase = self._advance_tokens(delta)
            lines_changed = self._advance_lines(token_inc, phase)
            tokens_changed = phase != Phase.IDLE

            if tokens_changed:
                self.tokens.raise_floor()
            if lines_changed:
                self.lines.raise_floor()
            if (tokens_changed or lines_changed) and now - self.last_save > SAVE_INTERVAL_SECONDS:
                self.last_save = now
                self._save_floor()

            return self._frame(phase, changed=tokens_changed or lines_changed)

    def _pause_step(self, now: float) -> bool:
        """Returns True when this frame is skipped for a pause."""
        in_normal_zone = self.tokens.target > 0 and self.tokens.gap <= NORMAL_ZONE
        if not in_normal_zone:
            self.paused = False
            return False

        if self.paused:
            if now >= self.pause_end:
                self.paused = False
                self.next_pause_at = now + self.rng.uniform(*PAUSE_GAP_RANGE)
                return False
            return True

        if now >= self.next_pause_at:
            self.paused = True
            self.pause_end = now + self.rng.uniform(*PAUSE_LENGTH_RANGE)
            return True
        return False

    def _advance_tokens(self, delta: float) -> Tuple[float, Phase]:
        gap = self.tokens.gap
        if gap <= 0:
            return 0.0, Phase.IDLE

        if gap > NORMAL_ZONE:
            self.was_in_catch_up = True
            speed = max(gap / CATCH_UP_SECONDS, MIN_CATCH_UP_PER_SECOND)
            inc = speed * delta
            phase = Phase.CATCH_UP
        else:
            if self.was_in_catch_up:
                self._enter_normal_zone()
            base = min(max(gap / RAMP_SECONDS, MIN_TOKENS_PER_SECOND), MAX_TOKENS_PER_SECOND)
            inc = base * delta * self.speed_multiplier
            phase = Phase.NORMAL

        self.tokens.displayed = min(self.tokens.displayed + inc, self.tokens.target)
        return inc, phase

    def _enter_normal_zone(self) -> None:
        """Re-anchor lines so both axes run out together at the visual rate."""
        self.was_in_catch_up = False
        self.tokens.start = self.tokens.displayed
        self.line_accum = 0.0

        remaining = self.tokens.target - self.tokens.displayed
        self.lines.start = max(0.0, self.lines.target - remaining / VISUAL_TOKENS_PER_LINE)
        if self.lines.displayed > self.lines.start:
            self.lines.displayed = self.lines.start

    def _advance_lines(self, token_inc: float, phase: Phase) -> bool:
        if token_inc <= 0 or self.lines.displayed >= self.lines.target:
            return False

        if phase == Phase.CATCH_UP:
            step = token_inc / self.tokens_per_line
            self.lines.displayed = min(self.lines.displayed + step, self.lines.target)
            return True

        self.line_accum += token_inc
        added = 0
        while self.lines.displayed + added < self.lines.target:
            raw_cost = LINE_TOKEN_SEQ[self.seq_index % len(LINE_TOKEN_SEQ)]
            cost = raw_cost * LINE_COST_MULTIPLIER
            if raw_cost == 0 or self.line_accum >= cost:
                self.line_accum -= cost
                added += 1
                self.seq_index += 1
            else:
                break

        if added:
            self.lines.displayed = min(self.lines.displayed + added, self.lines.target)
            return True
        return False

    def _save_floor(self) -> None:
        save_tokens = max(0, math.floor(self.tokens.displayed) - SAVE_LAG_TOKENS)
        save_lines = max(0, math.floor(self.lines.displayed) - SAVE_LAG_LINES)
        stored_tokens, stored_lines = self.floor_store.load_floor()
        if save_tokens > stored_tokens or save_lines > stored_lines:
            self.floor_store.save_floor(
                max(save_tokens, stored_tokens),
                max(save_lines, stored_lines),
            )

    def _frame(self, phase: Phase, changed: bool) -> CounterFrame:
        return CounterFrame(
            tokens=self.tokens.visible(),
            lines=self.lines.visible(),
            phase=phase,
            changed=changed,
        )

    # ─────────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────────

    def visible(self) -> Tuple[int, int]:
        with self._lock:
            return self.tokens.visible(), self.lines.visible()


__all__ = [
    "TOKEN_BUFFER",
    "POLL_INTERVAL_SECONDS",
    "NORMAL_ZONE",
    "SAVE_LAG_TOKENS",
    "LINE_TOKEN_SEQ",
    "VISUAL_TOKENS_PER_LINE",
    "LINES_BUFFER",
    "Phase",
    "FloorStore",
    "MemoryFloorStore",
    "AxisState",
    "CounterFrame",
    "CounterAnimator",
]
