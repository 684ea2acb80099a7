# ui/dashboard_session.py
"""
Pulseboard Dashboard Session — v1.0.0

Everything the dashboard does between the API and the screen:

- loads tasks / tags / flowkeeper data, keeping last-known-good data when
  a load fails
- owns the edit session: login opens draft copies of the task and flow
  task lists, exit_edit_mode saves them
- owns the timers: usage poll (30s) and flow recompute (100ms) run on
  background threads; the animation tick is driven by the view's frame
  loop through tick_animation()
- snapshot() hands the view one consistent picture to render
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Set

from core.counter_animator import CounterAnimator, CounterFrame, Phase, POLL_INTERVAL_SECONDS
from core.draft_buffer import EditBuffer
from core.errors import Conflict, PulseError, TransientIOFailure, Unauthorized, ValidationError
from core.flow_decay import TICK_SECONDS, flow_percent
from core.records import (
    DEFAULT_FLOW_LABEL,
    DEFAULT_TASK_LABEL,
    FlowCompletion,
    FlowTask,
    TagEntry,
    Task,
    UsageTotals,
    now_ms,
    slugify_tag,
)
from core.weight_model import (
    MOOD_EMOJI,
    BarSegment,
    Mood,
    bar_segments,
    effective_load,
    load_percent,
    mood_for_load,
    mood_label,
    ranked_tasks,
)

from .api_client import PulseClient
from .local_storage import JsonFloorStore, LocalStorage, has_recent_login, record_login


logger = logging.getLogger("pulse.session")


@dataclass
class DashboardSnapshot:
    """Render-ready view of the session."""
    mood: Mood
    mood_label: str
    mood_emoji: str
    load: float
    load_percent: float
    tasks: List[Task]
    segments: List[BarSegment]
    tags: List[TagEntry]
    flow_percent: float
    flow_tasks: List[FlowTask]
    tokens: int
    lines: int
    phase: Phase
    editing: bool
    has_recent_login: bool
    loading: bool
    error: Optional[str] = None


@dataclass
class _Timers:
    stop: threading.Event = field(default_factory=threading.Event)
    threads: List[threading.Thread] = field(default_factory=list)


class DashboardSession:
    def __init__(
        self,
        client: PulseClient,
        storage: LocalStorage,
        animator: Optional[CounterAnimator] = None,
        poll_seconds: float = POLL_INTERVAL_SECONDS,
        clock: Callable[[], int] = now_ms,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.storage = storage
        self.clock = clock
        self.monotonic = monotonic
        self.poll_seconds = poll_seconds
        self.animator = animator or CounterAnimator(JsonFloorStore(storage), now=monotonic())

        self._lock = threading.RLock()
        self.tasks: EditBuffer[Task] = EditBuffer()
        self.flow_tasks: EditBuffer[FlowTask] = EditBuffer()
        self.completions: List[FlowCompletion] = []
        self.tags: List[TagEntry] = []
        self.flow_percent = 0.0
        self.usage: Optional[UsageTotals] = None
        self.frame: Optional[CounterFrame] = None

        self.loading = True
        self.last_error: Optional[str] = None
        self.recent_login = has_recent_login(storage, clock())
        self._completing: Set[str] = set()
        self._timers: Optional[_Timers] = None

    @property
    def editing(self) -> bool:
        return self.tasks.editing or self.flow_tasks.editing

    # ─────────────────────────────────────────────────────────────────────
    # Loading
    # ─────────────────────────────────────────────────────────────────────

    def _note_failure(self, what: str, error: PulseError) -> None:
        logger.warning("failed to %s: %s", what, error.message)
        self.last_error = error.message

    def refresh_tasks(self) -> None:
        try:
            tasks = self.client.load_tasks()
        except TransientIOFailure as e:
            self._note_failure("fetch priorities", e)
            return
        with self._lock:
            self.tasks.replace_committed(tasks)

    def refresh_tags(self) -> None:
        try:
            tags = self.client.load_tags()
        except TransientIOFailure as e:
            self._note_failure("fetch tags", e)
            return
        with self._lock:
            self.tags = tags

    def refresh_flow(self) -> None:
        try:
            tasks, completions = self.client.load_flow()
        except TransientIOFailure as e:
            self._note_failure("fetch flowkeeper", e)
            return
        with self._lock:
            self.flow_tasks.replace_committed(tasks)
            self.completions = completions
        self.tick_flow()

    def load_all(self) -> None:
        self.refresh_tasks()
        self.refresh_tags()
        self.refresh_flow()
        self.loading = False

    # ─────────────────────────────────────────────────────────────────────
    # Edit session
    # ─────────────────────────────────────────────────────────────────────

    def login(self, password: str) -> bool:
        """
        Verify the password, refetch tasks with their private labels and
        open drafts of both lists. Returns False on a bad password.
        """
        try:
            self.client.verify_password(password)
            labelled = self.client.load_tasks()
        except Unauthorized:
            self.last_error = "Invalid password"
            self.client.logout()
            return False
        except TransientIOFailure as e:
            self._note_failure("log in", e)
            self.last_error = "Connection error"
            self.client.logout()
            return False

        with self._lock:
            self.tasks.replace_committed(labelled)
            self.tasks.begin_edit()
            self.flow_tasks.begin_edit()
        record_login(self.storage, self.clock())
        self.recent_login = True
        self.last_error = None
        logger.info("edit session opened")
        return True

    def exit_edit_mode(self) -> bool:
        """
        Save both drafts and close the edit session.

        The committed task list becomes the public view (labels stripped).
        If a save fails the drafts stay open and False is returned.
        """
        if not self.editing:
            return True
        try:
            with self._lock:
                self.tasks.commit_edit(self.client.save_tasks, promote=Task.public)
                self.flow_tasks.commit_edit(self.client.save_flow_tasks)
        except PulseError as e:
            self._note_failure("save", e)
            return False

        self.client.logout()
        logger.info("edit session saved and closed")
        return True

    def discard_edits(self) -> None:
        with self._lock:
            self.tasks.discard_edit()
            self.flow_tasks.discard_edit()
        self.client.logout()

    # Priorities (draft only)

    def add_task(self, label: str = DEFAULT_TASK_LABEL) -> Task:
        with self._lock:
            return self.tasks.append(Task.new(label))

    def update_task(self, task_id: str, **changes) -> Task:
        label = changes.get("label")
        if label is not None and not str(label).strip():
            changes.pop("label")
        with self._lock:
            return self.tasks.update_item(task_id, **changes)

    def delete_task(self, task_id: str) -> bool:
        with self._lock:
            return self.tasks.remove(task_id)

    # Flow tasks (draft only)

    def add_flow_task(self, label: str = DEFAULT_FLOW_LABEL) -> FlowTask:
        with self._lock:
            return self.flow_tasks.append(FlowTask.new(label))

    def update_flow_task(self, task_id: str, **changes) -> FlowTask:
        with self._lock:
            return self.flow_tasks.update_item(task_id, **changes)

    def delete_flow_task(self, task_id: str) -> bool:
        with self._lock:
            return self.flow_tasks.remove(task_id)

    def complete_flow_task(self, task_id: str) -> bool:
        """
        Optimistically remove the task and bump flow, then tell the server.

        A second call for the same id while the first is in flight is
        ignored. If the server call fails the local change is rolled back.
        Returns False if ignored or the server call failed.
        """
        with self._lock:
            if task_id in self._completing:
                return False
            self._completing.add(task_id)

            saved = (list(self.flow_tasks.committed), self.flow_tasks.draft, list(self.completions))
            task = next((t for t in self.flow_tasks.active if t.id == task_id), None)
            if self.flow_tasks.editing:
                self.flow_tasks.draft = [t for t in self.flow_tasks.draft if t.id != task_id]
            self.flow_tasks.committed = [t for t in self.flow_tasks.committed if t.id != task_id]
            if task is not None:
                self.completions.append(
                    FlowCompletion(difficulty=task.difficulty, completed_at=self.clock())
                )
        self.tick_flow()

        try:
            self.client.complete_flow_task(task_id)
            return True
        except PulseError as e:
            self._note_failure("complete flow task", e)
            with self._lock:
                self.flow_tasks.committed, self.flow_tasks.draft, self.completions = saved
            self.tick_flow()
            return False
        finally:
            with self._lock:
                self._completing.discard(task_id)

    # Tags

    def add_tag(self, label: str, value: Optional[str] = None) -> List[TagEntry]:
        label = (label or "").strip()
        if not label:
            raise ValidationError("label is required")
        if value and value.strip():
            tag_value = "-".join(value.strip().lower().split())
        else:
            tag_value = slugify_tag(label)
        tags = self.client.add_tag(tag_value, label)
        with self._lock:
            self.tags = tags
        return tags

    def delete_tag(self, value: str) -> List[TagEntry]:
        with self._lock:
            in_use = any(t.tag == value for t in self.tasks.active)
        if in_use:
            raise Conflict("Cannot delete tag that is in use. Reassign priorities first.")
        tags = self.client.delete_tag(value)
        with self._lock:
            self.tags = tags
        return tags

    def tag_label(self, value: str) -> str:
        for tag in self.tags:
            if tag.value == value:
                return tag.label
        return "Miscellaneous"

    # ─────────────────────────────────────────────────────────────────────
    # Ticks
    # ─────────────────────────────────────────────────────────────────────

    def poll_usage(self) -> Optional[UsageTotals]:
        """Fetch totals and raise the animator's targets. Never raises."""
        try:
            totals = self.client.poll_usage()
        except PulseError as e:
            logger.warning("usage poll failed: %s", e.message)
            return None
        self.usage = totals
        self.animator.apply_totals(totals.tokens, totals.lines_of_code)
        return totals

    def tick_flow(self, now: Optional[int] = None) -> float:
        with self._lock:
            completions = list(self.completions)
        self.flow_percent = flow_percent(completions, now if now is not None else self.clock())
        return self.flow_percent

    def tick_animation(self, now: Optional[float] = None) -> CounterFrame:
        self.frame = self.animator.tick(now if now is not None else self.monotonic())
        return self.frame

    # ─────────────────────────────────────────────────────────────────────
    # Snapshot
    # ─────────────────────────────────────────────────────────────────────

    def snapshot(self) -> DashboardSnapshot:
        with self._lock:
            tasks = list(self.tasks.active)
            flow_tasks = list(self.flow_tasks.active)
            tags = list(self.tags)
            editing = self.editing

        load = effective_load(tasks)
        percent = load_percent(load)
        current = mood_for_load(load)
        tokens, lines = self.animator.visible()
        return DashboardSnapshot(
            mood=current,
            mood_label=mood_label(current, percent),
            mood_emoji=MOOD_EMOJI[current],
            load=load,
            load_percent=percent,
            tasks=ranked_tasks(tasks, editing=editing),
            segments=bar_segments(tasks),
            tags=tags,
            flow_percent=self.flow_percent,
            flow_tasks=flow_tasks,
            tokens=tokens,
            lines=lines,
            phase=self.frame.phase if self.frame else Phase.IDLE,
            editing=editing,
            has_recent_login=self.recent_login,
            loading=self.loading,
            error=self.last_error,
        )

    # ─────────────────────────────────────────────────────────────────────
    # Timers
    # ─────────────────────────────────────────────────────────────────────

    def _every(self, interval: float, fn: Callable[[], object], stop: threading.Event) -> None:
        while not stop.is_set():
            try:
                fn()
            except Exception:
                logger.exception("timer callback %s failed", getattr(fn, "__name__", fn))
            stop.wait(interval)

    def start(self) -> None:
        """Start the usage poll and flow timers. Safe to call twice."""
        if self._timers is not None:
            return
        timers = _Timers()
        for name, interval, fn in (
            ("pulse-usage-poll", self.poll_seconds, self.poll_usage),
            ("pulse-flow-tick", TICK_SECONDS, self.tick_flow),
        ):
            thread = threading.Thread(
                target=self._every, args=(interval, fn, timers.stop), name=name, daemon=True
            )
            thread.start()
            timers.threads.append(thread)
        self._timers = timers

    def stop(self, timeout: float = 2.0) -> None:
        if self._timers is None:
            return
        self._timers.stop.set()
        for thread in self._timers.threads:
            thread.join(timeout)
        self._timers = None


__all__ = ["DashboardSnapshot", "DashboardSession"]
