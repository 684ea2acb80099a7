# backend/usage_service.py
"""
Pulseboard Usage Service — v1.0.0

Serves cached usage totals and refreshes them from the metering API.

Read path (cheap, every poll):
    memory cache -> stored document -> baseline

Refresh path (expensive, minutes of paging):
- stale data (older than refresh_seconds) starts a background refresh
  and the stale value is served meanwhile
- no data at all, with an API key, refreshes synchronously
- ?fresh forces a synchronous refresh
Only one refresh runs at a time; concurrent callers share its Future.
Stored totals never decrease; a failed refresh leaves them untouched.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from typing import Callable, Optional

from core.errors import NotConfigured, TransientIOFailure, ValidationError
from core.records import UsageTotals, now_ms
from storage.kv_store import KVStore

from .metering_client import MeteringClient


logger = logging.getLogger("pulse.usage")

USAGE_KEY = "cursor-usage"
DEFAULT_REFRESH_SECONDS = 60 * 60


# =============================================================================
# SINGLE FLIGHT
# =============================================================================

class SingleFlight:
    """
    At most one call in flight. Callers arriving while it runs get the
    same Future instead of starting a duplicate.
    """

    def __init__(self, name: str = "single-flight"):
        self.name = name
        self._lock = threading.Lock()
        self._future: Optional[Future] = None

    @property
    def in_flight(self) -> bool:
        with self._lock:
            return self._future is not None and not self._future.done()

    def submit(
        self,
        fn: Callable[[], object],
        on_done: Optional[Callable[[Future], None]] = None,
    ) -> Future:
        """
        Run `fn` in a daemon thread, or join the run already in flight.
        `on_done` is attached only to a newly started run.
        """
        with self._lock:
            if self._future is not None and not self._future.done():
                return self._future
            future: Future = Future()
            self._future = future

        if on_done is not None:
            future.add_done_callback(on_done)

        thread = threading.Thread(
            target=self._run, args=(future, fn), name=self.name, daemon=True
        )
        thread.start()
        return future

    def _run(self, future: Future, fn: Callable[[], object]) -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            result = fn()
        except Exception as e:
            future.set_exception(e)
        else:
            future.set_result(result)


# =============================================================================
# SERVICE
# =============================================================================

class UsageService:
    """Cached usage totals with a single-flight refresh."""

    def __init__(
        self,
        kv: KVStore,
        api_key: Optional[str] = None,
        client: Optional[MeteringClient] = None,
        refresh_seconds: int = DEFAULT_REFRESH_SECONDS,
        clock: Callable[[], int] = now_ms,
    ):
        self.kv = kv
        self.api_key = api_key
        self.client = client or (MeteringClient(api_key) if api_key else None)
        self.refresh_ms = refresh_seconds * 1000
        self.clock = clock
        self._cache: Optional[UsageTotals] = None
        self._flight = SingleFlight("pulse-usage-refresh")

    # ─────────────────────────────────────────────────────────────────────
    # Storage
    # ─────────────────────────────────────────────────────────────────────

    def read_stored(self) -> Optional[UsageTotals]:
        if self._cache is not None:
            return self._cache
        try:
            raw = self.kv.get_json(USAGE_KEY)
        except TransientIOFailure as e:
            logger.warning("stored usage unavailable: %s", e.message)
            return None
        if raw is None:
            return None
        try:
            self._cache = UsageTotals.from_dict(raw)
        except (ValidationError, TypeError, ValueError) as e:
            logger.warning("ignoring malformed stored usage: %s", e)
            return None
        return self._cache

    def _write(self, totals: UsageTotals) -> UsageTotals:
        """Store totals, never below what is already stored."""
        previous = self.read_stored()
        if previous is not None:
            totals = UsageTotals(
                tokens=max(previous.tokens, totals.tokens),
                lines_of_code=max(previous.lines_of_code, totals.lines_of_code),
                fetched_at=totals.fetched_at,
            )
        self._cache = totals
        try:
            self.kv.set_json(USAGE_KEY, totals.to_dict())
        except TransientIOFailure as e:
            # Memory cache still serves the fresh value
            logger.error("failed to write usage data: %s", e.message)
        return totals

    def is_stale(self, totals: UsageTotals) -> bool:
        return self.clock() - totals.fetched_at > self.refresh_ms

    # ─────────────────────────────────────────────────────────────────────
    # Refresh
    # ─────────────────────────────────────────────────────────────────────

    def _refresh_now(self) -> UsageTotals:
        logger.info("refreshing usage totals")
        return self._write(self.client.fetch_totals(self.clock()))

    def start_refresh(self) -> Future:
        """Start (or join) a refresh without waiting for it."""
        if self.client is None:
            raise NotConfigured("No CURSOR_API_KEY")
        return self._flight.submit(self._refresh_now, on_done=self._log_failure)

    def refresh(self) -> UsageTotals:
        """Refresh and wait for the result (joins an in-flight refresh)."""
        return self.start_refresh().result()

    @staticmethod
    def _log_failure(future: Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error("usage refresh failed: %s", error, exc_info=error)

    # ─────────────────────────────────────────────────────────────────────
    # Read
    # ─────────────────────────────────────────────────────────────────────

    def poll_usage_totals(self, fresh: bool = False) -> UsageTotals:
        stored = self.read_stored()

        if stored is not None and not fresh:
            if self.client is not None and self.is_stale(stored):
                self.start_refresh()
            return stored

        if self.client is not None:
            try:
                return self.refresh()
            except Exception as e:
                logger.warning("serving last stored usage after failed refresh: %s", e)

        return stored or UsageTotals.baseline()


__all__ = [
    "USAGE_KEY",
    "SingleFlight",
    "UsageService",
]
