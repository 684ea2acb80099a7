# backend/metering_client.py
"""
Pulseboard Metering Client — v1.0.0

Pulls cumulative usage from the Cursor team admin API:
- POST /teams/daily-usage-data        -> lines added per day
- POST /teams/filtered-usage-events   -> per-request token usage (paged)

The API is rate limited, so the client:
- retries 429 responses twice, 5s apart
- waits 0.5s between event pages
- walks the lookback window in 30-day ranges, 3 ranges per batch,
  with 1.5s pauses around each batch's token pass

Non-OK responses and network errors raise TransientIOFailure: a walk
either covers every range or fails as a whole.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from core.errors import TransientIOFailure
from core.records import TOKEN_BASELINE, UsageTotals, now_ms


logger = logging.getLogger("pulse.metering")


# =============================================================================
# CONSTANTS
# =============================================================================

API_BASE = "https://api.cursor.com"

DAY_MS = 24 * 60 * 60 * 1000
RANGE_MS = 30 * DAY_MS
LOOKBACK_MS = 270 * DAY_MS
BATCH_SIZE = 3

PAGE_SIZE = 500
RATE_LIMIT_RETRIES = 2
RATE_LIMIT_WAIT = 5.0
PAGE_WAIT = 0.5
BATCH_WAIT = 1.5

REQUEST_TIMEOUT = 30


@dataclass(frozen=True)
class UsagePage:
    tokens: int
    has_next_page: bool


def usage_ranges(now: int, lookback_ms: int = LOOKBACK_MS) -> List[Tuple[int, int]]:
    """Consecutive [start, end) ranges of at most 30 days covering the lookback."""
    ranges = []
    cursor = now - lookback_ms
    while cursor < now:
        end = min(cursor + RANGE_MS, now)
        ranges.append((cursor, end))
        cursor = end
    return ranges


# =============================================================================
# CLIENT
# =============================================================================

class MeteringClient:
    """
    Thin requests-based client. `sleep` and `session` are injectable so
    tests run without waiting or touching the network.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = API_BASE,
        session: Optional[requests.Session] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.sleep = sleep or time.sleep

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST with 429 retries. Raises TransientIOFailure on any failure."""
        url = f"{self.base_url}{path}"
        for attempt in range(RATE_LIMIT_RETRIES + 1):
            try:
                resp = self.session.post(
                    url,
                    json=payload,
                    auth=(self.api_key, ""),
                    timeout=REQUEST_TIMEOUT,
                )
            except requests.RequestException as e:
                logger.warning("%s failed: %s", path, e)
                raise TransientIOFailure(f"{path} failed: {e}") from e

            if resp.status_code == 429 and attempt < RATE_LIMIT_RETRIES:
                logger.info("%s rate limited, retrying in %ss", path, RATE_LIMIT_WAIT)
                self.sleep(RATE_LIMIT_WAIT)
                continue

            if not resp.ok:
                logger.warning("%s returned HTTP %s", path, resp.status_code)
                raise TransientIOFailure(f"{path} returned HTTP {resp.status_code}")

            try:
                data = resp.json()
            except ValueError as e:
                logger.warning("%s returned invalid JSON: %s", path, e)
                raise TransientIOFailure(f"{path} returned invalid JSON") from e
            if not isinstance(data, dict):
                raise TransientIOFailure(f"{path} returned unexpected payload")
            return data
        raise TransientIOFailure(f"{path} still rate limited")

    # ─────────────────────────────────────────────────────────────────────
    # Endpoints
    # ─────────────────────────────────────────────────────────────────────

    def fetch_daily_usage(self, start: int, end: int) -> List[Dict[str, Any]]:
        data = self._post("/teams/daily-usage-data", {"startDate": start, "endDate": end})
        return data.get("data") or []

    def fetch_usage_events_page(self, start: int, end: int, page: int) -> Optional[UsagePage]:
        data = self._post("/teams/filtered-usage-events", {
            "startDate": start,
            "endDate": end,
            "page": page,
            "pageSize": PAGE_SIZE,
        })
        if data.get("usageEvents") is None:
            return None

        tokens = 0
        for event in data["usageEvents"]:
            usage = event.get("tokenUsage")
            if usage:
                tokens += usage.get("inputTokens") or 0
                tokens += usage.get("outputTokens") or 0
        pagination = data.get("pagination") or {}
        return UsagePage(tokens=tokens, has_next_page=bool(pagination.get("hasNextPage")))

    def fetch_lines_for_period(self, start: int, end: int) -> int:
        return sum(day.get("totalLinesAdded") or 0 for day in self.fetch_daily_usage(start, end))

    def fetch_tokens_for_period(self, start: int, end: int) -> int:
        total = 0
        page = 1
        while True:
            result = self.fetch_usage_events_page(start, end, page)
            if result is None:
                break
            total += result.tokens
            if not result.has_next_page:
                break
            page += 1
            self.sleep(PAGE_WAIT)
        return total

    # ─────────────────────────────────────────────────────────────────────
    # Totals
    # ─────────────────────────────────────────────────────────────────────

    def fetch_totals(self, now: Optional[int] = None) -> UsageTotals:
        """
        Walk the full lookback and return cumulative totals.

        Lines for a batch are fetched in parallel; tokens are paged
        sequentially since that endpoint is the one that rate limits.
        """
        if now is None:
            now = now_ms()
        ranges = usage_ranges(now)

        total_lines = 0
        total_tokens = 0
        with ThreadPoolExecutor(max_workers=BATCH_SIZE) as pool:
            for i in range(0, len(ranges), BATCH_SIZE):
                batch = ranges[i:i + BATCH_SIZE]
                total_lines += sum(pool.map(lambda r: self.fetch_lines_for_period(*r), batch))

                self.sleep(BATCH_WAIT)

                for start, end in batch:
                    total_tokens += self.fetch_tokens_for_period(start, end)

                if i + BATCH_SIZE < len(ranges):
                    self.sleep(BATCH_WAIT)

        logger.info("fetched %d tokens, %d lines over %d ranges", total_tokens, total_lines, len(ranges))
        return UsageTotals(
            tokens=total_tokens + TOKEN_BASELINE,
            lines_of_code=total_lines,
            fetched_at=now_ms(),
        )


__all__ = [
    "API_BASE",
    "UsagePage",
    "usage_ranges",
    "MeteringClient",
]
