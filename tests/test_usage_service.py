#!/usr/bin/env python3
"""
Pulseboard Usage Tests — v1.0.0

Tests for:
- Metering client (rate-limit retries, paging, batching)
- Usage service (cache, staleness, baseline, single-flight refresh)
"""

import threading
import unittest
from pathlib import Path
from unittest import mock
import tempfile
import shutil
import sys

import requests

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from backend.metering_client import (
    BATCH_WAIT,
    DAY_MS,
    PAGE_WAIT,
    RATE_LIMIT_WAIT,
    MeteringClient,
    usage_ranges,
)
from backend.usage_service import USAGE_KEY, SingleFlight, UsageService
from core.errors import NotConfigured, TransientIOFailure
from core.records import TOKEN_BASELINE, UsageTotals
from storage.kv_file import FileKVStore
from storage.kv_store import KVConfig


NOW = 1_700_000_000_000


def response(status=200, payload=None):
    resp = mock.Mock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.json.return_value = payload if payload is not None else {}
    return resp


def events_page(tokens, has_next):
    return {
        "usageEvents": [{"tokenUsage": {"inputTokens": tokens, "outputTokens": 0}}, {}],
        "pagination": {"hasNextPage": has_next},
    }


class TestMeteringClient(unittest.TestCase):
    """requests-based metering client with a mocked session."""

    def setUp(self):
        self.session = mock.Mock()
        self.sleeps = []
        self.client = MeteringClient("key", session=self.session, sleep=self.sleeps.append)

    def test_ranges_cover_lookback(self):
        ranges = usage_ranges(NOW)
        self.assertEqual(len(ranges), 9)
        self.assertEqual(ranges[0][0], NOW - 270 * DAY_MS)
        self.assertEqual(ranges[-1][1], NOW)
        for (_, end), (start, _) in zip(ranges, ranges[1:]):
            self.assertEqual(end, start)

    def test_rate_limit_retried(self):
        self.session.post.side_effect = [
            response(429),
            response(200, {"data": [{"totalLinesAdded": 7}, {"totalLinesAdded": 5}]}),
        ]
        self.assertEqual(self.client.fetch_lines_for_period(0, DAY_MS), 12)
        self.assertEqual(self.sleeps, [RATE_LIMIT_WAIT])
        _, kwargs = self.session.post.call_args
        self.assertEqual(kwargs["auth"], ("key", ""))

    def test_rate_limit_gives_up(self):
        self.session.post.return_value = response(429)
        with self.assertRaises(TransientIOFailure):
            self.client.fetch_lines_for_period(0, DAY_MS)
        self.assertEqual(self.session.post.call_count, 3)

    def test_network_error_raises(self):
        self.session.post.side_effect = requests.ConnectionError("down")
        with self.assertRaises(TransientIOFailure):
            self.client.fetch_tokens_for_period(0, DAY_MS)

    def test_error_status_raises(self):
        self.session.post.return_value = response(500)
        with self.assertRaises(TransientIOFailure):
            self.client.fetch_lines_for_period(0, DAY_MS)

    def test_failed_range_fails_whole_walk(self):
        self.session.post.side_effect = requests.ConnectionError("down")
        with self.assertRaises(TransientIOFailure):
            self.client.fetch_totals(NOW)

    def test_token_paging(self):
        self.session.post.side_effect = [
            response(200, events_page(100, True)),
            response(200, events_page(50, False)),
        ]
        self.assertEqual(self.client.fetch_tokens_for_period(0, DAY_MS), 150)
        self.assertEqual(self.sleeps, [PAGE_WAIT])
        pages = [c.kwargs["json"]["page"] for c in self.session.post.call_args_list]
        self.assertEqual(pages, [1, 2])

    def test_totals_include_baseline(self):
        with mock.patch.object(self.client, "fetch_lines_for_period", return_value=10), \
                mock.patch.object(self.client, "fetch_tokens_for_period", return_value=100):
            totals = self.client.fetch_totals(NOW)

        self.assertEqual(totals.tokens, TOKEN_BASELINE + 900)
        self.assertEqual(totals.lines_of_code, 90)
        # 3 batches: one wait after each lines pass, one between batches
        self.assertEqual(self.sleeps, [BATCH_WAIT] * 5)


class FakeMetering:
    """Stands in for MeteringClient.fetch_totals."""

    def __init__(self, tokens=TOKEN_BASELINE + 1_000, gate=None):
        self.tokens = tokens
        self.gate = gate
        self.calls = 0

    def fetch_totals(self, now=None):
        self.calls += 1
        if self.gate is not None:
            self.gate.wait(5)
        return UsageTotals(tokens=self.tokens, lines_of_code=42, fetched_at=now or NOW)


class TestUsageService(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.kv = FileKVStore(KVConfig(provider="file", data_dir=Path(self.temp_dir)))
        self.now = NOW

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def make_service(self, client=None):
        return UsageService(self.kv, client=client, refresh_seconds=3600, clock=lambda: self.now)

    def test_baseline_without_key_or_data(self):
        service = self.make_service()
        totals = service.poll_usage_totals()
        self.assertEqual(totals.tokens, TOKEN_BASELINE)
        self.assertEqual(totals.lines_of_code, 0)
        self.assertEqual(service.poll_usage_totals(fresh=True).tokens, TOKEN_BASELINE)

    def test_refresh_requires_key(self):
        with self.assertRaises(NotConfigured):
            self.make_service().refresh()

    def test_first_poll_refreshes_and_stores(self):
        client = FakeMetering()
        service = self.make_service(client)
        totals = service.poll_usage_totals()

        self.assertEqual(totals.lines_of_code, 42)
        self.assertEqual(client.calls, 1)
        self.assertEqual(self.kv.get_json(USAGE_KEY)["linesOfCode"], 42)

    def test_fresh_stored_value_served(self):
        self.kv.set_json(USAGE_KEY, UsageTotals(5, 6, NOW - 1000).to_dict())
        client = FakeMetering()
        service = self.make_service(client)

        self.assertEqual(service.poll_usage_totals().tokens, 5)
        self.assertEqual(client.calls, 0)

    def test_stale_value_served_while_refreshing(self):
        self.kv.set_json(USAGE_KEY, UsageTotals(5, 6, NOW - 2 * 3600 * 1000).to_dict())
        gate = threading.Event()
        client = FakeMetering(gate=gate)
        service = self.make_service(client)

        self.assertEqual(service.poll_usage_totals().tokens, 5)
        future = service._flight._future
        gate.set()
        self.assertEqual(future.result(5).lines_of_code, 42)
        self.assertEqual(service.read_stored().lines_of_code, 42)

    def test_failed_refresh_falls_back(self):
        client = mock.Mock()
        client.fetch_totals.side_effect = RuntimeError("boom")
        service = self.make_service(client)
        self.assertEqual(service.poll_usage_totals(fresh=True).tokens, TOKEN_BASELINE)

    def test_unreachable_metering_keeps_stored_totals(self):
        good = UsageTotals(30_000_000_000, 500_000, NOW - 2 * 3600 * 1000)
        self.kv.set_json(USAGE_KEY, good.to_dict())
        session = mock.Mock()
        session.post.side_effect = requests.ConnectionError("down")
        client = MeteringClient("key", session=session, sleep=lambda _: None)
        service = self.make_service(client)

        totals = service.poll_usage_totals(fresh=True)

        self.assertEqual(totals, good)
        self.assertEqual(self.kv.get_json(USAGE_KEY), good.to_dict())
        self.assertEqual(service.read_stored(), good)

    def test_lower_refresh_never_lowers_totals(self):
        self.kv.set_json(USAGE_KEY, UsageTotals(TOKEN_BASELINE + 5_000, 100, NOW - 1).to_dict())
        client = FakeMetering(tokens=TOKEN_BASELINE + 1_000)
        service = self.make_service(client)

        totals = service.refresh()

        self.assertEqual(totals.tokens, TOKEN_BASELINE + 5_000)
        self.assertEqual(totals.lines_of_code, 100)
        self.assertEqual(totals.fetched_at, NOW)
        self.assertEqual(self.kv.get_json(USAGE_KEY)["tokens"], TOKEN_BASELINE + 5_000)

    def test_failed_refresh_logged_once(self):
        gate = threading.Event()
        logged = threading.Event()

        class FailingMetering(FakeMetering):
            def fetch_totals(self, now=None):
                self.calls += 1
                gate.wait(5)
                raise TransientIOFailure("metering down")

        client = FailingMetering()
        service = self.make_service(client)
        with self.assertLogs("pulse.usage", level="ERROR") as logs:
            first = service.start_refresh()
            second = service.start_refresh()
            self.assertIs(first, second)
            # Runs after the service's own callback
            first.add_done_callback(lambda _: logged.set())
            gate.set()
            self.assertTrue(logged.wait(5))

        failures = [line for line in logs.output if "usage refresh failed" in line]
        self.assertEqual(len(failures), 1)
        self.assertEqual(client.calls, 1)
        self.assertIsInstance(first.exception(), TransientIOFailure)


class TestSingleFlight(unittest.TestCase):

    def test_concurrent_calls_share_one_run(self):
        gate = threading.Event()
        calls = []

        def work():
            calls.append(1)
            gate.wait(5)
            return "done"

        flight = SingleFlight("test")
        first = flight.submit(work)
        second = flight.submit(work)
        self.assertIs(first, second)
        self.assertTrue(flight.in_flight)

        gate.set()
        self.assertEqual(first.result(5), "done")
        self.assertEqual(len(calls), 1)
        self.assertFalse(flight.in_flight)

    def test_new_run_after_completion(self):
        flight = SingleFlight("test")
        first = flight.submit(lambda: 1)
        first.result(5)
        second = flight.submit(lambda: 2)
        self.assertIsNot(first, second)
        self.assertEqual(second.result(5), 2)


if __name__ == "__main__":
    unittest.main()
