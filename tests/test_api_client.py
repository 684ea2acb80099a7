#!/usr/bin/env python3
"""
Pulseboard Client-Side Tests — v1.0.0

Tests for:
- PulseClient request building and error mapping
- LocalStorage / JsonFloorStore persistence
- Recent-login tracking
"""

import unittest
from pathlib import Path
from unittest import mock
import tempfile
import shutil
import sys

import requests

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.errors import Conflict, NotConfigured, NotFound, TransientIOFailure, Unauthorized
from core.records import Task
from ui.api_client import PulseClient
from ui.local_storage import (
    RECENT_LOGIN_MS,
    STORAGE_KEY_TOKENS,
    JsonFloorStore,
    LocalStorage,
    has_recent_login,
    record_login,
)


def response(status=200, payload=None, reason="OK"):
    resp = mock.Mock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.reason = reason
    resp.json.return_value = payload if payload is not None else {}
    return resp


class TestPulseClient(unittest.TestCase):

    def setUp(self):
        self.session = mock.Mock()
        self.client = PulseClient("http://pulse.test/", session=self.session)

    def test_verify_password_remembers_bearer(self):
        self.session.request.return_value = response(200, {"ok": True})
        self.client.verify_password("pw")
        self.assertTrue(self.client.authorized)

        self.session.request.return_value = response(200, [
            {"id": "a", "label": "Secret", "tag": "misc", "risk": 1, "urgency": 1, "importance": 1},
        ])
        tasks = self.client.load_tasks()
        self.assertEqual(tasks[0].label, "Secret")
        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ("GET", "http://pulse.test/api/priorities"))
        self.assertEqual(kwargs["headers"], {"Authorization": "Bearer pw"})

        self.client.logout()
        self.assertFalse(self.client.authorized)

    def test_wrong_password(self):
        self.session.request.return_value = response(
            401, {"ok": False, "error": "unauthorized", "message": "Invalid password"}
        )
        with self.assertRaises(Unauthorized):
            self.client.verify_password("nope")
        self.assertFalse(self.client.authorized)

    def test_status_mapping(self):
        cases = [
            (404, "Task not found", NotFound),
            (409, "Tag in use", Conflict),
            (500, "Server not configured", NotConfigured),
            (503, "could not read priorities", TransientIOFailure),
        ]
        for status, message, error_cls in cases:
            self.session.request.return_value = response(status, {"message": message})
            with self.assertRaises(error_cls) as ctx:
                self.client.load_tags()
            self.assertEqual(ctx.exception.message, message)

    def test_connection_error_is_transient(self):
        self.session.request.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(TransientIOFailure):
            self.client.poll_usage()

    def test_save_tasks_sends_labels(self):
        self.session.request.return_value = response(200, {"ok": True, "count": 1})
        self.client.password = "pw"
        self.client.save_tasks([Task(id="a", label="Mine")])
        _, kwargs = self.session.request.call_args
        self.assertEqual(kwargs["json"][0]["label"], "Mine")

    def test_fresh_usage_param(self):
        self.session.request.return_value = response(
            200, {"tokens": 5, "linesOfCode": 6, "fetchedAt": 7}
        )
        totals = self.client.poll_usage(fresh=True)
        self.assertEqual(totals.lines_of_code, 6)
        _, kwargs = self.session.request.call_args
        self.assertEqual(kwargs["params"], {"fresh": "1"})


class TestLocalStorage(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.path = Path(self.temp_dir) / "local.json"

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_persists_across_instances(self):
        LocalStorage(self.path).set_item("k", 12)
        self.assertEqual(LocalStorage(self.path).get_item("k"), 12)

    def test_corrupt_file_starts_empty(self):
        self.path.write_text("not json", encoding="utf-8")
        storage = LocalStorage(self.path)
        self.assertIsNone(storage.get_item("k"))
        self.assertEqual(storage.get_number("k"), 0)

    def test_floor_only_rises(self):
        floor = JsonFloorStore(LocalStorage(self.path))
        floor.save_floor(100, 10)
        floor.save_floor(50, 20)
        self.assertEqual(floor.load_floor(), (100, 20))
        self.assertEqual(LocalStorage(self.path).get_number(STORAGE_KEY_TOKENS), 100)

    def test_recent_login_window(self):
        storage = LocalStorage(self.path)
        self.assertFalse(has_recent_login(storage, 1_000))
        record_login(storage, 1_000)
        self.assertTrue(has_recent_login(storage, 1_000 + RECENT_LOGIN_MS - 1))
        self.assertFalse(has_recent_login(storage, 1_000 + RECENT_LOGIN_MS))


if __name__ == "__main__":
    unittest.main()
