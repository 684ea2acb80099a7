#!/usr/bin/env python3
"""
Pulseboard Config & Auth Tests — v1.0.0
"""

import json
import os
import unittest
from pathlib import Path
from unittest import mock
import tempfile
import shutil
import sys

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.errors import NotConfigured, Unauthorized
from storage.kv_store import KVConfig
from system.auth import bearer_matches, require_cron, require_editor, verify_password
from system.config import Config


class TestConfig(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.data_dir = Path(self.temp_dir)

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_defaults_written(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            config = Config.load(self.data_dir, load_env=False)
        self.assertEqual(config.env, "development")
        self.assertFalse(config.is_production)
        self.assertIsNone(config.edit_password)
        self.assertTrue((self.data_dir / "config.json").exists())

    def test_corrupt_file_reset(self):
        (self.data_dir / "config.json").write_text("{oops", encoding="utf-8")
        with mock.patch.dict(os.environ, {}, clear=True):
            config = Config.load(self.data_dir, load_env=False)
        self.assertEqual(config.env, "development")
        raw = json.loads((self.data_dir / "config.json").read_text(encoding="utf-8"))
        self.assertEqual(raw["env"], "development")

    def test_environment_overrides(self):
        env = {
            "PULSE_ENV": "production",
            "EDIT_PASSWORD": "pw",
            "CURSOR_API_KEY": "key",
            "USAGE_REFRESH_SECONDS": "120",
            "PULSE_POLL_SECONDS": "not-a-number",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            config = Config.load(self.data_dir, load_env=False)
        self.assertTrue(config.is_production)
        self.assertEqual(config.edit_password, "pw")
        self.assertEqual(config.usage_refresh_seconds, 120)
        self.assertEqual(config.poll_seconds, 30)
        self.assertNotIn("edit_password", repr(config))

    def test_kv_provider_defaults(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            self.assertEqual(KVConfig.from_env().provider, "file")
        with mock.patch.dict(os.environ, {"PULSE_ENV": "production"}, clear=True):
            kv = KVConfig.from_env()
            self.assertEqual(kv.provider, "upstash")
            self.assertFalse(kv.is_configured())


class TestAuth(unittest.TestCase):

    def test_bearer(self):
        self.assertTrue(bearer_matches("Bearer pw", "pw"))
        self.assertFalse(bearer_matches("Bearer pw2", "pw"))
        self.assertFalse(bearer_matches(None, "pw"))
        self.assertFalse(bearer_matches("Bearer ", None))
        self.assertFalse(bearer_matches("Bearer pässword", "password"))

    def test_require_editor(self):
        require_editor("Bearer pw", "pw")
        with self.assertRaises(Unauthorized):
            require_editor("Bearer no", "pw")
        with self.assertRaises(NotConfigured):
            require_editor("Bearer pw", None)

    def test_verify_password(self):
        verify_password("pw", "pw")
        with self.assertRaises(Unauthorized):
            verify_password("", "pw")
        with self.assertRaises(NotConfigured):
            verify_password("pw", "")

    def test_cron_only_enforced_in_production(self):
        require_cron(None, "secret", production=False)
        require_cron(None, None, production=True)
        require_cron("Bearer secret", "secret", production=True)
        with self.assertRaises(Unauthorized):
            require_cron("Bearer nope", "secret", production=True)


if __name__ == "__main__":
    unittest.main()
