#!/usr/bin/env python3
"""
Pulseboard Storage Tests — v1.0.0

Tests for:
- File and Upstash KV backends
- Task / tag / flowkeeper document stores
- Tag-in-use protection
- Atomic flow task completion
"""

import json
import threading
import unittest
from pathlib import Path
from unittest import mock
import tempfile
import shutil
import sys

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.errors import Conflict, NotConfigured, NotFound, TransientIOFailure, ValidationError
from core.flow_decay import RETENTION_MS
from core.records import DEFAULT_TAGS, FlowCompletion, FlowTask, Task
from storage.documents import COMPLETIONS_KEY, FLOW_TASKS_KEY, PRIORITIES_KEY
from storage.kv_factory import create_kv_store
from storage.kv_file import FileKVStore
from storage.kv_store import KVConfig
from storage.kv_upstash import UpstashKVStore
from storage.repository import PulseRepository


NOW = 1_700_000_000_000


class FailingKV(FileKVStore):
    """File store whose writes to one key fail."""

    def __init__(self, config, fail_key):
        super().__init__(config)
        self.fail_key = fail_key

    def set_json(self, key, value):
        if key == self.fail_key:
            raise TransientIOFailure(f"could not write {key}")
        super().set_json(key, value)


class StorageTestCase(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.config = KVConfig(provider="file", data_dir=Path(self.temp_dir))
        self.kv = FileKVStore(self.config)
        self.repo = PulseRepository(self.kv)

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)


class TestFileKV(StorageTestCase):
    """Local JSON file backend."""

    def test_missing_key(self):
        self.assertIsNone(self.kv.get_json("nothing"))
        self.assertFalse(self.kv.exists("nothing"))
        self.assertFalse(self.kv.delete("nothing"))

    def test_set_get_delete(self):
        self.kv.set_json("doc", [{"a": 1}])
        self.assertEqual(self.kv.get_json("doc"), [{"a": 1}])
        self.assertTrue(self.kv.delete("doc"))
        self.assertIsNone(self.kv.get_json("doc"))

    def test_corrupt_file_reads_as_empty(self):
        (Path(self.temp_dir) / "doc.json").write_text("{not json", encoding="utf-8")
        self.assertIsNone(self.kv.get_json("doc"))

    def test_factory(self):
        self.assertIsInstance(create_kv_store(self.config), FileKVStore)
        with self.assertRaises(NotConfigured):
            create_kv_store(KVConfig(provider="upstash"))
        with self.assertRaises(NotConfigured):
            create_kv_store(KVConfig(provider="s3", url="x", token="y"))


class TestUpstashKV(unittest.TestCase):
    """Upstash backend with a mocked client."""

    def setUp(self):
        self.client = mock.Mock()
        config = KVConfig(provider="upstash", url="https://example.upstash.io", token="t")
        self.kv = UpstashKVStore(config, client=self.client)

    def test_prefixed_round_trip(self):
        self.kv.set_json("tags", [{"value": "a", "label": "A"}])
        key, payload = self.client.set.call_args[0]
        self.assertEqual(key, "pulse:tags")
        self.assertEqual(json.loads(payload), [{"value": "a", "label": "A"}])

    def test_get_parses_string_and_passes_lists(self):
        self.client.get.return_value = '[1, 2]'
        self.assertEqual(self.kv.get_json("x"), [1, 2])
        self.client.get.return_value = [3]
        self.assertEqual(self.kv.get_json("x"), [3])
        self.client.get.return_value = None
        self.assertIsNone(self.kv.get_json("x"))

    def test_errors_are_transient(self):
        self.client.get.side_effect = ConnectionError("down")
        with self.assertRaises(TransientIOFailure):
            self.kv.get_json("x")
        self.client.set.side_effect = ConnectionError("down")
        with self.assertRaises(TransientIOFailure):
            self.kv.set_json("x", [])


class TestTasks(StorageTestCase):
    """Priority task document."""

    def test_labels_private(self):
        self.repo.save_tasks([Task(id="a", label="Secret project", risk=3)])
        public = self.repo.load_tasks()
        self.assertIsNone(public[0].label)
        self.assertNotIn("label", public[0].to_dict())
        self.assertEqual(self.repo.load_tasks(authorized=True)[0].label, "Secret project")

    def test_delete_task(self):
        self.repo.save_tasks([Task(id="a"), Task(id="b")])
        remaining = self.repo.delete_task("a")
        self.assertEqual([t.id for t in remaining], ["b"])
        with self.assertRaises(NotFound):
            self.repo.delete_task("a")

    def test_invalid_entries_skipped(self):
        self.kv.set_json(PRIORITIES_KEY, [
            {"id": "ok", "tag": "misc", "risk": 1, "urgency": 2, "importance": 3},
            {"id": "bad", "risk": 9, "urgency": 1, "importance": 1},
        ])
        self.assertEqual([t.id for t in self.repo.load_tasks()], ["ok"])


class TestTags(StorageTestCase):
    """Tag catalog and referential integrity."""

    def test_defaults_until_written(self):
        tags = self.repo.load_tags()
        self.assertEqual(len(tags), len(DEFAULT_TAGS))
        self.assertEqual(tags[0].value, DEFAULT_TAGS[0].value)

    def test_add_and_duplicate(self):
        tags = self.repo.add_tag("side-project", "Side Project")
        self.assertEqual(tags[-1].value, "side-project")
        self.assertEqual(len(self.repo.load_tags()), len(DEFAULT_TAGS) + 1)
        with self.assertRaises(ValidationError):
            self.repo.add_tag("side-project", "Again")
        with self.assertRaises(ValidationError):
            self.repo.add_tag("", "No value")

    def test_delete_unused(self):
        self.repo.delete_tag("emails")
        self.assertNotIn("emails", [t.value for t in self.repo.load_tags()])
        with self.assertRaises(NotFound):
            self.repo.delete_tag("emails")

    def test_delete_in_use_rejected(self):
        self.repo.save_tasks([Task(id="a", tag="emails")])
        with self.assertRaises(Conflict):
            self.repo.delete_tag("emails")
        self.assertIn("emails", [t.value for t in self.repo.load_tags()])

    def test_delete_in_use_by_draft_rejected(self):
        with self.assertRaises(Conflict):
            self.repo.delete_tag("emails", draft_tasks=[Task(id="d", tag="emails")])

    def test_task_save_waits_for_tag_delete(self):
        entered = threading.Event()
        release = threading.Event()
        saved = threading.Event()
        original_delete = self.repo.tags.delete_tag

        def slow_delete(value):
            entered.set()
            release.wait(5)
            return original_delete(value)

        def save():
            self.repo.save_tasks([Task(id="a", tag="emails")])
            saved.set()

        with mock.patch.object(self.repo.tags, "delete_tag", side_effect=slow_delete):
            deleter = threading.Thread(target=self.repo.delete_tag, args=("emails",))
            deleter.start()
            self.assertTrue(entered.wait(5))

            saver = threading.Thread(target=save)
            saver.start()
            self.assertFalse(saved.wait(0.2))

            release.set()
            deleter.join(5)
            saver.join(5)

        self.assertTrue(saved.is_set())
        self.assertNotIn("emails", [t.value for t in self.repo.load_tags()])


class TestFlowkeeper(StorageTestCase):
    """Flow tasks and completions."""

    def test_complete_moves_task_to_log(self):
        self.repo.save_flow_tasks([FlowTask(id="f1", label="Write", difficulty=3)])
        completion = self.repo.complete_flow_task("f1", now=NOW)

        self.assertEqual(completion, FlowCompletion(difficulty=3, completed_at=NOW))
        tasks, completions = self.repo.load_flow(now=NOW)
        self.assertEqual(tasks, [])
        self.assertEqual(completions, [completion])

    def test_complete_unknown(self):
        with self.assertRaises(NotFound):
            self.repo.complete_flow_task("missing", now=NOW)

    def test_complete_rolls_back_on_log_failure(self):
        kv = FailingKV(self.config, fail_key=COMPLETIONS_KEY)
        kv.set_json(FLOW_TASKS_KEY, [FlowTask(id="f1", label="Write").to_dict()])
        repo = PulseRepository(kv)

        with self.assertRaises(TransientIOFailure):
            repo.complete_flow_task("f1", now=NOW)

        tasks, completions = repo.load_flow(now=NOW)
        self.assertEqual([t.id for t in tasks], ["f1"])
        self.assertEqual(completions, [])

    def test_load_prunes_and_writes_back(self):
        old = FlowCompletion(difficulty=1, completed_at=NOW - RETENTION_MS - 1)
        recent = FlowCompletion(difficulty=2, completed_at=NOW - 1000)
        self.kv.set_json(COMPLETIONS_KEY, [old.to_dict(), recent.to_dict()])

        _, completions = self.repo.load_flow(now=NOW)
        self.assertEqual(completions, [recent])
        self.assertEqual(self.kv.get_json(COMPLETIONS_KEY), [recent.to_dict()])

    def test_prune_write_back_failure_does_not_fail_read(self):
        kv = FailingKV(self.config, fail_key=COMPLETIONS_KEY)
        old = FlowCompletion(difficulty=1, completed_at=NOW - RETENTION_MS - 1)
        FileKVStore(self.config).set_json(COMPLETIONS_KEY, [old.to_dict()])

        _, completions = PulseRepository(kv).load_flow(now=NOW)
        self.assertEqual(completions, [])

    def test_delete_flow_task(self):
        self.repo.save_flow_tasks([FlowTask(id="f1"), FlowTask(id="f2")])
        self.assertEqual([t.id for t in self.repo.delete_flow_task("f1")], ["f2"])
        with self.assertRaises(NotFound):
            self.repo.delete_flow_task("f1")


if __name__ == "__main__":
    unittest.main()
