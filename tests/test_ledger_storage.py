"""
Local edit cache tests.
"""
import json
import os
import sys
import tempfile
from pathlib import Path
import unittest
from unittest import mock

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from core.errors import LedgerStorageError
from services.ledger_storage import (
    InMemoryLedgerStorage,
    JsonFileLedgerStorage,
    STORAGE_FIELD,
    lock_for,
)
from services.usage_ledger import UsageLedger


class TestJsonFileLedgerStorage(unittest.TestCase):
    """Test the JSON file per profile storage."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.directory = Path(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def test_missing_file_loads_empty(self):
        storage = JsonFileLedgerStorage(self.directory, "profile-a")
        self.assertEqual(storage.load(), [])

    def test_saved_document_shape(self):
        storage = JsonFileLedgerStorage(self.directory, "profile-a")
        storage.save(["x", "y"])

        with open(storage.path, encoding="utf-8") as f:
            data = json.load(f)
        self.assertEqual(data, {STORAGE_FIELD: ["x", "y"]})
        self.assertEqual(storage.load(), ["x", "y"])

    def test_malformed_file_loads_empty(self):
        storage = JsonFileLedgerStorage(self.directory, "profile-a")
        storage.path.write_text("{not json", encoding="utf-8")
        self.assertEqual(storage.load(), [])

    def test_wrong_shape_loads_empty(self):
        storage = JsonFileLedgerStorage(self.directory, "profile-a")
        storage.path.write_text(json.dumps({STORAGE_FIELD: "tampered"}), encoding="utf-8")
        self.assertEqual(storage.load(), [])

    def test_unsafe_profile_keys_rejected(self):
        for key in ("../../etc/passwd", "tab/1", "tab 1", "..", "x" * 129):
            with self.assertRaises(ValueError, msg=key):
                JsonFileLedgerStorage(self.directory, key)

    def test_distinct_profiles_get_distinct_files(self):
        first = UsageLedger(JsonFileLedgerStorage(self.directory, "tab_1"), lambda: None)
        second = UsageLedger(JsonFileLedgerStorage(self.directory, "tab-1"), lambda: None)

        self.assertTrue(first.consume_one("edit-1"))
        self.assertEqual(second.get_remaining_edits(), 1)
        self.assertTrue(second.consume_one("edit-2"))

    def test_failed_replace_leaves_no_temp_file(self):
        storage = JsonFileLedgerStorage(self.directory, "profile-a")
        storage.save(["kept"])

        with mock.patch.object(os, "replace", side_effect=OSError("disk full")):
            with self.assertRaises(LedgerStorageError):
                storage.save(["kept", "lost"])

        self.assertEqual(list(self.directory.glob("*.tmp")), [])
        self.assertEqual(storage.load(), ["kept"])

    def test_unserialisable_entry_leaves_no_temp_file(self):
        storage = JsonFileLedgerStorage(self.directory, "profile-a")

        with self.assertRaises(LedgerStorageError):
            storage.save([object()])

        self.assertEqual(list(self.directory.glob("*.tmp")), [])

    def test_empty_profile_key_rejected(self):
        with self.assertRaises(ValueError):
            JsonFileLedgerStorage(self.directory, "")

    def test_same_profile_shares_lock(self):
        a = JsonFileLedgerStorage(self.directory, "profile-a")
        b = JsonFileLedgerStorage(self.directory, "profile-a")
        c = JsonFileLedgerStorage(self.directory, "profile-b")

        self.assertEqual(a.key, b.key)
        self.assertIs(lock_for(a.key), lock_for(b.key))
        self.assertIsNot(lock_for(a.key), lock_for(c.key))

    def test_ledgers_over_same_profile_see_each_other(self):
        first = UsageLedger(JsonFileLedgerStorage(self.directory, "tab"), lambda: None)
        second = UsageLedger(JsonFileLedgerStorage(self.directory, "tab"), lambda: None)

        self.assertTrue(first.consume_one("edit-1"))
        self.assertFalse(second.consume_one("edit-2"))


class TestInMemoryLedgerStorage(unittest.TestCase):
    """Test the in-memory storage."""

    def test_load_returns_copy(self):
        storage = InMemoryLedgerStorage(initial=["a"])
        items = storage.load()
        items.append("b")
        self.assertEqual(storage.load(), ["a"])

    def test_instances_have_distinct_keys(self):
        first, second = InMemoryLedgerStorage(), InMemoryLedgerStorage()
        self.assertNotEqual(first.key, second.key)


if __name__ == '__main__':
    unittest.main()
