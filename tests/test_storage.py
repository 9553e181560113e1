from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from dream_weaver.models import DreamEntry
from dream_weaver.storage import JournalStore


def _entry(entry_id: str, created_at: int, tags: tuple[str, ...] = ()) -> DreamEntry:
    return DreamEntry(
        id=entry_id,
        transcript=f"Dream number {entry_id} about the sea.",
        image_url="data:image/png;base64,AAAA",
        interpretation="## Potential Meaning\nChange is near.",
        created_at=created_at,
        tags=tags,
    )


class JournalStoreTests(unittest.TestCase):
    def test_missing_slot_loads_empty(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            store = JournalStore(Path(tmp_dir) / "dreams.sqlite3")
            self.assertEqual(store.load(), [])
            self.assertIsNone(store.read_slot())

    def test_save_and_load_round_trip(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            db_file = Path(tmp_dir) / "dreams.sqlite3"
            entries = [_entry("b", 2000, ("flying",)), _entry("a", 1000)]
            self.assertTrue(JournalStore(db_file).save(entries))

            reopened = JournalStore(db_file)
            self.assertEqual(reopened.load(), entries)

            # Saving what was loaded leaves the slot unchanged.
            before = reopened.read_slot()
            reopened.save(reopened.load())
            self.assertEqual(reopened.read_slot(), before)

    def test_slot_holds_camel_case_json_array(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            store = JournalStore(Path(tmp_dir) / "dreams.sqlite3")
            store.save([_entry("a", 1000, ("sea",))])
            records = json.loads(store.read_slot())
            self.assertEqual(records[0]["imageUrl"], "data:image/png;base64,AAAA")
            self.assertEqual(records[0]["createdAt"], 1000)
            self.assertEqual(records[0]["tags"], ["sea"])

    def test_corrupt_slot_loads_empty(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            store = JournalStore(Path(tmp_dir) / "dreams.sqlite3")
            store.write_slot("{not json")
            with self.assertLogs("dream_weaver.storage", level="ERROR"):
                self.assertEqual(store.load(), [])

            store.write_slot(json.dumps({"id": "a"}))
            with self.assertLogs("dream_weaver.storage", level="ERROR"):
                self.assertEqual(store.load(), [])

    def test_malformed_and_duplicate_records_are_skipped(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            store = JournalStore(Path(tmp_dir) / "dreams.sqlite3")
            good = _entry("a", 1000).to_record()
            store.write_slot(json.dumps([good, {"id": "broken"}, 42, dict(good)]))
            with self.assertLogs("dream_weaver.storage", level="WARNING") as logs:
                loaded = store.load()
            self.assertEqual([e.id for e in loaded], ["a"])
            self.assertEqual(len(logs.records), 3)

    def test_out_of_range_created_at_is_skipped(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            store = JournalStore(Path(tmp_dir) / "dreams.sqlite3")
            records = [
                {**_entry("a", 0).to_record(), "createdAt": float("inf")},
                {**_entry("c", 0).to_record(), "createdAt": float("nan")},
                {**_entry("d", 0).to_record(), "createdAt": 10 ** 400},
                {**_entry("e", 0).to_record(), "createdAt": -1},
                _entry("b", 5).to_record(),
            ]
            # Infinity, NaN and a 400-digit integer are all accepted by the JSON parser.
            store.write_slot(json.dumps(records).replace("Infinity", "1e400"))
            with self.assertLogs("dream_weaver.storage", level="WARNING") as logs:
                loaded = store.load()
            self.assertEqual([e.id for e in loaded], ["b"])
            self.assertEqual(len(logs.records), 4)

    def test_deeply_nested_slot_loads_empty(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            store = JournalStore(Path(tmp_dir) / "dreams.sqlite3")
            store.write_slot("[" * 100000 + "]" * 100000)
            with self.assertLogs("dream_weaver.storage", level="ERROR"):
                self.assertEqual(store.load(), [])

    def test_separate_slot_keys_do_not_collide(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            db_file = Path(tmp_dir) / "dreams.sqlite3"
            JournalStore(db_file).save([_entry("a", 1000)])
            other = JournalStore(db_file, slot_key="otherJournal")
            self.assertEqual(other.load(), [])

    def test_unwritable_store_logs_instead_of_raising(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            # A directory cannot be opened as a database file.
            with self.assertLogs("dream_weaver.storage", level="ERROR"):
                store = JournalStore(Path(tmp_dir))
            with self.assertLogs("dream_weaver.storage", level="ERROR"):
                self.assertFalse(store.save([_entry("a", 1000)]))
            with self.assertLogs("dream_weaver.storage", level="ERROR"):
                self.assertEqual(store.load(), [])


if __name__ == "__main__":
    unittest.main()
