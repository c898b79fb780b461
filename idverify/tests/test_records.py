import json
import tempfile
import threading
import unittest
from pathlib import Path

from idverify.records import (
    ImageRef,
    InMemoryRecordStore,
    JsonFileRecordStore,
    SqlRecordStore,
    StoreError,
    VerificationRecord,
)


def make_record(name="Jane Doe", **overrides):
    values = dict(
        name=name,
        id_number="87654321",
        phone="254712345678",
        selfie=ImageRef("https://img.test/selfie.jpg", "v/selfie_1.jpg"),
        id_front=ImageRef("https://img.test/front.png", "v/frontID_1.png"),
        id_back=ImageRef("https://img.test/back.png", "v/backID_1.png"),
    )
    values.update(overrides)
    return VerificationRecord(**values)


class RecordStoreContract:
    """Behaviour shared by every record store; mixed into the TestCases below."""

    def make_store(self):
        raise NotImplementedError

    def test_empty_store_reads_empty(self):
        self.assertEqual(self.make_store().read_all(), [])

    def test_append_then_read_roundtrip(self):
        store = self.make_store()
        first = make_record()
        second = make_record(name="John Roe")
        store.append(first)
        store.append(second)
        self.assertEqual(store.read_all(), [first, second])

    def test_remove_by_id(self):
        store = self.make_store()
        keep = make_record()
        drop = make_record(name="John Roe")
        store.append(keep)
        store.append(drop)

        self.assertEqual(store.remove_by_id(drop.id), drop)
        self.assertEqual(store.read_all(), [keep])
        self.assertIsNone(store.remove_by_id(drop.id))
        self.assertEqual(store.read_all(), [keep])


class InMemoryRecordStoreTests(RecordStoreContract, unittest.TestCase):
    def make_store(self):
        return InMemoryRecordStore()

    def test_reset(self):
        store = self.make_store()
        store.append(make_record())
        store.reset()
        self.assertEqual(store.read_all(), [])


class JsonFileRecordStoreTests(RecordStoreContract, unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = Path(self.tmp.name) / "data.json"

    def tearDown(self):
        self.tmp.cleanup()

    def make_store(self):
        return JsonFileRecordStore(self.path)

    def test_document_layout(self):
        record = make_record()
        self.make_store().append(record)
        data = json.loads(self.path.read_text(encoding="utf-8"))
        self.assertEqual(len(data), 1)
        self.assertEqual(data[0]["idNumber"], "87654321")
        self.assertEqual(
            data[0]["selfie"],
            {"url": "https://img.test/selfie.jpg", "publicId": "v/selfie_1.jpg"},
        )
        self.assertEqual(data[0]["createdAt"], record.created_at)

    def test_reads_legacy_url_only_records(self):
        self.path.write_text(
            json.dumps(
                [
                    {
                        "id": "1700000000000",
                        "name": "Old Entry",
                        "idNumber": "12345678",
                        "phone": "254700000000",
                        "selfie": "https://img.test/a.jpg",
                        "frontID": "https://img.test/b.jpg",
                        "backID": "https://img.test/c.jpg",
                        "createdAt": "2024-01-01T00:00:00.000Z",
                    }
                ]
            ),
            encoding="utf-8",
        )
        [record] = self.make_store().read_all()
        self.assertEqual(record.id, "1700000000000")
        self.assertEqual(record.selfie, ImageRef("https://img.test/a.jpg", ""))

    def test_empty_file_reads_empty(self):
        self.path.write_text("", encoding="utf-8")
        self.assertEqual(self.make_store().read_all(), [])

    def test_corrupt_document_raises_store_error(self):
        self.path.write_text("{not json", encoding="utf-8")
        store = self.make_store()
        with self.assertRaises(StoreError):
            store.read_all()
        with self.assertRaises(StoreError):
            store.append(make_record())

    def test_non_list_document_raises_store_error(self):
        self.path.write_text('{"id": 1}', encoding="utf-8")
        with self.assertRaises(StoreError):
            self.make_store().read_all()

    def test_remove_from_document_with_non_object_entry(self):
        record = make_record()
        self.path.write_text(json.dumps([record.as_dict(), 42]), encoding="utf-8")
        store = self.make_store()
        with self.assertRaises(StoreError):
            store.remove_by_id(record.id)
        # The corrupt document is left untouched.
        self.assertEqual(json.loads(self.path.read_text(encoding="utf-8"))[1], 42)

    def test_remove_of_malformed_entry_does_not_rewrite(self):
        self.path.write_text(json.dumps([{"id": "bad"}]), encoding="utf-8")
        with self.assertRaises(StoreError):
            self.make_store().remove_by_id("bad")
        self.assertEqual(
            json.loads(self.path.read_text(encoding="utf-8")), [{"id": "bad"}]
        )

    def test_creates_parent_directory(self):
        nested = Path(self.tmp.name) / "nested" / "records.json"
        JsonFileRecordStore(nested).append(make_record())
        self.assertTrue(nested.exists())

    def test_no_temp_files_left_behind(self):
        store = self.make_store()
        store.append(make_record())
        store.append(make_record())
        self.assertEqual(sorted(p.name for p in Path(self.tmp.name).iterdir()), ["data.json"])

    def test_concurrent_appends_are_not_lost(self):
        store = self.make_store()
        count = 40
        barrier = threading.Barrier(8)

        def worker(offset):
            barrier.wait()
            for i in range(offset, count, 8):
                store.append(make_record(name=f"Person {i}"))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        stored = self.make_store().read_all()
        self.assertEqual(len(stored), count)
        self.assertEqual(len({r.id for r in stored}), count)


class SqlRecordStoreTests(RecordStoreContract, unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the SQL store.
    """

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.url = f"sqlite+pysqlite:///{Path(self.tmp.name) / 'records.db'}"

    def make_store(self):
        store = SqlRecordStore(self.url)
        self.addCleanup(store.engine.dispose)
        return store

    def test_records_survive_a_new_store_instance(self):
        record = make_record()
        self.make_store().append(record)
        self.assertEqual(self.make_store().read_all(), [record])

    def test_duplicate_id_raises_store_error(self):
        store = self.make_store()
        record = make_record()
        store.append(record)
        with self.assertRaises(StoreError):
            store.append(record)

    def test_requires_url(self):
        with self.assertRaises(ValueError):
            SqlRecordStore("")


class VerificationRecordTests(unittest.TestCase):
    def test_ids_are_unique(self):
        ids = {make_record().id for _ in range(200)}
        self.assertEqual(len(ids), 200)

    def test_from_dict_requires_fields(self):
        data = make_record().as_dict()
        del data["phone"]
        with self.assertRaises(ValueError):
            VerificationRecord.from_dict(data)

    def test_dict_roundtrip(self):
        record = make_record()
        self.assertEqual(VerificationRecord.from_dict(record.as_dict()), record)


if __name__ == "__main__":
    unittest.main()
