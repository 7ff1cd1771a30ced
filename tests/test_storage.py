"""
Test suite for storage backends

Tests the in-memory and SQLite record stores and their transactions.
"""

import pytest

from loan_ledger.config import LedgerConfig
from loan_ledger.exceptions import ConfigurationError
from loan_ledger.storage import InMemoryStorage, SQLiteStorage, create_storage


def _record(record_id, **fields):
    record = {"id": record_id, "created_at": "2024-01-01T00:00:00+00:00",
              "updated_at": "2024-01-01T00:00:00+00:00"}
    record.update(fields)
    return record


class StorageContract:
    """Behaviour shared by every backend"""

    def make_storage(self, tmp_path):
        raise NotImplementedError

    def test_save_and_load(self, tmp_path):
        storage = self.make_storage(tmp_path)
        storage.save("loans", "a", _record("a", borrower_name="Alice"))

        assert storage.load("loans", "a")["borrower_name"] == "Alice"
        assert storage.load("loans", "missing") is None
        assert storage.exists("loans", "a")
        assert not storage.exists("loans", "missing")

    def test_overwrite(self, tmp_path):
        storage = self.make_storage(tmp_path)
        storage.save("loans", "a", _record("a", status="Active"))
        storage.save("loans", "a", _record("a", status="Completed"))

        assert storage.load("loans", "a")["status"] == "Completed"
        assert storage.count("loans") == 1

    def test_find(self, tmp_path):
        storage = self.make_storage(tmp_path)
        storage.save("entries", "1", _record("1", loan_id="x"))
        storage.save("entries", "2", _record("2", loan_id="y"))
        storage.save("entries", "3", _record("3", loan_id="x"))

        found = storage.find("entries", {"loan_id": "x"})
        assert sorted(r["id"] for r in found) == ["1", "3"]
        assert storage.find("entries", {"loan_id": "z"}) == []

    def test_find_null_values(self, tmp_path):
        storage = self.make_storage(tmp_path)
        storage.save("entries", "1", _record("1", note=None))
        storage.save("entries", "2", _record("2", note="cash"))
        storage.save("entries", "3", _record("3"))

        assert [r["id"] for r in storage.find("entries", {"note": None})] == ["1"]

    def test_delete_and_clear(self, tmp_path):
        storage = self.make_storage(tmp_path)
        storage.save("loans", "a", _record("a"))
        storage.save("loans", "b", _record("b"))

        assert storage.delete("loans", "a")
        assert not storage.delete("loans", "a")
        storage.clear_table("loans")
        assert storage.count("loans") == 0

    def test_atomic_commit(self, tmp_path):
        storage = self.make_storage(tmp_path)
        with storage.atomic():
            storage.save("loans", "a", _record("a"))
            storage.save("entries", "1", _record("1", loan_id="a"))

        assert storage.exists("loans", "a")
        assert storage.exists("entries", "1")

    def test_atomic_rollback(self, tmp_path):
        storage = self.make_storage(tmp_path)
        storage.save("loans", "existing", _record("existing"))

        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("loans", "a", _record("a"))
                raise RuntimeError("boom")

        assert not storage.exists("loans", "a")
        assert storage.exists("loans", "existing")


class TestInMemoryStorage(StorageContract):
    """Test in-memory storage"""

    def make_storage(self, tmp_path):
        return InMemoryStorage()

    def test_loaded_records_are_copies(self, tmp_path):
        storage = self.make_storage(tmp_path)
        data = _record("a", status="Active")
        storage.save("loans", "a", data)

        data["status"] = "Changed"
        loaded = storage.load("loans", "a")
        loaded["status"] = "Also changed"
        assert storage.load("loans", "a")["status"] == "Active"


class TestSQLiteStorage(StorageContract):
    """Test SQLite storage"""

    def make_storage(self, tmp_path):
        return SQLiteStorage(tmp_path / "ledger.db")

    def test_persists_across_connections(self, tmp_path):
        storage = self.make_storage(tmp_path)
        storage.save("loans", "a", _record("a", borrower_name="Alice"))
        storage.close()

        reopened = self.make_storage(tmp_path)
        assert reopened.load("loans", "a")["borrower_name"] == "Alice"
        reopened.close()

    def test_lookup_fields_are_indexed(self, tmp_path):
        storage = self.make_storage(tmp_path)
        storage.save("loans", "a", _record("a", lender_id="lender-1"))

        indexes = {row["name"] for row in storage._connection.execute(
            "SELECT name FROM sqlite_master WHERE type = 'index'"
        )}
        assert "idx_loans_lender_id" in indexes
        assert [r["id"] for r in storage.find("loans", {"lender_id": "lender-1"})] == ["a"]

    def test_invalid_filter_field(self, tmp_path):
        storage = self.make_storage(tmp_path)
        with pytest.raises(ValueError):
            storage.find("loans", {"lender_id; DROP TABLE loans": "x"})

    def test_rollback_of_new_table(self, tmp_path):
        storage = self.make_storage(tmp_path)
        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("fresh", "a", _record("a"))
                raise RuntimeError("boom")

        assert storage.load("fresh", "a") is None
        storage.save("fresh", "b", _record("b"))
        assert storage.exists("fresh", "b")


class TestCreateStorage:
    """Test backend selection from configuration"""

    def test_memory(self):
        assert isinstance(create_storage(LedgerConfig(storage_backend="memory")), InMemoryStorage)

    def test_sqlite(self, tmp_path):
        storage = create_storage(LedgerConfig(storage_backend="SQLite",
                                              database_path=str(tmp_path / "x.db")))
        assert isinstance(storage, SQLiteStorage)
        storage.close()

    def test_unknown_backend(self):
        with pytest.raises(ConfigurationError):
            create_storage(LedgerConfig(storage_backend="postgres"))
