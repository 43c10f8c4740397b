"""
Account store tests - in-memory and SQLite backends.
"""

import os
import tempfile
from unittest.mock import patch

import pytest

from fraudcheck.core.db import health_check, init_db
from fraudcheck.core.schema import AccountKey, AccountRecord, Submission
from fraudcheck.core.store import (
    InMemoryAccountStore,
    OptimisticLockError,
    PartialWriteError,
    SQLiteAccountStore,
    StoreError,
)


@pytest.fixture
def temp_db():
    fd, path = tempfile.mkstemp(suffix='.db')
    os.close(fd)
    yield path
    os.unlink(path)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, temp_db):
    if request.param == "memory":
        return InMemoryAccountStore()
    return SQLiteAccountStore(temp_db, optimistic_locking=False)


def make_record(routing="021000021", last4="5678", times_checked=0):
    record = AccountRecord(routing_number=routing, account_number_last4=last4,
                           bank_name="JPMorgan Chase Bank", times_checked=times_checked)
    record.add_submission(Submission(
        submitted_by="analyst@loot.com",
        submitted_date="2024-01-20T14:30:22.000Z",
        company_name="Undisclosed",
        reporter_email="analyst@loot.com",
        account_holder_name="John Smith",
        tags=["fraud"],
        actual_company_name="Loot",
    ))
    return record


class TestAccountKey:

    def test_string_form(self):
        assert str(AccountKey("021000021", "5678")) == "021000021-5678"

    def test_parse(self):
        assert AccountKey.parse("021000021-5678") == AccountKey("021000021", "5678")

    def test_parse_uses_last_separator(self):
        assert AccountKey.parse("0210-00021-5678") == AccountKey("0210-00021", "5678")

    @pytest.mark.parametrize("value", ["0210000215678", "-5678", "021000021-"])
    def test_parse_invalid(self, value):
        with pytest.raises(ValueError):
            AccountKey.parse(value)


class TestStoreContract:
    """Behavior shared by every backend."""

    def test_missing_key(self, store):
        assert store.get(AccountKey("021000021", "0000")) is None

    def test_round_trip(self, store):
        record = make_record(times_checked=3)
        store.put(record.key, record)

        loaded = store.get(record.key)
        assert loaded == record
        assert loaded.submissions[0].actual_company_name == "Loot"

    def test_get_returns_copy(self, store):
        record = make_record()
        store.put(record.key, record)

        loaded = store.get(record.key)
        loaded.times_checked = 99
        assert store.get(record.key).times_checked == 0

    def test_last_write_wins(self, store):
        record = make_record()
        store.put(record.key, record)
        record.times_checked = 5
        store.put(record.key, record)
        assert store.get(record.key).times_checked == 5
        assert store.count() == 1

    def test_get_all_in_insertion_order(self, store):
        keys = [AccountKey("021000021", "0003"), AccountKey("111000025", "0001"), AccountKey("021000021", "0002")]
        for key in keys:
            store.put(key, make_record(key.routing_number, key.last4))
        assert [key for key, _ in store.get_all()] == keys

    def test_delete(self, store):
        record = make_record()
        store.put(record.key, record)
        assert store.delete(record.key) is True
        assert store.delete(record.key) is False
        assert store.count() == 0

    def test_export_envelope(self, store):
        record = make_record()
        store.put(record.key, record)

        envelope = store.export_envelope()
        assert envelope["version"] == "1.0"
        assert isinstance(envelope["timestamp"], int)
        assert envelope["data"]["021000021-5678"]["routingNumber"] == "021000021"
        assert envelope["data"]["021000021-5678"]["submissions"][0]["companyName"] == "Undisclosed"


class TestSQLiteStore:

    def test_schema_created(self, temp_db):
        SQLiteAccountStore(temp_db)
        assert health_check(temp_db) is True

    def test_init_is_idempotent(self, temp_db):
        init_db(temp_db)
        init_db(temp_db)
        assert health_check(temp_db) is True

    def test_persists_across_instances(self, temp_db):
        record = make_record()
        SQLiteAccountStore(temp_db).put(record.key, record)
        assert SQLiteAccountStore(temp_db).get(record.key) == record

    def test_locking_read_from_environment(self, temp_db):
        with patch.dict('os.environ', {'OPTIMISTIC_LOCKING': 'true'}):
            assert SQLiteAccountStore(temp_db).optimistic_locking is True
        with patch.dict('os.environ', {'OPTIMISTIC_LOCKING': 'false'}):
            assert SQLiteAccountStore(temp_db).optimistic_locking is False


class TestOptimisticLocking:

    def test_stale_write_rejected(self, temp_db):
        first = SQLiteAccountStore(temp_db, optimistic_locking=True)
        second = SQLiteAccountStore(temp_db, optimistic_locking=True)
        record = make_record()
        first.put(record.key, record)

        mine = first.get(record.key)
        theirs = second.get(record.key)

        theirs.times_checked += 1
        second.put(record.key, theirs)

        mine.times_checked += 1
        with pytest.raises(OptimisticLockError):
            first.put(record.key, mine)

        # Re-read and retry
        mine = first.get(record.key)
        mine.times_checked += 1
        first.put(record.key, mine)
        assert first.get(record.key).times_checked == 2

    def test_concurrent_create_rejected(self, temp_db):
        first = SQLiteAccountStore(temp_db, optimistic_locking=True)
        second = SQLiteAccountStore(temp_db, optimistic_locking=True)
        key = AccountKey("021000021", "5678")

        assert first.get(key) is None
        assert second.get(key) is None

        second.put(key, make_record())
        with pytest.raises(OptimisticLockError):
            first.put(key, make_record())

    def test_sequential_writes_succeed(self, temp_db):
        store = SQLiteAccountStore(temp_db, optimistic_locking=True)
        record = make_record()
        store.put(record.key, record)
        for _ in range(3):
            record = store.get(record.key)
            record.times_checked += 1
            store.put(record.key, record)
        assert store.get(record.key).times_checked == 3

    def test_stale_copy_on_same_instance_rejected(self, temp_db):
        store = SQLiteAccountStore(temp_db, optimistic_locking=True)
        record = make_record()
        store.put(record.key, record)

        first = store.get(record.key)
        second = store.get(record.key)

        first.times_checked += 1
        store.put(record.key, first)

        second.times_checked += 1
        with pytest.raises(OptimisticLockError):
            store.put(record.key, second)
        assert store.get(record.key).times_checked == 1

    def test_put_advances_record_version(self, temp_db):
        store = SQLiteAccountStore(temp_db, optimistic_locking=True)
        record = make_record()
        assert record.version is None

        store.put(record.key, record)
        assert record.version == 1
        record.times_checked += 1
        store.put(record.key, record)
        assert record.version == 2
        assert store.get(record.key).version == 2

    def test_version_not_serialized(self, temp_db):
        store = SQLiteAccountStore(temp_db, optimistic_locking=True)
        record = make_record()
        store.put(record.key, record)

        loaded = store.get(record.key)
        assert 'version' not in loaded.to_dict()
        assert loaded == make_record()


class TestPutMany:

    def test_sqlite_batch_is_all_or_nothing(self, temp_db):
        store = SQLiteAccountStore(temp_db, optimistic_locking=True)
        existing = make_record("111000025", "0001")
        store.put(existing.key, existing)

        stale = store.get(existing.key)
        current = store.get(existing.key)
        current.times_checked = 7
        store.put(existing.key, current)

        fresh = make_record("021000021", "0002")
        stale.times_checked += 1
        with pytest.raises(OptimisticLockError):
            store.put_many([(fresh.key, fresh), (stale.key, stale)])

        assert store.get(fresh.key) is None
        assert store.get(existing.key).times_checked == 7
        assert fresh.version is None

    def test_sqlite_batch_writes_all(self, temp_db):
        store = SQLiteAccountStore(temp_db, optimistic_locking=False)
        records = [make_record("021000021", f"000{i}") for i in range(3)]
        store.put_many([(r.key, r) for r in records])
        assert [key for key, _ in store.get_all()] == [r.key for r in records]

    def test_failure_after_first_write_is_partial(self):
        class FlakyStore(InMemoryAccountStore):
            def put(self, key, record):
                if self.count() == 1:
                    raise StoreError("disk full")
                super().put(key, record)

        store = FlakyStore()
        records = [make_record("021000021", f"000{i}") for i in range(3)]
        with pytest.raises(PartialWriteError) as exc_info:
            store.put_many([(r.key, r) for r in records])

        assert exc_info.value.written == 1
        assert exc_info.value.total == 3
        assert store.count() == 1

    def test_failure_on_first_write_is_plain_store_error(self):
        class BrokenStore(InMemoryAccountStore):
            def put(self, key, record):
                raise StoreError("disk full")

        with pytest.raises(StoreError) as exc_info:
            BrokenStore().put_many([(make_record().key, make_record())])
        assert not isinstance(exc_info.value, PartialWriteError)
