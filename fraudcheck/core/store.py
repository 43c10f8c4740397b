"""
Account store: durable mapping from (routing, last4) keys to account records.

Reads return detached copies; callers mutate the copy and ``put`` it back.
Without optimistic locking the last ``put`` for a key wins. With locking,
each record carries the revision it was read at and a ``put`` over a newer
revision raises ``OptimisticLockError``.
"""

import json
import sqlite3
import time
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from .config import STORE_VERSION, is_optimistic_locking_enabled
from .db import get_db, init_db
from .schema import AccountKey, AccountRecord
from ..util.logging import logger


class StoreError(Exception):
    """Account store could not complete a read or write."""
    pass


class OptimisticLockError(StoreError):
    """A record changed between get and put."""
    pass


class PartialWriteError(StoreError):
    """A batch write failed after some of its records were stored."""

    def __init__(self, written: int, total: int, cause: Exception):
        self.written = written
        self.total = total
        super().__init__(f"Batch write stored {written} of {total} accounts before failing: {cause}")


class IAccountStore(ABC):
    """Abstract interface for account record storage."""

    @abstractmethod
    def get(self, key: AccountKey) -> Optional[AccountRecord]:
        """Return a copy of the record for key, or None."""
        pass

    @abstractmethod
    def put(self, key: AccountKey, record: AccountRecord) -> None:
        """Store the full record snapshot under key."""
        pass

    @abstractmethod
    def get_all(self) -> Iterator[Tuple[AccountKey, AccountRecord]]:
        """Iterate over every (key, record) pair in insertion order."""
        pass

    @abstractmethod
    def delete(self, key: AccountKey) -> bool:
        """Remove a record. Returns False if it did not exist."""
        pass

    @abstractmethod
    def count(self) -> int:
        """Number of stored records."""
        pass

    def put_many(self, items: Iterable[Tuple[AccountKey, AccountRecord]]) -> None:
        """Store several records.

        Backends without transactions write one by one; a failure after the
        first write raises PartialWriteError so callers know the store changed.
        """
        items = list(items)
        written = 0
        for key, record in items:
            try:
                self.put(key, record)
            except StoreError as e:
                if written:
                    raise PartialWriteError(written, len(items), e) from e
                raise
            written += 1

    def export_envelope(self) -> Dict:
        """Snapshot in the {timestamp, version, data} envelope format."""
        return {
            'timestamp': int(time.time() * 1000),
            'version': STORE_VERSION,
            'data': {str(key): record.to_dict() for key, record in self.get_all()}
        }


class InMemoryAccountStore(IAccountStore):
    """Dict-backed store for tests and single-process tools."""

    def __init__(self):
        self._records: Dict[str, Dict] = {}

    def get(self, key: AccountKey) -> Optional[AccountRecord]:
        data = self._records.get(str(key))
        if data is None:
            return None
        return AccountRecord.from_dict(data)

    def put(self, key: AccountKey, record: AccountRecord) -> None:
        self._records[str(key)] = record.to_dict()

    def get_all(self) -> Iterator[Tuple[AccountKey, AccountRecord]]:
        for key, data in list(self._records.items()):
            yield AccountKey.parse(key), AccountRecord.from_dict(data)

    def delete(self, key: AccountKey) -> bool:
        return self._records.pop(str(key), None) is not None

    def count(self) -> int:
        return len(self._records)


class SQLiteAccountStore(IAccountStore):
    """SQLite-backed store; one JSON document per account key."""

    def __init__(self, db_path: Optional[str] = None, optimistic_locking: Optional[bool] = None):
        self.db_path = db_path
        if optimistic_locking is None:
            optimistic_locking = is_optimistic_locking_enabled()
        self.optimistic_locking = optimistic_locking
        init_db(db_path)

    def get(self, key: AccountKey) -> Optional[AccountRecord]:
        try:
            with get_db(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT data, version FROM accounts WHERE key = ?", (str(key),))
                row = cursor.fetchone()
        except sqlite3.Error as e:
            logger.error(f"Failed to get account '{key}': {e}")
            raise StoreError(f"Failed to read account {key}: {e}") from e

        if row is None:
            return None

        data, version = row
        record = AccountRecord.from_dict(json.loads(data))
        record.version = version
        return record

    def put(self, key: AccountKey, record: AccountRecord) -> None:
        self.put_many([(key, record)])

    def put_many(self, items: Iterable[Tuple[AccountKey, AccountRecord]]) -> None:
        """Store several records in one transaction; nothing is kept on failure."""
        items = list(items)
        if not items:
            return

        versions: List[Optional[int]] = []
        try:
            with get_db(self.db_path) as conn:
                cursor = conn.cursor()
                for key, record in items:
                    versions.append(self._write(cursor, key, record))
                self._touch_envelope(cursor)
                conn.commit()
        except OptimisticLockError:
            raise
        except sqlite3.Error as e:
            logger.error(f"Database error writing {len(items)} accounts: {e}")
            raise StoreError(f"Failed to write {len(items)} accounts: {e}") from e

        for (key, record), version in zip(items, versions):
            record.version = version
            logger.log_store_operation("put", str(key), details={"submissions": len(record.submissions)})

    def _write(self, cursor, key: AccountKey, record: AccountRecord) -> Optional[int]:
        """Write one record inside the open transaction; returns its new revision when locking."""
        payload = json.dumps(record.to_dict())

        if not self.optimistic_locking:
            cursor.execute(
                """INSERT INTO accounts (key, routing_number, account_last4, data, version)
                   VALUES (?, ?, ?, ?, 1)
                   ON CONFLICT(key) DO UPDATE SET data = excluded.data,
                       version = accounts.version + 1, updated_at = CURRENT_TIMESTAMP""",
                (str(key), record.routing_number, record.account_number_last4, payload)
            )
            return None

        if record.version is None:
            try:
                cursor.execute(
                    "INSERT INTO accounts (key, routing_number, account_last4, data, version) VALUES (?, ?, ?, ?, 1)",
                    (str(key), record.routing_number, record.account_number_last4, payload)
                )
            except sqlite3.IntegrityError as e:
                logger.log_store_operation("put", str(key), status="conflict")
                raise OptimisticLockError(f"Account {key} was created concurrently") from e
            return 1

        cursor.execute(
            "UPDATE accounts SET data = ?, version = version + 1, updated_at = CURRENT_TIMESTAMP WHERE key = ? AND version = ?",
            (payload, str(key), record.version)
        )
        if cursor.rowcount == 0:
            logger.log_store_operation("put", str(key), status="conflict", details={"expected_version": record.version})
            raise OptimisticLockError(f"Account {key} changed since it was read (expected version {record.version})")
        return record.version + 1

    def _touch_envelope(self, cursor):
        cursor.execute(
            "INSERT OR REPLACE INTO store_meta (name, value) VALUES ('timestamp', ?)",
            (str(int(time.time() * 1000)),)
        )
        cursor.execute(
            "INSERT OR REPLACE INTO store_meta (name, value) VALUES ('version', ?)",
            (STORE_VERSION,)
        )

    def get_all(self) -> Iterator[Tuple[AccountKey, AccountRecord]]:
        try:
            with get_db(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT key, data, version FROM accounts ORDER BY rowid")
                rows = cursor.fetchall()
        except sqlite3.Error as e:
            logger.error(f"Failed to list accounts: {e}")
            raise StoreError(f"Failed to list accounts: {e}") from e

        for key, data, version in rows:
            record = AccountRecord.from_dict(json.loads(data))
            record.version = version
            yield AccountKey.parse(key), record

    def delete(self, key: AccountKey) -> bool:
        try:
            with get_db(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute("DELETE FROM accounts WHERE key = ?", (str(key),))
                deleted = cursor.rowcount > 0
                if deleted:
                    self._touch_envelope(cursor)
                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Database error during delete for account '{key}': {e}")
            raise StoreError(f"Failed to delete account {key}: {e}") from e

        return deleted

    def count(self) -> int:
        try:
            with get_db(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT COUNT(*) FROM accounts")
                return cursor.fetchone()[0]
        except sqlite3.Error as e:
            logger.error(f"Failed to count accounts: {e}")
            raise StoreError(f"Failed to count accounts: {e}") from e

    def export_envelope(self) -> Dict:
        envelope = super().export_envelope()
        try:
            with get_db(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT name, value FROM store_meta")
                meta = dict(cursor.fetchall())
        except sqlite3.Error as e:
            raise StoreError(f"Failed to read store metadata: {e}") from e

        if 'timestamp' in meta:
            envelope['timestamp'] = int(meta['timestamp'])
        if 'version' in meta:
            envelope['version'] = meta['version']
        return envelope
