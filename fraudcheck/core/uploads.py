"""
Pending-upload queue: CSV batches wait here for admin review.

An upload moves exactly once from pending to approved or rejected.
Approving runs the association resolver over the stored rows and writes
the account store; rejecting only records the decision and keeps the rows
for audit. A failed approval returns to pending only when no account was
written; a partial write leaves the upload approved.
"""

import json
import sqlite3
import time
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from .db import get_db, init_db
from .normalizer import normalize_upload
from .resolver import IMPORT_REVIEWER_EMAIL, GroupingStrategy, apply_upload_rows, exact_business_owner_key
from .schema import UPLOAD_APPROVED, UPLOAD_PENDING, UPLOAD_REJECTED, UPLOAD_STATUSES, ImportSummary, PendingUpload
from .store import IAccountStore, PartialWriteError, StoreError
from ..util.logging import logger, sanitize_payload


DEFAULT_FILE_NAME = "upload.csv"
CUSTOMER_UPLOAD_COMPANY = "Customer Upload"


class UploadNotFoundError(Exception):
    """No pending upload has the given id."""
    pass


class UploadStateError(Exception):
    """The upload already left the pending state."""

    def __init__(self, upload_id: str, status: str):
        self.upload_id = upload_id
        self.status = status
        super().__init__(f"Upload {upload_id} is already {status}")


class IUploadPersistence(ABC):
    """Abstract interface for pending upload storage."""

    @abstractmethod
    def list(self, status: Optional[str] = None) -> List[PendingUpload]:
        """Uploads in submission order, optionally filtered by status."""
        pass

    @abstractmethod
    def append(self, upload: PendingUpload) -> None:
        pass

    @abstractmethod
    def get(self, upload_id: str) -> Optional[PendingUpload]:
        pass

    @abstractmethod
    def update_status(self, upload_id: str, status: str, expected: Optional[str] = None) -> bool:
        """Set the status. With expected, only if the current status matches."""
        pass


class InMemoryUploadPersistence(IUploadPersistence):

    def __init__(self):
        self._uploads: Dict[str, Dict[str, Any]] = {}

    def list(self, status: Optional[str] = None) -> List[PendingUpload]:
        uploads = [PendingUpload.from_dict(u) for u in self._uploads.values()]
        if status:
            uploads = [u for u in uploads if u.status == status]
        return uploads

    def append(self, upload: PendingUpload) -> None:
        self._uploads[upload.id] = upload.to_dict()

    def get(self, upload_id: str) -> Optional[PendingUpload]:
        data = self._uploads.get(upload_id)
        return PendingUpload.from_dict(data) if data else None

    def update_status(self, upload_id: str, status: str, expected: Optional[str] = None) -> bool:
        data = self._uploads.get(upload_id)
        if data is None:
            return False
        if expected is not None and data['status'] != expected:
            return False
        data['status'] = status
        return True


class SQLiteUploadPersistence(IUploadPersistence):
    """Uploads persisted in the pending_uploads table."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path
        init_db(db_path)

    @staticmethod
    def _from_row(row) -> PendingUpload:
        upload_id, upload_date, company_name, file_name, record_count, status, data = row
        return PendingUpload(
            id=upload_id,
            upload_date=datetime.fromisoformat(upload_date),
            company_name=company_name,
            file_name=file_name,
            record_count=record_count,
            status=status,
            data=json.loads(data),
        )

    def list(self, status: Optional[str] = None) -> List[PendingUpload]:
        query = "SELECT id, upload_date, company_name, file_name, record_count, status, data FROM pending_uploads"
        params = ()
        if status:
            query += " WHERE status = ?"
            params = (status,)
        query += " ORDER BY seq"

        try:
            with get_db(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute(query, params)
                rows = cursor.fetchall()
        except sqlite3.Error as e:
            logger.error(f"Failed to list pending uploads: {e}")
            raise StoreError(f"Failed to list pending uploads: {e}") from e

        return [self._from_row(row) for row in rows]

    def append(self, upload: PendingUpload) -> None:
        try:
            with get_db(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """INSERT INTO pending_uploads (id, seq, upload_date, company_name, file_name, record_count, status, data)
                       VALUES (?, (SELECT COALESCE(MAX(seq), 0) + 1 FROM pending_uploads), ?, ?, ?, ?, ?, ?)""",
                    (upload.id, upload.upload_date.isoformat(), upload.company_name, upload.file_name,
                     upload.record_count, upload.status, json.dumps(upload.data))
                )
                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Failed to store pending upload {upload.id}: {e}")
            raise StoreError(f"Failed to store pending upload {upload.id}: {e}") from e

    def get(self, upload_id: str) -> Optional[PendingUpload]:
        try:
            with get_db(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute(
                    "SELECT id, upload_date, company_name, file_name, record_count, status, data FROM pending_uploads WHERE id = ?",
                    (upload_id,)
                )
                row = cursor.fetchone()
        except sqlite3.Error as e:
            logger.error(f"Failed to read pending upload {upload_id}: {e}")
            raise StoreError(f"Failed to read pending upload {upload_id}: {e}") from e

        return self._from_row(row) if row else None

    def update_status(self, upload_id: str, status: str, expected: Optional[str] = None) -> bool:
        query = "UPDATE pending_uploads SET status = ? WHERE id = ?"
        params = [status, upload_id]
        if expected is not None:
            query += " AND status = ?"
            params.append(expected)

        try:
            with get_db(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute(query, params)
                updated = cursor.rowcount > 0
                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Failed to update pending upload {upload_id}: {e}")
            raise StoreError(f"Failed to update pending upload {upload_id}: {e}") from e
        return updated


class PendingUploadQueue:
    """Review queue in front of the account store."""

    def __init__(self, persistence: IUploadPersistence, store: IAccountStore):
        self.persistence = persistence
        self.store = store

    def submit(self, company_name: str, rows: List[Dict[str, Any]], file_name: Optional[str] = None) -> PendingUpload:
        """Queue normalized rows for review. No de-duplication across batches."""
        upload = PendingUpload(
            id=f"upload_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}",
            upload_date=datetime.now(),
            company_name=company_name or CUSTOMER_UPLOAD_COMPANY,
            file_name=file_name or DEFAULT_FILE_NAME,
            record_count=len(rows),
            status=UPLOAD_PENDING,
            data=list(rows),
        )
        self.persistence.append(upload)
        logger.log_upload_request(upload.id, upload.company_name, upload.record_count)
        if rows:
            logger.debug(f"Upload {upload.id} first row: {sanitize_payload(rows[0])}")
        return upload

    def submit_csv(self, company_name: str, text: str, file_name: Optional[str] = None,
                   mapping: Optional[Dict[str, str]] = None) -> PendingUpload:
        """Normalize CSV text and queue the surviving rows.

        Raises MappingError or UploadValidationError before anything is queued.
        """
        row_format, rows = normalize_upload(text, mapping)
        logger.info(f"Normalized {len(rows)} {row_format} rows from {file_name or DEFAULT_FILE_NAME}")
        return self.submit(company_name, rows, file_name)

    def list(self, status: Optional[str] = None) -> List[PendingUpload]:
        if status is not None and status not in UPLOAD_STATUSES:
            raise ValueError(f"Invalid upload status: {status}")
        return self.persistence.list(status)

    def get(self, upload_id: str) -> PendingUpload:
        upload = self.persistence.get(upload_id)
        if upload is None:
            raise UploadNotFoundError(f"Upload {upload_id} not found")
        return upload

    def _claim(self, upload_id: str, status: str) -> PendingUpload:
        upload = self.get(upload_id)
        if upload.status != UPLOAD_PENDING or not self.persistence.update_status(upload_id, status, expected=UPLOAD_PENDING):
            current = self.get(upload_id).status
            logger.warning(f"Refusing to mark upload {upload_id} {status}: already {current}")
            raise UploadStateError(upload_id, current)
        upload.status = status
        return upload

    def approve(self, upload_id: str, reviewer: str = IMPORT_REVIEWER_EMAIL, rng=None,
                grouping: GroupingStrategy = exact_business_owner_key) -> ImportSummary:
        """Apply a pending upload to the account store, at most once."""
        upload = self._claim(upload_id, UPLOAD_APPROVED)

        try:
            summary = apply_upload_rows(self.store, upload.company_name, upload.data,
                                        rng=rng, grouping=grouping, reviewer_email=reviewer)
        except PartialWriteError as e:
            logger.error(f"Approval of upload {upload_id} partially applied ({e.written} of {e.total} accounts); "
                         f"upload stays approved")
            raise
        except StoreError:
            # Nothing reached the store, so the upload can be reviewed again
            self.persistence.update_status(upload_id, UPLOAD_PENDING, expected=UPLOAD_APPROVED)
            logger.error(f"Approval of upload {upload_id} failed; upload returned to pending")
            raise

        logger.log_upload_decision(upload_id, UPLOAD_APPROVED, reviewer, summary.to_dict())
        return summary

    def reject(self, upload_id: str, reviewer: str = IMPORT_REVIEWER_EMAIL, reason: str = "") -> PendingUpload:
        upload = self._claim(upload_id, UPLOAD_REJECTED)
        logger.log_upload_decision(upload_id, UPLOAD_REJECTED, reviewer, {"reason": reason} if reason else None)
        return upload
