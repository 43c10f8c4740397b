"""
SQLite connection handling and schema bootstrap.
"""

import os
import sqlite3
from contextlib import contextmanager
from typing import Generator, Optional

from .config import DB_PATH, ensure_db_directory


def resolve_db_path(db_path: Optional[str] = None) -> str:
    """Explicit path first, then the DB_PATH environment variable."""
    return db_path or os.getenv("DB_PATH", DB_PATH)


@contextmanager
def get_db(db_path: Optional[str] = None) -> Generator[sqlite3.Connection, None, None]:
    """Get a SQLite database connection."""
    conn = sqlite3.connect(resolve_db_path(db_path))
    try:
        yield conn
    finally:
        conn.close()


def init_db(db_path: Optional[str] = None):
    """Initialize the database with required tables."""
    if db_path is None:
        ensure_db_directory()

    with get_db(db_path) as conn:
        cursor = conn.cursor()

        # One JSON document per (routing, last4) account key
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS accounts (
                key TEXT PRIMARY KEY,
                routing_number TEXT NOT NULL,
                account_last4 TEXT NOT NULL,
                data TEXT NOT NULL,
                version INTEGER NOT NULL DEFAULT 1,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        # Envelope metadata: timestamp and version of the last write
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS store_meta (
                name TEXT PRIMARY KEY,
                value TEXT
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS pending_uploads (
                id TEXT PRIMARY KEY,
                seq INTEGER NOT NULL,
                upload_date TEXT NOT NULL,
                company_name TEXT NOT NULL,
                file_name TEXT NOT NULL,
                record_count INTEGER NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending',
                data TEXT NOT NULL
            )
        ''')

        cursor.execute('CREATE INDEX IF NOT EXISTS idx_pending_uploads_status ON pending_uploads(status, seq)')

        conn.commit()


def health_check(db_path: Optional[str] = None):
    """Check database health."""
    try:
        with get_db(db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table';")
            tables = cursor.fetchall()

            table_names = [table[0] for table in tables]
            required_tables = ['accounts', 'store_meta', 'pending_uploads']

            return all(table in table_names for table in required_tables)
    except sqlite3.Error:
        return False
