"""
SQLite storage for the vault core.
One connection per call; each store operation touches a single record.
"""

import sqlite3
from contextlib import contextmanager
from typing import Generator, Optional

from .config import DB_PATH, ensure_db_directory

REQUIRED_TABLES = ['users', 'dependents', 'access_requests', 'knowledge_entries', 'audit_log']


@contextmanager
def get_db(db_path: Optional[str] = None) -> Generator[sqlite3.Connection, None, None]:
    """Get a SQLite database connection."""
    conn = sqlite3.connect(db_path or DB_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    finally:
        conn.close()


def init_db(db_path: Optional[str] = None):
    """Initialize the database with required tables."""
    ensure_db_directory(db_path)

    with get_db(db_path) as conn:
        cursor = conn.cursor()

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                email TEXT NOT NULL UNIQUE,
                role TEXT NOT NULL CHECK (role IN ('owner', 'dependent', 'admin')),
                last_activity_at TEXT NOT NULL,
                inactivity_days INTEGER NOT NULL DEFAULT 30,
                is_inactive BOOLEAN NOT NULL DEFAULT FALSE,
                created_at TEXT NOT NULL
            )
        ''')

        # Owner -> dependent link; permissions are six fixed columns
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS dependents (
                id TEXT PRIMARY KEY,
                owner_id TEXT NOT NULL REFERENCES users(id),
                dependent_id TEXT NOT NULL REFERENCES users(id),
                perm_assets BOOLEAN NOT NULL DEFAULT FALSE,
                perm_liabilities BOOLEAN NOT NULL DEFAULT FALSE,
                perm_insurance BOOLEAN NOT NULL DEFAULT FALSE,
                perm_contacts BOOLEAN NOT NULL DEFAULT FALSE,
                perm_emergency BOOLEAN NOT NULL DEFAULT FALSE,
                perm_notes BOOLEAN NOT NULL DEFAULT FALSE,
                access_granted BOOLEAN NOT NULL DEFAULT FALSE,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE (owner_id, dependent_id)
            )
        ''')

        # Requests outlive the relationship they were made under
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS access_requests (
                id TEXT PRIMARY KEY,
                owner_id TEXT NOT NULL REFERENCES users(id),
                dependent_id TEXT NOT NULL REFERENCES users(id),
                reason TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending', 'approved', 'rejected')),
                admin_note TEXT NOT NULL DEFAULT '',
                processed_by TEXT REFERENCES users(id),
                processed_at TEXT,
                created_at TEXT NOT NULL
            )
        ''')

        # At most one pending request per (owner, dependent)
        cursor.execute('''
            CREATE UNIQUE INDEX IF NOT EXISTS idx_access_requests_one_pending
            ON access_requests(owner_id, dependent_id) WHERE status = 'pending'
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS knowledge_entries (
                id TEXT PRIMARY KEY,
                owner_id TEXT NOT NULL REFERENCES users(id),
                category TEXT NOT NULL CHECK (category IN ('assets', 'liabilities', 'insurance', 'contacts', 'emergency', 'notes')),
                title TEXT NOT NULL,
                content TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS audit_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                owner_id TEXT NOT NULL,
                action TEXT NOT NULL,
                performed_by TEXT NOT NULL,
                category TEXT,
                details TEXT NOT NULL DEFAULT '',
                created_at TEXT NOT NULL
            )
        ''')

        # Create indexes for performance
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_access_requests_status ON access_requests(status)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_access_requests_dependent ON access_requests(dependent_id)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_knowledge_owner_category ON knowledge_entries(owner_id, category)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_audit_owner_created ON audit_log(owner_id, created_at DESC)')

        conn.commit()


def health_check(db_path: Optional[str] = None) -> bool:
    """Check database health."""
    try:
        with get_db(db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table';")
            table_names = [row[0] for row in cursor.fetchall()]
            return all(table in table_names for table in REQUIRED_TABLES)
    except sqlite3.Error:
        return False
