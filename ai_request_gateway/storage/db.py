"""
Database connection management.

Provides the SQLite connection behind the usage ledger.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = ".ai-request-gateway.db"


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Create and return a SQLite database connection.

    Connections are short-lived and opened per operation, so they are safe
    to use from tracker worker threads.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection with foreign key constraints enabled
    """
    path = Path(db_path)
    conn = sqlite3.connect(str(path), timeout=5.0)
    conn.execute("PRAGMA foreign_keys = ON")
    return conn
