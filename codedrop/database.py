"""
SQLite async database connection and initialization.
"""
from pathlib import Path

import aiosqlite

MEMORY_DATABASE = ":memory:"


async def connect(database_path: str = MEMORY_DATABASE) -> aiosqlite.Connection:
    """
    Open a database connection in autocommit mode.

    Transactions are opened explicitly with BEGIN IMMEDIATE by the caller.
    """
    if database_path != MEMORY_DATABASE:
        Path(database_path).parent.mkdir(parents=True, exist_ok=True)
    db = await aiosqlite.connect(database_path, isolation_level=None)
    db.row_factory = aiosqlite.Row
    return db


async def init_db(db: aiosqlite.Connection):
    """Initialize database with required tables."""
    # drop_files reference drops by id, not code: a code can be reused
    # as soon as its drop row is gone.
    await db.execute("""
        CREATE TABLE IF NOT EXISTS drops (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            code TEXT UNIQUE NOT NULL,
            kind TEXT NOT NULL,
            text_payload TEXT,
            created_at REAL NOT NULL,
            expires_at REAL NOT NULL
        )
    """)
    await db.execute("""
        CREATE TABLE IF NOT EXISTS drop_files (
            drop_id INTEGER NOT NULL,
            position INTEGER NOT NULL,
            name TEXT NOT NULL,
            mime_type TEXT NOT NULL,
            data BLOB NOT NULL,
            PRIMARY KEY (drop_id, position)
        )
    """)
    await db.execute("""
        CREATE INDEX IF NOT EXISTS idx_drops_expires ON drops(expires_at)
    """)
