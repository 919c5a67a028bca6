"""
Drop Store - write-once, read-once storage for drops.

Every drop carries an explicit expires_at. Expiry is enforced inside the
same DELETE that takes a drop, so a drop past its deadline is never
returned even if the sweep has not reclaimed it yet.
"""
import asyncio
import logging
import sqlite3
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, Union

import aiosqlite

from codedrop.database import MEMORY_DATABASE, connect, init_db
from codedrop.errors import CodeConflict
from codedrop.utils.code_generator import CodeAllocator

logger = logging.getLogger(__name__)

SWEEP_BATCH_SIZE = 500


class DropKind(str, Enum):
    TEXT = "text"
    FILE_SET = "file-set"


@dataclass(frozen=True)
class DropFile:
    """A single stored file. The name is already sanitized."""
    name: str
    mime_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class Drop:
    """Represents one secret exchanged through a code."""
    code: str
    kind: DropKind
    created_at: float
    expires_at: float
    text_payload: Optional[str] = None
    files: Tuple[DropFile, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if self.kind is DropKind.TEXT:
            if self.text_payload is None or self.files:
                raise ValueError("text drops carry text_payload and no files")
        elif self.text_payload is not None or not self.files:
            raise ValueError("file-set drops carry at least one file and no text")

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    @property
    def expires_at_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.expires_at, tz=timezone.utc)


Payload = Union[str, Sequence[DropFile]]


class DropStore:
    """
    Owns the drop records.

    One aiosqlite connection is held for the store's lifetime; an asyncio
    lock keeps each transaction on it from interleaving with another.
    """

    def __init__(
        self,
        database_path: str = MEMORY_DATABASE,
        code_length: int = 6,
        clock: Callable[[], float] = time.time,
        sweep_batch_size: int = SWEEP_BATCH_SIZE,
    ):
        self.database_path = database_path
        self.clock = clock
        self.sweep_batch_size = sweep_batch_size
        self.allocator = CodeAllocator(self.exists, length=code_length)
        self._db: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def open(self):
        if self._db is not None:
            return
        self._db = await connect(self.database_path)
        await init_db(self._db)
        logger.info(f"Drop store opened at {self.database_path}")

    async def close(self):
        if self._db is None:
            return
        await self._db.close()
        self._db = None
        logger.info("Drop store closed")

    def _require_db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("DropStore is not open")
        return self._db

    @asynccontextmanager
    async def _transaction(self):
        async with self._lock:
            db = self._require_db()
            await db.execute("BEGIN IMMEDIATE")
            try:
                yield db
            except BaseException:
                await db.execute("ROLLBACK")
                raise
            else:
                await db.execute("COMMIT")

    async def exists(self, code: str) -> bool:
        """True if a live drop currently holds `code`."""
        async with self._lock:
            db = self._require_db()
            rows = await db.execute_fetchall(
                "SELECT 1 FROM drops WHERE code = ? AND expires_at > ?",
                (code, self.clock()),
            )
        return bool(rows)

    async def count(self) -> int:
        """Number of stored drop rows, including expired ones not yet swept."""
        async with self._lock:
            db = self._require_db()
            rows = await db.execute_fetchall("SELECT COUNT(*) FROM drops")
        return rows[0][0]

    async def create(self, kind: DropKind, payload: Payload, ttl_seconds: float) -> Drop:
        """
        Allocate a code and store a new drop under it.

        Raises:
            AllocationExhausted: no free code was found
            CodeConflict: a concurrent create took the code first
        """
        code = await self.allocator.allocate()
        now = self.clock()
        if kind is DropKind.TEXT:
            drop = Drop(code=code, kind=kind, created_at=now,
                        expires_at=now + ttl_seconds, text_payload=payload)
        else:
            drop = Drop(code=code, kind=kind, created_at=now,
                        expires_at=now + ttl_seconds, files=tuple(payload))
        await self.insert(drop)
        return drop

    async def insert(self, drop: Drop):
        """Insert `drop` unless a live drop already holds its code."""
        now = self.clock()
        async with self._transaction() as db:
            # An expired row that was never swept still owns the UNIQUE code.
            stale = await db.execute_fetchall(
                "DELETE FROM drops WHERE code = ? AND expires_at <= ? RETURNING id",
                (drop.code, now),
            )
            await self._delete_files(db, (row["id"] for row in stale))

            try:
                cursor = await db.execute(
                    """
                    INSERT INTO drops (code, kind, text_payload, created_at, expires_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (drop.code, drop.kind.value, drop.text_payload,
                     drop.created_at, drop.expires_at),
                )
            except sqlite3.IntegrityError:
                raise CodeConflict(drop.code)

            drop_id = cursor.lastrowid
            await cursor.close()
            if drop.files:
                await db.executemany(
                    """
                    INSERT INTO drop_files (drop_id, position, name, mime_type, data)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    [
                        (drop_id, position, f.name, f.mime_type, f.data)
                        for position, f in enumerate(drop.files)
                    ],
                )

    async def take(self, code: str) -> Optional[Drop]:
        """
        Atomically remove and return the live drop for `code`.

        Returns None if the code was never used, already taken, or expired.
        Only one of any number of concurrent callers gets the drop.
        """
        now = self.clock()
        async with self._transaction() as db:
            rows = await db.execute_fetchall(
                """
                DELETE FROM drops
                WHERE code = ? AND expires_at > ?
                RETURNING id, code, kind, text_payload, created_at, expires_at
                """,
                (code, now),
            )
            if not rows:
                return None
            row = rows[0]

            file_rows = await db.execute_fetchall(
                """
                SELECT name, mime_type, data FROM drop_files
                WHERE drop_id = ? ORDER BY position
                """,
                (row["id"],),
            )
            await self._delete_files(db, [row["id"]])

        return Drop(
            code=row["code"],
            kind=DropKind(row["kind"]),
            created_at=row["created_at"],
            expires_at=row["expires_at"],
            text_payload=row["text_payload"],
            files=tuple(
                DropFile(name=f["name"], mime_type=f["mime_type"], data=bytes(f["data"]))
                for f in file_rows
            ),
        )

    async def sweep(self) -> int:
        """
        Delete expired drops that were never taken.

        Works in batches and releases the lock between them so requests
        are not held up by a large purge.
        """
        now = self.clock()
        total = 0
        while True:
            async with self._transaction() as db:
                rows = await db.execute_fetchall(
                    """
                    DELETE FROM drops WHERE id IN (
                        SELECT id FROM drops WHERE expires_at <= ? LIMIT ?
                    )
                    RETURNING id
                    """,
                    (now, self.sweep_batch_size),
                )
                await self._delete_files(db, [r["id"] for r in rows])
            total += len(rows)
            if len(rows) < self.sweep_batch_size:
                break
            await asyncio.sleep(0)

        if total:
            logger.info(f"Swept {total} expired drop(s)")
        return total

    async def clear(self):
        """Remove every drop. Used at shutdown and between tests."""
        async with self._transaction() as db:
            await db.execute("DELETE FROM drop_files")
            await db.execute("DELETE FROM drops")

    @staticmethod
    async def _delete_files(db: aiosqlite.Connection, drop_ids: Iterable[int]):
        params: List[tuple] = [(drop_id,) for drop_id in drop_ids]
        if params:
            await db.executemany("DELETE FROM drop_files WHERE drop_id = ?", params)
