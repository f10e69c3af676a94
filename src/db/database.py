# owns the sqlite file: lifecycle, connections, transactions and per-user locks
import asyncio
import os.path
import sqlite3
import weakref
from contextlib import asynccontextmanager
from sqlite3 import Row
from typing import AsyncIterator

import aiosqlite

from db.errors import PersistenceFailure
from utils.logger import get_logger

_logger = get_logger(__name__)

SCHEMA_SCRIPT = os.path.join(os.path.dirname(os.path.abspath(__file__)), "schema.sql")


async def _init_db(conn: aiosqlite.Connection) -> None:
    _logger.info(f"Initializing database with script {SCHEMA_SCRIPT}...")
    with open(SCHEMA_SCRIPT, "r") as f:
        await conn.executescript(f.read())


async def _table_exists(conn: aiosqlite.Connection, table_name: str) -> bool:
    cur = await conn.execute(
        """
        SELECT name
        FROM sqlite_master
        WHERE type = 'table'
          AND name = ?;
        """,
        (table_name,),
    )
    row = await cur.fetchone()
    await cur.close()
    return row is not None


class Database:
    """
    Explicit handle on the marketplace database.

    Construct once at startup, `await open()` before use and `await close()`
    at shutdown (or use it as an async context manager). Every unit of work
    gets its own connection so concurrent transactions never share state;
    sqlite's busy timeout makes writers queue behind each other.
    """

    def __init__(self, path: str, busy_timeout: float = 5.0) -> None:
        self.path = path
        self.busy_timeout = busy_timeout
        self._opened = False
        self._user_locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    @property
    def is_open(self) -> bool:
        return self._opened

    async def open(self) -> "Database":
        if self._opened:
            return self
        folder = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(folder, exist_ok=True)
        try:
            async with aiosqlite.connect(
                self.path, timeout=self.busy_timeout, isolation_level=None
            ) as conn:
                await conn.execute("PRAGMA journal_mode = WAL;")
                if not await _table_exists(conn, "users"):
                    await _init_db(conn)
        except sqlite3.Error as exc:
            _logger.exception(f"Could not open database at {self.path}")
            raise PersistenceFailure(f"Could not open database: {exc}") from exc
        self._opened = True
        _logger.debug(f"Database {self.path} opened.")
        return self

    async def close(self) -> None:
        self._opened = False
        self._user_locks.clear()
        _logger.debug(f"Database {self.path} closed.")

    async def __aenter__(self) -> "Database":
        return await self.open()

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[aiosqlite.Connection]:
        """Yield a connection in autocommit mode with foreign keys enforced.

        Any sqlite error escaping the block is surfaced as PersistenceFailure.
        """
        if not self._opened:
            raise PersistenceFailure("Database is not open.")
        try:
            conn = await aiosqlite.connect(
                self.path, timeout=self.busy_timeout, isolation_level=None
            )
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"Could not connect: {exc}") from exc
        conn.row_factory = Row
        try:
            await conn.execute("PRAGMA foreign_keys = ON;")
            yield conn
        except (sqlite3.Error, OverflowError) as exc:
            # OverflowError: an int too large to bind as an sqlite INTEGER
            _logger.exception(f"Storage fault: {exc}")
            raise PersistenceFailure(f"Storage failure: {exc}") from exc
        finally:
            await conn.close()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """All-or-nothing block.

        Takes the write lock up front (BEGIN IMMEDIATE) so reads made inside
        the block cannot go stale before COMMIT. Anything raised inside rolls
        the whole block back before propagating.
        """
        async with self.connect() as conn:
            await conn.execute("BEGIN IMMEDIATE;")
            try:
                yield conn
            except BaseException:
                if conn.in_transaction:
                    await conn.execute("ROLLBACK;")
                    _logger.debug("Transaction rolled back.")
                raise
            else:
                await conn.execute("COMMIT;")

    def user_lock(self, uid: int) -> asyncio.Lock:
        """
        Lock serializing cart edits and checkouts of one user.
        Entries go away once no caller holds or waits on the lock.
        """
        lock = self._user_locks.get(uid)
        if lock is None:
            lock = self._user_locks[uid] = asyncio.Lock()
        return lock
