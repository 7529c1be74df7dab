"""
Pool and transaction orchestration (asyncpg).

This module owns the process-wide `DB`. The FastAPI app initializes it on
startup and closes it on shutdown (see `server/main.py`).

`DB` is either backed by a pool (each call acquires a connection and releases
it when done) or bound to one handle (calls reuse it, e.g. inside a
transaction callback).
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, TypeVar

import asyncpg

from . import config
from .connection import DRIVER_ERRORS, ConnectionWrapper, translate_driver_errors
from .errors import DBSetupError
from .sql import Fragment, sql

T = TypeVar("T")

logger = logging.getLogger(__name__)


class DB:
    def __init__(
        self,
        pool: asyncpg.Pool | None = None,
        *,
        conn: ConnectionWrapper | None = None,
        database: str | None = None,
    ) -> None:
        if (pool is None) == (conn is None):
            raise ValueError("DB needs exactly one of pool= or conn=.")
        self._pool = pool
        self._conn = conn
        self.database = database
        self._closed = False

    @classmethod
    async def make(cls, dsn: str, *, database: str | None = None, **pool_kwargs: Any) -> DB:
        pool = await asyncpg.create_pool(dsn=dsn, **pool_kwargs)
        return cls(pool, database=database)

    def with_conn(self, conn: ConnectionWrapper) -> DB:
        return DB(conn=conn, database=self.database)

    @property
    def in_transaction(self) -> bool:
        return self._conn is not None and self._conn.in_transaction

    async def init(self) -> None:
        """
        Fail fast if the database is unreachable or misconfigured.
        """
        res = await self.fetch_value(sql("SELECT 1+1;"), int)
        logger.info("db_init postgres_says_1_plus_1=%s", res)
        expected = 2
        if res != expected:
            raise DBSetupError(f"db setup failed: expected {expected}, got {res}")
        logger.info("db_connected database=%s", self.database or "((unknown))")

    async def close(self) -> None:
        if self._pool is None or self._closed:
            return None
        self._closed = True
        await self._pool.close()

    async def __aenter__(self) -> DB:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[ConnectionWrapper]:
        if self._conn is not None:
            # Bound handle: its owner finishes the transaction and releases it.
            yield self._conn
            return

        # Refused/reset sockets surface as OSError while the pool connects.
        with translate_driver_errors("pool acquire", errors=(*DRIVER_ERRORS, OSError)):
            conn = await self._pool.acquire()
        try:
            yield ConnectionWrapper(conn)
        finally:
            await self._pool.release(conn)

    async def execute(self, query: Fragment) -> int:
        async with self.connection() as conn:
            return await conn.execute(query)

    async def fetch_one(self, query: Fragment, schema: type[T]) -> T:
        async with self.connection() as conn:
            return await conn.fetch_one(query, schema)

    async def fetch_one_or_none(self, query: Fragment, schema: type[T]) -> T | None:
        async with self.connection() as conn:
            return await conn.fetch_one_or_none(query, schema)

    async def fetch_value(self, query: Fragment, schema: type[T]) -> T:
        async with self.connection() as conn:
            return await conn.fetch_value(query, schema)

    async def fetch_value_or_none(self, query: Fragment, schema: type[T]) -> T | None:
        async with self.connection() as conn:
            return await conn.fetch_value_or_none(query, schema)

    async def fetch_all(self, query: Fragment, schema: type[T]) -> list[T]:
        async with self.connection() as conn:
            return await conn.fetch_all(query, schema)

    async def fetch_column(self, query: Fragment, schema: type[T]) -> list[T]:
        async with self.connection() as conn:
            return await conn.fetch_column(query, schema)

    async def transaction(self, fn: Callable[[DB], Awaitable[T]]) -> T:
        """
        Run `fn(tx_db)` in one transaction and return its result.

        `tx_db` is a DB bound to the transactional handle. Calling
        `transaction()` again on it runs the inner callback inline, so there
        is only ever one BEGIN/COMMIT and an inner failure rolls back
        everything.
        """
        if self.in_transaction:
            return await fn(self)

        async with self.connection() as conn:
            return await conn.transact(lambda tx: fn(self.with_conn(tx)))


_db: DB | None = None


async def init_db() -> DB:
    global _db
    if _db is not None:
        return _db

    db = await DB.make(
        config.database_url(),
        database=config.database_name(),
        min_size=config.pool_min_size(),
        max_size=config.pool_max_size(),
        command_timeout=config.command_timeout(),
    )
    try:
        await db.init()
    except Exception:
        await db.close()
        raise
    _db = db
    return db


async def close_db() -> None:
    global _db
    if _db is None:
        return None
    await _db.close()
    _db = None


def get_db() -> DB:
    if _db is None:
        raise DBSetupError("DB is not initialized. Call init_db() on startup.")
    return _db


async def execute(query: Fragment) -> int:
    """
    Run a statement (INSERT/UPDATE/DELETE/DDL) that returns no rows.
    """
    return await get_db().execute(query)


async def fetch_one(query: Fragment, schema: type[T]) -> T:
    return await get_db().fetch_one(query, schema)


async def fetch_one_or_none(query: Fragment, schema: type[T]) -> T | None:
    return await get_db().fetch_one_or_none(query, schema)


async def fetch_value(query: Fragment, schema: type[T]) -> T:
    return await get_db().fetch_value(query, schema)


async def fetch_value_or_none(query: Fragment, schema: type[T]) -> T | None:
    return await get_db().fetch_value_or_none(query, schema)


async def fetch_all(query: Fragment, schema: type[T]) -> list[T]:
    return await get_db().fetch_all(query, schema)


async def fetch_column(query: Fragment, schema: type[T]) -> list[T]:
    return await get_db().fetch_column(query, schema)


async def transaction(fn: Callable[[DB], Awaitable[T]]) -> T:
    return await get_db().transaction(fn)
