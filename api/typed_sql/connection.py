"""
Low-level query helpers over one asyncpg connection.

`ConnectionWrapper` runs Fragments, decodes rows through pydantic and
rewrites driver/validation errors into something readable. It never acquires
or releases the connection; `db.DB` owns that.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from functools import lru_cache
from typing import Any, TypeVar

import asyncpg
from pydantic import TypeAdapter, ValidationError

from .errors import (
    DBQueryError,
    DBReturnError,
    DBRowNotFoundError,
    DBValidationError,
    SqlConstructionError,
)
from .sql import Fragment, ParsedStatement

T = TypeVar("T")

logger = logging.getLogger(__name__)


def obj_to_eq_str(o: Any) -> str:
    """
    {"x": 1, "y": "foo", "z": [1, 2]} -> "(x=1; y=foo; z=[1, 2])"

    Useful for logging dicts without layers of quotes and escapes. Anything
    that isn't a dict is just str()'d.
    """
    if not isinstance(o, dict):
        return str(o)
    return "(" + "; ".join(f"{k}={v}" for k, v in o.items()) + ")"


@lru_cache(maxsize=256)
def _cached_adapter(schema: Any) -> TypeAdapter:
    return TypeAdapter(schema)


def _adapter(schema: Any) -> TypeAdapter:
    if isinstance(schema, TypeAdapter):
        return schema
    try:
        hash(schema)
    except TypeError:
        return TypeAdapter(schema)
    return _cached_adapter(schema)


def _decode(schema: Any, value: Any, *, query: str, row_idx: int | None = None) -> Any:
    try:
        return _adapter(schema).validate_python(value)
    except ValidationError as e:
        issues = e.errors(include_url=False)
        first = issues[0] if issues else None
        if first is None:
            detail = "(no validation issues)"
        else:
            loc = ".".join(str(p) for p in first.get("loc", ()))
            detail = obj_to_eq_str({"loc": loc, "msg": first.get("msg"), "type": first.get("type")})

        info: dict[str, Any] = {"query": query, "value": value}
        if row_idx is not None:
            info["row_idx"] = row_idx
        raise DBValidationError(
            f"db return validation error: {detail} -- {obj_to_eq_str(info)}",
            issue=first,
            value=value,
            query=query,
        ) from None


DRIVER_ERRORS: tuple[type[BaseException], ...] = (asyncpg.PostgresError, asyncpg.InterfaceError)


@contextmanager
def translate_driver_errors(
    text: str,
    values: list[Any] | None = None,
    *,
    name: str | None = None,
    row_mode: bool = False,
    errors: tuple[type[BaseException], ...] = DRIVER_ERRORS,
) -> Iterator[None]:
    """
    Rewrap driver errors raised in the block as DBQueryError.

    `text` is the statement (or BEGIN/COMMIT, or the pool step) that failed.
    """
    try:
        yield
    except errors as e:
        position = _position(e)
        logger.warning(
            "db_query_failed name=%s text=%r position=%s error=%s: %s",
            name,
            text,
            position,
            type(e).__name__,
            e,
        )
        # The other PostgresError fields are noise for callers.
        raise DBQueryError(
            getattr(e, "message", None) or str(e),
            position=position,
            text=text,
            values=list(values or []),
            row_mode=row_mode,
        ) from e


def _parse(query: Fragment) -> ParsedStatement:
    if not isinstance(query, Fragment):
        raise SqlConstructionError(f"db query is not a Fragment: {query!r}")
    return query.parse()


def _position(e: BaseException) -> int | None:
    raw = getattr(e, "position", None)
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _row_count(status: str | None) -> int:
    # Command tags look like "INSERT 0 3", "UPDATE 2", "CREATE TABLE".
    last = (status or "").rsplit(" ", 1)[-1]
    return int(last) if last.isdigit() else 0


def _expect_one_row(parsed: ParsedStatement, rows: list[Any]) -> None:
    if not rows:
        raise DBRowNotFoundError(f"db return error: expected 1 row, got 0. query: {parsed.text!r}")
    if len(rows) != 1:
        raise DBReturnError(f"db return error: expected 1 row, got {len(rows)}. query: {parsed.text!r}")


def _expect_one_column(parsed: ParsedStatement, row: tuple[Any, ...]) -> None:
    if len(row) != 1:
        raise DBReturnError(f"db return error: expected 1 column, got {len(row)}. query: {parsed.text!r}")


class ConnectionWrapper:
    """
    Query methods with helpful errors around one asyncpg connection.

    `in_transaction` is True for handles created by `transact()`; nested
    transaction requests on such a handle run inline.
    """

    def __init__(self, connection: asyncpg.Connection, *, in_transaction: bool = False) -> None:
        self._connection = connection
        self.in_transaction = in_transaction

    async def execute(self, query: Fragment) -> int:
        """
        Run a statement that returns no rows. Returns the affected row count.

        Goes through an explicit prepare to read the command tag, so the
        statement is parsed on every call instead of coming from asyncpg's
        statement cache.
        """
        parsed = _parse(query)
        logger.debug("db_query name=%s row_mode=%s", parsed.name, False)
        with translate_driver_errors(parsed.text, parsed.values, name=parsed.name, row_mode=False):
            stmt = await self._connection.prepare(parsed.text)
            records = await stmt.fetch(*parsed.values)
        if records:
            raise DBReturnError(f"db return error: expected no rows, got {len(records)}. query: {parsed.text!r}")
        return _row_count(stmt.get_statusmsg())

    async def fetch_one(self, query: Fragment, schema: type[T]) -> T:
        parsed = _parse(query)
        rows = await self._fetch(parsed)
        _expect_one_row(parsed, rows)
        return _decode(schema, rows[0], query=parsed.text)

    async def fetch_one_or_none(self, query: Fragment, schema: type[T]) -> T | None:
        parsed = _parse(query)
        rows = await self._fetch(parsed)
        if not rows:
            return None
        _expect_one_row(parsed, rows)
        return _decode(schema, rows[0], query=parsed.text)

    async def fetch_value(self, query: Fragment, schema: type[T]) -> T:
        """Unlike fetch_one, the schema describes a single column, not a row."""
        parsed = _parse(query)
        rows = await self._fetch(parsed, row_mode=True)
        _expect_one_row(parsed, rows)
        _expect_one_column(parsed, rows[0])
        return _decode(schema, rows[0][0], query=parsed.text)

    async def fetch_value_or_none(self, query: Fragment, schema: type[T]) -> T | None:
        parsed = _parse(query)
        rows = await self._fetch(parsed, row_mode=True)
        if not rows:
            return None
        _expect_one_row(parsed, rows)
        _expect_one_column(parsed, rows[0])
        return _decode(schema, rows[0][0], query=parsed.text)

    async def fetch_all(self, query: Fragment, schema: type[T]) -> list[T]:
        parsed = _parse(query)
        rows = await self._fetch(parsed)
        return [_decode(schema, row, query=parsed.text, row_idx=i) for i, row in enumerate(rows)]

    async def fetch_column(self, query: Fragment, schema: type[T]) -> list[T]:
        parsed = _parse(query)
        rows = await self._fetch(parsed, row_mode=True)
        if rows:
            _expect_one_column(parsed, rows[0])
        return [_decode(schema, row[0], query=parsed.text, row_idx=i) for i, row in enumerate(rows)]

    async def transact(self, fn: Callable[[ConnectionWrapper], Awaitable[T]]) -> T:
        """
        Run `fn` inside BEGIN/COMMIT; any exception rolls back and propagates.
        Driver errors at BEGIN, COMMIT or ROLLBACK become DBQueryError.
        """
        if self.in_transaction:
            return await fn(self)

        tx = self._connection.transaction()
        with translate_driver_errors("BEGIN"):
            await tx.start()
        try:
            result = await fn(ConnectionWrapper(self._connection, in_transaction=True))
        except BaseException:
            with translate_driver_errors("ROLLBACK"):
                await tx.rollback()
            raise
        # Serialization failures and deferred constraints surface here.
        with translate_driver_errors("COMMIT"):
            await tx.commit()
        return result

    async def _fetch(self, parsed: ParsedStatement, *, row_mode: bool = False) -> list[Any]:
        """
        Rows as dicts, or as tuples in row mode (for unnamed/duplicate columns).
        """
        logger.debug("db_query name=%s row_mode=%s", parsed.name, row_mode)
        with translate_driver_errors(parsed.text, parsed.values, name=parsed.name, row_mode=row_mode):
            records = await self._connection.fetch(parsed.text, *parsed.values)
        if row_mode:
            return [tuple(r.values()) for r in records]
        return [dict(r.items()) for r in records]
