import os

import pytest
import pytest_asyncio

from typed_sql import DB, ConnectionWrapper


class FakeStatement:
    def __init__(self, conn, text):
        self._conn = conn
        self._text = text
        self._status = None

    async def fetch(self, *args):
        rows = await self._conn._respond(self._text, args)
        self._status = self._conn.status
        return rows

    def get_statusmsg(self):
        return self._status


class FakeTransaction:
    def __init__(self, conn):
        self._conn = conn

    async def start(self):
        self._conn.log.append("BEGIN")

    async def commit(self):
        self._conn.log.append("COMMIT")
        if self._conn.commit_error is not None:
            raise self._conn.commit_error

    async def rollback(self):
        self._conn.log.append("ROLLBACK")


class FakeConnection:
    """
    Just enough of asyncpg.Connection for the query layer.

    Queue responses with respond()/fail(); they are consumed in order. Rows are
    plain dicts (asyncpg Records expose the same items()/values()). Set
    commit_error to make the next COMMIT fail.
    """

    def __init__(self):
        self.log = []
        self.queries = []
        self.status = None
        self.commit_error = None
        self._responses = []

    def respond(self, rows=(), *, status="SELECT 0"):
        self._responses.append((list(rows), status))
        return self

    def fail(self, error):
        self._responses.append(error)
        return self

    async def _respond(self, text, args):
        self.queries.append((text, list(args)))
        self.log.append(text)
        if not self._responses:
            self.status = "SELECT 0"
            return []
        response = self._responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        rows, self.status = response
        return rows

    async def fetch(self, text, *args):
        return await self._respond(text, args)

    async def prepare(self, text):
        return FakeStatement(self, text)

    def transaction(self):
        return FakeTransaction(self)


class FakePool:
    def __init__(self, conn):
        self.conn = conn
        self.acquired = 0
        self.released = 0
        self.closed = False
        self.acquire_error = None

    async def acquire(self):
        if self.acquire_error is not None:
            raise self.acquire_error
        self.acquired += 1
        return self.conn

    async def release(self, conn):
        assert conn is self.conn
        self.released += 1

    async def close(self):
        self.closed = True


@pytest.fixture
def conn():
    return FakeConnection()


@pytest.fixture
def pool(conn):
    return FakePool(conn)


@pytest.fixture
def wrapper(conn):
    return ConnectionWrapper(conn)


@pytest.fixture
def database(pool):
    return DB(pool, database="fake")


@pytest.fixture
def pg_url():
    url = os.getenv("TEST_DATABASE_URL", "").strip()
    if not url:
        pytest.skip("TEST_DATABASE_URL is not set")
    return url


@pytest_asyncio.fixture
async def pg_db(pg_url):
    db = await DB.make(pg_url, database="test", min_size=1, max_size=2)
    try:
        yield db
    finally:
        await db.close()
