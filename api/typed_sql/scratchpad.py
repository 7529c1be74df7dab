"""
Manual smoke run against a real database.

    DATABASE_URL=postgresql://... python -m typed_sql.scratchpad
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any

from pydantic import BaseModel

from . import config
from .db import DB
from .sql import sql

logger = logging.getLogger(__name__)


class Foo(BaseModel):
    x: int
    y: str


async def do_thing(db: DB) -> None:
    ret = await db.fetch_all(sql("SELECT 1+1 AS x"), dict[str, Any])
    logger.info("ret=%s", ret)

    async def fill(tx: DB) -> list[Foo]:
        await tx.execute(sql("CREATE TEMP TABLE foo (x int, y text) ON COMMIT DROP"))
        rows1 = [
            {"x": 1, "y": "a"},
            {"x": 2, "y": "b"},
            {"x": 3, "y": "c"},
            {"x": 4, "y": "d"},
        ]
        inserted = await tx.execute(
            sql(
                """
                INSERT INTO foo (x, y)
                SELECT x, y
                FROM jsonb_to_recordset({}::jsonb)
                AS t(x int, y text)
                """,
                json.dumps(rows1),
            )
        )
        logger.info("inserted=%s rows1=%s", inserted, rows1)
        return await tx.fetch_all(sql("SELECT * FROM foo ORDER BY x"), Foo)

    rows2 = await db.transaction(fill)
    logger.info("rows2=%s", rows2)


async def main() -> None:
    started = time.monotonic()
    async with await DB.make(config.database_url(), database=config.database_name()) as db:
        await db.init()
        await do_thing(db)
    logger.info("done in %.0f ms", (time.monotonic() - started) * 1000)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    asyncio.run(main())
