from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from typed_sql import db, sql
from typed_sql.errors import DBError, DBRowNotFoundError

from . import routes


@asynccontextmanager
async def lifespan(_: FastAPI):
    # Create the pool and run the 1+1 check once per process.
    await db.init_db()
    try:
        yield
    finally:
        await db.close_db()


app = FastAPI(lifespan=lifespan)

app.include_router(routes.router, tags=["rpc"])


@app.exception_handler(DBRowNotFoundError)
async def row_not_found_handler(_: Request, exc: DBRowNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"ok": False, "message": str(exc)})


@app.exception_handler(DBError)
async def db_error_handler(_: Request, exc: DBError) -> JSONResponse:
    return JSONResponse(status_code=500, content={"ok": False, "message": str(exc)})


@app.get("/db/health")
async def db_health() -> dict:
    total = await db.fetch_value(sql("SELECT 1+1"), int)
    return {"status": "ok", "one_plus_one": total}


@app.get("/")
def root() -> dict:
    return {"message": "typed-sql api"}
