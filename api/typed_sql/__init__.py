"""
Typed query layer over an asyncpg pool.

- sql / sql_lit / dynamic_sql_col: build parameterized Fragments
- DB: pool + transaction orchestration, one instance per process (db.py)
- ConnectionWrapper: query helpers over one acquired connection
"""

from .connection import ConnectionWrapper
from .db import DB
from .errors import (
    DBError,
    DBQueryError,
    DBReturnError,
    DBRowNotFoundError,
    DBSetupError,
    DBValidationError,
    SqlConstructionError,
)
from .sql import Fragment, ParsedStatement, SqlLit, dynamic_sql_col, sanitize_null_chars, sql, sql_lit

__all__ = [
    "ConnectionWrapper",
    "DB",
    "DBError",
    "DBQueryError",
    "DBReturnError",
    "DBRowNotFoundError",
    "DBSetupError",
    "DBValidationError",
    "Fragment",
    "ParsedStatement",
    "SqlConstructionError",
    "SqlLit",
    "dynamic_sql_col",
    "sanitize_null_chars",
    "sql",
    "sql_lit",
]
