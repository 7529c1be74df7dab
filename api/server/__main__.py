"""
Serve the app with uvicorn: `python -m server` (from api/, or installed).

- HOST  default 127.0.0.1
- PORT  default 15347
"""

from __future__ import annotations

import logging
import os

import uvicorn

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 15347

logger = logging.getLogger(__name__)


def host() -> str:
    return os.environ.get("HOST", "").strip() or DEFAULT_HOST


def port() -> int:
    raw = os.environ.get("PORT", "").strip()
    try:
        value = int(raw) if raw else DEFAULT_PORT
    except ValueError:
        return DEFAULT_PORT
    return value if 0 < value < 65536 else DEFAULT_PORT


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    logger.info("server_start host=%s port=%s", host(), port())
    uvicorn.run("server.main:app", host=host(), port=port())


if __name__ == "__main__":
    main()
