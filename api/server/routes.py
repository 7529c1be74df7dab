"""
RPC-style routes: POST /<name> with a JSON body.

Every route answers 200 with {"ok": true, "data": ...} or
{"ok": false, "message": ...}; input and output are both validated against
the models in `schemas.ROUTES`.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import APIRouter, Body
from pydantic import BaseModel

from . import schemas

logger = logging.getLogger(__name__)

router = APIRouter()

Handler = Callable[[Any], Awaitable[dict[str, Any]]]


async def square_root(body: schemas.SquareRootRequest) -> dict[str, Any]:
    return {"sqrt": math.sqrt(body.x)}


async def plus(body: schemas.PlusRequest) -> dict[str, Any]:
    return {"total": body.x + body.y}


async def throws_error(body: schemas.ThrowsErrorRequest) -> dict[str, Any]:
    raise RuntimeError(body.message)


async def health(_: schemas.HealthRequest) -> dict[str, Any]:
    return {"status": "ok"}


HANDLERS: dict[str, Handler] = {
    "square_root": square_root,
    "plus": plus,
    "throws_error": throws_error,
    "health": health,
}


def _make_endpoint(name: str, handler: Handler, request_model: type[BaseModel], response_model: type[BaseModel]):
    async def endpoint(payload: dict[str, Any] = Body(default={})) -> dict[str, Any]:
        try:
            valid_input = request_model.model_validate(payload)
            output = response_model.model_validate(await handler(valid_input))
        except Exception as e:
            logger.info("route_failed name=%s error=%s", name, e)
            return schemas.ErrorResponse(message=str(e)).model_dump()
        return schemas.OkResponse[response_model](data=output).model_dump()

    endpoint.__name__ = name
    return endpoint


for _name, (_request_model, _response_model) in schemas.ROUTES.items():
    router.add_api_route(
        f"/{_name}",
        _make_endpoint(_name, HANDLERS[_name], _request_model, _response_model),
        methods=["POST"],
        name=_name,
    )
