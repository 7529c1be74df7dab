"""
Route request/response models and the response envelope.
"""

from __future__ import annotations

from typing import Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class SquareRootRequest(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    x: float


class SquareRootResponse(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    sqrt: float


class PlusRequest(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    x: float
    y: float


class PlusResponse(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    total: float


class ThrowsErrorRequest(BaseModel):
    message: str


class ThrowsErrorResponse(BaseModel):
    never: str


class HealthRequest(BaseModel):
    pass


class HealthResponse(BaseModel):
    status: str


class OkResponse(BaseModel, Generic[T]):
    ok: Literal[True] = True
    data: T


class ErrorResponse(BaseModel):
    ok: Literal[False] = False
    message: str


# route name -> (request model, response model)
ROUTES: dict[str, tuple[type[BaseModel], type[BaseModel]]] = {
    "square_root": (SquareRootRequest, SquareRootResponse),
    "plus": (PlusRequest, PlusResponse),
    "throws_error": (ThrowsErrorRequest, ThrowsErrorResponse),
    "health": (HealthRequest, HealthResponse),
}
