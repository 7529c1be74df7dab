"""
Error classes raised by the query layer.

Every failure is explicit and separable from other runtime errors, so callers
(and the HTTP glue) can branch on the kind without parsing messages.
"""

from __future__ import annotations

from typing import Any


class DBError(RuntimeError):
    pass


class SqlConstructionError(DBError):
    """Malformed fragment input. Raised immediately, never retried."""


class DBSetupError(DBError):
    pass


class DBRowNotFoundError(DBError):
    """A single row was required but the query returned none."""


class DBReturnError(DBError):
    """Wrong row or column count for the fetch variant."""


class DBValidationError(DBReturnError):
    """A returned row or cell did not match its schema."""

    def __init__(self, message: str, *, issue: dict[str, Any] | None, value: Any, query: str) -> None:
        super().__init__(message)
        self.issue = issue
        self.value = value
        self.query = query


class DBQueryError(DBError):
    """
    A driver error, rewrapped.

    Only the fields useful for debugging survive: the server message, the
    cursor position (1-based character offset into `text`, when Postgres
    reports one), the flattened SQL and its bound values.
    """

    def __init__(
        self,
        message: str,
        *,
        position: int | None,
        text: str,
        values: list[Any],
        row_mode: bool = False,
    ) -> None:
        super().__init__(
            f"db query failed: {message} position={position} text={text!r} values={values!r} row_mode={row_mode}"
        )
        self.message = message
        self.position = position
        self.text = text
        self.values = values
        self.row_mode = row_mode
