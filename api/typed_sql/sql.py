"""
Composable, parameterized SQL fragments.

Templates use `str.format` fields; every field becomes a positional
parameter for asyncpg ($1, $2, ...), never pasted text:

    sql("SELECT * FROM runs WHERE id = {} AND status IN ({})", run_id, ["queued", "running"])
    -> SELECT * FROM runs WHERE id = $1 AND status IN ($2, $3)

What an interpolated value turns into:
- scalar                    -> one parameter
- non-empty list/tuple      -> "$1, $2, ..." (for IN (...) lists)
- Fragment                  -> spliced in, parameters renumbered
- list/tuple of Fragments   -> spliced in, joined with ", " (e.g. VALUES rows)
- SqlLit / list of SqlLit   -> raw text, joined with ", "
- str / dict                -> one parameter, NUL characters replaced

Use `{{` and `}}` for literal braces, e.g. `'{{}}'::jsonb`.

A JSON array argument must be passed as json.dumps(...) and cast with
::jsonb, otherwise it is expanded into a parameter list.
"""

from __future__ import annotations

import hashlib
import json
import re
from collections.abc import Mapping
from dataclasses import dataclass
from functools import cached_property, lru_cache
from string import Formatter
from typing import Any, Union

from pydantic_core import to_jsonable_python

from .errors import SqlConstructionError

NULL_CHAR_REPLACEMENT = "\u2400"
STATEMENT_NAME_PREFIX_LEN = 50
STATEMENT_NAME_HASH_LEN = 8

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")
_formatter = Formatter()


def _replace_null_chars(value: Any) -> Any:
    if isinstance(value, str):
        return value.replace("\0", NULL_CHAR_REPLACEMENT)
    if isinstance(value, dict):
        return {_replace_null_chars(k): _replace_null_chars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_replace_null_chars(v) for v in value]
    return value


def sanitize_null_chars(value: Any) -> Any:
    """
    Postgres can't store "\\0" in text or jsonb columns.

    Strings get every "\\0" replaced with "␀". Mappings are serialized to JSON
    text (to be cast with ::jsonb) with the same replacement applied to every
    string value inside. Everything else is returned unchanged.
    """
    if isinstance(value, str):
        return value.replace("\0", NULL_CHAR_REPLACEMENT)
    if isinstance(value, Mapping):
        return json.dumps(_replace_null_chars(to_jsonable_python(dict(value))), ensure_ascii=True)
    return value


@lru_cache(maxsize=None)
def statement_name(text: str) -> str:
    """
    Short identifier-safe name for a statement's text.

    Memoized for the life of the process; the cache grows with the number of
    distinct statements issued. Two texts sharing the same 50-char prefix and
    the same 32-bit hash suffix would collide; that is accepted.
    """
    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()[:STATEMENT_NAME_HASH_LEN]
    return f"{_NON_ALNUM.sub('_', text)[:STATEMENT_NAME_PREFIX_LEN]}_{digest}"


@dataclass(frozen=True)
class SqlLit:
    """Raw SQL text. Never parameterized."""

    text: str

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class Param:
    value: Any


@dataclass(frozen=True)
class ParamList:
    values: tuple[Any, ...]


Part = Union[SqlLit, Param, ParamList]


@dataclass(frozen=True)
class ParsedStatement:
    name: str
    text: str
    values: list[Any]


@dataclass(frozen=True, eq=False)
class Fragment:
    """Output of `sql()`. Flattened once, on first `parse()`."""

    parts: tuple[Part, ...]

    def parse(self) -> ParsedStatement:
        return self._parsed

    @cached_property
    def _parsed(self) -> ParsedStatement:
        strs: list[str] = []
        vals: list[Any] = []

        for part in self.parts:
            if isinstance(part, SqlLit):
                strs.append(part.text)
            elif isinstance(part, ParamList):
                placeholders = []
                for value in part.values:
                    vals.append(value)
                    placeholders.append(f"${len(vals)}")
                strs.append(", ".join(placeholders))
            else:
                vals.append(part.value)
                strs.append(f"${len(vals)}")

        text = "".join(strs)
        return ParsedStatement(
            name=statement_name(text),
            text=text,
            values=[sanitize_null_chars(v) for v in vals],
        )

    def __repr__(self) -> str:
        return f"Fragment({self.parse().text!r})"


def _value_parts(value: Any) -> list[Part]:
    if isinstance(value, Fragment):
        return list(value.parts)
    if isinstance(value, SqlLit):
        return [value]
    if isinstance(value, (list, tuple)):
        if not value:
            raise SqlConstructionError("sql: empty sequence not allowed")
        if all(isinstance(v, Fragment) for v in value):
            parts = list(value[0].parts)
            for subquery in value[1:]:
                parts.append(SqlLit(", "))
                parts.extend(subquery.parts)
            return parts
        if all(isinstance(v, SqlLit) for v in value):
            return [SqlLit(", ".join(v.text for v in value))]
        if any(isinstance(v, (Fragment, SqlLit)) for v in value):
            raise SqlConstructionError("sql: a sequence must not mix fragments or literals with plain values")
        return [ParamList(tuple(sanitize_null_chars(v) for v in value))]
    if isinstance(value, (str, Mapping)):
        return [Param(sanitize_null_chars(value))]
    return [Param(value)]


def _build(strings: list[str], values: list[Any]) -> Fragment:
    if len(strings) != len(values) + 1:
        raise SqlConstructionError(
            f"sql: expected {len(values) + 1} text segments for {len(values)} values, got {len(strings)}"
        )

    parts: list[Part] = [SqlLit(strings[0])]
    for value, text in zip(values, strings[1:]):
        parts.extend(_value_parts(value))
        parts.append(SqlLit(text))
    return Fragment(tuple(parts))


def _parse_template(template: str) -> list[tuple[str, str | None, str | None, str | None]]:
    if not isinstance(template, str):
        raise SqlConstructionError(f"sql: template must be a str, got {type(template).__name__}")
    try:
        return list(_formatter.parse(template))
    except ValueError as e:
        raise SqlConstructionError(f"sql: malformed template: {e}") from e


def sql(template: str, /, *args: Any, **kwargs: Any) -> Fragment:
    """
    Build a Fragment from a format-style template.

    Fields are `{}` (next positional value), `{0}` (positional by index) or
    `{name}` (keyword). Format specs, conversions and attribute/index lookups
    are rejected, and so are unused values.
    """
    strings = [""]
    values: list[Any] = []
    used_args: set[int] = set()
    used_kwargs: set[str] = set()
    next_auto = 0

    for literal, field, format_spec, conversion in _parse_template(template):
        strings[-1] += literal
        if field is None:
            continue
        if format_spec or conversion:
            raise SqlConstructionError(f"sql: field {{{field}}} must not have a format spec or conversion")

        if field == "":
            index = next_auto
            next_auto += 1
        elif field.isdigit():
            index = int(field)
        elif field.isidentifier():
            if field not in kwargs:
                raise SqlConstructionError(f"sql: no value for field {{{field}}}")
            used_kwargs.add(field)
            values.append(kwargs[field])
            strings.append("")
            continue
        else:
            raise SqlConstructionError(f"sql: unsupported field {{{field}}}")

        if index >= len(args):
            raise SqlConstructionError(f"sql: template needs value #{index} but only {len(args)} given")
        used_args.add(index)
        values.append(args[index])
        strings.append("")

    unused = [str(i) for i in range(len(args)) if i not in used_args]
    unused += sorted(set(kwargs) - used_kwargs)
    if unused:
        raise SqlConstructionError(f"sql: values not used by the template: {', '.join(unused)}")

    return _build(strings, values)


def sql_lit(text: str) -> SqlLit:
    """SQL literal, e.g. for dynamic column lists. Takes no values."""
    parsed = _parse_template(text)
    fields = [field for _, field, _, _ in parsed if field is not None]
    if fields:
        raise SqlConstructionError(f"sql_lit does not allow values (received {len(fields)} fields)")
    return SqlLit("".join(literal for literal, _, _, _ in parsed))


def dynamic_sql_col(column_name: str) -> SqlLit:
    """
    Quote a column or table name as raw SQL.

    Vulnerable to SQL injection: only pass names from an allow-list, never
    user input.
    """
    return SqlLit(f'"{column_name}"')
