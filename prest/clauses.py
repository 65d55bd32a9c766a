"""Building SQL fragments from the query string and body of a request."""

from __future__ import annotations

import json
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qsl, urlsplit

from prest import statements
from prest.formatters import format_array

_REMOVE_OPERATOR = re.compile(r"\$[a-z]+.")
_GROUP = re.compile(r'"(.+?)"')

_OPERATORS = {
    "eq": "=",
    "ne": "!=",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
    "in": "IN",
    "nin": "NOT IN",
    "any": "ANY",
    "some": "SOME",
    "all": "ALL",
    "notnull": "IS NOT NULL",
    "null": "IS NULL",
    "true": "IS TRUE",
    "nottrue": "IS NOT TRUE",
    "false": "IS FALSE",
    "notfalse": "IS NOT FALSE",
    "like": "LIKE",
    "ilike": "ILIKE",
}

_NO_VALUE_OPERATORS = {
    "IS NULL",
    "IS NOT NULL",
    "IS TRUE",
    "IS NOT TRUE",
    "IS FALSE",
    "IS NOT FALSE",
}

_ALLOWED_SYMBOLS = set('()_.-*[]"')
_MAX_IDENTIFIER_BYTES = 63


class QueryError(ValueError):
    """Raised when a request cannot be turned into valid SQL."""


class BodyEmptyError(QueryError):
    """Raised when a request body holds no data."""

    def __init__(self) -> None:
        super().__init__("body is empty")


@dataclass
class Request:
    """The parts of an HTTP request the clause builders read."""

    query: dict[str, list[str]] = field(default_factory=dict)
    body: bytes = b""

    @classmethod
    def from_url(cls, url: str, body: bytes | str | None = None) -> Request:
        """Build a request from a URL (path and query string) and an optional body."""
        query: dict[str, list[str]] = {}
        for key, value in parse_qsl(urlsplit(url).query, keep_blank_values=True):
            query.setdefault(key, []).append(value)
        if body is None:
            data = b""
        elif isinstance(body, str):
            data = body.encode("utf-8")
        else:
            data = bytes(body)
        return cls(query=query, body=data)


def _first(request: Request, key: str) -> str:
    values = request.query.get(key)
    return values[0] if values else ""


def _quote_path(name: str) -> str:
    return '"' + '"."'.join(name.split(".")) + '"'


def _decode_body(request: Request) -> Any:
    text = request.body.decode("utf-8", "replace").lstrip()
    try:
        decoded, _ = json.JSONDecoder().raw_decode(text)
    except json.JSONDecodeError as exc:
        raise QueryError(f"invalid request body: {exc}") from exc
    return decoded


def _as_value(value: Any) -> Any:
    return format_array(value) if isinstance(value, list) else value


def _placeholders(initial: int, last: int) -> str:
    return "(" + ",".join(f"${i}" for i in range(initial, last + 1)) + ")"


def is_invalid_identifier(*identifiers: str) -> bool:
    """Return True if any of ``identifiers`` is not a safe SQL identifier."""
    for ident in identifiers:
        if (
            not ident
            or len(ident.encode("utf-8")) > _MAX_IDENTIFIER_BYTES
            or unicodedata.category(ident[0]) == "Nd"
        ):
            return True
        for ch in ident:
            category = unicodedata.category(ch)
            if not (
                category.startswith("L") or category == "Nd" or ch in _ALLOWED_SYMBOLS
            ):
                return True
        if ident.count('"') % 2:
            return True
    return False


def query_operator(op: str) -> str:
    """Translate an operator such as ``$gte`` into its SQL form."""
    name = op.replace("$", "").replace(" ", "")
    try:
        return _OPERATORS[name]
    except KeyError:
        raise QueryError("Invalid operator") from None


def where_by_request(request: Request, initial_placeholder: int) -> tuple[str, list[Any]]:
    """Build a WHERE condition and its parameters from the query string."""
    where_keys: list[str] = []
    where_values: list[Any] = []
    values: list[Any] = []
    op = ""
    value = ""
    pid = initial_placeholder

    for key, entries in request.query.items():
        if key.startswith("_"):
            continue
        for index, entry in enumerate(entries):
            if entry:
                match = _REMOVE_OPERATOR.search(entry)
                op = match.group(0).replace(".", "") if match else ""
                if not op:
                    op = "$eq"
                value = _REMOVE_OPERATOR.sub("", entry)
                op = query_operator(op)

            key_info = key.split(":")
            if len(key_info) > 1:
                kind = key_info[1]
                if kind == "jsonb":
                    json_field = key_info[0].split("->>")
                    if len(json_field) < 2 or is_invalid_identifier(*json_field[:2]):
                        raise QueryError(f"invalid identifier: {json_field}")
                    column = _quote_path(json_field[0])
                    where_keys.append(f"{column}->>'{json_field[1]}' {op} ${pid}")
                    values.append(value)
                elif kind == "tsquery":
                    ts_field = key_info[0].split("$")
                    if len(ts_field) == 2:
                        where_keys.append(
                            f"{ts_field[0]} @@ to_tsquery('{ts_field[1]}', '{value}')"
                        )
                    else:
                        where_keys.append(f"{ts_field[0]} @@ to_tsquery('{value}')")
                elif is_invalid_identifier(key_info[0]):
                    raise QueryError(f"invalid identifier: {key_info[0]}")
                pid += 1
                continue

            if is_invalid_identifier(key):
                raise QueryError(f"invalid identifier: {key}")
            if index == 0:
                key = _quote_path(key)

            if op in ("IN", "NOT IN"):
                items = value.split(",")
                where_values.extend(items)
                params = ",".join(f"${pid + i}" for i in range(len(items)))
                pid += len(items)
                where_keys.append(f"{key} {op} ({params})")
            elif op in ("ANY", "SOME", "ALL"):
                where_keys.append(f"{key} = {op} (${pid})")
                where_values.append(format_array(value.split(",")))
                pid += 1
            elif op in _NO_VALUE_OPERATORS:
                where_keys.append(f"{key} {op}")
            else:
                where_keys.append(f"{key} {op} ${pid}")
                where_values.append(value)
                pid += 1

    return " AND ".join(where_keys), values + where_values


def returning_by_request(request: Request) -> str:
    """Return the column list given by ``_returning`` parameters."""
    return ", ".join(request.query.get("_returning", []))


def _body_object(request: Request) -> dict[str, Any]:
    body = _decode_body(request)
    if body is None:
        raise BodyEmptyError()
    if not isinstance(body, dict):
        raise QueryError("request body must be a JSON object")
    if not body:
        raise BodyEmptyError()
    return body


def set_by_request(request: Request, initial_placeholder: int) -> tuple[str, list[Any]]:
    """Build the SET list of an UPDATE from a JSON object body."""
    body = _body_object(request)
    fields: list[str] = []
    values: list[Any] = []
    placeholder = initial_placeholder
    for key, value in body.items():
        if is_invalid_identifier(key):
            raise QueryError("Set: Invalid identifier")
        fields.append(f"{_quote_path(key)}=${placeholder}")
        values.append(_as_value(value))
        placeholder += 1
    return ", ".join(fields), values


def parse_insert_request(request: Request) -> tuple[str, str, list[Any]]:
    """Return column names, placeholders and values for a single-row INSERT."""
    body = _body_object(request)
    fields: list[str] = []
    values: list[Any] = []
    for key, value in body.items():
        if is_invalid_identifier(key):
            raise QueryError("Insert: Invalid identifier")
        fields.append(f'"{key}"')
        values.append(_as_value(value))
    return ", ".join(fields), _placeholders(1, len(values)), values


def parse_batch_insert_request(request: Request) -> tuple[str, str, list[Any]]:
    """Return column names, placeholders and values for a multi-row INSERT.

    Columns are taken from the first record, sorted by their quoted form.
    """
    records = _decode_body(request)
    if records is None:
        raise BodyEmptyError()
    if not isinstance(records, list) or not all(isinstance(r, dict) for r in records):
        raise QueryError("request body must be a JSON array of objects")
    if not records:
        raise BodyEmptyError()

    quoted_keys = sorted(json.dumps(key, ensure_ascii=False) for key in records[0])
    keys = [json.loads(quoted) for quoted in quoted_keys]

    values: list[Any] = []
    groups: list[str] = []
    for record in records:
        first = len(values) + 1
        values.extend(_as_value(record.get(key)) for key in keys)
        groups.append(_placeholders(first, len(values)))
    return ",".join(quoted_keys), ",".join(groups), values


def join_by_request(request: Request) -> list[str]:
    """Build the JOIN clause described by the ``_join`` parameter."""
    join = _first(request, "_join")
    if not join:
        return []
    args = join.split(":")
    if len(args) != 5:
        raise QueryError("Invalid number of arguments in join statement")
    if is_invalid_identifier(args[1], args[2], args[4]):
        raise QueryError("Invalid identifier")
    op = query_operator(args[3])

    target = args[1]
    parts = target.split(".")
    if len(parts) == 2:
        target = f'{parts[0]}"."{parts[1]}'
    left = args[2].split(".")
    right = args[4].split(".")
    if len(left) != 2 or len(right) != 2:
        raise QueryError("invalid join clause")
    return [
        f' {args[0].upper()} JOIN "{target}" ON "{left[0]}"."{left[1]}" '
        f'{op} "{right[0]}"."{right[1]}" '
    ]


def select_fields(fields: list[str]) -> str:
    """Build ``SELECT <fields> FROM`` with each field quoted."""
    if not fields:
        raise QueryError("you must select at least one field")
    rendered: list[str] = []
    for name in fields:
        if name == "*":
            rendered.append("*")
            continue
        if is_invalid_identifier(name):
            raise QueryError(f"invalid identifier {name}")
        if _GROUP.search(name):
            rendered.append(name)
        else:
            rendered.append(_quote_path(name))
    return f"SELECT {','.join(rendered)} FROM"


def order_by_request(request: Request) -> str:
    """Build the ORDER BY clause from ``_order``; a leading ``-`` sorts descending."""
    order = _first(request, "_order")
    if not order:
        return ""
    names = order.split(",")
    clause = " ORDER BY "
    for position, name in enumerate(names):
        if is_invalid_identifier(name):
            raise QueryError("Invalid identifier")
        quoted = _quote_path(name)
        if quoted.startswith('"-'):
            quoted = '"' + quoted[2:] + " DESC"
        clause = f"{clause} {quoted}"
        if position < len(names) - 1:
            clause = f"{clause} ,"
    return clause


def count_by_request(request: Request) -> str:
    """Build ``SELECT COUNT(<fields>) FROM`` from ``_count``, or return ''."""
    count = _first(request, "_count")
    if not count:
        return ""
    fields: list[str] = []
    for name in count.split(","):
        if name == "*":
            fields.append(name)
            continue
        if is_invalid_identifier(name):
            raise QueryError("Invalid identifier")
        fields.append(_quote_path(name))
    return f"SELECT COUNT({','.join(fields)}) FROM"


def database_clause(request: Request) -> tuple[str, bool]:
    """Return the database listing SELECT and whether it counts rows."""
    if _first(request, "_count"):
        return statements.DATABASES_SELECT % statements.FIELD_COUNT_DATABASE_NAME, True
    return statements.DATABASES_SELECT % statements.FIELD_DATABASE_NAME, False


def schema_clause(request: Request) -> tuple[str, bool]:
    """Return the schema listing SELECT and whether it counts rows."""
    if _first(request, "_count"):
        return statements.SCHEMAS_SELECT % statements.FIELD_COUNT_SCHEMA_NAME, True
    return statements.SCHEMAS_SELECT % statements.FIELD_SCHEMA_NAME, False


def distinct_clause(request: Request) -> str:
    """Return ``SELECT DISTINCT`` when ``_distinct=true``, otherwise ''."""
    requested = request.query.get("_distinct", [])
    if not requested or requested[0] != "true":
        return ""
    return "SELECT DISTINCT"