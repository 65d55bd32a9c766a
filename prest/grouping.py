"""GROUP BY and HAVING clauses and the column list of a request."""

from __future__ import annotations

from prest import statements
from prest.clauses import QueryError, Request, query_operator

_GROUP_FUNCTIONS = frozenset(
    {"SUM", "AVG", "MAX", "MIN", "MEDIAN", "STDDEV", "VARIANCE"}
)
_HAVING_MARKER = "->>having"


def _quote_path(name: str) -> str:
    return '"' + '"."'.join(name.split(".")) + '"'


def _quote_fields(text: str) -> str:
    return ",".join(_quote_path(name) for name in text.split(","))


def normalize_group_function(value: str) -> str:
    """Turn ``func:field[:alias]`` into SQL such as ``SUM("field") AS "alias"``."""
    parts = value.split(":")
    function = parts[0].upper()
    if function not in _GROUP_FUNCTIONS:
        raise QueryError(f"this function {function} is not a valid group function")
    if len(parts) < 2:
        raise QueryError(f"group function {function} needs a field")
    column = parts[1] if parts[1] == "*" else f'"{parts[1]}"'
    sql = f"{function}({column})"
    if len(parts) == 3:
        sql = f'{sql} AS "{parts[2]}"'
    return sql


def group_by_clause(request: Request) -> str:
    """Build the GROUP BY clause (with an optional HAVING) from ``_groupby``.

    A malformed HAVING part is dropped and only the GROUP BY is returned.
    """
    values = request.query.get("_groupby")
    group_query = values[0] if values else ""
    if not group_query:
        return ""

    if _HAVING_MARKER not in group_query:
        return statements.GROUP_BY % _quote_fields(group_query)

    params = group_query.split(":")
    group_by = statements.GROUP_BY % _quote_fields(group_query.split(_HAVING_MARKER)[0])
    if len(params) != 5:
        return group_by
    try:
        function = normalize_group_function(f"{params[1]}:{params[2]}")
        operator = query_operator(params[3])
    except QueryError:
        return group_by
    having = statements.HAVING % (function, operator, params[4])
    return f"{group_by} {having}"


def columns_by_request(request: Request) -> list[str]:
    """Return the columns named by ``_select``.

    When ``_groupby`` is present, ``func:field`` entries become group functions.
    """
    columns = [
        name
        for entry in request.query.get("_select", [])
        for name in entry.split(",")
    ]
    grouped = request.query.get("_groupby")
    if grouped and grouped[0]:
        columns = [
            normalize_group_function(name) if ":" in name else name
            for name in columns
        ]
    return columns