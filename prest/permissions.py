"""Table and column access rules taken from the access configuration."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from prest.clauses import QueryError, Request
from prest.grouping import columns_by_request

_GROUP = re.compile(r'"(.+?)"')


@dataclass
class TableAccess:
    """Permissions granted on one table and the fields they expose."""

    name: str
    permissions: list[str] = field(default_factory=list)
    fields: list[str] = field(default_factory=list)


@dataclass
class AccessSettings:
    """Access configuration: whether access is restricted and to what."""

    restrict: bool = False
    ignore_table: list[str] = field(default_factory=list)
    tables: list[TableAccess] = field(default_factory=list)


def table_permissions(access: AccessSettings, table: str, op: str) -> bool:
    """Return True if operation ``op`` is allowed on ``table``."""
    if not access.restrict or table in access.ignore_table:
        return True
    return any(t.name == table and op in t.permissions for t in access.tables)


def fields_by_permission(access: AccessSettings, table: str, op: str) -> list[str]:
    """Return the fields ``op`` may touch on ``table``; ``["*"]`` if none are listed."""
    fields: list[str] = []
    for t in access.tables:
        if t.name == table and op in t.permissions:
            fields = list(t.fields)
    return fields or ["*"]


def contains_asterisk(fields: list[str]) -> bool:
    """Return True if ``fields`` holds the ``*`` wildcard."""
    return "*" in fields


def _check_field(column: str, allowed: list[str]) -> str:
    match = _GROUP.search(column)
    inner = match.group(1) if match else None
    if column in allowed or (inner is not None and inner in allowed):
        return column
    return ""


def intersection(fields: list[str], allowed: list[str]) -> list[str]:
    """Keep the fields (or group functions over fields) found in ``allowed``."""
    return [name for name in fields if _check_field(name, allowed)]


def fields_permissions(
    access: AccessSettings, request: Request, table: str, op: str
) -> list[str]:
    """Return the columns a request may read or write on ``table``."""
    try:
        columns = columns_by_request(request)
    except QueryError as exc:
        raise QueryError(f"error on parse columns from request: {exc}") from exc

    if not access.restrict or op == "delete":
        return columns or ["*"]

    allowed = fields_by_permission(access, table, op)
    if contains_asterisk(allowed):
        return columns or ["*"]
    if not columns:
        return allowed
    return intersection(columns, allowed)