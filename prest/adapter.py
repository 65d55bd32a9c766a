"""The PostgreSQL adapter: scripts, permissions and statement execution."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Protocol, Sequence, runtime_checkable

from prest.clauses import QueryError, Request
from prest.connection import ConnectionPool
from prest.executor import Executor, StatementCache
from prest.permissions import AccessSettings, fields_permissions, table_permissions

logger = logging.getLogger(__name__)

_SCRIPT_SUFFIXES = {
    "GET": ".read.sql",
    "POST": ".write.sql",
    "PATCH": ".update.sql",
    "PUT": ".update.sql",
    "DELETE": ".delete.sql",
}
_WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


@runtime_checkable
class Scanner(Protocol):
    """A database response that can be decoded into Python objects."""

    buff: bytes | None
    error: BaseException | None

    def scan(self, target: Any) -> int:
        """Fill ``target`` from the response and return the number of rows."""
        ...


class Postgres:
    """Runs requests against PostgreSQL under the configured access rules.

    ``queries_path`` is the folder holding user SQL scripts; ``access``
    holds the table and field permissions.
    """

    def __init__(
        self,
        pool: ConnectionPool,
        *,
        access: AccessSettings | None = None,
        queries_path: str | Path = "",
        cache: StatementCache | None = None,
    ) -> None:
        self.pool = pool
        self.access = access if access is not None else AccessSettings()
        self.queries_path = Path(queries_path)
        self.executor = Executor(pool, cache)
        if not pool.database:
            pool.database = pool.settings.database

    @property
    def database(self) -> str:
        """Name of the database currently in use."""
        return self.pool.database

    def set_database(self, name: str) -> None:
        """Switch the database used for subsequent statements."""
        self.pool.database = name

    def get_transaction(self) -> Any:
        """Return a connection on which statements run as one transaction."""
        return self.executor.get_transaction()

    def get_script(self, verb: str, folder: str, script_name: str) -> Path:
        """Return the path of the SQL script for an HTTP method.

        Raises :class:`QueryError` for an unknown method or a missing file.
        """
        suffix = _SCRIPT_SUFFIXES.get(verb)
        if suffix is None:
            raise QueryError(f"invalid http method {verb}")
        script = self.queries_path / folder / f"{script_name}{suffix}"
        if not script.exists():
            raise QueryError(f"could not load {script}")
        return script

    def execute_scripts(self, method: str, sql: str, values: Sequence[Any]) -> Scanner:
        """Run a user script: a query for GET, a write for the other methods."""
        if method == "GET":
            return self.executor.query(sql, *values)
        if method in _WRITE_METHODS:
            return self.executor.write_sql(sql, values)
        raise QueryError(f"invalid method {method}")

    def table_permissions(self, table: str, op: str) -> bool:
        """Return True if ``op`` is allowed on ``table``."""
        return table_permissions(self.access, table, op)

    def fields_permissions(self, request: Request, table: str, op: str) -> list[str]:
        """Return the columns ``request`` may use for ``op`` on ``table``."""
        return fields_permissions(self.access, request, table, op)

    def query(self, sql: str, *args: Any) -> Scanner:
        """Run a SELECT and return its rows as a JSON array."""
        return self.executor.query(sql, *args)

    def query_count(self, sql: str, *args: Any) -> Scanner:
        """Run a COUNT query and return ``{"count": n}``."""
        return self.executor.query_count(sql, *args)

    def insert(self, sql: str, *args: Any, transaction: Any = None) -> Scanner:
        """Run an INSERT and return the inserted row."""
        return self.executor.insert(sql, *args, transaction=transaction)

    def delete(self, sql: str, *args: Any, transaction: Any = None) -> Scanner:
        """Run a DELETE and return the deleted rows or the affected count."""
        return self.executor.delete(sql, *args, transaction=transaction)

    def update(self, sql: str, *args: Any, transaction: Any = None) -> Scanner:
        """Run an UPDATE and return the updated rows or the affected count."""
        return self.executor.update(sql, *args, transaction=transaction)

    def batch_insert_values(self, sql: str, *args: Any) -> Scanner:
        """Run a multi-row INSERT and return all inserted rows."""
        return self.executor.batch_insert_values(sql, *args)

    def batch_insert_copy(
        self, dbname: str, schema: str, table: str, keys: Sequence[str], *args: Any
    ) -> Scanner:
        """Insert ``args`` into ``schema.table``, ``len(keys)`` values per row."""
        return self.executor.batch_insert_copy(dbname, schema, table, keys, *args)

    def show_table(self, schema: str, table: str) -> Scanner:
        """Return the column structure of ``schema.table``."""
        return self.executor.show_table(schema, table)