"""Running SQL against the database and wrapping the results in scanners."""

from __future__ import annotations

import datetime
import decimal
import json
import logging
import re
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator, Sequence

from prest.clauses import QueryError
from prest.connection import ConnectionPool
from prest.scanner import PrestScanner

logger = logging.getLogger(__name__)

_SQL_PART = re.compile(r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"|\$(\d+)|%")
_PARAMSTYLES = frozenset({"format", "pyformat", "qmark", "numeric"})

_INSERT_TABLE_QUOTED = re.compile(
    r'INTO\s+([\w|\.|"|-]*\.)*"([\w|-]+)"\s*\(', re.IGNORECASE | re.ASCII
)
_INSERT_TABLE = re.compile(
    r"INTO\s+([\w|\.|-]*\.)*([\w|-]+)\s*\(", re.IGNORECASE | re.ASCII
)

_SHOW_TABLE = """SELECT table_schema, table_name, ordinal_position as position, column_name,data_type,
			  	CASE WHEN character_maximum_length is not null
					THEN character_maximum_length
					ELSE numeric_precision end as max_length,
			  	is_nullable,
			  	is_generated,
			  	is_updatable,
			  	column_default as default_value
			 FROM information_schema.columns
			 WHERE table_name=$1 AND table_schema=$2
			 ORDER BY table_schema, table_name, ordinal_position"""


def _compile(sql: str, paramstyle: str) -> tuple[str, tuple[int, ...], int]:
    numbers = [int(m.group(1)) for m in _SQL_PART.finditer(sql) if m.group(1)]
    if 0 in numbers:
        raise QueryError("invalid placeholder $0")
    arity = max(numbers, default=0)
    if arity == 0:
        return sql, (), 0

    escape = paramstyle in ("format", "pyformat")
    order: list[int] = []

    def replace(match: re.Match[str]) -> str:
        if match.group(1):
            number = int(match.group(1))
            order.append(number)
            if paramstyle == "numeric":
                return f":{number}"
            return "%s" if escape else "?"
        text = match.group(0)
        return text.replace("%", "%%") if escape else text

    text = _SQL_PART.sub(replace, sql)
    if paramstyle == "numeric":
        order = list(range(1, arity + 1))
    return text, tuple(order), arity


@dataclass(frozen=True)
class PreparedStatement:
    """SQL with ``$n`` placeholders rewritten for the driver's parameter style."""

    sql: str
    text: str
    order: tuple[int, ...]
    arity: int
    transaction: Any = field(default=None, compare=False)

    def execute(self, params: Sequence[Any], connection: Any = None) -> Any:
        """Run the statement with ``params`` and return the open cursor."""
        if len(params) != self.arity:
            raise QueryError(f"sql: expected {self.arity} arguments, got {len(params)}")
        target = self.transaction if self.transaction is not None else connection
        if target is None:
            raise QueryError("statement has no connection to run on")
        cursor = target.cursor()
        try:
            if self.arity:
                cursor.execute(self.text, [params[n - 1] for n in self.order])
            else:
                cursor.execute(self.text)
        except BaseException:
            _close(cursor)
            raise
        return cursor


class StatementCache:
    """Prepares statements, keeping those made outside a transaction when enabled."""

    def __init__(self, enabled: bool = True, paramstyle: str = "format") -> None:
        if paramstyle not in _PARAMSTYLES:
            raise ValueError(f"unsupported parameter style {paramstyle!r}")
        self.enabled = enabled
        self.paramstyle = paramstyle
        self._lock = threading.Lock()
        self._statements: dict[str, PreparedStatement] = {}

    def __contains__(self, sql: object) -> bool:
        with self._lock:
            return sql in self._statements

    def __len__(self) -> int:
        with self._lock:
            return len(self._statements)

    def prepare(self, sql: str, transaction: Any = None) -> PreparedStatement:
        """Return a statement for ``sql``; statements bound to a transaction are not cached."""
        cacheable = self.enabled and transaction is None
        if cacheable:
            with self._lock:
                cached = self._statements.get(sql)
            if cached is not None:
                return cached
        text, order, arity = _compile(sql, self.paramstyle)
        statement = PreparedStatement(sql, text, order, arity, transaction)
        if cacheable:
            with self._lock:
                self._statements[sql] = statement
        return statement

    def clear(self) -> None:
        """Forget every cached statement."""
        with self._lock:
            self._statements.clear()


def _close(cursor: Any) -> None:
    close = getattr(cursor, "close", None)
    if close is not None:
        close()


def _rollback(connection: Any) -> None:
    try:
        connection.rollback()
    except Exception:
        logger.exception("rollback failed")


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", "replace")
    if isinstance(value, decimal.Decimal):
        return str(value)
    return str(value)


def _dumps(value: Any) -> bytes:
    return json.dumps(value, separators=(",", ":"), default=_json_default).encode("utf-8")


def _json_bytes(value: Any) -> bytes:
    if value is None:
        return b""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        return value.encode("utf-8")
    return _dumps(value)


def _plain(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", "replace")
    return value


def _quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def _unquote(key: str) -> str:
    try:
        value = json.loads(key)
    except json.JSONDecodeError:
        raise QueryError(f"invalid syntax: {key}") from None
    if not isinstance(value, str):
        raise QueryError(f"invalid syntax: {key}")
    return value


def _returning_row(sql: str) -> str:
    match = _INSERT_TABLE_QUOTED.search(sql) or _INSERT_TABLE.search(sql)
    if match is None:
        raise QueryError("unable to find table name")
    return f'{sql} RETURNING row_to_json("{match.group(2)}")'


class Executor:
    """Runs statements on pooled connections and returns JSON scanners."""

    def __init__(self, pool: ConnectionPool, cache: StatementCache | None = None) -> None:
        self.pool = pool
        self.cache = StatementCache() if cache is None else cache

    def get_transaction(self) -> Any:
        """Return the current connection; the caller commits or rolls it back."""
        return self.pool.get()

    @contextmanager
    def _connection(self, transaction: Any) -> Iterator[Any]:
        if transaction is not None:
            yield transaction
            return
        connection = self.pool.get()
        try:
            yield connection
        except BaseException:
            _rollback(connection)
            raise
        connection.commit()

    @contextmanager
    def _run(
        self, sql: str, params: Sequence[Any], transaction: Any = None
    ) -> Iterator[Any]:
        logger.debug("generated SQL: %s parameters: %s", sql, params)
        with self._connection(transaction) as connection:
            statement = self.cache.prepare(sql, transaction)
            cursor = statement.execute(params, connection)
            try:
                yield cursor
            finally:
                _close(cursor)

    def query(self, sql: str, *args: Any) -> PrestScanner:
        """Run a SELECT and return its rows as a JSON array."""
        wrapped = f"SELECT json_agg(s) FROM ({sql}) s"
        with self._run(wrapped, args) as cursor:
            row = cursor.fetchone()
        data = _json_bytes(row[0] if row else None) or b"[]"
        return PrestScanner(buff=data, is_query=True)

    def query_count(self, sql: str, *args: Any) -> PrestScanner:
        """Run a COUNT query and return ``{"count": n}``."""
        with self._run(sql, args) as cursor:
            row = cursor.fetchone()
        if row is None:
            raise QueryError("sql: no rows in result set")
        return PrestScanner(buff=_dumps({"count": int(row[0])}))

    def insert(self, sql: str, *args: Any, transaction: Any = None) -> PrestScanner:
        """Run an INSERT and return the inserted row as JSON."""
        full = _returning_row(sql)
        with self._run(full, args, transaction) as cursor:
            row = cursor.fetchone()
        if row is None:
            raise QueryError("sql: no rows in result set")
        return PrestScanner(buff=_json_bytes(row[0]))

    def _modify(self, sql: str, args: Sequence[Any], transaction: Any) -> PrestScanner:
        with self._run(sql, args, transaction) as cursor:
            if "RETURNING" in sql:
                columns = [d[0] for d in cursor.description or ()]
                records = [
                    {name: _plain(value) for name, value in zip(columns, row)}
                    for row in cursor.fetchall()
                ]
                return PrestScanner(buff=_dumps(records or None))
            affected = cursor.rowcount
        return PrestScanner(buff=_dumps({"rows_affected": affected}))

    def delete(self, sql: str, *args: Any, transaction: Any = None) -> PrestScanner:
        """Run a DELETE; return deleted rows with RETURNING, else the affected count."""
        return self._modify(sql, args, transaction)

    def update(self, sql: str, *args: Any, transaction: Any = None) -> PrestScanner:
        """Run an UPDATE; return updated rows with RETURNING, else the affected count."""
        return self._modify(sql, args, transaction)

    def batch_insert_values(self, sql: str, *args: Any) -> PrestScanner:
        """Run a multi-row INSERT and return all inserted rows as a JSON array."""
        full = _returning_row(sql)
        with self._run(full, args) as cursor:
            parts = [_json_bytes(row[0]) for row in cursor.fetchall()]
        return PrestScanner(buff=b"[" + b",".join(parts) + b"]", is_query=True)

    def batch_insert_copy(
        self, dbname: str, schema: str, table: str, keys: Sequence[str], *args: Any
    ) -> PrestScanner:
        """Insert ``args`` row by row into ``schema.table`` in a single transaction.

        Values are taken ``len(keys)`` at a time; an incomplete last row is ignored.
        """
        if not keys:
            raise QueryError("no columns given for copy")
        columns = [_unquote(key) if key.startswith('"') else key for key in keys]
        names = ", ".join(_quote_identifier(column) for column in columns)
        marks = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        sql = (
            f"INSERT INTO {_quote_identifier(schema)}.{_quote_identifier(table)} "
            f"({names}) VALUES ({marks})"
        )
        width = len(columns)
        logger.debug("copy into %s.%s.%s: %s", dbname, schema, table, sql)
        with self._connection(None) as connection:
            statement = self.cache.prepare(sql, connection)
            for end in range(width, len(args) + 1, width):
                _close(statement.execute(args[end - width:end], connection))
        return PrestScanner()

    def write_sql(self, sql: str, values: Sequence[Any]) -> PrestScanner:
        """Run an INSERT, UPDATE or DELETE and return the affected row count."""
        with self._run(sql, list(values)) as cursor:
            affected = cursor.rowcount
        return PrestScanner(buff=_dumps({"rows_affected": affected}))

    def show_table(self, schema: str, table: str) -> PrestScanner:
        """Return the column structure of ``schema.table``."""
        return self.query(_SHOW_TABLE, table, schema)