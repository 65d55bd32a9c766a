# prest

`prest` turns the query string and JSON body of an HTTP request into
PostgreSQL SQL fragments, and runs the resulting statements through a
database connection that you supply, handing back JSON.

A request such as

    GET /mydb/public/users?name=$eq.ada&age=$gte.30&_order=-age

becomes a `WHERE` clause with numbered placeholders and an `ORDER BY`
clause, each built separately so that a caller can put them together as
it needs.

## Installing

    pip install .

The package itself has no third-party dependencies. Tests run with
pytest:

    pip install ".[test]"
    pytest

## Building clauses

Requests are described by `prest.clauses.Request`, a dataclass holding
the query parameters (`query`, a dict of lists) and the raw `body`:

```python
from prest.clauses import Request, where_by_request, order_by_request

request = Request.from_url("/mydb/public/users?name=$eq.ada&c.age=$gte.30")
where, values = where_by_request(request, 1)
# where  -> '"name" = $1 AND "c"."age" >= $2'
# values -> ['ada', '30']
```

Filter values carry an operator prefix: `$eq`, `$ne`, `$gt`, `$gte`,
`$lt`, `$lte`, `$in`, `$nin`, `$any`, `$some`, `$all`, `$null`,
`$notnull`, `$true`, `$nottrue`, `$false`, `$notfalse`, `$like` and
`$ilike` (see `query_operator`); a value without a prefix means `$eq`.
Keys with a `:jsonb` suffix filter on a JSONB field (`data->>description:jsonb`),
and keys with a `:tsquery` suffix run a full-text search.

Reserved parameters start with an underscore and have their own
builders:

| parameter     | function                                   |
|---------------|--------------------------------------------|
| `_select`     | `prest.grouping.columns_by_request`        |
| `_count`      | `prest.clauses.count_by_request`           |
| `_distinct`   | `prest.clauses.distinct_clause`            |
| `_join`       | `prest.clauses.join_by_request`            |
| `_order`      | `prest.clauses.order_by_request`           |
| `_groupby`    | `prest.grouping.group_by_clause`           |
| `_returning`  | `prest.clauses.returning_by_request`       |

`select_fields` builds `SELECT <fields> FROM` from a list of column
names, and `database_clause` / `schema_clause` return the catalogue
`SELECT` together with whether `_count` was asked for.

Request bodies for writes are handled by `set_by_request`,
`parse_insert_request` and `parse_batch_insert_request`; an empty body
raises `BodyEmptyError`, and malformed input raises `QueryError` (a
`ValueError`). Identifiers are checked with `is_invalid_identifier`
before they reach any SQL text.

Group functions in `_select` and in `_groupby=field->>having:func:field:$op:value`
are written as `sum:salary` or `avg:age:alias`:

```python
from prest.grouping import normalize_group_function

normalize_group_function("avg:age:colname")   # 'AVG("age") AS "colname"'
```

A malformed `HAVING` part is dropped, leaving only the `GROUP BY`.

Whole statements come from `prest.sqltext`: `insert_sql`, `update_sql`,
`delete_sql` and `select_sql`, along with the `WHERE` and `ORDER BY`
parts of the catalogue queries for databases, schemas and tables. The
SQL templates themselves live in `prest.statements`.

## Arrays

`prest.formatters.format_array` renders Python sequences in PostgreSQL
array syntax:

```python
from prest.formatters import format_array

format_array(["value 1", "value 2"])   # '{"value 1","value 2"}'
format_array([10, 20, 30])             # '{10,20,30}'
```

Values it cannot render (such as `None` or floats) come out as `''`.

## Access control

`prest.permissions.AccessSettings` lists `TableAccess` entries with the
operations (`read`, `write`, `delete`) and fields each table allows,
plus tables to ignore. When access is restricted, `table_permissions`
decides whether an operation is allowed and `fields_permissions` narrows
the requested columns to the allowed ones.

## Running statements

`prest.connection.ConnectionPool` keeps one connection per database,
keyed by the connection string that `uri` builds from
`ConnectionSettings`. It opens connections by calling the `connect`
callable you give it with that string; without one, or when it fails,
`get` raises `DatabaseUnavailableError`. The connection objects must
offer `cursor()`, `commit()` and `rollback()` in the usual DB-API way.

`prest.executor.Executor` prepares statements with `StatementCache`,
which rewrites `$n` placeholders for the driver's parameter style
(`format` by default; also `pyformat`, `qmark` and `numeric`) and caches
statements made outside a transaction when enabled. It then runs them:

- `query` wraps a `SELECT` so that all rows come back as one JSON array
  (`[]` when there are none);
- `query_count` returns `{"count": n}`;
- `insert` returns the inserted row, `update` and `delete` return the
  rows given by `RETURNING` or `{"rows_affected": n}`;
- `batch_insert_values` returns every row of a multi-row `INSERT`;
- `batch_insert_copy` inserts values `len(keys)` at a time, one row per
  statement, in a single transaction;
- `write_sql` runs a write and returns the affected count;
- `show_table` returns the column structure of a table.

Errors from the database or from bad input are raised as exceptions.

Results are returned as `prest.scanner.PrestScanner` objects. Their raw
JSON is in `buff`, and `scan` decodes it into a list, a dict or an
object with attributes (such as a dataclass):

```python
rows = []
count = scanner.scan(rows)
```

`scan` raises `NotAContainerError`, `UnsupportedTypeError` or
`RowCountError` (all subclasses of `ScanError`) when the target cannot
hold the result.

## The adapter

`prest.adapter.Postgres` gathers all of this behind one object built on
a `ConnectionPool`: it tracks the database in use (`database`,
`set_database`), checks permissions against its `AccessSettings`, runs
queries and writes, and locates and runs user SQL scripts stored under
`queries_path` as `<folder>/<name>.read.sql`, `.write.sql`,
`.update.sql` or `.delete.sql` (`get_script`, `execute_scripts`).
`prest.adapter.Scanner` is the protocol its results follow.

## What it does not do

- It does not serve HTTP: there is no server, router or command to run;
  you pass requests in as `Request` objects.
- It ships no database driver; you supply the `connect` callable.
- It does not read configuration files or environment variables;
  settings are passed in as `ConnectionSettings` and `AccessSettings`.
- It does not build `LIMIT`/`OFFSET` pagination clauses.
- It does not render templates inside user SQL scripts; `get_script`
  only finds the file, and `execute_scripts` runs SQL text as given.