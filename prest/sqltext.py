"""Assembly of complete SQL statements and catalogue query parts."""

from __future__ import annotations

from prest import statements


def select_sql(select: str, database: str, schema: str, table: str) -> str:
    """Append the fully qualified table name to a SELECT prefix."""
    return f'{select} "{database}"."{schema}"."{table}"'


def insert_sql(
    database: str, schema: str, table: str, names: str, placeholders: str
) -> str:
    """Build an INSERT statement for the given columns and placeholders."""
    return statements.INSERT_QUERY % (database, schema, table, names, placeholders)


def delete_sql(database: str, schema: str, table: str) -> str:
    """Build a DELETE statement for a table."""
    return statements.DELETE_QUERY % (database, schema, table)


def update_sql(database: str, schema: str, table: str, set_syntax: str) -> str:
    """Build an UPDATE statement with the given SET list."""
    return statements.UPDATE_QUERY % (database, schema, table, set_syntax)


def _and(base: str, request_where: str) -> str:
    return f"{base} AND {request_where}" if request_where else base


def database_where(request_where: str) -> str:
    """WHERE clause for database listing, extended by ``request_where``."""
    return _and(statements.DATABASES_WHERE, request_where)


def database_order_by(order: str, has_count: bool) -> str:
    """ORDER BY for database listing; empty for counts without an order."""
    if order:
        return order
    if has_count:
        return ""
    return statements.DATABASES_ORDER_BY % statements.FIELD_DATABASE_NAME


def schema_order_by(order: str, has_count: bool) -> str:
    """ORDER BY for schema listing; empty for counts without an order."""
    if order:
        return order
    if has_count:
        return ""
    return statements.SCHEMAS_ORDER_BY % statements.FIELD_SCHEMA_NAME


def table_clause() -> str:
    """SELECT part of the table listing query."""
    return statements.TABLES_SELECT


def table_where(request_where: str) -> str:
    """WHERE clause for table listing, extended by ``request_where``."""
    return _and(statements.TABLES_WHERE, request_where)


def table_order_by(order: str) -> str:
    """ORDER BY for table listing, defaulting to schema and name."""
    return order or statements.TABLES_ORDER_BY


def schema_tables_clause() -> str:
    """SELECT part of the query listing tables of one schema."""
    return statements.SCHEMA_TABLES_SELECT


def schema_tables_where(request_where: str) -> str:
    """WHERE clause for tables of one schema, extended by ``request_where``."""
    return _and(statements.SCHEMA_TABLES_WHERE, request_where)


def schema_tables_order_by(order: str) -> str:
    """ORDER BY for tables of one schema, defaulting to the table name."""
    return order or statements.SCHEMA_TABLES_ORDER_BY