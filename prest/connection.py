"""Connection settings and a per-database pool of open connections."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable


class DatabaseUnavailableError(Exception):
    """Raised when a connection to the database cannot be opened."""


@dataclass
class ConnectionSettings:
    """Parameters used to build a PostgreSQL connection string."""

    user: str = "postgres"
    database: str = "prest"
    host: str = "127.0.0.1"
    port: int = 5432
    ssl_mode: str = "disable"
    connect_timeout: int = 10
    password: str = ""
    ssl_cert: str = ""
    ssl_key: str = ""
    ssl_root_cert: str = ""


Connector = Callable[[str], Any]


class ConnectionPool:
    """Caches one connection per database, keyed by its connection string.

    ``connect`` is called with a connection string and must return an open
    connection; ``database`` is the database currently in use.
    """

    def __init__(
        self,
        settings: ConnectionSettings | None = None,
        connect: Connector | None = None,
    ) -> None:
        self.settings = settings or ConnectionSettings()
        self.database = ""
        self._connect = connect
        self._lock = threading.Lock()
        self._connections: dict[str, Any] = {}

    def uri(self, db_name: str) -> str:
        """Return the connection string for ``db_name`` (or the default database)."""
        s = self.settings
        name = db_name or s.database
        uri = (
            f"user={s.user} dbname={name} host={s.host} port={s.port} "
            f"sslmode={s.ssl_mode} connect_timeout={s.connect_timeout}"
        )
        extras = (
            ("password", s.password),
            ("sslcert", s.ssl_cert),
            ("sslkey", s.ssl_key),
            ("sslrootcert", s.ssl_root_cert),
        )
        for key, value in extras:
            if value:
                uri += f" {key}={value}"
        return uri

    def get(self) -> Any:
        """Return the connection for the current database, opening it if needed."""
        key = self.uri(self.database)
        with self._lock:
            existing = self._connections.get(key)
        if existing is not None:
            return existing
        if self._connect is None:
            raise DatabaseUnavailableError("no database connector configured")
        try:
            connection = self._connect(key)
        except Exception as exc:
            raise DatabaseUnavailableError(str(exc)) from exc
        self.add(self.database, connection)
        return connection

    def must_get(self) -> Any:
        """Like :meth:`get`, but a failure is treated as fatal."""
        try:
            return self.get()
        except DatabaseUnavailableError as exc:
            raise RuntimeError(f"Unable to connect to database: {exc}") from exc

    def add(self, name: str, connection: Any) -> None:
        """Store ``connection`` as the pooled connection for database ``name``."""
        key = self.uri(name)
        with self._lock:
            self._connections[key] = connection