"""
connection
==========

PostgreSQL connection helpers.

This module is responsible for opening the two catalog connections (source and
target) with ``psycopg2`` and exposing them through a narrow interface:

- input: SQL + parameters
- output: a list of row dicts

Everything above this module (collectors, comparators, orchestrator) only sees
the :class:`QueryRunner` protocol, which keeps the comparison logic testable
with an in-memory runner.

Connections are opened read-only in autocommit mode; the tool never writes to
either database.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Protocol, Sequence, Tuple

import psycopg2
from psycopg2.extras import RealDictCursor

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT_SECONDS = 10


class QueryRunner(Protocol):
    """Anything that can run a parameterized catalog query."""

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        ...


@dataclass(frozen=True)
class PgTarget:
    """Connection settings for one side of the comparison.

    Parameters
    ----------
    host, port, database, user, password:
        Standard libpq connection parameters.
    schema:
        Schema compared on this side.
    label:
        Human label for logs (``source`` or ``target``).
    connect_timeout:
        Seconds to wait for the connection to be established.
    """

    host: str
    port: int
    database: str
    user: str
    password: str
    schema: str
    label: str
    connect_timeout: int = DEFAULT_CONNECT_TIMEOUT_SECONDS

    def describe(self) -> str:
        """Return a human-readable description for logs/reports (no password)."""
        return (
            f"{self.label.upper()}: host={self.host}:{self.port} "
            f"db={self.database} user={self.user} schema={self.schema}"
        )


class PgConnection:
    """:class:`QueryRunner` backed by a psycopg2 connection."""

    def __init__(self, raw: Any, label: str = "") -> None:
        self._raw = raw
        self.label = label

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        with self._raw.cursor(cursor_factory=RealDictCursor) as cursor:
            cursor.execute(sql, tuple(params))
            return [dict(row) for row in cursor.fetchall()]

    def close(self) -> None:
        if not self._raw.closed:
            self._raw.close()


def connect(target: PgTarget) -> PgConnection:
    """Open a read-only autocommit connection for *target*.

    Raises
    ------
    psycopg2.Error
        If the connection cannot be established. Not caught here.
    """
    logger.debug("Connecting: %s", target.describe())
    raw = psycopg2.connect(
        host=target.host,
        port=target.port,
        dbname=target.database,
        user=target.user,
        password=target.password,
        connect_timeout=target.connect_timeout,
    )
    raw.set_session(readonly=True, autocommit=True)
    return PgConnection(raw, label=target.label)


@contextmanager
def open_connections(
    source: PgTarget,
    target: PgTarget,
    connector: Callable[[PgTarget], PgConnection] = connect,
) -> Iterator[Tuple[PgConnection, PgConnection]]:
    """Open both connections and close each exactly once on exit.

    If opening the target fails, the already opened source connection is
    closed before the error propagates.
    """
    source_conn: Optional[PgConnection] = None
    target_conn: Optional[PgConnection] = None
    try:
        source_conn = connector(source)
        target_conn = connector(target)
        yield source_conn, target_conn
    finally:
        for conn in (source_conn, target_conn):
            if conn is not None:
                conn.close()
        logger.debug("Connections closed")


Q_CONNECTION_TEST = (
    "SELECT current_database() AS database, current_user AS username, "
    "EXISTS (SELECT 1 FROM information_schema.schemata WHERE schema_name = %s) AS has_schema"
)


class SchemaNotFoundError(RuntimeError):
    """The compared schema does not exist (or is not visible) on one side."""


def connection_test(conn: QueryRunner, schema: str) -> Tuple[bool, str]:
    """Perform a lightweight connectivity test.

    Returns
    -------
    tuple[bool, str]
        ``(ok, message)``; ``ok`` is False when *schema* does not exist.
    """
    rows = conn.fetch_all(Q_CONNECTION_TEST, (schema,))
    if not rows:
        return False, "no response"
    row = rows[0]
    message = f"database={row.get('database')} user={row.get('username')} schema={schema}"
    if not row.get("has_schema"):
        return False, f"{message} (schema not found)"
    return True, message


def require_schema(conn: QueryRunner, target: PgTarget) -> None:
    """Raise :class:`SchemaNotFoundError` unless ``target.schema`` exists on *conn*."""
    ok, message = connection_test(conn, target.schema)
    if not ok:
        raise SchemaNotFoundError(f"{target.label}: {message}")
    logger.info("Connection OK (%s): %s", target.label, message)
