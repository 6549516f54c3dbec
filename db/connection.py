"""
db/connection.py
----------------
Manages the PostgreSQL connection pool.
Uses psycopg2's ThreadedConnectionPool so any number of threads can share it.

Generated SQL uses PostgreSQL's `$n` placeholders; psycopg2 expects `%s`,
so every statement goes through `to_pyformat` on its way to the driver.
"""

import re
from typing import Any, Callable, Optional, Sequence

import psycopg2
from psycopg2 import pool, extras

from config import DATABASE_URL, DB_POOL_MAX, DB_POOL_MIN
from db.errors import QueryShapeError
from utils.logger import get_logger

logger = get_logger(__name__)

# Single-quoted and dollar-quoted literals (skipped as-is), or a $n placeholder.
_TOKEN_RE = re.compile(
    r"'(?:[^']|'')*'"
    r"|\$(?P<tag>(?:[A-Za-z_]\w*)?)\$.*?\$(?P=tag)\$"
    r"|\$(?P<index>\d+)",
    re.DOTALL,
)


def to_pyformat(sql: str, args: Optional[Sequence[Any]] = None) -> tuple[str, Optional[list]]:
    """
    Rewrite `$n` placeholders as psycopg2 `%s` markers.

    Parameters are emitted in the order their placeholders appear, so a
    reused `$n` binds its argument twice. `$n` inside single-quoted or
    dollar-quoted (`$$...$$`, `$tag$...$tag$`) literals is left alone, and
    a statement sent without arguments goes to the driver untouched. When
    anything is bound, literal `%` is escaped as `%%`.

    Returns:
        (query, params); params is None when nothing was bound.

    Raises:
        QueryShapeError: If a placeholder has no matching argument.
    """
    if not args:
        return sql, None
    args = list(args)
    params: list = []

    def _sub(match: re.Match) -> str:
        if match.group("index") is None:
            return match.group(0)
        index = int(match.group("index"))
        if index < 1 or index > len(args):
            raise QueryShapeError(f"Placeholder ${index} has no argument ({len(args)} given)")
        params.append(args[index - 1])
        return "%s"

    text = _TOKEN_RE.sub(_sub, sql.replace("%", "%%"))
    if not params:
        return sql, None
    return text, params


def _run(conn, sql: str, args: Optional[Sequence[Any]]) -> list[dict]:
    """Execute on `conn` and return rows as dicts ([] if no result set)."""
    query, params = to_pyformat(sql, args)
    with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
        cur.execute(query, params)
        if cur.description is None:
            return []
        return [dict(r) for r in cur.fetchall()]


class Session:
    """
    One checked-out connection in autocommit mode.

    Transaction boundaries are issued explicitly as BEGIN / COMMIT /
    ROLLBACK statements. Call `release()` to hand the connection back.
    """

    def __init__(self, conn, release: Callable[[Any], None]):
        self._conn = conn
        self._release = release
        self.released = False

    def query(self, sql: str, args: Optional[Sequence[Any]] = None) -> list[dict]:
        return _run(self._conn, sql, args)

    def release(self) -> None:
        if self.released:
            return
        self.released = True
        self._release(self._conn)


class Pool:
    """Shared set of PostgreSQL connections."""

    def __init__(self, dsn: str, min_conn: int = 1, max_conn: int = 5):
        """
        Open the pool.

        Args:
            dsn: libpq connection string or URL.
            min_conn: Minimum number of connections to keep open.
            max_conn: Maximum number of connections allowed.

        Raises:
            psycopg2.OperationalError: If the database is unreachable.
        """
        try:
            self._pool = pool.ThreadedConnectionPool(min_conn, max_conn, dsn)
            logger.info("Database connection pool initialized successfully.")
        except psycopg2.OperationalError as e:
            logger.error(f"Failed to initialize database pool: {e}")
            raise
        self._closed = False

    def _getconn(self):
        if self._closed:
            raise RuntimeError("Database pool is closed.")
        return self._pool.getconn()

    def query(self, sql: str, args: Optional[Sequence[Any]] = None) -> list[dict]:
        """
        Run one statement on any free connection and commit it.

        Returns:
            Result rows as dicts; an empty list for statements without rows.
        """
        conn = self._getconn()
        try:
            rows = _run(conn, sql, args)
            conn.commit()
            return rows
        except Exception as e:
            conn.rollback()
            logger.error(f"Query failed: {e}")
            raise
        finally:
            self._pool.putconn(conn)

    def connect(self) -> Session:
        """Check out a dedicated connection for explicit transaction control."""
        conn = self._getconn()
        try:
            conn.autocommit = True
        except Exception as e:
            logger.error(f"Could not switch connection to autocommit: {e}")
            self._pool.putconn(conn, close=True)
            raise
        return Session(conn, self._release_session)

    def _release_session(self, conn) -> None:
        if not conn.closed:
            conn.autocommit = False
        self._pool.putconn(conn, close=bool(conn.closed))

    def close(self) -> None:
        """Close all connections in the pool."""
        if self._closed:
            return
        self._pool.closeall()
        self._closed = True
        logger.info("Database connection pool closed.")


def init_pool(
    min_conn: int = DB_POOL_MIN,
    max_conn: int = DB_POOL_MAX,
    dsn: str = DATABASE_URL,
) -> Pool:
    """Build a Pool from configuration defaults."""
    return Pool(dsn, min_conn, max_conn)
