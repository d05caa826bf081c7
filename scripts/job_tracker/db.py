from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, TypeVar

import psycopg2
import psycopg2.extras
import psycopg2.pool

from .config import PipelineConfig
from .errors import PersistenceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class QueryResult:
    rows: List[Dict[str, Any]] = field(default_factory=list)
    rowcount: int = 0


def _execute(conn, sql: str, params: Optional[Sequence[Any]]) -> QueryResult:
    with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
        cur.execute(sql, params)
        rows = [dict(row) for row in cur.fetchall()] if cur.description else []
        return QueryResult(rows=rows, rowcount=cur.rowcount)


def _rollback(conn) -> None:
    if conn.closed:
        return
    try:
        conn.rollback()
    except psycopg2.Error as exc:
        logger.warning("Rollback failed: %s", str(exc).strip())


class Transaction:
    """Query handle bound to one connection inside with_transaction."""

    def __init__(self, conn) -> None:
        self._conn = conn

    def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> QueryResult:
        try:
            return _execute(self._conn, sql, params)
        except psycopg2.Error as exc:
            raise PersistenceError(str(exc).strip()) from exc


class Storage:
    """Lazily created, bounded connection pool with idle recycling."""

    def __init__(
        self,
        dsn: str,
        *,
        max_connections: int = 10,
        idle_timeout_seconds: float = 30.0,
        ssl: bool = False,
    ) -> None:
        if not dsn:
            raise PersistenceError(
                "Missing DATABASE_URL (or DB_HOST/DB_PORT/DB_USER/DB_PASSWORD/DB_NAME) in environment."
            )
        self.dsn = dsn
        self.max_connections = max(1, max_connections)
        self.idle_timeout_seconds = idle_timeout_seconds
        self.ssl = ssl
        self._pool: Optional[psycopg2.pool.ThreadedConnectionPool] = None
        self._lock = threading.Lock()
        self._checked_out = 0
        self._last_release = time.monotonic()

    def _get_pool(self) -> psycopg2.pool.ThreadedConnectionPool:
        with self._lock:
            idle_for = time.monotonic() - self._last_release
            if self._pool is not None and self._checked_out == 0 and idle_for > self.idle_timeout_seconds:
                logger.debug("Recycling idle connections after %.0fs", idle_for)
                self._pool.closeall()
                self._pool = None
            if self._pool is None:
                kwargs: Dict[str, Any] = {}
                if self.ssl:
                    kwargs["sslmode"] = "require"
                try:
                    self._pool = psycopg2.pool.ThreadedConnectionPool(
                        0, self.max_connections, self.dsn, **kwargs
                    )
                except psycopg2.Error as exc:
                    raise PersistenceError(f"Cannot connect to database: {exc}".strip()) from exc
            return self._pool

    @contextmanager
    def connection(self) -> Iterator[Any]:
        pool = self._get_pool()
        try:
            conn = pool.getconn()
        except (psycopg2.Error, psycopg2.pool.PoolError) as exc:
            raise PersistenceError(f"Cannot acquire connection: {exc}".strip()) from exc
        with self._lock:
            self._checked_out += 1
        broken = False
        try:
            yield conn
        except psycopg2.InterfaceError:
            broken = True
            raise
        finally:
            pool.putconn(conn, close=broken or bool(conn.closed))
            with self._lock:
                self._checked_out -= 1
                self._last_release = time.monotonic()

    def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> QueryResult:
        with self.connection() as conn:
            try:
                result = _execute(conn, sql, params)
                conn.commit()
                return result
            except psycopg2.Error as exc:
                _rollback(conn)
                raise PersistenceError(str(exc).strip()) from exc

    def with_transaction(self, fn: Callable[[Transaction], T]) -> T:
        with self.connection() as conn:
            try:
                result = fn(Transaction(conn))
                conn.commit()
                return result
            except psycopg2.Error as exc:
                _rollback(conn)
                raise PersistenceError(str(exc).strip()) from exc
            except Exception:
                _rollback(conn)
                raise

    def close(self) -> None:
        with self._lock:
            if self._pool is not None:
                self._pool.closeall()
                self._pool = None


_STORAGE: Optional[Storage] = None
_STORAGE_LOCK = threading.Lock()


def get_storage(cfg: PipelineConfig) -> Storage:
    global _STORAGE
    with _STORAGE_LOCK:
        if _STORAGE is None:
            _STORAGE = Storage(
                cfg.database_url,
                max_connections=cfg.db_pool_max,
                idle_timeout_seconds=cfg.db_idle_timeout_seconds,
                ssl=cfg.db_ssl,
            )
        return _STORAGE


def close_storage() -> None:
    global _STORAGE
    with _STORAGE_LOCK:
        if _STORAGE is not None:
            _STORAGE.close()
            _STORAGE = None
