# ============================================================
# SQLChat - Natural Language to SQL Chat Assistant
# core/sqlite_manager.py — SQLite Connection, Execution & Schema
# ============================================================

import time
import sqlite3
import threading
from dataclasses import dataclass
from typing import Optional, List, Dict, Any
from loguru import logger

from config import database_config
from utils.helpers import QueryType, classify_query

DEFAULT_ERROR_CODE = "SQLITE_ERROR"


class StoreUnavailable(Exception):
    """The store (or its catalog) could not be reached."""


@dataclass
class ExecutionError:
    """Backend error normalized to message / code / offending statement."""
    message: str
    code: str
    sql: str

    @classmethod
    def from_exception(cls, exc: Exception, sql: str) -> "ExecutionError":
        code = getattr(exc, "sqlite_errorname", None) or DEFAULT_ERROR_CODE
        return cls(message=str(exc), code=code, sql=sql)


class QueryResult:
    """Structured result from one statement execution."""

    def __init__(
        self,
        query: str,
        query_type: QueryType = QueryType.UNKNOWN,
        rows: Optional[List[Dict[str, Any]]] = None,
        changes: int = 0,
        last_insert_id: Optional[int] = None,
        error: Optional[ExecutionError] = None,
        execution_ms: int = 0,
    ):
        self.query = query
        self.query_type = query_type
        self.rows = rows or []
        self.changes = changes
        self.last_insert_id = last_insert_id
        self.error = error
        self.execution_ms = execution_ms

    @property
    def success(self) -> bool:
        return self.error is None

    def __repr__(self):
        if self.success:
            return f"<QueryResult OK rows={len(self.rows)} changes={self.changes} time={self.execution_ms}ms>"
        return f"<QueryResult ERROR: {self.error.message}>"


class SQLiteManager:
    """
    Owns the SQLite connection and provides statement execution
    (rows for reads, change counts for writes) plus schema extraction.

    One connection is shared across worker threads; every cursor use
    happens under ``self._lock``.
    """

    def __init__(self, path: Optional[str] = None, timeout: Optional[float] = None):
        self.path = path or database_config.path
        self.timeout = timeout if timeout is not None else database_config.timeout
        self._connection: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    # ── Connection Management ─────────────────────────────────

    def connect(self) -> None:
        """Open the database file (created if missing)."""
        try:
            self._connection = sqlite3.connect(
                self.path,
                timeout=self.timeout,
                check_same_thread=False,
                isolation_level=None,
            )
            self._connection.row_factory = sqlite3.Row
        except sqlite3.Error as e:
            logger.error(f"SQLite connection failed for {self.path}: {e}")
            raise StoreUnavailable(f"Cannot open database {self.path}: {e}") from e
        logger.info(f"Connected to SQLite database at {self.path}")

    def disconnect(self) -> None:
        """Close the connection gracefully."""
        if self._connection is None:
            return
        try:
            self._connection.close()
            logger.info("Disconnected from SQLite")
        except sqlite3.Error as e:
            logger.warning(f"Error during disconnect: {e}")
        finally:
            self._connection = None

    def is_connected(self) -> bool:
        return self._connection is not None

    def _conn(self) -> sqlite3.Connection:
        if self._connection is None:
            self.connect()
        return self._connection

    # ── Query Execution ───────────────────────────────────────

    def query(self, sql: str) -> QueryResult:
        """Execute a read statement and return every row as a dict."""
        start_time = time.time()
        try:
            with self._lock:
                cursor = self._conn().execute(sql)
                try:
                    rows = [dict(row) for row in cursor.fetchall()]
                finally:
                    cursor.close()
        except (sqlite3.Error, sqlite3.Warning, StoreUnavailable) as e:
            return self._failed(sql, QueryType.SELECT, e, start_time)

        elapsed = int((time.time() - start_time) * 1000)
        logger.debug(f"Query returned {len(rows)} rows in {elapsed}ms")
        return QueryResult(
            query=sql,
            query_type=QueryType.SELECT,
            rows=rows,
            execution_ms=elapsed,
        )

    def run(self, sql: str) -> QueryResult:
        """Execute a write / DDL statement and return the number of rows changed."""
        query_type = classify_query(sql)
        start_time = time.time()
        try:
            with self._lock:
                cursor = self._conn().execute(sql)
                try:
                    changes = cursor.rowcount if cursor.rowcount > 0 else 0
                    last_id = cursor.lastrowid
                finally:
                    cursor.close()
        except (sqlite3.Error, sqlite3.Warning, StoreUnavailable) as e:
            return self._failed(sql, query_type, e, start_time)

        elapsed = int((time.time() - start_time) * 1000)
        logger.debug(f"{query_type.value} changed {changes} rows in {elapsed}ms")
        return QueryResult(
            query=sql,
            query_type=query_type,
            changes=changes,
            last_insert_id=last_id,
            execution_ms=elapsed,
        )

    def _failed(self, sql: str, query_type: QueryType, exc: Exception, start_time: float) -> QueryResult:
        elapsed = int((time.time() - start_time) * 1000)
        error = ExecutionError.from_exception(exc, sql)
        logger.error(f"Query failed [{error.code}]: {error.message}\nQuery: {sql}")
        return QueryResult(
            query=sql,
            query_type=query_type,
            error=error,
            execution_ms=elapsed,
        )

    # ── Schema Introspection ──────────────────────────────────

    def list_tables(self) -> List[Dict[str, str]]:
        """Return ``{"name", "sql"}`` for every table in catalog order."""
        try:
            with self._lock:
                cursor = self._conn().execute(
                    "SELECT name, sql FROM sqlite_master WHERE type = 'table'"
                )
                try:
                    return [{"name": row["name"], "sql": row["sql"] or ""} for row in cursor.fetchall()]
                finally:
                    cursor.close()
        except sqlite3.Error as e:
            logger.error(f"Catalog query failed: {e}")
            raise StoreUnavailable(f"Cannot read schema catalog: {e}") from e

    def load_schema(self) -> str:
        """
        Render the current schema as text suitable for a system prompt:
        one ``Table: <name>`` / ``Schema: <definition>`` block per table.
        """
        tables = self.list_tables()
        schema = "\n\n".join(
            f"Table: {table['name']}\nSchema: {table['sql']}" for table in tables
        )
        logger.info(f"Schema loaded: {len(tables)} tables")
        return schema
