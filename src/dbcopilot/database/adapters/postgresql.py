"""PostgreSQL database adapter implementation."""

import asyncio
import logging
from contextlib import closing, contextmanager
from typing import Any, Iterator

import psycopg2
import psycopg2.extras
from psycopg2.pool import ThreadedConnectionPool

from ...constants import (
    POOL_CONNECT_TIMEOUT,
    POOL_MAX_CONNECTIONS,
    POSTGRES_SCHEMA,
    POSTGRES_SSL_MARKER,
    SOURCE_POSTGRES,
    SQL_EXECUTION_ERROR,
    STATEMENT_TIMEOUT,
)
from ...errors import UnsupportedMode
from ...models import ConnectionCredential, ExecutionResult, UnifiedSchema, ValidationResult
from ..connection import PoolHandle
from ..logging import QueryTimer, log_query_execution, sanitize_dsn
from ..schema import normalize_relational_schema
from ..validation import validate_sql
from .base import BaseAdapter

logger = logging.getLogger(__name__)

SELECT_TABLES = """
    SELECT table_name
    FROM information_schema.tables
    WHERE table_schema = %s
      AND table_type = 'BASE TABLE'
"""

SELECT_COLUMNS = """
    SELECT table_name, column_name, data_type, is_nullable, ordinal_position
    FROM information_schema.columns
    WHERE table_schema = %s
    ORDER BY table_name, ordinal_position
"""

SELECT_PRIMARY_KEYS = """
    SELECT tc.table_name, kcu.column_name
    FROM information_schema.table_constraints tc
    JOIN information_schema.key_column_usage kcu
      ON tc.constraint_name = kcu.constraint_name
      AND tc.table_schema = kcu.table_schema
    WHERE tc.constraint_type = 'PRIMARY KEY'
      AND tc.table_schema = %s
    ORDER BY tc.table_name, kcu.ordinal_position
"""

SELECT_FOREIGN_KEYS = """
    SELECT
      tc.table_name AS source_table,
      kcu.column_name AS source_column,
      ccu.table_name AS target_table,
      ccu.column_name AS target_column
    FROM information_schema.table_constraints tc
    JOIN information_schema.key_column_usage kcu
      ON tc.constraint_name = kcu.constraint_name
      AND tc.table_schema = kcu.table_schema
    JOIN information_schema.constraint_column_usage ccu
      ON ccu.constraint_name = tc.constraint_name
      AND ccu.table_schema = tc.table_schema
    WHERE tc.constraint_type = 'FOREIGN KEY'
      AND tc.table_schema = %s
"""

# Every session is read-only and bounded by a statement timeout
SESSION_OPTIONS = (
    "-c default_transaction_read_only=on "
    f"-c statement_timeout={int(STATEMENT_TIMEOUT * 1000)}"
)


def native_connect_kwargs(config: dict[str, Any]) -> dict[str, Any]:
    """Merge the session settings into a connection config for psycopg2."""
    return {
        **config,
        "connect_timeout": int(POOL_CONNECT_TIMEOUT),
        "options": SESSION_OPTIONS,
    }


class PostgresPool(PoolHandle):
    """Thread-safe psycopg2 pool registered in the ConnectionRegistry."""

    def __init__(self, pool: ThreadedConnectionPool, label: str):
        self.pool = pool
        self.label = label

    @contextmanager
    def connection(self) -> Iterator[Any]:
        """Borrow a connection, always ending its transaction before return."""
        conn = self.pool.getconn()
        try:
            yield conn
        finally:
            try:
                conn.rollback()
            finally:
                self.pool.putconn(conn)

    def fetch_all(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        """Run a catalog query and return rows as plain dicts."""
        with self.connection() as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
                cursor.execute(sql, params)
                return [dict(row) for row in cursor.fetchall()]

    def close(self) -> None:
        if not self.pool.closed:
            self.pool.closeall()
            logger.info(f"Closed PostgreSQL pool for {self.label}")


class PostgreSQLAdapter(BaseAdapter):
    """PostgreSQL database adapter with read-only enforcement."""

    source = SOURCE_POSTGRES
    display_name = "Postgres"
    driver_errors = (psycopg2.Error,)

    def build_connection_config(self, credential: ConnectionCredential) -> dict[str, Any]:
        """Build psycopg2 connection keywords.

        Args:
            credential: Postgres credential in url or parameters mode

        Returns:
            ``{"dsn": ...}`` for url mode (plus ``sslmode`` when the string
            requires it), or host/port/dbname/user/password keywords

        Raises:
            UnsupportedMode: If the mode is not url or parameters
        """
        if credential.mode == "url":
            config = {"dsn": credential.connection_string}
            if POSTGRES_SSL_MARKER in credential.connection_string:
                config["sslmode"] = "require"
            return config

        if credential.mode == "parameters":
            config = {
                "host": credential.host,
                "port": credential.port,
                "dbname": credential.database,
                "user": credential.username,
                "password": credential.password,
            }
            if credential.ssl:
                config["sslmode"] = "require"
            return config

        raise UnsupportedMode("Unsupported connection mode for Postgres")

    def validate_query(self, query: Any) -> ValidationResult:
        return validate_sql(query)

    def _describe(self, config: dict[str, Any]) -> str:
        if "dsn" in config:
            return config["dsn"]
        user_part = f"{config.get('user')}@" if config.get("user") else ""
        return f"postgresql://{user_part}{config.get('host')}:{config.get('port')}/{config.get('dbname')}"

    def _probe(self, config: dict[str, Any]) -> None:
        with closing(psycopg2.connect(**native_connect_kwargs(config))) as conn:
            with conn.cursor() as cursor:
                cursor.execute("SELECT NOW()")
                row = cursor.fetchone()
        logger.info(f"Postgres connection successful, server time {row[0] if row else None}")

    def _open_pool(self, config: dict[str, Any]) -> PoolHandle:
        pool = ThreadedConnectionPool(1, POOL_MAX_CONNECTIONS, **native_connect_kwargs(config))
        return PostgresPool(pool, sanitize_dsn(self._describe(config)))

    def _verify_pool(self, handle: PoolHandle) -> None:
        with handle.connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute("SELECT NOW()")
                cursor.fetchone()

    async def introspect_schema(self, database_id: str) -> UnifiedSchema:
        """Read tables, columns and key constraints of the public schema.

        The four catalog queries run concurrently, each on its own pooled
        connection.

        Raises:
            NoActiveConnection: If the database is not connected
        """
        handle = self._require_pool(database_id)
        params = (POSTGRES_SCHEMA,)

        tables, columns, primary_keys, foreign_keys = await asyncio.gather(
            asyncio.to_thread(handle.fetch_all, SELECT_TABLES, params),
            asyncio.to_thread(handle.fetch_all, SELECT_COLUMNS, params),
            asyncio.to_thread(handle.fetch_all, SELECT_PRIMARY_KEYS, params),
            asyncio.to_thread(handle.fetch_all, SELECT_FOREIGN_KEYS, params),
        )

        schema = normalize_relational_schema(tables, columns, primary_keys, foreign_keys)
        logger.info(f"Introspected {len(schema.tables)} tables for database {database_id}")
        return schema

    def _run(self, handle: PostgresPool, sql: str) -> tuple[list[dict[str, Any]], int]:
        with handle.connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute(sql)
                names = [column[0] for column in cursor.description or []]
                data = [dict(zip(names, row)) for row in cursor.fetchall()]
                count = cursor.rowcount if cursor.rowcount >= 0 else len(data)
        return data, count

    async def execute_query(self, payload: Any, handle: PoolHandle) -> ExecutionResult:
        """Validate and run one read-only SQL statement.

        Args:
            payload: SQL string, or ``{"query": <sql>}``
            handle: Registered PostgresPool

        Returns:
            ExecutionResult; validation rejections carry their reason,
            runtime failures carry a fixed message (driver error only logged)
        """
        query = payload.get("query") if isinstance(payload, dict) else payload
        label = getattr(handle, "label", self.source)

        with QueryTimer() as timer:
            if not isinstance(query, str):
                return ExecutionResult(False, error="Query cannot be empty", execution_time_ms=timer.duration_ms)

            clean_sql = query.strip()
            if clean_sql.endswith(";"):
                clean_sql = clean_sql[:-1]

            validation = self.validate_query(clean_sql)
            if not validation.is_valid:
                log_query_execution(
                    query=clean_sql,
                    target=label,
                    success=False,
                    duration_ms=timer.duration_ms,
                    error=validation.error,
                    blocked=True,
                )
                return ExecutionResult(False, error=validation.error, execution_time_ms=timer.duration_ms)

            try:
                data, count = await asyncio.to_thread(self._run, handle, clean_sql)
            except Exception as e:
                logger.error(f"SQL execution error: {e}")
                log_query_execution(
                    query=clean_sql,
                    target=label,
                    success=False,
                    duration_ms=timer.duration_ms,
                    error=str(e),
                )
                return ExecutionResult(False, error=SQL_EXECUTION_ERROR, execution_time_ms=timer.duration_ms)

        log_query_execution(
            query=clean_sql,
            target=label,
            success=True,
            row_count=len(data),
            duration_ms=timer.duration_ms,
        )
        return ExecutionResult(True, data=data, count=count, execution_time_ms=timer.duration_ms)
