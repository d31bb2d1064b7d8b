"""Structured logging for database operations."""

import hashlib
import json
import logging
import re
import time
from typing import Any, Optional

# Configure logger for database operations
db_logger = logging.getLogger("dbcopilot.database")

# Matches the rejection reasons produced by the validators
BLOCKED_OPERATION_PATTERN = re.compile(r"forbidden operation: (\w+)|Operator (\$\w+)")


def sanitize_dsn(dsn: str) -> str:
    """Sanitize DSN by removing credentials.

    Args:
        dsn: Database connection string

    Returns:
        DSN with credentials masked
    """
    # Replace everything between :// and @
    return re.sub(r'://([^@/]+)@', '://***:***@', dsn)


def query_text(query: Any) -> str:
    """Render a SQL string or aggregation pipeline as text for logging."""
    if isinstance(query, str):
        return query
    return json.dumps(query, default=str, sort_keys=True)


def hash_query(query: Any) -> str:
    """Generate hash of query for logging (deduplication).

    Args:
        query: SQL statement or aggregation pipeline

    Returns:
        SHA256 hash of query (first 16 characters)
    """
    return hashlib.sha256(query_text(query).encode()).hexdigest()[:16]


def log_connection(target: str, success: bool, error: Optional[str] = None, duration: float = 0.0) -> None:
    """Log database connection attempt.

    Args:
        target: Database id or connection string (will be sanitized)
        success: Whether connection succeeded
        error: Error message if failed
        duration: Connection time in seconds
    """
    log_data = {
        "event": "database_connection",
        "target": sanitize_dsn(target),
        "success": success,
        "duration_seconds": round(duration, 3),
    }

    if error:
        log_data["error"] = error

    if success:
        db_logger.info(json.dumps(log_data))
    else:
        db_logger.error(json.dumps(log_data))


def log_query_execution(
    query: Any,
    target: str,
    success: bool,
    row_count: int = 0,
    duration_ms: int = 0,
    error: Optional[str] = None,
    blocked: bool = False
) -> None:
    """Log query execution with metadata.

    Security audit: Blocked queries are logged at WARNING level with the
    query hash and the rejected operation for security monitoring.

    Args:
        query: SQL statement or pipeline (hashed, preview truncated)
        target: Database label the query ran against (will be sanitized)
        success: Whether query executed successfully
        row_count: Number of rows returned
        duration_ms: Query execution time in milliseconds
        error: Error message if failed (logged only, never returned)
        blocked: Whether query was blocked by validation
    """
    text = query_text(query)
    log_data = {
        "event": "query_execution",
        "query_hash": hash_query(query),
        "query_preview": text[:100] + ("..." if len(text) > 100 else ""),
        "target": sanitize_dsn(target),
        "success": success,
        "blocked": blocked,
        "row_count": row_count,
        "duration_ms": duration_ms,
        "timestamp": time.time(),
    }

    if error:
        log_data["error"] = error

    # Security audit: Log blocked operations for monitoring
    if blocked:
        match = BLOCKED_OPERATION_PATTERN.search(error or "")
        if match:
            log_data["blocked_operation"] = match.group(1) or match.group(2)
        db_logger.warning(json.dumps(log_data))
    elif success:
        db_logger.info(json.dumps(log_data))
    else:
        db_logger.error(json.dumps(log_data))


def log_pool_operation(database_id: str, operation: str, active_pools: int, failures: int = 0) -> None:
    """Log connection registry operations.

    Args:
        database_id: Database id the operation applies to ("*" for all)
        operation: Operation type (set, remove, clear_all, replace)
        active_pools: Number of registered pools after the operation
        failures: Number of teardown failures during the operation
    """
    log_data = {
        "event": "connection_pool",
        "database_id": database_id,
        "operation": operation,
        "active_pools": active_pools,
    }

    if failures:
        log_data["teardown_failures"] = failures
        db_logger.warning(json.dumps(log_data))
    else:
        db_logger.debug(json.dumps(log_data))


class QueryTimer:
    """Context manager for timing query execution.

    ``duration_ms`` is also readable while the block is still running, so
    exception handlers inside the block can report elapsed time.
    """

    def __init__(self):
        self.start_time: float = 0.0
        self.end_time: Optional[float] = None

    @property
    def duration(self) -> float:
        end = self.end_time if self.end_time is not None else time.monotonic()
        return end - self.start_time

    @property
    def duration_ms(self) -> int:
        return int(self.duration * 1000)

    def __enter__(self):
        self.start_time = time.monotonic()
        self.end_time = None
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.end_time = time.monotonic()
