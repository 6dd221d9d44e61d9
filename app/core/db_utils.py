"""Database utilities shared by the pipeline stores.

- Retry of transient connection failures (serverless Postgres drops idle
  connections).
- Conflict-ignoring inserts, so uniqueness is enforced by the database
  rather than by a check-then-insert in application code.
"""

import logging
import time
from typing import Any, Callable, TypeVar

from sqlmodel import Session, SQLModel
from sqlalchemy import text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import (
    OperationalError,
    DisconnectionError,
    InterfaceError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors that indicate a transient connection failure (worth retrying)
TRANSIENT_ERRORS = (
    "server closed the connection unexpectedly",
    "connection refused",
    "connection reset by peer",
    "ssl connection has been closed unexpectedly",
    "terminating connection due to administrator command",
    "connection timed out",
    "could not connect to server",
    "the database system is starting up",
    "database is locked",
)


def is_transient_error(error: Exception) -> bool:
    """Check if an error is a transient connection failure."""
    error_msg = str(error).lower()
    return any(msg in error_msg for msg in TRANSIENT_ERRORS)


def execute_with_retry(
    engine,
    operation: Callable[[Session], T],
    max_retries: int = 3,
    base_delay: float = 0.5,
) -> T:
    """
    Run operation(session) in a fresh session, retrying transient failures.

    The operation owns its commit; a retry starts over with a new session.
    """
    last_error: Exception | None = None

    for attempt in range(max_retries + 1):
        try:
            with Session(engine) as session:
                return operation(session)
        except (OperationalError, DisconnectionError, InterfaceError) as e:
            last_error = e
            if not is_transient_error(e) or attempt >= max_retries:
                raise

            delay = base_delay * (2**attempt)
            logger.warning(
                f"[DB Retry] Operation failed (attempt {attempt + 1}/{max_retries + 1}): {e}. "
                f"Retrying in {delay:.1f}s..."
            )
            time.sleep(delay)

    raise last_error  # type: ignore[misc]


def insert_ignore(session: Session, table: type[SQLModel], values: dict[str, Any]) -> bool:
    """
    INSERT ... ON CONFLICT DO NOTHING for the session's dialect.

    Returns True if a row was inserted, False if a unique constraint or
    unique index already held a conflicting row.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(table).values(**values).on_conflict_do_nothing()
    elif dialect == "sqlite":
        stmt = sqlite.insert(table).values(**values).on_conflict_do_nothing()
    else:
        raise NotImplementedError(f"insert_ignore does not support dialect {dialect!r}")

    result = session.execute(stmt)
    return result.rowcount > 0


def check_db_connection(engine) -> bool:
    """
    Check if database connection is healthy.
    Returns True if connection is good, False otherwise.
    """
    try:
        with Session(engine) as session:
            session.execute(text("SELECT 1"))
            return True
    except Exception as e:
        logger.error(f"[DB Health] Connection check failed: {e}")
        return False
