"""
Pooled query helpers used by the triage repositories.

Each helper borrows one connection for one statement and turns driver
errors into DatabaseError tagged with the helper's operation name.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import psycopg

from priority_inbox.db.pool import get_db_connection
from priority_inbox.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DatabaseError(Exception):
    """Raised when a query fails; carries the helper that ran it."""

    def __init__(self, message: str, operation: str = "unknown"):
        super().__init__(message)
        self.operation = operation


@contextmanager
def _translate_errors(operation: str, query: str) -> Iterator[None]:
    try:
        yield
    except psycopg.Error as e:
        logger.error("Query failed", operation=operation, query=query[:100], error=str(e))
        raise DatabaseError(f"Query failed: {e}", operation=operation) from e


async def fetch_one(query: str, params: tuple = ()) -> dict[str, Any] | None:
    """First row of the result as a dict, or None when the query matched nothing."""
    with _translate_errors("fetch_one", query):
        async with await get_db_connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                return await cur.fetchone()


async def fetch_all(query: str, params: tuple = ()) -> list[dict[str, Any]]:
    with _translate_errors("fetch_all", query):
        async with await get_db_connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                return await cur.fetchall()


async def execute_query(query: str, params: tuple = ()) -> int:
    """Run a write and return the affected row count."""
    with _translate_errors("execute", query):
        async with await get_db_connection() as conn:
            cursor = await conn.execute(query, params)
            return cursor.rowcount
