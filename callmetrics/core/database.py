"""
Async PostgreSQL connection pool for the call data store.

Provides a process-wide asyncpg pool singleton. The pool is opened in the
FastAPI lifespan and shared by every PostgresCallDataStore instance, so the
fan-out orchestrator's concurrent fetches draw connections from one bounded
pool (db_pool_max_size caps real database parallelism regardless of the
orchestrator's concurrency ceiling).

Usage:
    # At application startup (in FastAPI lifespan)
    await init_db()

    # In services
    rows = await execute_query("SELECT 1 WHERE $1::int > 0", 1)

    # At application shutdown
    await close_db()
"""

from typing import Any, List, Optional

import asyncpg
from asyncpg import Pool

from callmetrics.core.config import get_settings


# =============================================================================
# Global Pool Singleton
# =============================================================================

# None until init_db() is called
_pool: Optional[Pool] = None


# =============================================================================
# Pool Lifecycle Functions
# =============================================================================


async def init_db() -> Pool:
    """
    Initialize the database connection pool.

    Idempotent: returns the existing pool when already initialized.

    Returns:
        Pool: The asyncpg connection pool instance.

    Raises:
        asyncpg.PostgresError: If connection to the database fails.
        OSError: If the database host is unreachable.
    """
    global _pool

    if _pool is None:
        settings = get_settings()
        _pool = await asyncpg.create_pool(
            dsn=settings.database_url,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
            command_timeout=settings.db_command_timeout,
        )

    return _pool


async def get_db_pool() -> Pool:
    """
    Get the database connection pool, initializing it lazily if needed.

    Returns:
        Pool: The asyncpg connection pool instance.
    """
    global _pool

    if _pool is None:
        await init_db()

    assert _pool is not None, "Pool should be initialized after init_db()"
    return _pool


async def close_db() -> None:
    """Close the pool gracefully. Safe to call when the pool was never opened."""
    global _pool

    if _pool is not None:
        await _pool.close()
        _pool = None


# =============================================================================
# Query Execution Helpers
# =============================================================================


async def execute_query(query: str, *args: Any) -> List[asyncpg.Record]:
    """
    Execute a single query and return all rows.

    Args:
        query: SQL with $1, $2, ... placeholders.
        *args: Positional parameters matching the placeholders.

    Returns:
        List[asyncpg.Record]: Rows returned by the query.
    """
    pool = await get_db_pool()
    async with pool.acquire() as conn:
        return await conn.fetch(query, *args)
