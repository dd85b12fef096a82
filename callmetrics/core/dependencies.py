"""
FastAPI dependency injection for the Call Metrics backend.

Provides the Settings singleton, the process-wide TTL cache and a
PostgresCallDataStore bound to the shared asyncpg pool. Routes receive these
through Annotated aliases so tests can swap any of them with
``app.dependency_overrides``.
"""

from typing import Annotated

from fastapi import Depends

from callmetrics.core.cache import TTLCache
from callmetrics.core.config import Settings, get_settings
from callmetrics.services.data_store import CallDataStore, PostgresCallDataStore


# =============================================================================
# Shared cache
# =============================================================================

# One cache per process; holds the available-client list and comparison results
_cache = TTLCache(default_ttl_seconds=get_settings().response_cache_ttl_seconds)


def get_settings_dependency() -> Settings:
    """Return the Settings singleton (overridable in tests)."""
    return get_settings()


def get_cache() -> TTLCache:
    """Return the process-wide TTL cache."""
    return _cache


def get_data_store(
    settings: Annotated[Settings, Depends(get_settings_dependency)],
    cache: Annotated[TTLCache, Depends(get_cache)],
) -> CallDataStore:
    """
    Build the call data store used by the analytics services.

    The store is cheap to construct; connections come from the shared pool
    opened in the application lifespan.
    """
    return PostgresCallDataStore(settings=settings, cache=cache)


# =============================================================================
# Type Aliases for Dependency Injection
# =============================================================================

SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]

CacheDep = Annotated[TTLCache, Depends(get_cache)]

DataStoreDep = Annotated[CallDataStore, Depends(get_data_store)]
