"""
Core infrastructure for the Call Metrics backend.

Exposes configuration, the asyncpg pool lifecycle, the injectable TTL cache
and the engine error taxonomy.
"""

from callmetrics.core.config import Settings, get_settings
from callmetrics.core.exceptions import (
    CallMetricsError,
    InvalidRequestError,
    DataStoreUnavailableError,
    AllFetchesFailedError,
)

__all__ = [
    "Settings",
    "get_settings",
    "CallMetricsError",
    "InvalidRequestError",
    "DataStoreUnavailableError",
    "AllFetchesFailedError",
]
