"""
Error taxonomy for the Call Metrics analytics engine.

Four failure shapes are distinguished so callers can tell "no data" apart
from "data layer is down":

- InvalidRequestError: malformed input, raised before any fetch is issued.
- DataStoreUnavailableError: the call data store cannot be reached at all.
- AllFetchesFailedError: every task in a fan-out run failed, so an all-zero
  result would be misleading.
- Per-task fetch failures never raise; the orchestrator counts them and
  substitutes an empty aggregate.

Degenerate division is never an error (see services.metrics.safe_divide).
"""

from typing import Optional


class CallMetricsError(Exception):
    """Base class for all engine errors."""


class InvalidRequestError(CallMetricsError, ValueError):
    """Raised when a request cannot be interpreted (unknown comparison type, bad date, bad client)."""


class DataStoreUnavailableError(CallMetricsError):
    """Raised when the call data store is unavailable as a whole."""


class AllFetchesFailedError(DataStoreUnavailableError):
    """
    Raised when every task of a non-empty fan-out run failed.

    Attributes:
        total: Number of tasks in the run.
        last_error: The last per-task error observed, for diagnostics.
    """

    def __init__(self, total: int, last_error: Optional[Exception] = None):
        self.total = total
        self.last_error = last_error
        detail = f": {last_error}" if last_error is not None else ""
        super().__init__(f"All {total} fetch tasks failed{detail}")
