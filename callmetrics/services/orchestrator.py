"""
Bounded-concurrency fan-out over (client, window) fetch tasks.

The orchestrator is the only place concurrency enters the engine. Each task
calls the data store collaborator for one client and one time window; all
classification, derivation and reduction happen afterwards, synchronously.

Failure policy (best effort):
- A task that raises or exceeds its timeout is logged at WARNING, counted in
  FetchReport.failures and contributes ``empty_value`` (an all-zero aggregate).
  One failing client never aborts the run.
- If every task of a non-empty run fails, AllFetchesFailedError is raised, so
  "the data layer is down" is never reported as a plausible all-zero period.
- Cancellation (client disconnect, outer timeout) propagates: in-flight
  fetches are cancelled and no partial result is returned.

Result ordering is irrelevant to callers because the reducer is commutative;
outcomes are nevertheless returned in task order.

Usage:
    orchestrator = FetchOrchestrator(
        store.fetch_period_aggregates,
        concurrency=settings.client_batch_size,
        timeout_seconds=settings.fetch_timeout_seconds,
        empty_value=EMPTY_PERIOD,
    )
    report = await orchestrator.run(tasks)
    current = sum_period_aggregates(report.values_for("current"))
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Hashable, List, Optional, Sequence

from callmetrics.core.exceptions import AllFetchesFailedError
from callmetrics.models.schemas import DateRange


logger = logging.getLogger(__name__)


FetchFn = Callable[[str, DateRange], Awaitable[Any]]


@dataclass(frozen=True)
class FetchTask:
    """
    One unit of fan-out work.

    Attributes:
        client_id: Client whose data is fetched.
        window: Time window to aggregate.
        key: Caller-defined grouping key (e.g. "current" or ("baseline", 2)).
    """
    client_id: str
    window: DateRange
    key: Hashable = None


@dataclass(frozen=True)
class FetchOutcome:
    task: FetchTask
    value: Any
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class FetchReport:
    """Outcomes of a run, in task order."""
    outcomes: List[FetchOutcome]
    elapsed_seconds: float = 0.0

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def failures(self) -> int:
        return sum(1 for o in self.outcomes if not o.ok)

    @property
    def failed_tasks(self) -> List[FetchTask]:
        return [o.task for o in self.outcomes if not o.ok]

    def values(self) -> List[Any]:
        return [o.value for o in self.outcomes]

    def values_for(self, key: Hashable) -> List[Any]:
        return [o.value for o in self.outcomes if o.task.key == key]

    def values_by_client(self, key: Hashable) -> Dict[str, List[Any]]:
        grouped: Dict[str, List[Any]] = {}
        for outcome in self.outcomes:
            if outcome.task.key == key:
                grouped.setdefault(outcome.task.client_id, []).append(outcome.value)
        return grouped


class FetchOrchestrator:
    """
    Run fetch tasks with a concurrency ceiling and per-task timeout.

    Args:
        fetch_fn: Async callable (client_id, window) -> value.
        concurrency: Maximum fetches in flight at once.
        timeout_seconds: Per-fetch timeout; None disables it.
        empty_value: Value substituted for a failed task.
        name: Label used in log messages.
    """

    def __init__(
        self,
        fetch_fn: FetchFn,
        concurrency: int = 5,
        timeout_seconds: Optional[float] = 30.0,
        empty_value: Any = None,
        name: str = "fetch",
    ):
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self.fetch_fn = fetch_fn
        self.concurrency = concurrency
        self.timeout_seconds = timeout_seconds
        self.empty_value = empty_value
        self.name = name

    async def _run_one(self, task: FetchTask, semaphore: asyncio.Semaphore) -> FetchOutcome:
        async with semaphore:
            try:
                value = await asyncio.wait_for(
                    self.fetch_fn(task.client_id, task.window),
                    timeout=self.timeout_seconds,
                )
            except asyncio.TimeoutError as e:
                logger.warning(
                    f"{self.name}: {task.client_id} [{task.window.label}] timed out "
                    f"after {self.timeout_seconds}s; contributing zero"
                )
                return FetchOutcome(task=task, value=self.empty_value, error=e)
            except Exception as e:
                logger.warning(
                    f"{self.name}: {task.client_id} [{task.window.label}] failed: "
                    f"{type(e).__name__}: {e}; contributing zero"
                )
                return FetchOutcome(task=task, value=self.empty_value, error=e)
            return FetchOutcome(task=task, value=value)

    async def run(self, tasks: Sequence[FetchTask]) -> FetchReport:
        """
        Execute all tasks and collect their outcomes.

        Raises:
            AllFetchesFailedError: If the run is non-empty and every task failed.
            asyncio.CancelledError: If the run is cancelled.
        """
        tasks = list(tasks)
        if not tasks:
            return FetchReport(outcomes=[])

        started = time.perf_counter()
        semaphore = asyncio.Semaphore(self.concurrency)
        outcomes = await asyncio.gather(*(self._run_one(t, semaphore) for t in tasks))
        report = FetchReport(outcomes=list(outcomes), elapsed_seconds=time.perf_counter() - started)

        if report.failures == report.total:
            logger.error(f"{self.name}: all {report.total} fetch tasks failed")
            raise AllFetchesFailedError(report.total, outcomes[-1].error)

        logger.info(
            f"{self.name}: {report.total - report.failures}/{report.total} fetches "
            f"succeeded in {report.elapsed_seconds:.2f}s"
        )
        return report
