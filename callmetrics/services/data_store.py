"""
Call data store collaborator.

The analytics engine never talks to a database directly. It depends on the
CallDataStore protocol, which answers three questions:

- fetch_raw_rows(client_id, start, end): raw counters per (call flow model,
  direction) for one client and one inclusive window
- fetch_delinquency_rows(client_id, start, end): collections raw counters per
  days-past-due bucket
- list_available_clients(): client ids that currently have call data

PostgresCallDataStore implements it over the shared asyncpg pool using the
parameterized queries in callmetrics.sql.kpi_queries. DataFrameCallDataStore
(callmetrics.services.ingestion) implements it over in-memory per-call events.

Rows whose call flow model is not recognised are dropped here, once, with a
debug log; everything downstream works with resolved enums only.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol

import asyncpg

from callmetrics.core.cache import TTLCache
from callmetrics.core.config import Settings, get_settings
from callmetrics.core.database import execute_query
from callmetrics.core.exceptions import DataStoreUnavailableError, InvalidRequestError
from callmetrics.models.enums import CallDirection, CallFlowModel, DelinquencyBucket
from callmetrics.models.schemas import DateRange
from callmetrics.services.clients import filter_known_clients, is_valid_client_id
from callmetrics.services.date_ranges import start_of_day
from callmetrics.services.metrics import (
    PeriodRawAggregates,
    RawCallAggregate,
    RawCallRow,
    group_rows_by_category,
    sum_aggregates,
    to_decimal,
)
from callmetrics.sql.kpi_queries import (
    get_available_clients_query,
    get_client_kpi_params,
    get_client_kpi_query,
    get_delinquency_params,
    get_delinquency_query,
)


logger = logging.getLogger(__name__)


AVAILABLE_CLIENTS_CACHE_KEY = "clients:available"

DelinquencyRows = Dict[DelinquencyBucket, RawCallAggregate]


class CallDataStore(Protocol):
    """Read-only access to per-client call data."""

    async def fetch_raw_rows(self, client_id: str, start: datetime, end: datetime) -> List[RawCallRow]:
        """Raw counters for calls with start <= start_time <= end (inclusive end)."""

    async def fetch_delinquency_rows(self, client_id: str, start: datetime, end: datetime) -> DelinquencyRows:
        """Collections raw counters per delinquency bucket."""

    async def list_available_clients(self) -> List[str]:
        """Known client ids that have call data."""


# =============================================================================
# Window helpers used as orchestrator fetch functions
# =============================================================================


async def fetch_period_aggregates(store: CallDataStore, client_id: str, window: DateRange) -> PeriodRawAggregates:
    """One client's raw counters for a window, folded per KPI category."""
    rows = await store.fetch_raw_rows(client_id, window.start, window.end)
    return group_rows_by_category(rows)


async def fetch_total_aggregate(store: CallDataStore, client_id: str, window: DateRange) -> RawCallAggregate:
    """One client's raw counters for a window across every call flow model."""
    rows = await store.fetch_raw_rows(client_id, window.start, window.end)
    return sum_aggregates(row.aggregate for row in rows)


async def fetch_delinquency_window(store: CallDataStore, client_id: str, window: DateRange) -> DelinquencyRows:
    return await store.fetch_delinquency_rows(client_id, window.start, window.end)


# =============================================================================
# Row parsing
# =============================================================================


def _number(record: Mapping[str, Any], key: str) -> float:
    value = record.get(key)
    return float(value) if value is not None else 0.0


def _amount(record: Mapping[str, Any], key: str) -> Decimal:
    # asyncpg returns NUMERIC sums as Decimal; keep them exact
    value = record.get(key)
    return to_decimal(value) if value is not None else Decimal(0)


def aggregate_from_record(record: Mapping[str, Any]) -> RawCallAggregate:
    """Build a RawCallAggregate from a query row, treating NULL as 0."""
    return RawCallAggregate(
        accounts=_number(record, 'accounts'),
        calls=_number(record, 'calls'),
        connects=_number(record, 'connects'),
        rpcs=_number(record, 'rpcs'),
        promises=_number(record, 'promises'),
        cash_payments=_number(record, 'cash_payments'),
        transfers=_number(record, 'transfers'),
        duration_seconds=_amount(record, 'duration_seconds'),
        dollar_promised=_amount(record, 'dollar_promised'),
        dollar_collected=_amount(record, 'dollar_collected'),
        completed=_number(record, 'completed_verifications'),
        payment_attempts=_number(record, 'payment_attempts'),
        payment_successful=_number(record, 'payment_successful'),
        payment_declined=_number(record, 'payment_declined'),
        payment_api_failed=_number(record, 'payment_api_failed'),
    )


def parse_kpi_rows(client_id: str, records: Iterable[Mapping[str, Any]]) -> List[RawCallRow]:
    """
    Tag query rows with resolved call flow model and direction.

    Rows with an unrecognised model are dropped.
    """
    rows: List[RawCallRow] = []
    for record in records:
        model = CallFlowModel.from_raw(record.get('model'))
        if model is None:
            logger.debug(f"{client_id}: dropping row with unknown model '{record.get('model')}'")
            continue
        rows.append(RawCallRow(
            model=model,
            direction=CallDirection.from_raw(record.get('direction')),
            aggregate=aggregate_from_record(record),
        ))
    return rows


def parse_delinquency_rows(records: Iterable[Mapping[str, Any]]) -> DelinquencyRows:
    buckets: Dict[DelinquencyBucket, List[RawCallAggregate]] = {}
    for record in records:
        bucket = DelinquencyBucket(record['dlq_bucket'])
        buckets.setdefault(bucket, []).append(aggregate_from_record(record))
    return {bucket: sum_aggregates(aggregates) for bucket, aggregates in buckets.items()}


def _query_bounds(start: datetime, end: datetime):
    """Inclusive [start, end] window as a half-open [start, next midnight) pair."""
    return start, start_of_day(end) + timedelta(days=1)


# =============================================================================
# PostgreSQL implementation
# =============================================================================


class PostgresCallDataStore:
    """
    CallDataStore over the per-client ``call_<client>`` tables.

    Args:
        settings: Application settings (schema name, cache TTL).
        cache: Optional TTL cache for the available-client list.
    """

    def __init__(self, settings: Optional[Settings] = None, cache: Optional[TTLCache] = None):
        self.settings = settings or get_settings()
        self.cache = cache

    def _check_client(self, client_id: str) -> None:
        if not is_valid_client_id(client_id):
            raise InvalidRequestError(f"Invalid client id '{client_id}'")

    async def fetch_raw_rows(self, client_id: str, start: datetime, end: datetime) -> List[RawCallRow]:
        self._check_client(client_id)
        lower, upper = _query_bounds(start, end)
        records = await execute_query(
            get_client_kpi_query(self.settings.call_schema, client_id),
            *get_client_kpi_params(client_id, lower, upper),
        )
        return parse_kpi_rows(client_id, records)

    async def fetch_delinquency_rows(self, client_id: str, start: datetime, end: datetime) -> DelinquencyRows:
        self._check_client(client_id)
        lower, upper = _query_bounds(start, end)
        records = await execute_query(
            get_delinquency_query(self.settings.call_schema, client_id),
            *get_delinquency_params(lower, upper),
        )
        return parse_delinquency_rows(records)

    async def list_available_clients(self) -> List[str]:
        if self.cache is not None:
            cached = self.cache.get(AVAILABLE_CLIENTS_CACHE_KEY)
            if cached is not None:
                return list(cached)

        try:
            records = await execute_query(get_available_clients_query(), self.settings.call_schema)
        except (asyncpg.PostgresError, OSError) as e:
            logger.error(f"Could not list available clients: {e}")
            raise DataStoreUnavailableError(f"Call data store unavailable: {e}") from e
        clients = filter_known_clients(record['client'] for record in records)
        logger.info(f"Found {len(clients)} available clients in schema '{self.settings.call_schema}'")

        if self.cache is not None:
            self.cache.set(
                AVAILABLE_CLIENTS_CACHE_KEY,
                tuple(clients),
                ttl_seconds=self.settings.available_clients_cache_ttl_seconds,
            )
        return clients
