"""
Historical monthly trends.

Builds one point per calendar month, oldest first, ending with the month that
contains ``today``. Each month is a full-month window; for multi-client
selectors every client is fetched and the raw counters are summed before the
month's rates are derived.
"""

import logging
from datetime import date
from functools import partial
from typing import List, Optional

from callmetrics.core.config import Settings, get_settings
from callmetrics.models.schemas import DateRange, HistoricalTrendData, MonthlyTrendPoint
from callmetrics.services.clients import ClientSelector, get_client_display_name
from callmetrics.services.data_store import CallDataStore, fetch_period_aggregates
from callmetrics.services.date_ranges import format_year_month, get_month_range
from callmetrics.services.metrics import EMPTY_PERIOD, derive_period_kpis, sum_period_aggregates
from callmetrics.services.orchestrator import FetchOrchestrator, FetchTask


logger = logging.getLogger(__name__)


MIN_TREND_MONTHS = 3
MAX_TREND_MONTHS = 24
DEFAULT_TREND_MONTHS = 12


def clamp_month_count(months: int) -> int:
    return max(MIN_TREND_MONTHS, min(MAX_TREND_MONTHS, int(months)))


def get_trend_months(today: date, months: int) -> List[DateRange]:
    """Full-month ranges for the last ``months`` months, oldest first."""
    ranges = []
    for offset in range(months - 1, -1, -1):
        total = today.year * 12 + (today.month - 1) - offset
        ranges.append(get_month_range(date(total // 12, total % 12 + 1, 1)))
    return ranges


def trend_display_name(selector: ClientSelector) -> str:
    if selector.is_multi_client:
        if selector.client:
            return f"All Clients (Excl. {get_client_display_name(selector.client)})"
        return get_client_display_name('all')
    return get_client_display_name(selector.client)


async def fetch_historical_trends(
    selector: ClientSelector,
    store: CallDataStore,
    months: int = DEFAULT_TREND_MONTHS,
    settings: Optional[Settings] = None,
    today: Optional[date] = None,
) -> HistoricalTrendData:
    """
    Monthly collections and inbound KPIs for a client selector.

    Args:
        selector: Single client, all clients, or all excluding one.
        store: Call data store collaborator.
        months: Number of months; clamped to [3, 24].
        settings: Fan-out settings; defaults to get_settings().
        today: Anchor date (the newest month contains it).

    Raises:
        AllFetchesFailedError: If every fetch failed.
    """
    settings = settings or get_settings()
    today = today or date.today()
    period_count = clamp_month_count(months)
    month_ranges = get_trend_months(today, period_count)

    available = await store.list_available_clients() if selector.is_multi_client else []
    clients = selector.resolve(available)

    tasks = [
        FetchTask(client, window, format_year_month(window.start))
        for window in month_ranges
        for client in clients
    ]
    orchestrator = FetchOrchestrator(
        partial(fetch_period_aggregates, store),
        concurrency=settings.trend_month_batch_size * max(1, len(clients)),
        timeout_seconds=settings.trend_fetch_timeout_seconds,
        empty_value=EMPTY_PERIOD,
        name="trends",
    )
    report = await orchestrator.run(tasks)

    points = []
    for window in month_ranges:
        month = format_year_month(window.start)
        kpis = derive_period_kpis(sum_period_aggregates(report.values_for(month)))
        points.append(MonthlyTrendPoint(
            month=month,
            label=window.label,
            collections=kpis.collections,
            inbound=kpis.inbound,
        ))

    return HistoricalTrendData(
        client=None if selector.is_multi_client else selector.client,
        displayName=trend_display_name(selector),
        months=points,
        periodCount=period_count,
        failedFetches=report.failures,
    )
