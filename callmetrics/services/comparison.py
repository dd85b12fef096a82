"""
Period-over-period comparison of call-center KPIs.

compare_periods() is the engine's main entry point:

1. Validate the request and build the PeriodConfig (fails fast with
   InvalidRequestError before any fetch).
2. Resolve the client selector against the available client universe.
3. Fan out one fetch per (client, current window) and per (client, comparison
   window) through a single FetchOrchestrator run. Week-to-date comparisons
   fetch each baseline week separately.
4. Reduce raw counters: sum across clients per window, then average the
   baseline weeks (raw counters, not rates), then derive.
5. Compute per-metric changes with a +/-0.5% trend dead-band and, for
   multi-client selectors, each client's share of the total.

Failed fetches contribute zero and are reported in failedFetches; if every
fetch fails, AllFetchesFailedError propagates.
"""

import logging
from datetime import date
from functools import partial
from typing import Dict, Iterable, List, Optional, Union

from callmetrics.core.cache import TTLCache, make_cache_key
from callmetrics.core.config import Settings, get_settings
from callmetrics.core.exceptions import InvalidRequestError
from callmetrics.models.enums import CallCategory, DataCategory, TrendDirection
from callmetrics.models.schemas import (
    ClientKPIBreakdown,
    ComparisonChange,
    KPIRequest,
    PeriodComparisonResult,
    PeriodKPIs,
)
from callmetrics.services.clients import get_client_display_name, parse_client_selector
from callmetrics.services.data_store import CallDataStore, fetch_period_aggregates
from callmetrics.services.date_ranges import (
    get_period_config,
    parse_comparison_type,
    parse_reference_date,
)
from callmetrics.services.metrics import (
    EMPTY_PERIOD,
    PeriodRawAggregates,
    average_period_aggregates,
    derive_period_kpis,
    metric_rows_for,
    percent_of_total,
    sum_period_aggregates,
)
from callmetrics.services.orchestrator import FetchOrchestrator, FetchTask


logger = logging.getLogger(__name__)


# Changes inside +/- this many percent are reported as neutral
TREND_DEAD_BAND_PCT = 0.5

CURRENT_KEY = "current"
COMPARISON_KEY = "comparison"

COMPARISON_CACHE_NAMESPACE = "comparison"


def calculate_change(current: float, previous: float) -> ComparisonChange:
    """
    Percent change from previous to current with a trend direction.

    A non-positive previous value yields a neutral zero change.
    """
    if previous <= 0:
        return ComparisonChange(value=0.0, trend=TrendDirection.NEUTRAL)
    change = (current - previous) / previous * 100
    return ComparisonChange(value=change, trend=trend_for_change(change))


def trend_for_change(change: float) -> TrendDirection:
    if change > TREND_DEAD_BAND_PCT:
        return TrendDirection.UP
    if change < -TREND_DEAD_BAND_PCT:
        return TrendDirection.DOWN
    return TrendDirection.NEUTRAL


def build_kpi_request(
    comparison_type: str,
    reference_date: Union[str, date, None] = None,
    client_selector: str = 'all',
    data_category: str = DataCategory.ALL.value,
    include_client_breakdown: bool = False,
    today: Optional[date] = None,
) -> KPIRequest:
    """
    Build a KPIRequest from untrusted inputs.

    Raises:
        InvalidRequestError: On an unknown comparison type or data category,
            a malformed reference date, or an invalid client selector.
    """
    period_type = parse_comparison_type(comparison_type)
    reference = parse_reference_date(reference_date, today=today)
    selector = parse_client_selector(client_selector)
    try:
        category = DataCategory(str(data_category).strip().lower())
    except ValueError:
        raise InvalidRequestError(f"Unknown data category '{data_category}'") from None

    return KPIRequest(
        comparisonType=period_type,
        referenceDate=reference,
        clientSelector=selector.raw,
        dataCategory=category,
        includeClientBreakdown=include_client_breakdown,
    )


def categories_for(data_category: DataCategory) -> List[CallCategory]:
    if data_category is DataCategory.ALL:
        return list(CallCategory)
    return [CallCategory(data_category.value)]


def build_metric_changes(
    current: PeriodKPIs,
    previous: PeriodKPIs,
    categories: Iterable[CallCategory],
) -> Dict[str, Dict[str, ComparisonChange]]:
    """Change for every configured metric row of each category."""
    changes: Dict[str, Dict[str, ComparisonChange]] = {}
    for category in categories:
        cur = current.for_category(category)
        prev = previous.for_category(category)
        changes[category.value] = {
            row.key: calculate_change(getattr(cur, row.key), getattr(prev, row.key))
            for row in metric_rows_for(category)
        }
    return changes


def build_client_breakdown(
    per_client: Dict[str, PeriodRawAggregates],
    total: PeriodKPIs,
) -> List[ClientKPIBreakdown]:
    """Each client's current KPIs and share of the total, ordered by collections calls."""
    breakdown = []
    for client, raw in per_client.items():
        kpis = derive_period_kpis(raw)
        breakdown.append(ClientKPIBreakdown(
            client=client,
            displayName=get_client_display_name(client),
            currentPeriod=kpis,
            percentOfTotal=percent_of_total(kpis, total),
        ))
    breakdown.sort(key=lambda b: (-b.currentPeriod.collections.calls, b.client))
    return breakdown


async def compare_periods(
    request: KPIRequest,
    store: CallDataStore,
    settings: Optional[Settings] = None,
    cache: Optional[TTLCache] = None,
) -> PeriodComparisonResult:
    """
    Compare a current period against its comparison period.

    Args:
        request: Validated KPI request (see build_kpi_request).
        store: Call data store collaborator.
        settings: Fan-out and baseline settings; defaults to get_settings().
        cache: Optional result cache; only complete results are cached.

    Returns:
        PeriodComparisonResult with current and comparison KPIs, per-metric
        changes and, when requested, the per-client breakdown.

    Raises:
        InvalidRequestError: If the request is malformed.
        AllFetchesFailedError: If every fetch failed.
    """
    settings = settings or get_settings()
    config = get_period_config(request.comparisonType, request.referenceDate, settings.baseline_weeks)
    selector = parse_client_selector(request.clientSelector)

    cache_key = make_cache_key(COMPARISON_CACHE_NAMESPACE, request)
    if cache is not None:
        cached = cache.get(cache_key)
        if cached is not None:
            logger.debug(f"Comparison cache hit for {selector.raw} {config.periodType.value}")
            return cached

    available = await store.list_available_clients() if selector.is_multi_client else []
    clients = selector.resolve(available)
    if not clients:
        logger.warning(f"No clients resolved for selector '{selector.raw}'")

    comparison_windows = config.comparison_windows
    tasks = [FetchTask(client, config.currentRange, CURRENT_KEY) for client in clients]
    for i, window in enumerate(comparison_windows):
        tasks.extend(FetchTask(client, window, (COMPARISON_KEY, i)) for client in clients)

    orchestrator = FetchOrchestrator(
        partial(fetch_period_aggregates, store),
        concurrency=settings.client_batch_size,
        timeout_seconds=settings.fetch_timeout_seconds,
        empty_value=EMPTY_PERIOD,
        name=f"compare:{config.periodType.value}",
    )
    report = await orchestrator.run(tasks)

    current_raw = sum_period_aggregates(report.values_for(CURRENT_KEY))
    # Sum across clients within each window first, then average the windows
    previous_raw = average_period_aggregates([
        sum_period_aggregates(report.values_for((COMPARISON_KEY, i)))
        for i in range(len(comparison_windows))
    ])

    current = derive_period_kpis(current_raw)
    previous = derive_period_kpis(previous_raw)

    breakdown: List[ClientKPIBreakdown] = []
    if selector.is_multi_client and request.includeClientBreakdown:
        per_client = {
            client: sum_period_aggregates(values)
            for client, values in report.values_by_client(CURRENT_KEY).items()
        }
        breakdown = build_client_breakdown(per_client, current)

    result = PeriodComparisonResult(
        client=selector.raw,
        displayName=selector.display_name,
        comparisonType=config.periodType,
        currentPeriod=current,
        previousPeriod=previous,
        currentPeriodLabel=config.currentRange.label,
        previousPeriodLabel=config.comparisonRange.label,
        comparisonContext=config.comparisonLabel,
        changes=build_metric_changes(current, previous, categories_for(request.dataCategory)),
        clientBreakdown=breakdown,
        failedFetches=report.failures,
        totalFetches=report.total,
    )

    if cache is not None and report.failures == 0:
        cache.set(cache_key, result, ttl_seconds=settings.response_cache_ttl_seconds)
    return result


async def compare_periods_batch(
    requests: List[KPIRequest],
    store: CallDataStore,
    settings: Optional[Settings] = None,
    cache: Optional[TTLCache] = None,
) -> List[PeriodComparisonResult]:
    """Run several comparisons one after another (each already fans out internally)."""
    return [await compare_periods(request, store, settings, cache) for request in requests]
