"""
FastAPI router for the call metrics dashboard.

Thin HTTP layer over the analytics services. Every route parses query
parameters, delegates to one service call and wraps the result in the
{success, data, error} envelope.

Key Endpoints:
- GET /kpis: period-over-period comparison for a client or client group
- GET /kpis/batch: all-clients health scorecard
- GET /clients: available clients and selectable months / weeks
- GET /trends: monthly historical trends
- GET /payment-outcomes: payment API outcome rates for a date range
- GET /delinquency: collections funnel by days-past-due bucket

Error mapping:
- InvalidRequestError -> 400
- DataStoreUnavailableError (including every fetch failing) -> 503
- anything else -> 500
"""

import logging
from datetime import date
from typing import Any, Dict, List, NoReturn, Optional

from fastapi import APIRouter, HTTPException, Query

from callmetrics.core.dependencies import CacheDep, DataStoreDep, SettingsDep
from callmetrics.core.exceptions import DataStoreUnavailableError, InvalidRequestError
from callmetrics.core.config import Settings
from callmetrics.models.enums import ScorecardSortOption
from callmetrics.models.schemas import (
    AllClientsScorecardData,
    APIResponse,
    DelinquencyBreakdown,
    HistoricalTrendData,
    PaymentOutcomeMetrics,
    PeriodComparisonResult,
)
from callmetrics.services.clients import (
    ALL_SELECTOR,
    EXCLUDE_PREFIX,
    ClientSelector,
    get_client_display_name,
    parse_client_selector,
)
from callmetrics.services.comparison import build_kpi_request, compare_periods
from callmetrics.services.date_ranges import (
    get_available_months,
    get_available_weeks,
    get_custom_range,
)
from callmetrics.services.outcomes import fetch_delinquency_breakdown, fetch_payment_outcomes
from callmetrics.services.scorecard import fetch_all_clients_scorecard
from callmetrics.services.trends import DEFAULT_TREND_MONTHS, fetch_historical_trends


# =============================================================================
# Module Configuration
# =============================================================================

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Helper Functions
# =============================================================================


def _client_selector_value(client: str, exclude_default: bool, settings: Settings) -> str:
    """Apply the excludeWestlake-style flag to the 'all' selector."""
    if exclude_default and client.strip().lower() == ALL_SELECTOR:
        return f"{EXCLUDE_PREFIX}{settings.default_excluded_client}"
    return client


def _parse_selector(client: str, exclude_default: bool, settings: Settings) -> ClientSelector:
    return parse_client_selector(_client_selector_value(client, exclude_default, settings))


def _raise_http_error(operation: str, error: Exception) -> NoReturn:
    """Translate an engine error into an HTTPException."""
    if isinstance(error, InvalidRequestError):
        raise HTTPException(status_code=400, detail=str(error)) from error
    if isinstance(error, DataStoreUnavailableError):
        logger.error(f"{operation}: call data store unavailable: {error}")
        raise HTTPException(status_code=503, detail=str(error)) from error
    logger.error(f"Error computing {operation}: {error}", exc_info=True)
    raise HTTPException(status_code=500, detail=f"Failed to compute {operation}: {error}") from error


# =============================================================================
# API Endpoints
# =============================================================================


@router.get("/kpis", response_model=APIResponse[PeriodComparisonResult])
async def get_kpis(
    store: DataStoreDep,
    settings: SettingsDep,
    cache: CacheDep,
    period_type: Optional[str] = Query(None, alias="periodType", description="mom, wow, mtd or wtd"),
    reference_date: Optional[str] = Query(None, alias="referenceDate", description="YYYY-MM-DD"),
    month: Optional[str] = Query(None, description="YYYY-MM; month-over-month when periodType is omitted"),
    client: str = Query(ALL_SELECTOR, description="Client id, 'all' or 'non-<client>'"),
    exclude_westlake: bool = Query(False, alias="excludeWestlake"),
    category: str = Query("all", description="all, collections, inbound, welcome or verification"),
    breakdown: bool = Query(False, description="Include the per-client mix for multi-client selectors"),
) -> APIResponse[PeriodComparisonResult]:
    """
    Compare a current period against its comparison period.

    Without periodType, compares the given month (default: current month)
    against the previous month.
    """
    try:
        request = build_kpi_request(
            comparison_type=period_type or 'mom',
            reference_date=reference_date if period_type else (month or date.today().strftime('%Y-%m')),
            client_selector=_client_selector_value(client, exclude_westlake, settings),
            data_category=category,
            include_client_breakdown=breakdown,
        )
        result = await compare_periods(request, store, settings, cache)
    except Exception as e:
        _raise_http_error("period comparison", e)
    return APIResponse(success=True, data=result)


@router.get("/kpis/batch", response_model=APIResponse[AllClientsScorecardData])
async def get_kpis_batch(
    store: DataStoreDep,
    settings: SettingsDep,
    view: str = Query("scorecard", description="Only 'scorecard' is supported"),
    sort: ScorecardSortOption = Query(ScorecardSortOption.ALPHABETICAL),
) -> APIResponse[AllClientsScorecardData]:
    """All-clients scorecard: last 7 days vs the 4-week rolling average."""
    if view != "scorecard":
        raise HTTPException(
            status_code=400,
            detail=f"Unknown view type: {view}. Only 'scorecard' is supported.",
        )
    try:
        data = await fetch_all_clients_scorecard(store, settings, sort_by=sort)
    except Exception as e:
        _raise_http_error("scorecard", e)
    return APIResponse(success=True, data=data)


@router.get("/clients", response_model=APIResponse[Dict[str, Any]])
async def get_clients(store: DataStoreDep) -> APIResponse[Dict[str, Any]]:
    """Available clients plus the month and week options for the period selector."""
    try:
        clients = await store.list_available_clients()
    except Exception as e:
        _raise_http_error("client list", e)

    options: List[Dict[str, str]] = [
        {'value': c, 'label': get_client_display_name(c)} for c in clients
    ]
    weeks = [
        {'value': w['value'], 'label': w['label']} for w in get_available_weeks()
    ]
    return APIResponse(success=True, data={
        'clients': options,
        'months': get_available_months(),
        'weeks': weeks,
    })


@router.get("/trends", response_model=APIResponse[HistoricalTrendData])
async def get_trends(
    store: DataStoreDep,
    settings: SettingsDep,
    client: str = Query(ALL_SELECTOR),
    months: int = Query(DEFAULT_TREND_MONTHS, description="Clamped to 3-24"),
    exclude_westlake: bool = Query(False, alias="excludeWestlake"),
) -> APIResponse[HistoricalTrendData]:
    try:
        selector = _parse_selector(client, exclude_westlake, settings)
        data = await fetch_historical_trends(selector, store, months, settings)
    except Exception as e:
        _raise_http_error("historical trends", e)
    return APIResponse(success=True, data=data)


@router.get("/payment-outcomes", response_model=APIResponse[PaymentOutcomeMetrics])
async def get_payment_outcomes(
    store: DataStoreDep,
    settings: SettingsDep,
    start_date: str = Query(..., alias="startDate"),
    end_date: str = Query(..., alias="endDate"),
    client: str = Query(ALL_SELECTOR),
    exclude_westlake: bool = Query(False, alias="excludeWestlake"),
) -> APIResponse[PaymentOutcomeMetrics]:
    try:
        selector = _parse_selector(client, exclude_westlake, settings)
        window = get_custom_range(start_date, end_date)
        data = await fetch_payment_outcomes(selector, window, store, settings)
    except Exception as e:
        _raise_http_error("payment outcomes", e)
    return APIResponse(success=True, data=data)


@router.get("/delinquency", response_model=APIResponse[DelinquencyBreakdown])
async def get_delinquency(
    store: DataStoreDep,
    settings: SettingsDep,
    start_date: str = Query(..., alias="startDate"),
    end_date: str = Query(..., alias="endDate"),
    client: str = Query(ALL_SELECTOR),
    exclude_westlake: bool = Query(False, alias="excludeWestlake"),
) -> APIResponse[DelinquencyBreakdown]:
    try:
        selector = _parse_selector(client, exclude_westlake, settings)
        window = get_custom_range(start_date, end_date)
        data = await fetch_delinquency_breakdown(selector, window, store, settings)
    except Exception as e:
        _raise_http_error("delinquency breakdown", e)
    return APIResponse(success=True, data=data)
