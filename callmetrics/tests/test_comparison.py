"""
Tests for period-over-period comparison.

Uses FakeCallDataStore from conftest so each test scripts exactly which
counters a (client, window) fetch returns, which clients fail and which
clients stall past the fetch timeout.
"""

from datetime import date, datetime

import pytest

from callmetrics.core.cache import TTLCache
from callmetrics.core.exceptions import AllFetchesFailedError, InvalidRequestError
from callmetrics.models.enums import CallDirection, ComparisonType, DataCategory, TrendDirection
from callmetrics.models.schemas import KPIRequest
from callmetrics.services.comparison import (
    build_kpi_request,
    calculate_change,
    compare_periods,
    compare_periods_batch,
    trend_for_change,
)

from .conftest import FakeCallDataStore, collections_row, welcome_row


JANUARY = date(2025, 1, 15)


def _monthly_rows(client_id, start, end):
    """120 calls in January, 100 in December, for every client."""
    calls = 120 if start.month == 1 else 100
    return [collections_row(calls=calls, connects=calls // 2, accounts=calls // 4)]


class TestCalculateChange:
    """Percent change and the +/-0.5% trend dead-band."""

    def test_increase(self):
        change = calculate_change(120, 100)
        assert change.value == pytest.approx(20.0)
        assert change.trend is TrendDirection.UP

    def test_decrease(self):
        change = calculate_change(80, 100)
        assert change.value == pytest.approx(-20.0)
        assert change.trend is TrendDirection.DOWN

    def test_small_change_is_neutral(self):
        change = calculate_change(100.4, 100)
        assert change.value == pytest.approx(0.4)
        assert change.trend is TrendDirection.NEUTRAL

    @pytest.mark.parametrize('previous', [0, -5])
    def test_non_positive_previous_is_neutral_zero(self, previous):
        change = calculate_change(42, previous)
        assert change.value == 0.0
        assert change.trend is TrendDirection.NEUTRAL

    @pytest.mark.parametrize('change,expected', [
        (0.5, TrendDirection.NEUTRAL),
        (-0.5, TrendDirection.NEUTRAL),
        (0.51, TrendDirection.UP),
        (-0.51, TrendDirection.DOWN),
    ])
    def test_dead_band_edges(self, change, expected):
        assert trend_for_change(change) is expected


class TestBuildKpiRequest:
    """Untrusted inputs are validated before any fetch."""

    def test_valid_request(self):
        request = build_kpi_request('wow', '2025-01-15', 'Exeter', 'collections', True)
        assert request.comparisonType is ComparisonType.WOW
        assert request.referenceDate == JANUARY
        assert request.clientSelector == 'exeter'
        assert request.dataCategory is DataCategory.COLLECTIONS
        assert request.includeClientBreakdown is True

    def test_reference_defaults_to_today(self):
        request = build_kpi_request('mom', today=JANUARY)
        assert request.referenceDate == JANUARY

    @pytest.mark.parametrize('kwargs', [
        {'comparison_type': 'yoy'},
        {'comparison_type': 'mom', 'reference_date': '01/15/2025'},
        {'comparison_type': 'mom', 'client_selector': 'drop table;'},
        {'comparison_type': 'mom', 'client_selector': ''},
        {'comparison_type': 'mom', 'client_selector': 'exetr'},
        {'comparison_type': 'mom', 'client_selector': 'non-exetr'},
        {'comparison_type': 'mom', 'data_category': 'surveys'},
    ])
    def test_invalid_inputs(self, kwargs):
        with pytest.raises(InvalidRequestError):
            build_kpi_request(**kwargs)


class TestComparePeriods:
    """End-to-end comparison against the scripted store."""

    @pytest.mark.asyncio
    async def test_month_over_month_single_client(self, test_settings):
        store = FakeCallDataStore(_monthly_rows)
        request = build_kpi_request('mom', JANUARY, 'exeter')

        result = await compare_periods(request, store, settings=test_settings)

        assert result.client == 'exeter'
        assert result.displayName == 'EXETER'
        assert result.currentPeriod.collections.calls == 120
        assert result.previousPeriod.collections.calls == 100
        assert result.changes['collections']['calls'].value == pytest.approx(20.0)
        assert result.changes['collections']['calls'].trend is TrendDirection.UP
        assert result.currentPeriodLabel == 'Jan-25'
        assert result.previousPeriodLabel == 'Dec-24'
        assert result.comparisonContext == 'vs Dec-24'
        assert result.failedFetches == 0
        assert result.totalFetches == 2

    @pytest.mark.asyncio
    async def test_store_receives_window_bounds(self, test_settings):
        store = FakeCallDataStore(_monthly_rows)
        await compare_periods(build_kpi_request('mom', JANUARY, 'exeter'), store, settings=test_settings)

        starts = sorted(start for _, start, _ in store.calls)
        assert starts == [datetime(2024, 12, 1), datetime(2025, 1, 1)]

    @pytest.mark.asyncio
    async def test_all_clients_sums_raw_counters(self, test_settings):
        store = FakeCallDataStore(_monthly_rows, available=['exeter', 'aca', 'cps'])
        result = await compare_periods(build_kpi_request('mom', JANUARY, 'all'), store, settings=test_settings)

        assert result.displayName == 'All Clients'
        assert result.currentPeriod.collections.calls == 360
        assert result.currentPeriod.collections.connectRate == pytest.approx(50.0)
        assert result.totalFetches == 6

    @pytest.mark.asyncio
    async def test_excluding_selector_skips_client(self, test_settings):
        store = FakeCallDataStore(_monthly_rows, available=['exeter', 'westlake'])
        result = await compare_periods(build_kpi_request('mom', JANUARY, 'non-westlake'), store, settings=test_settings)

        assert {client for client, _, _ in store.calls} == {'exeter'}
        assert result.displayName == 'All (Excl. Westlake)'
        assert result.currentPeriod.collections.calls == 120

    @pytest.mark.asyncio
    async def test_week_to_date_averages_baseline_counters(self, test_settings):
        # Baseline weeks for 2025-01-15 start Jan 5, Dec 29, Dec 22 and Dec 15
        weekly = {
            datetime(2025, 1, 12): (500, 100),
            datetime(2025, 1, 5): (100, 10),
            datetime(2024, 12, 29): (300, 90),
            datetime(2024, 12, 22): (200, 40),
            datetime(2024, 12, 15): (400, 60),
        }

        def rows(client_id, start, end):
            calls, connects = weekly[start]
            return [collections_row(calls=calls, connects=connects)]

        store = FakeCallDataStore(rows)
        result = await compare_periods(build_kpi_request('wtd', JANUARY, 'exeter'), store, settings=test_settings)

        assert result.totalFetches == 5
        assert result.previousPeriod.collections.calls == pytest.approx(250.0)
        assert result.previousPeriod.collections.connects == pytest.approx(50.0)
        # Rate from averaged counters, not the mean of weekly rates (18.75%)
        assert result.previousPeriod.collections.connectRate == pytest.approx(20.0)
        assert result.changes['collections']['calls'].value == pytest.approx(100.0)
        assert result.comparisonContext == 'vs 4-week avg'
        assert result.previousPeriodLabel == 'Past 4 weeks avg'

    @pytest.mark.asyncio
    async def test_inbound_collections_reported_as_inbound(self, test_settings):
        def rows(client_id, start, end):
            return [
                collections_row(calls=10),
                collections_row(direction=CallDirection.INBOUND, calls=4),
                welcome_row(calls=3, rpcs=2, completed=1),
            ]

        store = FakeCallDataStore(rows)
        result = await compare_periods(build_kpi_request('mom', JANUARY, 'exeter'), store, settings=test_settings)

        assert result.currentPeriod.collections.calls == 10
        assert result.currentPeriod.inbound.calls == 4
        assert result.currentPeriod.welcome.completedPerRpc == 50.0

    @pytest.mark.asyncio
    async def test_data_category_limits_changes(self, test_settings):
        store = FakeCallDataStore(_monthly_rows)
        request = build_kpi_request('mom', JANUARY, 'exeter', data_category='collections')
        result = await compare_periods(request, store, settings=test_settings)
        assert list(result.changes) == ['collections']


class TestFailurePolicy:
    """Failed and timed-out fetches contribute zero and are reported."""

    @pytest.mark.asyncio
    async def test_failed_client_contributes_zero(self, test_settings):
        store = FakeCallDataStore(_monthly_rows, available=['exeter', 'aca', 'cps'], failing={'cps'})
        result = await compare_periods(build_kpi_request('mom', JANUARY, 'all'), store, settings=test_settings)

        assert result.failedFetches == 2
        assert result.totalFetches == 6
        assert result.currentPeriod.collections.calls == 240

    @pytest.mark.slow
    @pytest.mark.asyncio
    async def test_slow_client_times_out(self, test_settings):
        store = FakeCallDataStore(_monthly_rows, available=['exeter', 'aca'], slow={'aca'})
        result = await compare_periods(build_kpi_request('mom', JANUARY, 'all'), store, settings=test_settings)

        assert result.failedFetches == 2
        assert result.currentPeriod.collections.calls == 120

    @pytest.mark.asyncio
    async def test_every_fetch_failing_raises(self, test_settings):
        store = FakeCallDataStore(_monthly_rows, failing={'exeter'})
        with pytest.raises(AllFetchesFailedError):
            await compare_periods(build_kpi_request('mom', JANUARY, 'exeter'), store, settings=test_settings)

    @pytest.mark.asyncio
    async def test_unknown_client_is_rejected_before_any_fetch(self, test_settings):
        store = FakeCallDataStore(_monthly_rows)
        request = KPIRequest(comparisonType=ComparisonType.MOM, referenceDate=JANUARY, clientSelector='exetr')

        with pytest.raises(InvalidRequestError, match='exetr'):
            await compare_periods(request, store, settings=test_settings)
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_no_clients_returns_empty_result(self, test_settings):
        store = FakeCallDataStore(_monthly_rows, available=[])
        result = await compare_periods(build_kpi_request('mom', JANUARY, 'all'), store, settings=test_settings)

        assert result.totalFetches == 0
        assert result.currentPeriod.collections.calls == 0
        assert result.changes['collections']['calls'].trend is TrendDirection.NEUTRAL


class TestClientBreakdown:

    @pytest.mark.asyncio
    async def test_breakdown_shares_and_order(self, test_settings):
        def rows(client_id, start, end):
            calls = {'exeter': 30, 'aca': 90}[client_id]
            return [collections_row(calls=calls)]

        store = FakeCallDataStore(rows, available=['exeter', 'aca'])
        request = build_kpi_request('mom', JANUARY, 'all', include_client_breakdown=True)
        result = await compare_periods(request, store, settings=test_settings)

        assert [b.client for b in result.clientBreakdown] == ['aca', 'exeter']
        assert result.clientBreakdown[0].displayName == 'ACA'
        assert result.clientBreakdown[0].percentOfTotal.collections.calls == pytest.approx(75.0)
        assert result.clientBreakdown[1].percentOfTotal.collections.calls == pytest.approx(25.0)

    @pytest.mark.asyncio
    async def test_no_breakdown_for_single_client(self, test_settings):
        store = FakeCallDataStore(_monthly_rows)
        request = build_kpi_request('mom', JANUARY, 'exeter', include_client_breakdown=True)
        result = await compare_periods(request, store, settings=test_settings)
        assert result.clientBreakdown == []


class TestComparisonCache:

    @pytest.mark.asyncio
    async def test_complete_result_is_cached(self, test_settings):
        store = FakeCallDataStore(_monthly_rows)
        cache = TTLCache()
        request = build_kpi_request('mom', JANUARY, 'exeter')

        first = await compare_periods(request, store, settings=test_settings, cache=cache)
        fetches = len(store.calls)
        second = await compare_periods(request, store, settings=test_settings, cache=cache)

        assert second == first
        assert len(store.calls) == fetches

    @pytest.mark.asyncio
    async def test_degraded_result_is_not_cached(self, test_settings):
        store = FakeCallDataStore(_monthly_rows, available=['exeter', 'aca'], failing={'aca'})
        cache = TTLCache()
        request = build_kpi_request('mom', JANUARY, 'all')

        await compare_periods(request, store, settings=test_settings, cache=cache)
        assert len(cache) == 0


class TestBatch:

    @pytest.mark.asyncio
    async def test_batch_preserves_request_order(self, test_settings):
        store = FakeCallDataStore(_monthly_rows)
        requests = [
            build_kpi_request('mom', JANUARY, 'exeter'),
            build_kpi_request('wow', JANUARY, 'aca'),
        ]
        results = await compare_periods_batch(requests, store, settings=test_settings)
        assert [r.client for r in results] == ['exeter', 'aca']
        assert [r.comparisonType for r in results] == [ComparisonType.MOM, ComparisonType.WOW]
