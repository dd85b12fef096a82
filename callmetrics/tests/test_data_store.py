"""
Tests for the PostgreSQL call data store and its query builders.

Database access is mocked through the mock_database / db_conn fixtures, so
these tests check query parameters, row parsing and caching without a
running PostgreSQL.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from callmetrics.core.cache import TTLCache
from callmetrics.core.exceptions import DataStoreUnavailableError, InvalidRequestError
from callmetrics.models.enums import CallDirection, CallFlowModel, DelinquencyBucket
from callmetrics.services.data_store import (
    AVAILABLE_CLIENTS_CACHE_KEY,
    PostgresCallDataStore,
    aggregate_from_record,
    fetch_period_aggregates,
    parse_delinquency_rows,
    parse_kpi_rows,
)
from callmetrics.services.date_ranges import get_week_range
from callmetrics.sql.kpi_queries import (
    TEST_ACCOUNTS,
    call_table,
    get_available_clients_query,
    get_client_kpi_params,
    get_client_kpi_query,
    get_delinquency_query,
)


def _record(**values):
    base = {'model': 'collections', 'direction': 'outbound', 'calls': 10, 'connects': 5}
    base.update(values)
    return base


class TestQueryBuilders:

    def test_table_name_is_quoted(self):
        assert call_table('analytics', 'exeter') == '"analytics"."call_exeter"'

    def test_kpi_query_targets_client_table(self):
        query = get_client_kpi_query('analytics', 'exeter')
        assert '"analytics"."call_exeter"' in query
        assert '"analytics".insight' in query
        assert 'GROUP BY c.model, c.direction' in query

    def test_kpi_params_layout(self):
        start, end = datetime(2025, 1, 1), datetime(2025, 2, 1)
        params = get_client_kpi_params('exeter', start, end)
        assert len(params) == 11
        assert params[0] == start
        assert params[1] == end
        assert params[2] == list(TEST_ACCOUNTS)
        assert 'NOA' in params[4]
        assert {'NOA', 'WRONGNO'} <= set(params[5])
        assert params[7] == ['FCC', 'PHO']
        assert params[10] == 'exeter'

    def test_delinquency_query_is_collections_only(self):
        query = get_delinquency_query('analytics', 'exeter')
        assert "LOWER(c.model) = 'collections'" in query
        assert 'dlq_bucket' in query

    def test_available_clients_query_excludes_auxiliary_tables(self):
        query = get_available_clients_query()
        assert 'table_schema = $1' in query
        assert "NOT LIKE 'call\\_combined%'" in query


class TestRowParsing:

    def test_null_counters_are_zero(self):
        agg = aggregate_from_record({'calls': 3, 'connects': None, 'completed_verifications': 2})
        assert agg.calls == 3
        assert agg.connects == 0
        assert agg.completed == 2

    def test_numeric_sums_stay_exact(self):
        rows = [{'dollar_collected': Decimal('0.10')}, {'dollar_collected': Decimal('0.20')}]
        total = sum(aggregate_from_record(r).dollar_collected for r in rows)
        assert total == Decimal('0.30')
        assert aggregate_from_record({'duration_seconds': 754}).duration_seconds == 754

    def test_models_and_directions_are_resolved(self):
        rows = parse_kpi_rows('exeter', [
            _record(model='Collections', direction='INBOUND'),
            _record(model='welcome', direction=None),
            _record(model='survey'),
        ])
        assert [(r.model, r.direction) for r in rows] == [
            (CallFlowModel.COLLECTIONS, CallDirection.INBOUND),
            (CallFlowModel.WELCOME, CallDirection.OUTBOUND),
        ]

    def test_delinquency_rows(self):
        buckets = parse_delinquency_rows([
            {'dlq_bucket': '1-30', 'calls': 4},
            {'dlq_bucket': '90+', 'calls': 1},
            {'dlq_bucket': '1-30', 'calls': 2},
        ])
        assert buckets[DelinquencyBucket.DAYS_1_30].calls == 6
        assert buckets[DelinquencyBucket.DAYS_90_PLUS].calls == 1


class TestPostgresCallDataStore:

    @pytest.mark.asyncio
    async def test_fetch_raw_rows_uses_half_open_window(self, test_settings, db_conn):
        db_conn.fetch.return_value = [_record(calls=7)]
        store = PostgresCallDataStore(settings=test_settings)

        rows = await store.fetch_raw_rows('exeter', datetime(2025, 1, 12), datetime(2025, 1, 18, 23, 59, 59, 999000))

        assert rows[0].aggregate.calls == 7
        query, *params = db_conn.fetch.call_args.args
        assert '"analytics"."call_exeter"' in query
        assert params[0] == datetime(2025, 1, 12)
        assert params[1] == datetime(2025, 1, 19)
        assert params[10] == 'exeter'

    @pytest.mark.asyncio
    async def test_invalid_client_never_reaches_database(self, test_settings, db_conn):
        store = PostgresCallDataStore(settings=test_settings)
        with pytest.raises(InvalidRequestError):
            await store.fetch_raw_rows('exeter"; DROP TABLE x; --', datetime(2025, 1, 1), datetime(2025, 1, 2))
        db_conn.fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_fetch_delinquency_rows(self, test_settings, db_conn):
        db_conn.fetch.return_value = [{'dlq_bucket': '31-60', 'calls': 3, 'rpcs': 1}]
        store = PostgresCallDataStore(settings=test_settings)

        buckets = await store.fetch_delinquency_rows('exeter', datetime(2025, 1, 1), datetime(2025, 1, 31))

        assert buckets == {DelinquencyBucket.DAYS_31_60: aggregate_from_record({'calls': 3, 'rpcs': 1})}
        assert len(db_conn.fetch.call_args.args) == 9

    @pytest.mark.asyncio
    async def test_available_clients_filtered_and_cached(self, test_settings, db_conn):
        db_conn.fetch.return_value = [{'client': 'westlake'}, {'client': 'exeter'}, {'client': 'sandbox'}]
        cache = TTLCache()
        store = PostgresCallDataStore(settings=test_settings, cache=cache)

        first = await store.list_available_clients()
        second = await store.list_available_clients()

        assert first == ['exeter', 'westlake']
        assert second == first
        assert db_conn.fetch.call_count == 1
        assert db_conn.fetch.call_args.args[1] == 'analytics'
        assert cache.get(AVAILABLE_CLIENTS_CACHE_KEY) == ('exeter', 'westlake')

    @pytest.mark.asyncio
    async def test_available_clients_without_cache(self, test_settings, db_conn):
        db_conn.fetch.return_value = [{'client': 'aca'}]
        store = PostgresCallDataStore(settings=test_settings)

        await store.list_available_clients()
        await store.list_available_clients()

        assert db_conn.fetch.call_count == 2

    @pytest.mark.asyncio
    async def test_fetch_period_aggregates_groups_rows(self, test_settings, db_conn):
        db_conn.fetch.return_value = [
            _record(calls=10),
            _record(direction='inbound', calls=4),
            _record(model='verification', calls=2, completed_verifications=1),
        ]
        store = PostgresCallDataStore(settings=test_settings)

        period = await fetch_period_aggregates(store, 'exeter', get_week_range(datetime(2025, 1, 15)))

        assert period.collections.calls == 10
        assert period.inbound.calls == 4
        assert period.verification.completed == 1

    @pytest.mark.asyncio
    async def test_unreachable_database_is_unavailable(self, test_settings, db_conn):
        db_conn.fetch.side_effect = OSError("connection refused")
        store = PostgresCallDataStore(settings=test_settings)

        with pytest.raises(DataStoreUnavailableError):
            await store.list_available_clients()
