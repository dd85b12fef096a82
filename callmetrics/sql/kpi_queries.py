"""
Parameterized PostgreSQL queries over the per-client call tables.

Each client's calls live in ``<schema>.call_<client_id>``; welcome and
verification resolution flags live in ``<schema>.insight`` keyed by tenant.
Result code sets are passed as ``text[]`` parameters built from the result
code taxonomy, so the SQL never hard-codes the vocabulary.

Common filters (every query):
- start_time within [start, end_exclusive)
- test accounts, blank account numbers and test phone numbers excluded
- rows without a result code excluded

Parameter layout of the KPI query:
    $1  start (timestamp)          $7  promise codes
    $2  end_exclusive (timestamp)  $8  cash payment codes
    $3  test accounts              $9  transfer codes
    $4  test phone numbers         $10 payment attempt codes
    $5  non-connect codes          $11 tenant (client id)
    $6  non-connect + non-RPC codes
"""

from datetime import datetime
from typing import Any, List, Tuple

from callmetrics.services.result_codes import (
    CASH_PAYMENT_CODES,
    NON_CONNECT_CODES,
    NON_RPC_CODES,
    PAYMENT_ATTEMPT_CODES,
    PROMISE_CODES,
    TRANSFER_CODES,
)


TEST_ACCOUNTS: Tuple[str, ...] = (
    'TEST_ACCOUNT',
    'RUOK_TEST_ACCOUNT',
    'RUOK_TEST_NUMBER',
    'RUOK_TEST_CALL',
    'demo_web_call',
)

TEST_PHONE_NUMBERS: Tuple[str, ...] = (
    '9178606462', '6302094756', '2179049269', '6267780859', '6468818853',
    '6154876955', '9419288298', '8584499245', '4125199457', '6199522671',
    '6748395926', '2067795143', '3318146187', '4255159695', '9897689493',
    '2175184592', '4708360127', '9294123493', '4242357515', '1234567890',
    '8145846869', '3235150525', '2067967654', '2053259755',
)

# Tables that share the call_ prefix but are not per-client call tables
_EXCLUDED_TABLE_PATTERNS: Tuple[str, ...] = (
    'call\\_%\\_agent%',
    'call\\_%\\_customer%',
    'call\\_%\\_dedup%',
    'call\\_%\\_extras%',
    'call\\_combined%',
    'call\\_metrics%',
    'call\\_auxiliary%',
)


def _codes(codes) -> List[str]:
    return sorted(codes)


def _quote_ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def call_table(schema: str, client_id: str) -> str:
    """Qualified table name for a client. client_id must already be validated."""
    return f"{_quote_ident(schema)}.{_quote_ident('call_' + client_id)}"


_BASE_FILTERS = """
        c.start_time >= $1
        AND c.start_time < $2
        AND COALESCE(c.account_number, '') <> ALL($3::text[])
        AND COALESCE(c.account_number, '') <> ''
        AND NOT (COALESCE(c.phone_number, '') = ANY($4::text[]))
        AND c.result IS NOT NULL
"""


def get_client_kpi_query(schema: str, client_id: str) -> str:
    """
    Raw funnel counters for one client, grouped by call flow model and direction.

    Returns one row per (model, direction) with the columns: model, direction,
    accounts, calls, connects, rpcs, promises, cash_payments, transfers,
    duration_seconds, completed_verifications, dollar_promised,
    dollar_collected, payment_attempts, payment_successful, payment_declined,
    payment_api_failed.

    Use with get_client_kpi_params().
    """
    return f"""
    SELECT
        c.model AS model,
        c.direction AS direction,
        COUNT(DISTINCT c.account_number) AS accounts,
        COUNT(*) AS calls,
        COUNT(*) FILTER (WHERE NOT (c.result = ANY($5::text[]))) AS connects,
        COUNT(*) FILTER (WHERE NOT (c.result = ANY($6::text[]))) AS rpcs,
        COUNT(*) FILTER (
            WHERE c.result = ANY($7::text[])
               OR COALESCE(c.notated_promise_to_pay::int, 0) = 1
        ) AS promises,
        COUNT(*) FILTER (WHERE c.result = ANY($8::text[])) AS cash_payments,
        COUNT(*) FILTER (WHERE c.result = ANY($9::text[])) AS transfers,
        COALESCE(SUM(c.duration), 0) AS duration_seconds,
        COUNT(*) FILTER (WHERE COALESCE(i.is_resolved::int, 0) = 1) AS completed_verifications,
        COALESCE(SUM(c.amount), 0) AS dollar_promised,
        COALESCE(SUM(c.payment_amount), 0) AS dollar_collected,
        COUNT(*) FILTER (WHERE c.result = ANY($10::text[])) AS payment_attempts,
        COUNT(*) FILTER (WHERE COALESCE(c.payment_successful::int, 0) = 1) AS payment_successful,
        COUNT(*) FILTER (WHERE COALESCE(c.payment_declined::int, 0) = 1) AS payment_declined,
        COUNT(*) FILTER (WHERE COALESCE(c.payment_api_failed::int, 0) = 1) AS payment_api_failed
    FROM {call_table(schema, client_id)} c
    LEFT JOIN (
        SELECT call_id, is_resolved
        FROM {_quote_ident(schema)}.insight
        WHERE tenant = $11
    ) i ON i.call_id = c.id
    WHERE {_BASE_FILTERS}
    GROUP BY c.model, c.direction
    """


def get_client_kpi_params(client_id: str, start: datetime, end_exclusive: datetime) -> List[Any]:
    return [
        start,
        end_exclusive,
        list(TEST_ACCOUNTS),
        list(TEST_PHONE_NUMBERS),
        _codes(NON_CONNECT_CODES),
        _codes(NON_CONNECT_CODES | NON_RPC_CODES),
        _codes(PROMISE_CODES),
        _codes(CASH_PAYMENT_CODES),
        _codes(TRANSFER_CODES),
        _codes(PAYMENT_ATTEMPT_CODES),
        client_id,
    ]


def get_delinquency_query(schema: str, client_id: str) -> str:
    """
    Collections funnel counters for one client by days-past-due bucket.

    Only the collections call flow model is included. Use with
    get_delinquency_params().
    """
    return f"""
    SELECT
        CASE
            WHEN COALESCE(c.dlq_days, 0) <= 30 THEN '1-30'
            WHEN COALESCE(c.dlq_days, 0) <= 60 THEN '31-60'
            WHEN COALESCE(c.dlq_days, 0) <= 90 THEN '61-90'
            ELSE '90+'
        END AS dlq_bucket,
        COUNT(DISTINCT c.account_number) AS accounts,
        COUNT(*) AS calls,
        COUNT(*) FILTER (WHERE NOT (c.result = ANY($5::text[]))) AS connects,
        COUNT(*) FILTER (WHERE NOT (c.result = ANY($6::text[]))) AS rpcs,
        COUNT(*) FILTER (
            WHERE c.result = ANY($7::text[])
               OR COALESCE(c.notated_promise_to_pay::int, 0) = 1
        ) AS promises,
        COUNT(*) FILTER (WHERE c.result = ANY($8::text[])) AS cash_payments,
        COALESCE(SUM(c.payment_amount), 0) AS dollar_collected
    FROM {call_table(schema, client_id)} c
    WHERE {_BASE_FILTERS}
        AND LOWER(c.model) = 'collections'
    GROUP BY dlq_bucket
    ORDER BY dlq_bucket
    """


def get_delinquency_params(start: datetime, end_exclusive: datetime) -> List[Any]:
    return [
        start,
        end_exclusive,
        list(TEST_ACCOUNTS),
        list(TEST_PHONE_NUMBERS),
        _codes(NON_CONNECT_CODES),
        _codes(NON_CONNECT_CODES | NON_RPC_CODES),
        _codes(PROMISE_CODES),
        _codes(CASH_PAYMENT_CODES),
    ]


def get_available_clients_query() -> str:
    """
    Client ids that have a call table in the schema ($1).

    Returns one row per table with a ``client`` column (table name minus the
    call_ prefix).
    """
    exclusions = "\n          AND ".join(
        f"table_name NOT LIKE '{pattern}'" for pattern in _EXCLUDED_TABLE_PATTERNS
    )
    return f"""
    SELECT DISTINCT regexp_replace(table_name, '^call_', '') AS client
    FROM information_schema.tables
    WHERE table_schema = $1
      AND table_name LIKE 'call\\_%'
      AND {exclusions}
    ORDER BY client
    """
