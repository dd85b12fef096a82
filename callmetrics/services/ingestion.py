"""
Per-call event ingestion with pandas.

Turns raw per-call event records (one row per call) into the same tagged raw
counters the SQL store produces, so files, fixtures and ad-hoc extracts can be
analysed with the exact rules the database path uses.

Event columns:
- required: start_time, account_number, result, model
- optional (default empty / 0): phone_number, direction, duration (seconds),
  notated_promise_to_pay, is_resolved, amount, payment_amount,
  payment_successful, payment_declined, payment_api_failed, dlq_days

Processing steps:
1. Normalize column names (lowercase, stripped) and coerce types
2. Drop test accounts, blank account numbers, test phone numbers and calls
   without a result code
3. Restrict to the requested window (start <= start_time < day after end)
4. Classify each call into funnel buckets from its result code and promise flag
5. Group by (model, direction) into RawCallRows; unknown models are dropped
"""

import io
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Union

import numpy as np
import pandas as pd

from callmetrics.core.exceptions import InvalidRequestError
from callmetrics.models.enums import CallDirection, CallFlowModel, DelinquencyBucket
from callmetrics.services.clients import filter_known_clients
from callmetrics.services.date_ranges import start_of_day
from callmetrics.services.metrics import RawCallAggregate, RawCallRow, to_decimal
from callmetrics.services.result_codes import (
    CASH_PAYMENT_CODES,
    NON_CONNECT_CODES,
    NON_RPC_CODES,
    PAYMENT_ATTEMPT_CODES,
    PROMISE_CODES,
    TRANSFER_CODES,
)
from callmetrics.sql.kpi_queries import TEST_ACCOUNTS, TEST_PHONE_NUMBERS


logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

REQUIRED_EVENT_COLUMNS: List[str] = [
    'start_time',
    'account_number',
    'result',
    'model',
]

NUMERIC_EVENT_COLUMNS: List[str] = [
    'duration',
    'notated_promise_to_pay',
    'is_resolved',
    'amount',
    'payment_amount',
    'payment_successful',
    'payment_declined',
    'payment_api_failed',
    'dlq_days',
]

TEXT_EVENT_COLUMNS: List[str] = [
    'account_number',
    'phone_number',
    'direction',
]

_FLAG_COLUMNS = {
    'is_promise': 'promises',
    'is_cash_payment': 'cash_payments',
    'is_transfer': 'transfers',
    'is_connect': 'connects',
    'is_rpc': 'rpcs',
    'is_completed': 'completed',
    'is_payment_attempt': 'payment_attempts',
    'payment_successful': 'payment_successful',
    'payment_declined': 'payment_declined',
    'payment_api_failed': 'payment_api_failed',
}


# =============================================================================
# NORMALIZATION
# =============================================================================


def normalize_events(df: pd.DataFrame) -> pd.DataFrame:
    """
    Normalize column names and types of a per-call event frame.

    Raises:
        InvalidRequestError: If a required column is missing.
    """
    df_normalized = df.copy()
    df_normalized.columns = df_normalized.columns.str.lower().str.strip()

    missing = [col for col in REQUIRED_EVENT_COLUMNS if col not in df_normalized.columns]
    if missing:
        raise InvalidRequestError(f"Call events are missing required columns: {', '.join(missing)}")

    df_normalized['start_time'] = pd.to_datetime(df_normalized['start_time'])

    for col in NUMERIC_EVENT_COLUMNS:
        if col in df_normalized.columns:
            df_normalized[col] = pd.to_numeric(df_normalized[col], errors='coerce').fillna(0)
        else:
            df_normalized[col] = 0

    for col in TEXT_EVENT_COLUMNS:
        if col in df_normalized.columns:
            df_normalized[col] = df_normalized[col].where(df_normalized[col].notna(), '').astype(str)
        else:
            df_normalized[col] = ''

    # Codes are case-sensitive; only surrounding whitespace is removed
    df_normalized['result'] = df_normalized['result'].where(
        df_normalized['result'].isna(), df_normalized['result'].astype(str).str.strip()
    )
    df_normalized['model'] = df_normalized['model'].astype(str).str.strip().str.lower()
    return df_normalized


def load_call_events_csv(source: Union[str, bytes, io.IOBase]) -> pd.DataFrame:
    """Read a per-call event CSV (path, bytes or file object) and normalize it."""
    if isinstance(source, bytes):
        source = io.BytesIO(source)
    df = pd.read_csv(source)
    logger.info(f"Parsed call events CSV with {len(df)} rows and {len(df.columns)} columns")
    return normalize_events(df)


def exclude_test_traffic(df: pd.DataFrame) -> pd.DataFrame:
    """Drop test accounts, blank account numbers, test phone numbers and rows without a result."""
    mask = (
        ~df['account_number'].isin(list(TEST_ACCOUNTS))
        & (df['account_number'] != '')
        & ~df['phone_number'].isin(list(TEST_PHONE_NUMBERS))
        & df['result'].notna()
    )
    return df[mask]


def filter_window(df: pd.DataFrame, start: datetime, end: datetime) -> pd.DataFrame:
    """Keep calls with start <= start_time on or before the end day."""
    upper = start_of_day(end) + timedelta(days=1)
    return df[(df['start_time'] >= start) & (df['start_time'] < upper)]


# =============================================================================
# CLASSIFICATION
# =============================================================================


def classify_events(df: pd.DataFrame) -> pd.DataFrame:
    """Add boolean funnel columns derived from result codes and flags."""
    result = df['result']
    classified = df.copy()
    classified['is_connect'] = ~result.isin(list(NON_CONNECT_CODES))
    classified['is_rpc'] = ~result.isin(list(NON_CONNECT_CODES | NON_RPC_CODES))
    classified['is_promise'] = result.isin(list(PROMISE_CODES)) | (df['notated_promise_to_pay'] == 1)
    classified['is_cash_payment'] = result.isin(list(CASH_PAYMENT_CODES))
    classified['is_transfer'] = result.isin(list(TRANSFER_CODES))
    classified['is_payment_attempt'] = result.isin(list(PAYMENT_ATTEMPT_CODES))
    classified['is_completed'] = df['is_resolved'] == 1
    for col in ('payment_successful', 'payment_declined', 'payment_api_failed'):
        classified[col] = df[col] == 1
    return classified


def _exact_sum(values: pd.Series) -> Decimal:
    return sum((to_decimal(v) for v in values), Decimal(0))


def _aggregate_group(group: pd.DataFrame) -> RawCallAggregate:
    # Blank accounts are already excluded, so nunique counts real accounts
    counters = {target: float(group[flag].sum()) for flag, target in _FLAG_COLUMNS.items()}
    return RawCallAggregate(
        accounts=float(group['account_number'].nunique()),
        calls=float(len(group)),
        duration_seconds=_exact_sum(group['duration']),
        dollar_promised=_exact_sum(group['amount']),
        dollar_collected=_exact_sum(group['payment_amount']),
        **counters,
    )


def aggregate_call_events(
    df: pd.DataFrame,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> List[RawCallRow]:
    """
    Aggregate normalized per-call events into RawCallRows.

    Args:
        df: Frame produced by normalize_events / load_call_events_csv.
        start: Optional inclusive window start.
        end: Optional inclusive window end day.

    Returns:
        One RawCallRow per (model, direction) present in the filtered events.
    """
    events = exclude_test_traffic(df)
    if start is not None and end is not None:
        events = filter_window(events, start, end)
    if events.empty:
        return []

    events = classify_events(events)
    events = events.assign(_direction=events['direction'].map(lambda d: CallDirection.from_raw(d).value))

    rows: List[RawCallRow] = []
    for (model_value, direction_value), group in events.groupby(['model', '_direction'], sort=True):
        model = CallFlowModel.from_raw(model_value)
        if model is None:
            logger.debug(f"Dropping {len(group)} events with unknown model '{model_value}'")
            continue
        rows.append(RawCallRow(
            model=model,
            direction=CallDirection(direction_value),
            aggregate=_aggregate_group(group),
        ))
    return rows


def aggregate_delinquency_events(
    df: pd.DataFrame,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> Dict[DelinquencyBucket, RawCallAggregate]:
    """Collections events aggregated per days-past-due bucket."""
    events = exclude_test_traffic(df)
    if start is not None and end is not None:
        events = filter_window(events, start, end)
    events = events[events['model'] == CallFlowModel.COLLECTIONS.value]
    if events.empty:
        return {}

    events = classify_events(events)
    dlq_days = events['dlq_days']
    # Same edges as DelinquencyBucket.from_days
    buckets = pd.Series(
        np.select(
            [dlq_days <= 30, dlq_days <= 60, dlq_days <= 90],
            [DelinquencyBucket.DAYS_1_30.value, DelinquencyBucket.DAYS_31_60.value, DelinquencyBucket.DAYS_61_90.value],
            default=DelinquencyBucket.DAYS_90_PLUS.value,
        ),
        index=events.index,
    )
    return {
        DelinquencyBucket(bucket): _aggregate_group(group)
        for bucket, group in events.groupby(buckets, sort=True)
    }


# =============================================================================
# IN-MEMORY STORE
# =============================================================================


class DataFrameCallDataStore:
    """
    CallDataStore over in-memory per-client event frames.

    Args:
        frames: client id -> raw per-call event DataFrame.
    """

    def __init__(self, frames: Dict[str, pd.DataFrame]):
        self.frames = {client: normalize_events(df) for client, df in frames.items()}

    def _frame(self, client_id: str) -> pd.DataFrame:
        if client_id not in self.frames:
            raise KeyError(f"No call events loaded for client '{client_id}'")
        return self.frames[client_id]

    async def fetch_raw_rows(self, client_id: str, start: datetime, end: datetime) -> List[RawCallRow]:
        return aggregate_call_events(self._frame(client_id), start, end)

    async def fetch_delinquency_rows(
        self, client_id: str, start: datetime, end: datetime
    ) -> Dict[DelinquencyBucket, RawCallAggregate]:
        return aggregate_delinquency_events(self._frame(client_id), start, end)

    async def list_available_clients(self) -> List[str]:
        return filter_known_clients(self.frames)
