"""
Payment outcome and delinquency breakdowns for a client selector and window.

Both fan out one fetch per client through the orchestrator, sum raw counters
with the reducer and derive rates only at the end.
"""

import logging
from functools import partial
from typing import Dict, List, Optional

from callmetrics.core.config import Settings, get_settings
from callmetrics.models.enums import DelinquencyBucket
from callmetrics.models.schemas import (
    DateRange,
    DelinquencyBreakdown,
    DelinquencyMetrics,
    DelinquencyTotals,
    PaymentOutcomeMetrics,
)
from callmetrics.services.clients import ClientSelector
from callmetrics.services.data_store import (
    CallDataStore,
    DelinquencyRows,
    fetch_delinquency_window,
    fetch_total_aggregate,
)
from callmetrics.services.metrics import (
    EMPTY_AGGREGATE,
    RawCallAggregate,
    derive_payment_outcomes,
    safe_divide,
    sum_aggregates,
)
from callmetrics.services.orchestrator import FetchOrchestrator, FetchTask


logger = logging.getLogger(__name__)


async def _resolve_clients(selector: ClientSelector, store: CallDataStore) -> List[str]:
    available = await store.list_available_clients() if selector.is_multi_client else []
    clients = selector.resolve(available)
    if not clients:
        logger.warning(f"No clients resolved for selector '{selector.raw}'")
    return clients


# =============================================================================
# Payment Outcomes
# =============================================================================


async def fetch_payment_outcomes(
    selector: ClientSelector,
    window: DateRange,
    store: CallDataStore,
    settings: Optional[Settings] = None,
) -> PaymentOutcomeMetrics:
    """
    Payment API outcomes (successful / declined / API failed) over payment attempts.

    Raises:
        AllFetchesFailedError: If every fetch failed.
    """
    settings = settings or get_settings()
    clients = await _resolve_clients(selector, store)

    orchestrator = FetchOrchestrator(
        partial(fetch_total_aggregate, store),
        concurrency=settings.client_batch_size,
        timeout_seconds=settings.fetch_timeout_seconds,
        empty_value=EMPTY_AGGREGATE,
        name="payment-outcomes",
    )
    report = await orchestrator.run([FetchTask(client, window) for client in clients])
    return derive_payment_outcomes(sum_aggregates(report.values()))


# =============================================================================
# Delinquency Buckets
# =============================================================================


def derive_delinquency_metrics(bucket: DelinquencyBucket, raw: RawCallAggregate) -> DelinquencyMetrics:
    return DelinquencyMetrics(
        bucket=bucket,
        bucketLabel=bucket.label,
        accounts=raw.accounts,
        calls=raw.calls,
        connects=raw.connects,
        connectRate=safe_divide(raw.connects, raw.calls) * 100,
        rpcs=raw.rpcs,
        rpcRate=safe_divide(raw.rpcs, raw.connects) * 100,
        promises=raw.promises,
        promisesPerRpc=safe_divide(raw.promises, raw.rpcs) * 100,
        cashPayments=raw.cash_payments,
        cashPerRpc=safe_divide(raw.cash_payments, raw.rpcs) * 100,
        dollarCollected=float(raw.dollar_collected),
        dollarPerRpc=safe_divide(float(raw.dollar_collected), raw.rpcs),
    )


def build_delinquency_breakdown(per_client: List[DelinquencyRows]) -> DelinquencyBreakdown:
    """Sum per-client bucket counters; every bucket is reported, empty ones as zero."""
    summed: Dict[DelinquencyBucket, RawCallAggregate] = {
        bucket: sum_aggregates(rows.get(bucket, EMPTY_AGGREGATE) for rows in per_client)
        for bucket in DelinquencyBucket
    }
    total = sum_aggregates(summed.values())
    return DelinquencyBreakdown(
        buckets=[derive_delinquency_metrics(bucket, raw) for bucket, raw in summed.items()],
        total=DelinquencyTotals(
            accounts=total.accounts,
            calls=total.calls,
            rpcs=total.rpcs,
            promises=total.promises,
            cashPayments=total.cash_payments,
            dollarCollected=float(total.dollar_collected),
        ),
    )


async def fetch_delinquency_breakdown(
    selector: ClientSelector,
    window: DateRange,
    store: CallDataStore,
    settings: Optional[Settings] = None,
) -> DelinquencyBreakdown:
    """
    Collections funnel by days-past-due bucket.

    Raises:
        AllFetchesFailedError: If every fetch failed.
    """
    settings = settings or get_settings()
    clients = await _resolve_clients(selector, store)

    orchestrator = FetchOrchestrator(
        partial(fetch_delinquency_window, store),
        concurrency=settings.client_batch_size,
        timeout_seconds=settings.fetch_timeout_seconds,
        empty_value={},
        name="delinquency",
    )
    report = await orchestrator.run([FetchTask(client, window) for client in clients])
    return build_delinquency_breakdown(report.values())
