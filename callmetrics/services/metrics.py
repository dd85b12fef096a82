"""
Metric derivation and aggregate reduction.

Raw counters (RawCallAggregate) are the only thing ever summed. Rates and
ratios are derived from raw counters at the very end, so a total across
clients or weeks is always a weighted figure and never a sum or mean of rates.

Key Functions:
- safe_divide: a / b, 0 when b == 0
- derive_collections_metrics / derive_welcome_verification_metrics: raw -> derived
- combine_aggregates / sum_aggregates / average_aggregates: the reducer
- raw_from_collections_metrics / raw_from_welcome_metrics: derived -> raw, so
  already-derived records can be combined correctly
- derive_period_kpis: PeriodRawAggregates -> PeriodKPIs
- percent_of_total: a client's share of a total, volume fields only
- derive_payment_outcomes: payment API outcome rates

Derived Formulas (collections / inbound):
- callsPerAccount = calls / accounts
- connectRate = connects / calls * 100
- rpcRate = rpcs / connects * 100
- promisesPerRpc = promises / rpcs * 100
- cashPerRpc = cash_payments / rpcs * 100
- cashPerPromises = cash_payments / promises * 100
- transfersPerRpc = transfers / rpcs * 100
- timeOnCallHours = duration_seconds / 3600
- avgTimePerCallMin = duration_seconds / 60 / calls
- avgPaymentAmount = dollar_collected / cash_payments
- dollarPerRpc = dollar_collected / rpcs

Derived Formulas (welcome / verification):
- eligible = rpcs
- eligiblePerRpc = eligible / rpcs * 100
- completedPerEligible = completed / eligible * 100
- completedPerRpc = completed / rpcs * 100
- incomplete = eligible - completed (signed)

Rates are not clamped to [0, 100]; inputs that respect the classifier's
funnel (rpcs <= connects <= calls) keep them in range.

Money and duration counters are Decimal so that sums are exact in any order;
they become floats only when derived or averaged.
"""

from dataclasses import dataclass, field, fields
from decimal import Decimal
from functools import reduce
from typing import Dict, Iterable, List, Sequence, Tuple

from callmetrics.models.enums import (
    CallCategory,
    CallDirection,
    CallFlowModel,
    MetricFormat,
    MetricRowCategory,
)
from callmetrics.models.schemas import (
    CollectionsMetrics,
    MetricRowConfig,
    PaymentOutcomeMetrics,
    PeriodKPIs,
    WelcomeVerificationMetrics,
)


def safe_divide(numerator: float, denominator: float) -> float:
    """Divide, returning 0 when the denominator is 0."""
    if denominator == 0:
        return 0.0
    return numerator / denominator


# =============================================================================
# Raw Aggregates
# =============================================================================


EXACT_FIELDS: Tuple[str, ...] = ('duration_seconds', 'dollar_promised', 'dollar_collected')


def to_decimal(value) -> Decimal:
    """Exact Decimal for a counter value. Floats convert through their shortest repr."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    return Decimal(repr(float(value)))


@dataclass(frozen=True)
class RawCallAggregate:
    """
    Non-negative raw counters for a set of calls. Never pre-divided.

    Attributes:
        accounts: Distinct accounts called.
        calls: Total calls.
        connects: Calls that reached a person.
        rpcs: Right-party contacts.
        promises: Promise-to-pay outcomes (code or notated flag).
        cash_payments: Completed or successfully scheduled payments.
        transfers: Escalations / hand-offs.
        duration_seconds: Summed call duration.
        dollar_promised: Summed promised amount.
        dollar_collected: Summed collected amount.
        completed: Resolved welcome / verification calls.
        payment_attempts: Calls that invoked the payment API.
        payment_successful / payment_declined / payment_api_failed: API outcomes.
    """
    accounts: float = 0
    calls: float = 0
    connects: float = 0
    rpcs: float = 0
    promises: float = 0
    cash_payments: float = 0
    transfers: float = 0
    duration_seconds: Decimal = Decimal(0)
    dollar_promised: Decimal = Decimal(0)
    dollar_collected: Decimal = Decimal(0)
    completed: float = 0
    payment_attempts: float = 0
    payment_successful: float = 0
    payment_declined: float = 0
    payment_api_failed: float = 0

    def __post_init__(self):
        for name in EXACT_FIELDS:
            object.__setattr__(self, name, to_decimal(getattr(self, name)))

    def __add__(self, other: 'RawCallAggregate') -> 'RawCallAggregate':
        if not isinstance(other, RawCallAggregate):
            return NotImplemented
        return combine_aggregates(self, other)

    def scale(self, factor: float) -> 'RawCallAggregate':
        exact_factor = to_decimal(factor)
        return RawCallAggregate(**{
            f.name: getattr(self, f.name) * (exact_factor if f.name in EXACT_FIELDS else factor)
            for f in fields(self)
        })

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) == 0 for f in fields(self))


EMPTY_AGGREGATE = RawCallAggregate()

_RAW_FIELDS: Tuple[str, ...] = tuple(f.name for f in fields(RawCallAggregate))


@dataclass(frozen=True)
class RawCallRow:
    """Raw aggregate for one (call flow model, direction) pair, tagged at ingestion."""
    model: CallFlowModel
    direction: CallDirection
    aggregate: RawCallAggregate

    @property
    def category(self) -> CallCategory:
        return CallCategory.resolve(self.model, self.direction)


@dataclass(frozen=True)
class PeriodRawAggregates:
    """Raw counters per KPI category for one window."""
    collections: RawCallAggregate = field(default_factory=RawCallAggregate)
    inbound: RawCallAggregate = field(default_factory=RawCallAggregate)
    welcome: RawCallAggregate = field(default_factory=RawCallAggregate)
    verification: RawCallAggregate = field(default_factory=RawCallAggregate)

    def __add__(self, other: 'PeriodRawAggregates') -> 'PeriodRawAggregates':
        if not isinstance(other, PeriodRawAggregates):
            return NotImplemented
        return combine_period_aggregates(self, other)

    def scale(self, factor: float) -> 'PeriodRawAggregates':
        return PeriodRawAggregates(
            collections=self.collections.scale(factor),
            inbound=self.inbound.scale(factor),
            welcome=self.welcome.scale(factor),
            verification=self.verification.scale(factor),
        )

    def for_category(self, category: CallCategory) -> RawCallAggregate:
        return getattr(self, category.value)

    def is_empty(self) -> bool:
        return all(self.for_category(c).is_empty() for c in CallCategory)


EMPTY_PERIOD = PeriodRawAggregates()


# =============================================================================
# Reducer
# =============================================================================


def combine_aggregates(a: RawCallAggregate, b: RawCallAggregate) -> RawCallAggregate:
    """Field-wise sum of raw counters. Associative and commutative."""
    return RawCallAggregate(**{
        name: getattr(a, name) + getattr(b, name) for name in _RAW_FIELDS
    })


def sum_aggregates(aggregates: Iterable[RawCallAggregate]) -> RawCallAggregate:
    return reduce(combine_aggregates, aggregates, EMPTY_AGGREGATE)


def average_aggregates(aggregates: Sequence[RawCallAggregate]) -> RawCallAggregate:
    """Sum then scale by 1/n. Empty input averages to the empty aggregate."""
    if not aggregates:
        return EMPTY_AGGREGATE
    return sum_aggregates(aggregates).scale(1.0 / len(aggregates))


def combine_period_aggregates(a: PeriodRawAggregates, b: PeriodRawAggregates) -> PeriodRawAggregates:
    return PeriodRawAggregates(
        collections=combine_aggregates(a.collections, b.collections),
        inbound=combine_aggregates(a.inbound, b.inbound),
        welcome=combine_aggregates(a.welcome, b.welcome),
        verification=combine_aggregates(a.verification, b.verification),
    )


def sum_period_aggregates(periods: Iterable[PeriodRawAggregates]) -> PeriodRawAggregates:
    return reduce(combine_period_aggregates, periods, EMPTY_PERIOD)


def average_period_aggregates(periods: Sequence[PeriodRawAggregates]) -> PeriodRawAggregates:
    """
    Average several windows' raw counters.

    Used for rolling baselines: each window is reduced on its own, the
    windows are summed, and the sum is divided by the window count. Rates are
    derived afterwards from the averaged counters.
    """
    if not periods:
        return EMPTY_PERIOD
    return sum_period_aggregates(periods).scale(1.0 / len(periods))


def group_rows_by_category(rows: Iterable[RawCallRow]) -> PeriodRawAggregates:
    """Fold tagged rows into per-category raw counters."""
    buckets: Dict[CallCategory, List[RawCallAggregate]] = {c: [] for c in CallCategory}
    for row in rows:
        buckets[row.category].append(row.aggregate)
    return PeriodRawAggregates(**{
        category.value: sum_aggregates(aggregates)
        for category, aggregates in buckets.items()
    })


# =============================================================================
# Derivation
# =============================================================================


def derive_collections_metrics(raw: RawCallAggregate) -> CollectionsMetrics:
    duration_minutes = float(raw.duration_seconds) / 60
    dollar_collected = float(raw.dollar_collected)
    return CollectionsMetrics(
        accounts=raw.accounts,
        calls=raw.calls,
        callsPerAccount=safe_divide(raw.calls, raw.accounts),
        connects=raw.connects,
        connectRate=safe_divide(raw.connects, raw.calls) * 100,
        rpcs=raw.rpcs,
        rpcRate=safe_divide(raw.rpcs, raw.connects) * 100,
        promises=raw.promises,
        promisesPerRpc=safe_divide(raw.promises, raw.rpcs) * 100,
        cashPayments=raw.cash_payments,
        cashPerRpc=safe_divide(raw.cash_payments, raw.rpcs) * 100,
        cashPerPromises=safe_divide(raw.cash_payments, raw.promises) * 100,
        transfers=raw.transfers,
        transfersPerRpc=safe_divide(raw.transfers, raw.rpcs) * 100,
        timeOnCallHours=duration_minutes / 60,
        avgTimePerCallMin=safe_divide(duration_minutes, raw.calls),
        dollarPromised=float(raw.dollar_promised),
        dollarCollected=dollar_collected,
        avgPaymentAmount=safe_divide(dollar_collected, raw.cash_payments),
        dollarPerRpc=safe_divide(dollar_collected, raw.rpcs),
    )


def derive_welcome_verification_metrics(raw: RawCallAggregate) -> WelcomeVerificationMetrics:
    # Every right-party contact is eligible for welcome / verification
    eligible = raw.rpcs
    return WelcomeVerificationMetrics(
        accounts=raw.accounts,
        calls=raw.calls,
        callsPerAccount=safe_divide(raw.calls, raw.accounts),
        connects=raw.connects,
        connectRate=safe_divide(raw.connects, raw.calls) * 100,
        rpcs=raw.rpcs,
        rpcRate=safe_divide(raw.rpcs, raw.connects) * 100,
        eligible=eligible,
        eligiblePerRpc=safe_divide(eligible, raw.rpcs) * 100,
        completed=raw.completed,
        completedPerEligible=safe_divide(raw.completed, eligible) * 100,
        completedPerRpc=safe_divide(raw.completed, raw.rpcs) * 100,
        incomplete=eligible - raw.completed,
    )


def derive_period_kpis(period: PeriodRawAggregates) -> PeriodKPIs:
    return PeriodKPIs(
        collections=derive_collections_metrics(period.collections),
        inbound=derive_collections_metrics(period.inbound),
        welcome=derive_welcome_verification_metrics(period.welcome),
        verification=derive_welcome_verification_metrics(period.verification),
    )


def raw_from_collections_metrics(metrics: CollectionsMetrics) -> RawCallAggregate:
    """Recover raw counters from a derived collections record (payment counters are not carried)."""
    return RawCallAggregate(
        accounts=metrics.accounts,
        calls=metrics.calls,
        connects=metrics.connects,
        rpcs=metrics.rpcs,
        promises=metrics.promises,
        cash_payments=metrics.cashPayments,
        transfers=metrics.transfers,
        duration_seconds=metrics.timeOnCallHours * 3600,
        dollar_promised=metrics.dollarPromised,
        dollar_collected=metrics.dollarCollected,
    )


def raw_from_welcome_metrics(metrics: WelcomeVerificationMetrics) -> RawCallAggregate:
    return RawCallAggregate(
        accounts=metrics.accounts,
        calls=metrics.calls,
        connects=metrics.connects,
        rpcs=metrics.rpcs,
        completed=metrics.completed,
    )


def raw_from_period_kpis(kpis: PeriodKPIs) -> PeriodRawAggregates:
    return PeriodRawAggregates(
        collections=raw_from_collections_metrics(kpis.collections),
        inbound=raw_from_collections_metrics(kpis.inbound),
        welcome=raw_from_welcome_metrics(kpis.welcome),
        verification=raw_from_welcome_metrics(kpis.verification),
    )


def combine_collections_metrics(a: CollectionsMetrics, b: CollectionsMetrics) -> CollectionsMetrics:
    """Combine two derived records by summing their raw counters and re-deriving."""
    return derive_collections_metrics(
        combine_aggregates(raw_from_collections_metrics(a), raw_from_collections_metrics(b))
    )


def combine_welcome_metrics(
    a: WelcomeVerificationMetrics,
    b: WelcomeVerificationMetrics,
) -> WelcomeVerificationMetrics:
    return derive_welcome_verification_metrics(
        combine_aggregates(raw_from_welcome_metrics(a), raw_from_welcome_metrics(b))
    )


def combine_period_kpis(a: PeriodKPIs, b: PeriodKPIs) -> PeriodKPIs:
    return derive_period_kpis(combine_period_aggregates(raw_from_period_kpis(a), raw_from_period_kpis(b)))


# =============================================================================
# Percent of Total
# =============================================================================


COLLECTIONS_VOLUME_FIELDS = (
    'accounts', 'calls', 'connects', 'rpcs', 'promises', 'cashPayments',
    'transfers', 'timeOnCallHours', 'dollarPromised', 'dollarCollected',
)

WELCOME_VOLUME_FIELDS = (
    'accounts', 'calls', 'connects', 'rpcs', 'eligible', 'completed', 'incomplete',
)


def _share(value: float, total: float) -> float:
    return value / total * 100 if total > 0 else 0.0


def _percent_fields(part, total, volume_fields, model_cls):
    return model_cls(**{name: _share(getattr(part, name), getattr(total, name)) for name in volume_fields})


def percent_of_total(part: PeriodKPIs, total: PeriodKPIs) -> PeriodKPIs:
    """
    Each volume field of ``part`` as a percentage of ``total``.

    Ratio fields are meaningless as shares and are left at 0.
    """
    return PeriodKPIs(
        collections=_percent_fields(part.collections, total.collections, COLLECTIONS_VOLUME_FIELDS, CollectionsMetrics),
        inbound=_percent_fields(part.inbound, total.inbound, COLLECTIONS_VOLUME_FIELDS, CollectionsMetrics),
        welcome=_percent_fields(part.welcome, total.welcome, WELCOME_VOLUME_FIELDS, WelcomeVerificationMetrics),
        verification=_percent_fields(
            part.verification, total.verification, WELCOME_VOLUME_FIELDS, WelcomeVerificationMetrics
        ),
    )


# =============================================================================
# Payment Outcomes
# =============================================================================


def derive_payment_outcomes(raw: RawCallAggregate) -> PaymentOutcomeMetrics:
    attempts = raw.payment_attempts
    return PaymentOutcomeMetrics(
        totalAttempts=attempts,
        successful=raw.payment_successful,
        declined=raw.payment_declined,
        apiFailed=raw.payment_api_failed,
        successRate=safe_divide(raw.payment_successful, attempts) * 100,
        declineRate=safe_divide(raw.payment_declined, attempts) * 100,
        apiFailureRate=safe_divide(raw.payment_api_failed, attempts) * 100,
    )


# =============================================================================
# Metric Row Configuration
# =============================================================================


def _row(key: str, label: str, fmt: MetricFormat, category: MetricRowCategory) -> MetricRowConfig:
    return MetricRowConfig(key=key, label=label, format=fmt, category=category)


_V, _D, _R = MetricRowCategory.VOLUME, MetricRowCategory.DOLLAR, MetricRowCategory.RATIO

COLLECTIONS_METRIC_ROWS: List[MetricRowConfig] = [
    _row('accounts', '# Accounts', MetricFormat.NUMBER, _V),
    _row('calls', '# Calls', MetricFormat.NUMBER, _V),
    _row('connects', '# Connects', MetricFormat.NUMBER, _V),
    _row('rpcs', '# RPCs', MetricFormat.NUMBER, _V),
    _row('promises', '# Promises', MetricFormat.NUMBER, _V),
    _row('cashPayments', '# Cash Payments', MetricFormat.NUMBER, _V),
    _row('transfers', '# Transfers', MetricFormat.NUMBER, _V),
    _row('timeOnCallHours', 'Time on Call (hours)', MetricFormat.NUMBER, _V),
    _row('dollarPromised', '$ Promised', MetricFormat.CURRENCY, _D),
    _row('dollarCollected', '$ Collected', MetricFormat.CURRENCY, _D),
    _row('avgPaymentAmount', 'Avg Payment $', MetricFormat.CURRENCY, _D),
    _row('dollarPerRpc', '$ per RPC', MetricFormat.CURRENCY, _D),
    _row('callsPerAccount', 'Calls per account', MetricFormat.DECIMAL, _R),
    _row('connectRate', 'Connect %', MetricFormat.PERCENTAGE, _R),
    _row('rpcRate', 'RPC %', MetricFormat.PERCENTAGE, _R),
    _row('promisesPerRpc', 'Promises / RPC %', MetricFormat.PERCENTAGE, _R),
    _row('cashPerRpc', 'Cash / RPC %', MetricFormat.PERCENTAGE, _R),
    _row('cashPerPromises', 'Cash / Promises %', MetricFormat.PERCENTAGE, _R),
    _row('transfersPerRpc', 'Transfers / RPC %', MetricFormat.PERCENTAGE, _R),
    _row('avgTimePerCallMin', 'Avg Time per Call (min)', MetricFormat.DECIMAL, _R),
]

WELCOME_VERIFICATION_METRIC_ROWS: List[MetricRowConfig] = [
    _row('accounts', '# Accounts', MetricFormat.NUMBER, _V),
    _row('calls', '# Calls', MetricFormat.NUMBER, _V),
    _row('connects', '# Connects', MetricFormat.NUMBER, _V),
    _row('rpcs', '# RPCs', MetricFormat.NUMBER, _V),
    _row('eligible', '# Eligible', MetricFormat.NUMBER, _V),
    _row('completed', '# Completed', MetricFormat.NUMBER, _V),
    _row('incomplete', '# Incomplete', MetricFormat.NUMBER, _V),
    _row('callsPerAccount', 'Calls per account', MetricFormat.DECIMAL, _R),
    _row('connectRate', 'Connect %', MetricFormat.PERCENTAGE, _R),
    _row('rpcRate', 'RPC %', MetricFormat.PERCENTAGE, _R),
    _row('eligiblePerRpc', 'Eligible / RPC %', MetricFormat.PERCENTAGE, _R),
    _row('completedPerEligible', 'Completed / Eligible %', MetricFormat.PERCENTAGE, _R),
    _row('completedPerRpc', 'Completed / RPC %', MetricFormat.PERCENTAGE, _R),
]


def metric_rows_for(category: CallCategory) -> List[MetricRowConfig]:
    if category in (CallCategory.COLLECTIONS, CallCategory.INBOUND):
        return COLLECTIONS_METRIC_ROWS
    return WELCOME_VERIFICATION_METRIC_ROWS
