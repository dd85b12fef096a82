"""
Pydantic value objects and response models for the Call Metrics engine.

Every model here is immutable (frozen) and recomputed per request. Field names
follow the dashboard's JSON contract (camelCase), so models serialize directly
into API responses.

Groups:
- Period arithmetic: DateRange, PeriodConfig
- Derived metrics: CollectionsMetrics, WelcomeVerificationMetrics, PeriodKPIs
- Comparison: ComparisonChange, ClientKPIBreakdown, PeriodComparisonResult
- Scorecard: ScorecardMetric, ClientScorecardData, AllClientsScorecardData
- Supplementary breakdowns: trends, payment outcomes, delinquency
- Requests: KPIRequest
"""

from datetime import datetime, date as DateType
from typing import Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field, ConfigDict, model_validator

from callmetrics.models.enums import (
    CallCategory,
    ComparisonType,
    DataCategory,
    DelinquencyBucket,
    HealthStatus,
    MetricFormat,
    MetricRowCategory,
    TrendDirection,
)


_FROZEN = ConfigDict(frozen=True)


# =============================================================================
# Period Arithmetic
# =============================================================================


class DateRange(BaseModel):
    """
    Inclusive time window.

    Ranges built by the date range calculator start at 00:00:00.000 and end at
    23:59:59.999 of their last day.
    """
    model_config = _FROZEN

    start: datetime
    end: datetime
    label: str

    @model_validator(mode='after')
    def _check_order(self) -> 'DateRange':
        if self.start > self.end:
            raise ValueError(f"DateRange start {self.start} is after end {self.end}")
        return self


class PeriodConfig(BaseModel):
    """
    Current and comparison windows for one comparison mode.

    For week-to-date, comparisonRange spans the whole baseline and
    baselineRanges lists the separate weeks whose metrics are averaged.
    """
    model_config = _FROZEN

    periodType: ComparisonType
    currentRange: DateRange
    comparisonRange: DateRange
    comparisonLabel: str
    baselineRanges: List[DateRange] = Field(default_factory=list)

    @property
    def comparison_windows(self) -> List[DateRange]:
        """Windows fetched for the comparison side."""
        return list(self.baselineRanges) if self.baselineRanges else [self.comparisonRange]


# =============================================================================
# Derived Metrics
# =============================================================================


class CollectionsMetrics(BaseModel):
    """Collections / inbound call flow metrics. Rates are on a 0-100 scale."""
    model_config = _FROZEN

    accounts: float = 0
    calls: float = 0
    callsPerAccount: float = 0
    connects: float = 0
    connectRate: float = 0
    rpcs: float = 0
    rpcRate: float = 0
    promises: float = 0
    promisesPerRpc: float = 0
    cashPayments: float = 0
    cashPerRpc: float = 0
    cashPerPromises: float = 0
    transfers: float = 0
    transfersPerRpc: float = 0
    timeOnCallHours: float = 0
    avgTimePerCallMin: float = 0
    dollarPromised: float = 0
    dollarCollected: float = 0
    avgPaymentAmount: float = 0
    dollarPerRpc: float = 0


class WelcomeVerificationMetrics(BaseModel):
    """
    Welcome / verification call flow metrics.

    incomplete = eligible - completed and stays signed: late classification
    can make completed exceed eligible.
    """
    model_config = _FROZEN

    accounts: float = 0
    calls: float = 0
    callsPerAccount: float = 0
    connects: float = 0
    connectRate: float = 0
    rpcs: float = 0
    rpcRate: float = 0
    eligible: float = 0
    eligiblePerRpc: float = 0
    completed: float = 0
    completedPerEligible: float = 0
    completedPerRpc: float = 0
    incomplete: float = 0


class PeriodKPIs(BaseModel):
    """One metrics record per call-flow category for a single time window."""
    model_config = _FROZEN

    collections: CollectionsMetrics = Field(default_factory=CollectionsMetrics)
    inbound: CollectionsMetrics = Field(default_factory=CollectionsMetrics)
    welcome: WelcomeVerificationMetrics = Field(default_factory=WelcomeVerificationMetrics)
    verification: WelcomeVerificationMetrics = Field(default_factory=WelcomeVerificationMetrics)

    def for_category(self, category: CallCategory) -> BaseModel:
        return getattr(self, category.value)


class MetricRowConfig(BaseModel):
    """Presentation row for a single metric field."""
    model_config = _FROZEN

    key: str
    label: str
    format: MetricFormat
    category: MetricRowCategory


# =============================================================================
# Comparison
# =============================================================================


class ComparisonChange(BaseModel):
    """Percentage change between two values plus its dead-banded trend."""
    model_config = _FROZEN

    value: float
    trend: TrendDirection


class ClientKPIBreakdown(BaseModel):
    """One client's current-period KPIs and their share of the selector total."""
    model_config = _FROZEN

    client: str
    displayName: str
    currentPeriod: PeriodKPIs
    percentOfTotal: PeriodKPIs


class PeriodComparisonResult(BaseModel):
    """
    Output of a period comparison.

    failedFetches counts (client, window) tasks that failed and contributed
    zero; callers decide whether a partially degraded result is acceptable.
    """
    model_config = _FROZEN

    client: str
    displayName: str
    comparisonType: ComparisonType
    currentPeriod: PeriodKPIs
    previousPeriod: PeriodKPIs
    currentPeriodLabel: str
    previousPeriodLabel: str
    comparisonContext: str
    changes: Dict[str, Dict[str, ComparisonChange]] = Field(default_factory=dict)
    clientBreakdown: List[ClientKPIBreakdown] = Field(default_factory=list)
    failedFetches: int = 0
    totalFetches: int = 0


# =============================================================================
# Scorecard
# =============================================================================


class ScorecardMetric(BaseModel):
    """Current value vs baseline for one scorecard metric."""
    model_config = _FROZEN

    current: float
    baseline: float
    change: float
    trend: TrendDirection
    status: HealthStatus


class ClientScorecardData(BaseModel):
    """A client's six scorecard metrics and weighted 0-100 health score."""
    model_config = _FROZEN

    client: str
    displayName: str
    callVolume: ScorecardMetric
    connectRate: ScorecardMetric
    rpcRate: ScorecardMetric
    promiseRate: ScorecardMetric
    paymentSuccess: ScorecardMetric
    dollarCollected: ScorecardMetric
    overallScore: int
    overallStatus: HealthStatus
    currentPeriodLabel: str
    comparisonLabel: str


class ScorecardPeriodInfo(BaseModel):
    model_config = _FROZEN

    currentRange: DateRange
    baselineRanges: List[DateRange] = Field(default_factory=list)
    comparisonDescription: str


class AllClientsScorecardData(BaseModel):
    model_config = _FROZEN

    clients: List[ClientScorecardData]
    periodInfo: ScorecardPeriodInfo
    generatedAt: str
    failedFetches: int = 0
    totalFetches: int = 0


# =============================================================================
# Historical Trends
# =============================================================================


class MonthlyTrendPoint(BaseModel):
    """Collections and inbound metrics for one calendar month."""
    model_config = _FROZEN

    month: str = Field(..., description="YYYY-MM")
    label: str = Field(..., description="Mon-YY")
    collections: CollectionsMetrics
    inbound: CollectionsMetrics


class HistoricalTrendData(BaseModel):
    model_config = _FROZEN

    client: Optional[str] = None
    displayName: str
    months: List[MonthlyTrendPoint]
    periodCount: int
    failedFetches: int = 0


# =============================================================================
# Payment Outcomes
# =============================================================================


class PaymentOutcomeMetrics(BaseModel):
    """Payment API outcomes over payment attempts (PHO, FCC and their failed variants)."""
    model_config = _FROZEN

    totalAttempts: float = 0
    successful: float = 0
    declined: float = 0
    apiFailed: float = 0
    successRate: float = 0
    declineRate: float = 0
    apiFailureRate: float = 0


# =============================================================================
# Delinquency
# =============================================================================


class DelinquencyMetrics(BaseModel):
    """Collections funnel for one days-past-due bucket."""
    model_config = _FROZEN

    bucket: DelinquencyBucket
    bucketLabel: str
    accounts: float = 0
    calls: float = 0
    connects: float = 0
    connectRate: float = 0
    rpcs: float = 0
    rpcRate: float = 0
    promises: float = 0
    promisesPerRpc: float = 0
    cashPayments: float = 0
    cashPerRpc: float = 0
    dollarCollected: float = 0
    dollarPerRpc: float = 0


class DelinquencyTotals(BaseModel):
    model_config = _FROZEN

    accounts: float = 0
    calls: float = 0
    rpcs: float = 0
    promises: float = 0
    cashPayments: float = 0
    dollarCollected: float = 0


class DelinquencyBreakdown(BaseModel):
    model_config = _FROZEN

    buckets: List[DelinquencyMetrics]
    total: DelinquencyTotals


# =============================================================================
# Requests / Envelope
# =============================================================================


class KPIRequest(BaseModel):
    """
    Typed inbound request for a period comparison.

    Build from untrusted strings with services.comparison.build_kpi_request,
    which reports malformed values as InvalidRequestError.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    comparisonType: ComparisonType
    referenceDate: DateType
    clientSelector: str = 'all'
    dataCategory: DataCategory = DataCategory.ALL
    includeClientBreakdown: bool = False


T = TypeVar('T')


class APIResponse(BaseModel, Generic[T]):
    """Envelope returned by every route: {success, data, error}."""
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
