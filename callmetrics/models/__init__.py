"""
Models package for the Call Metrics backend.

Re-exports the enumerations and pydantic value objects so services can import
them from callmetrics.models directly.
"""

from callmetrics.models.enums import (
    ComparisonType,
    CallFlowModel,
    CallDirection,
    CallCategory,
    DataCategory,
    TrendDirection,
    HealthStatus,
    ScorecardSortOption,
    ClientSelectorKind,
    MetricFormat,
    MetricRowCategory,
    DelinquencyBucket,
)
from callmetrics.models.schemas import (
    DateRange,
    PeriodConfig,
    CollectionsMetrics,
    WelcomeVerificationMetrics,
    PeriodKPIs,
    MetricRowConfig,
    ComparisonChange,
    ClientKPIBreakdown,
    PeriodComparisonResult,
    ScorecardMetric,
    ClientScorecardData,
    ScorecardPeriodInfo,
    AllClientsScorecardData,
    MonthlyTrendPoint,
    HistoricalTrendData,
    PaymentOutcomeMetrics,
    DelinquencyMetrics,
    DelinquencyTotals,
    DelinquencyBreakdown,
    KPIRequest,
    APIResponse,
)

__all__ = [
    "ComparisonType",
    "CallFlowModel",
    "CallDirection",
    "CallCategory",
    "DataCategory",
    "TrendDirection",
    "HealthStatus",
    "ScorecardSortOption",
    "ClientSelectorKind",
    "MetricFormat",
    "MetricRowCategory",
    "DelinquencyBucket",
    "DateRange",
    "PeriodConfig",
    "CollectionsMetrics",
    "WelcomeVerificationMetrics",
    "PeriodKPIs",
    "MetricRowConfig",
    "ComparisonChange",
    "ClientKPIBreakdown",
    "PeriodComparisonResult",
    "ScorecardMetric",
    "ClientScorecardData",
    "ScorecardPeriodInfo",
    "AllClientsScorecardData",
    "MonthlyTrendPoint",
    "HistoricalTrendData",
    "PaymentOutcomeMetrics",
    "DelinquencyMetrics",
    "DelinquencyTotals",
    "DelinquencyBreakdown",
    "KPIRequest",
    "APIResponse",
]
