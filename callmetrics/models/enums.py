"""
Enumeration types for the Call Metrics analytics engine.

All enums inherit from (str, Enum) so they serialize as their plain string
values in pydantic models and FastAPI responses.

Call flow tagging is resolved once at ingestion: raw rows carry free-text
model and direction strings, which are converted to CallFlowModel and
CallDirection and then to a CallCategory. Nothing past ingestion switches on
raw strings.
"""

from enum import Enum
from typing import Optional


# =============================================================================
# Comparison Modes
# =============================================================================


class ComparisonType(str, Enum):
    """
    Period-over-period comparison modes.

    - mom: Month over month (full month vs full previous month)
    - wow: Week over week (Sun-Sat week vs prior Sun-Sat week)
    - mtd: Month to date vs the same day-range last month
    - wtd: Week to date vs the 4-week average baseline
    """
    MOM = "mom"
    WOW = "wow"
    MTD = "mtd"
    WTD = "wtd"

    @property
    def label(self) -> str:
        return _COMPARISON_LABELS[self]


_COMPARISON_LABELS = {
    ComparisonType.MOM: "MoM",
    ComparisonType.WOW: "WoW",
    ComparisonType.MTD: "MTD",
    ComparisonType.WTD: "Last 7 Days",
}


# =============================================================================
# Call Flow Tagging
# =============================================================================


class CallFlowModel(str, Enum):
    """Call flow model column values as stored with each call."""
    COLLECTIONS = "collections"
    INBOUND = "inbound"
    WELCOME = "welcome"
    VERIFICATION = "verification"

    @classmethod
    def from_raw(cls, value: Optional[str]) -> Optional["CallFlowModel"]:
        """Resolve a raw model string case-insensitively; None for unknown models."""
        if value is None:
            return None
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


class CallDirection(str, Enum):
    """Direction of a call. Anything that is not inbound is treated as outbound."""
    OUTBOUND = "outbound"
    INBOUND = "inbound"

    @classmethod
    def from_raw(cls, value: Optional[str]) -> "CallDirection":
        if value is not None and str(value).strip().lower() == cls.INBOUND.value:
            return cls.INBOUND
        return cls.OUTBOUND


class CallCategory(str, Enum):
    """
    KPI category a call is reported under.

    Collections calls received inbound are reported as inbound, so the
    category is a function of both model and direction.
    """
    COLLECTIONS = "collections"
    INBOUND = "inbound"
    WELCOME = "welcome"
    VERIFICATION = "verification"

    @classmethod
    def resolve(cls, model: CallFlowModel, direction: CallDirection) -> "CallCategory":
        if model is CallFlowModel.COLLECTIONS:
            if direction is CallDirection.INBOUND:
                return cls.INBOUND
            return cls.COLLECTIONS
        return cls(model.value)


class DataCategory(str, Enum):
    """Category filter carried by a KPI request."""
    ALL = "all"
    COLLECTIONS = "collections"
    INBOUND = "inbound"
    WELCOME = "welcome"
    VERIFICATION = "verification"


# =============================================================================
# Trend / Health Indicators
# =============================================================================


class TrendDirection(str, Enum):
    """Direction of a period-over-period change after the ±0.5% dead-band."""
    UP = "up"
    DOWN = "down"
    NEUTRAL = "neutral"


class HealthStatus(str, Enum):
    """
    Health bucket for a scorecard metric or an overall score.

    - good: improving beyond +5% (or score >= 55)
    - neutral: within ±5% (or score >= 45)
    - warning: declining between -5% and -15% (or score >= 35)
    - critical: declining by 15% or more (or score < 35)
    """
    GOOD = "good"
    WARNING = "warning"
    CRITICAL = "critical"
    NEUTRAL = "neutral"


class ScorecardSortOption(str, Enum):
    """Orderings offered for the all-clients scorecard grid."""
    ALPHABETICAL = "alphabetical"
    WORST_FIRST = "worst-first"
    BEST_FIRST = "best-first"
    VOLUME = "volume"


# =============================================================================
# Client Selection
# =============================================================================


class ClientSelectorKind(str, Enum):
    """Shape of a client selector: one client, every client, or every client but one."""
    SINGLE = "single"
    ALL = "all"
    ALL_EXCLUDING = "all_excluding"


# =============================================================================
# Metric Presentation
# =============================================================================


class MetricFormat(str, Enum):
    """Display format for a metric row."""
    NUMBER = "number"
    PERCENTAGE = "percentage"
    DECIMAL = "decimal"
    HOURS = "hours"
    MINUTES = "minutes"
    CURRENCY = "currency"


class MetricRowCategory(str, Enum):
    """Grouping of metric rows in the KPI table: raw volumes, dollar sums, then ratios."""
    VOLUME = "volume"
    DOLLAR = "dollar"
    RATIO = "ratio"


# =============================================================================
# Delinquency
# =============================================================================


class DelinquencyBucket(str, Enum):
    """Days-past-due buckets for collections accounts."""
    DAYS_1_30 = "1-30"
    DAYS_31_60 = "31-60"
    DAYS_61_90 = "61-90"
    DAYS_90_PLUS = "90+"

    @property
    def label(self) -> str:
        if self is DelinquencyBucket.DAYS_90_PLUS:
            return "90+ Days"
        return f"{self.value} Days"

    @classmethod
    def from_days(cls, dlq_days: float) -> "DelinquencyBucket":
        if dlq_days <= 30:
            return cls.DAYS_1_30
        if dlq_days <= 60:
            return cls.DAYS_31_60
        if dlq_days <= 90:
            return cls.DAYS_61_90
        return cls.DAYS_90_PLUS
