"""
Client health scorecard.

Compares each client's last 7 days against the average of the four preceding
rolling 7-day windows and condenses six funnel metrics into a 0-100 score.

Metrics (collections + inbound combined through the reducer):
- callVolume: calls
- connectRate: connects / calls * 100
- rpcRate: rpcs / connects * 100
- promiseRate: promises / rpcs * 100
- paymentSuccess: cash payments / rpcs * 100
- dollarCollected: dollars collected

Per-metric status on the change percent:
    critical <= -15 < warning < -5 <= neutral <= +5 < good

Overall score: each change is clamped to [-50, +50] and mapped to 50 + change,
then weighted (callVolume .10, connectRate .15, rpcRate .20, promiseRate .15,
paymentSuccess .20, dollarCollected .20), clamped to [0, 100] and rounded half
up. Overall status: good >= 55, neutral >= 45, warning >= 35, else critical.
"""

import logging
import math
from datetime import date, datetime, timezone
from functools import partial
from typing import Dict, List, Optional

from callmetrics.core.config import Settings, get_settings
from callmetrics.models.enums import HealthStatus, ScorecardSortOption
from callmetrics.models.schemas import (
    AllClientsScorecardData,
    ClientScorecardData,
    DateRange,
    ScorecardMetric,
    ScorecardPeriodInfo,
)
from callmetrics.services.clients import get_client_display_name
from callmetrics.services.comparison import trend_for_change
from callmetrics.services.data_store import CallDataStore, fetch_period_aggregates
from callmetrics.services.date_ranges import get_rolling_7_day_range, get_rolling_baseline_ranges
from callmetrics.services.metrics import (
    EMPTY_PERIOD,
    PeriodRawAggregates,
    average_period_aggregates,
    combine_aggregates,
    derive_collections_metrics,
    sum_period_aggregates,
)
from callmetrics.services.orchestrator import FetchOrchestrator, FetchTask


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

SCORE_WEIGHTS: Dict[str, float] = {
    'callVolume': 0.10,
    'connectRate': 0.15,
    'rpcRate': 0.20,
    'promiseRate': 0.15,
    'paymentSuccess': 0.20,
    'dollarCollected': 0.20,
}

MAX_SCORED_CHANGE = 50.0

CRITICAL_CHANGE_PCT = -15.0
WARNING_CHANGE_PCT = -5.0
GOOD_CHANGE_PCT = 5.0

GOOD_SCORE = 55
NEUTRAL_SCORE = 45
WARNING_SCORE = 35

SCORECARD_COMPARISON_LABEL = 'vs 4-week avg'
SCORECARD_COMPARISON_DESCRIPTION = 'Last 7 days vs 4-week rolling average'

BASELINE_PERIODS = 4

_CURRENT_KEY = "current"
_BASELINE_KEY = "baseline"

# Worst-first ordering of statuses
_STATUS_SEVERITY = {
    HealthStatus.CRITICAL: 0,
    HealthStatus.WARNING: 1,
    HealthStatus.NEUTRAL: 2,
    HealthStatus.GOOD: 3,
}


# =============================================================================
# Metric Scoring
# =============================================================================


def get_health_status(change: float, invert_logic: bool = False) -> HealthStatus:
    """
    Health bucket for a change percent.

    Args:
        change: Percent change vs baseline.
        invert_logic: For metrics where lower is better; negates the change
            before bucketing.
    """
    adjusted = -change if invert_logic else change
    if adjusted <= CRITICAL_CHANGE_PCT:
        return HealthStatus.CRITICAL
    if adjusted < WARNING_CHANGE_PCT:
        return HealthStatus.WARNING
    if adjusted > GOOD_CHANGE_PCT:
        return HealthStatus.GOOD
    return HealthStatus.NEUTRAL


def create_scorecard_metric(current: float, baseline: float, invert_logic: bool = False) -> ScorecardMetric:
    change = (current - baseline) / baseline * 100 if baseline > 0 else 0.0
    return ScorecardMetric(
        current=current,
        baseline=baseline,
        change=change,
        trend=trend_for_change(change),
        status=get_health_status(change, invert_logic),
    )


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_overall_score(metrics: Dict[str, ScorecardMetric]) -> int:
    """Weighted 0-100 score from the six scorecard metrics, keyed like SCORE_WEIGHTS."""
    weighted = 0.0
    for key, weight in SCORE_WEIGHTS.items():
        clamped = max(-MAX_SCORED_CHANGE, min(MAX_SCORED_CHANGE, metrics[key].change))
        weighted += weight * (50 + clamped)
    return _round_half_up(max(0.0, min(100.0, weighted)))


def get_overall_status_from_score(score: float) -> HealthStatus:
    if score >= GOOD_SCORE:
        return HealthStatus.GOOD
    if score >= NEUTRAL_SCORE:
        return HealthStatus.NEUTRAL
    if score >= WARNING_SCORE:
        return HealthStatus.WARNING
    return HealthStatus.CRITICAL


def _scorecard_values(period: PeriodRawAggregates) -> Dict[str, float]:
    combined = derive_collections_metrics(combine_aggregates(period.collections, period.inbound))
    return {
        'callVolume': combined.calls,
        'connectRate': combined.connectRate,
        'rpcRate': combined.rpcRate,
        'promiseRate': combined.promisesPerRpc,
        'paymentSuccess': combined.cashPerRpc,
        'dollarCollected': combined.dollarCollected,
    }


def build_client_scorecard(
    client: str,
    current: PeriodRawAggregates,
    baseline: PeriodRawAggregates,
    current_label: str = '',
    comparison_label: str = SCORECARD_COMPARISON_LABEL,
) -> ClientScorecardData:
    """
    Scorecard for one client from current and (already averaged) baseline counters.

    Collections and inbound are combined as raw counters before any rate is
    derived.
    """
    current_values = _scorecard_values(current)
    baseline_values = _scorecard_values(baseline)
    metrics = {
        key: create_scorecard_metric(current_values[key], baseline_values[key])
        for key in SCORE_WEIGHTS
    }
    score = calculate_overall_score(metrics)
    return ClientScorecardData(
        client=client,
        displayName=get_client_display_name(client),
        overallScore=score,
        overallStatus=get_overall_status_from_score(score),
        currentPeriodLabel=current_label,
        comparisonLabel=comparison_label,
        **metrics,
    )


def sort_scorecards(
    scorecards: List[ClientScorecardData],
    sort_by: ScorecardSortOption = ScorecardSortOption.ALPHABETICAL,
) -> List[ClientScorecardData]:
    if sort_by is ScorecardSortOption.WORST_FIRST:
        return sorted(scorecards, key=lambda s: (_STATUS_SEVERITY[s.overallStatus], s.overallScore, s.displayName))
    if sort_by is ScorecardSortOption.BEST_FIRST:
        return sorted(scorecards, key=lambda s: (-s.overallScore, s.displayName))
    if sort_by is ScorecardSortOption.VOLUME:
        return sorted(scorecards, key=lambda s: (-s.callVolume.current, s.displayName))
    return sorted(scorecards, key=lambda s: s.displayName.lower())


# =============================================================================
# All-Clients Fan-Out
# =============================================================================


async def fetch_all_clients_scorecard(
    store: CallDataStore,
    settings: Optional[Settings] = None,
    today: Optional[date] = None,
    sort_by: ScorecardSortOption = ScorecardSortOption.ALPHABETICAL,
    now: Optional[datetime] = None,
) -> AllClientsScorecardData:
    """
    Scorecards for every available client.

    Fans out clients x (current + 4 baseline) rolling windows in one run at the
    scorecard concurrency ceiling. A client's failed windows contribute zero.

    Raises:
        AllFetchesFailedError: If every fetch failed.
    """
    settings = settings or get_settings()
    today = today or date.today()

    current_range = get_rolling_7_day_range(today)
    baseline_ranges = get_rolling_baseline_ranges(current_range, BASELINE_PERIODS)
    windows: List[DateRange] = [current_range] + baseline_ranges

    clients = await store.list_available_clients()
    tasks = [
        FetchTask(client, window, _CURRENT_KEY if i == 0 else (_BASELINE_KEY, i))
        for client in clients
        for i, window in enumerate(windows)
    ]

    orchestrator = FetchOrchestrator(
        partial(fetch_period_aggregates, store),
        concurrency=settings.scorecard_batch_size,
        timeout_seconds=settings.fetch_timeout_seconds,
        empty_value=EMPTY_PERIOD,
        name="scorecard",
    )
    report = await orchestrator.run(tasks)

    current_by_client = report.values_by_client(_CURRENT_KEY)
    baseline_by_window = [report.values_by_client((_BASELINE_KEY, i)) for i in range(1, len(windows))]

    scorecards = []
    for client in clients:
        current = sum_period_aggregates(current_by_client.get(client, []))
        baseline = average_period_aggregates([
            sum_period_aggregates(by_client.get(client, [])) for by_client in baseline_by_window
        ])
        scorecards.append(build_client_scorecard(client, current, baseline, current_range.label))

    generated_at = now or datetime.now(timezone.utc)
    return AllClientsScorecardData(
        clients=sort_scorecards(scorecards, sort_by),
        periodInfo=ScorecardPeriodInfo(
            currentRange=current_range,
            baselineRanges=baseline_ranges,
            comparisonDescription=SCORECARD_COMPARISON_DESCRIPTION,
        ),
        generatedAt=generated_at.isoformat(),
        failedFetches=report.failures,
        totalFetches=report.total,
    )
