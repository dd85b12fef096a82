"""
Calendar window arithmetic for period-over-period comparisons.

All functions are pure and deterministic. Inputs may be ``date`` or
``datetime``; time-of-day on a reference date is ignored and every window is
normalized to day boundaries (00:00:00.000 through 23:59:59.999).

Windows:
- Week: Sunday through Saturday containing the reference date
- Week-to-date: Sunday through the reference date
- Month / month-to-date: 1st through last day / through the reference date
- Same period last month: both bounds shifted back one month, day clamped
  to the target month's length
- Weekly baseline: the N separate Sun-Sat weeks before the current week
- Rolling 7 days: reference date minus 6 days through the reference date

Week-to-date uses Sunday-to-date for the period selector, while the scorecard
uses rolling 7-day windows. The two definitions are kept separate on purpose.

Usage:
    from callmetrics.services.date_ranges import get_period_config

    config = get_period_config("mom", date(2025, 1, 15))
    config.comparisonRange.label  # 'Dec-24'
"""

import calendar
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Union

from callmetrics.core.exceptions import InvalidRequestError
from callmetrics.models.enums import ComparisonType
from callmetrics.models.schemas import DateRange, PeriodConfig


DateLike = Union[date, datetime]

MONTH_ABBREVIATIONS = [
    'Jan', 'Feb', 'Mar', 'Apr', 'May', 'Jun',
    'Jul', 'Aug', 'Sep', 'Oct', 'Nov', 'Dec',
]

END_OF_DAY = time(23, 59, 59, 999000)

DEFAULT_BASELINE_WEEKS = 4

WTD_COMPARISON_LABEL = 'vs 4-week avg'
WOW_COMPARISON_LABEL = 'vs last week'


# =============================================================================
# Day Boundaries
# =============================================================================


def _as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def start_of_day(value: DateLike) -> datetime:
    return datetime.combine(_as_date(value), time.min)


def end_of_day(value: DateLike) -> datetime:
    return datetime.combine(_as_date(value), END_OF_DAY)


def _days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def _shift_months(value: datetime, months: int) -> datetime:
    """Shift by whole months, clamping the day to the target month's length."""
    index = value.year * 12 + (value.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    day = min(value.day, _days_in_month(year, month))
    return value.replace(year=year, month=month, day=day)


def _sunday_on_or_before(value: DateLike) -> date:
    d = _as_date(value)
    # date.weekday(): Monday == 0 ... Sunday == 6
    return d - timedelta(days=(d.weekday() + 1) % 7)


# =============================================================================
# Labels
# =============================================================================


def format_month_year(value: DateLike) -> str:
    """Format as 'Jan-25'."""
    return f"{MONTH_ABBREVIATIONS[value.month - 1]}-{str(value.year)[-2:]}"


def format_year_month(value: DateLike) -> str:
    """Format as '2025-01'."""
    return f"{value.year}-{value.month:02d}"


def format_date_range(start: DateLike, end: DateLike) -> str:
    """
    Human label for a range.

    Examples:
        'Jan 13-19, 2025'               same month
        'Jan 13 - Feb 2, 2025'          same year
        'Dec 29, 2024 - Jan 4, 2025'    across years
    """
    start_month = MONTH_ABBREVIATIONS[start.month - 1]
    end_month = MONTH_ABBREVIATIONS[end.month - 1]

    if start.year == end.year and start.month == end.month:
        return f"{start_month} {start.day}-{end.day}, {start.year}"

    if start.year == end.year:
        return f"{start_month} {start.day} - {end_month} {end.day}, {start.year}"

    return f"{start_month} {start.day}, {start.year} - {end_month} {end.day}, {end.year}"


def format_date_for_query(value: DateLike) -> str:
    """Format as 'YYYY-MM-DD'."""
    return _as_date(value).isoformat()


def get_comparison_type_label(comparison_type: ComparisonType) -> str:
    return ComparisonType(comparison_type).label


def _make_range(start: DateLike, end: DateLike, label: Optional[str] = None) -> DateRange:
    start_dt = start_of_day(start)
    end_dt = end_of_day(end)
    return DateRange(
        start=start_dt,
        end=end_dt,
        label=label if label is not None else format_date_range(start_dt, end_dt),
    )


def get_custom_range(start: Union[str, DateLike], end: Union[str, DateLike]) -> DateRange:
    """
    Whole-day range between two user-supplied dates, both inclusive.

    Raises:
        InvalidRequestError: If either date is malformed or start is after end.
    """
    start_date = parse_reference_date(start)
    end_date = parse_reference_date(end)
    if start_date > end_date:
        raise InvalidRequestError(f"Start date {start_date} is after end date {end_date}")
    return _make_range(start_date, end_date)


# =============================================================================
# Week Windows
# =============================================================================


def get_week_range(value: DateLike) -> DateRange:
    """Sunday-Saturday week containing the given date."""
    sunday = _sunday_on_or_before(value)
    return _make_range(sunday, sunday + timedelta(days=6))


def get_week_to_date_range(value: DateLike) -> DateRange:
    """Sunday of the current week through the given date."""
    return _make_range(_sunday_on_or_before(value), value)


def get_previous_week_range(value: DateLike) -> DateRange:
    """The Sunday-Saturday week before the one containing the given date."""
    return get_week_range(_sunday_on_or_before(value) - timedelta(days=7))


def get_weekly_baseline_ranges(value: DateLike, weeks: int = DEFAULT_BASELINE_WEEKS) -> List[DateRange]:
    """
    The N separate Sun-Sat weeks preceding the week that contains the date.

    Ordered most recent first. Each week is fetched and reduced on its own;
    the baseline is the average of their raw counters.
    """
    reference = _as_date(value)
    return [get_week_range(reference - timedelta(days=7 * i)) for i in range(1, weeks + 1)]


def get_weekly_average_range(value: DateLike, weeks: int = DEFAULT_BASELINE_WEEKS) -> DateRange:
    """Combined span of the weekly baseline, labelled 'Past N weeks avg'."""
    current_start = _sunday_on_or_before(value)
    return _make_range(
        current_start - timedelta(days=7 * weeks),
        current_start - timedelta(days=1),
        label=f"Past {weeks} weeks avg",
    )


# =============================================================================
# Month Windows
# =============================================================================


def get_month_range(value: DateLike) -> DateRange:
    """First through last calendar day of the month containing the date."""
    d = _as_date(value)
    first = d.replace(day=1)
    last = d.replace(day=_days_in_month(d.year, d.month))
    return _make_range(first, last, label=format_month_year(d))


def get_previous_month_range(value: DateLike) -> DateRange:
    d = _as_date(value).replace(day=1)
    return get_month_range(d - timedelta(days=1))


def get_month_to_date_range(value: DateLike) -> DateRange:
    """First of the month through the given date."""
    d = _as_date(value)
    return _make_range(d.replace(day=1), d)


def get_same_period_last_month(date_range: DateRange) -> DateRange:
    """
    Shift both bounds back one month, keeping time of day.

    A bound whose day does not exist in the target month is clamped to that
    month's last day, so Jan 1-31 becomes Dec 1-31 and Mar 1-31 becomes
    Feb 1-28.
    """
    start = _shift_months(date_range.start, -1)
    end = _shift_months(date_range.end, -1)
    return DateRange(start=start, end=end, label=format_date_range(start, end))


# =============================================================================
# Rolling Windows (scorecard)
# =============================================================================


def get_rolling_7_day_range(value: DateLike) -> DateRange:
    """The 7 days ending on the given date, inclusive."""
    d = _as_date(value)
    return _make_range(d - timedelta(days=6), d)


def get_rolling_baseline_ranges(
    current: DateRange,
    periods: int = DEFAULT_BASELINE_WEEKS,
) -> List[DateRange]:
    """
    Consecutive rolling 7-day windows before ``current``.

    Window w (1-based) ends the day before window w-1 starts, so the baseline
    covers the 7 * periods days immediately preceding the current window.
    """
    current_start = _as_date(current.start)
    return [
        get_rolling_7_day_range(current_start - timedelta(days=(w - 1) * 7 + 1))
        for w in range(1, periods + 1)
    ]


# =============================================================================
# Period Configuration
# =============================================================================


def parse_comparison_type(value: Union[str, ComparisonType]) -> ComparisonType:
    """Resolve a comparison type, failing fast on unknown values."""
    try:
        return ComparisonType(value)
    except ValueError:
        allowed = ", ".join(t.value for t in ComparisonType)
        raise InvalidRequestError(
            f"Unknown comparison type '{value}'. Expected one of: {allowed}"
        ) from None


def parse_reference_date(value: Union[str, DateLike, None], today: Optional[DateLike] = None) -> date:
    """
    Parse a reference date from 'YYYY-MM-DD', 'YYYY-MM' or a date/datetime.

    'YYYY-MM' resolves to the first of that month. None resolves to today.
    """
    if value is None:
        return _as_date(today) if today is not None else date.today()
    if isinstance(value, (date, datetime)):
        return _as_date(value)

    text = str(value).strip()
    for fmt in ('%Y-%m-%d', '%Y-%m'):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise InvalidRequestError(
        f"Malformed reference date '{value}'. Expected YYYY-MM-DD or YYYY-MM"
    )


def get_period_config(
    comparison_type: Union[str, ComparisonType],
    reference_date: DateLike,
    baseline_weeks: int = DEFAULT_BASELINE_WEEKS,
) -> PeriodConfig:
    """
    Build the current and comparison windows for a comparison mode.

    Raises:
        InvalidRequestError: If the comparison type is unknown.
    """
    period_type = parse_comparison_type(comparison_type)
    reference = _as_date(reference_date)

    if period_type is ComparisonType.MOM:
        current = get_month_range(reference)
        comparison = get_previous_month_range(reference)
        return PeriodConfig(
            periodType=period_type,
            currentRange=current,
            comparisonRange=comparison,
            comparisonLabel=f"vs {comparison.label}",
        )

    if period_type is ComparisonType.WOW:
        return PeriodConfig(
            periodType=period_type,
            currentRange=get_week_range(reference),
            comparisonRange=get_previous_week_range(reference),
            comparisonLabel=WOW_COMPARISON_LABEL,
        )

    if period_type is ComparisonType.MTD:
        current = get_month_to_date_range(reference)
        comparison = get_same_period_last_month(current)
        return PeriodConfig(
            periodType=period_type,
            currentRange=current,
            comparisonRange=comparison,
            comparisonLabel=f"vs {comparison.label}",
        )

    # Week-to-date against the averaged weekly baseline
    return PeriodConfig(
        periodType=period_type,
        currentRange=get_week_to_date_range(reference),
        comparisonRange=get_weekly_average_range(reference, baseline_weeks),
        comparisonLabel=WTD_COMPARISON_LABEL,
        baselineRanges=get_weekly_baseline_ranges(reference, baseline_weeks),
    )


# =============================================================================
# Selector Options
# =============================================================================


def get_available_months(today: Optional[DateLike] = None, count: int = 12) -> List[Dict[str, str]]:
    """The last ``count`` months, newest first, as {value: 'YYYY-MM', label: 'Jan-25'}."""
    anchor = (_as_date(today) if today is not None else date.today()).replace(day=1)
    months = []
    for i in range(count):
        d = _shift_months(start_of_day(anchor), -i)
        months.append({'value': format_year_month(d), 'label': format_month_year(d)})
    return months


def get_available_weeks(today: Optional[DateLike] = None, count: int = 12) -> List[Dict[str, object]]:
    """The last ``count`` Sun-Sat weeks, newest first."""
    anchor = _as_date(today) if today is not None else date.today()
    weeks = []
    for i in range(count):
        week = get_week_range(anchor - timedelta(days=7 * i))
        weeks.append({
            'value': format_date_for_query(week.start),
            'label': week.label,
            'range': week,
        })
    return weeks
