"""
Tests for calendar window arithmetic.

Reference dates used throughout:
- 2025-01-15 is a Wednesday; its Sun-Sat week is Jan 12-18.
- 2024 is a leap year, 2025 is not.
"""

from datetime import date, datetime

import pytest

from callmetrics.core.exceptions import InvalidRequestError
from callmetrics.models.enums import ComparisonType
from callmetrics.models.schemas import DateRange
from callmetrics.services.date_ranges import (
    END_OF_DAY,
    format_date_for_query,
    format_date_range,
    format_month_year,
    get_available_months,
    get_available_weeks,
    get_comparison_type_label,
    get_custom_range,
    get_month_range,
    get_month_to_date_range,
    get_period_config,
    get_previous_month_range,
    get_previous_week_range,
    get_rolling_7_day_range,
    get_rolling_baseline_ranges,
    get_same_period_last_month,
    get_week_range,
    get_week_to_date_range,
    get_weekly_average_range,
    get_weekly_baseline_ranges,
    parse_comparison_type,
    parse_reference_date,
)


def _days(r: DateRange):
    return r.start.date(), r.end.date()


class TestMonthRanges:
    """Full-month windows, including leap years."""

    def test_january(self):
        r = get_month_range(date(2025, 1, 15))
        assert r.start == datetime(2025, 1, 1)
        assert r.end == datetime(2025, 1, 31, 23, 59, 59, 999000)
        assert r.label == 'Jan-25'

    def test_february_non_leap(self):
        assert get_month_range(date(2025, 2, 15)).end.date() == date(2025, 2, 28)

    def test_february_leap(self):
        assert get_month_range(date(2024, 2, 15)).end.date() == date(2024, 2, 29)

    def test_previous_month_crosses_year(self):
        r = get_previous_month_range(date(2025, 1, 15))
        assert _days(r) == (date(2024, 12, 1), date(2024, 12, 31))
        assert r.label == 'Dec-24'

    def test_month_to_date(self):
        r = get_month_to_date_range(datetime(2025, 1, 19, 15, 30))
        assert _days(r) == (date(2025, 1, 1), date(2025, 1, 19))
        assert r.end.time() == END_OF_DAY


class TestSamePeriodLastMonth:
    """Per-bound month shift with day clamping."""

    def test_full_january_maps_to_full_december(self):
        r = get_same_period_last_month(get_month_range(date(2025, 1, 10)))
        assert _days(r) == (date(2024, 12, 1), date(2024, 12, 31))

    def test_end_clamped_to_short_month(self):
        r = get_same_period_last_month(get_month_range(date(2025, 3, 10)))
        assert _days(r) == (date(2025, 2, 1), date(2025, 2, 28))

    def test_end_clamped_to_leap_day(self):
        r = get_same_period_last_month(get_month_to_date_range(date(2024, 3, 30)))
        assert _days(r) == (date(2024, 2, 1), date(2024, 2, 29))

    def test_time_of_day_kept(self):
        r = get_same_period_last_month(get_month_to_date_range(date(2025, 1, 19)))
        assert r.end.time() == END_OF_DAY
        assert r.label == 'Dec 1-19, 2024'


class TestWeekRanges:
    """Sunday-Saturday weeks."""

    def test_week_containing_wednesday(self):
        assert _days(get_week_range(date(2025, 1, 15))) == (date(2025, 1, 12), date(2025, 1, 18))

    def test_sunday_starts_its_own_week(self):
        assert _days(get_week_range(date(2025, 1, 12))) == (date(2025, 1, 12), date(2025, 1, 18))

    def test_saturday_ends_its_week(self):
        assert _days(get_week_range(date(2025, 1, 18))) == (date(2025, 1, 12), date(2025, 1, 18))

    def test_week_to_date(self):
        assert _days(get_week_to_date_range(date(2025, 1, 15))) == (date(2025, 1, 12), date(2025, 1, 15))

    def test_previous_week(self):
        assert _days(get_previous_week_range(date(2025, 1, 15))) == (date(2025, 1, 5), date(2025, 1, 11))

    def test_weekly_baseline_ranges_most_recent_first(self):
        ranges = get_weekly_baseline_ranges(date(2025, 1, 15), 4)
        assert [_days(r) for r in ranges] == [
            (date(2025, 1, 5), date(2025, 1, 11)),
            (date(2024, 12, 29), date(2025, 1, 4)),
            (date(2024, 12, 22), date(2024, 12, 28)),
            (date(2024, 12, 15), date(2024, 12, 21)),
        ]

    def test_weekly_average_range_spans_baseline(self):
        r = get_weekly_average_range(date(2025, 1, 15), 4)
        assert _days(r) == (date(2024, 12, 15), date(2025, 1, 11))
        assert r.label == 'Past 4 weeks avg'


class TestRollingRanges:
    """Rolling 7-day windows used by the scorecard."""

    def test_rolling_7_days(self):
        assert _days(get_rolling_7_day_range(date(2025, 1, 15))) == (date(2025, 1, 9), date(2025, 1, 15))

    def test_rolling_baseline_is_contiguous(self):
        current = get_rolling_7_day_range(date(2025, 1, 15))
        baseline = get_rolling_baseline_ranges(current, 4)
        assert [_days(r) for r in baseline] == [
            (date(2025, 1, 2), date(2025, 1, 8)),
            (date(2024, 12, 26), date(2025, 1, 1)),
            (date(2024, 12, 19), date(2024, 12, 25)),
            (date(2024, 12, 12), date(2024, 12, 18)),
        ]


class TestLabels:

    def test_same_month(self):
        assert format_date_range(date(2025, 1, 13), date(2025, 1, 19)) == 'Jan 13-19, 2025'

    def test_same_year(self):
        assert format_date_range(date(2025, 1, 26), date(2025, 2, 1)) == 'Jan 26 - Feb 1, 2025'

    def test_across_years(self):
        assert format_date_range(date(2024, 12, 29), date(2025, 1, 4)) == 'Dec 29, 2024 - Jan 4, 2025'

    def test_month_year(self):
        assert format_month_year(date(2024, 11, 3)) == 'Nov-24'

    def test_query_date(self):
        assert format_date_for_query(datetime(2025, 1, 5, 18, 30)) == '2025-01-05'

    @pytest.mark.parametrize('comparison_type,expected', [
        (ComparisonType.MOM, 'MoM'),
        ('wtd', 'Last 7 Days'),
    ])
    def test_comparison_type_label(self, comparison_type, expected):
        assert get_comparison_type_label(comparison_type) == expected


class TestPeriodConfig:
    """Current and comparison windows per comparison mode."""

    def test_month_over_month(self):
        config = get_period_config('mom', date(2025, 1, 15))
        assert config.periodType is ComparisonType.MOM
        assert _days(config.currentRange) == (date(2025, 1, 1), date(2025, 1, 31))
        assert _days(config.comparisonRange) == (date(2024, 12, 1), date(2024, 12, 31))
        assert config.comparisonLabel == 'vs Dec-24'
        assert config.baselineRanges == []

    def test_week_over_week(self):
        config = get_period_config('wow', date(2025, 1, 15))
        assert _days(config.currentRange) == (date(2025, 1, 12), date(2025, 1, 18))
        assert _days(config.comparisonRange) == (date(2025, 1, 5), date(2025, 1, 11))
        assert config.comparisonLabel == 'vs last week'

    def test_month_to_date(self):
        config = get_period_config('mtd', date(2025, 1, 19))
        assert _days(config.comparisonRange) == (date(2024, 12, 1), date(2024, 12, 19))
        assert config.comparisonLabel == 'vs Dec 1-19, 2024'

    def test_week_to_date(self):
        config = get_period_config('wtd', date(2025, 1, 15))
        assert config.comparisonLabel == 'vs 4-week avg'
        assert _days(config.currentRange) == (date(2025, 1, 12), date(2025, 1, 15))
        assert len(config.baselineRanges) == 4
        assert config.comparison_windows == config.baselineRanges

    @pytest.mark.parametrize('comparison_type', ['mom', 'wow', 'mtd'])
    def test_comparison_never_overlaps_current(self, comparison_type):
        config = get_period_config(comparison_type, date(2025, 3, 31))
        assert config.comparisonRange.end < config.currentRange.start

    def test_single_window_modes_fetch_comparison_range(self):
        config = get_period_config('mom', date(2025, 1, 15))
        assert config.comparison_windows == [config.comparisonRange]

    def test_unknown_comparison_type_fails_fast(self):
        with pytest.raises(InvalidRequestError):
            get_period_config('yoy', date(2025, 1, 15))


class TestParsing:

    def test_parse_comparison_type(self):
        assert parse_comparison_type('wtd') is ComparisonType.WTD

    def test_parse_comparison_type_invalid(self):
        with pytest.raises(InvalidRequestError):
            parse_comparison_type('quarterly')

    @pytest.mark.parametrize('value,expected', [
        ('2025-01-15', date(2025, 1, 15)),
        ('2025-01', date(2025, 1, 1)),
        (date(2025, 2, 3), date(2025, 2, 3)),
        (datetime(2025, 2, 3, 17, 45), date(2025, 2, 3)),
    ])
    def test_parse_reference_date(self, value, expected):
        assert parse_reference_date(value) == expected

    def test_parse_reference_date_defaults_to_today(self):
        assert parse_reference_date(None, today=date(2025, 6, 1)) == date(2025, 6, 1)

    @pytest.mark.parametrize('value', ['15/01/2025', 'not-a-date', '2025-13-01'])
    def test_parse_reference_date_invalid(self, value):
        with pytest.raises(InvalidRequestError):
            parse_reference_date(value)

    def test_custom_range(self):
        r = get_custom_range('2025-01-01', '2025-01-07')
        assert _days(r) == (date(2025, 1, 1), date(2025, 1, 7))

    def test_custom_range_reversed(self):
        with pytest.raises(InvalidRequestError):
            get_custom_range('2025-01-07', '2025-01-01')


class TestSelectorOptions:

    def test_available_months_newest_first(self):
        months = get_available_months(date(2025, 2, 10), count=3)
        assert months == [
            {'value': '2025-02', 'label': 'Feb-25'},
            {'value': '2025-01', 'label': 'Jan-25'},
            {'value': '2024-12', 'label': 'Dec-24'},
        ]

    def test_available_weeks(self):
        weeks = get_available_weeks(date(2025, 1, 15), count=2)
        assert [w['value'] for w in weeks] == ['2025-01-12', '2025-01-05']
