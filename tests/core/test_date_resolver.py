"""
Tests for date phrase resolution.

Tests cover:
- Absolute phrases: month-year, first week, between X and Y, whole year
- Relative phrase: last month (half-open, across year boundary)
- Invalid calendar dates fall through to later rules
- Month-year extraction used by the last-day filter
"""

import calendar
from datetime import date, timedelta

import pytest

from bikeshare_analytics.core.date_resolver import (
    DateRange,
    find_month_year,
    first_of_next_month,
    last_day_of_month,
    resolve_date_phrase,
)


class TestResolveDatePhrase:
    """Test the ordered date rules."""

    def test_month_year_covers_whole_month_half_open(self):
        # Arrange
        text = "What was the average ride time in June 2025?"

        # Act
        result = resolve_date_phrase(text)

        # Assert
        assert result == DateRange(date(2025, 6, 1), date(2025, 7, 1))

    def test_first_week_is_seven_days(self):
        # Act
        result = resolve_date_phrase("the most departures during the first week of June 2025")

        # Assert
        assert result == DateRange(date(2025, 6, 1), date(2025, 6, 8))
        assert result.days == 7

    def test_first_week_wins_over_month_year(self):
        # Arrange: "June 2025" also matches the month-year rule
        text = "first week of june 2025"

        # Act
        result = resolve_date_phrase(text)

        # Assert
        assert result.end_date == date(2025, 6, 8)

    def test_between_includes_closing_day(self):
        # Act
        result = resolve_date_phrase("rides between June 3 and June 9, 2025")

        # Assert
        assert result == DateRange(date(2025, 6, 3), date(2025, 6, 10))

    @pytest.mark.parametrize(
        "phrase",
        [
            "between June 3 and June 5, 2025",
            "between June 28 and July 2, 2025",
            "between Dec 30 and Dec 31, 2024",
            "between july 1st and 15th 2025",
        ],
    )
    def test_between_is_stable_when_re_resolved(self, phrase):
        # Arrange
        first = resolve_date_phrase(phrase)
        last_day = first.end_date - timedelta(days=1)
        rendered = (
            f"between {calendar.month_name[first.start_date.month]} {first.start_date.day} "
            f"and {calendar.month_name[last_day.month]} {last_day.day}, {last_day.year}"
        )

        # Act
        second = resolve_date_phrase(rendered)

        # Assert
        assert second == first

    def test_between_with_single_month_and_ordinals(self):
        # Act
        result = resolve_date_phrase("between july 1st and 15th 2025")

        # Assert
        assert result == DateRange(date(2025, 7, 1), date(2025, 7, 16))

    def test_month_abbreviation(self):
        # Act
        result = resolve_date_phrase("trips in Sept 2024")

        # Assert
        assert result == DateRange(date(2024, 9, 1), date(2024, 10, 1))

    def test_december_rolls_into_next_year(self):
        # Act
        result = resolve_date_phrase("rides in December 2024")

        # Assert
        assert result == DateRange(date(2024, 12, 1), date(2025, 1, 1))

    def test_last_month_is_relative_to_today(self):
        # Act
        result = resolve_date_phrase("total rides last month", today=date(2025, 8, 15))

        # Assert
        assert result == DateRange(date(2025, 7, 1), date(2025, 8, 1))

    def test_last_month_across_year_boundary(self):
        # Act
        result = resolve_date_phrase("rides last month", today=date(2025, 1, 10))

        # Assert
        assert result == DateRange(date(2024, 12, 1), date(2025, 1, 1))

    def test_whole_year(self):
        # Act
        result = resolve_date_phrase("bikes purchased in 2024")

        # Assert
        assert result == DateRange(date(2024, 1, 1), date(2025, 1, 1))

    def test_invalid_between_date_is_skipped(self):
        # Arrange: February 30 does not exist and no other rule matches
        text = "between february 28 and february 30, 2025"

        # Act
        result = resolve_date_phrase(text)

        # Assert
        assert result is None

    @pytest.mark.parametrize("text", ["how many stations are there", "asdf qwerty", ""])
    def test_no_phrase_returns_none(self, text):
        # Act & Assert
        assert resolve_date_phrase(text) is None


class TestCalendarHelpers:
    """Test month boundary helpers."""

    def test_first_of_next_month(self):
        assert first_of_next_month(2025, 6) == date(2025, 7, 1)
        assert first_of_next_month(2025, 12) == date(2026, 1, 1)

    def test_last_day_of_month(self):
        assert last_day_of_month(2025, 6) == date(2025, 6, 30)
        assert last_day_of_month(2024, 2) == date(2024, 2, 29)

    def test_find_month_year(self):
        assert find_month_year("on the last day of June 2025") == (2025, 6)
        assert find_month_year("last month") is None
