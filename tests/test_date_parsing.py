"""
Unit tests for date_parsing module.

Covers European vs American disambiguation of dot-separated dates, the
explicit format list and free-text date detection.
"""

from datetime import date

import pytest

from invoice_learning.services.date_parsing import (
    expand_year,
    find_dates,
    looks_like_date,
    parse_date,
    parse_dot_separated_date,
    within_date_window,
)


class TestDotSeparatedDates:
    """Tests for the D.M.Y disambiguation rule"""

    def test_first_number_over_12_is_the_day(self):
        assert parse_date("13.02.2026") == date(2026, 2, 13)

    def test_second_number_over_12_means_month_first(self):
        assert parse_date("02.13.2026") == date(2026, 2, 13)

    def test_ambiguous_defaults_to_european(self):
        assert parse_date("05.06.2026") == date(2026, 6, 5)

    def test_two_digit_year_expansion(self):
        assert parse_dot_separated_date("01.02.26") == date(2026, 2, 1)
        assert parse_dot_separated_date("01.02.99") == date(1999, 2, 1)

    def test_impossible_calendar_date_rejected(self):
        assert parse_dot_separated_date("31.02.2026") is None

    def test_both_numbers_over_12_rejected(self):
        assert parse_dot_separated_date("13.13.2026") is None

    def test_not_dot_separated(self):
        assert parse_dot_separated_date("2026-02-06") is None


class TestExpandYear:
    @pytest.mark.parametrize("year,expected", [(26, 2026), (50, 2050), (51, 1951), (99, 1999), (2026, 2026)])
    def test_expand(self, year, expected):
        assert expand_year(year) == expected


class TestStandardFormats:
    """Tests for the ordered explicit format list"""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("02/06/2026", date(2026, 2, 6)),
            ("2/6/2026", date(2026, 2, 6)),
            ("13/02/2026", date(2026, 2, 13)),
            ("2026-02-06", date(2026, 2, 6)),
            ("February 6, 2026", date(2026, 2, 6)),
            ("Feb 6, 2026", date(2026, 2, 6)),
            ("6 February 2026", date(2026, 2, 6)),
            ("6 Feb 2026", date(2026, 2, 6)),
        ],
    )
    def test_formats(self, text, expected):
        assert parse_date(text) == expected

    def test_slash_dates_prefer_month_first(self):
        assert parse_date("03/04/2026") == date(2026, 3, 4)

    def test_surrounding_whitespace_ignored(self):
        assert parse_date("  2026-02-06 \n") == date(2026, 2, 6)

    @pytest.mark.parametrize("text", ["", "not a date", "32/13/2026", "Total: $42.10"])
    def test_unparseable(self, text):
        assert parse_date(text) is None


class TestDetection:
    def test_looks_like_date(self):
        assert looks_like_date("Invoice Date: 13.02.2026")
        assert looks_like_date("Due March 15, 2026")
        assert not looks_like_date("Total: 1,234.56")

    def test_find_dates_in_text_order(self):
        text = "Issued 2026-02-06, due 15.03.2026 or by April 1, 2026"
        found = [m.value for m in find_dates(text)]
        assert found == [date(2026, 2, 6), date(2026, 3, 15), date(2026, 4, 1)]

    def test_find_dates_skips_unparseable_matches(self):
        assert list(find_dates("Ref 45.67.8901")) == []

    def test_find_dates_reports_match_text(self):
        (match,) = list(find_dates("Due: 13.02.2026"))
        assert match.text == "13.02.2026"
        assert match.value == date(2026, 2, 13)


class TestDateWindow:
    def test_inside_window(self):
        today = date(2026, 1, 15)
        assert within_date_window(date(2021, 6, 1), today)
        assert within_date_window(date(2036, 1, 1), today)

    def test_outside_window(self):
        today = date(2026, 1, 15)
        assert not within_date_window(date(2019, 1, 1), today)
        assert not within_date_window(date(2037, 6, 1), today)
