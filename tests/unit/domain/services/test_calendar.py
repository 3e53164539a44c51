"""Tests for paper_league/domain/services/calendar.py."""

from datetime import date, datetime, timedelta, timezone

import pytest

from paper_league.domain.services.calendar import (
    iso_week_id,
    next_week_id,
    parse_week_id,
    prev_week_id,
    week_bounds,
    week_monday,
)


def test_iso_week_id_from_date():
    assert iso_week_id(date(2025, 7, 21)) == "2025-W30"


def test_iso_week_id_reads_aware_datetimes_in_utc():
    # Monday 01:00 in UTC+3 is still Sunday in UTC.
    plus3 = timezone(timedelta(hours=3))
    assert iso_week_id(datetime(2025, 7, 28, 1, 0, tzinfo=plus3)) == "2025-W30"


def test_parse_week_id():
    assert parse_week_id("2025-W30") == (2025, 30)


@pytest.mark.parametrize("bad", ["2025W30", "2025-W3", "", "W30-2025"])
def test_parse_week_id_rejects_malformed(bad):
    with pytest.raises(ValueError):
        parse_week_id(bad)


def test_week_monday():
    assert week_monday("2025-W30") == date(2025, 7, 21)


def test_prev_week_id_within_year():
    assert prev_week_id("2025-W30") == "2025-W29"


def test_prev_week_id_crosses_into_52_week_year():
    assert prev_week_id("2026-W01") == "2025-W52"


def test_prev_week_id_crosses_into_53_week_year():
    assert prev_week_id("2021-W01") == "2020-W53"


def test_next_week_id_leaves_53_week_year():
    assert next_week_id("2020-W53") == "2021-W01"


def test_week_bounds_default_to_friday_21_utc():
    start, end = week_bounds("2025-W30")
    assert start == datetime(2025, 7, 21, 0, 0, tzinfo=timezone.utc)
    assert end == datetime(2025, 7, 25, 21, 0, tzinfo=timezone.utc)


def test_week_bounds_custom_end():
    _, end = week_bounds("2025-W30", end_weekday=6, end_hour=23)
    assert end == datetime(2025, 7, 27, 23, 0, tzinfo=timezone.utc)
