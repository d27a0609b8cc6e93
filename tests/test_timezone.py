from datetime import date, datetime, timedelta, timezone

from benefit_cycles.utils.timezone import (
    as_utc,
    end_of_day,
    is_midnight_utc,
    normalize_cycle_date,
    to_db_datetime,
)

UTC = timezone.utc


def test_normalize_truncates_to_midnight_utc():
    assert normalize_cycle_date(datetime(2025, 10, 1, 7, 0, tzinfo=UTC)) == datetime(2025, 10, 1, tzinfo=UTC)


def test_normalize_uses_utc_calendar_day():
    # 20:00 in UTC-5 on Sep 30 is 01:00 UTC on Oct 1
    local = datetime(2025, 9, 30, 20, 0, tzinfo=timezone(timedelta(hours=-5)))
    assert normalize_cycle_date(local) == datetime(2025, 10, 1, tzinfo=UTC)


def test_normalize_is_idempotent():
    once = normalize_cycle_date(datetime(2025, 3, 4, 23, 59, 59, 999999, tzinfo=UTC))
    assert normalize_cycle_date(once) == once


def test_is_midnight_utc():
    assert is_midnight_utc(datetime(2025, 1, 1, tzinfo=UTC))
    assert is_midnight_utc(datetime(2025, 1, 1))
    assert not is_midnight_utc(datetime(2025, 1, 1, 0, 0, 0, 1, tzinfo=UTC))
    # Midnight in a non-UTC zone is not midnight UTC
    assert not is_midnight_utc(datetime(2025, 1, 1, tzinfo=timezone(timedelta(hours=2))))


def test_as_utc_and_db_form():
    naive = datetime(2025, 6, 1, 12)
    assert as_utc(naive) == datetime(2025, 6, 1, 12, tzinfo=UTC)
    aware = datetime(2025, 6, 1, 14, tzinfo=timezone(timedelta(hours=2)))
    assert to_db_datetime(aware) == naive


def test_end_of_day():
    assert end_of_day(date(2025, 2, 28)) == datetime(2025, 2, 28, 23, 59, 59, 999000, tzinfo=UTC)
