from datetime import date, datetime, time, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    """Return dt as an aware UTC datetime. Naive values are taken to be UTC already."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_db_datetime(dt: datetime) -> datetime:
    """Convert to the naive-UTC form stored in DateTime columns."""
    return as_utc(dt).replace(tzinfo=None)


def normalize_cycle_date(dt: datetime) -> datetime:
    """Truncate to midnight UTC of the same UTC calendar day.

    BenefitStatus uniqueness is keyed on the exact cycle start timestamp, so two
    starts on the same day that differ only in time of day would otherwise be
    stored as two separate cycles. Every cycle start used as a key goes through here.
    """
    return as_utc(dt).replace(hour=0, minute=0, second=0, microsecond=0)


def is_midnight_utc(dt: datetime) -> bool:
    dt = as_utc(dt)
    return dt.hour == 0 and dt.minute == 0 and dt.second == 0 and dt.microsecond == 0


def end_of_day(day: date) -> datetime:
    """Last representable millisecond of a UTC calendar day (23:59:59.999)."""
    return datetime.combine(day, time(23, 59, 59, 999000), tzinfo=timezone.utc)


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time(0, 0), tzinfo=timezone.utc)
