from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_tz(dt: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def end_of_day(day: date | datetime, tz_name: str) -> datetime:
    """Last instant of `day` in `tz_name`, as an aware UTC datetime.

    A cutoff of "2025-11-18" must include everything validated on the 18th in
    the business timezone, not only what happened before midnight UTC.
    """
    if isinstance(day, datetime):
        day = ensure_tz(day).astimezone(ZoneInfo(tz_name)).date()
    local = datetime.combine(day, time(23, 59, 59, 999999), tzinfo=ZoneInfo(tz_name))
    return local.astimezone(timezone.utc)


def local_year_month(now: datetime, tz_name: str) -> tuple[int, int]:
    local = ensure_tz(now).astimezone(ZoneInfo(tz_name))
    return local.year, local.month


def fmt_money(value) -> str:
    return f"R$ {value:.2f}"
