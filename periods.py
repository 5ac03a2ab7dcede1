from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings


DEFAULT_DAYS_REMAINING = 30


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date


def local_now() -> datetime:
    """Wall-clock time in the configured zone, returned naive.

    An empty ``FINANCE_TIMEZONE`` means the process's local time.
    """
    settings = get_settings()
    if not settings.timezone:
        return datetime.now()
    return datetime.now(ZoneInfo(settings.timezone)).replace(tzinfo=None)


def month_end(year: int, month: int) -> date:
    if month == 12:
        return date(year + 1, 1, 1) - date.resolution
    return date(year, month + 1, 1) - date.resolution


def month_window(now: datetime) -> tuple[datetime, datetime]:
    start = datetime(now.year, now.month, 1, 0, 0, 0)
    end = datetime.combine(month_end(now.year, now.month), time(23, 59, 59))
    return start, end


def resolve_stats_period(period: Optional[str], *, today: Optional[date] = None) -> Period:
    today = today or local_now().date()
    if period == "week":
        return Period("week", today - timedelta(days=today.isoweekday() - 1), today)
    if period == "year":
        return Period("year", date(today.year, 1, 1), today)
    return Period("month", today.replace(day=1), today)


def _whole_days_until(end: datetime, now: datetime) -> int:
    hours = (end - now).total_seconds() / 3600
    # int() truncates toward zero
    return int(hours / 24)


def days_remaining(period: str, now: datetime) -> int:
    if period == "monthly":
        end = datetime.combine(month_end(now.year, now.month), time(23, 59, 59))
        return _whole_days_until(end, now)
    if period == "yearly":
        end = datetime(now.year, 12, 31, 23, 59, 59)
        return _whole_days_until(end, now)
    if period == "weekly":
        days_until_sunday = 7 - now.isoweekday()
        return _whole_days_until(now + timedelta(days=days_until_sunday), now)
    return DEFAULT_DAYS_REMAINING
