from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings
from models import GoalPeriod


def local_now() -> datetime:
    settings = get_settings()
    return datetime.now(ZoneInfo(settings.timezone)).replace(tzinfo=None)


def local_today() -> date:
    return local_now().date()


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def month_start(d: date) -> date:
    return d.replace(day=1)


def month_end(d: date) -> date:
    return d.replace(day=days_in_month(d.year, d.month))


def add_months(d: date, count: int) -> date:
    month_index = (d.year * 12) + (d.month - 1) + count
    year = month_index // 12
    month = (month_index % 12) + 1
    return date(year, month, min(d.day, days_in_month(year, month)))


def week_period(today: date) -> Period:
    start = today - timedelta(days=today.weekday())
    return Period("week", start, start + timedelta(days=6))


def month_period(today: date) -> Period:
    return Period("month", month_start(today), month_end(today))


def goal_period(period: GoalPeriod, today: date) -> Period:
    if period == GoalPeriod.week:
        return week_period(today)
    return month_period(today)


def previous_period(period: Period, unit: GoalPeriod) -> Period:
    if unit == GoalPeriod.week:
        shift = timedelta(days=7)
        return Period("previous_week", period.start - shift, period.end - shift)
    start = add_months(period.start, -1)
    if period.end == month_end(period.end):
        end = month_end(add_months(period.end, -1))
    else:
        end = add_months(period.end, -1)
    return Period("previous_month", start, end)


def resolve_period(
    period: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
) -> Period:
    today = today or local_today()
    if period == "all":
        return Period("all", date(1970, 1, 1), today)
    if period == "this_week":
        return week_period(today)
    if period == "last_week":
        return previous_period(week_period(today), GoalPeriod.week)
    if period == "last_month":
        first_this = today.replace(day=1)
        last_month_end = first_this - date.resolution
        last_month_start = last_month_end.replace(day=1)
        return Period("last_month", last_month_start, last_month_end)
    if period == "custom":
        if not start or not end:
            raise ValueError("Custom period requires start and end dates")
        start_date = date.fromisoformat(start)
        end_date = date.fromisoformat(end)
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        return Period("custom", start_date, end_date)

    current = month_period(today)
    return Period("this_month", current.start, current.end)


def monthly_periods(
    months: int = 12,
    *,
    today: Optional[date] = None,
    transaction_dates: Optional[list[date]] = None,
) -> list[Period]:
    today = today or local_today()
    current = month_start(today)
    first = add_months(current, -(months - 1))
    if transaction_dates:
        oldest = month_start(min(transaction_dates))
        if oldest < first:
            first = oldest

    out: list[Period] = []
    cursor = first
    while cursor <= current:
        out.append(Period(f"{cursor.year:04d}-{cursor.month:02d}", cursor, month_end(cursor)))
        cursor = add_months(cursor, 1)
    return out
