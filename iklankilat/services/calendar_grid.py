import calendar
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from iklankilat.specs.common.datetime_utils import parse_iso_datetime, resolve_timezone
from iklankilat.specs.common.errors import ValidationError
from iklankilat.specs.models.domain import AppProject
from iklankilat.specs.models.http import CalendarCell, CalendarPost, CalendarResponse, MonthRef


GRID_CELLS = 42  # six Sunday-first weeks
WEEKDAYS = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]


def first_weekday_sunday_based(year: int, month: int) -> int:
    """0 = Sunday ... 6 = Saturday for the 1st of the month."""
    monday_based, _ = calendar.monthrange(year, month)
    return (monday_based + 1) % 7


def shift_month(year: int, month: int, delta: int) -> Tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def _posts_by_day(
    posts: Iterable[AppProject], year: int, month: int, tz_name: Optional[str]
) -> Dict[int, List[CalendarPost]]:
    tz = resolve_timezone(tz_name)
    by_day: Dict[int, List[Tuple[str, CalendarPost]]] = {}
    for post in posts:
        when = parse_iso_datetime(post.postAt)
        if when is None:
            continue
        local = when.astimezone(tz)
        if local.year != year or local.month != month:
            continue
        entry = CalendarPost(
            projectId=post.id,
            postId=post.postId,
            time=local.strftime("%H:%M"),
            status=post.status,
            mediaUrl=post.mediaUrl,
            projectType=post.projectType,
        )
        by_day.setdefault(local.day, []).append((local.isoformat(), entry))
    return {day: [e for _, e in sorted(items, key=lambda i: i[0])] for day, items in by_day.items()}


def build_calendar_grid(
    year: int,
    month: int,
    posts: Iterable[AppProject] = (),
    tz_name: Optional[str] = None,
) -> CalendarResponse:
    """Lay a month out as 42 Sunday-first cells.

    Leading cells before the 1st and trailing cells after the last day are
    ``None``; every day cell carries the posts scheduled on that local date.
    """
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12")
    if not 1 <= year <= 9999:
        raise ValidationError("year is out of range")

    leading = first_weekday_sunday_based(year, month)
    days_in_month = calendar.monthrange(year, month)[1]
    by_day = _posts_by_day(posts, year, month, tz_name)

    cells: List[Optional[CalendarCell]] = [None] * leading
    for day in range(1, days_in_month + 1):
        cells.append(
            CalendarCell(day=day, date=date(year, month, day).isoformat(), posts=by_day.get(day, []))
        )
    cells.extend([None] * (GRID_CELLS - len(cells)))

    prev_year, prev_month = shift_month(year, month, -1)
    next_year, next_month = shift_month(year, month, 1)
    return CalendarResponse(
        year=year,
        month=month,
        monthLabel=f"{calendar.month_name[month]} {year}",
        weekdays=WEEKDAYS,
        firstDayOfMonth=leading,
        daysInMonth=days_in_month,
        cells=cells,
        previous=MonthRef(year=prev_year, month=prev_month),
        next=MonthRef(year=next_year, month=next_month),
    )
