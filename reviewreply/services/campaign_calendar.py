"""
Campaign calendar math: US marketing events, send dates, birthday matching
and message personalisation.

Pure functions of their inputs; "today" is always passed in by the caller.
"""

import calendar
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date, timedelta

from reviewreply.models.domain.campaign_domain import DEFAULT_SEND_DAYS_BEFORE, ProContact

MONDAY, THURSDAY, SUNDAY = 0, 3, 6

UPCOMING_WINDOW_DAYS = 90

# Observed first day of the lunar year
LUNAR_NEW_YEAR_DATES = {
    2020: date(2020, 1, 25),
    2021: date(2021, 2, 12),
    2022: date(2022, 2, 1),
    2023: date(2023, 1, 22),
    2024: date(2024, 2, 10),
    2025: date(2025, 1, 29),
    2026: date(2026, 2, 17),
    2027: date(2027, 2, 6),
    2028: date(2028, 1, 26),
    2029: date(2029, 2, 13),
    2030: date(2030, 2, 3),
    2031: date(2031, 1, 23),
    2032: date(2032, 2, 11),
    2033: date(2033, 1, 31),
    2034: date(2034, 2, 19),
    2035: date(2035, 2, 8),
    2036: date(2036, 1, 28),
    2037: date(2037, 2, 15),
    2038: date(2038, 2, 4),
    2039: date(2039, 1, 24),
    2040: date(2040, 2, 12),
}


def nth_weekday(year: int, month: int, weekday: int, n: int) -> date:
    """The n-th given weekday (Monday=0) of a month."""
    first = date(year, month, 1)
    offset = (weekday - first.weekday()) % 7
    return first + timedelta(days=offset + 7 * (n - 1))


def last_weekday(year: int, month: int, weekday: int) -> date:
    last = date(year, month, calendar.monthrange(year, month)[1])
    return last - timedelta(days=(last.weekday() - weekday) % 7)


def easter(year: int) -> date:
    """Western Easter Sunday (anonymous Gregorian algorithm)."""
    a = year % 19
    b, c = divmod(year, 100)
    d, e = divmod(b, 4)
    f = (b + 8) // 25
    g = (b - f + 1) // 3
    h = (19 * a + b - d - g + 15) % 30
    i, k = divmod(c, 4)
    l = (32 + 2 * e + 2 * i - h - k) % 7
    m = (a + 11 * h + 22 * l) // 451
    month, day = divmod(h + l - 7 * m + 114, 31)
    return date(year, month, day + 1)


def lunar_new_year(year: int) -> date:
    if year in LUNAR_NEW_YEAR_DATES:
        return LUNAR_NEW_YEAR_DATES[year]
    # Rough late-January estimate outside the table
    return date(year, 1, min(28, 21 + ((year - 2024) % 12) * 2))


def thanksgiving(year: int) -> date:
    return nth_weekday(year, 11, THURSDAY, 4)


@dataclass(frozen=True)
class EventRule:
    key: str
    name: str
    date_for: Callable[[int], date]


EVENT_RULES: tuple[EventRule, ...] = (
    EventRule("valentines_day", "Valentine's Day", lambda y: date(y, 2, 14)),
    EventRule("presidents_day", "Presidents Day", lambda y: nth_weekday(y, 2, MONDAY, 3)),
    EventRule("lunar_new_year", "Lunar New Year", lunar_new_year),
    EventRule("easter", "Easter", easter),
    EventRule("mothers_day", "Mothers Day", lambda y: nth_weekday(y, 5, SUNDAY, 2)),
    EventRule("memorial_day", "Memorial Day", lambda y: last_weekday(y, 5, MONDAY)),
    EventRule("fathers_day", "Fathers Day", lambda y: nth_weekday(y, 6, SUNDAY, 3)),
    EventRule("independence_day", "Independence Day", lambda y: date(y, 7, 4)),
    EventRule("labor_day", "Labor Day", lambda y: nth_weekday(y, 9, MONDAY, 1)),
    EventRule("halloween", "Halloween", lambda y: date(y, 10, 31)),
    EventRule("thanksgiving", "Thanksgiving", thanksgiving),
    EventRule("black_friday", "Black Friday", lambda y: thanksgiving(y) + timedelta(days=1)),
    EventRule("christmas", "Christmas", lambda y: date(y, 12, 25)),
    EventRule("new_year", "New Year", lambda y: date(y, 1, 1)),
)

EVENTS_BY_KEY = {rule.key: rule for rule in EVENT_RULES}


@dataclass(frozen=True)
class UpcomingEvent:
    key: str
    name: str
    event_date: date
    prompt_date: date


def get_event_date(event_key: str, year: int) -> date | None:
    rule = EVENTS_BY_KEY.get(event_key)
    return rule.date_for(year) if rule else None


def get_event_name(event_key: str) -> str:
    rule = EVENTS_BY_KEY.get(event_key)
    return rule.name if rule else event_key.replace("_", " ")


def get_send_date(event_date: date, send_days_before: int = DEFAULT_SEND_DAYS_BEFORE) -> date:
    return event_date - timedelta(days=int(send_days_before))


def get_upcoming_events(today: date, within_days: int = UPCOMING_WINDOW_DAYS) -> list[UpcomingEvent]:
    """
    Events falling within the next `within_days` days, soonest first.

    An event already past this year is considered at its next-year date.
    The prompt date is when the owner should be asked to confirm.
    """
    horizon = today + timedelta(days=within_days)
    upcoming = []
    for rule in EVENT_RULES:
        event_date = rule.date_for(today.year)
        if event_date < today:
            event_date = rule.date_for(today.year + 1)
        if event_date <= horizon:
            upcoming.append(
                UpcomingEvent(
                    key=rule.key,
                    name=rule.name,
                    event_date=event_date,
                    prompt_date=get_send_date(event_date, DEFAULT_SEND_DAYS_BEFORE),
                )
            )
    upcoming.sort(key=lambda e: e.event_date)
    return upcoming


def parse_birthday(value: str | None) -> tuple[int, int] | None:
    """
    Parse YYYY-MM-DD, MM-DD or MM/DD into (month, day).
    Anything else, or an out-of-range month/day, gives None.
    """
    if not value or not isinstance(value, str):
        return None
    parts = value.strip().replace("/", "-").split("-")
    if len(parts) == 3:
        month_part, day_part = parts[1], parts[2]
    elif len(parts) == 2:
        month_part, day_part = parts
    else:
        return None
    try:
        month, day = int(month_part), int(day_part)
    except ValueError:
        return None
    if 1 <= month <= 12 and 1 <= day <= 31:
        return month, day
    return None


def filter_birthdays_today(contacts: Iterable[ProContact], today: date) -> list[ProContact]:
    return [c for c in contacts if parse_birthday(c.birthday) == (today.month, today.day)]


_FIRST_NAME_TOKEN = re.compile(r"\{\{\s*(first_name|name)\s*\}\}", re.IGNORECASE)
_OFFER_TOKEN = re.compile(r"\{\{\s*offer\s*\}\}", re.IGNORECASE)


def personalize(message: str | None, first_name: str | None, offer_text: str | None = None) -> str:
    text = _OFFER_TOKEN.sub(lambda _: offer_text or "", message or "")
    return _FIRST_NAME_TOKEN.sub(lambda _: (first_name or "").strip() or "there", text)
