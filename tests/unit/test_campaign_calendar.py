from datetime import date

import pytest

from reviewreply.models.domain.campaign_domain import ProContact
from reviewreply.services.campaign_calendar import (
    easter,
    filter_birthdays_today,
    get_event_date,
    get_event_name,
    get_send_date,
    get_upcoming_events,
    nth_weekday,
    parse_birthday,
    personalize,
)


@pytest.mark.parametrize(
    "year,expected",
    [(2024, date(2024, 3, 31)), (2025, date(2025, 4, 20)), (2026, date(2026, 4, 5))],
)
def test_easter(year, expected):
    assert easter(year) == expected


def test_nth_weekday():
    # Second Sunday of May 2026
    assert nth_weekday(2026, 5, 6, 2) == date(2026, 5, 10)
    # First Monday of September 2025
    assert nth_weekday(2025, 9, 0, 1) == date(2025, 9, 1)


def test_fixed_and_floating_events():
    assert get_event_date("mothers_day", 2026) == date(2026, 5, 10)
    assert get_event_date("thanksgiving", 2025) == date(2025, 11, 27)
    assert get_event_date("black_friday", 2025) == date(2025, 11, 28)
    assert get_event_date("memorial_day", 2026) == date(2026, 5, 25)
    assert get_event_date("presidents_day", 2026) == date(2026, 2, 16)
    assert get_event_date("lunar_new_year", 2026) == date(2026, 2, 17)
    assert get_event_date("christmas", 2026) == date(2026, 12, 25)
    assert get_event_date("not_an_event", 2026) is None


def test_event_name_falls_back_to_key():
    assert get_event_name("black_friday") == "Black Friday"
    assert get_event_name("store_anniversary") == "store anniversary"


def test_send_date_is_offset_before_event():
    assert get_send_date(date(2026, 5, 10), 14) == date(2026, 4, 26)
    assert get_send_date(date(2026, 5, 10), 0) == date(2026, 5, 10)


def test_upcoming_events_window_and_order():
    events = get_upcoming_events(date(2026, 4, 1), within_days=45)

    keys = [e.key for e in events]
    assert keys == ["easter", "mothers_day"]
    assert events[1].prompt_date == date(2026, 4, 26)


def test_upcoming_events_roll_into_next_year():
    events = get_upcoming_events(date(2026, 12, 20), within_days=30)

    assert [e.key for e in events] == ["christmas", "new_year"]
    assert events[1].event_date == date(2027, 1, 1)


@pytest.mark.parametrize(
    "value,expected",
    [
        ("1990-03-14", (3, 14)),
        ("03-14", (3, 14)),
        ("3/14", (3, 14)),
        (" 1990/03/14 ", (3, 14)),
        ("March", None),
        ("", None),
        (None, None),
        ("1990-13-01", None),
        ("14-32", None),
    ],
)
def test_parse_birthday(value, expected):
    assert parse_birthday(value) == expected


def test_birthday_matches_only_on_the_day():
    contacts = [
        ProContact(id=1, email="a@x.test", birthday="1990-03-14"),
        ProContact(id=2, email="b@x.test", birthday="March"),
    ]

    assert [c.id for c in filter_birthdays_today(contacts, date(2026, 3, 14))] == [1]
    assert [c.id for c in filter_birthdays_today(contacts, date(2031, 3, 14))] == [1]
    assert filter_birthdays_today(contacts, date(2026, 3, 15)) == []
    assert filter_birthdays_today(contacts, date(2026, 4, 14)) == []


def test_personalize():
    message = "Hi {{first_name}}! Enjoy {{ offer }}. See you, {{Name}}."

    assert personalize(message, "Ana", "20% off") == "Hi Ana! Enjoy 20% off. See you, Ana."
    assert personalize(message, None) == "Hi there! Enjoy . See you, there."
