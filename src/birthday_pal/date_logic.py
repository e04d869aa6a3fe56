from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from birthday_pal.models import PartialBirthDate

LEAP_DAY_RULES = ("feb28", "mar1")
MAX_AGE = 130


class InvalidBirthdayError(ValueError):
    pass


@dataclass(frozen=True)
class NextOccurrence:
    date: date
    days_from_today: int


def is_leap_year(year: int) -> bool:
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


def validate_month_day(month: int, day: int, *, allow_feb_29: bool = True) -> None:
    if month < 1 or month > 12:
        raise InvalidBirthdayError(f"Invalid month: {month}")

    if day < 1 or day > 31:
        raise InvalidBirthdayError(f"Invalid day: {day}")

    year = 2000 if allow_feb_29 else 2001
    try:
        date(year, month, day)
    except ValueError as exc:
        raise InvalidBirthdayError(f"Invalid month/day combination: {month:02d}-{day:02d}") from exc


def birthday_date_for_year(birth: PartialBirthDate, year: int, leap_day_rule: str = "feb28") -> date:
    if birth.month == 2 and birth.day == 29 and not is_leap_year(year):
        if leap_day_rule == "feb28":
            return date(year, 2, 28)
        if leap_day_rule == "mar1":
            return date(year, 3, 1)
        raise InvalidBirthdayError(f"Unsupported leap day rule: {leap_day_rule}")
    return date(year, birth.month, birth.day)


def days_between(today: date, occurrence: date) -> int:
    return (occurrence - today).days


def next_occurrence(birth: PartialBirthDate, today: date, leap_day_rule: str = "feb28") -> NextOccurrence:
    this_year = birthday_date_for_year(birth, today.year, leap_day_rule)
    if this_year >= today:
        occurrence = this_year
    else:
        occurrence = birthday_date_for_year(birth, today.year + 1, leap_day_rule)
    return NextOccurrence(date=occurrence, days_from_today=days_between(today, occurrence))


def is_birthday_on(birth: PartialBirthDate, on_date: date, leap_day_rule: str = "feb28") -> bool:
    return birthday_date_for_year(birth, on_date.year, leap_day_rule) == on_date


def turning_age(birth: PartialBirthDate, occurrence: date) -> int | None:
    if birth.year is None:
        return None
    return occurrence.year - birth.year


def age_on(birth: PartialBirthDate, on_date: date, leap_day_rule: str = "feb28") -> int | None:
    if birth.year is None:
        return None
    age = on_date.year - birth.year
    if birthday_date_for_year(birth, on_date.year, leap_day_rule) > on_date:
        age -= 1
    if age < 0:
        return None
    return age


def normalized_age(raw: int | None, today: date) -> int | None:
    if raw is None:
        return None
    if 0 <= raw <= MAX_AGE:
        return raw
    if 1900 <= raw <= today.year:
        computed = today.year - raw
        return computed if 0 <= computed <= MAX_AGE else None
    return None
