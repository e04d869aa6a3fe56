from __future__ import annotations

import calendar
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date

from birthday_pal.date_logic import NextOccurrence, is_birthday_on, next_occurrence
from birthday_pal.models import DEFAULT_LEAP_DAY_RULE, ContactRecord


@dataclass(frozen=True)
class UpcomingBirthday:
    contact: ContactRecord
    occurrence: NextOccurrence


def month_number(value: int | str) -> int | None:
    if isinstance(value, int):
        return value if 1 <= value <= 12 else None

    cleaned = value.strip().lower()
    if cleaned.isdigit():
        return month_number(int(cleaned))

    for number in range(1, 13):
        if cleaned in (calendar.month_name[number].lower(), calendar.month_abbr[number].lower()):
            return number
    return None


class BirthdayIndex:
    """Derived, read-only views over a roster snapshot.

    Every date-relative query takes ``today`` explicitly; nothing computed from
    it is cached between calls.
    """

    def __init__(self, contacts: Sequence[ContactRecord], leap_day_rule: str = DEFAULT_LEAP_DAY_RULE) -> None:
        self._contacts = tuple(contacts)
        self._leap_day_rule = leap_day_rule

    def with_birthday(self) -> list[ContactRecord]:
        return [contact for contact in self._contacts if contact.birth_date is not None]

    def without_birthday(self) -> list[ContactRecord]:
        return [contact for contact in self._contacts if contact.birth_date is None]

    def upcoming(self, today: date, limit: int | None = None) -> list[UpcomingBirthday]:
        rows = [
            UpcomingBirthday(
                contact=contact,
                occurrence=next_occurrence(contact.birth_date, today, self._leap_day_rule),
            )
            for contact in self.with_birthday()
        ]
        # list.sort is stable, so ties keep roster order.
        rows.sort(key=lambda row: row.occurrence.days_from_today)
        if limit is not None:
            return rows[:limit]
        return rows

    def sorted_by_next_occurrence(self, today: date) -> list[ContactRecord]:
        dated = [row.contact for row in self.upcoming(today)]
        return dated + self.without_birthday()

    def contacts_this_month(self, today: date) -> list[ContactRecord]:
        return [
            row.contact
            for row in self.upcoming(today)
            if (row.occurrence.date.year, row.occurrence.date.month) == (today.year, today.month)
        ]

    def count_this_month(self, today: date) -> int:
        return len(self.contacts_this_month(today))

    def contacts_on_date(self, target: date) -> list[ContactRecord]:
        return [
            contact
            for contact in self.with_birthday()
            if (contact.birth_date.month, contact.birth_date.day) == (target.month, target.day)
        ]

    def contacts_in_month(self, month: int | str) -> list[ContactRecord]:
        number = month_number(month)
        if number is None:
            return []
        return [contact for contact in self.with_birthday() if contact.birth_date.month == number]

    def birthdays_today(self, today: date) -> list[ContactRecord]:
        return [
            contact
            for contact in self.with_birthday()
            if is_birthday_on(contact.birth_date, today, self._leap_day_rule)
        ]
