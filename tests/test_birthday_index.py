from datetime import date

from birthday_pal.birthday_index import BirthdayIndex
from birthday_pal.models import ContactRecord, PartialBirthDate


def _contact(contact_id: str, month: int | None = None, day: int | None = None) -> ContactRecord:
    birth = PartialBirthDate(month=month, day=day) if month is not None else None
    return ContactRecord(id=contact_id, name=contact_id.title(), phone_number=None, birth_date=birth)


def test_contacts_on_date_matches_month_and_day() -> None:
    index = BirthdayIndex([_contact("a", 12, 1), _contact("b", 12, 2)])

    assert [contact.id for contact in index.contacts_on_date(date(2026, 12, 1))] == ["a"]


def test_sorted_puts_dated_contacts_first_and_is_stable() -> None:
    roster = [
        _contact("nobody-1"),
        _contact("march", 3, 1),
        _contact("jan-a", 1, 10),
        _contact("nobody-2"),
        _contact("jan-b", 1, 10),
    ]
    index = BirthdayIndex(roster)

    ordered = [contact.id for contact in index.sorted_by_next_occurrence(date(2026, 1, 1))]

    assert ordered == ["jan-a", "jan-b", "march", "nobody-1", "nobody-2"]


def test_with_and_without_birthday_partition_roster() -> None:
    index = BirthdayIndex([_contact("a", 5, 5), _contact("b"), _contact("c", 6, 6)])

    assert [contact.id for contact in index.with_birthday()] == ["a", "c"]
    assert [contact.id for contact in index.without_birthday()] == ["b"]


def test_this_month_uses_next_occurrence() -> None:
    roster = [
        _contact("passed", 10, 2),
        _contact("ahead", 10, 25),
        _contact("today", 10, 18),
        _contact("november", 11, 1),
    ]
    index = BirthdayIndex(roster)
    today = date(2026, 10, 18)

    assert [contact.id for contact in index.contacts_this_month(today)] == ["today", "ahead"]
    assert index.count_this_month(today) == 2


def test_december_birthday_rolled_to_january_not_this_month() -> None:
    index = BirthdayIndex([_contact("early-dec", 12, 1)])

    assert index.count_this_month(date(2026, 12, 20)) == 0


def test_contacts_in_month_accepts_number_or_name() -> None:
    index = BirthdayIndex([_contact("a", 12, 1), _contact("b", 1, 2)])

    assert [contact.id for contact in index.contacts_in_month(12)] == ["a"]
    assert [contact.id for contact in index.contacts_in_month("December")] == ["a"]
    assert [contact.id for contact in index.contacts_in_month("jan")] == ["b"]
    assert index.contacts_in_month("Smarch") == []


def test_birthdays_today_applies_leap_day_rule() -> None:
    index = BirthdayIndex([_contact("leap", 2, 29), _contact("regular", 2, 28)], "feb28")

    assert [contact.id for contact in index.birthdays_today(date(2025, 2, 28))] == ["leap", "regular"]
    assert [contact.id for contact in index.birthdays_today(date(2028, 2, 28))] == ["regular"]


def test_empty_roster_yields_empty_views() -> None:
    index = BirthdayIndex([])
    today = date(2026, 10, 18)

    assert index.sorted_by_next_occurrence(today) == []
    assert index.contacts_this_month(today) == []
    assert index.upcoming(today) == []
    assert index.birthdays_today(today) == []
