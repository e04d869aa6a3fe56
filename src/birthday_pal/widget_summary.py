from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any

from birthday_pal.birthday_index import BirthdayIndex
from birthday_pal.key_value_store import KeyValueStore
from birthday_pal.message_ledger import MessageLedger

LOGGER = logging.getLogger(__name__)

WIDGET_KEY = "BirthdayWidgetData"


@dataclass(frozen=True)
class WidgetSummary:
    next_name: str | None
    days_to_next: int | None
    upcoming_this_month: int
    remembered_count: int

    def to_payload(self) -> dict[str, Any]:
        return {
            "nextName": self.next_name,
            "daysToNext": self.days_to_next,
            "upcomingThisMonth": self.upcoming_this_month,
            "rememberedCount": self.remembered_count,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> WidgetSummary:
        next_name = payload.get("nextName")
        days_to_next = payload.get("daysToNext")
        return cls(
            next_name=str(next_name) if next_name is not None else None,
            days_to_next=int(days_to_next) if days_to_next is not None else None,
            upcoming_this_month=int(payload["upcomingThisMonth"]),
            remembered_count=int(payload["rememberedCount"]),
        )


PLACEHOLDER = WidgetSummary(next_name="Alex", days_to_next=2, upcoming_this_month=3, remembered_count=5)


def build_summary(index: BirthdayIndex, ledger: MessageLedger, today: date) -> WidgetSummary:
    upcoming = index.upcoming(today, limit=1)
    if upcoming:
        next_name = upcoming[0].contact.name
        days_to_next = upcoming[0].occurrence.days_from_today
    else:
        next_name = None
        days_to_next = None

    return WidgetSummary(
        next_name=next_name,
        days_to_next=days_to_next,
        upcoming_this_month=index.count_this_month(today),
        remembered_count=ledger.total,
    )


def save_summary(store: KeyValueStore, summary: WidgetSummary) -> None:
    store.set(WIDGET_KEY, summary.to_payload())


def load_summary(store: KeyValueStore) -> WidgetSummary:
    raw = store.get(WIDGET_KEY)
    if not isinstance(raw, dict):
        return PLACEHOLDER
    try:
        return WidgetSummary.from_payload(raw)
    except (KeyError, TypeError, ValueError):
        LOGGER.warning("Stored widget summary is unreadable; showing placeholder")
        return PLACEHOLDER


def render_summary(summary: WidgetSummary) -> str:
    if summary.next_name is None:
        next_line = "Next birthday: none tracked"
    elif summary.days_to_next == 0:
        next_line = f"Next birthday: {summary.next_name} (today!)"
    else:
        next_line = f"Next birthday: {summary.next_name} in {summary.days_to_next}d"

    if summary.remembered_count == 0:
        remark = "Start sending birthday messages 🎉"
    elif summary.remembered_count < 10:
        remark = "Nice start – keep going! 🎂"
    else:
        remark = "You're a birthday pro 🥳"

    return "\n".join(
        [
            next_line,
            f"Birthdays this month: {summary.upcoming_this_month}",
            f"Birthdays remembered: {summary.remembered_count}",
            remark,
        ]
    )
