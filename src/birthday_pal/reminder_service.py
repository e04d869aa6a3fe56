from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from zoneinfo import ZoneInfo

from birthday_pal.birthday_index import BirthdayIndex
from birthday_pal.config_store import parse_time_string
from birthday_pal.contact_source import Roster, TomlContactSource
from birthday_pal.key_value_store import KeyValueStore
from birthday_pal.message_ledger import MessageLedger
from birthday_pal.models import MessageRecord
from birthday_pal.reminder_planner import ReminderPlan, ReminderPlanner
from birthday_pal.scheduler import NotificationScheduler
from birthday_pal.widget_summary import WidgetSummary, build_summary, save_summary

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefreshResult:
    roster: Roster
    index: BirthdayIndex
    plan: ReminderPlan
    summary: WidgetSummary


class ReminderService:
    def __init__(
        self,
        *,
        source: TomlContactSource,
        scheduler: NotificationScheduler,
        ledger: MessageLedger,
        store: KeyValueStore,
    ) -> None:
        self._source = source
        self._scheduler = scheduler
        self._ledger = ledger
        self._store = store
        self._last_roster: Roster | None = None

    @property
    def store(self) -> KeyValueStore:
        return self._store

    def refresh(self, now: datetime | None = None) -> RefreshResult:
        roster = self._source.load()
        config = roster.config
        tz = ZoneInfo(config.timezone)
        now = now.astimezone(tz) if now is not None else datetime.now(tz)

        hour, minute = parse_time_string(config.reminder_time)
        planner = ReminderPlanner(hour, minute, leap_day_rule=config.leap_day_rule)
        plan = planner.plan(roster.contacts, self._scheduler.registered(), now)
        if not plan.is_empty:
            self._scheduler.apply(plan.to_add, plan.to_remove)

        index = BirthdayIndex(roster.contacts, config.leap_day_rule)
        summary = build_summary(index, self._ledger, now.date())
        save_summary(self._store, summary)

        self._last_roster = roster
        LOGGER.info(
            "Refreshed %s contacts (%s with birthdays) for %s",
            len(roster.contacts),
            len(index.with_birthday()),
            now.date().isoformat(),
        )
        return RefreshResult(roster=roster, index=index, plan=plan, summary=summary)

    def update_summary(self, _record: MessageRecord | None = None) -> WidgetSummary | None:
        roster = self._last_roster
        if roster is None:
            return None

        index = BirthdayIndex(roster.contacts, roster.config.leap_day_rule)
        today = datetime.now(ZoneInfo(roster.config.timezone)).date()
        summary = build_summary(index, self._ledger, today)
        save_summary(self._store, summary)
        return summary
