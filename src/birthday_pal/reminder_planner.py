from __future__ import annotations

import logging
from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from birthday_pal.date_logic import is_birthday_on
from birthday_pal.models import DEFAULT_LEAP_DAY_RULE, ContactRecord, ReminderTrigger

LOGGER = logging.getLogger(__name__)

TRIGGER_PREFIX = "bday."
CATCH_UP_SUFFIX = ".now"
DEFAULT_CATCH_UP_DELAY_SECONDS = 10


@dataclass(frozen=True)
class ReminderPlan:
    to_add: list[ReminderTrigger] = field(default_factory=list)
    to_remove: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.to_add and not self.to_remove


def trigger_id(contact: ContactRecord) -> str:
    return f"{TRIGGER_PREFIX}{contact.id}"


def catch_up_id(contact: ContactRecord) -> str:
    return f"{trigger_id(contact)}{CATCH_UP_SUFFIX}"


def is_managed_id(value: str) -> bool:
    return value.startswith(TRIGGER_PREFIX)


def reminder_title(contact: ContactRecord) -> str:
    return f"🎂 It's {contact.name}'s birthday! Send them a quick message."


class ReminderPlanner:
    def __init__(
        self,
        fire_hour: int,
        fire_minute: int,
        *,
        leap_day_rule: str = DEFAULT_LEAP_DAY_RULE,
        catch_up_delay_seconds: int = DEFAULT_CATCH_UP_DELAY_SECONDS,
    ) -> None:
        if not 0 <= fire_hour <= 23 or not 0 <= fire_minute <= 59:
            raise ValueError("fire time must be a valid 24-hour time")
        self.fire_hour = fire_hour
        self.fire_minute = fire_minute
        self.leap_day_rule = leap_day_rule
        self.catch_up_delay_seconds = catch_up_delay_seconds

    def _fire_time_passed(self, now: datetime) -> bool:
        scheduled = now.replace(hour=self.fire_hour, minute=self.fire_minute, second=0, microsecond=0)
        return now >= scheduled

    def desired_triggers(self, roster: Sequence[ContactRecord], now: datetime) -> dict[str, ReminderTrigger]:
        desired: dict[str, ReminderTrigger] = {}
        today = now.date()
        late_today = self._fire_time_passed(now)

        for contact in roster:
            birth = contact.birth_date
            if birth is None:
                continue

            recurring = ReminderTrigger(
                id=trigger_id(contact),
                contact_id=contact.id,
                month=birth.month,
                day=birth.day,
                fire_hour=self.fire_hour,
                fire_minute=self.fire_minute,
                repeats=True,
                title=reminder_title(contact),
            )
            desired[recurring.id] = recurring

            if late_today and is_birthday_on(birth, today, self.leap_day_rule):
                one_shot = ReminderTrigger(
                    id=catch_up_id(contact),
                    contact_id=contact.id,
                    month=birth.month,
                    day=birth.day,
                    fire_hour=self.fire_hour,
                    fire_minute=self.fire_minute,
                    repeats=False,
                    delay_seconds=self.catch_up_delay_seconds,
                    title=reminder_title(contact),
                )
                desired[one_shot.id] = one_shot

        return desired

    def plan(
        self,
        roster: Sequence[ContactRecord],
        existing: Collection[str] | Mapping[str, ReminderTrigger],
        now: datetime,
    ) -> ReminderPlan:
        desired = self.desired_triggers(roster, now)
        existing_ids = {value for value in existing if is_managed_id(value)}

        to_remove = sorted(existing_ids - desired.keys())
        to_add = [trigger for trigger_key, trigger in desired.items() if trigger_key not in existing_ids]

        if isinstance(existing, Mapping):
            for trigger_key in sorted(existing_ids & desired.keys()):
                current = existing[trigger_key]
                wanted = desired[trigger_key]
                # Replace recurring triggers whose schedule drifted; one-shots stay as registered.
                if current.repeats and current.schedule() != wanted.schedule():
                    to_remove.append(trigger_key)
                    to_add.append(wanted)

        if to_add or to_remove:
            LOGGER.info("Reminder plan: %s to add, %s to remove", len(to_add), len(to_remove))
        return ReminderPlan(to_add=to_add, to_remove=to_remove)
