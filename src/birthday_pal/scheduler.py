from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, time
from typing import Protocol
from zoneinfo import ZoneInfo

from telegram.ext import CallbackContext, JobQueue

from birthday_pal.date_logic import is_birthday_on
from birthday_pal.models import DEFAULT_LEAP_DAY_RULE, PartialBirthDate, ReminderTrigger
from birthday_pal.reminder_planner import is_managed_id

LOGGER = logging.getLogger(__name__)


class NotificationScheduler(Protocol):
    def registered(self) -> dict[str, ReminderTrigger]:
        ...

    def apply(self, to_add: Iterable[ReminderTrigger], to_remove: Iterable[str]) -> None:
        ...


class JobQueueScheduler:
    """Registers reminder triggers as python-telegram-bot jobs, keyed by trigger id.

    Recurring triggers run daily at the fire time and only notify when today is
    the birthday. One-shot triggers run once after their delay and stay listed
    as registered until the planner removes them.
    """

    def __init__(
        self,
        *,
        job_queue: JobQueue,
        chat_id: int,
        timezone: str,
        leap_day_rule: str = DEFAULT_LEAP_DAY_RULE,
    ) -> None:
        self._job_queue = job_queue
        self._chat_id = chat_id
        self._tz = ZoneInfo(timezone)
        self._leap_day_rule = leap_day_rule
        self._delivered: dict[str, ReminderTrigger] = {}

    def registered(self) -> dict[str, ReminderTrigger]:
        current = dict(self._delivered)
        for job in self._job_queue.jobs():
            if job.name and is_managed_id(job.name) and isinstance(job.data, ReminderTrigger):
                current[job.name] = job.data
        return current

    def apply(self, to_add: Iterable[ReminderTrigger], to_remove: Iterable[str]) -> None:
        for trigger_id in to_remove:
            self._delivered.pop(trigger_id, None)
            for job in self._job_queue.get_jobs_by_name(trigger_id):
                job.schedule_removal()

        for trigger in to_add:
            if trigger.repeats:
                self._job_queue.run_daily(
                    self._notify_if_birthday,
                    time=time(hour=trigger.fire_hour, minute=trigger.fire_minute, tzinfo=self._tz),
                    data=trigger,
                    name=trigger.id,
                    chat_id=self._chat_id,
                )
            else:
                self._job_queue.run_once(
                    self._notify_once,
                    when=trigger.delay_seconds or 0,
                    data=trigger,
                    name=trigger.id,
                    chat_id=self._chat_id,
                )

    def is_due_today(self, trigger: ReminderTrigger, now: datetime | None = None) -> bool:
        today = (now or datetime.now(self._tz)).astimezone(self._tz).date()
        birth = PartialBirthDate(month=trigger.month, day=trigger.day)
        return is_birthday_on(birth, today, self._leap_day_rule)

    async def _notify_if_birthday(self, context: CallbackContext) -> None:
        trigger: ReminderTrigger = context.job.data
        if not self.is_due_today(trigger):
            return
        await context.bot.send_message(chat_id=self._chat_id, text=trigger.title)
        LOGGER.info("Sent birthday reminder %s", trigger.id)

    async def _notify_once(self, context: CallbackContext) -> None:
        trigger: ReminderTrigger = context.job.data
        self._delivered[trigger.id] = trigger
        await context.bot.send_message(chat_id=self._chat_id, text=trigger.title)
        LOGGER.info("Sent catch-up birthday reminder %s", trigger.id)
