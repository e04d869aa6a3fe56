from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, time, timezone
from pathlib import Path
from typing import Any

from birthday_pal.config_store import save_config_atomic
from birthday_pal.contact_source import TomlContactSource
from birthday_pal.key_value_store import MemoryStore
from birthday_pal.message_ledger import MessageLedger
from birthday_pal.models import AppConfig, ContactEntry, ReminderTrigger
from birthday_pal.reminder_service import ReminderService
from birthday_pal.scheduler import JobQueueScheduler
from birthday_pal.widget_summary import WIDGET_KEY


@dataclass
class FakeJob:
    name: str
    data: Any
    callback: Any
    removed: bool = False

    def schedule_removal(self) -> None:
        self.removed = True


@dataclass
class FakeJobQueue:
    scheduled: list[FakeJob] = field(default_factory=list)
    daily_times: dict[str, time] = field(default_factory=dict)
    once_delays: dict[str, float] = field(default_factory=dict)

    def jobs(self) -> tuple[FakeJob, ...]:
        return tuple(job for job in self.scheduled if not job.removed)

    def get_jobs_by_name(self, name: str) -> tuple[FakeJob, ...]:
        return tuple(job for job in self.jobs() if job.name == name)

    def run_daily(self, callback, time, data=None, name=None, chat_id=None) -> FakeJob:
        job = FakeJob(name=name, data=data, callback=callback)
        self.scheduled.append(job)
        self.daily_times[name] = time
        return job

    def run_once(self, callback, when, data=None, name=None, chat_id=None) -> FakeJob:
        job = FakeJob(name=name, data=data, callback=callback)
        self.scheduled.append(job)
        self.once_delays[name] = when
        return job


@dataclass
class FakeBot:
    sent_messages: list[tuple[int, str]] = field(default_factory=list)

    async def send_message(self, chat_id: int, text: str) -> None:
        self.sent_messages.append((chat_id, text))


@dataclass
class FakeContext:
    job: FakeJob
    bot: FakeBot


def _write_roster(path: Path, contacts: list[ContactEntry]) -> None:
    save_config_atomic(
        path,
        AppConfig(timezone="UTC", reminder_time="09:00", leap_day_rule="feb28", contacts=contacts),
    )


def _service(tmp_path: Path) -> tuple[ReminderService, FakeJobQueue, Path, MemoryStore]:
    config_path = tmp_path / "contacts.toml"
    job_queue = FakeJobQueue()
    store = MemoryStore()
    scheduler = JobQueueScheduler(job_queue=job_queue, chat_id=100, timezone="UTC")
    source = TomlContactSource(config_path=config_path, person_index_path=tmp_path / "index.json")
    service = ReminderService(source=source, scheduler=scheduler, ledger=MessageLedger(store), store=store)
    return service, job_queue, config_path, store


def test_refresh_twice_does_not_duplicate_jobs(tmp_path: Path) -> None:
    service, job_queue, config_path, store = _service(tmp_path)
    _write_roster(
        config_path,
        [
            ContactEntry(name="Alice", phone="555", month=3, day=14, year=None, contact_id="a"),
            ContactEntry(name="Bob", phone=None, month=7, day=4, year=None, contact_id="b"),
            ContactEntry(name="Cy", phone=None, month=None, day=None, year=None, contact_id="c"),
        ],
    )
    now = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)

    first = service.refresh(now)
    second = service.refresh(now)

    assert len(first.plan.to_add) == 2
    assert second.plan.is_empty
    assert sorted(job.name for job in job_queue.jobs()) == ["bday.a", "bday.b"]
    assert job_queue.daily_times["bday.a"].hour == 9
    assert store.get(WIDGET_KEY)["nextName"] == "Alice"


def test_refresh_removes_deleted_contact_and_updates_changed_date(tmp_path: Path) -> None:
    service, job_queue, config_path, _ = _service(tmp_path)
    now = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)
    _write_roster(
        config_path,
        [
            ContactEntry(name="Alice", phone=None, month=3, day=14, year=None, contact_id="a"),
            ContactEntry(name="Bob", phone=None, month=7, day=4, year=None, contact_id="b"),
        ],
    )
    service.refresh(now)

    _write_roster(
        config_path,
        [ContactEntry(name="Alice", phone=None, month=4, day=1, year=None, contact_id="a")],
    )
    result = service.refresh(now)

    assert sorted(result.plan.to_remove) == ["bday.a", "bday.b"]
    assert [job.name for job in job_queue.jobs()] == ["bday.a"]
    assert job_queue.jobs()[0].data.month == 4


def test_catch_up_fires_once_and_is_not_rescheduled_same_day(tmp_path: Path) -> None:
    service, job_queue, config_path, _ = _service(tmp_path)
    _write_roster(
        config_path,
        [ContactEntry(name="Alice", phone=None, month=3, day=14, year=None, contact_id="a")],
    )
    evening = datetime(2026, 3, 14, 20, 0, tzinfo=timezone.utc)

    service.refresh(evening)
    assert job_queue.once_delays == {"bday.a.now": 10}

    one_shot = job_queue.get_jobs_by_name("bday.a.now")[0]
    bot = FakeBot()
    asyncio.run(one_shot.callback(FakeContext(job=one_shot, bot=bot)))
    one_shot.removed = True

    assert service.refresh(evening).plan.is_empty
    assert len(bot.sent_messages) == 1

    next_day = service.refresh(datetime(2026, 3, 15, 8, 0, tzinfo=timezone.utc))
    assert next_day.plan.to_remove == ["bday.a.now"]


def test_recurring_job_only_notifies_on_birthday() -> None:
    job_queue = FakeJobQueue()
    scheduler = JobQueueScheduler(job_queue=job_queue, chat_id=100, timezone="UTC", leap_day_rule="feb28")
    trigger = ReminderTrigger(
        id="bday.a",
        contact_id="a",
        month=2,
        day=29,
        fire_hour=9,
        fire_minute=0,
        title="🎂 It's Alice's birthday! Send them a quick message.",
    )

    assert scheduler.is_due_today(trigger, datetime(2025, 2, 28, 9, tzinfo=timezone.utc))
    assert not scheduler.is_due_today(trigger, datetime(2028, 2, 28, 9, tzinfo=timezone.utc))
    assert scheduler.is_due_today(trigger, datetime(2028, 2, 29, 9, tzinfo=timezone.utc))
