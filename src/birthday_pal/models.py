from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime

from birthday_pal.date_logic import InvalidBirthdayError, validate_month_day


DEFAULT_LEAP_DAY_RULE = "feb28"


class MessageTone(str, enum.Enum):
    FORMAL = "formal"
    CASUAL = "casual"
    FUNNY = "funny"
    ROMANTIC = "romantic"


@dataclass(frozen=True)
class PartialBirthDate:
    month: int
    day: int
    year: int | None = None

    def __post_init__(self) -> None:
        validate_month_day(self.month, self.day, allow_feb_29=True)
        if self.year is not None and (self.year < 1 or self.year > 9999):
            raise InvalidBirthdayError(f"Invalid year: {self.year}")


@dataclass(frozen=True)
class ContactRecord:
    id: str
    name: str
    phone_number: str | None = None
    birth_date: PartialBirthDate | None = None


@dataclass(frozen=True)
class ReminderTrigger:
    id: str
    contact_id: str
    month: int
    day: int
    fire_hour: int
    fire_minute: int
    repeats: bool = True
    delay_seconds: int | None = None
    title: str = field(default="", compare=False)

    def schedule(self) -> tuple[int, int, int, int, bool, int | None]:
        return (self.month, self.day, self.fire_hour, self.fire_minute, self.repeats, self.delay_seconds)


@dataclass(frozen=True)
class MessageRecord:
    id: str
    contact_id: str
    text: str
    sent_at: datetime


@dataclass(frozen=True)
class ContactEntry:
    name: str
    phone: str | None
    month: int | None
    day: int | None
    year: int | None
    contact_id: str | None = None


@dataclass(frozen=True)
class AppConfig:
    timezone: str
    reminder_time: str
    leap_day_rule: str
    contacts: list[ContactEntry]
