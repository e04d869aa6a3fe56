from __future__ import annotations

import os
import tempfile
import tomllib
import uuid
from datetime import date
from pathlib import Path

from birthday_pal.date_logic import LEAP_DAY_RULES, InvalidBirthdayError, validate_month_day
from birthday_pal.models import AppConfig, ContactEntry
from birthday_pal.reminder_planner import CATCH_UP_SUFFIX

ALLOWED_LEAP_DAY_RULES = set(LEAP_DAY_RULES)


def _toml_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def parse_time_string(value: str) -> tuple[int, int]:
    pieces = value.split(":")
    if len(pieces) != 2:
        raise ValueError("reminder_time must be in HH:MM format")

    hour, minute = pieces
    if not hour.isdigit() or not minute.isdigit():
        raise ValueError("reminder_time must contain numeric hour/minute")

    hour_i = int(hour)
    minute_i = int(minute)
    if hour_i < 0 or hour_i > 23 or minute_i < 0 or minute_i > 59:
        raise ValueError("reminder_time must be a valid 24-hour time")

    return hour_i, minute_i


def _optional_int(row: dict, key: str) -> int | None:
    value = row.get(key)
    if value is None:
        return None
    return int(value)


def _optional_str(row: dict, key: str) -> str | None:
    value = row.get(key)
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def _validate_contact(contact: ContactEntry) -> ContactEntry:
    name = contact.name.strip()
    if not name:
        raise ValueError("contact name must not be empty")

    if (contact.month is None) != (contact.day is None):
        raise ValueError(f"{name}: month and day must be given together")

    if contact.month is None:
        if contact.year is not None:
            raise ValueError(f"{name}: year requires month and day")
    else:
        try:
            validate_month_day(contact.month, contact.day, allow_feb_29=True)
        except InvalidBirthdayError as exc:
            raise ValueError(f"{name}: {exc}") from exc

        if contact.year is not None:
            if contact.year < 1900 or contact.year > 3000:
                raise ValueError("year must be between 1900 and 3000 when provided")
            try:
                date(contact.year, contact.month, contact.day)
            except ValueError as exc:
                raise ValueError(f"{name}: {exc}") from exc

    contact_id = contact.contact_id.strip() if contact.contact_id else None
    if contact_id and contact_id.endswith(CATCH_UP_SUFFIX):
        raise ValueError(f"{name}: contact id must not end with \"{CATCH_UP_SUFFIX}\"")
    return ContactEntry(
        name=name,
        phone=contact.phone.strip() if contact.phone and contact.phone.strip() else None,
        month=contact.month,
        day=contact.day,
        year=contact.year,
        contact_id=contact_id or None,
    )


def validate_config(config: AppConfig) -> AppConfig:
    timezone = config.timezone.strip()
    if not timezone:
        raise ValueError("timezone must not be empty")

    hour, minute = parse_time_string(config.reminder_time)

    leap_day_rule = config.leap_day_rule.strip().lower()
    if leap_day_rule not in ALLOWED_LEAP_DAY_RULES:
        raise ValueError(f"leap_day_rule must be one of {sorted(ALLOWED_LEAP_DAY_RULES)}")

    validated_contacts = [_validate_contact(contact) for contact in config.contacts]

    explicit_ids = [contact.contact_id for contact in validated_contacts if contact.contact_id]
    if len(explicit_ids) != len(set(explicit_ids)):
        raise ValueError("contact ids must be unique")

    return AppConfig(
        timezone=timezone,
        reminder_time=f"{hour:02d}:{minute:02d}",
        leap_day_rule=leap_day_rule,
        contacts=validated_contacts,
    )


def load_config(path: Path) -> AppConfig:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with path.open("rb") as file_obj:
        data = tomllib.load(file_obj)

    contacts: list[ContactEntry] = []
    for row in data.get("contacts", []):
        contacts.append(
            ContactEntry(
                name=str(row.get("name", "")),
                phone=_optional_str(row, "phone"),
                month=_optional_int(row, "month"),
                day=_optional_int(row, "day"),
                year=_optional_int(row, "year"),
                contact_id=_optional_str(row, "id"),
            )
        )

    config = AppConfig(
        timezone=str(data.get("timezone", "")),
        reminder_time=str(data.get("reminder_time", "09:00")),
        leap_day_rule=str(data.get("leap_day_rule", "feb28")),
        contacts=contacts,
    )
    return validate_config(config)


def render_config(config: AppConfig) -> str:
    validated = validate_config(config)

    lines: list[str] = [
        f'timezone = "{_toml_escape(validated.timezone)}"',
        f'reminder_time = "{validated.reminder_time}"',
        f'leap_day_rule = "{validated.leap_day_rule}"',
        "",
        "# Contacts without month/day are listed under /missing.",
        "",
    ]

    for contact in validated.contacts:
        lines.append("[[contacts]]")
        if contact.contact_id is not None:
            lines.append(f'id = "{_toml_escape(contact.contact_id)}"')
        lines.append(f'name = "{_toml_escape(contact.name)}"')
        if contact.phone is not None:
            lines.append(f'phone = "{_toml_escape(contact.phone)}"')
        if contact.month is not None:
            lines.append(f"month = {contact.month}")
            lines.append(f"day = {contact.day}")
        if contact.year is not None:
            lines.append(f"year = {contact.year}")
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"


def save_config_atomic(path: Path, config: AppConfig) -> None:
    rendered = render_config(config)
    path.parent.mkdir(parents=True, exist_ok=True)

    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=path.parent,
        prefix=f".{path.name}.",
        delete=False,
    ) as temp_file:
        temp_file.write(rendered)
        temp_name = temp_file.name

    os.replace(temp_name, path)


def ensure_default_config(path: Path) -> None:
    if path.exists():
        return

    default_config = AppConfig(
        timezone="America/Los_Angeles",
        reminder_time="09:00",
        leap_day_rule="feb28",
        contacts=[],
    )
    save_config_atomic(path, default_config)


def append_contact(path: Path, new_contact: ContactEntry) -> AppConfig:
    config = load_config(path)
    if new_contact.contact_id is None:
        new_contact = ContactEntry(
            name=new_contact.name,
            phone=new_contact.phone,
            month=new_contact.month,
            day=new_contact.day,
            year=new_contact.year,
            contact_id=uuid.uuid4().hex,
        )

    updated = AppConfig(
        timezone=config.timezone,
        reminder_time=config.reminder_time,
        leap_day_rule=config.leap_day_rule,
        contacts=[*config.contacts, new_contact],
    )
    save_config_atomic(path, updated)
    return updated
