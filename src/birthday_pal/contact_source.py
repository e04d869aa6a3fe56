from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Protocol

from birthday_pal.config_store import load_config, save_config_atomic
from birthday_pal.identity_index import assign_and_persist_ids
from birthday_pal.models import AppConfig, ContactEntry, ContactRecord, PartialBirthDate

LOGGER = logging.getLogger(__name__)


class ContactSourceError(RuntimeError):
    pass


class ContactSource(Protocol):
    def fetch_all(self) -> list[ContactRecord]:
        ...


@dataclass(frozen=True)
class Roster:
    config: AppConfig
    contacts: list[ContactRecord]


def to_record(entry: ContactEntry, contact_id: str) -> ContactRecord:
    birth_date = None
    if entry.month is not None and entry.day is not None:
        birth_date = PartialBirthDate(month=entry.month, day=entry.day, year=entry.year)
    return ContactRecord(id=contact_id, name=entry.name, phone_number=entry.phone, birth_date=birth_date)


class TomlContactSource:
    def __init__(self, *, config_path: Path, person_index_path: Path) -> None:
        self._config_path = config_path
        self._person_index_path = person_index_path

    def load(self) -> Roster:
        try:
            config = load_config(self._config_path)
            contact_ids = assign_and_persist_ids(self._person_index_path, config.contacts)
            config = self._pin_ids(config, contact_ids)
        except (OSError, ValueError) as exc:
            LOGGER.warning("Could not load contacts from %s: %s", self._config_path, exc)
            raise ContactSourceError(str(exc)) from exc

        contacts = [
            to_record(entry, contact_id)
            for entry, contact_id in zip(config.contacts, contact_ids, strict=True)
        ]
        return Roster(config=config, contacts=contacts)

    def _pin_ids(self, config: AppConfig, contact_ids: list[str]) -> AppConfig:
        """Writes resolved ids back into rows that lack one, so later edits keep the same id."""
        if all(entry.contact_id is not None for entry in config.contacts):
            return config

        pinned = AppConfig(
            timezone=config.timezone,
            reminder_time=config.reminder_time,
            leap_day_rule=config.leap_day_rule,
            contacts=[
                replace(entry, contact_id=contact_id)
                for entry, contact_id in zip(config.contacts, contact_ids, strict=True)
            ],
        )
        missing = sum(entry.contact_id is None for entry in config.contacts)
        save_config_atomic(self._config_path, pinned)
        LOGGER.info("Pinned ids for %s contacts in %s", missing, self._config_path)
        return pinned

    def fetch_all(self) -> list[ContactRecord]:
        return self.load().contacts
