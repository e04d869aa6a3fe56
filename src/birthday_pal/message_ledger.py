from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime
from typing import Any

from birthday_pal.key_value_store import KeyValueStore
from birthday_pal.models import MessageRecord

LOGGER = logging.getLogger(__name__)

LEDGER_KEY = "message_ledger"

LedgerListener = Callable[[MessageRecord], None]


def _record_to_payload(record: MessageRecord) -> dict[str, str]:
    return {
        "id": record.id,
        "text": record.text,
        "sent_at": record.sent_at.isoformat(),
    }


def _record_from_payload(contact_id: str, payload: dict[str, Any]) -> MessageRecord:
    return MessageRecord(
        id=str(payload["id"]),
        contact_id=contact_id,
        text=str(payload["text"]),
        sent_at=datetime.fromisoformat(str(payload["sent_at"])),
    )


class MessageLedger:
    """Append-only history of sent birthday messages, grouped per contact.

    The per-contact histories and the running total are persisted together as
    one blob, so a reader of the store never sees one without the other.
    """

    def __init__(self, store: KeyValueStore, *, key: str = LEDGER_KEY) -> None:
        self._store = store
        self._key = key
        self._history: dict[str, list[MessageRecord]] = self._load()
        self._listeners: list[LedgerListener] = []

    def _load(self) -> dict[str, list[MessageRecord]]:
        raw = self._store.get(self._key)
        if not isinstance(raw, dict):
            return {}

        history: dict[str, list[MessageRecord]] = {}
        for contact_id, rows in (raw.get("history") or {}).items():
            if not isinstance(rows, list):
                continue
            records: list[MessageRecord] = []
            for row in rows:
                try:
                    records.append(_record_from_payload(str(contact_id), row))
                except (KeyError, TypeError, ValueError):
                    LOGGER.warning("Skipping malformed ledger row for contact %s", contact_id)
            if records:
                history[str(contact_id)] = records

        stored_total = raw.get("total")
        computed_total = sum(len(records) for records in history.values())
        if stored_total != computed_total:
            LOGGER.warning("Ledger total %s did not match history (%s); using history", stored_total, computed_total)
        return history

    def _commit(self, history: dict[str, list[MessageRecord]]) -> None:
        payload = {
            "version": 1,
            "total": sum(len(records) for records in history.values()),
            "history": {
                contact_id: [_record_to_payload(record) for record in records]
                for contact_id, records in history.items()
                if records
            },
        }
        self._store.set(self._key, payload)
        self._history = {contact_id: records for contact_id, records in history.items() if records}

    @property
    def total(self) -> int:
        return sum(len(records) for records in self._history.values())

    def contact_ids(self) -> list[str]:
        return list(self._history)

    def subscribe(self, listener: LedgerListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: LedgerListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def record(self, contact_id: str, text: str, sent_at: datetime) -> MessageRecord:
        record = MessageRecord(id=uuid.uuid4().hex, contact_id=contact_id, text=text, sent_at=sent_at)

        updated = {key: list(records) for key, records in self._history.items()}
        updated.setdefault(contact_id, []).append(record)
        self._commit(updated)

        LOGGER.info("Recorded birthday message for contact %s (total %s)", contact_id, self.total)
        # The record is already committed; a failing listener must not undo that for the caller.
        for listener in list(self._listeners):
            try:
                listener(record)
            except Exception:
                LOGGER.exception("Ledger listener failed for contact %s", contact_id)
        return record

    def history_for(self, contact_id: str) -> list[MessageRecord]:
        records = self._history.get(contact_id, [])
        # Stable sort over the reversed list keeps later appends first on equal timestamps.
        return sorted(reversed(records), key=lambda record: record.sent_at, reverse=True)

    def last_message_for(self, contact_id: str) -> MessageRecord | None:
        history = self.history_for(contact_id)
        return history[0] if history else None

    def reset_for(self, contact_id: str) -> int:
        removed = len(self._history.get(contact_id, []))
        if not removed:
            return 0

        updated = {key: list(records) for key, records in self._history.items() if key != contact_id}
        self._commit(updated)
        return removed

    def reset_all(self) -> int:
        removed = self.total
        self._commit({})
        return removed
