from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timezone

from birthday_pal.composer import MessageComposer
from birthday_pal.date_logic import age_on
from birthday_pal.message_ledger import MessageLedger
from birthday_pal.models import DEFAULT_LEAP_DAY_RULE, ContactRecord, MessageTone
from birthday_pal.transport import MessageTransport, SendResult, normalize_phone

LOGGER = logging.getLogger(__name__)


class OutreachPhase(str, enum.Enum):
    IDLE = "idle"
    AWAITING_TONE_CHOICE = "awaiting_tone_choice"
    AWAITING_COMPOSITION = "awaiting_composition"
    AWAITING_SEND = "awaiting_send"
    DONE = "done"


class OutreachError(Exception):
    pass


class EmptyQueueError(OutreachError):
    pass


class InvalidPhaseError(OutreachError):
    pass


class NoPhoneNumberError(OutreachError):
    pass


class InvalidPhoneNumberError(OutreachError):
    pass


def display_name(contact: ContactRecord) -> str:
    pieces = contact.name.split()
    return pieces[0] if pieces else "there"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class OutreachSession:
    """Walks today's birthday people one at a time: tone, draft, send, next.

    Operations that do not fit the current phase raise ``InvalidPhaseError``.
    Every start, advance and cancel bumps a generation counter; compose and
    send results that come back under an older generation are dropped.
    """

    def __init__(
        self,
        composer: MessageComposer,
        transport: MessageTransport,
        ledger: MessageLedger,
        *,
        leap_day_rule: str = DEFAULT_LEAP_DAY_RULE,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._composer = composer
        self._transport = transport
        self._ledger = ledger
        self._leap_day_rule = leap_day_rule
        self._clock = clock or _utc_now

        self._queue: tuple[ContactRecord, ...] = ()
        self._position = 0
        self._phase = OutreachPhase.IDLE
        self._pending_text: str | None = None
        self._last_error: OutreachError | None = None
        self._generation = 0
        self._sending = False

    @property
    def phase(self) -> OutreachPhase:
        return self._phase

    @property
    def position(self) -> int:
        return self._position

    @property
    def queue(self) -> tuple[ContactRecord, ...]:
        return self._queue

    @property
    def remaining(self) -> int:
        return max(len(self._queue) - self._position, 0)

    @property
    def current_contact(self) -> ContactRecord | None:
        if self._phase in (OutreachPhase.IDLE, OutreachPhase.DONE):
            return None
        return self._queue[self._position]

    @property
    def pending_text(self) -> str | None:
        return self._pending_text

    @property
    def last_error(self) -> OutreachError | None:
        return self._last_error

    def _require(self, *phases: OutreachPhase) -> None:
        if self._phase not in phases:
            allowed = ", ".join(phase.value for phase in phases)
            raise InvalidPhaseError(f"Operation not allowed in phase {self._phase.value} (expected {allowed})")

    def start(self, candidates: Sequence[ContactRecord]) -> None:
        self._require(OutreachPhase.IDLE, OutreachPhase.DONE)
        if not candidates:
            raise EmptyQueueError("No contacts to message")

        self._generation += 1
        self._queue = tuple(candidates)
        self._position = 0
        self._pending_text = None
        self._last_error = None
        self._sending = False
        self._phase = OutreachPhase.AWAITING_TONE_CHOICE
        LOGGER.info("Outreach started for %s contacts", len(self._queue))

    def _validated_phone(self, contact: ContactRecord) -> str:
        if contact.phone_number is None or not contact.phone_number.strip():
            raise NoPhoneNumberError(f"No phone number for {display_name(contact)}.")
        phone = normalize_phone(contact.phone_number)
        if not phone:
            raise InvalidPhoneNumberError(f"No valid phone for {display_name(contact)}.")
        return phone

    async def choose_tone(self, tone: MessageTone, hint: str | None = None) -> str | None:
        self._require(OutreachPhase.AWAITING_TONE_CHOICE)
        contact = self._queue[self._position]

        try:
            self._validated_phone(contact)
        except (NoPhoneNumberError, InvalidPhoneNumberError) as exc:
            LOGGER.info("Skipping contact %s: %s", contact.id, exc)
            self._last_error = exc
            self.advance()
            return None

        generation = self._generation
        self._phase = OutreachPhase.AWAITING_COMPOSITION

        age = None
        if contact.birth_date is not None:
            age = age_on(contact.birth_date, self._clock().date(), self._leap_day_rule)
        cleaned_hint = (hint or "").strip() or None

        text = await self._composer.compose(tone, display_name(contact), age, cleaned_hint)
        if generation != self._generation:
            LOGGER.info("Discarding composed text for a cancelled outreach step")
            return None

        self._pending_text = text
        self._phase = OutreachPhase.AWAITING_SEND
        return text

    def edit(self, new_text: str) -> None:
        self._require(OutreachPhase.AWAITING_SEND)
        if self._sending:
            raise InvalidPhaseError("A send is already in progress")
        self._pending_text = new_text

    async def confirm_send(self) -> SendResult | None:
        self._require(OutreachPhase.AWAITING_SEND)
        if self._sending:
            raise InvalidPhaseError("A send is already in progress")

        contact = self._queue[self._position]
        text = self._pending_text or ""
        phone = normalize_phone(contact.phone_number)
        generation = self._generation

        self._sending = True
        try:
            result = await self._transport.send(phone, text)
        finally:
            if generation == self._generation:
                self._sending = False

        if generation != self._generation:
            LOGGER.info("Discarding %s send result for a cancelled outreach step", SendResult(result).value)
            return None

        if result is SendResult.SENT:
            self._ledger.record(contact.id, text, self._clock())
            self._last_error = None
        else:
            LOGGER.info("Message to contact %s was %s", contact.id, result.value)

        self.advance()
        return result

    def advance(self) -> None:
        self._require(OutreachPhase.AWAITING_TONE_CHOICE, OutreachPhase.AWAITING_SEND)
        if self._sending:
            raise InvalidPhaseError("A send is already in progress")

        self._generation += 1
        self._position += 1
        self._pending_text = None
        if self._position >= len(self._queue):
            self._phase = OutreachPhase.DONE
            LOGGER.info("Outreach finished")
        else:
            self._phase = OutreachPhase.AWAITING_TONE_CHOICE

    def cancel(self) -> None:
        if self._phase is OutreachPhase.DONE:
            raise InvalidPhaseError("Outreach is already done")

        self._generation += 1
        self._pending_text = None
        self._sending = False
        self._phase = OutreachPhase.DONE
        LOGGER.info("Outreach cancelled at position %s of %s", self._position, len(self._queue))
