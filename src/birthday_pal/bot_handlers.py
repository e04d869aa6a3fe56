from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from zoneinfo import ZoneInfo

from telegram import Update
from telegram.ext import (
    CallbackContext,
    CommandHandler,
    ConversationHandler,
    MessageHandler,
    filters,
)

from birthday_pal.birthday_index import BirthdayIndex, UpcomingBirthday, month_number
from birthday_pal.composer import MessageComposer
from birthday_pal.config_store import append_contact
from birthday_pal.contact_source import ContactSourceError, Roster, TomlContactSource
from birthday_pal.date_logic import turning_age, validate_month_day
from birthday_pal.message_ledger import MessageLedger
from birthday_pal.models import ContactEntry, ContactRecord, MessageTone
from birthday_pal.outreach import (
    EmptyQueueError,
    InvalidPhaseError,
    OutreachPhase,
    OutreachSession,
    display_name,
)
from birthday_pal.reminder_service import ReminderService
from birthday_pal.settings import Settings
from birthday_pal.transport import MessageTransport, SendResult
from birthday_pal.widget_summary import load_summary, render_summary

LOGGER = logging.getLogger(__name__)

(
    STATE_ADD_NAME,
    STATE_ADD_BIRTHDAY,
    STATE_ADD_PHONE,
    STATE_ADD_CONFIRM,
    STATE_OUTREACH_TONE,
    STATE_OUTREACH_REVIEW,
) = range(6)

PENDING_ADD_KEY = "pending_add_contact"
OUTREACH_SESSION_KEY = "outreach_session"
SKIP_WORDS = {"skip", "none", "-"}


@dataclass(frozen=True)
class HandlerDependencies:
    settings: Settings
    source: TomlContactSource
    service: ReminderService
    composer: MessageComposer
    transport: MessageTransport
    ledger: MessageLedger


@dataclass(frozen=True)
class BirthdayListRow:
    name: str
    days_until: int
    next_date: date
    turning_age: int | None


def is_authorized(update: Update, settings: Settings) -> bool:
    effective_user = update.effective_user
    effective_chat = update.effective_chat
    if effective_user is None or effective_chat is None:
        return False
    return (
        effective_user.id == settings.telegram_allowed_user_id
        and effective_chat.id == settings.telegram_allowed_chat_id
    )


async def _deny_unauthorized(update: Update) -> None:
    if update.effective_message:
        await update.effective_message.reply_text("This bot is restricted to its configured owner.")


def parse_birthday_text(raw_text: str) -> tuple[int, int, int | None]:
    value = raw_text.strip()

    full_match = re.fullmatch(r"(\d{4})-(\d{2})-(\d{2})", value)
    if full_match:
        year = int(full_match.group(1))
        month = int(full_match.group(2))
        day = int(full_match.group(3))
        date(year, month, day)
        return month, day, year

    short_match = re.fullmatch(r"(\d{2})-(\d{2})", value)
    if short_match:
        month = int(short_match.group(1))
        day = int(short_match.group(2))
        validate_month_day(month, day, allow_feb_29=True)
        return month, day, None

    raise ValueError("Birthday must use YYYY-MM-DD or MM-DD")


def parse_phone_text(raw_text: str) -> str:
    value = raw_text.strip()
    digits = "".join(char for char in value if char.isdigit())
    if len(digits) < 3:
        raise ValueError("Phone number needs at least 3 digits")
    return value


def parse_tone_text(raw_text: str) -> tuple[MessageTone, str | None]:
    tone_text, _, hint = raw_text.partition(":")
    try:
        tone = MessageTone(tone_text.strip().lower())
    except ValueError as exc:
        choices = ", ".join(tone.value for tone in MessageTone)
        raise ValueError(f"Tone must be one of: {choices}") from exc
    return tone, hint.strip() or None


def _render_help() -> str:
    return (
        "Commands:\n"
        "/list - Upcoming birthdays, soonest first\n"
        "/today - Whose birthday is today\n"
        "/month [name] - Birthdays this month, or in a named month\n"
        "/missing - Contacts without a birthday\n"
        "/outreach - Message everyone whose birthday is today\n"
        "/stats - Summary of upcoming birthdays and messages sent\n"
        "/add - Add a contact\n"
        "/refresh - Reload contacts and reschedule reminders\n"
        "/help - Show this help message\n"
        "/cancel - Cancel the active wizard or outreach\n\n"
        "Birthday format examples:\n"
        "- 1990-03-14\n"
        "- 03-14\n\n"
        "Outreach tones: formal, casual, funny, romantic (add notes after a colon, e.g. casual: mention the trip)"
    )


def _render_list_message(rows: list[BirthdayListRow]) -> str:
    lines = [f"Upcoming birthdays ({len(rows)})", "Sorted by soonest:"]

    for index, row in enumerate(rows, start=1):
        lines.append(f"{index}. {row.name}")
        details = [
            "Today" if row.days_until == 0 else f"In {row.days_until}d",
            f"Next {row.next_date.isoformat()}",
        ]
        if row.turning_age is not None:
            details.append(f"Turning {row.turning_age}")
        lines.append(f"   {' | '.join(details)}")
        lines.append("")

    return "\n".join(lines).rstrip()


def _render_names(title: str, contacts: list[ContactRecord]) -> str:
    lines = [f"{title} ({len(contacts)})"]
    for contact in contacts:
        birth = contact.birth_date
        if birth is None:
            lines.append(f"- {contact.name}")
        else:
            lines.append(f"- {contact.name} ({birth.month:02d}-{birth.day:02d})")
    return "\n".join(lines)


def _rows_from_upcoming(upcoming: list[UpcomingBirthday]) -> list[BirthdayListRow]:
    return [
        BirthdayListRow(
            name=row.contact.name,
            days_until=row.occurrence.days_from_today,
            next_date=row.occurrence.date,
            turning_age=turning_age(row.contact.birth_date, row.occurrence.date),
        )
        for row in upcoming
    ]


def _render_tone_prompt(session: OutreachSession) -> str:
    contact = session.current_contact
    position = session.position + 1
    total = len(session.queue)
    choices = ", ".join(tone.value for tone in MessageTone)
    return (
        f"Birthday {position}/{total}: {contact.name}\n"
        f"Pick a tone ({choices}), optionally followed by notes after a colon.\n"
        "Send skip to move on, or /cancel to stop."
    )


def _render_draft(session: OutreachSession) -> str:
    contact = session.current_contact
    return (
        f"Draft for {display_name(contact)}:\n\n"
        f"{session.pending_text}\n\n"
        "Reply send to send it, skip to move on, or send new text to replace the draft."
    )


def _today_for(roster: Roster) -> date:
    return datetime.now(ZoneInfo(roster.config.timezone)).date()


async def _load_roster(update: Update, deps: HandlerDependencies) -> Roster | None:
    try:
        return deps.source.load()
    except ContactSourceError as exc:
        await update.effective_message.reply_text(
            f"Could not load contacts: {exc}\nFix the contacts file and send /refresh to retry."
        )
        return None


def _dependencies(context: CallbackContext) -> HandlerDependencies:
    return context.application.bot_data["handler_deps"]


async def help_command(update: Update, context: CallbackContext) -> None:
    deps = _dependencies(context)
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return
    await update.effective_message.reply_text(_render_help())


async def list_command(update: Update, context: CallbackContext) -> None:
    deps = _dependencies(context)
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return

    roster = await _load_roster(update, deps)
    if roster is None:
        return

    index = BirthdayIndex(roster.contacts, roster.config.leap_day_rule)
    upcoming = index.upcoming(_today_for(roster))
    if not upcoming:
        await update.effective_message.reply_text("No birthdays are currently tracked.")
        return

    await update.effective_message.reply_text(_render_list_message(_rows_from_upcoming(upcoming)))


async def today_command(update: Update, context: CallbackContext) -> None:
    deps = _dependencies(context)
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return

    roster = await _load_roster(update, deps)
    if roster is None:
        return

    index = BirthdayIndex(roster.contacts, roster.config.leap_day_rule)
    todays = index.birthdays_today(_today_for(roster))
    if not todays:
        await update.effective_message.reply_text("No birthdays today.")
        return
    await update.effective_message.reply_text(
        _render_names("Birthdays today", todays) + "\n\nSend /outreach to message them."
    )


async def month_command(update: Update, context: CallbackContext) -> None:
    deps = _dependencies(context)
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return

    roster = await _load_roster(update, deps)
    if roster is None:
        return

    index = BirthdayIndex(roster.contacts, roster.config.leap_day_rule)
    args = context.args or []
    if args:
        requested = " ".join(args)
        if month_number(requested) is None:
            await update.effective_message.reply_text(f"Unknown month: {requested}")
            return
        contacts = index.contacts_in_month(requested)
        title = f"Birthdays in {requested.strip().capitalize()}"
    else:
        contacts = index.contacts_this_month(_today_for(roster))
        title = "Birthdays still ahead this month"

    await update.effective_message.reply_text(_render_names(title, contacts))


async def missing_command(update: Update, context: CallbackContext) -> None:
    deps = _dependencies(context)
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return

    roster = await _load_roster(update, deps)
    if roster is None:
        return

    index = BirthdayIndex(roster.contacts, roster.config.leap_day_rule)
    await update.effective_message.reply_text(_render_names("Contacts without a birthday", index.without_birthday()))


async def stats_command(update: Update, context: CallbackContext) -> None:
    deps = _dependencies(context)
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return

    summary = deps.service.update_summary()
    if summary is None:
        summary = load_summary(deps.service.store)
    await update.effective_message.reply_text(render_summary(summary))


async def refresh_command(update: Update, context: CallbackContext) -> None:
    deps = _dependencies(context)
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return

    try:
        result = deps.service.refresh()
    except ContactSourceError as exc:
        await update.effective_message.reply_text(
            f"Could not load contacts: {exc}\nFix the contacts file and send /refresh to retry."
        )
        return

    await update.effective_message.reply_text(
        f"Loaded {len(result.roster.contacts)} contacts.\n"
        f"Reminders added: {len(result.plan.to_add)}, removed: {len(result.plan.to_remove)}."
    )


async def add_start(update: Update, context: CallbackContext) -> int:
    deps = _dependencies(context)
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    context.user_data[PENDING_ADD_KEY] = {}
    await update.effective_message.reply_text(
        "Add contact wizard started.\nStep 1/4: Send the contact's name."
    )
    return STATE_ADD_NAME


async def add_name(update: Update, context: CallbackContext) -> int:
    deps = _dependencies(context)
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    name = (update.effective_message.text or "").strip()
    if not name:
        await update.effective_message.reply_text("Name cannot be empty. Please send a name.")
        return STATE_ADD_NAME

    context.user_data[PENDING_ADD_KEY] = {"name": name}
    await update.effective_message.reply_text(
        "Step 2/4: Send birthday as YYYY-MM-DD or MM-DD, or skip if unknown."
    )
    return STATE_ADD_BIRTHDAY


async def add_birthday(update: Update, context: CallbackContext) -> int:
    deps = _dependencies(context)
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    raw_text = (update.effective_message.text or "").strip()
    pending = context.user_data.get(PENDING_ADD_KEY, {})

    if raw_text.lower() in SKIP_WORDS:
        pending.update({"month": None, "day": None, "year": None})
    else:
        try:
            month, day, year = parse_birthday_text(raw_text)
        except ValueError as exc:
            await update.effective_message.reply_text(
                f"{exc}. Please send YYYY-MM-DD or MM-DD, or skip."
            )
            return STATE_ADD_BIRTHDAY
        pending.update({"month": month, "day": day, "year": year})

    context.user_data[PENDING_ADD_KEY] = pending
    await update.effective_message.reply_text("Step 3/4: Send a phone number, or skip.")
    return STATE_ADD_PHONE


async def add_phone(update: Update, context: CallbackContext) -> int:
    deps = _dependencies(context)
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    raw_text = (update.effective_message.text or "").strip()
    pending = context.user_data.get(PENDING_ADD_KEY, {})

    if raw_text.lower() in SKIP_WORDS:
        pending["phone"] = None
    else:
        try:
            pending["phone"] = parse_phone_text(raw_text)
        except ValueError as exc:
            await update.effective_message.reply_text(f"{exc}. Send a phone number or skip.")
            return STATE_ADD_PHONE

    context.user_data[PENDING_ADD_KEY] = pending

    if pending.get("month") is None:
        birthday_text = "(not set)"
    else:
        birthday_text = f"{pending['month']:02d}-{pending['day']:02d}"
    year = pending.get("year")
    summary = (
        "Step 4/4: Confirm this contact:\n"
        f"Name: {pending.get('name')}\n"
        f"Birthday: {birthday_text}\n"
        f"Year: {year if year is not None else '(not set)'}\n"
        f"Phone: {pending.get('phone') or '(not set)'}\n\n"
        "Reply with yes to save, or no to cancel."
    )
    await update.effective_message.reply_text(summary)
    return STATE_ADD_CONFIRM


async def add_confirm(update: Update, context: CallbackContext) -> int:
    deps = _dependencies(context)
    settings = deps.settings
    if not is_authorized(update, settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    decision = (update.effective_message.text or "").strip().lower()
    if decision not in {"yes", "y", "no", "n"}:
        await update.effective_message.reply_text("Please reply with yes or no.")
        return STATE_ADD_CONFIRM

    if decision in {"no", "n"}:
        context.user_data.pop(PENDING_ADD_KEY, None)
        await update.effective_message.reply_text("Canceled. No changes were made.")
        return ConversationHandler.END

    pending = context.user_data.get(PENDING_ADD_KEY, {})
    entry = ContactEntry(
        name=str(pending["name"]),
        phone=pending.get("phone"),
        month=pending.get("month"),
        day=pending.get("day"),
        year=pending.get("year"),
    )
    append_contact(settings.contacts_config_path, entry)
    context.user_data.pop(PENDING_ADD_KEY, None)
    LOGGER.info("Added contact %s", entry.name)

    try:
        deps.service.refresh()
    except ContactSourceError:
        await update.effective_message.reply_text("Contact saved, but reminders could not be refreshed. Send /refresh.")
        return ConversationHandler.END

    await update.effective_message.reply_text("Contact saved and reminders updated.")
    return ConversationHandler.END


async def _continue_outreach(update: Update, context: CallbackContext, session: OutreachSession) -> int:
    if session.phase is OutreachPhase.DONE:
        context.chat_data.pop(OUTREACH_SESSION_KEY, None)
        await update.effective_message.reply_text(
            f"Outreach finished. Messages sent so far: {_dependencies(context).ledger.total}."
        )
        return ConversationHandler.END

    await update.effective_message.reply_text(_render_tone_prompt(session))
    return STATE_OUTREACH_TONE


async def _expired_outreach(update: Update, context: CallbackContext) -> int:
    context.chat_data.pop(OUTREACH_SESSION_KEY, None)
    await update.effective_message.reply_text("That outreach step is no longer active. Send /outreach to start again.")
    return ConversationHandler.END


async def outreach_start(update: Update, context: CallbackContext) -> int:
    deps = _dependencies(context)
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    roster = await _load_roster(update, deps)
    if roster is None:
        return ConversationHandler.END

    tz = ZoneInfo(roster.config.timezone)
    index = BirthdayIndex(roster.contacts, roster.config.leap_day_rule)
    session = OutreachSession(
        deps.composer,
        deps.transport,
        deps.ledger,
        leap_day_rule=roster.config.leap_day_rule,
        clock=lambda: datetime.now(tz),
    )

    try:
        session.start(index.birthdays_today(datetime.now(tz).date()))
    except EmptyQueueError:
        await update.effective_message.reply_text("No birthdays today.")
        return ConversationHandler.END

    context.chat_data[OUTREACH_SESSION_KEY] = session
    return await _continue_outreach(update, context, session)


async def outreach_tone(update: Update, context: CallbackContext) -> int:
    deps = _dependencies(context)
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    session: OutreachSession | None = context.chat_data.get(OUTREACH_SESSION_KEY)
    if session is None:
        return await _expired_outreach(update, context)

    raw_text = (update.effective_message.text or "").strip()
    try:
        if raw_text.lower() in SKIP_WORDS:
            session.advance()
            return await _continue_outreach(update, context, session)

        try:
            tone, hint = parse_tone_text(raw_text)
        except ValueError as exc:
            await update.effective_message.reply_text(str(exc))
            return STATE_OUTREACH_TONE

        await update.effective_chat.send_action("typing")
        text = await session.choose_tone(tone, hint)
    except InvalidPhaseError:
        return await _expired_outreach(update, context)

    if text is None:
        if session.last_error is not None:
            await update.effective_message.reply_text(f"{session.last_error} Skipping.")
        return await _continue_outreach(update, context, session)

    await update.effective_message.reply_text(_render_draft(session))
    return STATE_OUTREACH_REVIEW


async def outreach_review(update: Update, context: CallbackContext) -> int:
    deps = _dependencies(context)
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    session: OutreachSession | None = context.chat_data.get(OUTREACH_SESSION_KEY)
    if session is None:
        return await _expired_outreach(update, context)

    raw_text = (update.effective_message.text or "").strip()
    decision = raw_text.lower()
    try:
        if decision == "send":
            name = display_name(session.current_contact)
            result = await session.confirm_send()
            if result is SendResult.SENT:
                await update.effective_message.reply_text(f"Sent to {name}. 🎉")
            elif result is not None:
                await update.effective_message.reply_text(f"Message to {name} was {result.value}; moving on.")
            return await _continue_outreach(update, context, session)

        if decision in SKIP_WORDS:
            session.advance()
            return await _continue_outreach(update, context, session)

        if not raw_text:
            await update.effective_message.reply_text("Send send, skip, or the replacement text.")
            return STATE_OUTREACH_REVIEW

        session.edit(raw_text)
    except InvalidPhaseError:
        return await _expired_outreach(update, context)

    await update.effective_message.reply_text(_render_draft(session))
    return STATE_OUTREACH_REVIEW


async def cancel_command(update: Update, context: CallbackContext) -> int:
    deps = _dependencies(context)
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    context.user_data.pop(PENDING_ADD_KEY, None)
    session: OutreachSession | None = context.chat_data.pop(OUTREACH_SESSION_KEY, None)
    if session is not None and session.phase is not OutreachPhase.DONE:
        session.cancel()
        await update.effective_message.reply_text("Outreach canceled.")
        return ConversationHandler.END

    await update.effective_message.reply_text("Wizard canceled.")
    return ConversationHandler.END


def build_handlers(settings: Settings) -> list:
    text_only = filters.TEXT & ~filters.COMMAND

    add_conversation = ConversationHandler(
        entry_points=[CommandHandler("add", add_start)],
        states={
            STATE_ADD_NAME: [MessageHandler(text_only, add_name)],
            STATE_ADD_BIRTHDAY: [MessageHandler(text_only, add_birthday)],
            STATE_ADD_PHONE: [MessageHandler(text_only, add_phone)],
            STATE_ADD_CONFIRM: [MessageHandler(text_only, add_confirm)],
        },
        fallbacks=[CommandHandler("cancel", cancel_command)],
        name="add_contact_conversation",
        persistent=False,
    )

    outreach_conversation = ConversationHandler(
        entry_points=[CommandHandler("outreach", outreach_start)],
        states={
            STATE_OUTREACH_TONE: [MessageHandler(text_only, outreach_tone)],
            STATE_OUTREACH_REVIEW: [MessageHandler(text_only, outreach_review)],
        },
        fallbacks=[CommandHandler("cancel", cancel_command)],
        name="outreach_conversation",
        persistent=False,
    )

    return [
        CommandHandler(["help", "start"], help_command),
        CommandHandler("list", list_command),
        CommandHandler("today", today_command),
        CommandHandler("month", month_command),
        CommandHandler("missing", missing_command),
        CommandHandler("stats", stats_command),
        CommandHandler("refresh", refresh_command),
        CommandHandler("cancel", cancel_command),
        add_conversation,
        outreach_conversation,
    ]
