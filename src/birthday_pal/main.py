from __future__ import annotations

import logging
from datetime import time
from pathlib import Path
from zoneinfo import ZoneInfo

from telegram.ext import Application, CallbackContext

from birthday_pal.bot_handlers import HandlerDependencies, build_handlers
from birthday_pal.composer import build_composer
from birthday_pal.config_store import ensure_default_config, load_config
from birthday_pal.contact_source import ContactSourceError, TomlContactSource
from birthday_pal.key_value_store import JsonFileStore
from birthday_pal.message_ledger import MessageLedger
from birthday_pal.reminder_service import ReminderService
from birthday_pal.scheduler import JobQueueScheduler
from birthday_pal.settings import load_settings
from birthday_pal.transport import TelegramRelayTransport

LOGGER = logging.getLogger(__name__)

DAILY_REFRESH_TIME = (0, 5)


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _refresh_reminders(service: ReminderService) -> None:
    try:
        service.refresh()
    except ContactSourceError as exc:
        LOGGER.error("Reminder refresh skipped: %s", exc)


async def scheduled_refresh_callback(context: CallbackContext) -> None:
    _refresh_reminders(context.application.bot_data["reminder_service"])


async def startup_refresh(application: Application) -> None:
    _refresh_reminders(application.bot_data["reminder_service"])


def main() -> None:
    configure_logging()

    settings = load_settings()
    _ensure_parent(settings.contacts_config_path)
    _ensure_parent(settings.person_index_path)
    _ensure_parent(settings.state_store_path)

    ensure_default_config(settings.contacts_config_path)
    config = load_config(settings.contacts_config_path)
    tz = ZoneInfo(config.timezone)

    application = Application.builder().token(settings.telegram_bot_token).build()

    store = JsonFileStore(settings.state_store_path)
    ledger = MessageLedger(store)
    source = TomlContactSource(
        config_path=settings.contacts_config_path,
        person_index_path=settings.person_index_path,
    )
    scheduler = JobQueueScheduler(
        job_queue=application.job_queue,
        chat_id=settings.telegram_allowed_chat_id,
        timezone=config.timezone,
        leap_day_rule=config.leap_day_rule,
    )
    reminder_service = ReminderService(source=source, scheduler=scheduler, ledger=ledger, store=store)
    ledger.subscribe(reminder_service.update_summary)

    composer = build_composer(
        settings.ollama_base_url,
        model=settings.ollama_model,
        timeout_seconds=settings.ollama_timeout_seconds,
    )
    transport = TelegramRelayTransport(bot=application.bot, chat_id=settings.telegram_allowed_chat_id)

    application.bot_data["settings"] = settings
    application.bot_data["reminder_service"] = reminder_service
    application.bot_data["handler_deps"] = HandlerDependencies(
        settings=settings,
        source=source,
        service=reminder_service,
        composer=composer,
        transport=transport,
        ledger=ledger,
    )

    for handler in build_handlers(settings):
        application.add_handler(handler)

    hour, minute = DAILY_REFRESH_TIME
    application.job_queue.run_daily(
        scheduled_refresh_callback,
        time=time(hour=hour, minute=minute, tzinfo=tz),
        name="daily-reminder-refresh",
    )

    application.post_init = startup_refresh
    application.run_polling()


if __name__ == "__main__":
    main()
