from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from birthday_pal.composer import DEFAULT_OLLAMA_MODEL, DEFAULT_TIMEOUT_SECONDS


@dataclass(frozen=True)
class Settings:
    telegram_bot_token: str
    telegram_allowed_user_id: int
    telegram_allowed_chat_id: int
    contacts_config_path: Path
    person_index_path: Path
    state_store_path: Path
    ollama_base_url: str | None = None
    ollama_model: str = DEFAULT_OLLAMA_MODEL
    ollama_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS


def _required_env(name: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        raise ValueError(f"Missing required environment variable: {name}")
    return value.strip()


def _optional_env(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def load_settings() -> Settings:
    root = Path.cwd()

    token = _required_env("TELEGRAM_BOT_TOKEN")
    allowed_user_id = int(_required_env("TELEGRAM_ALLOWED_USER_ID"))
    allowed_chat_id = int(_required_env("TELEGRAM_ALLOWED_CHAT_ID"))

    contacts_config_path = Path(
        os.getenv("CONTACTS_CONFIG_PATH", root / "config" / "contacts.toml")
    )
    person_index_path = Path(
        os.getenv("PERSON_INDEX_PATH", root / "data" / "person_index.json")
    )
    state_store_path = Path(
        os.getenv("STATE_STORE_PATH", root / "data" / "state.json")
    )

    timeout_raw = _optional_env("OLLAMA_TIMEOUT_SECONDS")
    try:
        timeout = float(timeout_raw) if timeout_raw is not None else DEFAULT_TIMEOUT_SECONDS
    except ValueError as exc:
        raise ValueError("OLLAMA_TIMEOUT_SECONDS must be a number") from exc

    return Settings(
        telegram_bot_token=token,
        telegram_allowed_user_id=allowed_user_id,
        telegram_allowed_chat_id=allowed_chat_id,
        contacts_config_path=contacts_config_path,
        person_index_path=person_index_path,
        state_store_path=state_store_path,
        ollama_base_url=_optional_env("OLLAMA_BASE_URL"),
        ollama_model=_optional_env("OLLAMA_MODEL") or DEFAULT_OLLAMA_MODEL,
        ollama_timeout_seconds=timeout,
    )
