from pathlib import Path

import pytest

from birthday_pal.settings import load_settings


def test_load_settings_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "token")
    monkeypatch.setenv("TELEGRAM_ALLOWED_USER_ID", "111")
    monkeypatch.setenv("TELEGRAM_ALLOWED_CHAT_ID", "222")
    for name in ("CONTACTS_CONFIG_PATH", "STATE_STORE_PATH", "OLLAMA_BASE_URL", "OLLAMA_MODEL", "OLLAMA_TIMEOUT_SECONDS"):
        monkeypatch.delenv(name, raising=False)

    settings = load_settings()

    assert settings.contacts_config_path == tmp_path / "config" / "contacts.toml"
    assert settings.state_store_path == tmp_path / "data" / "state.json"
    assert settings.ollama_base_url is None
    assert settings.ollama_model == "llama3.2"


def test_load_settings_requires_token(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)

    with pytest.raises(ValueError):
        load_settings()
