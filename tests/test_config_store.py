from pathlib import Path

import pytest

from birthday_pal.config_store import (
    append_contact,
    ensure_default_config,
    load_config,
    parse_time_string,
    save_config_atomic,
)
from birthday_pal.models import AppConfig, ContactEntry


def test_roundtrip_config(tmp_path: Path) -> None:
    path = tmp_path / "contacts.toml"
    config = AppConfig(
        timezone="America/Los_Angeles",
        reminder_time="9:05",
        leap_day_rule="mar1",
        contacts=[
            ContactEntry(name="Alice", phone="+1 555 0100", month=3, day=14, year=1990, contact_id="alice-1"),
            ContactEntry(name='Bob "B" Jones', phone=None, month=None, day=None, year=None),
        ],
    )

    save_config_atomic(path, config)
    loaded = load_config(path)

    assert loaded.reminder_time == "09:05"
    assert loaded.leap_day_rule == "mar1"
    assert loaded.contacts[0] == ContactEntry(
        name="Alice", phone="+1 555 0100", month=3, day=14, year=1990, contact_id="alice-1"
    )
    assert loaded.contacts[1].name == 'Bob "B" Jones'
    assert loaded.contacts[1].month is None


def test_month_without_day_rejected(tmp_path: Path) -> None:
    path = tmp_path / "contacts.toml"
    path.write_text(
        """
timezone = "UTC"
reminder_time = "09:00"
leap_day_rule = "feb28"

[[contacts]]
name = "Alice"
month = 3
""".strip()
        + "\n",
        encoding="utf-8",
    )

    with pytest.raises(ValueError):
        load_config(path)


def test_duplicate_ids_rejected(tmp_path: Path) -> None:
    path = tmp_path / "contacts.toml"
    path.write_text(
        """
timezone = "UTC"

[[contacts]]
id = "x"
name = "Alice"

[[contacts]]
id = "x"
name = "Bob"
""".strip()
        + "\n",
        encoding="utf-8",
    )

    with pytest.raises(ValueError):
        load_config(path)


def test_invalid_leap_day_rule_rejected(tmp_path: Path) -> None:
    path = tmp_path / "contacts.toml"
    path.write_text('timezone = "UTC"\nleap_day_rule = "closest"\n', encoding="utf-8")

    with pytest.raises(ValueError):
        load_config(path)


def test_ensure_default_then_append_contact_assigns_id(tmp_path: Path) -> None:
    path = tmp_path / "config" / "contacts.toml"
    ensure_default_config(path)

    updated = append_contact(path, ContactEntry(name="Cy", phone=None, month=2, day=29, year=None))
    loaded = load_config(path)

    assert updated.contacts[0].contact_id
    assert loaded.contacts[0].contact_id == updated.contacts[0].contact_id
    assert (loaded.contacts[0].month, loaded.contacts[0].day) == (2, 29)


@pytest.mark.parametrize("value", ["9", "24:00", "ab:cd", "10:60"])
def test_parse_time_string_rejects_bad_values(value: str) -> None:
    with pytest.raises(ValueError):
        parse_time_string(value)


def test_id_colliding_with_catch_up_suffix_rejected(tmp_path: Path) -> None:
    path = tmp_path / "contacts.toml"
    path.write_text(
        """
timezone = "UTC"

[[contacts]]
id = "a.now"
name = "Alice"
""".strip()
        + "\n",
        encoding="utf-8",
    )

    with pytest.raises(ValueError):
        load_config(path)
