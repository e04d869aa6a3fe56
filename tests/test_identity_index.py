from pathlib import Path

import pytest

from birthday_pal.config_store import load_config
from birthday_pal.contact_source import ContactSourceError, TomlContactSource
from birthday_pal.identity_index import resolve_ids
from birthday_pal.models import ContactEntry


def test_resolve_ids_reuses_existing_and_extends() -> None:
    entries = [
        ContactEntry(name="Alice", phone="555-0100", month=3, day=14, year=1990),
        ContactEntry(name="Alice", phone="555-0100", month=3, day=14, year=1990),
        ContactEntry(name="Bob", phone=None, month=None, day=None, year=None),
    ]
    existing = {
        "alice|5550100|03|14|1990": ["id-a-1"],
        "bob|none|none": ["id-b-1"],
    }

    resolution = resolve_ids(entries, existing)

    assert resolution.contact_ids[0] == "id-a-1"
    assert resolution.contact_ids[1] != "id-a-1"
    assert resolution.contact_ids[2] == "id-b-1"
    assert len(resolution.buckets["alice|5550100|03|14|1990"]) == 2


def test_explicit_ids_win_over_index() -> None:
    entries = [ContactEntry(name="Alice", phone=None, month=1, day=1, year=None, contact_id="fixed")]

    resolution = resolve_ids(entries, {})

    assert resolution.contact_ids == ["fixed"]
    assert resolution.buckets == {}


def test_source_ids_are_stable_across_reloads(tmp_path: Path) -> None:
    config_path = tmp_path / "contacts.toml"
    config_path.write_text(
        """
timezone = "UTC"

[[contacts]]
name = "Alice"
phone = "555-0100"
month = 12
day = 1

[[contacts]]
name = "Bob"
""".strip()
        + "\n",
        encoding="utf-8",
    )
    source = TomlContactSource(config_path=config_path, person_index_path=tmp_path / "index.json")

    first = source.fetch_all()
    second = source.fetch_all()

    assert [contact.id for contact in first] == [contact.id for contact in second]
    assert first[0].birth_date.month == 12
    assert first[1].birth_date is None


def test_source_wraps_missing_file(tmp_path: Path) -> None:
    source = TomlContactSource(config_path=tmp_path / "nope.toml", person_index_path=tmp_path / "index.json")

    with pytest.raises(ContactSourceError):
        source.fetch_all()


def test_source_keeps_id_when_phone_and_name_are_edited(tmp_path: Path) -> None:
    config_path = tmp_path / "contacts.toml"
    config_path.write_text(
        """
timezone = "UTC"

[[contacts]]
name = "Alice"
phone = "555-0100"
month = 3
day = 14
""".strip()
        + "\n",
        encoding="utf-8",
    )
    source = TomlContactSource(config_path=config_path, person_index_path=tmp_path / "index.json")

    original_id = source.fetch_all()[0].id
    assert load_config(config_path).contacts[0].contact_id == original_id

    config_path.write_text(config_path.read_text(encoding="utf-8").replace("555-0100", "555-0199"), encoding="utf-8")
    after_phone_edit = source.fetch_all()[0]

    config_path.write_text(config_path.read_text(encoding="utf-8").replace('"Alice"', '"Alice Smith"'), encoding="utf-8")
    after_rename = source.fetch_all()[0]

    assert after_phone_edit.id == original_id
    assert after_phone_edit.phone_number == "555-0199"
    assert after_rename.id == original_id
    assert after_rename.name == "Alice Smith"
