from pathlib import Path

from birthday_pal.key_value_store import JsonFileStore, MemoryStore


def test_json_file_store_persists_between_instances(tmp_path: Path) -> None:
    path = tmp_path / "data" / "state.json"
    store = JsonFileStore(path)

    store.set("counter", 3)
    store.set("names", ["Ana", "Zoë"])

    reopened = JsonFileStore(path)
    assert reopened.get("counter") == 3
    assert reopened.get("names") == ["Ana", "Zoë"]
    assert reopened.get("missing", "fallback") == "fallback"


def test_json_file_store_ignores_corrupt_file(tmp_path: Path) -> None:
    path = tmp_path / "state.json"
    path.write_text("{not json", encoding="utf-8")
    store = JsonFileStore(path)

    assert store.get("counter") is None

    store.set("counter", 1)
    assert JsonFileStore(path).get("counter") == 1


def test_json_file_store_leaves_no_temp_files(tmp_path: Path) -> None:
    store = JsonFileStore(tmp_path / "state.json")

    store.set("a", 1)
    store.set("b", 2)

    assert [child.name for child in tmp_path.iterdir()] == ["state.json"]


def test_memory_store_copies_initial_data() -> None:
    initial = {"a": 1}
    store = MemoryStore(initial)

    store.set("a", 2)

    assert initial == {"a": 1}
    assert store.get("a") == 2
