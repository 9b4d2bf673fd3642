"""
Tests for the key-value store implementations.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from notegraph.core.storage import InMemoryStore, JsonFileStore


class TestInMemoryStore:
    def test_absent_key(self) -> None:
        assert InMemoryStore().load("notes") is None

    def test_values_are_copied(self) -> None:
        store = InMemoryStore()
        data = [{"id": "n1"}]
        store.save("notes", data)

        data[0]["id"] = "changed"
        loaded = store.load("notes")
        loaded.append({"id": "n2"})

        assert store.load("notes") == [{"id": "n1"}]

    def test_initial_data(self) -> None:
        store = InMemoryStore({"tasks": []})
        assert store.keys() == ["tasks"]


class TestJsonFileStore:
    def test_save_and_load(self, tmp_path: Path) -> None:
        store = JsonFileStore(tmp_path)

        store.save("entities", [{"id": "acme", "name": "Acme"}])

        assert store.load("entities") == [{"id": "acme", "name": "Acme"}]
        assert (tmp_path / "entities.json").exists()

    def test_creates_base_dir(self, tmp_path: Path) -> None:
        JsonFileStore(tmp_path / "nested" / "data")
        assert (tmp_path / "nested" / "data").is_dir()

    def test_absent_key(self, tmp_path: Path) -> None:
        assert JsonFileStore(tmp_path).load("notes") is None

    def test_corrupt_file_treated_as_absent(self, tmp_path: Path) -> None:
        (tmp_path / "notes.json").write_text("{not json", encoding="utf-8")
        assert JsonFileStore(tmp_path).load("notes") is None

    def test_no_temp_files_left_behind(self, tmp_path: Path) -> None:
        store = JsonFileStore(tmp_path)
        store.save("notes", [])
        store.save("notes", [{"id": "n1"}])

        assert sorted(p.name for p in tmp_path.iterdir()) == ["notes.json"]

    @pytest.mark.parametrize("key", ["../escape", "a/b", "", "notes.json"])
    def test_invalid_keys_rejected(self, tmp_path: Path, key: str) -> None:
        store = JsonFileStore(tmp_path)
        with pytest.raises(ValueError):
            store.save(key, [])
