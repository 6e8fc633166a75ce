"""Tests for specsync.settings_store."""

import json
import logging

from specsync.settings_store import JsonSettingsStore, MemorySettingsStore


class TestMemorySettingsStore:
    def test_get_default(self):
        assert MemorySettingsStore().get("authToken") == ""
        assert MemorySettingsStore().get("authToken", "x") == "x"

    def test_update_and_as_dict(self):
        store = MemorySettingsStore({"userId": "u-1"})
        store.update({"authToken": "tok"})
        assert store.as_dict() == {"userId": "u-1", "authToken": "tok"}

    def test_as_dict_is_a_copy(self):
        store = MemorySettingsStore({"authToken": "tok"})
        store.as_dict()["authToken"] = "changed"
        assert store.get("authToken") == "tok"


class TestJsonSettingsStore:
    def test_missing_file_is_empty(self, tmp_path):
        store = JsonSettingsStore(tmp_path / "settings.json")
        assert store.as_dict() == {}
        assert not (tmp_path / "settings.json").exists()

    def test_update_persists(self, tmp_path):
        path = tmp_path / "nested" / "settings.json"
        JsonSettingsStore(path).update({"authToken": "tok", "userName": "Ada"})

        assert json.loads(path.read_text()) == {
            "authToken": "tok",
            "userName": "Ada",
        }
        assert JsonSettingsStore(path).get("userName") == "Ada"

    def test_no_temp_files_left_behind(self, tmp_path):
        path = tmp_path / "settings.json"
        store = JsonSettingsStore(path)
        store.update({"authToken": "a"})
        store.update({"authToken": "b"})
        assert [p.name for p in tmp_path.iterdir()] == ["settings.json"]

    def test_corrupt_file_ignored(self, tmp_path, caplog):
        path = tmp_path / "settings.json"
        path.write_text("{not json")
        with caplog.at_level(logging.WARNING, logger="specsync.settings_store"):
            store = JsonSettingsStore(path)
        assert store.as_dict() == {}
        assert "Ignoring unreadable settings file" in caplog.text

    def test_non_object_root_ignored(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("[1, 2]")
        assert JsonSettingsStore(path).as_dict() == {}

    def test_non_string_value_returns_default(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"authToken": 42}))
        assert JsonSettingsStore(path).get("authToken") == ""
