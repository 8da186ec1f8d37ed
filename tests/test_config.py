"""Tests for the JSON config file helpers."""
import json

import pytest

from ghostmessenger import config
from ghostmessenger.schemas import CookieRecord


@pytest.fixture
def config_path(tmp_path, monkeypatch):
    path = tmp_path / "ghostmessenger" / "config.json"
    monkeypatch.setattr(config, "CONFIG_PATH", path)
    return path


class TestLoadSave:
    def test_missing_file_gives_defaults(self, config_path):
        assert config.load_config() == config.DEFAULT_CONFIG

    def test_defaults_are_not_shared(self, config_path):
        cfg = config.load_config()
        cfg["aliases"]["x"] = "1"
        assert config.DEFAULT_CONFIG["aliases"] == {}

    def test_corrupt_file_gives_defaults(self, config_path):
        config_path.parent.mkdir(parents=True)
        config_path.write_text("{not json", encoding="utf-8")
        assert config.load_config() == config.DEFAULT_CONFIG

    def test_round_trip_fills_new_keys(self, config_path):
        config_path.parent.mkdir(parents=True)
        config_path.write_text(json.dumps({"username": "ada@example.com"}), encoding="utf-8")
        cfg = config.load_config()
        assert cfg["username"] == "ada@example.com"
        assert cfg["script_budget"] == 1.0

        cfg["script_budget"] = 2.5
        config.save_config(cfg)
        assert config.load_config()["script_budget"] == 2.5


class TestCookies:
    def test_round_trip(self):
        cfg = {}
        cookies = [CookieRecord(name="c_user", value="1"), CookieRecord(name="xs", value="a", http_only=True)]
        config.set_cookies(cfg, cookies)
        assert config.get_cookies(cfg) == cookies

    def test_malformed_entries_are_dropped(self):
        cfg = {"cookies": [{"name": "c_user", "value": "1"}, {"value": "no name"}, "junk"]}
        assert [c.name for c in config.get_cookies(cfg)] == ["c_user"]

    def test_none_cookies(self):
        assert config.get_cookies({"cookies": None}) == []


class TestPaths:
    def test_session_file_defaults_beside_config(self, config_path):
        assert config.session_path({}) == config_path.parent / "session.json"

    def test_session_file_override(self, tmp_path):
        target = tmp_path / "elsewhere.bin"
        assert config.session_path({"session_file": str(target)}) == target

    def test_resolve_thread(self, config_path):
        cfg = {"aliases": {"charles": "200002"}}
        assert config.resolve_thread("charles", cfg) == "200002"
        assert config.resolve_thread("900009", cfg) == "900009"
