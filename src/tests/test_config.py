from __future__ import annotations

import json

from newsspeak import config


def test_load_config_writes_defaults_when_missing(tmp_path):
    path = tmp_path / "newsspeak" / "config.json"
    loaded = config.load_config(str(path))

    assert path.exists()
    assert loaded["country"] == "us"
    assert loaded["language"] == "en"
    assert loaded["narration"]["preferred_voices"][0] == "Samantha"


def test_load_config_merges_user_values_over_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"country": "gb", "narration": {"rate": 1.1}}))

    loaded = config.load_config(str(path))

    assert loaded["country"] == "gb"
    assert loaded["narration"]["rate"] == 1.1
    assert loaded["narration"]["volume"] == 0.8


def test_load_config_survives_corrupt_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{broken")
    assert config.load_config(str(path))["relay_url"] == config.RELAY_URL


def test_save_config_round_trips(tmp_path):
    path = tmp_path / "config.json"
    config.save_config({"theme": "nord"}, str(path))
    assert config.load_config(str(path))["theme"] == "nord"


def test_api_key_prefers_environment(monkeypatch):
    monkeypatch.setenv("NEWS_API_KEY", "from-env")
    assert config.resolve_api_key({"api_key": "from-file"}) == "from-env"

    monkeypatch.delenv("NEWS_API_KEY")
    assert config.resolve_api_key({"api_key": "from-file"}) == "from-file"
    assert config.resolve_api_key({}) == ""
