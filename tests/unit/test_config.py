from __future__ import annotations

import json
from pathlib import Path

from amdoc.config import AppConfig, ConfigManager, get_config, save_config


def test_defaults_without_file(tmp_path: Path) -> None:
    config = ConfigManager(tmp_path / "config.json").load()
    assert config == AppConfig()
    assert config.card_path == "/sys/class/drm/card0/device"
    assert config.commit_after_write is True


def test_save_and_load(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "config.json"
    manager = ConfigManager(path)
    assert manager.save(AppConfig(card_path="/sys/class/drm/card1/device", helper_timeout_seconds=60))

    loaded = ConfigManager(path).load()
    assert loaded.card_path == "/sys/class/drm/card1/device"
    assert loaded.helper_timeout_seconds == 60
    assert json.loads(path.read_text())["normalize_vddc_curve"] is True


def test_partial_file_uses_defaults(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"log_level": "DEBUG"}))

    config = ConfigManager(path).load()
    assert config.log_level == "DEBUG"
    assert config.normalize_vddc_curve is True


def test_invalid_file_uses_defaults(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{not json")
    assert ConfigManager(path).load() == AppConfig()


def test_reset_to_defaults(tmp_path: Path) -> None:
    manager = ConfigManager(tmp_path / "config.json")
    manager.save(AppConfig(commit_after_write=False))
    assert manager.reset_to_defaults() == AppConfig()
    assert ConfigManager(tmp_path / "config.json").load() == AppConfig()


def test_global_config(isolated_config) -> None:
    config = get_config()
    config.log_level = "WARNING"
    assert save_config()
    assert json.loads(isolated_config.config_file.read_text())["log_level"] == "WARNING"


def test_unknown_keys_are_ignored(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"card_path": "/tmp/card", "theme": "dark"}))
    assert ConfigManager(path).load().card_path == "/tmp/card"


def test_non_object_file_uses_defaults(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("[1, 2]")
    assert ConfigManager(path).load() == AppConfig()
