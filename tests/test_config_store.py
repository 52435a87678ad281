from __future__ import annotations

from pathlib import Path

import pytest

from tgmr.config import ConfigError
from tgmr.config_store import flatten_config, read_raw_toml


def test_read_raw_toml(tmp_path: Path) -> None:
    config_path = tmp_path / "tgmr.toml"
    config_path.write_text(
        'bot_token = "t"\n[cookies]\nyoutube = "/c/yt.txt"\n', encoding="utf-8"
    )

    assert read_raw_toml(config_path) == {
        "bot_token": "t",
        "cookies": {"youtube": "/c/yt.txt"},
    }


def test_read_raw_toml_missing_file(tmp_path: Path) -> None:
    config_path = tmp_path / "missing.toml"
    with pytest.raises(ConfigError, match="Missing config file"):
        read_raw_toml(config_path)


def test_read_raw_toml_invalid_toml(tmp_path: Path) -> None:
    config_path = tmp_path / "tgmr.toml"
    config_path.write_text("nope = [", encoding="utf-8")
    with pytest.raises(ConfigError, match="Malformed TOML"):
        read_raw_toml(config_path)


def test_read_raw_toml_non_file(tmp_path: Path) -> None:
    config_path = tmp_path / "config_dir"
    config_path.mkdir()
    with pytest.raises(ConfigError, match="exists but is not a file"):
        read_raw_toml(config_path)


def test_flatten_config_lowercases_keys_and_cookie_sites() -> None:
    raw = {
        "BOT_TOKEN": "t",
        "Max_File_Size": 10,
        "cookies": {"YouTube": "/c/yt.txt"},
    }

    assert flatten_config(raw) == {
        "bot_token": "t",
        "max_file_size": 10,
        "cookies_files": {"youtube": "/c/yt.txt"},
    }
