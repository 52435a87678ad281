from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

from .config import ConfigError


def read_raw_toml(path: Path) -> dict[str, Any]:
    if path.exists() and not path.is_file():
        raise ConfigError(f"Config path {path} exists but is not a file.") from None
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(f"Missing config file {path}.") from None
    except OSError as exc:
        raise ConfigError(f"Failed to read config file {path}: {exc}") from exc
    try:
        return tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Malformed TOML in {path}: {exc}") from None


def flatten_config(raw: dict[str, Any]) -> dict[str, Any]:
    """Lower-case top-level keys and merge a `[cookies]` table into `cookies_files`."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        if key == "cookies" and isinstance(value, dict):
            flat["cookies_files"] = {
                str(site).lower(): str(path) for site, path in value.items()
            }
            continue
        flat[key.lower()] = value
    return flat
