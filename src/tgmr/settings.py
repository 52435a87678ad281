from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Any

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    NoDecode,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from .config import ConfigError
from .config_store import flatten_config, read_raw_toml

CONFIG_PATH_ENV = "TGMR_CONFIG"
COOKIES_ENV_PREFIX = "COOKIES_FILE_"
DEFAULT_SUPPORTED_DOMAINS = ("youtube.com", "youtu.be")


class RelaySettings(BaseSettings):
    model_config = SettingsConfigDict(extra="ignore", frozen=True)

    bot_token: str
    max_file_size: int = Field(default=50_000_000, gt=0)
    download_timeout: int = Field(default=300, gt=0)
    rate_limit: int = Field(default=10, gt=0)
    cooldown: int = Field(default=60, ge=0)
    tmp_dir: Path = Path("./tmp")
    supported_domains: Annotated[tuple[str, ...], NoDecode] = DEFAULT_SUPPORTED_DOMAINS
    cookies_file: Path | None = None
    cookies_files: dict[str, Path] = Field(default_factory=dict)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # environment wins over values seeded from the TOML file
        return env_settings, init_settings

    @field_validator("bot_token")
    @classmethod
    def _check_token(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("expected a non-empty string")
        return value

    @field_validator("supported_domains", mode="before")
    @classmethod
    def _split_domains(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.split(",")
        if isinstance(value, (list, tuple)):
            domains = [str(item).strip().lower() for item in value]
            return tuple(domain for domain in domains if domain)
        return value

    @field_validator("cookies_files", mode="before")
    @classmethod
    def _normalize_cookie_keys(cls, value: Any) -> Any:
        if isinstance(value, Mapping):
            return {str(key).strip().lower(): path for key, path in value.items()}
        return value


def collect_cookie_files(environ: Mapping[str, str]) -> dict[str, str]:
    files: dict[str, str] = {}
    for key, value in environ.items():
        if not key.upper().startswith(COOKIES_ENV_PREFIX) or not value.strip():
            continue
        site = key[len(COOKIES_ENV_PREFIX) :].strip().lower()
        if site:
            files[site] = value.strip()
    return files


def _format_validation_error(exc: ValidationError) -> str:
    lines: list[str] = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"]) or "settings"
        if error["type"] == "missing":
            lines.append(f"Missing `{field.upper()}` environment variable.")
        else:
            lines.append(f"Invalid `{field.upper()}`: {error['msg']}.")
    return "\n".join(lines)


def load_settings(config_path: Path | None = None) -> RelaySettings:
    data: dict[str, Any] = {}
    if config_path is None:
        raw_path = os.environ.get(CONFIG_PATH_ENV)
        if raw_path:
            config_path = Path(raw_path).expanduser()
    if config_path is not None:
        data.update(flatten_config(read_raw_toml(config_path)))

    cookies = dict(data.get("cookies_files") or {})
    cookies.update(collect_cookie_files(os.environ))
    if cookies:
        data["cookies_files"] = cookies

    try:
        return RelaySettings(**data)
    except ValidationError as exc:
        raise ConfigError(_format_validation_error(exc)) from None
