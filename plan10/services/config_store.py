"""Load and save ``config.toml`` and apply ``PLAN10_*`` environment overrides."""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any, Optional

import tomli_w
import typer
from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from plan10.errors import InvalidConfig
from plan10.models.config import Plan10Config
from plan10.services.registry import ServerRegistry, build_server
from plan10.utils.logging import get_logger

log = get_logger(__name__)

APP_NAME = "plan10"
CONFIG_FILENAME = "config.toml"
ENV_SERVER_NAME = "env"


class EnvOverrides(BaseSettings):
    """Process-start overrides read from ``PLAN10_*`` variables."""

    model_config = SettingsConfigDict(env_prefix="PLAN10_", extra="ignore")

    config: Optional[str] = None
    host: Optional[str] = None
    user: Optional[str] = None
    port: Optional[int] = None
    ssh_key: Optional[str] = None
    log_level: Optional[str] = None

    @field_validator("port", mode="before")
    @classmethod
    def _lenient_port(cls, value: Any) -> Any:
        # An unparsable PLAN10_PORT falls back to 22 rather than failing startup.
        if value in (None, ""):
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None


def default_config_path() -> Path:
    return Path(typer.get_app_dir(APP_NAME)) / CONFIG_FILENAME


def load(path: Path | None = None) -> Plan10Config:
    """Read the config at *path*, writing the defaults first if it is missing."""
    path = path or default_config_path()
    if not path.exists():
        log.info("config.created_default", path=str(path))
        config = Plan10Config()
        save(config, path)
        return config

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise InvalidConfig(f"Failed to read config file {path}: {exc}") from exc

    try:
        config = Plan10Config.model_validate(data)
    except ValidationError as exc:
        raise InvalidConfig(f"Failed to parse config file {path}: {exc}") from exc
    try:
        ServerRegistry(config).validate()
    except InvalidConfig as exc:
        raise InvalidConfig(f"Invalid config file {path}: {exc}") from exc
    log.debug("config.loaded", path=str(path), servers=len(config.servers))
    return config


def save(config: Plan10Config, path: Path | None = None) -> Path:
    path = path or default_config_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = config.model_dump(mode="python", exclude_none=True)
        path.write_text(tomli_w.dumps(payload), encoding="utf-8")
    except OSError as exc:
        raise InvalidConfig(f"Failed to write config file {path}: {exc}") from exc
    log.debug("config.saved", path=str(path))
    return path


def merge_env(config: Plan10Config, env: EnvOverrides | None = None) -> Plan10Config:
    """Fold environment overrides into *config* in place and return it.

    ``PLAN10_HOST`` together with ``PLAN10_USER`` injects an ad hoc target
    named ``env`` and makes it the default.
    """
    env = env or EnvOverrides()

    if env.host and env.user:
        config.servers[ENV_SERVER_NAME] = build_server(
            name=ENV_SERVER_NAME,
            host=env.host,
            user=env.user,
            port=env.port or 22,
            ssh_key=env.ssh_key,
            tags=[ENV_SERVER_NAME],
        )
        config.client.default_server = ENV_SERVER_NAME
        log.debug("config.env_target", host=env.host, user=env.user)

    if env.ssh_key:
        config.ssh.key_path = env.ssh_key
    if env.log_level:
        config.server.log_level = env.log_level
    return config


def resolve_config_path(explicit: str | None, env: EnvOverrides | None = None) -> Path:
    if explicit:
        return Path(explicit).expanduser()
    env = env or EnvOverrides()
    if env.config:
        return Path(env.config).expanduser()
    return default_config_path()
