"""Persisted configuration schema and the derived connection parameters."""

from __future__ import annotations

import os
import socket
from datetime import datetime
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _local_hostname() -> str:
    try:
        return socket.gethostname()
    except OSError:
        return ""


def expand_path(path: str) -> Path:
    return Path(os.path.expanduser(path))


class ServerDefinition(BaseModel):
    """One remote target, keyed by ``name`` in the registry."""

    name: str
    host: str
    user: str
    port: int = Field(default=22, ge=1, le=65535)
    ssh_key: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    enabled: bool = True
    last_seen: Optional[datetime] = None

    @field_validator("host", "user")
    @classmethod
    def _not_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

    @property
    def endpoint(self) -> str:
        return f"{self.user}@{self.host}:{self.port}"


class ClientConfig(BaseModel):
    default_server: Optional[str] = None
    deployment_timeout: int = 300
    concurrent_operations: int = 4
    auto_backup: bool = True


class ServerConfig(BaseModel):
    name: str = Field(default_factory=_local_hostname)
    monitoring_interval: int = 30
    temp_threshold: float = 80.0
    battery_warning_level: int = 20
    auto_restart_services: bool = True
    log_level: str = "info"
    services: list[str] = Field(
        default_factory=lambda: ["caffeinate", "plan10-monitor"],
    )


class SshConfig(BaseModel):
    connect_timeout: int = 30
    command_timeout: int = 60
    key_path: Optional[str] = None
    known_hosts_file: Optional[str] = None
    compression: bool = True
    keep_alive: bool = True


class Plan10Config(BaseModel):
    """Everything stored in ``config.toml``."""

    client: ClientConfig = Field(default_factory=ClientConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    servers: dict[str, ServerDefinition] = Field(default_factory=dict)
    ssh: SshConfig = Field(default_factory=SshConfig)

    def ssh_key_path(self) -> Path:
        if self.ssh.key_path:
            return expand_path(self.ssh.key_path)
        return Path.home() / ".ssh" / "id_rsa"

    def known_hosts_path(self) -> Path:
        if self.ssh.known_hosts_file:
            return expand_path(self.ssh.known_hosts_file)
        return Path.home() / ".ssh" / "known_hosts"


class ConnectionParameters(BaseModel):
    """Resolved at call time from a target plus the global defaults; never saved."""

    model_config = ConfigDict(frozen=True)

    user: str
    host: str
    port: int
    key_path: Optional[Path] = None
    connect_timeout: float = 30.0
    command_timeout: float = 60.0
    known_hosts_file: Optional[Path] = None
    compression: bool = True
    keep_alive: bool = True

    @property
    def endpoint(self) -> str:
        return f"{self.user}@{self.host}:{self.port}"

    @classmethod
    def resolve(
        cls,
        server: ServerDefinition,
        config: Plan10Config,
    ) -> ConnectionParameters:
        if server.ssh_key:
            key_path = expand_path(server.ssh_key)
        else:
            key_path = config.ssh_key_path()
        return cls(
            user=server.user,
            host=server.host,
            port=server.port,
            key_path=key_path,
            connect_timeout=config.ssh.connect_timeout,
            command_timeout=config.ssh.command_timeout,
            known_hosts_file=config.known_hosts_path(),
            compression=config.ssh.compression,
            keep_alive=config.ssh.keep_alive,
        )
