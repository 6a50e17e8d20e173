"""Named remote targets and the default-target pointer.

The registry is a view over an explicit :class:`Plan10Config`; it mutates
``config.servers`` and ``config.client.default_server`` in place and leaves
persistence to :mod:`plan10.services.config_store`.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from plan10.errors import DuplicateName, InvalidConfig, NotFound
from plan10.models.config import Plan10Config, ServerDefinition
from plan10.utils.logging import get_logger

log = get_logger(__name__)

TEMP_THRESHOLD_RANGE = (0.0, 150.0)
MAX_BATTERY_WARNING_LEVEL = 100


def build_server(**fields: Any) -> ServerDefinition:
    """A :class:`ServerDefinition` from user input; bad fields raise :class:`InvalidConfig`."""
    try:
        return ServerDefinition(**fields)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise InvalidConfig(
            f"Invalid server definition '{fields.get('name')}': {problems}",
        ) from exc


class ServerRegistry:
    def __init__(self, config: Plan10Config) -> None:
        self._cfg = config

    @property
    def config(self) -> Plan10Config:
        return self._cfg

    # ── lookup ────────────────────────────────────────────────────────

    def get(self, name: str) -> ServerDefinition | None:
        return self._cfg.servers.get(name)

    def resolve(self, identifier: str) -> ServerDefinition | None:
        """Exact name match first, then the first definition whose host matches."""
        server = self._cfg.servers.get(identifier)
        if server is not None:
            return server
        for candidate in self._cfg.servers.values():
            if candidate.host == identifier:
                return candidate
        return None

    def list_servers(self) -> list[ServerDefinition]:
        return [self._cfg.servers[name] for name in sorted(self._cfg.servers)]

    @property
    def default(self) -> ServerDefinition | None:
        name = self._cfg.client.default_server
        if name is None:
            return None
        return self._cfg.servers.get(name)

    def __len__(self) -> int:
        return len(self._cfg.servers)

    def __contains__(self, name: object) -> bool:
        return name in self._cfg.servers

    # ── mutation ──────────────────────────────────────────────────────

    def add(self, server: ServerDefinition) -> None:
        if server.name in self._cfg.servers:
            raise DuplicateName(server.name)
        self._cfg.servers[server.name] = server
        log.info("registry.added", name=server.name, host=server.host)

    def remove(self, name: str) -> ServerDefinition:
        if name not in self._cfg.servers:
            raise NotFound(name)
        removed = self._cfg.servers.pop(name)
        if self._cfg.client.default_server == name:
            self._cfg.client.default_server = None
            log.info("registry.default_cleared", name=name)
        log.info("registry.removed", name=name)
        return removed

    def set_default(self, name: str | None) -> None:
        if name is not None and name not in self._cfg.servers:
            raise NotFound(name)
        self._cfg.client.default_server = name

    def update_last_seen(self, name: str, when: datetime | None = None) -> None:
        server = self._cfg.servers.get(name)
        if server is None:
            raise NotFound(name)
        server.last_seen = when or datetime.now(timezone.utc)

    # ── validation ────────────────────────────────────────────────────

    def validate(self) -> None:
        """Raise :class:`InvalidConfig` on the first inconsistency found."""
        for key, server in self._cfg.servers.items():
            if server.name != key:
                raise InvalidConfig(
                    f"Server name mismatch: key '{key}' vs name '{server.name}'",
                )
            if not server.host or not server.host.strip():
                raise InvalidConfig(f"Server '{key}' has empty host")
            if not server.user or not server.user.strip():
                raise InvalidConfig(f"Server '{key}' has empty user")
            if not 1 <= server.port <= 65535:
                raise InvalidConfig(f"Server '{key}' has invalid port: {server.port}")

        default = self._cfg.client.default_server
        if default is not None and default not in self._cfg.servers:
            raise InvalidConfig(f"Default server '{default}' not found in servers list")

        low, high = TEMP_THRESHOLD_RANGE
        threshold = self._cfg.server.temp_threshold
        if not low <= threshold <= high:
            raise InvalidConfig(f"Invalid temperature threshold: {threshold}")

        level = self._cfg.server.battery_warning_level
        if not 0 <= level <= MAX_BATTERY_WARNING_LEVEL:
            raise InvalidConfig(f"Invalid battery warning level: {level}")
