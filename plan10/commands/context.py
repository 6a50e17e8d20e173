"""State shared by every command through ``typer.Context.obj``."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

import typer

from plan10.errors import (
    DeploymentAborted,
    InvalidConfig,
    NotFound,
    Plan10Error,
    RemoteConnectionError,
)
from plan10.models.config import Plan10Config, ServerDefinition
from plan10.services import config_store
from plan10.services.registry import ServerRegistry, build_server
from plan10.services.session_pool import SessionPool
from plan10.services.ssh_session import RemoteSession
from plan10.utils.logging import get_logger
from plan10.utils.output import print_error, print_info, print_success, print_verbose

log = get_logger(__name__)

TEMPORARY_TAG = "temporary"


@dataclass
class CliContext:
    config_path: Path
    # What is on disk; mutations are made here and saved.
    stored: Plan10Config
    # ``stored`` plus PLAN10_* overrides; used for lookups and connections.
    config: Plan10Config
    verbose: bool = False

    @classmethod
    def load(cls, config_path: Path, verbose: bool = False) -> CliContext:
        stored = config_store.load(config_path)
        merged = config_store.merge_env(stored.model_copy(deep=True))
        return cls(config_path=config_path, stored=stored, config=merged, verbose=verbose)

    @property
    def registry(self) -> ServerRegistry:
        return ServerRegistry(self.config)

    @property
    def stored_registry(self) -> ServerRegistry:
        return ServerRegistry(self.stored)

    def save(self) -> None:
        config_store.save(self.stored, self.config_path)
        self.config = config_store.merge_env(self.stored.model_copy(deep=True))

    def resolve_target(self, identifier: str | None) -> ServerDefinition:
        """Named/host lookup, or the default target when *identifier* is None."""
        if identifier is None:
            server = self.registry.default
            if server is None:
                raise InvalidConfig(
                    "No default server configured; pass --host or run 'plan10 client default NAME'",
                )
            return server
        server = self.registry.resolve(identifier)
        if server is None:
            raise NotFound(identifier)
        return server

    def target_for(
        self,
        host: str,
        user: str | None = None,
        port: int = 22,
    ) -> ServerDefinition:
        """A configured target, or an unsaved one built from the flags."""
        server = self.registry.resolve(host)
        if server is not None:
            return server
        if not user:
            raise InvalidConfig(
                f"User not specified and server '{host}' not found in config",
            )
        return build_server(
            name=host, host=host, user=user, port=port, tags=[TEMPORARY_TAG],
        )

    async def connect(self, pool: SessionPool, server: ServerDefinition) -> RemoteSession:
        """Pooled session that has passed the echo test; marks the target seen."""
        print_verbose(f"Connecting to {server.endpoint}", self.verbose)
        session = await pool.get_or_connect(server)
        print_info("Testing connection...")
        if not await session.test_connection():
            await pool.evict(server)
            raise RemoteConnectionError(server.endpoint, "connection test failed")
        print_success("Connection established")
        self.mark_seen(server)
        return session

    def mark_seen(self, server: ServerDefinition) -> None:
        """Record a successful contact for targets that live in the config file."""
        if server.name not in self.stored.servers:
            return
        self.stored_registry.update_last_seen(server.name)
        self.save()


def get_context(ctx: typer.Context) -> CliContext:
    obj = ctx.obj
    if not isinstance(obj, CliContext):
        raise RuntimeError("CLI context not initialised")
    return obj


@contextmanager
def reported_errors() -> Iterator[None]:
    """Print a named failure with its context and exit with status 1."""
    try:
        yield
    except DeploymentAborted as exc:
        report = exc.report
        print_error(
            f"{exc} ({report.cursor}/{report.total} processed, "
            f"{report.deployed} deployed, {report.skipped} skipped)",
        )
        raise typer.Exit(1) from exc
    except Plan10Error as exc:
        log.debug("cli.failed", error_type=type(exc).__name__)
        print_error(str(exc))
        raise typer.Exit(1) from exc
