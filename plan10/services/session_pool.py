"""Per-process cache of authenticated sessions keyed by ``user@host:port``.

``get_or_connect`` holds an ``asyncio.Lock`` for the whole lookup-or-connect
step, so two tasks asking for the same endpoint share one handshake. The
sessions it hands out are still exclusively owned per call: callers must not
run operations on the same session from several tasks at once.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from plan10.models.config import ConnectionParameters, Plan10Config, ServerDefinition
from plan10.services.ssh_session import RemoteSession
from plan10.utils.logging import get_logger

log = get_logger(__name__)

Connector = Callable[[ConnectionParameters], Awaitable[RemoteSession]]


def pool_key(server: ServerDefinition) -> str:
    return f"{server.user}@{server.host}:{server.port}"


class SessionPool:
    def __init__(
        self,
        config: Plan10Config,
        connector: Connector | None = None,
    ) -> None:
        self._cfg = config
        self._connect = connector or RemoteSession.connect
        self._sessions: dict[str, RemoteSession] = {}
        self._lock = asyncio.Lock()

    async def get_or_connect(self, server: ServerDefinition) -> RemoteSession:
        key = pool_key(server)
        async with self._lock:
            session = self._sessions.get(key)
            if session is not None:
                if session.is_connected:
                    log.debug("pool.hit", key=key)
                    return session
                log.info("pool.stale", key=key)
                self._sessions.pop(key)
                await session.close()

            params = ConnectionParameters.resolve(server, self._cfg)
            session = await self._connect(params)
            self._sessions[key] = session
            log.debug("pool.connected", key=key, size=len(self._sessions))
            return session

    async def evict(self, server: ServerDefinition) -> bool:
        key = pool_key(server)
        async with self._lock:
            session = self._sessions.pop(key, None)
        if session is None:
            return False
        await session.close()
        log.debug("pool.evicted", key=key)
        return True

    async def evict_all(self) -> None:
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            await session.close()
        if sessions:
            log.debug("pool.cleared", count=len(sessions))

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, server: object) -> bool:
        if not isinstance(server, ServerDefinition):
            return False
        return pool_key(server) in self._sessions

    async def __aenter__(self) -> SessionPool:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.evict_all()
