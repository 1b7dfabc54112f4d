"""Message channels between the two devices.

A channel is best-effort: ``send`` reports whether the peer accepted the
message and never raises for transport failures. The context channel keeps
only the latest library broadcast.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Protocol

import httpx

from readsync.config import PEER_TIMEOUT
from readsync.schemas.transfer import Envelope, LibraryBroadcast

if TYPE_CHECKING:
    from readsync.sync.service import SyncService

logger = logging.getLogger(__name__)


class MessageChannel(Protocol):
    @property
    def reachable(self) -> bool: ...

    async def send(self, message: Envelope) -> bool: ...

    async def update_context(self, broadcast: LibraryBroadcast) -> None: ...

    async def close(self) -> None: ...


class HttpChannel:
    """Posts envelopes to the peer's /api/sync inbox."""

    def __init__(self, base_url: str, timeout: float = PEER_TIMEOUT, http: httpx.AsyncClient | None = None) -> None:
        self.base_url = base_url
        self.http = http or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._pending_context: LibraryBroadcast | None = None
        self._context_task: asyncio.Task | None = None

    @property
    def reachable(self) -> bool:
        return bool(self.base_url)

    async def send(self, message: Envelope) -> bool:
        return await self._post("/api/sync/messages", message.to_wire(), message.kind)

    async def update_context(self, broadcast: LibraryBroadcast) -> None:
        # Latest wins: a newer broadcast replaces one that has not gone out yet
        self._pending_context = broadcast
        if self._context_task is None or self._context_task.done():
            self._context_task = asyncio.create_task(self._drain_context())

    async def flush(self) -> None:
        if self._context_task is not None:
            await self._context_task

    async def close(self) -> None:
        if self._context_task is not None and not self._context_task.done():
            self._context_task.cancel()
        await self.http.aclose()

    async def _drain_context(self) -> None:
        while self._pending_context is not None:
            broadcast, self._pending_context = self._pending_context, None
            await self._post("/api/sync/context", broadcast.to_wire(), "library")

    async def _post(self, path: str, payload: dict, kind: str) -> bool:
        try:
            resp = await self.http.post(path, json=payload)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning("Peer rejected %s message: HTTP %d", kind, e.response.status_code)
            return False
        except httpx.HTTPError as e:
            logger.warning("Peer unreachable, dropped %s message: %s", kind, e)
            return False
        return True


class LoopbackChannel:
    """In-process channel to another SyncService.

    Without a peer it behaves like a device whose companion is never in range.
    Messages round-trip through their JSON form.
    """

    def __init__(self, peer: SyncService | None = None, reachable: bool = True) -> None:
        self.peer = peer
        self._reachable = reachable
        self._held_context: LibraryBroadcast | None = None
        self.sent: list[Envelope] = []

    @property
    def reachable(self) -> bool:
        return self.peer is not None and self._reachable

    async def set_reachable(self, reachable: bool) -> None:
        """Toggle reachability; a held context is delivered on reconnect."""
        self._reachable = reachable
        if self.reachable and self._held_context is not None:
            broadcast, self._held_context = self._held_context, None
            await self._deliver_context(broadcast)

    async def send(self, message: Envelope) -> bool:
        if not self.reachable:
            logger.info("Peer unreachable, dropped %s message", message.kind)
            return False
        self.sent.append(message)
        await self.peer.receive_raw(message.to_wire())
        return True

    async def update_context(self, broadcast: LibraryBroadcast) -> None:
        if not self.reachable:
            self._held_context = broadcast
            return
        await self._deliver_context(broadcast)

    async def close(self) -> None:
        self._held_context = None

    async def _deliver_context(self, broadcast: LibraryBroadcast) -> None:
        await self.peer.receive_context_raw(broadcast.to_wire())


def connect(first: SyncService, second: SyncService) -> tuple[LoopbackChannel, LoopbackChannel]:
    """Join two services with a pair of loopback channels."""
    first.channel = LoopbackChannel(second)
    second.channel = LoopbackChannel(first)
    return first.channel, second.channel


