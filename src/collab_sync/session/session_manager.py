"""Per-document rooms of websocket connections.

Every connection owns a bounded outgoing queue drained by `writer_loop`, so a
broadcast never waits on a slow socket. Messages are enqueued in the order they
are sent, which is what keeps a client's view consistent: the hello ack and
catch-up for a joiner are enqueued before any `ServerSteps` broadcast that
follows them, and broadcasts for one document are enqueued in version order.

A connection whose queue overflows is closed with 1013. Its client is expected
to reconnect with its last seen version and catch up from there.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Dict, Set

from fastapi import WebSocket
from pydantic import BaseModel

from collab_sync.config import get_settings
from collab_sync.core.protocol.messages import ServerHelloAck, ServerResync, ServerSteps, dump

logger = logging.getLogger(__name__)


def _new_send_queue() -> asyncio.Queue[str]:
    return asyncio.Queue(maxsize=get_settings().send_queue_size)


def encode(message: BaseModel) -> str:
    return json.dumps(dump(message), separators=(",", ":"))


@dataclass(eq=False)
class Connection:
    websocket: WebSocket
    client_id: int
    send_queue: asyncio.Queue[str] = field(default_factory=_new_send_queue)
    closed: bool = False
    # Version the client reaches once everything enqueued so far is applied.
    sent_version: int = 0

    async def send(self, message: BaseModel) -> None:
        await self.send_raw(encode(message))
        if isinstance(message, ServerSteps):
            self.sent_version = message.version + len(message.steps)
        elif isinstance(message, (ServerHelloAck, ServerResync)):
            self.sent_version = message.version

    async def send_raw(self, msg: str) -> None:
        if self.closed:
            return
        try:
            self.send_queue.put_nowait(msg)
        except asyncio.QueueFull:
            logger.warning(
                "send queue full, closing",
                extra={"client_id": self.client_id, "version": self.sent_version},
            )
            self.close()
            try:
                await self.websocket.close(code=1013)
            except Exception:
                logger.debug("close after queue overflow failed", extra={"client_id": self.client_id})

    async def writer_loop(self) -> None:
        while not self.closed:
            msg = await self.send_queue.get()
            try:
                await self.websocket.send_text(msg)
            except Exception:
                logger.info("ws send failed, closing", extra={"client_id": self.client_id})
                self.close()

    def close(self) -> None:
        self.closed = True


class SessionManager:
    """Tracks which connections are editing which document."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._doc_rooms: Dict[str, Set[Connection]] = {}
        self._conn_to_doc: Dict[Connection, str] = {}

    async def join(self, doc_id: str, connection: Connection) -> None:
        async with self._lock:
            room = self._doc_rooms.setdefault(doc_id, set())
            room.add(connection)
            self._conn_to_doc[connection] = doc_id

    async def leave_any(self, connection: Connection) -> None:
        async with self._lock:
            doc_id = self._conn_to_doc.pop(connection, None)
            if doc_id is None:
                return
            room = self._doc_rooms.get(doc_id)
            if room is not None:
                room.discard(connection)
                if not room:
                    self._doc_rooms.pop(doc_id, None)

    async def broadcast_steps(self, message: ServerSteps) -> None:
        """Enqueue one authoritative batch for every connection on its document.

        The batch is encoded once. A connection whose enqueued history does not
        end at the batch's base version is skipped and logged.
        """
        async with self._lock:
            conns = list(self._doc_rooms.get(message.doc_id, set()))

        raw = encode(message)
        for c in conns:
            if c.sent_version != message.version:
                logger.warning(
                    "broadcast skipped: connection out of step",
                    extra={"doc_id": message.doc_id, "client_id": c.client_id, "version": c.sent_version},
                )
                continue
            await c.send_raw(raw)
            c.sent_version = message.version + len(message.steps)
