import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from collab_sync.config import get_settings
from collab_sync.core.protocol.messages import (
    ClientHello,
    ClientSteps,
    ServerHelloAck,
    ServerReject,
    ServerResync,
    ServerSteps,
    StepModel,
    parse_client_message,
)
from collab_sync.core.transform.steps import ReplaceStep
from collab_sync.persistence.memory import InMemoryPersistence
from collab_sync.services.authority_service import AuthorityService, CatchUp
from collab_sync.session.session_manager import Connection, SessionManager

logger = logging.getLogger(__name__)

router = APIRouter()

_persistence = InMemoryPersistence()
_authority = AuthorityService(persistence=_persistence)
_sessions = SessionManager()


def _steps_message(doc_id: str, version: int, steps: list[ReplaceStep], client_ids: list[int]) -> ServerSteps:
    return ServerSteps(
        doc_id=doc_id,
        version=version,
        steps=[StepModel.from_step(s) for s in steps],
        client_ids=client_ids,
    )


async def _join_room(conn: Connection, hello: ClientHello) -> None:
    """Join the document room and enqueue the ack plus catch-up.

    Runs under the document lock, so no broadcast can slip in between.
    """
    doc_id = hello.doc_id

    async def on_join(catch_up: CatchUp) -> None:
        await _sessions.join(doc_id=doc_id, connection=conn)
        await conn.send(ServerHelloAck(doc_id=doc_id, version=catch_up.version))
        if catch_up.doc is not None:
            logger.info("ws resync", extra={"doc_id": doc_id, "client_id": hello.client_id, "version": catch_up.version})
            await conn.send(ServerResync(doc_id=doc_id, version=catch_up.version, doc=catch_up.doc))
        elif catch_up.steps:
            logger.info("ws replay", extra={"doc_id": doc_id, "client_id": hello.client_id, "version": catch_up.version})
            await conn.send(_steps_message(doc_id, catch_up.since, catch_up.steps, catch_up.client_ids))

    await _authority.join(
        doc_id=doc_id,
        last_seen_version=hello.last_seen_version,
        replay_limit=get_settings().replay_limit,
        on_join=on_join,
    )


@router.websocket("/ws")
async def ws_endpoint(websocket: WebSocket) -> None:
    await websocket.accept()

    conn: Connection | None = None
    writer_task: asyncio.Task[None] | None = None
    doc_id: str | None = None
    client_id: int | None = None

    try:
        raw = await websocket.receive_text()
        try:
            msg = parse_client_message(raw)
        except (ValueError, ValidationError):
            await websocket.close(code=1002, reason="protocol: invalid hello")
            return
        if not isinstance(msg, ClientHello):
            await websocket.close(code=1002, reason="protocol: first message must be hello")
            return

        doc_id = msg.doc_id
        client_id = msg.client_id
        logger.info("ws hello", extra={"doc_id": doc_id, "client_id": client_id})

        conn = Connection(websocket=websocket, client_id=msg.client_id)
        writer_task = asyncio.create_task(conn.writer_loop())

        await _join_room(conn, msg)

        while True:
            raw = await websocket.receive_text()
            try:
                client_msg = parse_client_message(raw)
            except (ValueError, ValidationError):
                logger.warning(
                    "ws protocol violation: invalid message",
                    extra={"doc_id": doc_id, "client_id": client_id},
                )
                await websocket.close(code=1002, reason="protocol: invalid message")
                return

            if not isinstance(client_msg, ClientSteps):
                logger.warning(
                    "ws protocol violation: unexpected message type",
                    extra={"doc_id": doc_id, "client_id": client_id},
                )
                await websocket.close(code=1003, reason="protocol: unexpected message type")
                return

            if client_msg.doc_id != doc_id:
                logger.warning(
                    "ws protocol violation: doc_id mismatch",
                    extra={"doc_id": doc_id, "client_id": client_id},
                )
                await websocket.close(code=1008, reason="protocol: doc_id mismatch")
                return

            if client_msg.client_id != client_id:
                logger.warning(
                    "ws protocol violation: client_id mismatch",
                    extra={"doc_id": doc_id, "client_id": client_id},
                )
                await websocket.close(code=1008, reason="protocol: client_id mismatch")
                return

            async def broadcast(base_version: int, steps: list[ReplaceStep], client_ids: list[int]) -> None:
                await _sessions.broadcast_steps(_steps_message(client_msg.doc_id, base_version, steps, client_ids))

            version = await _authority.receive_steps(
                doc_id=client_msg.doc_id,
                version=client_msg.version,
                steps=[s.to_step() for s in client_msg.steps],
                client_id=client_msg.client_id,
                on_accept=broadcast,
            )
            if version is None:
                current = _authority.get_version(doc_id=doc_id)
                await conn.send(ServerReject(doc_id=doc_id, version=current))

    except WebSocketDisconnect:
        logger.info("ws disconnect", extra={"doc_id": doc_id or "-", "client_id": client_id or "-"})
    except Exception:
        logger.exception("ws error", extra={"doc_id": doc_id or "-", "client_id": client_id or "-"})
        try:
            await websocket.close(code=1011, reason="internal error")
        except Exception:
            logger.debug("ws close after error failed", extra={"doc_id": doc_id or "-"})
    finally:
        if conn is not None:
            await _sessions.leave_any(connection=conn)
            conn.close()
        if writer_task is not None:
            writer_task.cancel()
