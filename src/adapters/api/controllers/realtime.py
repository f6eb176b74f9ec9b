from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any, Mapping

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from fastapi.responses import StreamingResponse

from src.adapters.api.auth import Principal, bearer_token, decode_token
from src.adapters.api.dependencies import (
    TrackingContainer,
    get_container,
    get_principal,
)
from src.adapters.realtime.queued_connection import QueuedConnection
from src.domain.exceptions import AuthError, NotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


def _sse(message: Mapping[str, Any]) -> str:
    kind = message.get("type") or "message"
    return f"event: {kind}\ndata: {json.dumps(dict(message), default=str)}\n\n"


@router.get("/bus/{unit_id}/stream")
async def stream_unit(
    unit_id: str,
    principal: Principal = Depends(get_principal),
    container: TrackingContainer = Depends(get_container),
) -> StreamingResponse:
    """Server-sent events for one unit plus the topic-less reset broadcast."""

    if container.fleet_directory.get_unit(unit_id) is None:
        raise NotFoundError("Bus not found")

    channel = container.channel
    keepalive_s = container.settings.stream_keepalive_s

    async def events() -> AsyncIterator[str]:
        conn = QueuedConnection(
            max_queue=container.settings.queue_size, label=f"sse:{principal.user_id}"
        )
        channel.subscribe(unit_id, conn)
        try:
            yield _sse({"type": "joined", "unit_id": unit_id})
            while True:
                message = await conn.next_message(timeout_s=keepalive_s)
                if message is None:
                    yield ": keepalive\n\n"
                    continue
                yield _sse(message)
        finally:
            channel.disconnect(conn)
            logger.debug("Stream for unit %s closed", unit_id)

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


async def _pump(websocket: WebSocket, conn: QueuedConnection) -> None:
    while True:
        message = await conn.next_message()
        try:
            await websocket.send_json(dict(message))
        except Exception:
            logger.warning("Send to connection %s failed; stopping", conn.connection_id)
            return


@router.websocket("/ws")
async def realtime_socket(
    websocket: WebSocket,
    container: TrackingContainer = Depends(get_container),
) -> None:
    """Realtime channel.

    Client messages: {"type": "join" | "leave", "unit_id": "..."}.
    Server messages: joined/left acks, location-update, tracking-reset, error.
    """

    token = websocket.query_params.get("token") or bearer_token(
        websocket.headers.get("authorization")
    )
    try:
        principal = decode_token(
            token,
            secret=container.settings.jwt_secret,
            algorithm=container.settings.jwt_algorithm,
        )
    except AuthError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    channel = container.channel
    conn = QueuedConnection(
        max_queue=container.settings.queue_size, label=f"ws:{principal.user_id}"
    )
    # Registered before the handshake completes so no broadcast is missed.
    channel.connect(conn)
    sender: asyncio.Task[None] | None = None

    try:
        await websocket.accept()
        sender = asyncio.create_task(_pump(websocket, conn))
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                conn.offer({"type": "error", "detail": "Invalid JSON"})
                continue
            if not isinstance(data, dict):
                conn.offer({"type": "error", "detail": "Expected an object"})
                continue

            kind = data.get("type")
            unit_id = str(data.get("unit_id") or "").strip()
            if kind in {"join", "leave"} and not unit_id:
                conn.offer({"type": "error", "detail": "unit_id is required"})
            elif kind == "join":
                channel.subscribe(unit_id, conn)
                conn.offer({"type": "joined", "unit_id": unit_id})
            elif kind == "leave":
                channel.unsubscribe(unit_id, conn)
                conn.offer({"type": "left", "unit_id": unit_id})
            else:
                conn.offer({"type": "error", "detail": f"Unsupported message: {kind!r}"})
    except WebSocketDisconnect:
        logger.debug("Connection %s disconnected", conn.connection_id)
    finally:
        channel.disconnect(conn)
        if sender is not None:
            sender.cancel()
            try:
                await sender
            except asyncio.CancelledError:
                pass
