"""WebSocket endpoint that pushes a participant's session view as it changes."""

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status

from peer_connect.api.deps import get_session_engine, resolve_user_id
from peer_connect.errors import PeerConnectError, Unauthenticated
from peer_connect.models.session import SessionStatus
from peer_connect.services.event_bus import session_channel
from peer_connect.services.session_service import SessionEngine

logger = logging.getLogger(__name__)

router = APIRouter()


async def _send_view(websocket: WebSocket, engine: SessionEngine, session_id: str, user_id: str) -> str:
    view = await engine.get_session_view(session_id, user_id)
    await websocket.send_text(json.dumps({"type": "view", "view": view.model_dump(mode="json")}))
    return view.status


async def _forward_events(websocket: WebSocket, engine: SessionEngine, session_id: str, user_id: str) -> None:
    """Relay bus events for this session, each followed by the fresh view."""
    pubsub = engine.bus.redis.pubsub()
    try:
        await pubsub.subscribe(session_channel(session_id))
        async for message in pubsub.listen():
            if message.get("type") != "message":
                continue
            event = json.loads(message["data"])
            await websocket.send_text(json.dumps({"type": "event", **event}))
            current = await _send_view(websocket, engine, session_id, user_id)
            if SessionStatus(current).is_terminal:
                break
    finally:
        await pubsub.aclose()


def _log_feed_exit(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.warning("Session event feed stopped", exc_info=task.exception())


@router.websocket("/ws/sessions/{session_id}")
async def session_websocket(
    websocket: WebSocket,
    session_id: str,
    engine: SessionEngine = Depends(get_session_engine),
):
    """Live session feed.

    Protocol:
    - Identity comes from the ``X-User-Id`` header or a ``user_id`` query param
    - Server sends: {"type": "view", "view": {...}} on connect, after each event
      and in reply to every accepted answer
    - Server sends: {"type": "event", "event": "...", ...} as the session changes
    - Client sends: {"type": "answer", "card_index": n, "option_index": n}
    - Client sends: {"type": "refresh"} to get the current view
    - Server sends: {"type": "error", "content": "..."} on a rejected request
    """
    try:
        user_id = resolve_user_id(
            websocket.headers.get("x-user-id") or websocket.query_params.get("user_id")
        )
    except Unauthenticated:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()

    try:
        await _send_view(websocket, engine, session_id, user_id)
    except PeerConnectError as e:
        await websocket.send_text(json.dumps({"type": "error", "content": e.detail}))
        await websocket.close()
        return

    forwarder = None
    if engine.bus.redis is not None:
        forwarder = asyncio.create_task(_forward_events(websocket, engine, session_id, user_id))
        forwarder.add_done_callback(_log_feed_exit)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
                if data.get("type") == "answer":
                    await engine.submit_answer(
                        session_id, user_id, int(data["card_index"]), int(data["option_index"])
                    )
                    # Reply directly; the feed may be down or still connecting
                    await _send_view(websocket, engine, session_id, user_id)
                elif data.get("type") == "refresh":
                    await _send_view(websocket, engine, session_id, user_id)
            except PeerConnectError as e:
                await websocket.send_text(json.dumps({"type": "error", "content": e.detail}))
            except (KeyError, ValueError):
                await websocket.send_text(
                    json.dumps({"type": "error", "content": "Malformed message"})
                )
    except WebSocketDisconnect:
        logger.debug("User %s left the session feed for %s", user_id, session_id)
    finally:
        if forwarder is not None:
            forwarder.cancel()
