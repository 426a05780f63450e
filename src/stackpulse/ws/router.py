"""WebSocket endpoint with topic multiplexing."""

import json
import uuid

import structlog
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from stackpulse.ws.manager import ConnectionManager

logger = structlog.get_logger()

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    username: str = Query(..., min_length=1, max_length=64),
) -> None:
    """Single WebSocket endpoint with topic multiplexing.

    Protocol:
        Client -> Server:
            {"action": "subscribe", "topic": "questionUpdate"}
            {"action": "unsubscribe", "topic": "questionUpdate"}
            {"action": "ping"}

        Server -> Client:
            {"topic": "questionUpdate", "data": {...}}
            {"type": "pong"}
            {"type": "error", "message": "..."}
            {"type": "subscribed", "topic": "questionUpdate"}
            {"type": "unsubscribed", "topic": "questionUpdate"}
    """
    manager: ConnectionManager = websocket.app.state.connection_manager

    if not manager.has_capacity(username):
        await websocket.close(code=4008, reason="Too many connections")
        return

    conn_id = str(uuid.uuid4())
    await manager.connect(websocket, conn_id, username)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "message": "Invalid JSON"})
                continue
            if not isinstance(msg, dict):
                await websocket.send_json({"type": "error", "message": "Expected a JSON object"})
                continue

            action = msg.get("action")

            if action == "subscribe":
                topic = msg.get("topic", "")
                ok = await manager.subscribe(conn_id, topic)
                if ok:
                    await websocket.send_json({"type": "subscribed", "topic": topic})
                else:
                    await websocket.send_json({
                        "type": "error",
                        "message": f"Invalid topic: {topic}",
                    })

            elif action == "unsubscribe":
                topic = msg.get("topic", "")
                await manager.unsubscribe(conn_id, topic)
                await websocket.send_json({"type": "unsubscribed", "topic": topic})

            elif action == "ping":
                await websocket.send_json({"type": "pong"})

            else:
                await websocket.send_json({
                    "type": "error",
                    "message": f"Unknown action: {action}",
                })

    except WebSocketDisconnect:
        await manager.disconnect(conn_id)
    except Exception:
        logger.exception("ws_error", conn_id=conn_id)
        await manager.disconnect(conn_id)
