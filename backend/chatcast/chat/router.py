"""Chat router providing WebSocket and HTTP endpoints.

This module provides:
    - WebSocket /: Real-time chat messaging
    - GET /: Service information
    - GET /api/status: Online participants and history size
    - GET /api/messages: Most recent messages, oldest first
    - GET /chat: Chat page (served from the static directory)

Protocol Flow:
    1. Client connects -> server assigns userId
       -> server sends: {type: "welcome", userId, onlineUsers, messageHistory, ...}
       -> others receive: {type: "user_joined", userId, onlineCount}
    2. Client sends: {type: "chat_message", content, username?}
       -> everyone (sender included) receives: {type: "chat_message", messageId, ...}
    3. Client sends: {type: "typing", username?}
       -> everyone but the sender receives: {type: "typing", userId, username}
    4. Client sends: {type: "user_update", username?}
       -> everyone receives: {type: "user_update", userId, username}
    5. On disconnect -> others receive: {type: "user_left", userId, onlineCount}
"""
import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Query, Request, WebSocket, WebSocketDisconnect, status
from fastapi.responses import HTMLResponse

from chatcast.config import get_config
from .dispatcher import MessageRouter
from .errors import DeliveryFailure, DuplicateIdentity
from .manager import manager

logger = logging.getLogger(__name__)

router = APIRouter()
dispatcher = MessageRouter(manager)

FALLBACK_CHAT_PAGE = """<!DOCTYPE html>
<html>
<body>
    <h1>Chat server is running</h1>
    <p>Place the chat client at {index_path} to serve it here.</p>
    <p>See <a href="/api/status">/api/status</a> for server status.</p>
</body>
</html>
"""


@router.get("/")
async def service_info(request: Request) -> dict:
    """Describe the service and its endpoints."""
    host = request.headers.get("host", "localhost")
    return {
        "message": "Chat server is running",
        "endpoints": {
            "status": "/api/status",
            "messages": "/api/messages",
            "chat": "/chat",
            "ws": f"ws://{host}/",
        },
    }


@router.get("/api/status")
async def get_status() -> dict:
    """Report online participants, history size and uptime.

    Returns:
        dict with status, onlineUsers, onlineCount, messageCount, uptime
        (seconds) and timestamp.
    """
    return manager.get_status()


def parse_limit(raw: Optional[str], default: int) -> int:
    """Positive integer from a query value, else ``default``."""
    try:
        limit = int(raw) if raw is not None else 0
    except ValueError:
        return default
    return limit if limit > 0 else default


@router.get("/api/messages")
async def get_messages(
    limit: Optional[str] = Query(None, description="Number of messages to return")
) -> dict:
    """Return the most recent messages, oldest first.

    Args:
        limit: Maximum number of messages. Missing, non-numeric or
            non-positive values fall back to ``chat.default_history_limit``
            (20); capped by what history holds.

    Example:
        GET /api/messages?limit=50
    """
    limit = parse_limit(limit, get_config().chat.default_history_limit)
    messages = manager.get_recent_messages(limit)
    return {"messages": [msg.model_dump() for msg in messages]}


@router.get("/chat", response_class=HTMLResponse)
async def chat_page() -> HTMLResponse:
    """Serve ``index.html`` from the static directory, or a placeholder."""
    index_path = Path(get_config().server.static_dir) / "index.html"
    if index_path.is_file():
        return HTMLResponse(content=index_path.read_text(encoding="utf-8"))
    return HTMLResponse(content=FALLBACK_CHAT_PAGE.format(index_path=index_path))


@router.websocket("/")
async def websocket_chat_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint driving one participant's connection.

    Frames from this connection are handled one at a time in receipt order.
    Whatever ends the loop (close, error), the participant is unregistered
    and the departure announced exactly once.
    """
    await websocket.accept()
    try:
        connection = manager.connect(websocket)
    except DuplicateIdentity as e:
        logger.error(f"[WS] {e.message}; closing connection from {websocket.client}")
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    participant_id = connection.participant_id
    logger.info(f"[WS] Connection accepted from {websocket.client}. Assigned userId={participant_id}")

    try:
        await manager.welcome(connection)

        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info(f"[WS] {participant_id} closed (code={message.get('code')})")
                break
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            await dispatcher.dispatch(participant_id, raw)

    except WebSocketDisconnect as e:
        logger.info(f"[WS] {participant_id} disconnected (code={e.code})")
    except DeliveryFailure as e:
        logger.warning(f"[WS] {e.message}")
    except Exception:
        logger.exception(f"[WS] Connection error for {participant_id}")
    finally:
        connection.mark_closing()
        await manager.disconnect(participant_id)
