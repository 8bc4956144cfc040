"""Shared test fixtures and configuration for backend tests."""
import asyncio
import json
from typing import Any, Dict, List

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketState

from chatcast.chat.manager import ChatManager, manager
from chatcast.main import app


class FakeWebSocket:
    """Stand-in for a Starlette WebSocket that records what is sent to it.

    ``first_send_delay`` holds the first frame (normally the welcome) in
    flight for that many seconds.
    """

    def __init__(self, fail_sends: bool = False, first_send_delay: float = 0.0) -> None:
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.fail_sends = fail_sends
        self.first_send_delay = first_send_delay
        self.sent: List[str] = []

    async def send_text(self, data: str) -> None:
        if self.fail_sends:
            raise RuntimeError("connection reset by peer")
        if self.first_send_delay and not self.sent:
            await asyncio.sleep(self.first_send_delay)
        self.sent.append(data)

    @property
    def events(self) -> List[Dict[str, Any]]:
        return [json.loads(data) for data in self.sent]

    def events_of(self, event_type: str) -> List[Dict[str, Any]]:
        return [event for event in self.events if event["type"] == event_type]

    def drop(self) -> None:
        """Simulate the peer vanishing without a close handshake."""
        self.client_state = WebSocketState.DISCONNECTED


@pytest.fixture
def api_client():
    """Provide a TestClient for the main FastAPI app.

    Used as a context manager so the lifespan runs and every WebSocket
    session shares the client's event loop.
    """
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture(autouse=True)
def reset_global_manager():
    """Clear the shared manager after each test to avoid interference."""
    yield
    manager.reset()


@pytest.fixture
def chat_manager():
    """A fresh, isolated ChatManager."""
    return ChatManager()


@pytest.fixture
def fake_ws():
    """Factory for FakeWebSocket instances."""
    return FakeWebSocket


@pytest.fixture
def join(chat_manager):
    """Connect and welcome a participant on ``chat_manager``.

    Returns an async callable producing ``(connection, websocket)``.
    """
    async def _join(websocket=None):
        websocket = websocket or FakeWebSocket()
        connection = chat_manager.connect(websocket)
        await chat_manager.welcome(connection)
        return connection, websocket

    return _join
