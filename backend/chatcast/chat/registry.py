"""Registry of live WebSocket connections keyed by participant identity.

The registry is the single source of truth for who is online. It only
mutates its own map; callers are responsible for announcing joins and
departures.

Thread Safety:
    All methods are synchronous and never await, so each call is atomic
    with respect to the event loop. Not safe for use from other threads.
"""
import asyncio
import json
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from starlette.websockets import WebSocket, WebSocketState

from .errors import DeliveryFailure, DuplicateIdentity


class ConnectionState(str, Enum):
    """Lifecycle of a single connection.

    CONNECTING -> OPEN -> (CLOSING) -> CLOSED. OPEN is entered once the
    welcome payload has been sent; CLOSED is terminal.
    """
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class Connection:
    """Handle tying a participant identity to its WebSocket channel.

    Sends on a handle are serialised by a per-connection lock, so events
    reach each recipient in the order they were issued.
    """

    def __init__(self, participant_id: str, websocket: WebSocket) -> None:
        self.participant_id = participant_id
        self.websocket = websocket
        self.state = ConnectionState.CONNECTING
        # Set once the welcome has gone out; departures are only announced after that
        self.joined = False
        self._send_lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"Connection({self.participant_id!r}, state={self.state.value})"

    @property
    def channel_connected(self) -> bool:
        """True while neither side of the WebSocket has closed."""
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    @property
    def accepts_broadcasts(self) -> bool:
        """True if fan-out should deliver to this connection.

        Includes connections still waiting on their welcome: their frames
        queue on the send lock behind it.
        """
        return (
            self.state in (ConnectionState.CONNECTING, ConnectionState.OPEN)
            and self.channel_connected
        )

    @property
    def is_stale(self) -> bool:
        """True if the connection can never become usable again."""
        if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            return True
        return not self.channel_connected

    def mark_open(self) -> None:
        if self.state == ConnectionState.CONNECTING:
            self.state = ConnectionState.OPEN
            self.joined = True

    def mark_closing(self) -> None:
        if self.state != ConnectionState.CLOSED:
            self.state = ConnectionState.CLOSING

    def mark_closed(self) -> None:
        self.state = ConnectionState.CLOSED

    async def send_text(self, data: str) -> None:
        """Send a pre-serialised frame.

        Raises:
            DeliveryFailure: If the underlying channel rejects the send.
        """
        async with self._send_lock:
            await self._send_locked(data)

    async def send_json(self, payload: Dict[str, Any]) -> None:
        await self.send_text(json.dumps(payload))

    async def send_built(self, build: Callable[[], Dict[str, Any]]) -> None:
        """Build a payload under the send lock, then send it.

        Every frame sent to this connection after ``build`` runs is
        delivered after this payload.

        Raises:
            DeliveryFailure: If the underlying channel rejects the send.
        """
        async with self._send_lock:
            await self._send_locked(json.dumps(build()))

    async def _send_locked(self, data: str) -> None:
        try:
            await self.websocket.send_text(data)
        except Exception as e:
            raise DeliveryFailure(self.participant_id, str(e) or type(e).__name__) from e


class ConnectionRegistry:
    """Map of participant identity -> Connection, in registration order."""

    def __init__(self) -> None:
        self._connections: Dict[str, Connection] = {}

    def register(self, participant_id: str, websocket: WebSocket) -> Connection:
        """Add a new connection for ``participant_id``.

        Raises:
            DuplicateIdentity: If the identity is already registered. The
                existing entry is left untouched.
        """
        if participant_id in self._connections:
            raise DuplicateIdentity(participant_id)
        connection = Connection(participant_id, websocket)
        self._connections[participant_id] = connection
        return connection

    def unregister(self, participant_id: str) -> bool:
        """Remove ``participant_id``; return whether an entry was removed.

        Unregistering an unknown identity is a no-op.
        """
        connection = self._connections.pop(participant_id, None)
        if connection is None:
            return False
        connection.mark_closed()
        return True

    def get(self, participant_id: str) -> Optional[Connection]:
        return self._connections.get(participant_id)

    def snapshot(self) -> List[str]:
        """Identities currently online, in registration order."""
        return list(self._connections)

    def connections(self) -> List[Connection]:
        """Copy of the current handles, safe to iterate across awaits."""
        return list(self._connections.values())

    def size(self) -> int:
        return len(self._connections)

    def clear(self) -> None:
        for connection in self._connections.values():
            connection.mark_closed()
        self._connections.clear()

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, participant_id: object) -> bool:
        return participant_id in self._connections
