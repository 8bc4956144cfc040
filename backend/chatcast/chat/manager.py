"""Chat state owner: connection registry, message history and broadcasting.

This module ties the chat core together behind a single ChatManager. All
handlers share the process-wide ``manager`` instance so every connection
sees the same roster and history.

Key features:
    - Server-assigned participant identities (UUID, regenerated on collision)
    - Welcome payload with roster snapshot and recent history
    - Join/leave announcements, at most one departure per identity
    - Bounded in-memory history (oldest evicted first)
    - Read-only views for the HTTP status/history endpoints

Thread Safety:
    This implementation is designed for async/await usage with a single event
    loop. Registry and history mutations never await, so they cannot
    interleave; sends happen outside of any mutation. It is NOT thread-safe
    for concurrent access from multiple threads.
"""
import logging
import time
from typing import Any, Callable, Dict, List

from starlette.websockets import WebSocket

from chatcast.config import ChatSettings
from .broadcast import BroadcastEngine
from .errors import DeliveryFailure, DuplicateIdentity
from .history import DEFAULT_HISTORY_CAPACITY, HistoryBuffer
from .registry import Connection, ConnectionRegistry
from .schemas import (
    ChatMessage,
    generate_participant_id,
    presence_event,
    utc_timestamp,
    welcome_event,
)

logger = logging.getLogger(__name__)

# Number of recent messages replayed to a newcomer in the welcome payload
DEFAULT_WELCOME_HISTORY_LIMIT = 10

DEFAULT_WELCOME_MESSAGE = "Welcome to the chat room!"

# Identity regeneration attempts before giving up on a connection
MAX_IDENTITY_ATTEMPTS = 5


class ChatManager:
    """Owns the shared chat state and the operations that mutate it.

    Attributes:
        registry: Live connections keyed by participant identity.
        history: Recent chat messages, oldest first.
        broadcaster: Fan-out engine bound to ``registry``.
        id_factory: Callable producing fresh participant identities.
    """

    def __init__(
        self,
        history_capacity: int = DEFAULT_HISTORY_CAPACITY,
        welcome_history_limit: int = DEFAULT_WELCOME_HISTORY_LIMIT,
        welcome_message: str = DEFAULT_WELCOME_MESSAGE,
        id_factory: Callable[[], str] = generate_participant_id,
    ) -> None:
        self.registry = ConnectionRegistry()
        self.history = HistoryBuffer(history_capacity)
        self.broadcaster = BroadcastEngine(self.registry)
        self.welcome_history_limit = welcome_history_limit
        self.welcome_message = welcome_message
        self.id_factory = id_factory
        self.started_at = time.monotonic()

    def configure(self, settings: ChatSettings) -> None:
        """Apply chat settings loaded at startup."""
        if settings.history_capacity != self.history.capacity:
            self.history.resize(settings.history_capacity)
        self.welcome_history_limit = settings.welcome_history_limit
        self.welcome_message = settings.welcome_message
        logger.info(
            f"[Manager] Configured: history_capacity={self.history.capacity}, "
            f"welcome_history_limit={self.welcome_history_limit}"
        )

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    def connect(self, websocket: WebSocket) -> Connection:
        """Register an accepted WebSocket under a fresh identity.

        Raises:
            DuplicateIdentity: If no unused identity could be generated.
        """
        participant_id = ""
        for _ in range(MAX_IDENTITY_ATTEMPTS):
            participant_id = self.id_factory()
            try:
                connection = self.registry.register(participant_id, websocket)
            except DuplicateIdentity:
                logger.warning(f"[Manager] Identity collision on {participant_id}, regenerating")
                continue
            logger.info(
                f"[Manager] Participant {participant_id} connected. "
                f"Online: {self.registry.size()}"
            )
            return connection
        raise DuplicateIdentity(participant_id)

    async def welcome(self, connection: Connection) -> None:
        """Send the welcome payload, open the connection and announce it.

        The roster and history snapshot is taken under the connection's
        send lock. Messages stored after it reach the newcomer live, queued
        behind the welcome.

        Raises:
            DeliveryFailure: If the welcome could not be sent.
        """
        participant_id = connection.participant_id
        await connection.send_built(lambda: welcome_event(
            participant_id,
            self.welcome_message,
            self.registry.snapshot(),
            self.history.recent(self.welcome_history_limit),
        ))
        connection.mark_open()

        # Evicted while the welcome was in flight
        if participant_id not in self.registry:
            return

        await self.broadcaster.fanout(
            presence_event("user_joined", participant_id, self.registry.size()),
            exclude_id=participant_id
        )

    async def disconnect(self, participant_id: str, reason: str = "closed") -> bool:
        """Remove a participant and announce the departure to everyone left.

        Safe to call more than once for the same identity (explicit close
        racing the sweeper); only the first call announces.

        A participant that never got its welcome is removed silently, since
        nobody was told it joined.

        Returns:
            True if the participant was online and has been removed.
        """
        connection = self.registry.get(participant_id)
        if connection is None or not self.registry.unregister(participant_id):
            return False
        online_count = self.registry.size()
        logger.info(
            f"[Manager] Participant {participant_id} left ({reason}). "
            f"Online: {online_count}"
        )
        if not connection.joined:
            return True
        await self.broadcaster.fanout(
            presence_event("user_left", participant_id, online_count)
        )
        return True

    async def send_to(self, participant_id: str, payload: Dict[str, Any]) -> bool:
        """Send a payload to a single participant, e.g. an error reply.

        Returns:
            True if the payload was delivered.
        """
        connection = self.registry.get(participant_id)
        if connection is None:
            return False
        try:
            await connection.send_json(payload)
            return True
        except DeliveryFailure as e:
            logger.warning(f"[Manager] {e.message}")
            return False

    # =========================================================================
    # History
    # =========================================================================

    def add_message(self, message: ChatMessage) -> ChatMessage:
        """Append a message to history.

        Returns:
            The same message (for chaining).
        """
        self.history.append(message)
        return message

    def get_recent_messages(self, limit: int) -> List[ChatMessage]:
        return self.history.recent(limit)

    # =========================================================================
    # Read-only views
    # =========================================================================

    def get_online_users(self) -> List[str]:
        return self.registry.snapshot()

    def get_online_count(self) -> int:
        return self.registry.size()

    def get_message_count(self) -> int:
        return len(self.history)

    def uptime(self) -> float:
        """Seconds since the manager was created."""
        return time.monotonic() - self.started_at

    def get_status(self) -> Dict[str, Any]:
        return {
            "status": "running",
            "onlineUsers": self.get_online_users(),
            "onlineCount": self.get_online_count(),
            "messageCount": self.get_message_count(),
            "uptime": round(self.uptime(), 3),
            "timestamp": utc_timestamp(),
        }

    def reset(self) -> None:
        """Drop all connections and history without announcing anything.

        Used on shutdown and between tests.
        """
        self.registry.clear()
        self.history.clear()


# Global singleton instance used by all WebSocket handlers
manager = ChatManager()
