"""Pydantic schemas and event payloads for the chat WebSocket protocol.

Inbound frames (client -> server):
    - {"type": "chat_message", "content": str, "username"?: str}
    - {"type": "typing", "username"?: str}
    - {"type": "user_update", "username"?: str}

Outbound events (server -> client) are plain dicts discriminated by
``type``: welcome, chat_message, user_joined, user_left, typing,
user_update, online_update and error.
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def utc_timestamp() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a Z suffix."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def generate_participant_id() -> str:
    """Return a fresh opaque participant identity."""
    return str(uuid.uuid4())


def default_display_name(participant_id: str) -> str:
    """Name used when a client does not supply one."""
    return f"User {participant_id[:6]}"


def resolve_display_name(participant_id: str, username: Optional[str]) -> str:
    return username or default_display_name(participant_id)


# =============================================================================
# Message record
# =============================================================================


class ChatMessage(BaseModel):
    """A chat message as stored in history and broadcast to clients.

    Field names follow the wire format. Records are immutable; the display
    name is frozen at send time so later renames never rewrite history.

    Attributes:
        messageId: Server-assigned unique message identifier.
        userId: Identity of the sender.
        username: Display name of the sender when the message was sent.
        content: Message text, stored as received.
        timestamp: Server-assigned creation time (ISO-8601 UTC).
    """
    model_config = ConfigDict(frozen=True)

    messageId: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        description="Unique message ID"
    )
    userId: str = Field(..., description="Participant ID of the sender")
    username: str = Field(..., description="Display name at send time")
    content: str = Field(..., description="Message content")
    timestamp: str = Field(
        default_factory=utc_timestamp,
        description="Creation time, ISO-8601 UTC"
    )

    def to_event(self) -> Dict[str, Any]:
        """Return the ``chat_message`` event for this record."""
        return {"type": "chat_message", **self.model_dump()}


# =============================================================================
# Inbound payloads
# =============================================================================


class ChatMessageInput(BaseModel):
    """Client payload for ``chat_message``.

    Any client-supplied messageId or timestamp is ignored; the server
    assigns both.
    """
    content: str
    username: Optional[str] = None


class TypingInput(BaseModel):
    """Client payload for ``typing``."""
    username: Optional[str] = None


class UserUpdateInput(BaseModel):
    """Client payload for ``user_update``."""
    username: Optional[str] = None


# =============================================================================
# Outbound events
# =============================================================================


def welcome_event(
    user_id: str,
    greeting: str,
    online_users: List[str],
    history: List[ChatMessage],
) -> Dict[str, Any]:
    return {
        "type": "welcome",
        "userId": user_id,
        "timestamp": utc_timestamp(),
        "message": greeting,
        "onlineUsers": online_users,
        "onlineCount": len(online_users),
        "messageHistory": [msg.to_event() for msg in history],
    }


def presence_event(event_type: str, user_id: str, online_count: int) -> Dict[str, Any]:
    """Build a ``user_joined`` or ``user_left`` event."""
    return {
        "type": event_type,
        "userId": user_id,
        "timestamp": utc_timestamp(),
        "onlineCount": online_count,
    }


def typing_event(user_id: str, username: str) -> Dict[str, Any]:
    return {
        "type": "typing",
        "userId": user_id,
        "username": username,
        "timestamp": utc_timestamp(),
    }


def user_update_event(user_id: str, username: str) -> Dict[str, Any]:
    return {
        "type": "user_update",
        "userId": user_id,
        "username": username,
        "timestamp": utc_timestamp(),
    }


def online_update_event(online_count: int) -> Dict[str, Any]:
    return {
        "type": "online_update",
        "onlineCount": online_count,
        "timestamp": utc_timestamp(),
    }


def error_event(message: str) -> Dict[str, Any]:
    return {
        "type": "error",
        "message": message,
        "timestamp": utc_timestamp(),
    }
