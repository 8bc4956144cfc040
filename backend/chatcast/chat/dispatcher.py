"""Inbound frame dispatch for the chat WebSocket.

Each frame is parsed as a JSON object and routed on its ``type`` to exactly
one handler:

    - chat_message: store in history, broadcast to everyone (sender included)
    - typing: broadcast to everyone except the sender, not stored
    - user_update: broadcast the new display name to everyone

Anything else gets an ``error`` reply to the sender only, with no broadcast
and no state change.
"""
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Tuple, Type, Union

from pydantic import BaseModel, ValidationError

from .errors import ChatError, InvalidPayload, MalformedPayload, UnknownMessageType
from .manager import ChatManager
from .schemas import (
    ChatMessage,
    ChatMessageInput,
    TypingInput,
    UserUpdateInput,
    error_event,
    resolve_display_name,
    typing_event,
    user_update_event,
)

logger = logging.getLogger(__name__)

Handler = Callable[[str, Any], Awaitable[None]]


def parse_frame(raw: Union[str, bytes]) -> Dict[str, Any]:
    """Decode a raw frame into a dict.

    Raises:
        MalformedPayload: If the frame is not valid JSON or not an object.
    """
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise MalformedPayload("Malformed message: invalid JSON") from e
    if not isinstance(data, dict):
        raise MalformedPayload()
    return data


def _describe_validation_error(error: ValidationError) -> str:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first["loc"]) or "payload"
    return f"{field}: {first['msg']}"


class MessageRouter:
    """Routes parsed frames to their handler by ``type``."""

    def __init__(self, manager: ChatManager) -> None:
        self.manager = manager
        self._routes: Dict[str, Tuple[Type[BaseModel], Handler]] = {
            "chat_message": (ChatMessageInput, self.handle_chat_message),
            "typing": (TypingInput, self.handle_typing),
            "user_update": (UserUpdateInput, self.handle_user_update),
        }

    @property
    def message_types(self) -> Tuple[str, ...]:
        return tuple(self._routes)

    def resolve(self, raw: Union[str, bytes]) -> Tuple[Handler, BaseModel]:
        """Parse and validate a frame, returning its handler and payload.

        Raises:
            MalformedPayload: Unparseable frame or invalid fields.
            UnknownMessageType: Missing or unrecognised ``type``.
        """
        data = parse_frame(raw)
        message_type = data.get("type")
        route = self._routes.get(message_type) if isinstance(message_type, str) else None
        if route is None:
            raise UnknownMessageType(message_type, self.message_types)

        schema, handler = route
        try:
            payload = schema.model_validate(data)
        except ValidationError as e:
            raise InvalidPayload(message_type, _describe_validation_error(e)) from e
        return handler, payload

    async def dispatch(self, sender_id: str, raw: Union[str, bytes]) -> None:
        """Handle one inbound frame from ``sender_id``.

        Frames from a participant that is no longer registered are dropped
        silently.
        """
        if self.manager.registry.get(sender_id) is None:
            logger.debug(f"[Router] Dropping frame from departed participant {sender_id}")
            return

        try:
            handler, payload = self.resolve(raw)
        except ChatError as e:
            logger.warning(f"[Router] Rejected frame from {sender_id}: {e.message}")
            await self.manager.send_to(sender_id, error_event(e.message))
            return

        await handler(sender_id, payload)

    # =========================================================================
    # Handlers
    # =========================================================================

    async def handle_chat_message(self, sender_id: str, payload: ChatMessageInput) -> None:
        message = self.manager.add_message(ChatMessage(
            userId=sender_id,
            username=resolve_display_name(sender_id, payload.username),
            content=payload.content,
        ))
        delivered = await self.manager.broadcaster.fanout(message.to_event())
        logger.info(
            f"[Router] Message {message.messageId} from {message.username}: "
            f"{message.content[:50]!r} (delivered to {delivered})"
        )

    async def handle_typing(self, sender_id: str, payload: TypingInput) -> None:
        await self.manager.broadcaster.fanout(
            typing_event(sender_id, resolve_display_name(sender_id, payload.username)),
            exclude_id=sender_id
        )

    async def handle_user_update(self, sender_id: str, payload: UserUpdateInput) -> None:
        username = resolve_display_name(sender_id, payload.username)
        logger.info(f"[Router] Participant {sender_id} is now known as {username!r}")
        await self.manager.broadcaster.fanout(user_update_event(sender_id, username))
