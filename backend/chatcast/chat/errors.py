"""Exceptions raised by the chat core.

Errors caused by a single inbound frame are turned into an ``error`` reply
to the sender by the dispatcher. Delivery failures are caught by the
broadcast engine. None of them is fatal to the process.
"""
from typing import Sequence


class ChatError(Exception):
    """Base exception for chat errors.

    Attributes:
        message: Client-facing description sent back in ``error`` replies.
    """
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class MalformedPayload(ChatError):
    """Raised when an inbound frame is not a JSON object."""
    def __init__(self, message: str = "Malformed message: expected a JSON object"):
        super().__init__(message)


class InvalidPayload(MalformedPayload):
    """Raised when a recognised message type carries invalid fields."""
    def __init__(self, message_type: str, detail: str):
        self.message_type = message_type
        super().__init__(f"Invalid {message_type} message: {detail}")


class UnknownMessageType(ChatError):
    """Raised when the ``type`` discriminant has no handler."""
    def __init__(self, message_type: object, expected: Sequence[str] = ()):
        self.message_type = message_type
        self.expected = tuple(expected)
        message = f"Unknown message type: {message_type!r}"
        if self.expected:
            message += f" (expected one of: {', '.join(self.expected)})"
        super().__init__(message)


class DuplicateIdentity(ChatError):
    """Raised when registering an identity that is already online."""
    def __init__(self, participant_id: str):
        self.participant_id = participant_id
        super().__init__(f"Participant {participant_id} is already registered")


class DeliveryFailure(ChatError):
    """Raised when sending to a single recipient fails."""
    def __init__(self, participant_id: str, reason: str):
        self.participant_id = participant_id
        self.reason = reason
        super().__init__(f"Delivery to {participant_id} failed: {reason}")
