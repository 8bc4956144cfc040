"""Bounded in-memory message history."""
from collections import deque
from typing import Deque, List

from .schemas import ChatMessage

# Default number of messages kept in memory
DEFAULT_HISTORY_CAPACITY = 100


class HistoryBuffer:
    """Oldest-first ring of recent chat messages.

    Appending at capacity evicts the oldest message. Nothing is persisted;
    the buffer lives as long as the process.
    """

    def __init__(self, capacity: int = DEFAULT_HISTORY_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"History capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._messages: Deque[ChatMessage] = deque(maxlen=capacity)

    def append(self, message: ChatMessage) -> None:
        self._messages.append(message)

    def recent(self, n: int) -> List[ChatMessage]:
        """Return the last ``n`` messages, oldest first.

        ``n`` is capped to the current size; ``n <= 0`` yields an empty list.
        """
        if n <= 0:
            return []
        n = min(n, len(self._messages))
        return list(self._messages)[-n:]

    def resize(self, capacity: int) -> None:
        """Change capacity, keeping the newest messages that still fit."""
        if capacity < 1:
            raise ValueError(f"History capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._messages = deque(self._messages, maxlen=capacity)

    def clear(self) -> None:
        self._messages.clear()

    def __len__(self) -> int:
        return len(self._messages)
