"""Best-effort fan-out of events to registered connections.

Delivery is concurrent across recipients (asyncio.gather) and serialised
per recipient by each Connection's send lock, so a single recipient sees
events in the order fanout() was called. A failed send is logged and
skipped; the dead connection is left for the liveness sweeper to evict.
"""
import asyncio
import json
import logging
from typing import Any, Dict, Optional

from .errors import DeliveryFailure
from .registry import Connection, ConnectionRegistry

logger = logging.getLogger(__name__)


class BroadcastEngine:
    """Delivers events to every live connection in a registry."""

    def __init__(self, registry: ConnectionRegistry) -> None:
        self.registry = registry

    async def fanout(self, message: Dict[str, Any], exclude_id: Optional[str] = None) -> int:
        """Send ``message`` to all live connections except ``exclude_id``.

        Args:
            message: JSON-serializable event.
            exclude_id: Participant to skip (e.g. the sender of a typing event).

        Returns:
            Number of recipients the message was delivered to.
        """
        data = json.dumps(message)
        recipients = [
            conn for conn in self.registry.connections()
            if conn.participant_id != exclude_id and conn.accepts_broadcasts
        ]
        if not recipients:
            return 0

        results = await asyncio.gather(
            *[self._deliver(conn, data) for conn in recipients],
            return_exceptions=True
        )

        delivered = 0
        for conn, result in zip(recipients, results):
            if result is True:
                delivered += 1
            elif isinstance(result, BaseException):
                logger.error(
                    "[Broadcast] Unexpected error delivering %s to %s: %r",
                    message.get("type"), conn.participant_id, result
                )
        return delivered

    async def _deliver(self, connection: Connection, data: str) -> bool:
        try:
            await connection.send_text(data)
            return True
        except DeliveryFailure as e:
            logger.warning(f"[Broadcast] {e.message}")
            return False
