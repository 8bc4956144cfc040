"""Periodic eviction of connections whose channel is no longer open.

The normal departure path is the connection's own close/error handling.
The sweeper is the safety net for connections that dropped without the
endpoint noticing, e.g. after a failed send.
"""
import asyncio
import logging
from typing import List, Optional

from .manager import ChatManager
from .schemas import online_update_event

logger = logging.getLogger(__name__)

# Seconds between liveness sweeps
DEFAULT_SWEEP_INTERVAL = 30.0


class LivenessSweeper:
    """Background task that evicts stale connections on a fixed interval."""

    def __init__(self, manager: ChatManager, interval: float = DEFAULT_SWEEP_INTERVAL) -> None:
        if interval <= 0:
            raise ValueError(f"Sweep interval must be positive, got {interval}")
        self.manager = manager
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep(self) -> List[str]:
        """Run one pass over the registry.

        Each stale participant is unregistered and announced with
        ``user_left``. If anything was evicted, a single ``online_update``
        follows.

        Returns:
            Identities evicted by this pass.
        """
        evicted = []
        for connection in self.manager.registry.connections():
            if not connection.is_stale:
                continue
            # disconnect() returns False if the close handler got there first
            if await self.manager.disconnect(connection.participant_id, reason="stale"):
                evicted.append(connection.participant_id)

        if evicted:
            online_count = self.manager.get_online_count()
            logger.info(f"[Sweeper] Evicted {len(evicted)} stale connection(s). Online: {online_count}")
            await self.manager.broadcaster.fanout(online_update_event(online_count))
        return evicted

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.sweep()
            except Exception:
                logger.exception("[Sweeper] Sweep failed")

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info(f"[Sweeper] Started (interval={self.interval}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("[Sweeper] Stopped")
