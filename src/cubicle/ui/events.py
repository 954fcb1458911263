"""Asyncio event bus carrying browser actions to connected collaborators."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from cubicle.core.defaults import EVENT_QUEUE_SIZE

logger = logging.getLogger(__name__)


class EventBus:
    """Asyncio pub/sub for actions the engine asks the browser to perform.

    The engine publishes ``move_tab`` / ``*_identity`` actions via
    :meth:`publish`; the ``/ws/actions`` WebSocket handler subscribes via
    :meth:`subscribe` and forwards every action to the collaborator.
    Publishing with no subscriber drops the action: the collaborator
    resynchronises identities through ``PUT /api/identities``.
    """

    def __init__(self, queue_size: int = EVENT_QUEUE_SIZE) -> None:
        self._subscribers: set[asyncio.Queue[dict[str, Any]]] = set()
        self._lock = asyncio.Lock()
        self._queue_size = queue_size

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def publish(self, event: dict[str, Any]) -> None:
        """Broadcast *event* to all current subscribers.

        A subscriber whose queue is full is disconnected.
        """
        async with self._lock:
            if not self._subscribers:
                logger.debug("No collaborator connected; dropped %s action", event.get("type"))
                return
            dead: list[asyncio.Queue[dict[str, Any]]] = []
            for q in self._subscribers:
                try:
                    q.put_nowait(event)
                except asyncio.QueueFull:
                    dead.append(q)
            for q in dead:
                logger.warning("Disconnecting slow collaborator (queue full)")
                self._subscribers.discard(q)

    @asynccontextmanager
    async def subscribe(self) -> AsyncIterator[asyncio.Queue[dict[str, Any]]]:
        """Context manager that yields a queue receiving all published actions."""
        q: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=self._queue_size)
        async with self._lock:
            self._subscribers.add(q)
        try:
            yield q
        finally:
            async with self._lock:
                self._subscribers.discard(q)
