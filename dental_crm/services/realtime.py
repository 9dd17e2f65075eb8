from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Dict, List, Set

from starlette.websockets import WebSocket, WebSocketState

from dental_crm.schemas.realtime import ChangeEvent

logger = logging.getLogger(__name__)

VISITS_TOPIC = "visits"
DASHBOARD_TOPIC = "dashboard"
DISPATCH_TOPIC = "dispatch"


def _is_closed(ws: WebSocket) -> bool:
    return WebSocketState.DISCONNECTED in (ws.application_state, ws.client_state)


class BroadcastManager:
    """
    In-process fan-out of change events to WebSocket subscribers.

    Every event published on 'visits' or 'dispatch' is mirrored to 'dashboard',
    so dashboards only need one connection. Subscribers whose send fails are
    dropped.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[str, Set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    # PUBLIC_INTERFACE
    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, ()))

    # PUBLIC_INTERFACE
    async def connect(self, topic: str, websocket: WebSocket) -> None:
        async with self._lock:
            self._subscribers[topic].add(websocket)
            count = len(self._subscribers[topic])
        logger.info("WebSocket subscribed topic=%s subscribers=%d", topic, count)

    # PUBLIC_INTERFACE
    async def disconnect(self, topic: str, websocket: WebSocket) -> None:
        async with self._lock:
            self._subscribers[topic].discard(websocket)
            count = len(self._subscribers[topic])
        logger.info("WebSocket left topic=%s subscribers=%d", topic, count)

    async def _send(self, ws: WebSocket, message: Dict[str, Any]) -> bool:
        if _is_closed(ws):
            return False
        try:
            await ws.send_json(message)
        except Exception:
            logger.warning("Dropping websocket after failed send", exc_info=True)
            return False
        return True

    # PUBLIC_INTERFACE
    async def broadcast(self, topic: str, message: Dict[str, Any]) -> int:
        """Send ``message`` to every live subscriber of ``topic``; returns how many received it."""
        async with self._lock:
            targets: List[WebSocket] = list(self._subscribers.get(topic, ()))
        if not targets:
            return 0
        results = await asyncio.gather(*(self._send(ws, message) for ws in targets))
        dead = [ws for ws, ok in zip(targets, results) if not ok]
        if dead:
            async with self._lock:
                self._subscribers[topic].difference_update(dead)
        return len(targets) - len(dead)

    # PUBLIC_INTERFACE
    async def publish_change(self, topic: str, event: ChangeEvent) -> None:
        await self.broadcast(topic, event.envelope(topic).model_dump(mode="json"))
        if topic != DASHBOARD_TOPIC:
            await self.broadcast(DASHBOARD_TOPIC, event.envelope(DASHBOARD_TOPIC).model_dump(mode="json"))


broadcast_manager = BroadcastManager()


# PUBLIC_INTERFACE
async def notify_change(topic: str, event: ChangeEvent) -> None:
    """Publish a change after commit; a broadcast failure never fails the request."""
    try:
        await broadcast_manager.publish_change(topic, event)
    except Exception:
        logger.exception("Failed to publish %s.%s on topic=%s", event.entity, event.action, topic)
