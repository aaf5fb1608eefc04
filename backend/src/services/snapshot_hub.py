"""Fan-out of full collection snapshots to WebSocket subscribers."""

import asyncio
import logging
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class SnapshotHub:
    """Registry of live subscribers, keyed by namespace."""

    def __init__(self) -> None:
        # namespace -> set of WebSocket connections
        self._subscribers: dict[str, set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, namespace: str, ws: WebSocket) -> None:
        async with self._lock:
            self._subscribers.setdefault(namespace, set()).add(ws)

    async def disconnect(self, namespace: str, ws: WebSocket) -> None:
        async with self._lock:
            conns = self._subscribers.get(namespace)
            if conns is not None:
                conns.discard(ws)
                if not conns:
                    self._subscribers.pop(namespace, None)

    def subscriber_count(self, namespace: str) -> int:
        return len(self._subscribers.get(namespace, ()))

    async def publish(self, namespace: str, event: str, payload: Any) -> int:
        """Send one event to every subscriber of a namespace.

        Subscribers whose socket fails are dropped.

        Returns:
            Number of subscribers the event was delivered to
        """
        data = {"event": event, "data": payload}
        async with self._lock:
            targets = list(self._subscribers.get(namespace, set()))

        delivered = 0
        for ws in targets:
            try:
                await ws.send_json(data)
                delivered += 1
            except Exception as e:
                logger.info("Dropping subscriber of %s: %s", namespace, e)
                await self.disconnect(namespace, ws)
        return delivered


def snapshot_payload(namespace: str, requests: list[dict]) -> dict:
    """Build the data part of a snapshot event."""
    return {"namespace": namespace, "requests": requests}


# Global singleton hub
hub = SnapshotHub()
