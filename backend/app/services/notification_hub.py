from __future__ import annotations

import asyncio
import logging
from collections import defaultdict

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class TimetableEventHub:
    """Websocket fan-out of timetable events, one channel per semester."""

    def __init__(self) -> None:
        self._connections: dict[int, set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def connect(self, semester_id: int, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._connections[semester_id].add(websocket)

    async def disconnect(self, semester_id: int, websocket: WebSocket) -> None:
        async with self._lock:
            sockets = self._connections.get(semester_id)
            if not sockets:
                return
            sockets.discard(websocket)
            if not sockets:
                self._connections.pop(semester_id, None)

    async def connection_count(self, semester_id: int) -> int:
        async with self._lock:
            return len(self._connections.get(semester_id, set()))

    async def publish(self, semester_id: int, payload: dict) -> None:
        async with self._lock:
            sockets = list(self._connections.get(semester_id, set()))

        if not sockets:
            return

        stale: list[WebSocket] = []
        for websocket in sockets:
            try:
                await websocket.send_json(payload)
            except Exception:  # pragma: no cover - network/runtime dependent
                stale.append(websocket)

        if stale:
            async with self._lock:
                active = self._connections.get(semester_id, set())
                for socket in stale:
                    active.discard(socket)
                if not active:
                    self._connections.pop(semester_id, None)
            logger.debug("Removed %d stale timetable websocket(s) for semester %s", len(stale), semester_id)


timetable_hub = TimetableEventHub()
