"""
Dashboard broadcaster

Keeps the set of WebSocket sessions that joined the dashboard room and pushes
notification events to all of them. One instance is created at startup and
shared through app.state.
"""

import asyncio
import logging
from typing import Any, Optional

from fastapi import Request, WebSocket

logger = logging.getLogger(__name__)

DASHBOARD_ROOM = "doctor_notifications"


class DashboardBroadcaster:
    """Single broadcast group for doctor/dashboard sessions"""

    def __init__(self):
        self._sessions: set[WebSocket] = set()
        self._lock = asyncio.Lock()

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    async def join(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._sessions.add(websocket)
        logger.info(f"👨‍⚕️ Dashboard session joined {DASHBOARD_ROOM} ({self.session_count} active)")

    async def leave(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._sessions.discard(websocket)
        logger.info(f"🔌 Dashboard session left {DASHBOARD_ROOM} ({self.session_count} active)")

    async def broadcast(self, event: str, data: Optional[Any] = None) -> int:
        """
        Send an event to every session in the room.

        Delivery is best effort: sessions that fail to receive are dropped and
        the remaining ones still get the event.

        Returns:
            Number of sessions the event reached
        """
        async with self._lock:
            sessions = list(self._sessions)

        if not sessions:
            logger.debug(f"No dashboard sessions connected, '{event}' not pushed")
            return 0

        message = {"event": event, "data": data}
        delivered = 0
        dead: list[WebSocket] = []
        for websocket in sessions:
            try:
                await websocket.send_json(message)
                delivered += 1
            except Exception as e:
                logger.warning(f"⚠️ Dropping dashboard session after failed push: {e}")
                dead.append(websocket)

        if dead:
            async with self._lock:
                for websocket in dead:
                    self._sessions.discard(websocket)

        logger.debug(f"📡 Pushed '{event}' to {delivered} dashboard session(s)")
        return delivered


def get_broadcaster(request: Request) -> DashboardBroadcaster:
    """Dependency returning the broadcaster created at startup"""
    return request.app.state.broadcaster
