"""
Real-time dashboard channel

Dashboard clients connect to /ws/notifications and send
{"event": "join_doctor_room"} to start receiving notification events.
"""

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..services.dashboard_broadcaster import DASHBOARD_ROOM, DashboardBroadcaster

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realtime"])

JOIN_EVENT = "join_doctor_room"


@router.websocket("/ws/notifications")
async def notifications_socket(websocket: WebSocket):
    broadcaster: DashboardBroadcaster = websocket.app.state.broadcaster
    await websocket.accept()
    logger.info(f"🔌 Dashboard client connected: {websocket.client}")

    joined = False
    try:
        while True:
            message = await websocket.receive_json()
            event = message.get("event") if isinstance(message, dict) else None

            if event == JOIN_EVENT and not joined:
                await broadcaster.join(websocket)
                joined = True
                await websocket.send_json({"event": "joined", "data": {"room": DASHBOARD_ROOM}})
            elif event == "ping":
                await websocket.send_json({"event": "pong", "data": None})
            else:
                logger.debug(f"Ignoring dashboard client event: {event}")
    except WebSocketDisconnect:
        logger.info(f"🔌 Dashboard client disconnected: {websocket.client}")
    except ValueError as e:
        # receive_json on a non-JSON frame
        logger.warning(f"⚠️ Closing dashboard socket after invalid message: {e}")
        await websocket.close(code=1003)
    finally:
        if joined:
            await broadcaster.leave(websocket)
