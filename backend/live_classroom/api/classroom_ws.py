"""
Live classroom WebSocket route.
"""

import asyncio
import logging
from typing import Any, Dict

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder

from live_classroom.exceptions import AuthRejected
from live_classroom.schemas.events import Connected, ErrorEvent
from live_classroom.services.auth_service import verify_token
from live_classroom.services.coordinator import ClassroomCoordinator

logger = logging.getLogger("live-classroom.ws")

router = APIRouter(tags=["Classroom"])


class _SocketSender:
    """Serializes sends on one socket; broadcasts and direct replies may overlap."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self._lock = asyncio.Lock()

    async def __call__(self, payload: Dict[str, Any]) -> None:
        async with self._lock:
            await self.websocket.send_json(jsonable_encoder(payload))


@router.websocket("/ws/classroom")
async def classroom_socket(websocket: WebSocket):
    coordinator: ClassroomCoordinator = websocket.app.state.coordinator

    try:
        identity = verify_token(websocket.query_params.get("token"), coordinator.config)
    except AuthRejected as exc:
        await websocket.close(code=4401, reason=exc.detail)
        return

    await websocket.accept()
    connection = coordinator.connect(identity, _SocketSender(websocket))
    await connection.deliver(
        Connected(user_id=identity.user_id, name=identity.name, role=identity.role.value)
    )

    try:
        while True:
            try:
                payload = await websocket.receive_json()
            except ValueError:
                await connection.deliver(ErrorEvent(code="invalid_message", detail="Invalid JSON payload"))
                continue

            if isinstance(payload, dict) and payload.get("type") == "ping":
                await connection.deliver({"type": "pong"})
                continue

            await coordinator.handle_message(connection, payload)
    except WebSocketDisconnect:
        pass
    finally:
        await coordinator.disconnect(connection)
