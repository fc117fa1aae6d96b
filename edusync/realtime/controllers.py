"""
WebSocket Controllers Module

This module provides the WebSocket endpoint through which instructors watch
the quiz events of an assessment as students start, answer and submit.
"""

import json
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from edusync.common.logger import get_logger
from edusync.realtime.manager import WebSocketManager
from edusync.telemetry.sinks import assessment_group

logger = get_logger(__name__)

ws_router = APIRouter()


def get_websocket_manager(websocket: WebSocket) -> WebSocketManager:
    """Get the WebSocketManager instance from the application state."""
    return websocket.app.state.components["websocket_manager"]


@ws_router.websocket("/ws/assessments/{assessment_id}/monitor")
async def monitor_assessment(
    websocket: WebSocket,
    assessment_id: str,
    token: Optional[str] = Query(None)
):
    """
    Stream the quiz events of an assessment to one of its instructors.

    The caller identifies itself with ``?token=<user id>``. Clients may send
    ``{"type": "ping"}`` to check the connection.
    """
    components = websocket.app.state.components
    manager = get_websocket_manager(websocket)

    assessment = await components["orchestrator"].assessments.get_by_id(assessment_id)
    if (
        not token
        or assessment is None
        or not await components["membership"].is_instructor(assessment.course_id, token)
    ):
        logger.warning(f"Refused monitor connection for assessment {assessment_id}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    connection_id = await manager.connect(websocket, token)
    await manager.add_to_group(connection_id, assessment_group(assessment_id))

    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except ValueError:
                await manager.send_personal_message({"type": "error", "message": "Invalid JSON"}, connection_id)
                continue

            if isinstance(message, dict) and message.get("type") == "ping":
                await manager.send_personal_message({"type": "pong"}, connection_id)
    except WebSocketDisconnect:
        logger.debug(f"Monitor {connection_id} left assessment {assessment_id}")
    finally:
        await manager.disconnect(connection_id)
