import asyncio
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status

from ..auth import resolve_identity
from ..config import Settings, get_settings
from ..revalidation import PageRevalidator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ws", tags=["updates"])

KEEPALIVE_SECONDS = 30.0


@router.websocket("/updates")
async def updates_socket(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    settings: Settings = Depends(get_settings),
):
    """WebSocket endpoint for page-refresh signals"""
    identity = resolve_identity(token, settings)
    if identity is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    revalidator: PageRevalidator = websocket.app.state.revalidator
    manager = revalidator.connections
    await manager.connect(websocket, identity.user_id)

    try:
        await websocket.send_text(json.dumps({
            "type": "connection",
            "data": {
                "message": "Connected to task updates",
                "stale_paths": revalidator.pop_stale_paths(identity.user_id),
            },
        }))

        # Keep connection alive
        while True:
            try:
                data = await asyncio.wait_for(websocket.receive_text(), timeout=KEEPALIVE_SECONDS)
                if data == "ping":
                    await websocket.send_text("pong")
            except asyncio.TimeoutError:
                await websocket.send_text(json.dumps({"type": "ping", "data": {}}))

    except WebSocketDisconnect:
        logger.debug("Update socket closed by client", extra={"user_id": identity.user_id})
    finally:
        manager.disconnect(websocket, identity.user_id)
