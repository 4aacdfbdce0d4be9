import json
import logging
from uuid import UUID

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Real-time"])


@router.websocket("/ws/scores")
async def score_updates(websocket: WebSocket) -> None:
    """Push score changes to the client.

    Every client receives ``score:updated``.  Sending
    ``{"action": "subscribe", "lead_id": ...}`` additionally delivers
    ``lead:score:updated`` for that lead; ``unsubscribe`` stops it.
    """
    hub = websocket.app.state.services.hub
    await hub.connect(websocket)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
                action = message["action"]
                lead_id = str(UUID(str(message["lead_id"])))
            except (ValueError, KeyError, TypeError):
                await websocket.send_json(
                    {
                        "event": "error",
                        "data": {"detail": "Expected {action, lead_id}"},
                    }
                )
                continue

            if action == "subscribe":
                hub.subscribe(websocket, lead_id)
                await websocket.send_json(
                    {"event": "subscribed", "data": {"lead_id": lead_id}}
                )
            elif action == "unsubscribe":
                hub.unsubscribe(websocket, lead_id)
                await websocket.send_json(
                    {"event": "unsubscribed", "data": {"lead_id": lead_id}}
                )
            else:
                await websocket.send_json(
                    {"event": "error", "data": {"detail": f"Unknown action: {action}"}}
                )
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(websocket)
        logger.info("WebSocket client disconnected")
