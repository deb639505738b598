import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from utils.notifier import hub

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws/generation-progress")
async def generation_progress(websocket: WebSocket):
    await websocket.accept()
    hub.register(websocket)
    await websocket.send_json({"type": "connected", "message": "WebSocket connection established"})
    try:
        while True:
            raw = await websocket.receive_text()
            await hub.handle_message(websocket, raw)
    except WebSocketDisconnect:
        logger.debug("Generation progress socket disconnected")
    finally:
        hub.unregister(websocket)
