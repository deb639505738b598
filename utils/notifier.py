"""In-process fan-out of generation progress to WebSocket subscribers.

Sockets subscribe to a generation id. Events for an id go to that id's
subscribers; when nobody subscribed to the id the event is broadcast to every
connected socket. Delivery is best effort: nothing is queued or replayed.
All methods run on the server event loop.
"""
import json
import logging
from typing import Any, Dict, Optional, Set, Union

from models.generation import GenerationProgress, GenerationStatus, GenerationType

logger = logging.getLogger(__name__)


class GenerationProgressHub:
    def __init__(self) -> None:
        self.connections: Set[Any] = set()
        self.clients: Dict[str, Set[Any]] = {}

    def register(self, websocket) -> None:
        self.connections.add(websocket)

    def unregister(self, websocket) -> None:
        self.connections.discard(websocket)
        for generation_id in list(self.clients):
            self._remove(websocket, generation_id)

    def subscribe(self, websocket, generation_id: str) -> None:
        self.clients.setdefault(generation_id, set()).add(websocket)

    def unsubscribe(self, websocket, generation_id: str) -> None:
        self._remove(websocket, generation_id)

    def _remove(self, websocket, generation_id: str) -> None:
        subscribers = self.clients.get(generation_id)
        if subscribers is None:
            return
        subscribers.discard(websocket)
        if not subscribers:
            del self.clients[generation_id]

    def subscriber_count(self, generation_id: str) -> int:
        return len(self.clients.get(generation_id, ()))

    async def handle_message(self, websocket, raw: str) -> None:
        try:
            message = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring malformed WebSocket message: %.200s", raw)
            return
        if not isinstance(message, dict):
            logger.warning("Ignoring non-object WebSocket message")
            return
        kind = message.get("type")
        generation_id = message.get("generationId")
        if kind in ("subscribe", "unsubscribe") and not generation_id:
            logger.warning("%s message without generationId", kind)
            return
        if kind == "subscribe":
            self.subscribe(websocket, generation_id)
            await websocket.send_json({"type": "subscribed", "generationId": generation_id})
        elif kind == "unsubscribe":
            self.unsubscribe(websocket, generation_id)
            await websocket.send_json({"type": "unsubscribed", "generationId": generation_id})
        else:
            logger.warning("Unknown WebSocket message type: %s", kind)

    async def emit(self, progress: Union[GenerationProgress, Dict[str, Any]]) -> int:
        """Send a progress event; returns how many sockets it was delivered to."""
        if not isinstance(progress, GenerationProgress):
            progress = GenerationProgress(**progress)
        payload = progress.to_message()
        targets = set(self.clients.get(progress.generationId, ()))
        if not targets:
            targets = set(self.connections)
        delivered = 0
        for websocket in targets:
            try:
                await websocket.send_json(payload)
                delivered += 1
            except Exception:
                logger.exception("Failed to send progress for %s; dropping socket", progress.generationId)
                self.unregister(websocket)
        return delivered

    async def emit_status(
        self,
        generation_id: str,
        generation_type: GenerationType,
        status: GenerationStatus,
        progress: Optional[str] = None,
        lesson_id: Optional[str] = None,
    ) -> int:
        return await self.emit(
            GenerationProgress(
                generationId=generation_id,
                type=generation_type,
                status=status,
                progress=progress,
                lessonId=lesson_id,
            )
        )

    async def emit_complete(
        self,
        generation_id: str,
        generation_type: GenerationType,
        lesson_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> int:
        return await self.emit(
            GenerationProgress(
                generationId=generation_id,
                type=generation_type,
                status=GenerationStatus.COMPLETE,
                progress="Generation complete",
                lessonId=lesson_id,
                metadata=metadata,
            )
        )

    async def emit_error(
        self,
        generation_id: str,
        generation_type: GenerationType,
        error: str,
        lesson_id: Optional[str] = None,
    ) -> int:
        return await self.emit(
            GenerationProgress(
                generationId=generation_id,
                type=generation_type,
                status=GenerationStatus.ERROR,
                progress="Generation failed",
                lessonId=lesson_id,
                error=error,
            )
        )


hub = GenerationProgressHub()
