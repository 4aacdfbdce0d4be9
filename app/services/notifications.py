import json
import logging
from collections import defaultdict
from typing import Any, Dict, Optional, Set

from redis.asyncio import Redis
from starlette.websockets import WebSocket

from app.core.constants import (
    LEAD_CHANNEL_PREFIX,
    LEAD_SCORE_UPDATED_EVENT,
    SCORE_UPDATED_CHANNEL,
)
from app.schemas.notification import ScoreUpdate

logger = logging.getLogger(__name__)


class ConnectionHub:
    """Live WebSocket clients and their per-lead subscriptions.

    A client whose socket raises on send is dropped; the sender carries
    on with the rest.
    """

    def __init__(self) -> None:
        self._clients: Set[WebSocket] = set()
        self._topics: Dict[str, Set[WebSocket]] = defaultdict(set)

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._clients.add(websocket)
        logger.info("WebSocket client connected (%d total)", len(self._clients))

    def disconnect(self, websocket: WebSocket) -> None:
        self._clients.discard(websocket)
        for topic in list(self._topics):
            members = self._topics[topic]
            members.discard(websocket)
            if not members:
                del self._topics[topic]

    def subscribe(self, websocket: WebSocket, lead_id: str) -> None:
        self._topics[f"{LEAD_CHANNEL_PREFIX}{lead_id}"].add(websocket)

    def unsubscribe(self, websocket: WebSocket, lead_id: str) -> None:
        topic = f"{LEAD_CHANNEL_PREFIX}{lead_id}"
        members = self._topics.get(topic)
        if members is None:
            return
        members.discard(websocket)
        if not members:
            del self._topics[topic]

    def subscribers(self, lead_id: str) -> Set[WebSocket]:
        return set(self._topics.get(f"{LEAD_CHANNEL_PREFIX}{lead_id}", ()))

    async def send_all(self, event: str, data: Dict[str, Any]) -> int:
        return await self._send_many(set(self._clients), event, data)

    async def send_topic(self, lead_id: str, event: str, data: Dict[str, Any]) -> int:
        return await self._send_many(self.subscribers(lead_id), event, data)

    async def _send_many(
        self, targets: Set[WebSocket], event: str, data: Dict[str, Any]
    ) -> int:
        delivered = 0
        message = {"event": event, "data": data}
        for websocket in targets:
            try:
                await websocket.send_json(message)
                delivered += 1
            except Exception:
                logger.warning("Dropping WebSocket client after failed send")
                self.disconnect(websocket)
        return delivered


class ScoreNotifier:
    """Best-effort fan-out of score changes.

    Every update goes to all local WebSocket clients, to the clients
    subscribed to that lead and, when a Redis client is configured, to
    the ``score:updated`` and ``lead:{id}`` pub/sub channels.  Nothing in
    here raises: a failed delivery is logged and dropped, and the
    database stays the authority for the score.
    """

    def __init__(
        self,
        hub: Optional[ConnectionHub] = None,
        redis_client: Optional[Redis] = None,
    ) -> None:
        self._hub = hub
        self._redis: Optional[Redis] = redis_client

    @property
    def hub(self) -> Optional[ConnectionHub]:
        return self._hub

    async def broadcast(self, update: ScoreUpdate) -> None:
        data = update.model_dump(mode="json")
        lead_id = data["lead_id"]

        if self._hub is not None:
            try:
                await self._hub.send_all(SCORE_UPDATED_CHANNEL, data)
                await self._hub.send_topic(lead_id, LEAD_SCORE_UPDATED_EVENT, data)
            except Exception:
                logger.warning("WebSocket broadcast failed for lead %s", lead_id)

        await self._publish(lead_id, data)

    async def _publish(self, lead_id: str, data: Dict[str, Any]) -> None:
        if self._redis is None:
            return
        try:
            payload = json.dumps(data, default=str)
            await self._redis.publish(SCORE_UPDATED_CHANNEL, payload)
            await self._redis.publish(f"{LEAD_CHANNEL_PREFIX}{lead_id}", payload)
        except Exception:
            logger.warning("Redis PUBLISH failed for lead %s", lead_id)
