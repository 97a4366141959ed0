# backend/modules/tables/websocket/table_websocket.py

from typing import Any, Dict, Optional, Set, Tuple
from fastapi import WebSocket
import asyncio
import json
import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from core.time_utils import isoformat, utc_now
from ..interfaces import BroadcasterInterface

logger = logging.getLogger(__name__)

FloorKey = Tuple[int, int]

RELAY_RETRY_INITIAL_SECONDS = 1
RELAY_RETRY_MAX_SECONDS = 30


def floor_channel(outlet_id: int, floor_id: int) -> str:
    return f"floor:{outlet_id}:{floor_id}"


class FloorConnectionManager(BroadcasterInterface):
    """Manages WebSocket connections grouped by (outlet, floor)"""

    def __init__(self):
        self.active_connections: Dict[FloorKey, Set[WebSocket]] = {}
        self.connection_metadata: Dict[WebSocket, Dict[str, Any]] = {}

    async def connect(
        self,
        websocket: WebSocket,
        outlet_id: int,
        floor_id: int,
        actor_id: Optional[int] = None,
    ):
        """Accept new connection"""
        await websocket.accept()

        key = (outlet_id, floor_id)
        self.active_connections.setdefault(key, set()).add(websocket)
        self.connection_metadata[websocket] = {
            "outlet_id": outlet_id,
            "floor_id": floor_id,
            "actor_id": actor_id,
            "connected_at": utc_now(),
        }
        logger.info(f"WebSocket connected for outlet {outlet_id} floor {floor_id}")

    def disconnect(self, websocket: WebSocket):
        """Remove connection"""
        metadata = self.connection_metadata.pop(websocket, None)
        if not metadata:
            return

        key = (metadata["outlet_id"], metadata["floor_id"])
        if key in self.active_connections:
            self.active_connections[key].discard(websocket)
            if not self.active_connections[key]:
                del self.active_connections[key]
        logger.info(
            f"WebSocket disconnected for outlet {key[0]} floor {key[1]}"
        )

    def connection_count(self, outlet_id: int, floor_id: int) -> int:
        return len(self.active_connections.get((outlet_id, floor_id), ()))

    async def publish(
        self, outlet_id: int, floor_id: int, event: str, payload: Dict[str, Any]
    ) -> None:
        await self.send_to_floor(outlet_id, floor_id, {"event": event, "data": payload})

    async def send_to_floor(self, outlet_id: int, floor_id: int, message: Dict[str, Any]):
        """Send a message to every local listener of the floor"""
        connections = self.active_connections.get((outlet_id, floor_id))
        if not connections:
            return

        disconnected = set()
        for websocket in list(connections):
            try:
                await websocket.send_json(message)
            except Exception as e:
                logger.error(f"Error broadcasting to websocket: {e}")
                disconnected.add(websocket)

        for websocket in disconnected:
            self.disconnect(websocket)

    async def handle_client_message(self, websocket: WebSocket, message: Dict[str, Any]):
        """Handle incoming message from client"""
        if websocket not in self.connection_metadata:
            return

        if message.get("type") == "ping":
            await websocket.send_json(
                {"type": "pong", "timestamp": isoformat(utc_now())}
            )


class RedisFloorBroadcaster(BroadcasterInterface):
    """
    Publishes floor events on Redis so every worker can relay them to its own
    WebSocket listeners.

    Each worker runs ``start()`` once; it pattern-subscribes to all floor
    channels and forwards messages to the local connection manager.
    """

    def __init__(self, client: redis.Redis, local: FloorConnectionManager):
        self.client = client
        self.local = local
        self._task: Optional[asyncio.Task] = None

    async def publish(
        self, outlet_id: int, floor_id: int, event: str, payload: Dict[str, Any]
    ) -> None:
        message = json.dumps({"event": event, "data": payload}, default=str)
        await self.client.publish(floor_channel(outlet_id, floor_id), message)

    async def start(self):
        self._task = asyncio.create_task(self._relay())
        logger.info("Redis floor relay started")

    async def close(self):
        """Stop relaying. The client is shared and closed by its owner."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _relay(self):
        delay = RELAY_RETRY_INITIAL_SECONDS
        while True:
            pubsub = self.client.pubsub()
            try:
                await pubsub.psubscribe("floor:*")
                delay = RELAY_RETRY_INITIAL_SECONDS
                async for message in pubsub.listen():
                    if message["type"] != "pmessage":
                        continue
                    await self._forward(message["channel"], message["data"])
            except RedisError as e:
                logger.error(f"Floor relay lost its subscription, retrying in {delay}s: {e}")
            finally:
                await pubsub.close()
            await asyncio.sleep(delay)
            delay = min(delay * 2, RELAY_RETRY_MAX_SECONDS)

    async def _forward(self, channel, data):
        try:
            if isinstance(channel, bytes):
                channel = channel.decode()
            _, outlet_id, floor_id = channel.split(":")
            await self.local.send_to_floor(int(outlet_id), int(floor_id), json.loads(data))
        except (ValueError, TypeError) as e:
            logger.error(f"Dropping malformed floor message on {channel}: {e}")


# Global connection manager
manager = FloorConnectionManager()

_broadcaster: BroadcasterInterface = manager


def get_broadcaster() -> BroadcasterInterface:
    return _broadcaster


def use_broadcaster(broadcaster: BroadcasterInterface) -> None:
    """Swap the process-wide broadcaster (called once at startup)"""
    global _broadcaster
    _broadcaster = broadcaster
