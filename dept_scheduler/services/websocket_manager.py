import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Tuple

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class Broadcaster:
    """Real-time push used by the services after a successful write.

    Delivery is best effort; implementations must never raise.
    """

    def emit(self, resource: str, action: str, resource_id: Any = None, **extra) -> None:
        raise NotImplementedError

    def send_to_user(self, user_id: int, event: str, payload: Dict[str, Any]) -> None:
        raise NotImplementedError


class NullBroadcaster(Broadcaster):
    """Drops every message; the default outside a running server"""

    def emit(self, resource: str, action: str, resource_id: Any = None, **extra) -> None:
        return None

    def send_to_user(self, user_id: int, event: str, payload: Dict[str, Any]) -> None:
        return None


class WebSocketManager(Broadcaster):
    """Live connections per user; pushes data changes and notifications"""

    def __init__(self):
        self.active_connections: Dict[int, Set[WebSocket]] = {}
        self.loop: Optional[asyncio.AbstractEventLoop] = None

    async def connect(self, websocket: WebSocket, user_id: int):
        """Track an accepted socket and greet it"""
        self.loop = asyncio.get_running_loop()
        sockets = self.active_connections.setdefault(user_id, set())
        sockets.add(websocket)
        logger.info(f"User {user_id} subscribed ({len(sockets)} open sockets)")

        await self.send_personal_message(
            {
                "type": "connected",
                "data": {"user_id": user_id},
                "timestamp": datetime.now().isoformat()
            },
            websocket
        )

    def disconnect(self, websocket: WebSocket, user_id: int):
        sockets = self.active_connections.get(user_id)
        if sockets is None:
            return
        sockets.discard(websocket)
        if not sockets:
            self.active_connections.pop(user_id, None)
        logger.info(f"User {user_id} unsubscribed ({len(sockets)} open sockets)")

    async def send_personal_message(self, message: dict, websocket: WebSocket):
        await websocket.send_text(json.dumps(message, default=str))

    async def _deliver(self, targets: List[Tuple[int, WebSocket]], message: dict):
        # Sockets that fail a send are dropped
        dead = []
        for user_id, websocket in targets:
            try:
                await self.send_personal_message(message, websocket)
            except Exception as e:
                logger.error(f"Push of {message['type']} to user {user_id} failed: {e}")
                dead.append((user_id, websocket))
        for user_id, websocket in dead:
            self.disconnect(websocket, user_id)

    async def send_event_to_user(self, user_id: int, event: str, payload: dict):
        sockets = self.active_connections.get(user_id, set())
        message = {"type": event, "data": payload, "timestamp": datetime.now().isoformat()}
        await self._deliver([(user_id, ws) for ws in list(sockets)], message)

    async def broadcast_to_all(self, message: dict):
        targets = [(uid, ws) for uid, sockets in list(self.active_connections.items()) for ws in list(sockets)]
        await self._deliver(targets, message)

    def _schedule(self, coro) -> None:
        # Services run in FastAPI's threadpool; hand the coroutine to the server loop
        if self.loop is None or self.loop.is_closed():
            coro.close()
            return
        try:
            asyncio.run_coroutine_threadsafe(coro, self.loop)
        except Exception as e:
            coro.close()
            logger.error(f"Error scheduling WebSocket push: {e}")

    def emit(self, resource: str, action: str, resource_id: Any = None, **extra) -> None:
        """Tell every client that a resource changed"""
        if not self.active_connections:
            return
        message = {
            "type": "dataUpdated",
            "data": {"resource": resource, "action": action, "id": resource_id, **extra},
            "timestamp": datetime.now().isoformat()
        }
        self._schedule(self.broadcast_to_all(message))

    def send_to_user(self, user_id: int, event: str, payload: Dict[str, Any]) -> None:
        if user_id not in self.active_connections:
            return
        self._schedule(self.send_event_to_user(user_id, event, payload))

    def get_total_connections(self) -> int:
        """Get total number of active connections"""
        return sum(len(connections) for connections in self.active_connections.values())
