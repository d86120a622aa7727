import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set, Tuple
from uuid import UUID

from fastapi import WebSocket, WebSocketDisconnect

from .schemas import RevalidateMessage
from .utils import utcnow

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Open update sockets, grouped by the user they were authenticated as"""

    def __init__(self):
        self.user_connections: Dict[UUID, Set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, user_id: UUID) -> None:
        await websocket.accept()
        self.user_connections.setdefault(user_id, set()).add(websocket)

    def disconnect(self, websocket: WebSocket, user_id: UUID) -> None:
        connections = self.user_connections.get(user_id)
        if connections is None:
            return
        connections.discard(websocket)
        if not connections:
            del self.user_connections[user_id]

    def connection_count(self) -> int:
        return sum(len(connections) for connections in self.user_connections.values())

    async def send_to_user(self, user_id: UUID, message: dict) -> None:
        disconnected = set()
        payload = json.dumps(message, default=str)
        for connection in list(self.user_connections.get(user_id, ())):
            try:
                await connection.send_text(payload)
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                logger.info(f"Dropping update socket: {e!r}", extra={"user_id": user_id})
                disconnected.add(connection)

        # Remove disconnected connections
        for connection in disconnected:
            self.disconnect(connection, user_id)


@dataclass
class StaleView:
    generation: int
    stale_at: datetime


class PageRevalidator:
    """Marks a user's cached views stale and tells their open clients to refetch"""

    def __init__(
        self,
        connections: Optional[ConnectionManager] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.connections = connections or ConnectionManager()
        self.clock = clock
        self._views: Dict[Tuple[UUID, str], StaleView] = {}

    async def revalidate(self, user_id: UUID, *paths: str) -> None:
        now = self.clock()
        for path in paths:
            key = (user_id, path)
            view = self._views.get(key)
            generation = view.generation + 1 if view else 1
            self._views[key] = StaleView(generation=generation, stale_at=now)

        logger.debug(f"Revalidated {', '.join(paths)}", extra={"user_id": user_id})
        message = RevalidateMessage(type="revalidate", data={"paths": list(paths)})
        await self.connections.send_to_user(user_id, message.model_dump())

    def generation(self, user_id: UUID, path: str) -> int:
        """How many times a view has been invalidated (0 if never)"""
        view = self._views.get((user_id, path))
        return view.generation if view else 0

    def stale_since(self, user_id: UUID, path: str) -> Optional[datetime]:
        view = self._views.get((user_id, path))
        return view.stale_at if view else None

    def stale_paths(self, user_id: UUID) -> List[str]:
        return sorted(path for owner, path in self._views if owner == user_id)

    def pop_stale_paths(self, user_id: UUID) -> List[str]:
        """Stale paths for a user, cleared once handed to a fresh client"""
        paths = self.stale_paths(user_id)
        self.discard(user_id, *paths)
        return paths

    def discard(self, user_id: UUID, *paths: str) -> None:
        for path in paths:
            self._views.pop((user_id, path), None)
