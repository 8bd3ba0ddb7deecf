#app\services\changes.py
import logging
from typing import Set

from fastapi import WebSocket

from app.schemas.issue import ChangeEvent

logger = logging.getLogger(__name__)


class ChangeFeed:
    """Pushes issue row changes to every connected dashboard.

    Best effort only: a client that fails a send is dropped and nothing is
    replayed on reconnect.
    """

    def __init__(self):
        self.active_connections: Set[WebSocket] = set()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self.active_connections.add(websocket)
        logger.info("Change feed client connected (total: %d)", len(self.active_connections))

    def disconnect(self, websocket: WebSocket) -> None:
        self.active_connections.discard(websocket)
        logger.info("Change feed client disconnected (total: %d)", len(self.active_connections))

    async def broadcast(self, event: ChangeEvent) -> None:
        if not self.active_connections:
            return
        message = event.model_dump_json()
        dead = set()
        for connection in list(self.active_connections):
            try:
                await connection.send_text(message)
            except Exception as e:
                logger.warning("Failed to send change event: %s", e)
                dead.add(connection)
        for connection in dead:
            self.active_connections.discard(connection)


feed = ChangeFeed()
