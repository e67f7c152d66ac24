"""
Live WebSocket connections and message delivery.

Each socket is registered under a connection id when it connects. The
session layer addresses messages by connection id only; this module turns
them into sends. A connection that is unknown (the player last acted from
a socket that has since gone away) is skipped, and a socket that fails on
send is dropped from the registry. Nothing is queued for later: a player
who reconnects asks to rejoin and gets the whole game again.
"""

import logging
from typing import Iterable, Optional

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Registry of open WebSocket connections."""

    def __init__(self):
        self._connections: dict[str, WebSocket] = {}

    def connect(self, connection_id: str, websocket: WebSocket) -> None:
        self._connections[connection_id] = websocket
        logger.debug(f"Connection {connection_id} registered ({len(self._connections)} open)")

    def disconnect(self, connection_id: str) -> None:
        if self._connections.pop(connection_id, None) is not None:
            logger.debug(f"Connection {connection_id} removed ({len(self._connections)} open)")

    def get(self, connection_id: Optional[str]) -> Optional[WebSocket]:
        if connection_id is None:
            return None
        return self._connections.get(connection_id)

    def __len__(self) -> int:
        return len(self._connections)

    async def send(self, connection_id: Optional[str], message: dict) -> bool:
        """
        Send one message to one connection.

        Returns:
            True if the message was handed to the socket.
        """
        websocket = self.get(connection_id)
        if websocket is None:
            logger.debug(f"Dropping {message.get('type')} for unknown connection {connection_id}")
            return False

        try:
            await websocket.send_json(message)
        except Exception as e:
            logger.info(f"Send to {connection_id} failed, pruning connection: {e}")
            self.disconnect(connection_id)
            return False
        return True

    async def deliver(self, deliveries: Iterable) -> int:
        """
        Send a batch of session deliveries.

        Returns:
            Number of messages actually sent.
        """
        sent = 0
        for delivery in deliveries:
            if await self.send(delivery.connection_id, delivery.message):
                sent += 1
        return sent

    async def close_all(self, code: int = 1001, reason: str = "Server shutting down") -> None:
        """Close every open connection (used on shutdown)."""
        for connection_id, websocket in list(self._connections.items()):
            try:
                await websocket.close(code=code, reason=reason)
            except Exception as e:
                logger.debug(f"Closing {connection_id} failed: {e}")
        self._connections.clear()
        logger.info("All WebSocket connections closed")
