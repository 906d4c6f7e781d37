"""
Live channel connection management

Keeps the set of open websocket sessions and pushes ``{event, data}``
envelopes to them. A send that fails or exceeds the send timeout drops the
connection.
"""

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import WebSocket

from ...core.clock import utc_now, to_iso
from ...models.user import Identity
from .presence import PresenceRegistry


logger = logging.getLogger(__name__)


@dataclass
class LiveConnection:
    """One open live session"""
    websocket: WebSocket
    identity: Optional[Identity] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    connected_at: datetime = field(default_factory=utc_now)

    @property
    def user_id(self) -> Optional[str]:
        return self.identity.user_id if self.identity else None

    @property
    def read_only(self) -> bool:
        return self.identity is None


def envelope(event: str, data: Any) -> str:
    return json.dumps({'event': event, 'data': data}, default=str)


class LiveChannelManager:
    """Manages websocket sessions for real-time updates"""

    def __init__(self, presence: PresenceRegistry, send_timeout: float = 5.0):
        self.presence = presence
        self.send_timeout = send_timeout
        self.active_connections: Dict[str, LiveConnection] = {}

    async def connect(self, websocket: WebSocket, identity: Optional[Identity] = None) -> LiveConnection:
        """Accept the session, register presence and acknowledge the handshake"""
        await websocket.accept()
        connection = LiveConnection(websocket=websocket, identity=identity)
        self.active_connections[connection.id] = connection
        if connection.user_id:
            self.presence.connect(connection.user_id, connection.id)

        logger.info(
            f"Live client {connection.id} connected "
            f"({'user ' + connection.user_id if connection.user_id else 'anonymous'})"
        )
        await self.send_personal_message(
            'connected', {'id': connection.id, 'ts': to_iso(connection.connected_at)}, connection.id
        )
        return connection

    def disconnect(self, connection_id: str):
        connection = self.active_connections.pop(connection_id, None)
        if connection is None:
            return
        if connection.user_id:
            self.presence.disconnect(connection.user_id, connection.id)
        logger.info(f"Live client {connection_id} disconnected")

    async def _send(self, connection: LiveConnection, message: str) -> bool:
        try:
            await asyncio.wait_for(connection.websocket.send_text(message), timeout=self.send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(f"Send to {connection.id} timed out after {self.send_timeout}s")
        except Exception as e:
            logger.error(f"Error sending to {connection.id}: {e}")
        return False

    async def send_personal_message(self, event: str, data: Any, connection_id: str):
        connection = self.active_connections.get(connection_id)
        if connection is None:
            return
        if not await self._send(connection, envelope(event, data)):
            self.disconnect(connection_id)

    async def broadcast(self, event: str, data: Any) -> int:
        """
        Push one envelope to every open session

        Returns:
            Number of sessions the message was delivered to
        """
        connections: List[LiveConnection] = list(self.active_connections.values())
        if not connections:
            return 0

        message = envelope(event, data)
        results = await asyncio.gather(*(self._send(conn, message) for conn in connections))

        delivered = 0
        for connection, ok in zip(connections, results):
            if ok:
                delivered += 1
            else:
                self.disconnect(connection.id)
        return delivered

    async def close_all(self):
        for connection_id, connection in list(self.active_connections.items()):
            try:
                await connection.websocket.close()
            except Exception as e:
                logger.debug(f"Error closing {connection_id}: {e}")
            self.disconnect(connection_id)

    @property
    def connection_count(self) -> int:
        return len(self.active_connections)
