from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, Union

from fastapi import WebSocket
from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)

Frame = Union[str, bytes]


@dataclass(slots=True)
class RelayConnection:
    connection_id: str
    websocket: WebSocket
    connected_at: float = field(default_factory=lambda: time.time())

    async def send(self, frame: Frame) -> bool:
        if self.websocket.application_state != WebSocketState.CONNECTED:
            return False
        if isinstance(frame, bytes):
            await self.websocket.send_bytes(frame)
        else:
            await self.websocket.send_text(frame)
        return True


class RelayHub:
    """Tracks open relay connections and fans frames out between them.

    The hub holds no playback state. A frame received from one connection is
    forwarded unchanged to every other open connection and then forgotten.
    """

    def __init__(self) -> None:
        self._connections: Dict[str, RelayConnection] = {}
        self._lock = asyncio.Lock()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket) -> RelayConnection:
        connection = RelayConnection(connection_id=uuid.uuid4().hex[:12], websocket=websocket)
        # Registered before the handshake completes so a peer never sees an
        # accepted socket that is missing from the broadcast set.
        async with self._lock:
            self._connections[connection.connection_id] = connection
        try:
            await websocket.accept()
        except Exception:
            async with self._lock:
                self._connections.pop(connection.connection_id, None)
            raise
        logger.info("A user connected with ID: %s", connection.connection_id)
        return connection

    async def disconnect(self, connection: RelayConnection) -> bool:
        async with self._lock:
            removed = self._connections.pop(connection.connection_id, None)
        if removed is None:
            return False
        logger.info(
            "User disconnected: %s (connected for %.1fs)",
            connection.connection_id,
            time.time() - connection.connected_at,
        )
        return True

    async def relay(self, sender: RelayConnection, frame: Frame) -> int:
        """Forward ``frame`` to every connection except ``sender``.

        Returns the number of connections the frame was delivered to. A failed
        delivery to one peer is logged and does not affect the others.
        """

        async with self._lock:
            targets = [
                connection
                for connection_id, connection in self._connections.items()
                if connection_id != sender.connection_id
            ]
        if not targets:
            return 0
        logger.debug("Relaying %r from %s to %d peer(s)", frame, sender.connection_id, len(targets))
        results = await asyncio.gather(*(target.send(frame) for target in targets), return_exceptions=True)
        delivered = 0
        for target, result in zip(targets, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "Failed to relay frame to %s: %s",
                    target.connection_id,
                    result,
                )
                continue
            if result:
                delivered += 1
        return delivered
