from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, Deque, Optional

import websockets

from shared.protocol import ProtocolError, SyncMessage, decode_sync_event, encode_sync_event

from .callbacks import invoke_callback

logger = logging.getLogger(__name__)

MessageCallback = Callable[[SyncMessage], Awaitable[None] | None]
DisconnectCallback = Callable[[Optional[str]], Awaitable[None] | None]


class RelayClient:
    """WebSocket connection to the relay carrying ``sync-event`` frames.

    Sending is fire-and-forget: frames are queued for the writer task while
    connected and dropped while disconnected. Received frames are decoded and
    handed to ``on_message`` in arrival order.
    """

    def __init__(
        self,
        url: str,
        on_message: MessageCallback,
        *,
        on_disconnect: Optional[DisconnectCallback] = None,
    ) -> None:
        self._url = url
        self._on_message = on_message
        self._on_disconnect = on_disconnect
        self._ws = None
        self._send_queue: Deque[str] = deque()
        self._send_event = asyncio.Event()
        self._send_task: Optional[asyncio.Task[None]] = None
        self._recv_task: Optional[asyncio.Task[None]] = None
        self._stop = False

    @property
    def url(self) -> str:
        return self._url

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._stop

    async def connect(self) -> None:
        logger.info("Connecting to relay %s", self._url)
        self._ws = await websockets.connect(self._url)
        self._stop = False
        self._send_queue.clear()
        self._send_task = asyncio.create_task(self._send_loop())
        self._recv_task = asyncio.create_task(self._recv_loop())
        logger.info("Connected to relay %s", self._url)

    async def close(self) -> None:
        self._stop = True
        self._send_event.set()
        current = asyncio.current_task()
        for task in (self._send_task, self._recv_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        ws = self._ws
        self._ws = None
        self._send_queue.clear()
        if ws is not None:
            try:
                await ws.close()
            except Exception:
                logger.debug("Error while closing relay socket", exc_info=True)

    def send(self, message: SyncMessage) -> bool:
        if not self.connected:
            logger.debug("Not connected; dropping %s", message.action.value)
            return False
        self._send_queue.append(encode_sync_event(message))
        self._send_event.set()
        return True

    async def _send_loop(self) -> None:
        try:
            while not self._stop:
                await self._send_event.wait()
                self._send_event.clear()
                while self._send_queue and not self._stop:
                    frame = self._send_queue.popleft()
                    ws = self._ws
                    if ws is None:
                        break
                    try:
                        await ws.send(frame)
                    except websockets.exceptions.ConnectionClosed:
                        logger.warning("Relay closed while sending; message lost")
                        self._send_queue.clear()
                        break
                    except Exception:
                        logger.exception("Failed to send sync event")
        except asyncio.CancelledError:
            pass

    async def _recv_loop(self) -> None:
        ws = self._ws
        assert ws is not None
        disconnect_reason: Optional[str] = None
        try:
            async for frame in ws:
                try:
                    message = decode_sync_event(frame)
                except ProtocolError as exc:
                    logger.warning("Ignoring malformed relay frame: %s", exc)
                    continue
                invoke_callback(self._on_message, message, description="sync message handler")
            disconnect_reason = "server_closed"
        except asyncio.CancelledError:
            return
        except websockets.exceptions.ConnectionClosed:
            disconnect_reason = "connection_lost"
        except Exception:
            logger.exception("Error while receiving from relay")
            disconnect_reason = "recv_error"
        if self._stop:
            return
        logger.warning("Disconnected from server (%s)", disconnect_reason)
        await self.close()
        if self._on_disconnect is not None:
            invoke_callback(self._on_disconnect, disconnect_reason, description="disconnect handler")
