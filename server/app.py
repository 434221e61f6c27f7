from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, WebSocket
from fastapi.staticfiles import StaticFiles

from shared.protocol import DEFAULT_RELAY_PATH
from shared.resource_paths import static_bundle_dir

from .relay import RelayHub

logger = logging.getLogger(__name__)


class RelayServer:
    """FastAPI application serving the client bundle and the sync relay socket."""

    def __init__(
        self,
        host: str,
        port: int,
        *,
        static_root: Optional[Path] = None,
        hub: Optional[RelayHub] = None,
    ) -> None:
        self._host = host
        self._port = port
        self._static_root = static_root or static_bundle_dir()
        self._hub = hub or RelayHub()
        self._app = FastAPI()
        self._server: Optional[object] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._configure_routes()

    @property
    def app(self) -> FastAPI:
        return self._app

    @property
    def hub(self) -> RelayHub:
        return self._hub

    def _configure_routes(self) -> None:
        @self._app.websocket(DEFAULT_RELAY_PATH)
        async def ws_relay(websocket: WebSocket) -> None:
            connection = await self._hub.connect(websocket)
            try:
                while True:
                    message = await websocket.receive()
                    if message["type"] == "websocket.disconnect":
                        break
                    frame = message.get("text")
                    if frame is None:
                        frame = message.get("bytes")
                    if frame is None:
                        continue
                    await self._hub.relay(connection, frame)
            finally:
                await self._hub.disconnect(connection)

        # Mounted last so the catch-all static route does not shadow the socket.
        if self._static_root.exists():
            self._app.mount("/", StaticFiles(directory=self._static_root, html=True), name="static")
        else:
            logger.warning("Client bundle not found at %s; serving the relay socket only", self._static_root)

    async def start(self) -> None:
        import uvicorn

        if self._server is not None:
            return
        config = uvicorn.Config(self._app, host=self._host, port=self._port, log_level="info")
        self._server = uvicorn.Server(config)
        self._task = asyncio.create_task(self._server.serve())
        logger.info("Server running and listening on http://%s:%s", self._host, self._port)

    async def stop(self) -> None:
        if self._server is None:
            return
        assert self._task is not None
        self._server.should_exit = True
        await self._task
        self._server = None
        self._task = None
