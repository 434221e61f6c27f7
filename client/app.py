from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Dict, Optional

import websockets

from shared.protocol import LOCAL_QUIESCENCE_SECONDS, REMOTE_QUIESCENCE_SECONDS, SyncMessage

from .experience import NOT_READY_STATUS_TEXT, ExperienceController, ExperienceState
from .media import ClockMediaElement, LocalMediaSource
from .players import (
    BackendKind,
    EmbeddedPlayer,
    LocalPlayerAdapter,
    MediaElement,
    PlayerAdapter,
    RemotePlayerAdapter,
)
from .relay_client import RelayClient
from .sync_controller import SyncController
from .youtube import INVALID_URL_MESSAGE, extract_video_id

logger = logging.getLogger(__name__)

RECONNECT_BASE_DELAY_SECONDS = 2.0
RECONNECT_MAX_DELAY_SECONDS = 30.0
CREDITS_DURATION_SECONDS = 2.5
REMOTE_UNAVAILABLE_MESSAGE = "YouTube playback is not available in this client"


class ViewerApp:
    """Client runtime wiring the players, sync protocol and relay connection."""

    def __init__(
        self,
        relay_url: str,
        *,
        local_element: Optional[MediaElement] = None,
        remote_player: Optional[EmbeddedPlayer] = None,
        quiescence_window: Optional[float] = None,
        credits_duration: float = CREDITS_DURATION_SECONDS,
    ) -> None:
        if quiescence_window is None:
            quiescence_window = REMOTE_QUIESCENCE_SECONDS if remote_player is not None else LOCAL_QUIESCENCE_SECONDS
        self._relay = RelayClient(
            relay_url,
            self.handle_relay_message,
            on_disconnect=self._on_relay_disconnect,
        )
        self._controller = SyncController(self._send_sync, quiescence_window=quiescence_window)
        self._experience = ExperienceController(lambda: self._controller.active_backend)
        self._local_element = local_element if local_element is not None else ClockMediaElement()
        self._local = LocalPlayerAdapter(self._local_element)
        self._remote: Optional[RemotePlayerAdapter] = None
        if remote_player is not None:
            self._remote = RemotePlayerAdapter(remote_player)
            self._remote.on_first_playable(self._on_remote_first_playable)
        self._controller.on_experience_ended(self._on_experience_ended)
        self._credits_duration = credits_duration
        self._credits_handle: Optional[asyncio.TimerHandle] = None
        self._should_reconnect = False
        self._reconnect_task: Optional[asyncio.Task[None]] = None
        self._reconnect_attempt = 0

    @property
    def controller(self) -> SyncController:
        return self._controller

    @property
    def experience(self) -> ExperienceController:
        return self._experience

    @property
    def relay(self) -> RelayClient:
        return self._relay

    @property
    def local_element(self) -> MediaElement:
        return self._local_element

    @property
    def local_adapter(self) -> LocalPlayerAdapter:
        return self._local

    @property
    def remote_adapter(self) -> Optional[RemotePlayerAdapter]:
        return self._remote

    async def start(self) -> None:
        self._experience.enter()
        self._experience.entrance_complete()
        self._should_reconnect = True
        try:
            await self._relay.connect()
            self._reconnect_attempt = 0
        except (OSError, websockets.exceptions.WebSocketException) as exc:
            logger.warning("Relay unavailable (%s); will retry", exc)
            self._schedule_reconnect()

    async def stop(self) -> None:
        self._should_reconnect = False
        self._cancel_reconnect()
        self._cancel_credits()
        self._controller.close()
        await self._relay.close()

    def load_local_file(self, path: Path | str) -> bool:
        if not self._experience_accepts_media():
            return False
        try:
            source = LocalMediaSource.from_path(path)
        except FileNotFoundError:
            logger.warning("No file selected or file missing: %s", path)
            self._experience.show_status(f"File not found: {path}")
            return False
        self._cancel_credits()
        self._controller.activate(self._local)
        self._local.load(source)
        self._experience.local_loaded(source.title)
        self._controller.mark_experience_started()
        return True

    def load_remote_url(self, url: str) -> bool:
        if self._remote is None:
            self._experience.show_status(REMOTE_UNAVAILABLE_MESSAGE)
            return False
        video_id = extract_video_id(url)
        if video_id is None:
            logger.info("Rejected YouTube URL %r", url)
            self._experience.show_status(INVALID_URL_MESSAGE)
            return False
        if not self._experience_accepts_media():
            return False
        self._cancel_credits()
        self._controller.activate(self._remote)
        self._experience.remote_load_started(video_id)
        self._remote.load(video_id)
        return True

    def _experience_accepts_media(self) -> bool:
        if self._experience.accepts_media:
            return True
        logger.info("Ignoring media load while the experience is %s", self._experience.state.value)
        self._experience.show_status(NOT_READY_STATUS_TEXT)
        return False

    def _cancel_credits(self) -> None:
        if self._credits_handle is not None:
            self._credits_handle.cancel()
            self._credits_handle = None

    def _send_sync(self, message: SyncMessage) -> None:
        self._relay.send(message)

    def handle_relay_message(self, message: SyncMessage) -> None:
        self._controller.apply(message)

    def snapshot(self) -> Dict[str, object]:
        snapshot: Dict[str, object] = {
            "connected": self._relay.connected,
            "relay_url": self._relay.url,
        }
        snapshot.update(self._controller.snapshot())
        snapshot["experience"] = self._experience.snapshot()
        adapter = self._controller.active_adapter
        if adapter is not None:
            snapshot["position"] = adapter.current_time()
            snapshot["player_state"] = adapter.native_state().value
        return snapshot

    def _on_remote_first_playable(self, adapter: PlayerAdapter) -> None:
        if self._experience.first_playable():
            self._controller.mark_experience_started()

    def _on_experience_ended(self, backend: BackendKind) -> None:
        if not self._experience.playback_ended():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._experience.credits_finished()
            return
        self._credits_handle = loop.call_later(self._credits_duration, self._finish_credits)

    def _finish_credits(self) -> None:
        self._credits_handle = None
        if self._experience.state is ExperienceState.CREDITS:
            self._experience.credits_finished()

    def _cancel_reconnect(self) -> None:
        if self._reconnect_task is None:
            return
        task = self._reconnect_task
        self._reconnect_task = None
        task.cancel()

    def _schedule_reconnect(self) -> None:
        if not self._should_reconnect:
            return
        if self._reconnect_task and not self._reconnect_task.done():
            return
        delay = min(
            RECONNECT_BASE_DELAY_SECONDS * (2 ** self._reconnect_attempt),
            RECONNECT_MAX_DELAY_SECONDS,
        )
        self._reconnect_attempt += 1

        async def _worker(delay_seconds: float) -> None:
            try:
                if delay_seconds > 0:
                    await asyncio.sleep(delay_seconds)
                if not self._should_reconnect:
                    return
                await self._relay.connect()
                self._reconnect_attempt = 0
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Reconnect attempt failed")
                self._reconnect_task = None
                if self._should_reconnect:
                    self._schedule_reconnect()
            finally:
                if self._reconnect_task is asyncio.current_task():
                    self._reconnect_task = None

        self._reconnect_task = asyncio.create_task(_worker(delay))

    async def _on_relay_disconnect(self, reason: Optional[str]) -> None:
        if not self._should_reconnect:
            return
        logger.warning("Relay connection lost: %s", reason or "unknown")
        self._schedule_reconnect()
