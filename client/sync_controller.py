"""Playback synchronization protocol.

Outbound: a user-driven play, pause or seek on the active adapter becomes a
``SyncMessage`` pinned to the adapter's current position, unless echo
suppression is in force.

Inbound: echo suppression is raised before anything touches the backend,
the absolute position is applied before play or pause, and suppression is
released only after the quiescence window, by which time the backend's own
notifications for the programmatic change have been delivered and ignored.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Set

from shared.protocol import DEFAULT_QUIESCENCE_SECONDS, SyncAction, SyncMessage

from .callbacks import invoke_callback
from .players import BackendKind, PlayerAdapter

logger = logging.getLogger(__name__)

SendCallback = Callable[[SyncMessage], Awaitable[None] | None]
ExperienceCallback = Callable[[BackendKind], Awaitable[None] | None]


class SyncController:
    """Owns the active backend and the echo-suppression flag for one client."""

    def __init__(
        self,
        send: SendCallback,
        *,
        quiescence_window: float = DEFAULT_QUIESCENCE_SECONDS,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        if quiescence_window < 0:
            raise ValueError("quiescence_window must be non-negative")
        self._send = send
        self._quiescence_window = quiescence_window
        self._loop = loop
        self._echo_suppressed = False
        self._release_handle: Optional[asyncio.TimerHandle] = None
        self._active: Optional[PlayerAdapter] = None
        self._experience_started = False
        self._subscribed: Set[int] = set()
        self._started_listeners: List[ExperienceCallback] = []
        self._ended_listeners: List[ExperienceCallback] = []

    @property
    def echo_suppressed(self) -> bool:
        return self._echo_suppressed

    @property
    def quiescence_window(self) -> float:
        return self._quiescence_window

    @property
    def active_adapter(self) -> Optional[PlayerAdapter]:
        return self._active

    @property
    def active_backend(self) -> BackendKind:
        if self._active is None:
            return BackendKind.NONE
        return self._active.kind

    @property
    def experience_started(self) -> bool:
        return self._experience_started

    def on_experience_started(self, callback: ExperienceCallback) -> None:
        self._started_listeners.append(callback)

    def on_experience_ended(self, callback: ExperienceCallback) -> None:
        self._ended_listeners.append(callback)

    def activate(self, adapter: PlayerAdapter) -> None:
        """Make ``adapter`` the only backend that sends and receives sync events."""

        if adapter is self._active:
            return
        self.deactivate()
        if id(adapter) not in self._subscribed:
            adapter.on_user_action(self.handle_player_event)
            adapter.on_ended(self._handle_ended)
            self._subscribed.add(id(adapter))
        adapter.activate()
        self._active = adapter
        logger.info("Active backend is now %s", adapter.kind.value)

    def deactivate(self) -> None:
        adapter = self._active
        if adapter is None:
            return
        self._active = None
        self._experience_started = False
        adapter.deactivate()
        logger.info("Deactivated %s backend", adapter.kind.value)

    def mark_experience_started(self) -> None:
        if self._active is None or self._experience_started:
            return
        self._experience_started = True
        backend = self._active.kind
        logger.info("Experience started on %s backend", backend.value)
        for callback in list(self._started_listeners):
            invoke_callback(callback, backend, description="experience started listener")

    def handle_player_event(self, adapter: PlayerAdapter, action: SyncAction) -> None:
        """Turn a native player notification into an outbound sync message."""

        if self._echo_suppressed:
            logger.debug("Suppressed echo of %s", action.value)
            return
        if adapter is not self._active:
            return
        message = SyncMessage(action=action, timestamp=adapter.current_time())
        logger.info("Action (SEND): %s at %.3fs", message.action.value, message.timestamp)
        invoke_callback(self._send, message, description="sync send")

    def apply(self, message: SyncMessage) -> bool:
        """Apply a peer's sync message to the active backend.

        Returns False when the message was dropped because no backend is active
        or the active backend cannot take commands yet.
        """

        adapter = self._active
        if adapter is None:
            logger.debug("No active backend; ignoring %s", message.action.value)
            return False
        if not adapter.is_ready:
            logger.debug("%s backend not ready; dropping %s", adapter.kind.value, message.action.value)
            return False

        self._suppress_echo()
        logger.info("Action (RECEIVE): %s to %.3fs", message.action.value, message.timestamp)
        adapter.seek(message.timestamp)
        if message.action is SyncAction.PLAY:
            if not adapter.already_in_state(SyncAction.PLAY):
                adapter.play()
        elif message.action is SyncAction.PAUSE:
            if not adapter.already_in_state(SyncAction.PAUSE):
                adapter.pause()
        return True

    def snapshot(self) -> Dict[str, object]:
        return {
            "active_backend": self.active_backend.value,
            "echo_suppressed": self._echo_suppressed,
            "experience_started": self._experience_started,
            "quiescence_window": self._quiescence_window,
        }

    def close(self) -> None:
        if self._release_handle is not None:
            self._release_handle.cancel()
            self._release_handle = None
        self._echo_suppressed = False

    def _suppress_echo(self) -> None:
        self._echo_suppressed = True
        if self._release_handle is not None:
            self._release_handle.cancel()
        loop = self._loop or asyncio.get_running_loop()
        self._release_handle = loop.call_later(self._quiescence_window, self._release_echo)

    def _release_echo(self) -> None:
        self._release_handle = None
        self._echo_suppressed = False

    def _handle_ended(self, adapter: PlayerAdapter) -> None:
        if adapter is not self._active:
            return
        backend = adapter.kind
        logger.info("Playback ended on %s backend", backend.value)
        self.deactivate()
        for callback in list(self._ended_listeners):
            invoke_callback(callback, backend, description="experience ended listener")
