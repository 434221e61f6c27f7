"""Player adapters unifying the local media element and the embedded player.

Both backends expose the same capability set to the sync controller: play,
pause, seek, current time, native state, and a notification channel for
user-driven actions. Backend differences (readiness, buffering, redundant
call avoidance) stay inside the adapters.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Protocol

from shared.protocol import SyncAction

from .callbacks import invoke_callback
from .media import LocalMediaSource

logger = logging.getLogger(__name__)


class PlayerState(str, Enum):
    """Native playback state reported by a backend."""

    UNSTARTED = "unstarted"
    PLAYING = "playing"
    PAUSED = "paused"
    BUFFERING = "buffering"
    ENDED = "ended"

    @classmethod
    def from_youtube_code(cls, code: int) -> "PlayerState":
        """Map an IFrame API ``onStateChange`` code to a state.

        Cued videos (5) have not started playing and map to ``UNSTARTED``.
        """

        return _YOUTUBE_STATE_CODES.get(code, cls.UNSTARTED)


_YOUTUBE_STATE_CODES = {
    -1: PlayerState.UNSTARTED,
    0: PlayerState.ENDED,
    1: PlayerState.PLAYING,
    2: PlayerState.PAUSED,
    3: PlayerState.BUFFERING,
    5: PlayerState.UNSTARTED,
}


class BackendKind(str, Enum):
    NONE = "none"
    LOCAL = "local"
    REMOTE = "remote"


UserActionCallback = Callable[["PlayerAdapter", SyncAction], Awaitable[None] | None]
AdapterCallback = Callable[["PlayerAdapter"], Awaitable[None] | None]


class MediaElement(Protocol):
    """Subset of an HTML media element the local adapter relies on."""

    src: Optional[str]
    hidden: bool
    current_time: float

    @property
    def paused(self) -> bool: ...

    @property
    def ended(self) -> bool: ...

    def load(self, src: str) -> None: ...

    def play(self) -> None: ...

    def pause(self) -> None: ...

    def add_listener(self, event: str, callback: Callable[[], None]) -> None: ...


class EmbeddedPlayer(Protocol):
    """Subset of a third-party embedded player (YouTube IFrame style).

    The host forwards the player's ready and state-change events to
    :meth:`RemotePlayerAdapter.handle_ready` and
    :meth:`RemotePlayerAdapter.handle_state_change`.
    """

    def load_video_by_id(self, video_id: str) -> None: ...

    def play_video(self) -> None: ...

    def pause_video(self) -> None: ...

    def seek_to(self, seconds: float, allow_seek_ahead: bool) -> None: ...

    def get_current_time(self) -> float: ...

    def get_player_state(self) -> PlayerState: ...

    def set_visible(self, visible: bool) -> None: ...


class PlayerAdapter(ABC):
    """Common contract consumed by the sync controller."""

    kind: BackendKind = BackendKind.NONE

    def __init__(self) -> None:
        self._active = False
        self._visible = False
        self._user_action_listeners: List[UserActionCallback] = []
        self._ended_listeners: List[AdapterCallback] = []

    @property
    def active(self) -> bool:
        return self._active

    @property
    def visible(self) -> bool:
        return self._visible

    @property
    @abstractmethod
    def is_ready(self) -> bool:
        """Whether play/pause/seek can currently reach the backend."""

    @abstractmethod
    def play(self) -> None: ...

    @abstractmethod
    def pause(self) -> None: ...

    @abstractmethod
    def seek(self, seconds: float) -> None: ...

    @abstractmethod
    def current_time(self) -> float: ...

    @abstractmethod
    def native_state(self) -> PlayerState: ...

    def already_in_state(self, action: SyncAction) -> bool:
        """Return True when issuing ``action`` would not change playback."""
        return False

    def on_user_action(self, callback: UserActionCallback) -> None:
        self._user_action_listeners.append(callback)

    def on_ended(self, callback: AdapterCallback) -> None:
        self._ended_listeners.append(callback)

    def activate(self) -> None:
        self._active = True
        self._set_visible(True)
        logger.debug("%s backend activated", self.kind.value)

    def deactivate(self) -> None:
        if not self._active and not self._visible:
            return
        self._active = False
        self._release()
        self._set_visible(False)
        logger.debug("%s backend deactivated", self.kind.value)

    def _set_visible(self, visible: bool) -> None:
        self._visible = visible

    def _release(self) -> None:
        """Stop backend playback when another backend takes over."""

    def _emit_user_action(self, action: SyncAction) -> None:
        if not self._active:
            return
        for callback in list(self._user_action_listeners):
            invoke_callback(callback, self, action, description=f"{self.kind.value} {action.value} listener")

    def _emit_ended(self) -> None:
        if not self._active:
            return
        for callback in list(self._ended_listeners):
            invoke_callback(callback, self, description=f"{self.kind.value} ended listener")


class LocalPlayerAdapter(PlayerAdapter):
    """Adapter over a media element playing a file picked by the user."""

    kind = BackendKind.LOCAL

    def __init__(self, element: MediaElement) -> None:
        super().__init__()
        self._element = element
        self._source: Optional[LocalMediaSource] = None
        element.add_listener("play", lambda: self._emit_user_action(SyncAction.PLAY))
        element.add_listener("pause", lambda: self._emit_user_action(SyncAction.PAUSE))
        element.add_listener("seeked", lambda: self._emit_user_action(SyncAction.SEEK))
        element.add_listener("ended", self._emit_ended)
        element.hidden = True

    @property
    def source(self) -> Optional[LocalMediaSource]:
        return self._source

    @property
    def is_ready(self) -> bool:
        return self._source is not None

    def load(self, source: LocalMediaSource) -> None:
        self._source = source
        self._element.load(source.reference)
        logger.info("Movie '%s' loaded successfully!", source.title)

    def play(self) -> None:
        self._element.play()

    def pause(self) -> None:
        self._element.pause()

    def seek(self, seconds: float) -> None:
        self._element.current_time = seconds

    def current_time(self) -> float:
        return float(self._element.current_time)

    def native_state(self) -> PlayerState:
        if self._source is None:
            return PlayerState.UNSTARTED
        if self._element.ended:
            return PlayerState.ENDED
        if self._element.paused:
            return PlayerState.PAUSED
        return PlayerState.PLAYING

    def _set_visible(self, visible: bool) -> None:
        super()._set_visible(visible)
        self._element.hidden = not visible

    def _release(self) -> None:
        if self._source is not None and not self._element.paused:
            self._element.pause()


class RemotePlayerAdapter(PlayerAdapter):
    """Adapter over an embedded player that becomes usable asynchronously.

    Loads requested before the player is ready are kept in a single slot; a
    newer request replaces an older one and only the last is loaded once the
    ready event arrives. Sync commands issued before readiness are dropped.
    """

    kind = BackendKind.REMOTE

    def __init__(self, player: EmbeddedPlayer) -> None:
        super().__init__()
        self._player = player
        self._ready = False
        self._pending_video_id: Optional[str] = None
        self._video_id: Optional[str] = None
        self._awaiting_first_playable = False
        self._settled_state = PlayerState.UNSTARTED
        self._first_playable_listeners: List[AdapterCallback] = []
        player.set_visible(False)

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def pending_video_id(self) -> Optional[str]:
        return self._pending_video_id

    @property
    def video_id(self) -> Optional[str]:
        return self._video_id

    def on_first_playable(self, callback: AdapterCallback) -> None:
        self._first_playable_listeners.append(callback)

    def load(self, video_id: str) -> None:
        if not self._ready:
            if self._pending_video_id is not None:
                logger.debug("Replacing pending video %s with %s", self._pending_video_id, video_id)
            self._pending_video_id = video_id
            logger.info("Player not ready; buffering video %s", video_id)
            return
        self._start_load(video_id)

    def handle_ready(self) -> None:
        if self._ready:
            return
        self._ready = True
        logger.info("Embedded player ready")
        video_id = self._pending_video_id
        self._pending_video_id = None
        if video_id is not None:
            self._start_load(video_id)

    def handle_state_change(self, state: PlayerState) -> None:
        if self._awaiting_first_playable and state in (PlayerState.PLAYING, PlayerState.BUFFERING):
            self._awaiting_first_playable = False
            self._settled_state = PlayerState.PLAYING
            for callback in list(self._first_playable_listeners):
                invoke_callback(callback, self, description="first playable listener")
            return
        if state == PlayerState.PLAYING:
            resumed_after_buffering = self._settled_state == PlayerState.PLAYING
            self._settled_state = state
            if not resumed_after_buffering:
                self._emit_user_action(SyncAction.PLAY)
        elif state == PlayerState.PAUSED:
            self._settled_state = state
            self._emit_user_action(SyncAction.PAUSE)
        elif state == PlayerState.ENDED:
            self._settled_state = state
            self._emit_ended()
        elif state == PlayerState.UNSTARTED:
            self._settled_state = state

    def play(self) -> None:
        if not self._ready:
            return
        self._player.play_video()

    def pause(self) -> None:
        if not self._ready:
            return
        self._player.pause_video()

    def seek(self, seconds: float) -> None:
        if not self._ready:
            return
        self._player.seek_to(seconds, True)

    def current_time(self) -> float:
        if not self._ready:
            return 0.0
        return float(self._player.get_current_time())

    def native_state(self) -> PlayerState:
        if not self._ready:
            return PlayerState.UNSTARTED
        return self._player.get_player_state()

    def already_in_state(self, action: SyncAction) -> bool:
        state = self.native_state()
        if action is SyncAction.PLAY:
            return state == PlayerState.PLAYING
        if action is SyncAction.PAUSE:
            return state == PlayerState.PAUSED
        return False

    def _start_load(self, video_id: str) -> None:
        self._video_id = video_id
        self._awaiting_first_playable = True
        self._settled_state = PlayerState.UNSTARTED
        logger.info("Loading YouTube video %s", video_id)
        self._player.load_video_by_id(video_id)

    def _set_visible(self, visible: bool) -> None:
        super()._set_visible(visible)
        self._player.set_visible(visible)

    def _release(self) -> None:
        self._pending_video_id = None
        self._awaiting_first_playable = False
        if self._ready and self._player.get_player_state() in (PlayerState.PLAYING, PlayerState.BUFFERING):
            self._player.pause_video()
