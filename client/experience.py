from __future__ import annotations

import logging
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional

from .callbacks import invoke_callback
from .players import BackendKind

logger = logging.getLogger(__name__)

DEFAULT_STATUS_TEXT = "Choose a movie file or paste a YouTube link"
REMOTE_LOADING_STATUS_TEXT = "Loading video..."
NOT_READY_STATUS_TEXT = "Hold on, the cinema is still opening"


class ExperienceState(str, Enum):
    NOT_STARTED = "not_started"
    ENTERING = "entering"
    LOADER_VISIBLE = "loader_visible"
    PLAYING = "playing"
    CREDITS = "credits"


_LOADABLE_STATES = frozenset(
    {ExperienceState.LOADER_VISIBLE, ExperienceState.PLAYING, ExperienceState.CREDITS}
)


TransitionCallback = Callable[[ExperienceState, ExperienceState], Awaitable[None] | None]


class ExperienceController:
    """Presentation state machine around playback.

    It decides what the viewer sees (entrance, loader, movie, credits) and the
    scene flags that go with it. It only reads which backend is active and
    never touches sync messages.
    """

    def __init__(self, backend_query: Callable[[], BackendKind]) -> None:
        self._backend_query = backend_query
        self._state = ExperienceState.NOT_STARTED
        self._status_text = DEFAULT_STATUS_TEXT
        self._media_title: Optional[str] = None
        self._lights_on = True
        self._parallax_allowed = False
        self._awaiting_remote_start = False
        self._listeners: List[TransitionCallback] = []

    @property
    def state(self) -> ExperienceState:
        return self._state

    @property
    def status_text(self) -> str:
        return self._status_text

    @property
    def media_title(self) -> Optional[str]:
        return self._media_title

    @property
    def lights_on(self) -> bool:
        return self._lights_on

    @property
    def parallax_allowed(self) -> bool:
        return self._parallax_allowed

    @property
    def accepts_media(self) -> bool:
        """True once the entrance is over; new media may replace a movie or its credits."""
        return self._state in _LOADABLE_STATES

    def add_listener(self, callback: TransitionCallback) -> None:
        self._listeners.append(callback)

    def enter(self) -> bool:
        if self._state is not ExperienceState.NOT_STARTED:
            return False
        self._parallax_allowed = False
        self._transition(ExperienceState.ENTERING)
        return True

    def entrance_complete(self) -> bool:
        if self._state is not ExperienceState.ENTERING:
            return False
        self._parallax_allowed = True
        self._transition(ExperienceState.LOADER_VISIBLE)
        return True

    def local_loaded(self, title: str) -> bool:
        if not self.accepts_media:
            return False
        self._awaiting_remote_start = False
        self._media_title = title
        self._status_text = DEFAULT_STATUS_TEXT
        self._lights_on = False
        self._parallax_allowed = False
        self._transition(ExperienceState.PLAYING)
        return True

    def remote_load_started(self, video_id: str) -> bool:
        if not self.accepts_media:
            return False
        self._awaiting_remote_start = True
        self._media_title = video_id
        self._status_text = REMOTE_LOADING_STATUS_TEXT
        self._transition(ExperienceState.LOADER_VISIBLE)
        return True

    def first_playable(self) -> bool:
        if not self._awaiting_remote_start or self._state is not ExperienceState.LOADER_VISIBLE:
            return False
        if self._backend_query() is not BackendKind.REMOTE:
            return False
        self._awaiting_remote_start = False
        self._status_text = DEFAULT_STATUS_TEXT
        self._lights_on = False
        self._parallax_allowed = False
        self._transition(ExperienceState.PLAYING)
        return True

    def playback_ended(self) -> bool:
        if self._state is not ExperienceState.PLAYING:
            return False
        logger.info("Movie ended, running credits.")
        self._awaiting_remote_start = False
        self._lights_on = True
        self._parallax_allowed = True
        self._transition(ExperienceState.CREDITS)
        return True

    def credits_finished(self) -> bool:
        if self._state is not ExperienceState.CREDITS:
            return False
        self._transition(ExperienceState.LOADER_VISIBLE)
        return True

    def show_status(self, message: str) -> None:
        self._status_text = message

    def snapshot(self) -> Dict[str, object]:
        return {
            "state": self._state.value,
            "status_text": self._status_text,
            "media_title": self._media_title,
            "lights_on": self._lights_on,
            "parallax_allowed": self._parallax_allowed,
            "backend": self._backend_query().value,
        }

    def _transition(self, new_state: ExperienceState) -> None:
        previous = self._state
        if previous is new_state:
            return
        self._state = new_state
        logger.debug("Experience %s -> %s", previous.value, new_state.value)
        for callback in list(self._listeners):
            invoke_callback(callback, previous, new_state, description="experience listener")
