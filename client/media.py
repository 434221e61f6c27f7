from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

MEDIA_EVENTS = ("play", "pause", "seeked", "ended")


@dataclass(slots=True, frozen=True)
class LocalMediaSource:
    """A user-selected file bound to a session-local reference.

    The reference is what the media element is pointed at. It is generated per
    load, is meaningless outside this process and is never sent to the relay.
    """

    path: Path
    reference: str = field(default_factory=lambda: f"blob:local/{uuid.uuid4()}")

    @property
    def title(self) -> str:
        return self.path.name

    @classmethod
    def from_path(cls, path: Path | str) -> "LocalMediaSource":
        resolved = Path(path).expanduser()
        if not resolved.is_file():
            raise FileNotFoundError(f"No media file at {resolved}")
        return cls(path=resolved.resolve())


class ClockMediaElement:
    """Headless media element whose position advances with a monotonic clock.

    Mirrors the observable behaviour of a browser media element: property
    writes and play/pause calls take effect immediately while the matching
    ``play``/``pause``/``seeked``/``ended`` notifications are delivered on a
    later loop iteration.
    """

    def __init__(self, duration: Optional[float] = None, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.src: Optional[str] = None
        self.hidden = False
        self._duration = duration
        self._clock = clock
        self._position = 0.0
        self._started_at: Optional[float] = None
        self._ended = False
        self._end_handle: Optional[asyncio.TimerHandle] = None
        self._listeners: Dict[str, List[Callable[[], None]]] = {event: [] for event in MEDIA_EVENTS}

    @property
    def duration(self) -> Optional[float]:
        return self._duration

    @property
    def paused(self) -> bool:
        return self._started_at is None

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def current_time(self) -> float:
        position = self._position
        if self._started_at is not None:
            position += self._clock() - self._started_at
        return self._clamp(position)

    @current_time.setter
    def current_time(self, value: float) -> None:
        self._position = self._clamp(float(value))
        self._ended = False
        if self._started_at is not None:
            self._started_at = self._clock()
            self._schedule_end()
        self._dispatch("seeked")

    def add_listener(self, event: str, callback: Callable[[], None]) -> None:
        if event not in self._listeners:
            raise ValueError(f"Unsupported media event {event!r}")
        self._listeners[event].append(callback)

    def load(self, src: str, duration: Optional[float] = None) -> None:
        self._cancel_end()
        self.src = src
        if duration is not None:
            self._duration = duration
        self._position = 0.0
        self._started_at = None
        self._ended = False

    def play(self) -> None:
        if self.src is None or not self.paused:
            return
        if self._ended:
            self._position = 0.0
            self._ended = False
        self._started_at = self._clock()
        self._schedule_end()
        self._dispatch("play")

    def pause(self) -> None:
        if self.paused:
            return
        self._position = self.current_time
        self._started_at = None
        self._cancel_end()
        self._dispatch("pause")

    def _clamp(self, position: float) -> float:
        position = max(0.0, position)
        if self._duration is not None:
            position = min(position, self._duration)
        return position

    def _schedule_end(self) -> None:
        self._cancel_end()
        if self._duration is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        remaining = max(0.0, self._duration - self.current_time)
        self._end_handle = loop.call_later(remaining, self._reach_end)

    def _cancel_end(self) -> None:
        if self._end_handle is not None:
            self._end_handle.cancel()
            self._end_handle = None

    def _reach_end(self) -> None:
        self._end_handle = None
        if self._duration is not None:
            self._position = self._duration
        self._started_at = None
        self._ended = True
        self._dispatch("pause")
        self._dispatch("ended")

    def _dispatch(self, event: str) -> None:
        listeners = list(self._listeners[event])
        if not listeners:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        for callback in listeners:
            if loop is None:
                self._invoke(callback, event)
            else:
                loop.call_soon(self._invoke, callback, event)

    @staticmethod
    def _invoke(callback: Callable[[], None], event: str) -> None:
        try:
            callback()
        except Exception:
            logger.exception("Media '%s' listener failed", event)
