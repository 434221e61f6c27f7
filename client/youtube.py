from __future__ import annotations

import re
from typing import Optional

INVALID_URL_MESSAGE = "Invalid YouTube URL. Please paste a full video link."

_VIDEO_ID_PATTERNS = (
    re.compile(r"^(?:https?://)?(?:[\w-]+\.)?youtube\.com/watch/?\?(?:[^#]*&)?v=([^&#/?]+)", re.IGNORECASE),
    re.compile(r"^(?:https?://)?(?:www\.)?youtu\.be/([^?&#/]+)", re.IGNORECASE),
    re.compile(r"^(?:https?://)?(?:[\w-]+\.)?youtube(?:-nocookie)?\.com/embed/([^?&#/]+)", re.IGNORECASE),
)


def extract_video_id(url: str) -> Optional[str]:
    """Return the video id from a watch, short or embed URL, or ``None``."""

    if not url:
        return None
    candidate = url.strip()
    for pattern in _VIDEO_ID_PATTERNS:
        match = pattern.match(candidate)
        if match:
            return match.group(1)
    return None
