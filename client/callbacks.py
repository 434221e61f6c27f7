from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

Callback = Callable[..., Awaitable[None] | None]


def invoke_callback(callback: Callback, *args: Any, description: str = "callback") -> None:
    """Call a listener, scheduling it on the loop when it returns a coroutine.

    Listener failures are logged and never propagate into the caller, so one
    broken subscriber cannot interrupt playback event delivery.
    """

    try:
        result = callback(*args)
    except Exception:
        logger.exception("%s failed", description)
        return
    if asyncio.iscoroutine(result):
        task = asyncio.ensure_future(result)
        task.add_done_callback(lambda done: _log_task_failure(done, description))


def _log_task_failure(task: "asyncio.Future[Any]", description: str) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("%s failed", description, exc_info=exc)
