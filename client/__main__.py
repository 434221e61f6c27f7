from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from shared.protocol import DEFAULT_RELAY_PATH, DEFAULT_RELAY_PORT

from .app import ViewerApp
from .media import ClockMediaElement

logger = logging.getLogger(__name__)

HELP_TEXT = "commands: play | pause | seek <seconds> | load <path> | status | quit"


def handle_command(app: ViewerApp, line: str) -> bool:
    """Apply one console command as if the viewer used the player controls.

    Returns False when the session should end.
    """

    parts = line.strip().split(maxsplit=1)
    if not parts:
        return True
    command = parts[0].lower()
    argument = parts[1] if len(parts) > 1 else ""
    element = app.local_element

    if command in {"quit", "exit"}:
        return False
    if command == "play":
        element.play()
    elif command == "pause":
        element.pause()
    elif command == "seek":
        try:
            element.current_time = float(argument)
        except ValueError:
            print("seek expects a number of seconds")
    elif command == "load":
        if not app.load_local_file(argument):
            print(app.experience.status_text)
    elif command == "status":
        print(json.dumps(app.snapshot(), indent=2, default=str))
    else:
        print(HELP_TEXT)
    return True


async def _console(app: ViewerApp) -> None:
    loop = asyncio.get_running_loop()
    print(HELP_TEXT)
    while True:
        line = await loop.run_in_executor(None, sys.stdin.readline)
        if not line:
            break
        if not handle_command(app, line):
            break


async def _run(args: argparse.Namespace) -> None:
    element = ClockMediaElement(duration=args.duration)
    app = ViewerApp(args.relay_url, local_element=element, quiescence_window=args.quiescence)
    await app.start()
    try:
        if args.file and not app.load_local_file(args.file):
            logger.error("%s", app.experience.status_text)
        if args.no_console:
            await asyncio.Event().wait()
        else:
            await _console(app)
    finally:
        await app.stop()


def main() -> None:
    parser = argparse.ArgumentParser(description="Headless movie sync viewer")
    parser.add_argument(
        "relay_url",
        nargs="?",
        default=f"ws://127.0.0.1:{DEFAULT_RELAY_PORT}{DEFAULT_RELAY_PATH}",
        help="WebSocket URL of the relay server",
    )
    parser.add_argument("--file", help="Local movie file to load on start")
    parser.add_argument("--duration", type=float, default=None, help="Length in seconds of the local movie")
    parser.add_argument(
        "--no-console",
        action="store_true",
        help="Follow the room without reading commands from stdin",
    )
    parser.add_argument(
        "--quiescence",
        type=float,
        default=None,
        help="Seconds to ignore player events after applying a peer's action",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    args = parser.parse_args()

    log_level = getattr(logging, str(args.log_level).upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
    )

    try:
        asyncio.run(_run(args))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
