from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
from pathlib import Path

from shared.protocol import DEFAULT_RELAY_PORT
from shared.resource_paths import static_bundle_dir

from server.app import RelayServer

logger = logging.getLogger(__name__)


def _default_port() -> int:
    raw = os.environ.get("PORT")
    if not raw:
        return DEFAULT_RELAY_PORT
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric PORT=%r", raw)
        return DEFAULT_RELAY_PORT


def _configure_logging(args: argparse.Namespace) -> None:
    log_handlers: list[logging.Handler] = [logging.StreamHandler()]
    if args.log_file:
        from logging.handlers import RotatingFileHandler

        args.log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            args.log_file,
            maxBytes=max(1024, args.log_max_bytes),
            backupCount=max(1, args.log_backup_count),
        )
        file_handler.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s %(name)s: %(message)s"))
        log_handlers.append(file_handler)

    logging.basicConfig(
        level=getattr(logging, args.log_level, logging.INFO),
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        handlers=log_handlers,
        force=True,
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Movie sync relay server")
    parser.add_argument("--host", default="0.0.0.0", help="Host/IP to bind the relay server")
    parser.add_argument("--port", type=int, default=_default_port(), help="HTTP/WebSocket port (defaults to $PORT)")
    parser.add_argument(
        "--static-dir",
        type=Path,
        default=static_bundle_dir(),
        help=(
            "Directory holding the browser client bundle. No bundle ships with the "
            "server; without one only the /ws relay socket is served"
        ),
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        default="INFO",
        choices=["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET"],
        help="Logging verbosity",
    )
    parser.add_argument("--log-file", type=Path, default=None, help="Optional path to a rotating log file")
    parser.add_argument("--log-max-bytes", type=int, default=5 * 1024 * 1024, help="Max size of the log file before rotation")
    parser.add_argument("--log-backup-count", type=int, default=5, help="Number of rotated log files to retain")
    return parser


async def main() -> None:
    args = _build_parser().parse_args()

    _configure_logging(args)

    relay_server = RelayServer(args.host, args.port, static_root=args.static_dir)

    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("Shutdown signal received")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            asyncio.get_running_loop().add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Signals aren't implemented on Windows for ProactorEventLoop; fallback to keyboard interrupt.
            pass

    await relay_server.start()
    logger.info("Access the app by opening http://127.0.0.1:%s in your browser", args.port)

    await stop_event.wait()

    logger.info("Shutdown signal processed; stopping relay")
    try:
        await relay_server.stop()
    except Exception:
        logger.exception("Error stopping relay server")

    logger.info("Shutdown complete")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
