"""Launch the relay server plus several headless viewers on one machine."""
from __future__ import annotations

import argparse
import atexit
import signal
import subprocess
import sys
import time
from pathlib import Path

ProcessRecord = tuple[str, subprocess.Popen]

PROCESSES: list[ProcessRecord] = []


def _register_process(name: str, proc: subprocess.Popen) -> None:
    PROCESSES.append((name, proc))


def _terminate_process(proc: subprocess.Popen, timeout: float) -> None:
    if proc.poll() is not None:
        return
    proc.terminate()
    try:
        proc.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        proc.kill()


def _cleanup() -> None:
    while PROCESSES:
        name, proc = PROCESSES.pop()
        try:
            _terminate_process(proc, timeout=5.0)
        except Exception as exc:
            print(f"Failed to stop {name}: {exc}")


def _handle_signal(signum: int, frame: object) -> None:  # pragma: no cover - signal runtime
    _cleanup()
    sys.exit(0)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Launch a relay and multiple headless viewers")
    parser.add_argument("--python", default=sys.executable, help="Python interpreter to use for subprocesses")
    parser.add_argument("--host", default="127.0.0.1", help="Host the relay binds and viewers connect to")
    parser.add_argument("--port", type=int, default=3000, help="Relay port")
    parser.add_argument("--viewers", type=int, default=2, help="Number of headless viewers to launch")
    parser.add_argument("--file", help="Movie file every viewer loads on start")
    parser.add_argument("--duration", type=float, default=None, help="Length in seconds of the movie")
    parser.add_argument("--viewer-delay", type=float, default=0.2, help="Delay between starting viewers")
    parser.add_argument("--server-startup-delay", type=float, default=1.5, help="Delay before launching viewers")
    parser.add_argument("--log-level", default="INFO", help="Log level passed to every process")
    parser.add_argument("--workspace", default=str(Path(__file__).resolve().parent.parent), help="Working directory")
    return parser.parse_args()


def _launch_process(name: str, cmd: list[str], cwd: str) -> subprocess.Popen:
    proc = subprocess.Popen(cmd, cwd=cwd, stdin=subprocess.DEVNULL)
    _register_process(name, proc)
    return proc


def main() -> None:
    args = _parse_args()
    atexit.register(_cleanup)

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            signal.signal(sig, _handle_signal)
        except (OSError, ValueError):
            pass

    workdir = args.workspace
    server_cmd = [
        args.python,
        "-m",
        "server",
        "--host",
        args.host,
        "--port",
        str(args.port),
        "--log-level",
        args.log_level,
    ]
    print(f"Starting relay: {' '.join(server_cmd)}")
    _launch_process("relay", server_cmd, cwd=workdir)

    time.sleep(max(args.server_startup_delay, 0.0))

    relay_url = f"ws://{args.host}:{args.port}/ws"
    for index in range(args.viewers):
        viewer_cmd = [args.python, "-m", "client", relay_url, "--no-console", "--log-level", args.log_level]
        if args.file:
            viewer_cmd.extend(["--file", args.file])
        if args.duration is not None:
            viewer_cmd.extend(["--duration", str(args.duration)])
        print(f"Starting viewer {index + 1}/{args.viewers}")
        _launch_process(f"viewer-{index + 1}", viewer_cmd, cwd=workdir)
        time.sleep(max(args.viewer_delay, 0.0))

    print("All processes started. Press Ctrl+C to stop everything.")

    try:
        while True:
            time.sleep(1.0)
    except KeyboardInterrupt:
        pass
    finally:
        _cleanup()


if __name__ == "__main__":
    main()
