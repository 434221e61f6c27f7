import asyncio

import pytest

from client import relay_client
from client.__main__ import HELP_TEXT, handle_command
from client.app import ViewerApp
from client.relay_client import RelayClient
from shared.protocol import SyncAction, SyncMessage, encode_sync_event


class DummyConnection:
    def __init__(self, frames: list[str]) -> None:
        self.frames = list(frames)
        self.sent: list[str] = []
        self.closed = False
        self.release = asyncio.Event()
        self.hold_open = False

    async def send(self, frame: str) -> None:
        self.sent.append(frame)

    async def close(self) -> None:
        self.closed = True

    def __aiter__(self):
        return self._frames()

    async def _frames(self):
        for frame in self.frames:
            await asyncio.sleep(0)
            yield frame
        if self.hold_open:
            await self.release.wait()


@pytest.fixture
def anyio_backend():
    return "asyncio"


def _patch_connect(monkeypatch, connection: DummyConnection) -> list[str]:
    urls: list[str] = []

    async def fake_connect(url: str) -> DummyConnection:
        urls.append(url)
        return connection

    monkeypatch.setattr(relay_client.websockets, "connect", fake_connect)
    return urls


@pytest.mark.anyio
async def test_malformed_frames_are_skipped_and_close_is_reported(monkeypatch) -> None:
    first = SyncMessage(action=SyncAction.PLAY, timestamp=1.5)
    second = SyncMessage(action=SyncAction.SEEK, timestamp=60.0)
    connection = DummyConnection([encode_sync_event(first), "garbage", '{"event":"chat"}', encode_sync_event(second)])
    urls = _patch_connect(monkeypatch, connection)
    received: list[SyncMessage] = []
    reasons: list[str | None] = []
    client = RelayClient("ws://relay.test/ws", received.append, on_disconnect=reasons.append)

    await client.connect()
    assert client.connected is True
    await asyncio.sleep(0.05)

    assert urls == ["ws://relay.test/ws"]
    assert received == [first, second]
    assert reasons == ["server_closed"]
    assert client.connected is False
    assert connection.closed is True


@pytest.mark.anyio
async def test_send_writes_encoded_frames_while_connected(monkeypatch) -> None:
    connection = DummyConnection([])
    connection.hold_open = True
    _patch_connect(monkeypatch, connection)
    client = RelayClient("ws://relay.test/ws", lambda message: None)
    message = SyncMessage(action=SyncAction.PAUSE, timestamp=7.25)

    await client.connect()
    assert client.send(message) is True
    await asyncio.sleep(0.01)

    assert connection.sent == [encode_sync_event(message)]

    await client.close()
    assert client.send(message) is False
    assert connection.sent == [encode_sync_event(message)]


def test_send_before_connect_is_dropped() -> None:
    client = RelayClient("ws://relay.test/ws", lambda message: None)

    assert client.connected is False
    assert client.send(SyncMessage(action=SyncAction.PLAY, timestamp=0.0)) is False


def test_console_commands_drive_the_local_player(tmp_path, capsys) -> None:
    movie = tmp_path / "movie.mp4"
    movie.write_bytes(b"\x00")
    app = ViewerApp("ws://relay.test/ws")
    app.experience.enter()
    app.experience.entrance_complete()

    assert handle_command(app, f"load {movie}") is True
    assert handle_command(app, "seek 12.5") is True
    assert app.local_element.current_time == pytest.approx(12.5)
    assert handle_command(app, "play") is True
    assert app.local_element.paused is False
    assert handle_command(app, "pause") is True
    assert app.local_element.paused is True

    assert handle_command(app, "seek soon") is True
    assert handle_command(app, "dance") is True
    output = capsys.readouterr().out
    assert "seek expects a number of seconds" in output
    assert HELP_TEXT in output

    assert handle_command(app, "   ") is True
    assert handle_command(app, "quit") is False
