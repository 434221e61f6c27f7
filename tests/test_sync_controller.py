import asyncio
from typing import Optional

import pytest

from client.players import BackendKind, PlayerAdapter, PlayerState, RemotePlayerAdapter
from client.sync_controller import SyncController
from shared.protocol import SyncAction, SyncMessage


class RecordingAdapter(PlayerAdapter):
    """Backend double that echoes programmatic changes like a real player."""

    kind = BackendKind.LOCAL

    def __init__(self, *, ready: bool = True, echo_delay: Optional[float] = None) -> None:
        super().__init__()
        self.calls: list[tuple] = []
        self.position = 0.0
        self.ready = ready
        self.echo_delay = echo_delay
        self.controller: Optional[SyncController] = None
        self.suppressed_during_mutation: list[bool] = []

    @property
    def is_ready(self) -> bool:
        return self.ready

    def play(self) -> None:
        self._record("play")
        self._echo(SyncAction.PLAY)

    def pause(self) -> None:
        self._record("pause")
        self._echo(SyncAction.PAUSE)

    def seek(self, seconds: float) -> None:
        self._record("seek", seconds)
        self.position = seconds
        self._echo(SyncAction.SEEK)

    def current_time(self) -> float:
        return self.position

    def native_state(self) -> PlayerState:
        return PlayerState.PAUSED

    def user(self, action: SyncAction, position: float) -> None:
        self.position = position
        self._emit_user_action(action)

    def _record(self, *call: object) -> None:
        self.calls.append(call)
        if self.controller is not None:
            self.suppressed_during_mutation.append(self.controller.echo_suppressed)

    def _echo(self, action: SyncAction) -> None:
        if self.echo_delay is None:
            self._emit_user_action(action)
        else:
            asyncio.get_running_loop().call_later(self.echo_delay, self._emit_user_action, action)


class FakeEmbeddedPlayer:
    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.state = PlayerState.UNSTARTED
        self.position = 0.0

    def load_video_by_id(self, video_id: str) -> None:
        self.calls.append(("load", video_id))

    def play_video(self) -> None:
        self.calls.append(("play",))
        self.state = PlayerState.PLAYING

    def pause_video(self) -> None:
        self.calls.append(("pause",))
        self.state = PlayerState.PAUSED

    def seek_to(self, seconds: float, allow_seek_ahead: bool) -> None:
        self.calls.append(("seek", seconds))
        self.position = seconds

    def get_current_time(self) -> float:
        return self.position

    def get_player_state(self) -> PlayerState:
        return self.state

    def set_visible(self, visible: bool) -> None:
        pass


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def sent() -> list[SyncMessage]:
    return []


@pytest.mark.anyio
async def test_user_action_is_sent_with_current_position(sent) -> None:
    controller = SyncController(sent.append)
    adapter = RecordingAdapter()
    controller.activate(adapter)

    adapter.user(SyncAction.PLAY, 4.0)
    adapter.user(SyncAction.SEEK, 90.5)

    assert sent == [
        SyncMessage(action=SyncAction.PLAY, timestamp=4.0),
        SyncMessage(action=SyncAction.SEEK, timestamp=90.5),
    ]


@pytest.mark.anyio
async def test_applying_a_message_never_echoes_back(sent) -> None:
    controller = SyncController(sent.append, quiescence_window=0.2)
    adapter = RecordingAdapter()
    controller.activate(adapter)

    assert controller.apply(SyncMessage(action=SyncAction.PLAY, timestamp=30.0)) is True

    assert adapter.calls == [("seek", 30.0), ("play",)]
    assert sent == []
    assert controller.echo_suppressed is True


@pytest.mark.anyio
async def test_late_backend_notifications_inside_window_are_suppressed(sent) -> None:
    controller = SyncController(sent.append, quiescence_window=0.2)
    adapter = RecordingAdapter(echo_delay=0.05)
    controller.activate(adapter)

    controller.apply(SyncMessage(action=SyncAction.PAUSE, timestamp=12.0))
    await asyncio.sleep(0.1)
    assert sent == []
    assert controller.echo_suppressed is True

    await asyncio.sleep(0.2)
    assert controller.echo_suppressed is False

    adapter.user(SyncAction.PLAY, 12.0)
    assert sent == [SyncMessage(action=SyncAction.PLAY, timestamp=12.0)]


@pytest.mark.anyio
async def test_new_message_restarts_quiescence_window(sent) -> None:
    controller = SyncController(sent.append, quiescence_window=0.15)
    controller.activate(RecordingAdapter())

    controller.apply(SyncMessage(action=SyncAction.SEEK, timestamp=1.0))
    await asyncio.sleep(0.1)
    controller.apply(SyncMessage(action=SyncAction.SEEK, timestamp=2.0))
    await asyncio.sleep(0.1)

    assert controller.echo_suppressed is True
    await asyncio.sleep(0.1)
    assert controller.echo_suppressed is False


@pytest.mark.anyio
@pytest.mark.parametrize(
    ("action", "expected"),
    [
        (SyncAction.SEEK, [("seek", 8.0)]),
        (SyncAction.PLAY, [("seek", 8.0), ("play",)]),
        (SyncAction.PAUSE, [("seek", 8.0), ("pause",)]),
    ],
)
async def test_timestamp_is_applied_before_play_or_pause(sent, action, expected) -> None:
    controller = SyncController(sent.append)
    adapter = RecordingAdapter()
    adapter.controller = controller
    controller.activate(adapter)

    controller.apply(SyncMessage(action=action, timestamp=8.0))

    assert adapter.calls == expected
    assert all(adapter.suppressed_during_mutation)


@pytest.mark.anyio
async def test_no_active_backend_is_a_noop(sent) -> None:
    controller = SyncController(sent.append)
    stray = RecordingAdapter()

    assert controller.apply(SyncMessage(action=SyncAction.PLAY, timestamp=1.0)) is False
    controller.handle_player_event(stray, SyncAction.PLAY)

    assert sent == []
    assert stray.calls == []
    assert controller.echo_suppressed is False
    assert controller.active_backend is BackendKind.NONE


@pytest.mark.anyio
async def test_message_for_unready_backend_is_dropped(sent) -> None:
    controller = SyncController(sent.append)
    adapter = RecordingAdapter(ready=False)
    controller.activate(adapter)

    assert controller.apply(SyncMessage(action=SyncAction.PLAY, timestamp=5.0)) is False

    assert adapter.calls == []
    assert controller.echo_suppressed is False


@pytest.mark.anyio
async def test_repeated_play_is_idempotent_on_remote_backend(sent) -> None:
    player = FakeEmbeddedPlayer()
    adapter = RemotePlayerAdapter(player)
    adapter.handle_ready()
    player.state = PlayerState.PLAYING
    controller = SyncController(sent.append)
    controller.activate(adapter)
    player.calls.clear()

    message = SyncMessage(action=SyncAction.PLAY, timestamp=5.0)
    controller.apply(message)
    controller.apply(message)

    assert player.calls == [("seek", 5.0), ("seek", 5.0)]
    assert player.state is PlayerState.PLAYING
    assert sent == []


@pytest.mark.anyio
async def test_remote_pause_skips_call_when_already_paused(sent) -> None:
    player = FakeEmbeddedPlayer()
    adapter = RemotePlayerAdapter(player)
    adapter.handle_ready()
    player.state = PlayerState.PAUSED
    controller = SyncController(sent.append)
    controller.activate(adapter)

    controller.apply(SyncMessage(action=SyncAction.PAUSE, timestamp=3.0))
    controller.apply(SyncMessage(action=SyncAction.PLAY, timestamp=3.0))

    assert player.calls == [("seek", 3.0), ("seek", 3.0), ("play",)]


@pytest.mark.anyio
async def test_switching_backends_silences_the_previous_one(sent) -> None:
    controller = SyncController(sent.append)
    local = RecordingAdapter()
    player = FakeEmbeddedPlayer()
    remote = RemotePlayerAdapter(player)
    controller.activate(local)

    controller.activate(remote)

    assert local.active is False
    assert local.visible is False
    assert remote.visible is True
    assert controller.active_backend is BackendKind.REMOTE

    local.user(SyncAction.PLAY, 10.0)
    controller.handle_player_event(local, SyncAction.PLAY)
    assert sent == []


@pytest.mark.anyio
async def test_playback_end_clears_active_backend(sent) -> None:
    controller = SyncController(sent.append)
    adapter = RecordingAdapter()
    ended: list[BackendKind] = []
    started: list[BackendKind] = []
    controller.on_experience_started(started.append)
    controller.on_experience_ended(ended.append)
    controller.activate(adapter)
    controller.mark_experience_started()
    controller.mark_experience_started()

    adapter._emit_ended()

    assert started == [BackendKind.LOCAL]
    assert ended == [BackendKind.LOCAL]
    assert controller.active_backend is BackendKind.NONE
    assert controller.experience_started is False
    assert adapter.visible is False


@pytest.mark.anyio
async def test_async_send_callback_is_scheduled() -> None:
    delivered: list[SyncMessage] = []

    async def send(message: SyncMessage) -> None:
        delivered.append(message)

    controller = SyncController(send)
    adapter = RecordingAdapter()
    controller.activate(adapter)

    adapter.user(SyncAction.PAUSE, 2.0)
    await asyncio.sleep(0)

    assert delivered == [SyncMessage(action=SyncAction.PAUSE, timestamp=2.0)]


def test_negative_quiescence_window_is_rejected() -> None:
    with pytest.raises(ValueError):
        SyncController(lambda message: None, quiescence_window=-0.1)
