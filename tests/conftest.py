"""Pytest fixtures for niri-sticky tests."""

import asyncio
import json
from typing import Any, Dict, List, Optional, Set

import pytest

from niri_sticky.config import DaemonConfig
from niri_sticky.engine import TransitionEngine
from niri_sticky.errors import HostRejected, NoActiveContext, NoFocus
from niri_sticky.host import Destination, HostGateway
from niri_sticky.ipc_server import IPCServer
from niri_sticky.models import WindowInfo
from niri_sticky.state import StateStore


class FakeHost(HostGateway):
    """In-memory compositor with scriptable windows, focus and move failures."""

    def __init__(self, windows: Optional[List[WindowInfo]] = None):
        self.windows: List[WindowInfo] = windows or []
        self.focused: Optional[int] = None
        self.active: Optional[int] = 1
        self.failing_moves: Set[int] = set()
        self.moves: List[tuple] = []
        self.events: List[Dict[str, Any]] = []

    def add_window(self, window_id: int, app_id: Optional[str] = None,
                   title: Optional[str] = None) -> None:
        self.windows.append(WindowInfo(id=window_id, app_id=app_id, title=title))

    def close_window(self, window_id: int) -> None:
        self.windows = [w for w in self.windows if w.id != window_id]

    async def list_windows(self) -> List[WindowInfo]:
        return list(self.windows)

    async def get_focused_resource(self) -> int:
        if self.focused is None:
            raise NoFocus()
        return self.focused

    async def get_active_context(self) -> int:
        if self.active is None:
            raise NoActiveContext()
        return self.active

    async def move_resource(self, window_id: int, destination: Destination) -> None:
        if window_id in self.failing_moves:
            raise HostRejected("move-window-to-workspace", f"window {window_id} refused")
        self.moves.append((window_id, destination))

    async def event_stream(self):
        for event in self.events:
            yield event


@pytest.fixture
def host():
    """Fake host with windows 1-3."""
    fake = FakeHost()
    fake.add_window(1, app_id="firefox", title="Mozilla Firefox")
    fake.add_window(2, app_id="kitty", title="kitty: ~/src")
    fake.add_window(3, app_id="mpv", title="video.mkv - mpv")
    return fake


@pytest.fixture
def store():
    return StateStore()


@pytest.fixture
def engine(store, host):
    return TransitionEngine(store, host, stage_workspace="stage")


@pytest.fixture
def server(engine, host, tmp_path):
    return IPCServer(engine, host, tmp_path / "ipc.sock")


@pytest.fixture
def config(tmp_path):
    return DaemonConfig(ipc_socket_path=tmp_path / "ipc.sock")


class SuspendingHost(FakeHost):
    """FakeHost whose moves park on a gate so concurrent operations interleave.

    Records whether either store lock was held when each move was issued.
    """

    def __init__(self, store: StateStore):
        super().__init__()
        self.store = store
        self.gate = asyncio.Event()
        self.locks_held_during_move: List[bool] = []

    async def move_resource(self, window_id: int, destination: Destination) -> None:
        self.locks_held_during_move.append(
            self.store._sticky_lock.locked() or self.store._staged_lock.locked()
        )
        await self.gate.wait()
        await super().move_resource(window_id, destination)


@pytest.fixture
def suspending_host(store):
    fake = SuspendingHost(store)
    fake.add_window(1, app_id="firefox", title="Mozilla Firefox")
    fake.add_window(2, app_id="kitty", title="kitty: ~/src")
    fake.add_window(3, app_id="mpv", title="video.mkv - mpv")
    return fake


@pytest.fixture
def suspending_engine(store, suspending_host):
    return TransitionEngine(store, suspending_host, stage_workspace="stage")


async def start_fake_niri(socket_path, lines, hold_open=None):
    """Fake niri socket: answer the EventStream handshake, then send lines."""

    async def handle(reader, writer):
        try:
            await reader.readline()
            writer.write(b'{"Ok":"Handled"}\n')
            for line in lines:
                writer.write(line)
            await writer.drain()
            if hold_open is not None:
                await hold_open.wait()
        except ConnectionError:
            # client hung up early
            pass
        finally:
            writer.close()

    return await asyncio.start_unix_server(handle, path=str(socket_path))


@pytest.fixture
def fake_niri():
    return start_fake_niri


@pytest.fixture
def big_event_line():
    """A WindowsChanged event line well over asyncio's default 64 KiB line limit."""
    windows = [
        {"id": i, "app_id": "org.gnome.Nautilus", "title": f"{i} " + "t" * 400,
         "workspace_id": 1, "is_focused": False, "is_floating": False}
        for i in range(200)
    ]
    line = json.dumps({"WindowsChanged": {"windows": windows}}).encode() + b"\n"
    assert len(line) > 64 * 1024
    return line
