"""Pytest configuration and fixtures."""
import shutil
from typing import Callable, Dict, List, Optional, Union

import pytest

from adb_panel.core.device import AdbDevice
from adb_panel.core.errors import ShellSessionError
from adb_panel.core.models import SessionState
from adb_panel.core.shell import ShellSession


class FakeSession:
    """Scripted stand-in for ShellSession; responses are matched by command prefix."""

    def __init__(self, responses: Optional[Dict[str, Union[str, Exception]]] = None,
                 start_ok: bool = True, start_error: str = ""):
        self.responses = responses or {}
        self.start_ok = start_ok
        self.last_error = start_error
        self.commands: List[str] = []
        self.state = SessionState.NOT_STARTED
        self.stop_calls = 0

    def start(self) -> bool:
        self.state = SessionState.RUNNING if self.start_ok else SessionState.STOPPED
        return self.start_ok

    def execute(self, command: str, timeout: Optional[float] = None) -> str:
        if self.state != SessionState.RUNNING:
            raise ShellSessionError("Shell not running")
        self.commands.append(command)
        for prefix, response in self.responses.items():
            if command.startswith(prefix):
                if isinstance(response, Exception):
                    self.state = SessionState.STOPPED
                    raise response
                return response
        return ""

    def stop(self):
        self.stop_calls += 1
        self.state = SessionState.STOPPED


@pytest.fixture
def sh_session() -> Callable[..., ShellSession]:
    """Factory for sessions that drive a local sh instead of adb."""
    if shutil.which("sh") is None:
        pytest.skip("needs a POSIX sh")
    sessions: List[ShellSession] = []

    def make(**kwargs) -> ShellSession:
        kwargs.setdefault("command", ["sh"])
        kwargs.setdefault("timeout", 10.0)
        session = ShellSession(**kwargs)
        sessions.append(session)
        return session

    yield make
    for session in sessions:
        session.stop()


@pytest.fixture
def sh_device(sh_session) -> AdbDevice:
    """A connected AdbDevice whose shell is a local sh."""
    device = AdbDevice("local", session_factory=lambda: sh_session())
    assert device.connect().ok
    yield device
    device.disconnect()


@pytest.fixture
def fake_session():
    """The FakeSession class, for building scripted sessions."""
    return FakeSession
