"""Pytest configuration and shared fixtures"""
import itertools
import subprocess
import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from clientgrid.display.geometry import ScreenGeometry  # noqa: E402
from clientgrid.layout.planner import LayoutConfig  # noqa: E402
from clientgrid.supervisor.process_supervisor import CancellationToken  # noqa: E402

_pids = itertools.count(1000)


class FakeProcess:
    """Stand-in for subprocess.Popen that never starts anything.

    ``lifetime_polls`` is the number of poll() calls before the process exits
    on its own; None keeps it running until terminated.
    """

    def __init__(self, args, lifetime_polls=None, stubborn=False, terminate_error=None):
        self.args = args
        self.pid = next(_pids)
        self.returncode = None
        self.terminated = False
        self.killed = False
        self._polls_left = lifetime_polls
        self._stubborn = stubborn
        self._terminate_error = terminate_error

    def poll(self):
        if self.returncode is None and self._polls_left is not None:
            if self._polls_left <= 0:
                self.returncode = 0
            else:
                self._polls_left -= 1
        return self.returncode

    def wait(self, timeout=None):
        if self.returncode is None:
            raise subprocess.TimeoutExpired(self.args, timeout)
        return self.returncode

    def terminate(self):
        if self._terminate_error is not None:
            raise self._terminate_error
        self.terminated = True
        if not self._stubborn:
            self.returncode = -15

    def kill(self):
        self.killed = True
        self.returncode = -9


class FakeSpawner:
    """Records every spawn request and hands out FakeProcess objects."""

    def __init__(self):
        self.calls = 0
        self.processes = []
        self.failures = set()  # spawn positions that raise OSError
        self.options = {}  # spawn position -> FakeProcess kwargs
        self.on_spawn = None  # optional callback(position), runs after a successful spawn

    def __call__(self, args):
        position = self.calls
        self.calls += 1
        if position in self.failures:
            raise OSError(2, "No such file or directory")
        process = FakeProcess(args, **self.options.get(position, {}))
        self.processes.append(process)
        if self.on_spawn is not None:
            self.on_spawn(position)
        return process


@pytest.fixture
def layout():
    """Default window layout used by the launcher"""
    return LayoutConfig(
        window_width=1000,
        window_height=600,
        gap=20,
        menubar_height=25,
        titlebar_height=30,
        columns=2,
    )


@pytest.fixture
def retina_screen():
    """A 14" MacBook Pro display at its default scaled resolution"""
    return ScreenGeometry(
        physical_width=3024,
        physical_height=1964,
        logical_width=1512,
        logical_height=982,
        scale_factor=2.0,
    )


@pytest.fixture
def fake_spawner():
    return FakeSpawner()


@pytest.fixture
def token():
    """Cancellation token whose waits return immediately"""
    return CancellationToken(slice_seconds=0.001, sleep=lambda seconds: None)
