"""
Launcher Errors

Exception types raised by the launcher components. Only
``GeometryUnavailable`` is fatal for a run; the others are caught where they
happen and reported as warnings.
"""


class LauncherError(Exception):
    """Base class for all launcher errors."""


class GeometryUnavailable(LauncherError):
    """Display probing failed or produced degenerate dimensions."""


class SpawnFailure(LauncherError):
    """The OS refused to create a client process."""

    def __init__(self, index: int, reason: str):
        super().__init__(f"Failed to spawn client {index}: {reason}")
        self.index = index
        self.reason = reason


class ForegroundRaiseFailure(LauncherError):
    """The window-raise command failed or is not supported on this host."""


class TerminationPropagationFailure(LauncherError):
    """A tracked child could not be terminated during teardown."""

    def __init__(self, index: int, pid: int, reason: str):
        super().__init__(f"Failed to terminate client {index} (pid {pid}): {reason}")
        self.index = index
        self.pid = pid
        self.reason = reason
