"""
Foreground Raiser

Brings the launched client windows to the front once they have had a moment
to appear. Purely cosmetic: every failure is logged and swallowed.
"""

import logging
import subprocess
import sys
import typing as t

from clientgrid.common import constants
from clientgrid.common.errors import ForegroundRaiseFailure

if t.TYPE_CHECKING:
    from clientgrid.supervisor.process_supervisor import CancellationToken

logger = logging.getLogger(__name__)


def raise_command(process_name: str, platform: str = sys.platform) -> t.List[str]:
    """OS command that raises every window whose process name contains ``process_name``.

    Raises:
        ForegroundRaiseFailure: if the platform has no supported mechanism
    """
    if platform == "darwin":
        script = (
            'tell application "System Events" to set frontmost of every process '
            f'whose name contains "{process_name}" to true'
        )
        return ["osascript", "-e", script]
    if platform.startswith("linux"):
        return ["xdotool", "search", "--name", process_name, "windowraise", "%@"]
    raise ForegroundRaiseFailure(f"Raising windows is not supported on {platform}")


class ForegroundRaiser:
    """Issues one best-effort window-raise request after a settle delay."""

    def __init__(
        self,
        process_name: str = constants.CLIENT_PROCESS_NAME,
        settle_delay: float = constants.SETTLE_DELAY,
        timeout: float = constants.RAISE_TIMEOUT,
        runner: t.Callable[..., subprocess.CompletedProcess] = subprocess.run,
        platform: str = sys.platform,
    ):
        self.process_name = process_name
        self.settle_delay = settle_delay
        self.timeout = timeout
        self._runner = runner
        self._platform = platform

    def raise_windows(self) -> bool:
        """Run the raise command now. Returns True if it succeeded."""
        try:
            self._run_raise_command()
        except ForegroundRaiseFailure as e:
            logger.warning(f"⚠️ Could not bring clients to the foreground: {e}")
            return False

        logger.debug(f"Raised windows matching '{self.process_name}'")
        return True

    def raise_after_settle(self, token: "CancellationToken") -> bool:
        """Wait for the settle delay, then raise. Skipped if the run is stopping."""
        if token.wait(self.settle_delay):
            return False
        return self.raise_windows()

    def _run_raise_command(self) -> None:
        command = raise_command(self.process_name, self._platform)
        try:
            result = self._runner(
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise ForegroundRaiseFailure(f"{command[0]} failed: {e}") from e

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise ForegroundRaiseFailure(
                f"{command[0]} exited with code {result.returncode}"
                + (f": {stderr}" if stderr else "")
            )
