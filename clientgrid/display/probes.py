"""
Display Probes

Read the primary display's resolution from the host. Each probe returns a
DisplayReading or raises GeometryUnavailable.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
import sys
import typing as t

import mss
from mss.exception import ScreenShotError

from clientgrid.common.enums import ProbeType
from clientgrid.common.errors import GeometryUnavailable
from clientgrid.display.geometry import DisplayReading, DisplayProbe

logger = logging.getLogger(__name__)

_RESOLUTION_RE = re.compile(r"^\s*Resolution:\s*(\d+)\s*x\s*(\d+)", re.MULTILINE)
_UI_LOOKS_LIKE_RE = re.compile(r"^\s*UI Looks like:\s*(\d+)\s*x\s*(\d+)", re.MULTILINE)


def parse_system_profiler(output: str) -> DisplayReading:
    """Parse ``system_profiler SPDisplaysDataType`` output.

    The first ``Resolution:`` line gives physical pixels and the first
    ``UI Looks like:`` line gives logical points. Older macOS releases omit
    the latter, in which case only physical pixels are returned.
    """
    resolution = _RESOLUTION_RE.search(output)
    if resolution is None:
        raise GeometryUnavailable("No 'Resolution:' line in system_profiler output")

    looks_like = _UI_LOOKS_LIKE_RE.search(output)
    logical_width = int(looks_like.group(1)) if looks_like else None
    logical_height = int(looks_like.group(2)) if looks_like else None

    return DisplayReading(
        physical_width=int(resolution.group(1)),
        physical_height=int(resolution.group(2)),
        logical_width=logical_width,
        logical_height=logical_height,
        source=ProbeType.SYSTEM_PROFILER.value,
    )


class SystemProfilerProbe:
    """macOS display probe backed by ``system_profiler``."""

    name = ProbeType.SYSTEM_PROFILER.value
    COMMAND = ["system_profiler", "SPDisplaysDataType"]

    def __init__(
        self,
        runner: t.Callable[..., subprocess.CompletedProcess] = subprocess.run,
        timeout: float = 15.0,
    ):
        self._runner = runner
        self._timeout = timeout

    def read(self) -> DisplayReading:
        try:
            result = self._runner(
                self.COMMAND,
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise GeometryUnavailable(f"Could not run system_profiler: {e}") from e

        if result.returncode != 0:
            raise GeometryUnavailable(
                f"system_profiler exited with code {result.returncode}: {result.stderr.strip()}"
            )
        return parse_system_profiler(result.stdout)


class QtScreenProbe:
    """Primary screen as seen by Qt: logical geometry plus device pixel ratio."""

    name = ProbeType.QT.value

    # Without one of these (or an explicit QT_QPA_PLATFORM) the xcb/wayland
    # plugins abort the whole process instead of raising.
    DISPLAY_VARIABLES = ("DISPLAY", "WAYLAND_DISPLAY", "QT_QPA_PLATFORM")

    def __init__(
        self,
        app_class: t.Optional[t.Any] = None,
        environ: t.Optional[t.Mapping[str, str]] = None,
        platform: str = sys.platform,
    ):
        """
        Args:
            app_class: QGuiApplication or a stand-in, imported lazily by default
            environ: environment used to find a display server
            platform: sys.platform value deciding whether a display server is needed
        """
        self._app_class = app_class
        self.environ = os.environ if environ is None else environ
        self.platform = platform
        self._app = None

    def _application_class(self) -> t.Any:
        if self._app_class is not None:
            return self._app_class
        try:
            from PySide6.QtGui import QGuiApplication
        except ImportError as e:
            raise GeometryUnavailable(f"PySide6 is not available: {e}") from e
        return QGuiApplication

    def _require_display_server(self) -> None:
        if self.platform in ("darwin", "win32"):
            return
        if not any(self.environ.get(name) for name in self.DISPLAY_VARIABLES):
            raise GeometryUnavailable(
                "No display server found (DISPLAY and WAYLAND_DISPLAY are unset); "
                "pass --screen WIDTHxHEIGHT instead"
            )

    def read(self) -> DisplayReading:
        app_class = self._application_class()

        # Screens are only populated once an application object exists
        if app_class.instance() is None:
            self._require_display_server()
            self._app = app_class(sys.argv[:1])

        screen = app_class.primaryScreen()
        if screen is None:
            raise GeometryUnavailable("Qt reports no primary screen")

        geometry = screen.geometry()
        ratio = screen.devicePixelRatio()
        logical_width, logical_height = geometry.width(), geometry.height()

        return DisplayReading(
            physical_width=int(round(logical_width * ratio)),
            physical_height=int(round(logical_height * ratio)),
            logical_width=logical_width,
            logical_height=logical_height,
            source=self.name,
        )


class MssProbe:
    """Primary monitor size from mss. Reports device pixels only."""

    name = ProbeType.MSS.value

    def read(self) -> DisplayReading:
        try:
            with mss.mss() as grabber:
                monitors = grabber.monitors
        except ScreenShotError as e:
            raise GeometryUnavailable(f"mss could not enumerate monitors: {e}") from e

        # monitors[0] is the union of all screens, monitors[1] the primary one
        if len(monitors) < 2:
            raise GeometryUnavailable("mss found no monitors")

        primary = monitors[1]
        return DisplayReading(
            physical_width=int(primary["width"]),
            physical_height=int(primary["height"]),
            source=self.name,
        )


class StaticProbe:
    """Fixed reading, used for ``--screen`` overrides and tests."""

    def __init__(self, reading: DisplayReading, name: str = "static"):
        self.name = name
        self._reading = reading

    def read(self) -> DisplayReading:
        return self._reading


def parse_screen_size(value: str) -> t.Tuple[int, int]:
    """Parse a ``WIDTHxHEIGHT`` string such as ``3024x1964``."""
    match = re.fullmatch(r"\s*(\d+)\s*[xX]\s*(\d+)\s*", value)
    if match is None:
        raise ValueError(f"Expected WIDTHxHEIGHT, got {value!r}")
    return int(match.group(1)), int(match.group(2))


def create_probe(probe_type: ProbeType, platform: str = sys.platform) -> DisplayProbe:
    """Create the display probe for a probe type.

    ``AUTO`` picks system_profiler on macOS and Qt everywhere else.
    """
    if probe_type == ProbeType.AUTO:
        probe_type = ProbeType.SYSTEM_PROFILER if platform == "darwin" else ProbeType.QT
        logger.debug(f"Auto-selected display probe: {probe_type.value}")

    if probe_type == ProbeType.SYSTEM_PROFILER:
        return SystemProfilerProbe()
    if probe_type == ProbeType.QT:
        return QtScreenProbe(platform=platform)
    if probe_type == ProbeType.MSS:
        return MssProbe()

    raise ValueError(f"Unsupported probe type: {probe_type}")
