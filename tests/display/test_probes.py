"""Test display probes"""
import subprocess

import pytest

from clientgrid.common.enums import ProbeType
from clientgrid.common.errors import GeometryUnavailable
from clientgrid.display import probes
from clientgrid.display.probes import (
    MssProbe,
    QtScreenProbe,
    SystemProfilerProbe,
    create_probe,
    parse_screen_size,
    parse_system_profiler,
)

SONOMA_OUTPUT = """Graphics/Displays:

    Apple M1 Pro:

      Chipset Model: Apple M1 Pro
      Type: GPU
      Bus: Built-In
      Total Number of Cores: 16
      Vendor: Apple (0x106b)
      Metal Support: Metal 3
      Displays:
        Color LCD:
          Display Type: Built-in Liquid Retina XDR Display
          Resolution: 3024 x 1964 Retina
          Main Display: Yes
          Mirror: Off
          Online: Yes
          Automatically Adjust Brightness: Yes
          Connection Type: Internal
        LG HDR 4K:
          Resolution: 3840 x 2160 (2160p/4K UHD 1 - Ultra High Definition)
          UI Looks like: 1920 x 1080 @ 60.00Hz
"""

MONTEREY_OUTPUT = SONOMA_OUTPUT.replace(
    "          Main Display: Yes\n",
    "          UI Looks like: 1512 x 982 @ 120.00Hz\n          Main Display: Yes\n",
)


def _completed(stdout="", returncode=0, stderr=""):
    return subprocess.CompletedProcess(
        args=SystemProfilerProbe.COMMAND, returncode=returncode, stdout=stdout, stderr=stderr
    )


def test_parse_physical_and_logical():
    """The first Resolution and UI Looks like lines describe the main display"""
    reading = parse_system_profiler(MONTEREY_OUTPUT)

    assert (reading.physical_width, reading.physical_height) == (3024, 1964)
    assert (reading.logical_width, reading.logical_height) == (1512, 982)
    assert reading.source == "system_profiler"


def test_parse_uses_first_ui_line_even_from_other_display():
    """Only the first match of each line is used"""
    reading = parse_system_profiler(SONOMA_OUTPUT)

    assert reading.physical_width == 3024
    assert reading.logical_width == 1920


def test_parse_without_ui_line():
    """Without a UI Looks like line only physical pixels are known"""
    output = "Displays:\n  Resolution: 2560 x 1440\n"
    reading = parse_system_profiler(output)

    assert reading.physical_width == 2560
    assert reading.logical_width is None
    assert not reading.has_logical


def test_parse_without_resolution():
    """Output without any display is unusable"""
    with pytest.raises(GeometryUnavailable):
        parse_system_profiler("Graphics/Displays:\n")


def test_system_profiler_probe_runs_command():
    """The probe runs system_profiler and parses its output"""
    calls = []

    def runner(command, **kwargs):
        calls.append(command)
        return _completed(MONTEREY_OUTPUT)

    reading = SystemProfilerProbe(runner=runner).read()

    assert calls == [["system_profiler", "SPDisplaysDataType"]]
    assert reading.logical_width == 1512


def test_system_profiler_missing():
    """A missing tool becomes GeometryUnavailable"""

    def runner(command, **kwargs):
        raise FileNotFoundError(2, "No such file or directory", command[0])

    with pytest.raises(GeometryUnavailable):
        SystemProfilerProbe(runner=runner).read()


def test_system_profiler_failure_exit_code():
    """A non-zero exit becomes GeometryUnavailable"""
    probe = SystemProfilerProbe(runner=lambda command, **kwargs: _completed(returncode=1, stderr="boom"))

    with pytest.raises(GeometryUnavailable, match="boom"):
        probe.read()


def test_system_profiler_timeout():
    """A hung system_profiler becomes GeometryUnavailable"""

    def runner(command, **kwargs):
        raise subprocess.TimeoutExpired(command, kwargs.get("timeout"))

    with pytest.raises(GeometryUnavailable):
        SystemProfilerProbe(runner=runner).read()


class _FakeRect:
    def __init__(self, width, height):
        self._width = width
        self._height = height

    def width(self):
        return self._width

    def height(self):
        return self._height


class _FakeScreen:
    def __init__(self, width, height, ratio):
        self._rect = _FakeRect(width, height)
        self._ratio = ratio

    def geometry(self):
        return self._rect

    def devicePixelRatio(self):
        return self._ratio


def make_gui_application(screen, running=False):
    """Stand-in for QGuiApplication that records construction"""

    class FakeGuiApplication:
        created = []
        current = object() if running else None

        def __init__(self, argv):
            FakeGuiApplication.created.append(argv)
            FakeGuiApplication.current = self

        @staticmethod
        def instance():
            return FakeGuiApplication.current

        @staticmethod
        def primaryScreen():
            return screen

    return FakeGuiApplication


def test_qt_probe_scales_logical_geometry():
    """Physical size is the logical geometry times the device pixel ratio"""
    app_class = make_gui_application(_FakeScreen(1512, 982, 2.0))
    probe = QtScreenProbe(app_class=app_class, environ={"DISPLAY": ":0"}, platform="linux")

    reading = probe.read()

    assert (reading.physical_width, reading.physical_height) == (3024, 1964)
    assert (reading.logical_width, reading.logical_height) == (1512, 982)
    assert reading.source == "qt"
    assert len(app_class.created) == 1


def test_qt_probe_fractional_ratio():
    """Fractional ratios are rounded to whole pixels"""
    app_class = make_gui_application(_FakeScreen(1280, 720, 1.5))
    probe = QtScreenProbe(app_class=app_class, environ={"WAYLAND_DISPLAY": "wayland-0"}, platform="linux")

    reading = probe.read()

    assert (reading.physical_width, reading.physical_height) == (1920, 1080)


def test_qt_probe_without_display_server():
    """Headless Linux is reported before Qt gets a chance to abort"""
    app_class = make_gui_application(_FakeScreen(1512, 982, 2.0))
    probe = QtScreenProbe(app_class=app_class, environ={}, platform="linux")

    with pytest.raises(GeometryUnavailable, match="--screen"):
        probe.read()
    assert app_class.created == []


def test_qt_probe_explicit_platform_plugin():
    """QT_QPA_PLATFORM (e.g. offscreen) counts as a display"""
    app_class = make_gui_application(_FakeScreen(1024, 768, 1.0))
    probe = QtScreenProbe(app_class=app_class, environ={"QT_QPA_PLATFORM": "offscreen"}, platform="linux")

    assert probe.read().physical_width == 1024


def test_qt_probe_on_macos_needs_no_display_variable():
    """macOS and Windows always have a window server"""
    app_class = make_gui_application(_FakeScreen(1512, 982, 2.0))
    probe = QtScreenProbe(app_class=app_class, environ={}, platform="darwin")

    assert probe.read().physical_width == 3024


def test_qt_probe_reuses_running_application():
    """An existing application object is used as is"""
    app_class = make_gui_application(_FakeScreen(1512, 982, 2.0), running=True)
    probe = QtScreenProbe(app_class=app_class, environ={}, platform="linux")

    assert probe.read().logical_width == 1512
    assert app_class.created == []


def test_qt_probe_without_primary_screen():
    """No primary screen means no geometry"""
    app_class = make_gui_application(None)
    probe = QtScreenProbe(app_class=app_class, environ={"DISPLAY": ":0"}, platform="linux")

    with pytest.raises(GeometryUnavailable):
        probe.read()


class _FakeMss:
    def __init__(self, monitors):
        self.monitors = monitors

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


def test_mss_probe_reads_primary_monitor(monkeypatch):
    """mss monitor 1 is the primary display, in device pixels"""
    monitors = [
        {"left": 0, "top": 0, "width": 4480, "height": 1440},
        {"left": 0, "top": 0, "width": 2560, "height": 1440},
        {"left": 2560, "top": 0, "width": 1920, "height": 1080},
    ]
    monkeypatch.setattr(probes.mss, "mss", lambda: _FakeMss(monitors))

    reading = MssProbe().read()

    assert (reading.physical_width, reading.physical_height) == (2560, 1440)
    assert not reading.has_logical


def test_mss_probe_without_monitors(monkeypatch):
    """No monitors means no geometry"""
    monkeypatch.setattr(probes.mss, "mss", lambda: _FakeMss([{"width": 0, "height": 0}]))

    with pytest.raises(GeometryUnavailable):
        MssProbe().read()


def test_create_probe_auto_selects_by_platform():
    """Auto uses system_profiler on macOS and Qt elsewhere"""
    assert isinstance(create_probe(ProbeType.AUTO, platform="darwin"), SystemProfilerProbe)
    assert isinstance(create_probe(ProbeType.AUTO, platform="linux"), QtScreenProbe)
    assert isinstance(create_probe(ProbeType.AUTO, platform="win32"), QtScreenProbe)


def test_create_probe_explicit():
    """Explicit probe types map to their probe classes"""
    assert isinstance(create_probe(ProbeType.SYSTEM_PROFILER), SystemProfilerProbe)
    assert isinstance(create_probe(ProbeType.QT), QtScreenProbe)
    assert isinstance(create_probe(ProbeType.MSS), MssProbe)


def test_parse_screen_size():
    """WIDTHxHEIGHT strings"""
    assert parse_screen_size("3024x1964") == (3024, 1964)
    assert parse_screen_size(" 1920 X 1080 ") == (1920, 1080)
    with pytest.raises(ValueError):
        parse_screen_size("1920")
    with pytest.raises(ValueError):
        parse_screen_size("axb")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
