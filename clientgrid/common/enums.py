from enum import Enum


class ScaleStrategyType(str, Enum):
    """How the display scale factor is obtained."""
    MEASURED = "measured"
    ASSUMED = "assumed"


class ProbeType(str, Enum):
    """Display probes that can be selected from config or the command line."""
    AUTO = "auto"
    SYSTEM_PROFILER = "system_profiler"
    QT = "qt"
    MSS = "mss"


class RunOutcome(str, Enum):
    """How a supervised run ended."""

    COMPLETED = "completed"
    INTERRUPTED = "interrupted"


def get_probe_type_enum(probe_str: str) -> ProbeType:
    """Convert a probe name to ProbeType, raising ValueError for unknown names."""
    probe_map = {
        "AUTO": ProbeType.AUTO,
        "SYSTEM_PROFILER": ProbeType.SYSTEM_PROFILER,
        "PROFILER": ProbeType.SYSTEM_PROFILER,  # short alias
        "QT": ProbeType.QT,
        "PYSIDE": ProbeType.QT,  # alias
        "MSS": ProbeType.MSS,
    }
    try:
        return probe_map[probe_str.upper()]
    except KeyError:
        raise ValueError(f"Unknown display probe: {probe_str!r}") from None
