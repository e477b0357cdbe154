import copy
import json
import logging
from pathlib import Path
from typing import Callable, Dict, List, Any, Optional
from typing_extensions import TypedDict

from clientgrid.common import constants
from clientgrid.common.enums import ProbeType, ScaleStrategyType, get_probe_type_enum
from clientgrid.display.geometry import AssumedScale, Measured, ScaleStrategy
from clientgrid.layout.planner import LayoutConfig

logger = logging.getLogger(__name__)


class ClientConfig(TypedDict):
    """Type definition for the launched client program."""

    command: List[str]  # program and leading arguments, e.g. ["cargo", "run", "--"]
    process_name: str  # substring used to find client windows when raising
    lag_ms: int  # simulated network latency, 0 omits the flag
    extra_args: List[str]
    working_dir: Optional[str]


class LayoutSection(TypedDict):
    """Type definition for window layout configuration (logical points)."""

    window_width: int
    window_height: int
    gap: int
    menubar_height: int
    titlebar_height: int
    columns: int


class GeometrySection(TypedDict):
    """Type definition for display geometry detection."""

    strategy: str  # "measured" or "assumed"
    probe: str  # "auto", "system_profiler", "qt", "mss"
    assumed_scale: float
    fallback_scale: Optional[float]


class TimingSection(TypedDict):
    """Type definition for launch timing heuristics (seconds)."""

    launch_stagger: float
    settle_delay: float
    poll_interval: float
    terminate_timeout: float


class ForegroundSection(TypedDict):
    enabled: bool


class LauncherConfigData(TypedDict):
    """Type definition for the complete configuration structure."""

    client: ClientConfig
    layout: LayoutSection
    geometry: GeometrySection
    timing: TimingSection
    foreground: ForegroundSection


# Launch profiles bundle a geometry strategy with its timing heuristics.
PROFILES: Dict[str, Dict[str, Any]] = {
    "measured": {
        "geometry": {"strategy": ScaleStrategyType.MEASURED.value},
        "timing": {"launch_stagger": constants.LAUNCH_STAGGER},
    },
    "assumed": {
        "geometry": {
            "strategy": ScaleStrategyType.ASSUMED.value,
            "assumed_scale": constants.ASSUMED_SCALE_FACTOR,
        },
        "timing": {"launch_stagger": constants.ASSUMED_PROFILE_STAGGER},
    },
}


class ConfigManager:
    """Handles launcher configuration loading and typed access."""

    DEFAULT_CONFIG: LauncherConfigData = {
        "client": {
            "command": list(constants.CLIENT_COMMAND),
            "process_name": constants.CLIENT_PROCESS_NAME,
            "lag_ms": constants.LAG_MS,
            "extra_args": [],
            "working_dir": None,
        },
        "layout": {
            "window_width": constants.WINDOW_WIDTH,
            "window_height": constants.WINDOW_HEIGHT,
            "gap": constants.GAP,
            "menubar_height": constants.MENUBAR_HEIGHT,
            "titlebar_height": constants.TITLEBAR_HEIGHT,
            "columns": constants.COLUMNS,
        },
        "geometry": {
            "strategy": ScaleStrategyType.MEASURED.value,
            "probe": ProbeType.AUTO.value,
            "assumed_scale": constants.ASSUMED_SCALE_FACTOR,
            "fallback_scale": None,
        },
        "timing": {
            "launch_stagger": constants.LAUNCH_STAGGER,
            "settle_delay": constants.SETTLE_DELAY,
            "poll_interval": constants.POLL_INTERVAL,
            "terminate_timeout": constants.TERMINATE_TIMEOUT,
        },
        "foreground": {
            "enabled": True,
        },
    }

    def __init__(self, config_file: Optional[Path] = None):
        """
        Args:
            config_file: JSON file to load. When None, built-in defaults are
                used and nothing is written to disk.
        """
        self.config_file = config_file
        self.data = self._load_or_create_config()

    def _load_or_create_config(self) -> LauncherConfigData:
        """Load config from file or create default if it doesn't exist."""
        if self.config_file is None:
            return copy.deepcopy(self.DEFAULT_CONFIG)

        if self.config_file.exists():
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    config_data = json.load(f)
                    if not isinstance(config_data, dict):
                        raise ValueError(
                            f"expected a JSON object, got {type(config_data).__name__}"
                        )
                    logger.info(f"Loaded config from {self.config_file}")

                    # Merge with defaults to ensure all keys exist
                    merged_config = self._deep_merge_config(
                        self.DEFAULT_CONFIG, config_data
                    )
                    self._replace_invalid_sections(merged_config)

                    # Save back to file if new keys were added
                    if merged_config != config_data:
                        self._save_config(merged_config)
                        logger.info("Updated config file with missing default values")

                    return merged_config

            except (ValueError, IOError) as e:
                logger.error(f"Error loading config from {self.config_file}: {e}")
                logger.info("Creating new config file with defaults")

        # Create default config file
        self._save_config(self.DEFAULT_CONFIG)
        logger.info(f"Created default config file at {self.config_file}")
        return copy.deepcopy(self.DEFAULT_CONFIG)

    def _replace_invalid_sections(self, config_data: Dict[str, Any]) -> None:
        """Every top-level section must be an object; others revert to defaults."""
        for section, default in self.DEFAULT_CONFIG.items():
            if not isinstance(config_data.get(section), dict):
                logger.error(
                    f"Config section '{section}' must be an object, "
                    f"got {config_data.get(section)!r}; using defaults"
                )
                config_data[section] = copy.deepcopy(default)

    def _save_config(self, config_data: LauncherConfigData) -> None:
        """Save config data to file."""
        if self.config_file is None:
            return
        try:
            with open(self.config_file, "w", encoding="utf-8") as f:
                json.dump(config_data, f, indent=4, sort_keys=True)
        except IOError as e:
            logger.error(f"Error saving config to {self.config_file}: {e}")

    def _deep_merge_config(self, default_config: Any, user_config: Any) -> Any:
        """Deep merge user config with defaults, ensuring all default keys exist."""
        merged = copy.deepcopy(default_config)

        for key, value in user_config.items():
            if (
                key in merged
                and isinstance(merged[key], dict)
                and isinstance(value, dict)
            ):
                # Recursively merge nested dictionaries
                merged[key] = self._deep_merge_config(merged[key], value)
            else:
                # Use user value for non-dict values or new keys
                merged[key] = value
        return merged

    def apply_profile(self, name: str) -> None:
        """Overlay a launch profile on the current data (in memory only).

        Args:
            name: "measured" or "assumed"
        """
        if name not in PROFILES:
            raise ValueError(
                f"Unknown launch profile {name!r}, expected one of {sorted(PROFILES)}"
            )
        self.data = self._deep_merge_config(self.data, PROFILES[name])
        logger.debug(f"Applied launch profile '{name}'")

    # Typed accessors -------------------------------------------------------
    # All of them raise ValueError for values that have the wrong type or range.

    def _number(self, section: str, key: str, convert: Callable[[Any], Any]) -> Any:
        value = self.data[section][key]
        # bool is an int subclass but never a meaningful size or delay
        if isinstance(value, bool):
            raise ValueError(f"{section}.{key} must be a number, got {value!r}")
        try:
            return convert(value)
        except (TypeError, ValueError):
            raise ValueError(f"{section}.{key} must be a number, got {value!r}") from None

    def _string_list(self, section: str, key: str) -> List[str]:
        value = self.data[section][key]
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ValueError(f"{section}.{key} must be a list of strings, got {value!r}")
        return list(value)

    def layout_config(self) -> LayoutConfig:
        """Build the LayoutConfig for this run."""
        return LayoutConfig(
            window_width=self._number("layout", "window_width", int),
            window_height=self._number("layout", "window_height", int),
            gap=self._number("layout", "gap", int),
            menubar_height=self._number("layout", "menubar_height", int),
            titlebar_height=self._number("layout", "titlebar_height", int),
            columns=self._number("layout", "columns", int),
        )

    def scale_strategy(self) -> ScaleStrategy:
        """Build the configured scale strategy."""
        geometry = self.data["geometry"]
        strategy = str(geometry["strategy"]).lower()

        if strategy == ScaleStrategyType.ASSUMED.value:
            return AssumedScale(self._number("geometry", "assumed_scale", float))
        if strategy == ScaleStrategyType.MEASURED.value:
            if geometry.get("fallback_scale") is None:
                return Measured()
            return Measured(self._number("geometry", "fallback_scale", float))

        raise ValueError(f"Unknown geometry strategy: {geometry['strategy']!r}")

    def probe_type(self) -> ProbeType:
        return get_probe_type_enum(str(self.data["geometry"]["probe"]))

    def client_command(self) -> List[str]:
        command = self._string_list("client", "command")
        if not command:
            raise ValueError("client.command must name a program to launch")
        return command

    def extra_args(self) -> List[str]:
        return self._string_list("client", "extra_args")

    def lag_ms(self) -> int:
        lag_ms = self._number("client", "lag_ms", int)
        if lag_ms < 0:
            raise ValueError("client.lag_ms must be >= 0")
        return lag_ms

    def process_name(self) -> str:
        name = self.data["client"]["process_name"]
        if not isinstance(name, str) or not name:
            raise ValueError(f"client.process_name must be a non-empty string, got {name!r}")
        return name

    def working_dir(self) -> Optional[str]:
        working_dir = self.data["client"].get("working_dir")
        if working_dir is not None and not isinstance(working_dir, str):
            raise ValueError(f"client.working_dir must be a path, got {working_dir!r}")
        return working_dir

    def timing(self) -> TimingSection:
        """Timing values as floats. The poll interval must be positive."""
        timing: TimingSection = {
            "launch_stagger": self._number("timing", "launch_stagger", float),
            "settle_delay": self._number("timing", "settle_delay", float),
            "poll_interval": self._number("timing", "poll_interval", float),
            "terminate_timeout": self._number("timing", "terminate_timeout", float),
        }
        for key, value in timing.items():
            if value < 0:
                raise ValueError(f"timing.{key} must be >= 0, got {value}")
        if timing["poll_interval"] <= 0:
            raise ValueError("timing.poll_interval must be greater than 0")
        return timing

    def foreground_enabled(self) -> bool:
        return bool(self.data["foreground"]["enabled"])

    def set_lag_ms(self, lag_ms: int) -> None:
        if lag_ms < 0:
            raise ValueError("lag_ms must be >= 0")
        self.data["client"]["lag_ms"] = lag_ms

    def set_columns(self, columns: int) -> None:
        self.data["layout"]["columns"] = columns

    def set_assumed_scale(self, factor: float) -> None:
        """Force the assumed-scale strategy with the given factor."""
        self.data["geometry"]["strategy"] = ScaleStrategyType.ASSUMED.value
        self.data["geometry"]["assumed_scale"] = factor

    def set_probe(self, probe: str) -> None:
        self.data["geometry"]["probe"] = get_probe_type_enum(probe).value

    def set_foreground_enabled(self, enabled: bool) -> None:
        self.data["foreground"]["enabled"] = enabled
