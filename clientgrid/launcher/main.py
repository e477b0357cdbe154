"""
Client Launcher

Launches N game clients tiled on the screen, raises them to the foreground
and keeps them running until they all exit or Ctrl-C is pressed.
"""

import argparse
import logging
import signal
import sys
import typing as t
from pathlib import Path

from clientgrid.common import constants
from clientgrid.common.config import PROFILES, ConfigManager
from clientgrid.common.errors import GeometryUnavailable
from clientgrid.display.geometry import DisplayProbe, DisplayReading, resolve_geometry
from clientgrid.display.probes import StaticProbe, create_probe, parse_screen_size
from clientgrid.layout.planner import plan_launch
from clientgrid.supervisor.foreground import ForegroundRaiser
from clientgrid.supervisor.process_supervisor import (
    CancellationToken,
    ProcessSupervisor,
    Spawner,
    install_signal_handlers,
    popen_spawner,
    restore_signal_handlers,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


def _instance_count(value: str) -> int:
    count = int(value)
    if count < 1:
        raise argparse.ArgumentTypeError("instance count must be at least 1")
    return count


def _screen_size(value: str) -> t.Tuple[int, int]:
    try:
        return parse_screen_size(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Launch multiple game clients tiled on the screen",
        epilog="Arguments after '--' are passed unchanged to every client.",
    )
    parser.add_argument(
        "count",
        nargs="?",
        type=_instance_count,
        default=constants.DEFAULT_INSTANCE_COUNT,
        help="Number of clients to launch (default: %(default)s)",
    )
    parser.add_argument("--columns", type=int, help="Number of window columns")
    parser.add_argument(
        "--lag-ms",
        type=int,
        help="Simulated network lag passed to every client (0 disables it)",
    )
    parser.add_argument(
        "--profile",
        choices=sorted(PROFILES),
        help="Launch profile: 'measured' detects the scale factor, "
        "'assumed' uses a fixed 2x factor and staggers launches",
    )
    parser.add_argument("--scale", type=float, help="Force a fixed display scale factor")
    parser.add_argument(
        "--probe",
        choices=["auto", "system_profiler", "qt", "mss"],
        help="How to detect the screen resolution",
    )
    parser.add_argument(
        "--screen",
        type=_screen_size,
        metavar="WxH",
        help="Skip detection and use this physical resolution",
    )
    parser.add_argument(
        "--logical",
        type=_screen_size,
        metavar="WxH",
        help="Logical resolution to pair with --screen",
    )
    parser.add_argument("--config", type=Path, help="JSON configuration file")
    parser.add_argument(
        "--no-raise",
        action="store_true",
        help="Do not bring client windows to the foreground",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the window layout without launching anything",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Set logging level",
    )
    return parser


def split_client_args(argv: t.Sequence[str]) -> t.Tuple[t.List[str], t.List[str]]:
    """Split argv at the first '--' into launcher and client arguments."""
    argv = list(argv)
    if "--" in argv:
        marker = argv.index("--")
        return argv[:marker], argv[marker + 1:]
    return argv, []


def configure_logging(level: str) -> None:
    logging.basicConfig(level=logging.INFO, stream=sys.stdout)
    logging.getLogger().setLevel(getattr(logging, level))


def apply_overrides(config: ConfigManager, args: argparse.Namespace) -> None:
    """Apply command-line overrides on top of the loaded configuration."""
    if args.profile:
        config.apply_profile(args.profile)
    if args.columns is not None:
        config.set_columns(args.columns)
    if args.lag_ms is not None:
        config.set_lag_ms(args.lag_ms)
    if args.scale is not None:
        config.set_assumed_scale(args.scale)
    if args.probe:
        config.set_probe(args.probe)
    if args.no_raise:
        config.set_foreground_enabled(False)


def select_probe(config: ConfigManager, args: argparse.Namespace) -> DisplayProbe:
    if args.screen is None:
        return create_probe(config.probe_type())

    width, height = args.screen
    logical_width, logical_height = args.logical if args.logical else (None, None)
    reading = DisplayReading(
        physical_width=width,
        physical_height=height,
        logical_width=logical_width,
        logical_height=logical_height,
        source="command line",
    )
    return StaticProbe(reading, name="command line")


def _interrupted(token: CancellationToken) -> int:
    logger.info("Interrupted, no clients were launched")
    return 128 + (token.signum or signal.SIGINT)


def launch(
    config: ConfigManager,
    count: int,
    probe: DisplayProbe,
    extra_args: t.Sequence[str] = (),
    dry_run: bool = False,
    spawner: t.Optional[Spawner] = None,
    token: t.Optional[CancellationToken] = None,
    handle_signals: bool = True,
) -> int:
    """
    Resolve the screen, plan the layout and supervise the clients.

    Returns:
        Process exit status for the launcher
    """
    try:
        layout = config.layout_config()
        strategy = config.scale_strategy()
        command = config.client_command()
        client_args = [*config.extra_args(), *extra_args]
        lag_ms = config.lag_ms()
        timing = config.timing()
        working_dir = config.working_dir()
        process_name = config.process_name() if config.foreground_enabled() else None
    except ValueError as e:
        logger.error(f"❌ Invalid configuration: {e}")
        return EXIT_FAILURE

    if token is None:
        token = CancellationToken(slice_seconds=timing["poll_interval"])
    previous_handlers = install_signal_handlers(token) if handle_signals else {}
    try:
        try:
            screen = resolve_geometry(probe, strategy)
        except GeometryUnavailable as e:
            if token.cancelled:
                return _interrupted(token)
            logger.error(f"❌ Cannot determine screen geometry: {e}")
            logger.error("No clients were launched")
            return EXIT_FAILURE
        except ValueError as e:
            logger.error(f"❌ Invalid configuration: {e}")
            return EXIT_FAILURE
        if token.cancelled:
            return _interrupted(token)

        logger.info(f"Physical resolution: {screen.physical_width}x{screen.physical_height}")
        logger.info(f"Logical screen size: {screen.logical_width}x{screen.logical_height}")
        logger.info(f"Scaling factor: {screen.scale_factor:.2f}x")
        logger.info(f"Launching {count} clients...")

        try:
            plan = plan_launch(count, layout, screen)
        except ValueError as e:
            logger.error(f"❌ {e}")
            return EXIT_FAILURE
        for placement in plan:
            logger.info(placement.summary())

        if dry_run:
            logger.info("Dry run, nothing launched")
            return EXIT_OK

        supervisor = ProcessSupervisor(
            command=command,
            layout=layout,
            lag_ms=lag_ms,
            launch_stagger=timing["launch_stagger"],
            poll_interval=timing["poll_interval"],
            terminate_timeout=timing["terminate_timeout"],
            spawner=spawner or popen_spawner(working_dir),
            token=token,
        )

        after_spawn = None
        if process_name is not None:
            raiser = ForegroundRaiser(
                process_name=process_name,
                settle_delay=timing["settle_delay"],
            )
            after_spawn = raiser.raise_after_settle

        result = supervisor.run(plan, extra_args=client_args, after_spawn=after_spawn)
    finally:
        restore_signal_handlers(previous_handlers)

    if result.failed:
        logger.warning(f"⚠️ {len(result.failed)} client(s) failed to start: {result.failed}")
    return result.exit_code


def main(argv: t.Optional[t.Sequence[str]] = None) -> int:
    launcher_argv, client_argv = split_client_args(
        sys.argv[1:] if argv is None else argv
    )
    args = build_parser().parse_args(launcher_argv)
    configure_logging(args.log_level)

    config = ConfigManager(args.config)
    try:
        apply_overrides(config, args)
        probe = select_probe(config, args)
    except ValueError as e:
        logger.error(f"❌ Invalid configuration: {e}")
        return EXIT_FAILURE

    return launch(
        config,
        args.count,
        probe,
        extra_args=client_argv,
        dry_run=args.dry_run,
    )


if __name__ == "__main__":
    sys.exit(main())
