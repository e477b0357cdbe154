"""
Process Supervisor

Spawns one client process per planned placement, tracks the live children
and tears the whole group down when a stop is requested.
"""

import logging
import signal
import subprocess
import time
import typing as t
from dataclasses import dataclass, field

from clientgrid.common import constants
from clientgrid.common.enums import RunOutcome
from clientgrid.common.errors import SpawnFailure, TerminationPropagationFailure
from clientgrid.layout.planner import InstancePlacement, LaunchPlan, LayoutConfig

logger = logging.getLogger(__name__)


class ProcessHandle(t.Protocol):
    """The subset of :class:`subprocess.Popen` the supervisor relies on."""

    pid: int

    def poll(self) -> t.Optional[int]:
        ...

    def wait(self, timeout: t.Optional[float] = None) -> int:
        ...

    def terminate(self) -> None:
        ...

    def kill(self) -> None:
        ...


Spawner = t.Callable[[t.List[str]], ProcessHandle]


class CancellationToken:
    """
    Run-wide stop flag.

    Signal handlers only call :meth:`cancel`; the control thread observes the
    flag between spawns and while sleeping, since :meth:`wait` sleeps in
    short slices.
    """

    def __init__(
        self,
        slice_seconds: float = constants.POLL_INTERVAL,
        sleep: t.Callable[[float], None] = time.sleep,
    ):
        self.slice_seconds = slice_seconds
        self._sleep = sleep
        self._cancelled = False
        self.signum: t.Optional[int] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, signum: t.Optional[int] = None) -> None:
        if not self._cancelled:
            self.signum = signum
        self._cancelled = True

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds. Returns True if cancelled."""
        deadline = time.monotonic() + timeout
        while not self._cancelled:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            self._sleep(min(remaining, self.slice_seconds))
        return self._cancelled


@dataclass
class SupervisedProcess:
    """A running client owned by the supervisor."""

    index: int
    process_handle: ProcessHandle
    placement: InstancePlacement

    @property
    def pid(self) -> int:
        return self.process_handle.pid


@dataclass
class RunResult:
    """Summary of a supervised run."""

    outcome: RunOutcome
    spawned: t.List[int] = field(default_factory=list)
    failed: t.List[int] = field(default_factory=list)
    exit_code: int = 0


def build_client_args(
    command: t.Sequence[str],
    placement: InstancePlacement,
    layout: LayoutConfig,
    lag_ms: int = 0,
    extra_args: t.Sequence[str] = (),
) -> t.List[str]:
    """Full argument vector for one client instance."""
    args = list(command)
    args += [
        "--window-x", str(placement.physical_x),
        "--window-y", str(placement.physical_y),
        "--window-width", str(layout.window_width),
        "--window-height", str(layout.window_height),
    ]
    if lag_ms > 0:
        args += ["--lag-ms", str(lag_ms)]
    args += list(extra_args)
    return args


def popen_spawner(working_dir: t.Optional[str] = None) -> Spawner:
    """Spawner that starts clients with :class:`subprocess.Popen`.

    Children stay in the launcher's process group so a terminal Ctrl-C
    reaches them as well.
    """

    def spawn(args: t.List[str]) -> ProcessHandle:
        return subprocess.Popen(args, cwd=working_dir)

    return spawn


class ProcessSupervisor:
    """Fan-out spawn, fan-in wait and group teardown for one launcher run."""

    def __init__(
        self,
        command: t.Sequence[str],
        layout: LayoutConfig,
        lag_ms: int = constants.LAG_MS,
        launch_stagger: float = constants.LAUNCH_STAGGER,
        poll_interval: float = constants.POLL_INTERVAL,
        terminate_timeout: float = constants.TERMINATE_TIMEOUT,
        spawner: t.Optional[Spawner] = None,
        token: t.Optional[CancellationToken] = None,
    ):
        """
        Args:
            command: client program and its leading arguments
            layout: window layout, used for the width/height arguments
            lag_ms: simulated network latency passed to every client
            launch_stagger: seconds to wait between consecutive spawns
            poll_interval: seconds between liveness checks while waiting,
                raised to MIN_POLL_INTERVAL if smaller
            terminate_timeout: grace period before a terminated child is killed
            spawner: process factory, defaults to subprocess.Popen
            token: cancellation token shared with signal handlers
        """
        self.command = list(command)
        self.layout = layout
        self.lag_ms = lag_ms
        self.launch_stagger = launch_stagger
        self.poll_interval = max(poll_interval, constants.MIN_POLL_INTERVAL)
        self.terminate_timeout = terminate_timeout
        self.spawner = spawner or popen_spawner()
        self.token = token or CancellationToken(slice_seconds=self.poll_interval)

        self._live: t.List[SupervisedProcess] = []

    @property
    def live_processes(self) -> t.List[SupervisedProcess]:
        return list(self._live)

    def request_stop(self, signum: t.Optional[int] = None) -> None:
        """Ask the run to stop. Safe to call from a signal handler."""
        self.token.cancel(signum)

    def run(
        self,
        plan: LaunchPlan,
        extra_args: t.Sequence[str] = (),
        after_spawn: t.Optional[t.Callable[[CancellationToken], t.Any]] = None,
    ) -> RunResult:
        """
        Launch every placement in ``plan`` and block until all clients exit
        or a stop is requested.

        Args:
            plan: placements in launch order
            extra_args: static arguments appended to every client command
            after_spawn: called once after the last spawn (e.g. window raising)

        Returns:
            RunResult describing how the run ended
        """
        result = RunResult(outcome=RunOutcome.COMPLETED)
        logger.info(f"🚀 Launching {len(plan)} clients...")

        for position, placement in enumerate(plan):
            if self.token.cancelled:
                break
            if position > 0 and self.launch_stagger > 0:
                if self.token.wait(self.launch_stagger):
                    break

            args = build_client_args(
                self.command, placement, self.layout, self.lag_ms, extra_args
            )
            try:
                self._spawn(placement, args)
                result.spawned.append(placement.index)
            except SpawnFailure as e:
                logger.error(f"❌ {e}")
                result.failed.append(placement.index)

        skipped = len(plan) - len(result.spawned) - len(result.failed)
        if skipped:
            logger.info(f"Stop requested, {skipped} pending client(s) not launched")

        if not self.token.cancelled:
            if not result.spawned:
                logger.warning("⚠️ No clients could be launched")
            else:
                logger.info("All clients launched!")
            if after_spawn is not None:
                after_spawn(self.token)

        if not self.token.cancelled:
            logger.info("Press Ctrl-C to kill all clients and exit.")
            self._wait_for_exit()

        if self.token.cancelled:
            self.terminate_all()
            result.outcome = RunOutcome.INTERRUPTED
            result.exit_code = 128 + (self.token.signum or signal.SIGINT)
        else:
            logger.info("All clients exited")

        return result

    def _spawn(self, placement: InstancePlacement, args: t.List[str]) -> SupervisedProcess:
        logger.debug(f"Spawning client {placement.index}: {' '.join(args)}")
        try:
            handle = self.spawner(args)
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            raise SpawnFailure(placement.index, str(e)) from e

        process = SupervisedProcess(
            index=placement.index, process_handle=handle, placement=placement
        )
        self._live.append(process)
        logger.debug(f"Client {placement.index} started (pid {handle.pid})")
        return process

    def _reap(self) -> None:
        """Drop children that have exited."""
        for process in list(self._live):
            code = process.process_handle.poll()
            if code is not None:
                logger.info(f"Client {process.index} exited with code {code}")
                self._live.remove(process)

    def _wait_for_exit(self) -> None:
        while True:
            self._reap()
            if not self._live:
                return
            if self.token.wait(self.poll_interval):
                return

    def terminate_all(self) -> int:
        """
        Terminate every tracked child, escalating to kill after the grace
        period. A failure on one child does not stop the others.

        Returns:
            Number of children that were signalled
        """
        if not self._live:
            return 0

        logger.info("🛑 Killing all clients...")
        signalled: t.List[SupervisedProcess] = []

        for process in list(self._live):
            if process.process_handle.poll() is not None:
                self._live.remove(process)
                continue
            try:
                process.process_handle.terminate()
                signalled.append(process)
            except OSError as e:
                failure = TerminationPropagationFailure(process.index, process.pid, str(e))
                logger.warning(f"⚠️ {failure}")

        deadline = time.monotonic() + self.terminate_timeout
        for process in signalled:
            remaining = max(deadline - time.monotonic(), 0.0)
            try:
                process.process_handle.wait(timeout=remaining)
            except subprocess.TimeoutExpired:
                self._kill(process)

        self._live.clear()
        return len(signalled)

    def _kill(self, process: SupervisedProcess) -> None:
        logger.warning(f"Client {process.index} did not exit, killing pid {process.pid}")
        try:
            process.process_handle.kill()
            process.process_handle.wait(timeout=self.terminate_timeout)
        except (OSError, subprocess.TimeoutExpired) as e:
            failure = TerminationPropagationFailure(process.index, process.pid, str(e))
            logger.warning(f"⚠️ {failure}")


def install_signal_handlers(
    token: CancellationToken,
    signals: t.Sequence[int] = (signal.SIGINT, signal.SIGTERM),
) -> t.Dict[int, t.Any]:
    """Route interrupt/termination signals to ``token.cancel``.

    Install before the first slow step, display probing included.

    Returns:
        The previous handlers, for :func:`restore_signal_handlers`
    """
    previous: t.Dict[int, t.Any] = {}

    def handle(signum: int, frame: t.Any) -> None:
        token.cancel(signum)

    for sig in signals:
        previous[sig] = signal.signal(sig, handle)
    return previous


def restore_signal_handlers(previous: t.Dict[int, t.Any]) -> None:
    for sig, handler in previous.items():
        signal.signal(sig, handler)
