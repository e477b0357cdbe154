"""
Supervisor Module

Spawns the client processes, supervises their lifecycle and raises their
windows once they are up.
"""

from clientgrid.supervisor.foreground import ForegroundRaiser
from clientgrid.supervisor.process_supervisor import (
    CancellationToken,
    ProcessSupervisor,
    RunResult,
    SupervisedProcess,
)

__all__ = [
    "CancellationToken",
    "ForegroundRaiser",
    "ProcessSupervisor",
    "RunResult",
    "SupervisedProcess",
]
