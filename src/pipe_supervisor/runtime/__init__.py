"""Runtime module for child process supervision.

This module provides process-group isolated spawning, pipe/channel bridging,
signal relaying and the termination coordinator for one supervised child.
"""

from __future__ import annotations

from .codec import Message, MessageCodec
from .coordinator import CoordinatorState, TerminationCoordinator
from .process_runner import ProcessHandle, ProcessSpec, ProcessState
from .supervisor import (
    OutputMode,
    StderrSink,
    SupervisedProcess,
    Supervisor,
    SupervisorConfig,
)

__all__ = [
    "CoordinatorState",
    "Message",
    "MessageCodec",
    "OutputMode",
    "ProcessHandle",
    "ProcessSpec",
    "ProcessState",
    "StderrSink",
    "SupervisedProcess",
    "Supervisor",
    "SupervisorConfig",
    "TerminationCoordinator",
]
