"""Process spawning with process-group isolation.

pipe-supervisor runtime module v0.1.0

This module provides:
- Cross-platform subprocess isolation (new session/process group)
- A read-only process handle shared by every supervision task
- Process-group signal delivery
- The Process Runner task body (wait for exit, complete once)

Key design points:
- POSIX: start_new_session=True, so pgid == pid and the whole group
  (grandchildren included) can be signaled with os.killpg
- Windows: CREATE_NEW_PROCESS_GROUP; group signaling falls back to
  CTRL_BREAK_EVENT / per-process signals
- The pgid is captured at spawn, so the group stays addressable after the
  leader has been reaped
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
import sys
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

__all__ = [
    "IS_WINDOWS",
    "ProcessHandle",
    "ProcessSpec",
    "ProcessState",
    "signal_process_group",
    "start_process",
    "wait_for_exit",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"


@dataclass(frozen=True)
class ProcessSpec:
    """Specification for a subprocess to run.

    Attributes:
        argv: Command line arguments (first element is the executable)
        cwd: Working directory for the process (None = inherit parent)
        env: Environment variables (None = inherit parent)
    """

    argv: list[str]
    cwd: Path | None = None
    env: Mapping[str, str] | None = None


class ProcessState(str, Enum):
    """Lifecycle of a supervised child."""

    STARTING = "starting"
    RUNNING = "running"
    EXITED = "exited"


class ProcessHandle:
    """Read-only view of a spawned child shared across supervision tasks.

    Identifiers never change after spawn. Only the Process Runner moves the
    state to EXITED, and it does so exactly once.
    """

    def __init__(self, process: asyncio.subprocess.Process, argv: list[str]) -> None:
        self._process = process
        self._argv = tuple(argv)
        # start_new_session makes the child its own group leader
        self._pgid = process.pid
        self._state = ProcessState.STARTING

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def pgid(self) -> int:
        return self._pgid

    @property
    def argv(self) -> tuple[str, ...]:
        return self._argv

    @property
    def state(self) -> ProcessState:
        return self._state

    def _mark_running(self) -> None:
        if self._state is ProcessState.STARTING:
            self._state = ProcessState.RUNNING

    def _mark_exited(self) -> None:
        self._state = ProcessState.EXITED

    def __repr__(self) -> str:
        return (
            f"ProcessHandle(pid={self.pid}, pgid={self.pgid}, "
            f"argv0={self._argv[0]}, state={self._state.value})"
        )


def _build_subprocess_kwargs(spec: ProcessSpec) -> dict[str, Any]:
    """Build platform-specific subprocess kwargs.

    Args:
        spec: Process specification

    Returns:
        Dict of kwargs for asyncio.create_subprocess_exec
    """
    kwargs: dict[str, Any] = {}

    if spec.cwd is not None:
        kwargs["cwd"] = spec.cwd

    if spec.env is not None:
        kwargs["env"] = dict(spec.env)

    if IS_WINDOWS:
        kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
    else:
        # POSIX: start_new_session (equivalent to setsid)
        kwargs["start_new_session"] = True

    return kwargs


async def start_process(
    spec: ProcessSpec,
    *,
    stderr: int | None,
    limit: int,
) -> asyncio.subprocess.Process:
    """Start the child with piped stdin/stdout in its own process group.

    Args:
        spec: Process specification
        stderr: asyncio.subprocess.PIPE, DEVNULL, or None to inherit
        limit: StreamReader line limit for the output pipes

    Returns:
        The started asyncio process

    Raises:
        OSError: If a pipe cannot be created or the executable cannot start
    """
    process = await asyncio.create_subprocess_exec(
        *spec.argv,
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        stderr=stderr,
        limit=limit,
        **_build_subprocess_kwargs(spec),
    )

    logger.debug(
        f"Started subprocess pid={process.pid} "
        f"argv={spec.argv[0]} cwd={spec.cwd}"
    )
    return process


def signal_process_group(handle: ProcessHandle, sig: int) -> None:
    """Send a signal to the child's whole process group.

    Args:
        handle: The supervised process
        sig: Signal number

    Raises:
        ProcessLookupError: If the group no longer exists
        OSError: If delivery fails for another reason
    """
    if IS_WINDOWS:
        # Windows has no process groups for signals; CTRL_BREAK_EVENT reaches
        # the group created with CREATE_NEW_PROCESS_GROUP
        if sig == signal.SIGINT:
            os.kill(handle.pid, signal.CTRL_BREAK_EVENT)
        else:
            os.kill(handle.pid, sig)
        return

    os.killpg(handle.pgid, sig)


async def wait_for_exit(process: asyncio.subprocess.Process, handle: ProcessHandle) -> None:
    """Process Runner: block until the child exits by any means.

    Wait failures are absorbed; finishing this coroutine is the single
    completion signal. The exit status is logged, never returned.
    """
    try:
        returncode = await process.wait()
    except Exception as e:
        logger.warning(f"Waiting for subprocess failed pid={handle.pid}: {e}")
    else:
        logger.debug(f"Subprocess exited pid={handle.pid} returncode={returncode}")
    handle._mark_exited()
