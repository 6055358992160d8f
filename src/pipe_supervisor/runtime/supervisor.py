"""Supervisor: spawn one child and wire up every supervision task.

Channels are anyio memory object streams. The caller keeps the send side of
the input and signal channels and closes them; the supervisor returns the
receive side of each output channel.

Example:
    stdin_send, stdin_recv = anyio.create_memory_object_stream(16)
    sig_send, sig_recv = anyio.create_memory_object_stream(4)

    proc = await Supervisor().spawn(["cat"], stdin_recv, sig_recv)
    await stdin_send.send(b"hello")
    stdin_send.close()                 # EOF + SIGINT to the group

    async for line in proc.stdout:     # ends when the pipe is drained
        print(line)
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream

from ..errors import InvalidArgumentError, SpawnError
from .codec import DEFAULT_SEPARATOR, MessageCodec
from .coordinator import TerminationCoordinator
from .process_runner import ProcessHandle, ProcessSpec, start_process, wait_for_exit
from .signal_relay import relay_signals
from .streams import read_lines, write_lines

__all__ = [
    "DEFAULT_LINE_LIMIT",
    "DEFAULT_OUTPUT_BUFFER",
    "OutputMode",
    "StderrSink",
    "SupervisedProcess",
    "Supervisor",
    "SupervisorConfig",
]

logger = logging.getLogger(__name__)

# Default output channel capacity (messages)
DEFAULT_OUTPUT_BUFFER = 1024
# Default maximum line length (bytes), same as a buffered line scanner
DEFAULT_LINE_LIMIT = 64 * 1024


class OutputMode(str, Enum):
    """How the child's output is exposed.

    - SPLIT: separate stdout and stderr channels of raw lines
    - MERGED: one stdout channel of decoded Messages, stderr to a sink
    """

    SPLIT = "split"
    MERGED = "merged"


class StderrSink(str, Enum):
    """Where stderr goes in merged mode."""

    INHERIT = "inherit"
    DEVNULL = "devnull"


@dataclass(frozen=True)
class SupervisorConfig:
    """Runtime options for a Supervisor.

    Attributes:
        mode: Output mode
        output_buffer_size: Output channel capacity, math.inf for unbounded
        line_limit: Maximum line length accepted from an output pipe
        separator: Message separator byte (merged mode)
        merged_stderr: stderr destination in merged mode
    """

    mode: OutputMode = OutputMode.SPLIT
    output_buffer_size: float = DEFAULT_OUTPUT_BUFFER
    line_limit: int = DEFAULT_LINE_LIMIT
    separator: bytes = DEFAULT_SEPARATOR
    merged_stderr: StderrSink = StderrSink.INHERIT

    def __post_init__(self) -> None:
        if self.output_buffer_size != math.inf and (
            self.output_buffer_size < 0 or int(self.output_buffer_size) != self.output_buffer_size
        ):
            raise InvalidArgumentError(
                f"output_buffer_size must be a non-negative integer or math.inf, "
                f"got {self.output_buffer_size!r}"
            )
        if self.line_limit <= 0:
            raise InvalidArgumentError(f"line_limit must be positive, got {self.line_limit}")
        # Validates the separator
        MessageCodec(self.separator)

    @property
    def codec(self) -> MessageCodec:
        return MessageCodec(self.separator)

    @property
    def buffer_size(self) -> float:
        """Capacity in the form anyio expects (int or math.inf)."""
        if self.output_buffer_size == math.inf:
            return math.inf
        return int(self.output_buffer_size)


@dataclass
class SupervisedProcess:
    """What the caller gets back from :meth:`Supervisor.spawn`.

    The only end-of-life signal is the closing of the output channels; the
    exit status is intentionally not exposed.

    Attributes:
        handle: Read-only process handle
        mode: Output mode the process was spawned with
        stdout: stdout channel (bytes in split mode, Message in merged mode)
        stderr: stderr channel (split mode only, None in merged mode)
    """

    handle: ProcessHandle
    mode: OutputMode
    stdout: MemoryObjectReceiveStream[Any]
    stderr: MemoryObjectReceiveStream[bytes] | None
    coordinator: TerminationCoordinator
    _tasks: tuple[asyncio.Task, ...] = field(default=(), repr=False)

    @property
    def pid(self) -> int:
        return self.handle.pid

    @property
    def tasks(self) -> tuple[asyncio.Task, ...]:
        """All supervision tasks, including the signal relay."""
        return self._tasks


class Supervisor:
    """Spawn a child and supervise it until every task has terminated.

    One Supervisor may spawn many children; each spawn() call supervises
    exactly one process with its own set of tasks.
    """

    def __init__(self, config: SupervisorConfig | None = None) -> None:
        self.config = config if config is not None else SupervisorConfig()

    async def spawn(
        self,
        argv: Sequence[str],
        stdin: MemoryObjectReceiveStream[Any],
        signals: MemoryObjectReceiveStream[int],
        *,
        cwd: Path | str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> SupervisedProcess:
        """Start the child and all supervision tasks.

        Args:
            argv: Command and arguments
            stdin: Input channel; closing its send side requests shutdown
            signals: Signal channel; closing it only disables signaling
            cwd: Working directory (None = inherit)
            env: Environment (None = inherit)

        Returns:
            The supervised process with its output channel(s)

        Raises:
            InvalidArgumentError: If argv is empty
            SpawnError: If pipes or the process cannot be created
        """
        argv = list(argv)
        if not argv:
            raise InvalidArgumentError("no arguments specified")

        config = self.config
        merged = config.mode is OutputMode.MERGED
        spec = ProcessSpec(
            argv=argv,
            cwd=Path(cwd) if cwd is not None else None,
            env=env,
        )

        if not merged:
            stderr_target: int | None = asyncio.subprocess.PIPE
        elif config.merged_stderr is StderrSink.DEVNULL:
            stderr_target = asyncio.subprocess.DEVNULL
        else:
            stderr_target = None

        try:
            process = await start_process(spec, stderr=stderr_target, limit=config.line_limit)
        except (OSError, ValueError) as e:
            logger.debug(f"Spawn failed argv={argv[0]}: {e}")
            raise SpawnError(argv, e) from e

        handle = ProcessHandle(process, argv)
        codec = config.codec if merged else None

        stdout_send, stdout_recv = anyio.create_memory_object_stream(
            max_buffer_size=config.buffer_size
        )
        tag = f"pid={handle.pid}"

        stdin_task = asyncio.create_task(
            write_lines(
                process.stdin,
                stdin,
                encode=codec.encode if codec else None,
            ),
            name=f"psv-stdin-{handle.pid}",
        )
        output_tasks = [
            asyncio.create_task(
                read_lines(
                    process.stdout,
                    stdout_send,
                    name=f"stdout {tag}",
                    decode=codec.decode if codec else None,
                ),
                name=f"psv-stdout-{handle.pid}",
            )
        ]

        stderr_recv = None
        if not merged:
            stderr_send, stderr_recv = anyio.create_memory_object_stream(
                max_buffer_size=config.buffer_size
            )
            output_tasks.append(
                asyncio.create_task(
                    read_lines(process.stderr, stderr_send, name=f"stderr {tag}"),
                    name=f"psv-stderr-{handle.pid}",
                )
            )

        process_task = asyncio.create_task(
            wait_for_exit(process, handle),
            name=f"psv-process-{handle.pid}",
        )
        relay_task = asyncio.create_task(
            relay_signals(signals, handle),
            name=f"psv-signals-{handle.pid}",
        )

        coordinator = TerminationCoordinator(
            handle,
            stdin_task=stdin_task,
            output_tasks=output_tasks,
            process_task=process_task,
        )
        coordinator_task = asyncio.create_task(
            coordinator.run(),
            name=f"psv-coordinator-{handle.pid}",
        )

        handle._mark_running()
        logger.debug(f"Supervising {handle} mode={config.mode.value}")

        return SupervisedProcess(
            handle=handle,
            mode=config.mode,
            stdout=stdout_recv,
            stderr=stderr_recv,
            coordinator=coordinator,
            _tasks=(stdin_task, *output_tasks, process_task, relay_task, coordinator_task),
        )
