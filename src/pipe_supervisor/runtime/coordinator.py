"""Termination Coordinator.

Waits for the first of {stdin writer done, any reader done, process exited}
and reacts once:

- stdin writer first: the caller closed input, so the process group gets a
  SIGINT for children that do not exit on stdin EOF alone
- anything else first: the child is already exiting or gone, no action

Later completions are never observed.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Iterable
from enum import Enum

from .process_runner import ProcessHandle, signal_process_group

__all__ = ["CoordinatorState", "TerminationCoordinator"]

logger = logging.getLogger(__name__)


class CoordinatorState(str, Enum):
    """Coordinator lifecycle: WAITING -> REACTING -> DONE."""

    WAITING = "waiting"
    REACTING = "reacting"
    DONE = "done"


class TerminationCoordinator:
    """First-event-wins reaction to the end of a supervised process.

    Example:
        coordinator = TerminationCoordinator(
            handle,
            stdin_task=writer_task,
            output_tasks=[stdout_task, stderr_task],
            process_task=runner_task,
        )
        asyncio.create_task(coordinator.run())

    Attributes:
        interrupted: Whether the process group was sent SIGINT
    """

    def __init__(
        self,
        handle: ProcessHandle,
        *,
        stdin_task: asyncio.Future,
        output_tasks: Iterable[asyncio.Future],
        process_task: asyncio.Future,
    ) -> None:
        self._handle = handle
        self._stdin_task = stdin_task
        self._output_tasks = tuple(output_tasks)
        self._process_task = process_task
        self._state = CoordinatorState.WAITING
        self.interrupted = False

    @property
    def state(self) -> CoordinatorState:
        return self._state

    async def run(self) -> None:
        """Wait for the first completion and dispatch the reaction once.

        If the writer and the runner finish in the same batch the child has
        already exited, so no SIGINT is sent.
        """
        if self._state is not CoordinatorState.WAITING:
            return

        watched = {self._stdin_task, self._process_task, *self._output_tasks}
        done, _ = await asyncio.wait(watched, return_when=asyncio.FIRST_COMPLETED)

        self._state = CoordinatorState.REACTING
        try:
            if self._stdin_task in done and self._process_task not in done:
                self._interrupt()
            else:
                logger.debug(
                    f"pid={self._handle.pid} finishing on its own, no interrupt needed"
                )
        finally:
            self._state = CoordinatorState.DONE

    def _interrupt(self) -> None:
        try:
            signal_process_group(self._handle, signal.SIGINT)
        except ProcessLookupError:
            logger.debug(f"Process group pgid={self._handle.pgid} already gone")
            return
        except OSError as e:
            logger.warning(f"Failed to interrupt pgid={self._handle.pgid}: {e}")
            return
        self.interrupted = True
        logger.debug(f"Input closed first, sent SIGINT to pgid={self._handle.pgid}")
