"""Signal Relay: forward caller-supplied signals to the child's process group."""

from __future__ import annotations

import logging
import signal

from anyio.streams.memory import MemoryObjectReceiveStream

from .process_runner import ProcessHandle, signal_process_group

__all__ = ["relay_signals"]

logger = logging.getLogger(__name__)


def _signal_name(sig: int) -> str:
    try:
        return signal.Signals(sig).name
    except ValueError:
        return str(sig)


async def relay_signals(
    receive: MemoryObjectReceiveStream[int],
    handle: ProcessHandle,
) -> None:
    """Deliver every received signal to the whole process group.

    Closing the signal channel only disables further signaling. It never
    kills the child and is not a completion event for the coordinator.
    """
    async with receive:
        async for sig in receive:
            name = _signal_name(sig)
            try:
                signal_process_group(handle, sig)
                logger.debug(f"Relayed {name} to process group pgid={handle.pgid}")
            except ProcessLookupError:
                logger.debug(f"Process group pgid={handle.pgid} gone, {name} not delivered")
            except (OSError, ValueError) as e:
                logger.warning(f"Failed to relay {name} to pgid={handle.pgid}: {e}")

    logger.debug(f"Signal channel closed for pid={handle.pid}, relay stopped")
