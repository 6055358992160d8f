"""Bridges between the child's pipes and message channels.

- read_lines: Line Reader, one per monitored output pipe
- write_lines: Stream Writer, owns the child's stdin

Each task owns exactly one pipe end and closes it on its terminal path.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from ..errors import DecodeError, InvalidArgumentError

__all__ = ["read_lines", "write_lines", "strip_line_ending"]

logger = logging.getLogger(__name__)

# Chunk size used when discarding output after an overlong line
_DISCARD_CHUNK = 64 * 1024


def strip_line_ending(line: bytes) -> bytes:
    """Drop a trailing ``\\n`` or ``\\r\\n``."""
    if line.endswith(b"\n"):
        line = line[:-1]
        if line.endswith(b"\r"):
            line = line[:-1]
    return line


async def _discard(reader: asyncio.StreamReader) -> None:
    """Keep the pipe flowing after the channel is closed."""
    try:
        while await reader.read(_DISCARD_CHUNK):
            pass
    except Exception as e:
        logger.debug(f"Discarding remaining output stopped: {e}")


async def read_lines(
    reader: asyncio.StreamReader,
    send: MemoryObjectSendStream[Any],
    *,
    name: str,
    decode: Callable[[bytes], Any] | None = None,
) -> None:
    """Line Reader: forward each line of a pipe to an output channel.

    The channel is closed once the pipe hits EOF or a terminal read error;
    messages already buffered are still delivered after the close. If the
    consumer has closed its end, lines keep being read and dropped so the
    child never blocks on a full pipe.

    Args:
        reader: The child's stdout or stderr stream
        send: Producer side of the output channel (owned by this task)
        name: Stream name used in log messages
        decode: Optional line decoder; DecodeError drops the line
    """
    consumer_attached = True
    overflowed = False
    count = 0

    try:
        while True:
            try:
                raw = await reader.readline()
            except ValueError as e:
                # StreamReader limit exceeded
                logger.warning(f"[{name}] line exceeds read limit, closing stream: {e}")
                overflowed = True
                break
            except Exception as e:
                logger.warning(f"[{name}] read failed, closing stream: {e}")
                break

            if not raw:
                break

            line = strip_line_ending(raw)
            item: Any = line
            if decode is not None:
                try:
                    item = decode(line)
                except DecodeError as e:
                    logger.warning(f"[{name}] dropping malformed line {line[:100]!r}: {e}")
                    continue

            if not consumer_attached:
                continue

            try:
                await send.send(item)
                count += 1
            except (anyio.BrokenResourceError, anyio.ClosedResourceError):
                consumer_attached = False
                logger.debug(f"[{name}] consumer closed the channel, discarding output")
    finally:
        send.close()
        logger.debug(f"[{name}] channel closed after {count} message(s)")

    if overflowed:
        await _discard(reader)


async def write_lines(
    writer: asyncio.StreamWriter,
    receive: MemoryObjectReceiveStream[Any],
    *,
    encode: Callable[[Any], bytes] | None = None,
) -> None:
    """Stream Writer: write each input message plus a newline to stdin.

    Write failures are logged and the message is skipped. When the input
    channel is closed the stdin pipe is closed, which lets most children see
    EOF and exit.

    Args:
        writer: The child's stdin (owned by this task)
        receive: Consumer side of the input channel
        encode: Optional message encoder (merged mode)
    """
    written = 0
    try:
        async with receive:
            async for item in receive:
                try:
                    data = encode(item) if encode is not None else item
                    writer.write(data + b"\n")
                    await writer.drain()
                    written += 1
                except (BrokenPipeError, ConnectionResetError) as e:
                    logger.debug(f"[stdin] pipe closed, message skipped: {e}")
                except OSError as e:
                    logger.warning(f"[stdin] write failed, message skipped: {e}")
                except (InvalidArgumentError, TypeError) as e:
                    logger.warning(f"[stdin] cannot encode message, skipped: {e}")
    finally:
        logger.debug(f"[stdin] closing pipe after {written} message(s)")
        writer.close()
        try:
            await writer.wait_closed()
        except OSError as e:
            logger.debug(f"[stdin] error while closing pipe: {e}")
