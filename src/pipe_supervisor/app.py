"""Pipe Supervisor 命令行入口。

把当前进程的 stdin/stdout/stderr 与信号桥接到一个受监管的子进程：
- stdin 的每一行作为一条输入消息，EOF 时关闭输入通道
- 子进程的输出消息写回 stdout/stderr
- SIGINT/SIGTERM/SIGHUP 转发到子进程的进程组

所有输出通道关闭后退出。
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
import threading
from collections.abc import Callable
from typing import Any, BinaryIO

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from . import __version__
from .config import Config, get_config
from .errors import DecodeError, InvalidArgumentError, SpawnError, SupervisorError
from .runtime.codec import MessageCodec
from .runtime.process_runner import IS_WINDOWS
from .runtime.supervisor import OutputMode, Supervisor

__all__ = ["run_supervised", "main"]

logger = logging.getLogger(__name__)

# 输入/信号通道容量
INPUT_BUFFER = 64
SIGNAL_BUFFER = 16

# 转发给子进程的信号
FORWARDED_SIGNALS = (
    () if IS_WINDOWS else (signal.SIGINT, signal.SIGTERM, signal.SIGHUP)
)

# 退出码
EXIT_OK = 0
EXIT_USAGE = 2
EXIT_SPAWN_FAILED = 127


def _start_stdin_thread(
    loop: asyncio.AbstractEventLoop,
    send: MemoryObjectSendStream[Any],
    decode: Callable[[bytes], Any] | None,
) -> threading.Thread:
    """在守护线程中逐行读取 stdin 并送入输入通道。

    使用 run_coroutine_threadsafe(...).result() 发送，输入通道满时线程阻塞，
    从而保持背压。EOF 时关闭输入通道（即请求子进程结束）。
    """

    def _read() -> None:
        try:
            for raw in sys.stdin.buffer:
                line = raw.rstrip(b"\r\n")
                item: Any = line
                if decode is not None:
                    try:
                        item = decode(line)
                    except DecodeError as e:
                        logger.warning(f"Dropping malformed input line {line[:100]!r}: {e}")
                        continue
                asyncio.run_coroutine_threadsafe(send.send(item), loop).result()
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            logger.debug("Input channel closed, stdin reader stopped")
            return
        except RuntimeError as e:
            # 事件循环已关闭
            logger.debug(f"Event loop gone, stdin reader stopped: {e}")
            return
        except (OSError, ValueError) as e:
            logger.debug(f"Reading stdin failed: {e}")

        try:
            loop.call_soon_threadsafe(send.close)
            logger.debug("stdin EOF, input channel closed")
        except RuntimeError:
            logger.debug("Event loop gone before stdin EOF was delivered")

    thread = threading.Thread(target=_read, name="psv-stdin-reader", daemon=True)
    thread.start()
    return thread


def _install_signal_handlers(
    loop: asyncio.AbstractEventLoop,
    send: MemoryObjectSendStream[int],
) -> list[int]:
    """把收到的信号放入信号通道。

    Returns:
        已安装处理器的信号列表（用于恢复）
    """

    def _forward(sig: int) -> None:
        try:
            send.send_nowait(sig)
            logger.debug(f"Forwarding {signal.Signals(sig).name} to child")
        except anyio.WouldBlock:
            logger.warning(f"Signal channel full, dropping {signal.Signals(sig).name}")
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            logger.debug(f"Signal channel closed, ignoring {signal.Signals(sig).name}")

    installed: list[int] = []
    for sig in FORWARDED_SIGNALS:
        try:
            loop.add_signal_handler(sig, _forward, sig)
            installed.append(sig)
        except (NotImplementedError, RuntimeError, ValueError) as e:
            logger.debug(f"Cannot install handler for {sig}: {e}")
    return installed


async def _print_stream(
    receive: MemoryObjectReceiveStream[Any] | None,
    sink: BinaryIO,
    encode: Callable[[Any], bytes] | None = None,
) -> None:
    """把输出通道内容写到 sink，通道关闭后返回。"""
    if receive is None:
        return
    async with receive:
        async for item in receive:
            data = encode(item) if encode is not None else item
            sink.write(data + b"\n")
            sink.flush()


async def run_supervised(
    command: list[str],
    config: Config,
    mode: OutputMode | None = None,
) -> None:
    """运行并监管一个子进程直到其全部输出通道关闭。

    Raises:
        InvalidArgumentError: 命令为空
        SpawnError: 子进程启动失败
    """
    loop = asyncio.get_running_loop()
    supervisor_config = config.supervisor_config(mode)
    supervisor = Supervisor(supervisor_config)
    logger.info(f"Supervising {command[:1]} ({config})")

    stdin_send, stdin_recv = anyio.create_memory_object_stream(max_buffer_size=INPUT_BUFFER)
    signal_send, signal_recv = anyio.create_memory_object_stream(max_buffer_size=SIGNAL_BUFFER)

    try:
        proc = await supervisor.spawn(command, stdin_recv, signal_recv)
    except SupervisorError:
        for stream in (stdin_send, stdin_recv, signal_send, signal_recv):
            stream.close()
        raise

    codec: MessageCodec | None = (
        supervisor_config.codec if proc.mode is OutputMode.MERGED else None
    )
    installed = _install_signal_handlers(loop, signal_send)
    _start_stdin_thread(loop, stdin_send, codec.decode if codec else None)

    try:
        await asyncio.gather(
            _print_stream(proc.stdout, sys.stdout.buffer, codec.encode if codec else None),
            _print_stream(proc.stderr, sys.stderr.buffer),
        )
        logger.debug(f"All output channels of pid={proc.pid} closed")
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
        signal_send.close()
        stdin_send.close()


def _configure_logging(config: Config) -> None:
    """配置日志输出。"""
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        # LOG_DEBUG 模式：输出到临时文件
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        # 默认模式：输出到 stderr
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    # 配置 root logger（第三方库）为 WARNING，减少噪音
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    # 只对 pipe_supervisor 命名空间启用详细日志
    logging.getLogger("pipe_supervisor").setLevel(log_level)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pipe-supervisor",
        description="Run a command with its stdio bridged as line messages.",
    )
    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in OutputMode],
        default=None,
        help="Output mode (default: PSV_OUTPUT_MODE or split)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("command", nargs=argparse.REMAINDER, help="Command and arguments")
    return parser


def main(argv: list[str] | None = None) -> int:
    """主入口点。"""
    args = _build_parser().parse_args(argv)
    command = list(args.command)
    if command and command[0] == "--":
        command = command[1:]

    config = get_config()
    _configure_logging(config)
    mode = OutputMode(args.mode) if args.mode else None

    try:
        asyncio.run(run_supervised(command, config, mode))
    except InvalidArgumentError as e:
        logger.error(f"Invalid command: {e}")
        return EXIT_USAGE
    except SpawnError as e:
        logger.error(str(e))
        return EXIT_SPAWN_FAILED

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
