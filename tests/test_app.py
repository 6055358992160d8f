"""命令行入口测试。"""

from __future__ import annotations

import asyncio
import io
import os
import signal
import sys
from unittest import mock

import anyio
import pytest

from conftest import collect

from pipe_supervisor import app
from pipe_supervisor.config import Config
from pipe_supervisor.runtime.codec import Message, MessageCodec
from pipe_supervisor.runtime.process_runner import IS_WINDOWS
from pipe_supervisor.runtime.supervisor import OutputMode

pytestmark = pytest.mark.skipif(IS_WINDOWS, reason="POSIX-specific tests")

# stdin 线程会在输入结束时触发 SIGINT，这里让输入通道保持打开
NO_STDIN = mock.patch("pipe_supervisor.app._start_stdin_thread")


class TestStdinThread:
    """测试 stdin 读取线程。"""

    @pytest.mark.asyncio
    async def test_lines_then_close(self, monkeypatch):
        monkeypatch.setattr(sys, "stdin", io.TextIOWrapper(io.BytesIO(b"a\nb\r\n\n")))
        send, recv = anyio.create_memory_object_stream(max_buffer_size=1)

        thread = app._start_stdin_thread(asyncio.get_running_loop(), send, None)
        items = await asyncio.wait_for(collect(recv), timeout=2.0)
        thread.join(timeout=1.0)

        assert items == [b"a", b"b", b""]
        assert thread.daemon

    @pytest.mark.asyncio
    async def test_merged_decode(self, monkeypatch):
        monkeypatch.setattr(sys, "stdin", io.TextIOWrapper(io.BytesIO(b"k\tv\nbroken\n")))
        send, recv = anyio.create_memory_object_stream(max_buffer_size=4)

        app._start_stdin_thread(asyncio.get_running_loop(), send, MessageCodec().decode)
        items = await asyncio.wait_for(collect(recv), timeout=2.0)

        assert items == [Message(b"k", b"v")]


class TestSignalHandlers:
    """测试信号转发处理器。"""

    @pytest.mark.asyncio
    async def test_signal_pushed_to_channel(self):
        loop = asyncio.get_running_loop()
        send, recv = anyio.create_memory_object_stream(max_buffer_size=4)

        installed = app._install_signal_handlers(loop, send)
        try:
            assert set(installed) == {signal.SIGINT, signal.SIGTERM, signal.SIGHUP}
            os.kill(os.getpid(), signal.SIGHUP)
            received = await asyncio.wait_for(recv.receive(), timeout=1.0)
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)

        assert received == signal.SIGHUP

    @pytest.mark.asyncio
    async def test_full_channel_drops_signal(self):
        loop = asyncio.get_running_loop()
        send, recv = anyio.create_memory_object_stream(max_buffer_size=0)

        installed = app._install_signal_handlers(loop, send)
        try:
            os.kill(os.getpid(), signal.SIGHUP)
            await asyncio.sleep(0.1)
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)

        with pytest.raises(anyio.WouldBlock):
            recv.receive_nowait()


class TestRunSupervised:
    """测试 run_supervised。"""

    @pytest.mark.asyncio
    async def test_split_output(self, capsysbinary):
        with NO_STDIN:
            await asyncio.wait_for(
                app.run_supervised(["sh", "-c", "echo out; echo err >&2"], Config()),
                timeout=5.0,
            )

        captured = capsysbinary.readouterr()
        assert captured.out == b"out\n"
        assert b"err\n" in captured.err

    @pytest.mark.asyncio
    async def test_merged_output(self, capsysbinary):
        with NO_STDIN:
            await asyncio.wait_for(
                app.run_supervised(
                    ["printf", "k\tv\nbroken\n"],
                    Config(),
                    OutputMode.MERGED,
                ),
                timeout=5.0,
            )

        assert capsysbinary.readouterr().out == b"k\tv\n"

    @pytest.mark.asyncio
    async def test_signal_handlers_removed(self):
        loop = asyncio.get_running_loop()
        with NO_STDIN:
            await asyncio.wait_for(app.run_supervised(["true"], Config()), timeout=5.0)

        assert loop.remove_signal_handler(signal.SIGHUP) is False


class TestMain:
    """测试 main 退出码。"""

    def test_empty_command(self):
        with NO_STDIN:
            assert app.main([]) == app.EXIT_USAGE

    def test_separator_only(self):
        with NO_STDIN:
            assert app.main(["--"]) == app.EXIT_USAGE

    def test_spawn_failure(self):
        with NO_STDIN:
            assert app.main(["--", "nonexistent_command_xyz_123"]) == app.EXIT_SPAWN_FAILED

    def test_success(self, capsysbinary):
        with NO_STDIN:
            assert app.main(["--mode", "split", "--", "echo", "hello"]) == app.EXIT_OK
        assert capsysbinary.readouterr().out == b"hello\n"

    def test_version(self):
        with pytest.raises(SystemExit) as exc_info:
            app.main(["--version"])
        assert exc_info.value.code == 0
