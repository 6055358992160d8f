"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import anyio
import pytest
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

# 测试用子进程脚本
FAKE_CHILD_PATH = PROJECT_ROOT / "tests" / "fixtures" / "fake_child.py"


@dataclass
class Channels:
    """调用方持有的输入/信号通道两端。"""

    stdin_send: MemoryObjectSendStream[Any]
    stdin_recv: MemoryObjectReceiveStream[Any]
    signal_send: MemoryObjectSendStream[int]
    signal_recv: MemoryObjectReceiveStream[int]

    def close(self) -> None:
        self.stdin_send.close()
        self.signal_send.close()


def make_channels(input_buffer: int = 16, signal_buffer: int = 4) -> Channels:
    """创建一组输入/信号通道。"""
    stdin_send, stdin_recv = anyio.create_memory_object_stream(max_buffer_size=input_buffer)
    signal_send, signal_recv = anyio.create_memory_object_stream(max_buffer_size=signal_buffer)
    return Channels(stdin_send, stdin_recv, signal_send, signal_recv)


async def collect(stream: MemoryObjectReceiveStream[Any] | None) -> list[Any]:
    """读取通道直到关闭。"""
    if stream is None:
        return []
    return [item async for item in stream]


@pytest.fixture
def channels():
    """输入/信号通道，测试结束时关闭。"""
    chans = make_channels()
    yield chans
    chans.close()


@pytest.fixture
def fake_child_argv() -> list[str]:
    """fake_child.py 的命令行前缀。"""
    return [sys.executable, "-u", str(FAKE_CHILD_PATH)]
