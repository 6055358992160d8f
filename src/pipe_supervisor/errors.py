"""Supervisor 异常类。

只有 InvalidArgumentError 和 SpawnError 会在 spawn() 调用时同步抛给调用方；
DecodeError 仅在 Line Reader 内部使用（记录日志后丢弃该行）。
"""

from __future__ import annotations

from collections.abc import Sequence

__all__ = [
    "SupervisorError",
    "InvalidArgumentError",
    "SpawnError",
    "DecodeError",
]


class SupervisorError(Exception):
    """Supervisor 基础异常。"""
    pass


class InvalidArgumentError(SupervisorError, ValueError):
    """参数错误（如空命令、非法分隔符）。"""
    pass


class SpawnError(SupervisorError):
    """子进程或管道创建失败。

    Attributes:
        argv: 尝试启动的命令行
        cause: 底层异常（通常是 OSError）
    """

    def __init__(self, argv: Sequence[str], cause: BaseException) -> None:
        self.argv = list(argv)
        self.cause = cause
        command = self.argv[0] if self.argv else "<empty>"
        super().__init__(f"failed to spawn {command!r}: {cause}")


class DecodeError(SupervisorError, ValueError):
    """消息行无法解码（缺少分隔符）。

    Attributes:
        line: 原始行内容
    """

    def __init__(self, line: bytes, message: str) -> None:
        self.line = line
        super().__init__(message)
