"""PSV 环境变量配置管理。

环境变量:
    PSV_OUTPUT_MODE: 输出模式
        - split = stdout/stderr 分别作为两个输出通道 (默认)
        - merged = 只有 stdout 通道（按 key/value 解码），stderr 转到诊断输出

    PSV_OUTPUT_BUFFER: 输出通道容量（消息条数）
        - 默认 1024
        - unbounded/inf = 无界（以内存换取不阻塞）

    PSV_LINE_LIMIT: 单行最大字节数
        - 默认 65536，限制在 1KiB-64MiB 范围

    PSV_SEPARATOR: merged 模式下的 key/value 分隔符
        - 默认制表符，可写作 "\\t"
        - 必须是单个字符，非法值回退到默认值

    PSV_MERGED_STDERR: merged 模式下 stderr 的去向
        - inherit = 继承父进程 stderr (默认)
        - devnull = 丢弃

    PSV_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (日志输出到临时文件)
        - false/0/no = 关闭 (默认，日志输出到 stderr)
"""

from __future__ import annotations

import math
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from .runtime.codec import DEFAULT_SEPARATOR
from .runtime.supervisor import (
    DEFAULT_LINE_LIMIT,
    DEFAULT_OUTPUT_BUFFER,
    OutputMode,
    StderrSink,
    SupervisorConfig,
)

__all__ = ["Config", "load_config", "get_config", "reload_config"]

# 行长度限制范围
MIN_LINE_LIMIT = 1024
MAX_LINE_LIMIT = 64 * 1024 * 1024

_UNBOUNDED_VALUES = ("unbounded", "inf", "infinite")


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_output_mode(value: str | None) -> OutputMode:
    """解析输出模式，无效值返回 SPLIT。"""
    if not value:
        return OutputMode.SPLIT
    value = value.lower().strip()
    for mode in OutputMode:
        if mode.value == value:
            return mode
    return OutputMode.SPLIT


def _parse_output_buffer(value: str | None) -> float:
    """解析输出通道容量。

    Returns:
        非负整数，或 math.inf 表示无界
    """
    if not value or not value.strip():
        return DEFAULT_OUTPUT_BUFFER
    value = value.strip().lower()
    if value in _UNBOUNDED_VALUES:
        return math.inf
    try:
        size = int(value)
    except ValueError:
        return DEFAULT_OUTPUT_BUFFER
    return size if size >= 0 else DEFAULT_OUTPUT_BUFFER


def _parse_line_limit(value: str | None) -> int:
    """解析单行长度限制。"""
    if not value:
        return DEFAULT_LINE_LIMIT
    try:
        limit = int(value)
    except ValueError:
        return DEFAULT_LINE_LIMIT
    return max(MIN_LINE_LIMIT, min(limit, MAX_LINE_LIMIT))


def _parse_separator(value: str | None) -> bytes:
    """解析分隔符，支持 "\\t" 转义写法。"""
    if not value:
        return DEFAULT_SEPARATOR
    if value == "\\t":
        return b"\t"
    try:
        encoded = value.encode("ascii")
    except UnicodeEncodeError:
        return DEFAULT_SEPARATOR
    if len(encoded) != 1 or encoded in (b"\n", b"\r"):
        return DEFAULT_SEPARATOR
    return encoded


def _parse_stderr_sink(value: str | None) -> StderrSink:
    """解析 merged 模式下的 stderr 去向。"""
    if value and value.lower().strip() == StderrSink.DEVNULL.value:
        return StderrSink.DEVNULL
    return StderrSink.INHERIT


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / "pipe-supervisor"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"psv_debug_{timestamp}.log"

    return str(log_file.resolve())


@dataclass
class Config:
    """PSV 配置。

    Attributes:
        output_mode: 输出模式
        output_buffer: 输出通道容量（math.inf 表示无界）
        line_limit: 单行最大字节数
        separator: merged 模式分隔符
        merged_stderr: merged 模式下 stderr 去向
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
    """

    output_mode: OutputMode = OutputMode.SPLIT
    output_buffer: float = DEFAULT_OUTPUT_BUFFER
    line_limit: int = DEFAULT_LINE_LIMIT
    separator: bytes = DEFAULT_SEPARATOR
    merged_stderr: StderrSink = StderrSink.INHERIT
    log_debug: bool = False
    log_file: str | None = None

    def supervisor_config(self, mode: OutputMode | None = None) -> SupervisorConfig:
        """构造运行时配置。

        Args:
            mode: 覆盖输出模式（例如来自命令行参数）
        """
        return SupervisorConfig(
            mode=mode if mode is not None else self.output_mode,
            output_buffer_size=self.output_buffer,
            line_limit=self.line_limit,
            separator=self.separator,
            merged_stderr=self.merged_stderr,
        )

    def __repr__(self) -> str:
        buffer_str = "unbounded" if self.output_buffer == math.inf else str(int(self.output_buffer))
        return (
            f"Config(output_mode={self.output_mode.value}, "
            f"output_buffer={buffer_str}, "
            f"line_limit={self.line_limit}, "
            f"separator={self.separator!r}, "
            f"merged_stderr={self.merged_stderr.value}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("PSV_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        output_mode=_parse_output_mode(os.environ.get("PSV_OUTPUT_MODE")),
        output_buffer=_parse_output_buffer(os.environ.get("PSV_OUTPUT_BUFFER")),
        line_limit=_parse_line_limit(os.environ.get("PSV_LINE_LIMIT")),
        separator=_parse_separator(os.environ.get("PSV_SEPARATOR")),
        merged_stderr=_parse_stderr_sink(os.environ.get("PSV_MERGED_STDERR")),
        log_debug=log_debug,
        log_file=log_file,
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
