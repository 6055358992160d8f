"""Pipe Supervisor - 以消息流方式监管单个子进程。

环境变量:
    PSV_OUTPUT_MODE: 输出模式 split/merged (默认 split)
    PSV_OUTPUT_BUFFER: 输出通道容量 (默认 1024，unbounded 表示无界)
    PSV_LOG_DEBUG: 日志调试模式 (默认 false)

用法:
    pipe-supervisor -- cat
"""

__version__ = "0.1.0"

from .errors import DecodeError, InvalidArgumentError, SpawnError, SupervisorError
from .runtime import (
    Message,
    MessageCodec,
    OutputMode,
    SupervisedProcess,
    Supervisor,
    SupervisorConfig,
)

__all__ = [
    "__version__",
    "DecodeError",
    "InvalidArgumentError",
    "Message",
    "MessageCodec",
    "OutputMode",
    "SpawnError",
    "SupervisedProcess",
    "Supervisor",
    "SupervisorConfig",
    "SupervisorError",
]
