"""worker-link - 子进程事件通道。

把 forked worker 的 stdout/stderr 管道转换为进程内事件总线上有序的结构化事件。

环境变量:
    WL_LOG_DEBUG: 日志输出到临时文件 (默认 false)
    WL_LOG_LEVEL: worker_link 日志级别 (默认 INFO)
    WL_DRAIN_CHUNK_SIZE: 诊断流读取块大小 (默认 4096)
    WL_STDIN_ENCODING: worker stdin 编码 (默认平台编码)
"""

__version__ = "0.1.0"

from .bus import EventBus
from .config import Config, get_config, reload_config
from .deserializer import Decoded, EndOfStream, JsonLinesDeserializer, ReadFailure
from .errors import (
    DispatchError,
    HandlerStateError,
    HandshakeError,
    StreamDecodeError,
    WorkerLinkError,
)
from .events import (
    BootstrapEvent,
    EventChannel,
    EventRegistry,
    EventType,
    IdleEvent,
    IdleSignal,
    WorkerEvent,
    default_registry,
)
from .handler import HandlerState, ProcessStreamHandler, TaskOutcome, WorkerStreamHandler
from .logs import setup_logging
from .serializer import EventSerializer
from .writer import StdinWriter

__all__ = [
    "__version__",
    # 总线
    "EventBus",
    # 处理器
    "WorkerStreamHandler",
    "ProcessStreamHandler",
    "HandlerState",
    "TaskOutcome",
    # 事件
    "WorkerEvent",
    "BootstrapEvent",
    "IdleEvent",
    "IdleSignal",
    "StdinWriter",
    "EventType",
    "EventChannel",
    "EventRegistry",
    "default_registry",
    # 编解码
    "JsonLinesDeserializer",
    "EventSerializer",
    "Decoded",
    "EndOfStream",
    "ReadFailure",
    # 配置与日志
    "Config",
    "get_config",
    "reload_config",
    "setup_logging",
    # 异常
    "WorkerLinkError",
    "HandshakeError",
    "StreamDecodeError",
    "DispatchError",
    "HandlerStateError",
]
