"""worker_link 异常类。"""

from __future__ import annotations

from typing import Any, Callable

__all__ = [
    "WorkerLinkError",
    "HandshakeError",
    "StreamDecodeError",
    "DispatchError",
    "HandlerStateError",
]


class WorkerLinkError(Exception):
    """worker_link 基础异常。"""
    pass


class HandshakeError(WorkerLinkError):
    """握手失败（首个事件不是 bootstrap 事件）。"""
    pass


class StreamDecodeError(WorkerLinkError):
    """事件流中的数据无法解码。

    Attributes:
        line_number: 出错的行号（从 1 开始）
        line: 出错行的内容（截断到 200 字节）
    """

    def __init__(self, message: str, line_number: int = 0, line: bytes = b"") -> None:
        self.line_number = line_number
        self.line = line[:200]
        super().__init__(f"line {line_number}: {message}" if line_number else message)


class DispatchError(WorkerLinkError):
    """事件总线分发时订阅者抛出异常。

    所有订阅者都被调用之后才抛出。

    Attributes:
        event: 分发的事件
        failures: (handler, exception) 列表
    """

    def __init__(
        self,
        event: Any,
        failures: list[tuple[Callable[[Any], None], BaseException]],
    ) -> None:
        self.event = event
        self.failures = failures
        names = ", ".join(
            f"{getattr(h, '__qualname__', repr(h))}: {e!r}" for h, e in failures
        )
        super().__init__(
            f"{len(failures)} subscriber(s) failed for {type(event).__name__}: {names}"
        )


class HandlerStateError(WorkerLinkError):
    """API 调用顺序错误（例如未设置管道就 start，或重复 start）。"""
    pass
