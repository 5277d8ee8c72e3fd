"""Worker 事件模型定义。

worker 通过事件管道发送的每一帧都解码为一个 WorkerEvent。
设计原则：
1. 单一判别字段 - 只有 type 决定事件类别，其余字段原样透传
2. 向前兼容 - 使用 extra='allow' 保留未知字段
3. 不可变 - 事件在发布后可被多个订阅者并发读取
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .writer import StdinWriter

__all__ = [
    # 枚举
    "EventType",
    "EventChannel",
    # 事件
    "WorkerEvent",
    "BootstrapEvent",
    "IdleEvent",
    "IdleSignal",
    # 类型解析
    "EventRegistry",
    "default_registry",
]


class EventType(str, Enum):
    """事件判别字段。

    只有 IDLE 对 worker_link 有特殊含义，其余类型原样转发给订阅者。
    """

    BOOTSTRAP = "BOOTSTRAP"
    IDLE = "IDLE"
    QUIT = "QUIT"
    APPEND_STDOUT = "APPEND_STDOUT"
    APPEND_STDERR = "APPEND_STDERR"
    SUITE_STARTED = "SUITE_STARTED"
    SUITE_COMPLETED = "SUITE_COMPLETED"
    SUITE_FAILURE = "SUITE_FAILURE"
    TEST_STARTED = "TEST_STARTED"
    TEST_FINISHED = "TEST_FINISHED"
    TEST_FAILURE = "TEST_FAILURE"
    TEST_IGNORED = "TEST_IGNORED"
    TEST_IGNORED_ASSUMPTION = "TEST_IGNORED_ASSUMPTION"


class EventChannel(str, Enum):
    """实际承载事件流的 OS 管道。"""

    STDOUT = "STDOUT"
    STDERR = "STDERR"


class WorkerEvent(BaseModel):
    """所有 worker 事件的基类。

    Attributes:
        type: 事件判别字段
    """

    model_config = ConfigDict(
        extra="allow",
        frozen=True,
    )

    type: EventType


class BootstrapEvent(WorkerEvent):
    """握手事件，worker 在 stdout 上发送的第一帧。

    Attributes:
        event_channel: 后续事件所在的管道
        default_charset_name: worker 的文本编码，用于解码诊断输出
        pid: worker 报告的进程 ID（可选）
        system_properties: worker 的运行环境属性（可选）
    """

    type: Literal[EventType.BOOTSTRAP] = EventType.BOOTSTRAP
    event_channel: EventChannel = EventChannel.STDOUT
    default_charset_name: str
    pid: str | None = None
    system_properties: dict[str, str] = Field(default_factory=dict)


class IdleEvent(WorkerEvent):
    """worker 空闲，等待下一个任务。"""

    type: Literal[EventType.IDLE] = EventType.IDLE


@dataclass(frozen=True)
class IdleSignal:
    """IDLE 事件的替代消息，携带写回 worker stdin 的句柄。

    每次 IDLE 都会生成一个新实例；所有实例共享同一个 writer，
    写入由 writer 内部的锁串行化。
    """

    writer: StdinWriter

    def new_suite(self, suite_name: str) -> None:
        """让 worker 执行下一个 suite。"""
        self.writer.write_line(suite_name)

    def finished(self) -> None:
        """通知 worker 没有更多任务（关闭 stdin）。"""
        self.writer.close()


class EventRegistry:
    """判别字段到事件模型的映射（反序列化的类型解析上下文）。

    未注册的已知类型解析为 WorkerEvent 本身。
    """

    def __init__(self) -> None:
        self._models: dict[EventType, type[WorkerEvent]] = {}

    def register(self, event_type: EventType, model: type[WorkerEvent]) -> None:
        """注册事件模型。

        Raises:
            TypeError: model 不是 WorkerEvent 子类
        """
        if not (isinstance(model, type) and issubclass(model, WorkerEvent)):
            raise TypeError(f"{model!r} is not a WorkerEvent subclass")
        self._models[event_type] = model

    def resolve(self, event_type: EventType) -> type[WorkerEvent]:
        return self._models.get(event_type, WorkerEvent)

    def __contains__(self, event_type: object) -> bool:
        return event_type in self._models


def default_registry() -> EventRegistry:
    """创建包含内置事件模型的注册表。"""
    registry = EventRegistry()
    registry.register(EventType.BOOTSTRAP, BootstrapEvent)
    registry.register(EventType.IDLE, IdleEvent)
    return registry
