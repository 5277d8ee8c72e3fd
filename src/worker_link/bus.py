"""进程内事件总线。

线程安全。订阅者在发布者的线程上同步调用。
事件按类型的 MRO 分发：订阅 WorkerEvent 会收到所有 worker 事件，
订阅 object 会收到所有消息。

某个订阅者抛出异常不会阻止其他订阅者被调用；
所有订阅者调用完成后，publish 以 DispatchError 汇总抛出。
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Any, Callable

from .errors import DispatchError

__all__ = ["EventBus", "Handler"]

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]


class EventBus:
    """简单的发布/订阅事件总线。

    Example:
        bus = EventBus()
        bus.subscribe(BootstrapEvent, on_bootstrap)
        bus.subscribe(IdleSignal, lambda s: s.new_suite("com.example.FooTest"))
        bus.publish(event)
    """

    def __init__(self) -> None:
        self._subscribers: dict[type, list[Handler]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, event_type: type, handler: Handler) -> None:
        """注册某个事件类型的订阅者。

        Args:
            event_type: 事件类（包括其子类）
            handler: 接收事件实例的可调用对象
        """
        with self._lock:
            self._subscribers[event_type].append(handler)
        logger.debug(
            f"Subscribed {getattr(handler, '__qualname__', handler)!r} to {event_type.__name__}"
        )

    def unsubscribe(self, event_type: type, handler: Handler) -> None:
        """移除订阅者。"""
        with self._lock:
            handlers = self._subscribers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, event: Any) -> None:
        """发布事件。

        Raises:
            DispatchError: 一个或多个订阅者抛出异常
        """
        handlers = self._handlers_for(type(event))
        if not handlers:
            logger.debug(f"No subscribers for {type(event).__name__}")
            return

        failures: list[tuple[Handler, BaseException]] = []
        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                failures.append((handler, e))

        if failures:
            raise DispatchError(event, failures)

    def _handlers_for(self, event_type: type) -> list[Handler]:
        with self._lock:
            handlers: list[Handler] = []
            for klass in event_type.__mro__:
                handlers.extend(self._subscribers.get(klass, ()))
            return handlers

    def clear(self) -> None:
        """移除所有订阅。"""
        with self._lock:
            self._subscribers.clear()

    def subscriber_count(self, event_type: type) -> int:
        """某个事件类型（精确匹配）的订阅者数量。"""
        with self._lock:
            return len(self._subscribers.get(event_type, []))
