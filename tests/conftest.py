"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import json
import sys
import threading
from pathlib import Path
from typing import Any

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

FIXTURES_DIR = PROJECT_ROOT / "tests" / "fixtures"

from worker_link.bus import EventBus  # noqa: E402
from worker_link.config import Config  # noqa: E402


class Recorder:
    """线程安全的订阅者，记录收到的所有消息。"""

    def __init__(self) -> None:
        self.messages: list[Any] = []
        self._lock = threading.Lock()

    def __call__(self, message: Any) -> None:
        with self._lock:
            self.messages.append(message)

    def of_type(self, message_type: type) -> list[Any]:
        with self._lock:
            return [m for m in self.messages if isinstance(m, message_type)]


def frame(**fields: Any) -> bytes:
    """构造一帧 JSON Lines 事件。"""
    return (json.dumps(fields, ensure_ascii=False) + "\n").encode("utf-8")


def bootstrap_frame(channel: str = "STDOUT", charset: str = "UTF-8", **extra: Any) -> bytes:
    """构造 bootstrap 帧。"""
    return frame(type="BOOTSTRAP", event_channel=channel, default_charset_name=charset, **extra)


@pytest.fixture
def bus() -> EventBus:
    """空事件总线。"""
    return EventBus()


@pytest.fixture
def recorder(bus: EventBus) -> Recorder:
    """订阅所有消息的记录器。"""
    rec = Recorder()
    bus.subscribe(object, rec)
    return rec


@pytest.fixture
def config() -> Config:
    """测试用固定配置（不依赖环境变量）。"""
    return Config(drain_chunk_size=16, stdin_encoding="utf-8")


@pytest.fixture
def fake_worker_path() -> Path:
    """fake worker 脚本路径。"""
    return FIXTURES_DIR / "fake_worker.py"
