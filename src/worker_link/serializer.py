"""Worker-side event serializer (counterpart of JsonLinesDeserializer)."""

from __future__ import annotations

import threading
from typing import BinaryIO

from .events import WorkerEvent

__all__ = ["EventSerializer"]


class EventSerializer:
    """Writes events as newline-delimited JSON and flushes after each frame.

    Args:
        stream: Binary writable stream (the worker's event pipe)
    """

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream
        self._lock = threading.Lock()

    def serialize(self, event: WorkerEvent) -> None:
        frame = event.model_dump_json().encode("utf-8") + b"\n"
        with self._lock:
            self._stream.write(frame)
            self._stream.flush()
