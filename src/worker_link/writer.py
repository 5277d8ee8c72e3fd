"""Serialized text writer over a worker's stdin pipe."""

from __future__ import annotations

import logging
import threading
from typing import BinaryIO

__all__ = ["StdinWriter"]

logger = logging.getLogger(__name__)


class StdinWriter:
    """Line-oriented writer shared by every IdleSignal of one handler.

    Subscribers may reply from different threads; each line is encoded,
    written and flushed under a single lock so writes never interleave.

    Args:
        stream: Binary writable end of the worker's stdin pipe
        encoding: Text encoding the worker reads stdin with
    """

    def __init__(self, stream: BinaryIO, encoding: str = "utf-8") -> None:
        self._stream = stream
        self._encoding = encoding
        self._lock = threading.Lock()
        self._closed = False

    @property
    def encoding(self) -> str:
        return self._encoding

    @property
    def closed(self) -> bool:
        return self._closed

    def write_line(self, text: str) -> None:
        """Write one line and flush.

        Raises:
            ValueError: If the writer was closed
            OSError: If the worker side of the pipe is gone
        """
        data = (text + "\n").encode(self._encoding)
        with self._lock:
            if self._closed:
                raise ValueError("write to closed worker stdin")
            self._stream.write(data)
            self._stream.flush()

    def close(self) -> None:
        """Close the pipe. Idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            try:
                self._stream.close()
            except OSError as e:
                # Worker already exited; the pipe is broken either way
                logger.debug(f"Error closing worker stdin: {e}")
