"""Diagnostic output collection.

The pipe that does not carry events is drained into an in-memory buffer so
the worker never blocks on a full pipe, and its output (usually a crash
trace) can be inspected after the fact.
"""

from __future__ import annotations

import logging
import threading
from typing import BinaryIO

__all__ = ["DiagnosticBuffer", "drain_stream", "FALLBACK_CHARSET"]

logger = logging.getLogger(__name__)

# 7-bit encoding every Python build supports
FALLBACK_CHARSET = "ascii"


class DiagnosticBuffer:
    """Append-only, thread-safe byte accumulator.

    Written by a single drain thread; read by any thread at any time.
    Reads return a consistent snapshot of everything appended so far.
    """

    def __init__(self) -> None:
        self._data = bytearray()
        self._lock = threading.Lock()

    def append(self, chunk: bytes) -> None:
        with self._lock:
            self._data += chunk

    def snapshot(self) -> bytes:
        with self._lock:
            return bytes(self._data)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def decode(self, charset_name: str | None = None) -> str:
        """Decode the buffer with charset_name, or ASCII if it is unknown.

        Undecodable bytes are replaced, so this always returns a string.
        """
        data = self.snapshot()
        if charset_name:
            # bytes.decode rejects unknown names and non-text codecs (base64, zlib) alike
            try:
                return data.decode(charset_name, errors="replace")
            except (LookupError, ValueError) as e:
                logger.debug(
                    f"Unsupported charset {charset_name!r} ({e}), "
                    f"decoding diagnostics as {FALLBACK_CHARSET}"
                )
        return data.decode(FALLBACK_CHARSET, errors="replace")


def drain_stream(stream: BinaryIO, buffer: DiagnosticBuffer, chunk_size: int = 4096) -> int:
    """Copy stream into buffer until end of stream.

    Never raises for I/O failures: the loop just ends and the buffer stops
    growing.

    Args:
        stream: Binary readable stream
        buffer: Destination buffer
        chunk_size: Maximum bytes per read

    Returns:
        Number of bytes drained
    """
    # read1 returns as soon as some bytes are available instead of
    # waiting for a full chunk
    read = getattr(stream, "read1", stream.read)
    total = 0
    try:
        while True:
            chunk = read(chunk_size)
            if not chunk:
                break
            buffer.append(chunk)
            total += len(chunk)
    except (OSError, ValueError) as e:
        logger.debug(f"Diagnostic stream closed abnormally after {total} bytes: {e}")
    return total
