"""Event stream decoding.

A deserializer turns a worker's byte stream into WorkerEvent instances.
Every read returns a tagged result instead of raising, so callers can tell
a clean end of stream apart from a broken or malformed one:

- Decoded(event): one event was decoded
- EndOfStream(): the pipe was closed on a frame boundary
- ReadFailure(error): I/O failure, truncated frame or malformed data

Wire format of the built-in JsonLinesDeserializer: one UTF-8 JSON object
per line, with a "type" field holding an EventType value. Blank lines are
skipped.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import BinaryIO, Callable, Protocol, Union

from pydantic import ValidationError

from .errors import StreamDecodeError
from .events import EventRegistry, EventType, WorkerEvent, default_registry

__all__ = [
    "Decoded",
    "EndOfStream",
    "ReadFailure",
    "ReadResult",
    "Deserializer",
    "DeserializerFactory",
    "JsonLinesDeserializer",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Decoded:
    event: WorkerEvent


@dataclass(frozen=True)
class EndOfStream:
    pass


@dataclass(frozen=True)
class ReadFailure:
    error: BaseException


ReadResult = Union[Decoded, EndOfStream, ReadFailure]


class Deserializer(Protocol):
    """Reads one event per call from a byte stream."""

    def read(self) -> ReadResult:
        ...


DeserializerFactory = Callable[[BinaryIO, EventRegistry], Deserializer]


class JsonLinesDeserializer:
    """Deserializer for newline-delimited JSON events.

    Args:
        stream: Binary readable stream (a worker pipe)
        registry: Type-resolution context mapping discriminants to models
    """

    def __init__(self, stream: BinaryIO, registry: EventRegistry | None = None) -> None:
        self._stream = stream
        self._registry = registry or default_registry()
        self._line_number = 0

    def read(self) -> ReadResult:
        """Decode the next event.

        Blocks until a full line is available or the stream closes.
        """
        while True:
            try:
                line = self._stream.readline()
            except (OSError, ValueError) as e:
                # ValueError: read on a closed file object
                return ReadFailure(e)

            if not line:
                return EndOfStream()

            self._line_number += 1

            if not line.endswith(b"\n"):
                return ReadFailure(StreamDecodeError(
                    "truncated frame (stream closed mid-line)",
                    self._line_number,
                    line,
                ))

            stripped = line.strip()
            if not stripped:
                continue

            try:
                return Decoded(self._decode(stripped))
            except StreamDecodeError as e:
                return ReadFailure(e)

    def _decode(self, line: bytes) -> WorkerEvent:
        try:
            payload = json.loads(line.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise StreamDecodeError(f"invalid JSON: {e}", self._line_number, line) from e
        except RecursionError as e:
            raise StreamDecodeError(f"JSON nested too deeply: {e}", self._line_number, line) from e

        if not isinstance(payload, dict):
            raise StreamDecodeError(
                f"expected a JSON object, got {type(payload).__name__}",
                self._line_number,
                line,
            )

        raw_type = payload.get("type")
        if raw_type is None:
            raise StreamDecodeError("missing 'type' field", self._line_number, line)
        try:
            event_type = EventType(raw_type)
        except ValueError as e:
            raise StreamDecodeError(
                f"unknown event type: {raw_type!r}", self._line_number, line
            ) from e

        model = self._registry.resolve(event_type)
        try:
            return model.model_validate({**payload, "type": event_type})
        except ValidationError as e:
            raise StreamDecodeError(
                f"invalid {event_type.value} event: {e}", self._line_number, line
            ) from e
