"""Event pump: decode events from the event pipe and publish them.

The pump runs on its own thread until the event pipe reaches end of stream
or fails. Each publish is isolated: a subscriber error is logged and the
next event is still delivered.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .deserializer import Decoded, Deserializer, EndOfStream, ReadFailure
from .events import EventType, IdleSignal

if TYPE_CHECKING:
    from .bus import EventBus
    from .writer import StdinWriter

__all__ = ["EventPump"]

logger = logging.getLogger(__name__)


class EventPump:
    """Publishes every decoded event, replacing IDLE with an IdleSignal.

    Args:
        deserializer: Source of events (already positioned after the bootstrap frame)
        bus: Destination bus
        idle_writer: Writer on the worker's stdin, attached to each IdleSignal
    """

    def __init__(
        self,
        deserializer: Deserializer,
        bus: "EventBus",
        idle_writer: "StdinWriter",
    ) -> None:
        self._deserializer = deserializer
        self._bus = bus
        self._idle_writer = idle_writer
        self._published = 0

    @property
    def published(self) -> int:
        """Number of events handed to the bus so far."""
        return self._published

    def run(self) -> int:
        """Pump until the stream ends.

        Returns:
            Number of events handed to the bus
        """
        while True:
            result = self._deserializer.read()

            if isinstance(result, Decoded):
                self._dispatch(result.event)
            elif isinstance(result, EndOfStream):
                logger.info(f"Event stream closed after {self._published} event(s)")
                break
            elif isinstance(result, ReadFailure):
                logger.warning(
                    f"Event stream error: {result.error!r}",
                    exc_info=result.error,
                )
                break

        return self._published

    def _dispatch(self, event) -> None:
        if event.type is EventType.IDLE:
            message = IdleSignal(self._idle_writer)
        else:
            message = event

        self._published += 1
        try:
            self._bus.publish(message)
        except Exception as e:
            logger.warning(f"Event bus dispatch error: {e!r}", exc_info=True)
