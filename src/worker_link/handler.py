"""Worker stream handler.

Establishes event passing with a forked worker process and pumps its events
to the bus.

Lifecycle:
    CREATED -> NEGOTIATING -> RUNNING | DEGRADED -> STOPPED

1. The launcher attaches the worker's stdout, stderr and stdin pipes
2. start() reads the bootstrap event from stdout, publishes it, swaps the
   pipe roles if the worker declared stderr as its event channel, then
   launches one thread draining diagnostics and one pumping events
3. If the handshake fails, only the diagnostic drain is launched on the
   original stderr (DEGRADED), so a worker that crashed early never hangs
   the parent and its crash output is still available
4. stop() joins every launched thread, with no timeout; if start() is still
   negotiating on another thread, stop() waits for it first

Known limitation: the bootstrap event is always read from stdout. A worker
that declares stderr as its event channel but never writes the bootstrap
event to stdout blocks the handshake until stdout closes.

Example:
    proc = subprocess.Popen(argv, stdin=PIPE, stdout=PIPE, stderr=PIPE)
    handler = WorkerStreamHandler(bus)
    handler.attach_output_pipe(proc.stdout)
    handler.attach_error_pipe(proc.stderr)
    handler.attach_input_pipe(proc.stdin)
    handler.start()
    ...
    proc.wait()
    handler.stop()
    if handler.has_diagnostic_output():
        print(handler.diagnostic_text())
"""

from __future__ import annotations

import functools
import logging
import queue
import threading
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO, Callable, Protocol

import anyio

from .bus import EventBus
from .config import Config, get_config
from .deserializer import (
    Decoded,
    Deserializer,
    DeserializerFactory,
    EndOfStream,
    JsonLinesDeserializer,
    ReadFailure,
)
from .diagnostics import DiagnosticBuffer, drain_stream
from .errors import HandlerStateError, HandshakeError
from .events import BootstrapEvent, EventChannel, EventRegistry, default_registry
from .pump import EventPump
from .writer import StdinWriter

__all__ = [
    "ProcessStreamHandler",
    "WorkerStreamHandler",
    "HandlerState",
    "TaskOutcome",
]

logger = logging.getLogger(__name__)

STDERR_PUMPER = "pumper-stderr"
EVENTS_PUMPER = "pumper-events"


class ProcessStreamHandler(Protocol):
    """Capability interface a process launcher drives."""

    def attach_output_pipe(self, stream: BinaryIO) -> None:
        ...

    def attach_error_pipe(self, stream: BinaryIO) -> None:
        ...

    def attach_input_pipe(self, stream: BinaryIO) -> None:
        ...

    def start(self) -> None:
        ...

    def stop(self) -> None:
        ...


class HandlerState(str, Enum):
    CREATED = "created"
    NEGOTIATING = "negotiating"
    RUNNING = "running"
    DEGRADED = "degraded"
    STOPPED = "stopped"


@dataclass(frozen=True)
class TaskOutcome:
    """How a background task ended.

    Attributes:
        name: Thread name of the task
        error: Exception that escaped the task, None on normal completion
    """

    name: str
    error: BaseException | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class _TaskSet:
    """Fixed-capacity set of background threads, launched once, joined once.

    Each thread runs inside an error boundary that reports a TaskOutcome
    through a queue the owner drains at join time.
    """

    def __init__(self, capacity: int) -> None:
        self._capacity = capacity
        self._threads: list[threading.Thread] = []
        self._outcomes: queue.Queue[TaskOutcome] = queue.Queue()

    def launch(self, name: str, target: Callable[[], object]) -> None:
        if len(self._threads) >= self._capacity:
            raise HandlerStateError(f"Task set is full ({self._capacity} task(s))")
        thread = threading.Thread(
            target=self._run_guarded,
            args=(name, target),
            name=name,
            daemon=True,
        )
        self._threads.append(thread)
        thread.start()

    def _run_guarded(self, name: str, target: Callable[[], object]) -> None:
        try:
            target()
        except Exception as e:
            logger.error(f"Unhandled exception in thread {name}: {e!r}", exc_info=True)
            self._outcomes.put(TaskOutcome(name, e))
        else:
            self._outcomes.put(TaskOutcome(name))

    def join(self) -> list[TaskOutcome]:
        for thread in self._threads:
            thread.join()
        outcomes: list[TaskOutcome] = []
        while True:
            try:
                outcomes.append(self._outcomes.get_nowait())
            except queue.Empty:
                break
        return outcomes

    @property
    def names(self) -> list[str]:
        return [t.name for t in self._threads]

    def __len__(self) -> int:
        return len(self._threads)


class WorkerStreamHandler:
    """Turns a worker's stdout/stderr pipes into events on an EventBus.

    Args:
        bus: Bus receiving the bootstrap event, IdleSignals and every other event
        registry: Type-resolution context for the deserializer
        config: Configuration (default: global config)
        deserializer_factory: Builds a deserializer over a pipe
            (default: JsonLinesDeserializer)
    """

    def __init__(
        self,
        bus: EventBus,
        registry: EventRegistry | None = None,
        *,
        config: Config | None = None,
        deserializer_factory: DeserializerFactory | None = None,
    ) -> None:
        self._bus = bus
        self._registry = registry or default_registry()
        self._config = config or get_config()
        self._deserializer_factory: DeserializerFactory = (
            deserializer_factory or JsonLinesDeserializer
        )

        self._stdout: BinaryIO | None = None
        self._stderr: BinaryIO | None = None
        self._stdin: StdinWriter | None = None

        self._bootstrap: BootstrapEvent | None = None
        self._diagnostics = DiagnosticBuffer()
        self._pump: EventPump | None = None
        self._tasks: _TaskSet | None = None
        self._task_failures: list[TaskOutcome] = []

        self._state = HandlerState.CREATED
        self._state_lock = threading.Lock()
        self._negotiated = threading.Event()

    # ── Pipe attachment ─────────────────────────────────────────────

    def attach_output_pipe(self, stream: BinaryIO) -> None:
        """Attach the worker's stdout (readable)."""
        self._require_created("attach the output pipe")
        self._stdout = stream

    def attach_error_pipe(self, stream: BinaryIO) -> None:
        """Attach the worker's stderr (readable)."""
        self._require_created("attach the error pipe")
        self._stderr = stream

    def attach_input_pipe(self, stream: BinaryIO) -> None:
        """Attach the worker's stdin (writable)."""
        self._require_created("attach the input pipe")
        self._stdin = StdinWriter(stream, self._config.stdin_encoding)

    # ── Lifecycle ───────────────────────────────────────────────────

    def start(self) -> None:
        """Negotiate with the worker and launch the pump threads.

        Never raises for worker-side problems: a failed handshake leaves the
        handler DEGRADED.

        Raises:
            HandlerStateError: Called twice, after stop(), or a pipe was not attached
        """
        with self._state_lock:
            if self._state is not HandlerState.CREATED:
                raise HandlerStateError(f"Cannot start a handler in state {self._state.value}")
            stdout, stderr, stdin = self._stdout, self._stderr, self._stdin
            if stdout is None or stderr is None or stdin is None:
                missing = [
                    name
                    for name, pipe in (("output", stdout), ("error", stderr), ("input", stdin))
                    if pipe is None
                ]
                raise HandlerStateError(f"Pipes not attached: {', '.join(missing)}")
            self._state = HandlerState.NEGOTIATING

        try:
            scheduled = self._negotiate(stdout, stderr, stdin)

            self._tasks = _TaskSet(capacity=len(scheduled))
            with self._state_lock:
                self._state = HandlerState.RUNNING if self._pump else HandlerState.DEGRADED
            for name, target in scheduled:
                self._tasks.launch(name, target)
        finally:
            self._negotiated.set()

        logger.debug(f"Handler {self._state.value}, launched {self._tasks.names}")

    def _negotiate(
        self,
        stdout: BinaryIO,
        stderr: BinaryIO,
        stdin: StdinWriter,
    ) -> list[tuple[str, Callable[[], object]]]:
        """Read the bootstrap event and decide which tasks to run."""
        try:
            deserializer: Deserializer = self._deserializer_factory(stdout, self._registry)
            result = deserializer.read()
        except Exception as e:
            # Deserializer bugs count as a failed handshake
            result = ReadFailure(e)

        if isinstance(result, Decoded) and not isinstance(result.event, BootstrapEvent):
            result = ReadFailure(HandshakeError(
                f"Expected a BOOTSTRAP event first, got {result.event.type.value}"
            ))

        if not isinstance(result, Decoded):
            self._log_handshake_failure(result)
            return [(STDERR_PUMPER, self._drain_task(stderr))]

        bootstrap = result.event
        self._bootstrap = bootstrap
        logger.debug(
            f"Bootstrap received: channel={bootstrap.event_channel.value} "
            f"charset={bootstrap.default_charset_name} pid={bootstrap.pid}"
        )
        self._publish_bootstrap(bootstrap)

        if bootstrap.event_channel is EventChannel.STDERR:
            # Events now come from the other pipe
            try:
                deserializer = self._deserializer_factory(stderr, self._registry)
            except Exception as e:
                self._log_handshake_failure(ReadFailure(e))
                return [(STDERR_PUMPER, self._drain_task(stderr))]
            stdout, stderr = stderr, stdout
            self._stdout, self._stderr = stdout, stderr

        self._pump = EventPump(deserializer, self._bus, stdin)
        return [
            (STDERR_PUMPER, self._drain_task(stderr)),
            (EVENTS_PUMPER, self._pump.run),
        ]

    def _log_handshake_failure(self, result: EndOfStream | ReadFailure) -> None:
        if isinstance(result, EndOfStream):
            logger.warning("Couldn't establish event communication with the worker: end of stream")
        else:
            logger.warning(
                f"Couldn't establish event communication with the worker: {result.error!r}",
                exc_info=result.error,
            )

    def _drain_task(self, stream: BinaryIO) -> Callable[[], int]:
        return functools.partial(
            drain_stream,
            stream,
            self._diagnostics,
            self._config.drain_chunk_size,
        )

    def _publish_bootstrap(self, bootstrap: BootstrapEvent) -> None:
        try:
            self._bus.publish(bootstrap)
        except Exception as e:
            logger.warning(f"Event bus dispatch error: {e!r}", exc_info=True)

    def stop(self) -> None:
        """Wait for every launched thread to finish.

        There is no timeout: terminate the worker process to unblock the
        pipe reads. Safe to call before start(), while start() is still
        negotiating on another thread, and more than once.
        """
        with self._state_lock:
            if self._state is HandlerState.STOPPED:
                return
            started = self._state is not HandlerState.CREATED
            if not started:
                self._state = HandlerState.STOPPED

        if started:
            # Tasks are only known once start() has launched them
            self._negotiated.wait()
            tasks = self._tasks
            if tasks is not None:
                outcomes = tasks.join()
                self._task_failures.extend(o for o in outcomes if o.failed)
            with self._state_lock:
                self._state = HandlerState.STOPPED

        logger.debug(
            f"Handler stopped: {self.events_published} event(s) published, "
            f"{len(self._diagnostics)} diagnostic byte(s), "
            f"{len(self._task_failures)} task failure(s)"
        )

    async def wait_stopped(self) -> None:
        """Async variant of stop(): joins the threads off the event loop."""
        await anyio.to_thread.run_sync(self.stop)

    # ── Diagnostics ─────────────────────────────────────────────────

    def has_diagnostic_output(self) -> bool:
        return len(self._diagnostics) > 0

    def diagnostic_text(self) -> str:
        """Diagnostic output decoded with the worker's charset.

        Falls back to ASCII when no bootstrap event was received or its
        charset is not supported.
        """
        charset = self._bootstrap.default_charset_name if self._bootstrap else None
        return self._diagnostics.decode(charset)

    # ── Introspection ───────────────────────────────────────────────

    @property
    def state(self) -> HandlerState:
        return self._state

    @property
    def bootstrap(self) -> BootstrapEvent | None:
        return self._bootstrap

    @property
    def task_failures(self) -> list[TaskOutcome]:
        return list(self._task_failures)

    @property
    def events_published(self) -> int:
        return self._pump.published if self._pump else 0

    def _require_created(self, action: str) -> None:
        if self._state is not HandlerState.CREATED:
            raise HandlerStateError(f"Cannot {action} in state {self._state.value}")
