"""
Audit sinks for toolguard.

A sink consumes one audit event at a time. The guard pipeline is the only
producer; sinks never feed anything back into the guarded call, and a
sink that raises is logged and otherwise ignored.

Sinks:
    - InMemoryAuditSink: Ordered in-process list, for tests and inspection
    - ConsoleAuditSink: One structured line per event on a stream
    - FileAuditSink: Append-only JSON Lines file, safe to tail
    - MultiAuditSink: Fan-out to several sinks with per-sink isolation

emit() may return an awaitable for sinks backed by asynchronous I/O; the
pipeline schedules it in the background.
"""

import asyncio
import inspect
import json
import math
import threading
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Iterable
from pathlib import Path
from typing import IO, Any

import structlog
from rich.console import Console

from toolguard.errors import AuditSinkClosedError
from toolguard.schema import AuditEventBase, AuditEventType

logger = structlog.get_logger(__name__)


def serialize_event(event: AuditEventBase) -> str:
    """
    Serialize an event to a single-line JSON string.

    Output is pure ASCII: non-ASCII text, lone surrogates included, is
    written as \\u escapes, so any sink encoding can store it. NaN and
    infinite floats become the strings "nan", "inf" and "-inf".
    """
    return json.dumps(
        _finite(event.to_record()),
        default=_json_serializer,
        ensure_ascii=True,
        allow_nan=False,
    )


def _finite(value: Any) -> Any:
    """Replace non-finite floats inside dicts, lists and tuples with strings."""
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    if isinstance(value, dict):
        return {key: _finite(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_finite(item) for item in value]
    return value


def _json_serializer(obj: Any) -> Any:
    """Fallback for values json can't encode natively (redacted inputs are arbitrary)."""
    if isinstance(obj, (set, frozenset)):
        return _finite(sorted(obj, key=str))
    if isinstance(obj, bytes):
        return obj.decode("utf-8", errors="replace")
    return str(obj)


class AuditSink(ABC):
    """
    Abstract base class for audit sinks.

    Subclasses must implement emit(). close() is a no-op by default.
    """

    @abstractmethod
    def emit(self, event: AuditEventBase) -> Awaitable[None] | None:
        """
        Consume one audit event.

        Args:
            event: The event to record

        Returns:
            None, or an awaitable the caller may schedule
        """
        ...

    def close(self) -> None:
        """Release any resources held by the sink."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"


class InMemoryAuditSink(AuditSink):
    """
    Stores events in an ordered in-memory list.

    Usage:
        sink = InMemoryAuditSink()
        guard = GuardPipeline(policy, audit=sink)
        ...
        blocked = sink.events_of_type(AuditEventType.BLOCKED)
    """

    def __init__(self) -> None:
        self._events: list[AuditEventBase] = []
        self._lock = threading.Lock()

    def emit(self, event: AuditEventBase) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> list[AuditEventBase]:
        """A snapshot of every stored event, in emission order."""
        with self._lock:
            return list(self._events)

    def events_for_request(self, request_id: str) -> list[AuditEventBase]:
        """Events belonging to one request, in emission order."""
        with self._lock:
            return [e for e in self._events if e.request_id == request_id]

    def events_of_type(self, event_type: AuditEventType | str) -> list[AuditEventBase]:
        """Events of one kind, in emission order."""
        wanted = AuditEventType(event_type).value
        with self._lock:
            return [e for e in self._events if e.type == wanted]

    def clear(self) -> None:
        """Drop all stored events."""
        with self._lock:
            self._events.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)


class ConsoleAuditSink(AuditSink):
    """
    Prints each event as one line of JSON, immediately.

    Output goes through a rich Console with markup, highlighting and
    wrapping disabled, so every event stays a single parseable line.

    Attributes:
        prefix: Text printed before each record (empty string for none)
        console: The rich Console used for output
    """

    def __init__(
        self,
        prefix: str = "[audit]",
        stream: IO[str] | None = None,
        console: Console | None = None,
    ) -> None:
        self.prefix = prefix
        self.console = console or Console(file=stream, highlight=False)

    def emit(self, event: AuditEventBase) -> None:
        line = serialize_event(event)
        if self.prefix:
            self.console.out(self.prefix, line, highlight=False)
        else:
            self.console.out(line, highlight=False)


class FileAuditSink(AuditSink):
    """
    Appends each event to a JSON Lines file.

    The file is opened in append mode and never truncated. Each line is a
    self-contained JSON object followed by a newline. Writes may sit in the
    file buffer until flush() or close().

    Usage:
        with FileAuditSink("audit/agent.jsonl") as sink:
            guard = GuardPipeline(policy, audit=sink)
            ...
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file: IO[str] | None = self.path.open("a", encoding="utf-8", newline="\n")
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._file is None

    def emit(self, event: AuditEventBase) -> None:
        line = serialize_event(event)
        with self._lock:
            if self._file is None:
                raise AuditSinkClosedError(sink=type(self).__name__, path=str(self.path))
            self._file.write(line + "\n")

    def flush(self) -> None:
        """Push buffered records to the operating system."""
        with self._lock:
            if self._file is not None:
                self._file.flush()

    def close(self) -> None:
        """Flush and close the file. Safe to call more than once."""
        with self._lock:
            if self._file is not None:
                self._file.close()
                self._file = None

    def __enter__(self) -> "FileAuditSink":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"<FileAuditSink: {self.path}>"


class MultiAuditSink(AuditSink):
    """
    Sends every event to each child sink in turn.

    A failing child is logged and skipped; the others still receive the
    event. Awaitables returned by children are gathered into one awaitable.
    """

    def __init__(self, sinks: Iterable[AuditSink]) -> None:
        self.sinks = list(sinks)

    def emit(self, event: AuditEventBase) -> Awaitable[None] | None:
        pending: list[Awaitable[Any]] = []
        for sink in self.sinks:
            try:
                result = sink.emit(event)
            except Exception:
                logger.warning(
                    "audit_sink_failed",
                    sink=type(sink).__name__,
                    event_type=event.type,
                    request_id=event.request_id,
                    exc_info=True,
                )
                continue
            if inspect.isawaitable(result):
                pending.append(result)
        if pending:
            return self._gather(pending, event)
        return None

    async def _gather(self, pending: list[Awaitable[Any]], event: AuditEventBase) -> None:
        results = await asyncio.gather(*pending, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.warning(
                    "audit_sink_failed",
                    event_type=event.type,
                    request_id=event.request_id,
                    error=str(result),
                )

    def close(self) -> None:
        for sink in self.sinks:
            sink.close()

    def __repr__(self) -> str:
        return f"<MultiAuditSink: {self.sinks!r}>"
