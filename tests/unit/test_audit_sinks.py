"""
Unit tests for audit sinks.

Tests cover:
- InMemoryAuditSink ordering and filtering
- ConsoleAuditSink line format
- FileAuditSink append-only JSON Lines output
- MultiAuditSink fan-out and isolation
"""

import asyncio
import io
import json
from pathlib import Path

import pytest

from toolguard.audit import (
    AuditSink,
    ConsoleAuditSink,
    FileAuditSink,
    InMemoryAuditSink,
    MultiAuditSink,
    read_audit_log,
    serialize_event,
)
from toolguard.errors import AuditSinkClosedError
from toolguard.schema import (
    AuditEventBase,
    AuditEventType,
    ToolCallAttempted,
    ToolCallBlocked,
    ToolCallExecuted,
)


class _FailingSink(AuditSink):
    def emit(self, event: AuditEventBase) -> None:
        raise RuntimeError("disk full")


class _AsyncSink(AuditSink):
    def __init__(self) -> None:
        self.events: list[AuditEventBase] = []

    async def _write(self, event: AuditEventBase) -> None:
        await asyncio.sleep(0)
        self.events.append(event)

    def emit(self, event: AuditEventBase):
        return self._write(event)


def _attempted(request_id: str = "r1", tool: str = "search_docs") -> ToolCallAttempted:
    return ToolCallAttempted(request_id=request_id, tool_name=tool, input={"q": "x"})


# =============================================================================
# Serialization
# =============================================================================


class TestSerializeEvent:
    """Tests for serialize_event()."""

    def test_single_line_json(self) -> None:
        """Serialized events are one line of camelCase JSON."""
        line = serialize_event(_attempted())
        assert "\n" not in line
        record = json.loads(line)
        assert record["type"] == "tool_call_attempted"
        assert record["toolName"] == "search_docs"
        assert record["input"] == {"q": "x"}

    def test_unserializable_input(self) -> None:
        """Arbitrary input values fall back to a string form."""
        event = ToolCallAttempted(request_id="r", tool_name="t", input={"when": object()})
        record = json.loads(serialize_event(event))
        assert record["input"]["when"].startswith("<object object")

    def test_non_ascii_escaped(self) -> None:
        """Unicode is escaped on the wire and decodes back unchanged."""
        event = ToolCallAttempted(request_id="r", tool_name="t", input="héllo")
        line = serialize_event(event)
        assert line.isascii()
        assert json.loads(line)["input"] == "héllo"

    def test_lone_surrogate(self) -> None:
        """Undecodable text from surrogateescape still serializes."""
        event = ToolCallAttempted(request_id="r", tool_name="t", input={"path": "bad\udcff"})
        line = serialize_event(event)
        assert line.isascii()
        assert json.loads(line)["input"]["path"] == "bad\udcff"

    def test_non_finite_floats(self) -> None:
        """NaN and infinities become strings so every line is strict JSON."""
        event = ToolCallAttempted(
            request_id="r",
            tool_name="t",
            input={"ratio": float("nan"), "limits": [float("inf"), -float("inf"), 1.5]},
        )
        line = serialize_event(event)
        assert "NaN" not in line
        assert "Infinity" not in line
        record = json.loads(line)
        assert record["input"] == {"ratio": "nan", "limits": ["inf", "-inf", 1.5]}


# =============================================================================
# InMemoryAuditSink
# =============================================================================


class TestInMemoryAuditSink:
    """Tests for the in-memory sink."""

    def test_preserves_order(self, sink: InMemoryAuditSink) -> None:
        """Events come back in emission order."""
        first = _attempted()
        second = ToolCallExecuted(request_id="r1", tool_name="search_docs", duration_ms=1.0)
        sink.emit(first)
        sink.emit(second)
        assert sink.events == [first, second]
        assert len(sink) == 2

    def test_events_is_a_snapshot(self, sink: InMemoryAuditSink) -> None:
        """Mutating the returned list doesn't affect the sink."""
        sink.emit(_attempted())
        sink.events.clear()
        assert len(sink) == 1

    def test_filters(self, sink: InMemoryAuditSink) -> None:
        """Events can be filtered by request and type."""
        sink.emit(_attempted("r1"))
        sink.emit(_attempted("r2"))
        sink.emit(ToolCallBlocked(request_id="r2", tool_name="t", reason="no"))
        assert len(sink.events_for_request("r2")) == 2
        assert len(sink.events_of_type(AuditEventType.BLOCKED)) == 1
        assert len(sink.events_of_type("tool_call_attempted")) == 2

    def test_clear(self, sink: InMemoryAuditSink) -> None:
        """clear() empties the sink."""
        sink.emit(_attempted())
        sink.clear()
        assert sink.events == []


# =============================================================================
# ConsoleAuditSink
# =============================================================================


class TestConsoleAuditSink:
    """Tests for the console sink."""

    def test_prefixed_line(self) -> None:
        """Each event is one prefixed JSON line."""
        stream = io.StringIO()
        ConsoleAuditSink(stream=stream).emit(_attempted())
        output = stream.getvalue()
        assert output.startswith("[audit] ")
        assert output.count("\n") == 1
        record = json.loads(output[len("[audit] "):])
        assert record["requestId"] == "r1"

    def test_no_prefix(self) -> None:
        """An empty prefix prints bare JSON."""
        stream = io.StringIO()
        ConsoleAuditSink(prefix="", stream=stream).emit(_attempted())
        assert json.loads(stream.getvalue())["type"] == "tool_call_attempted"

    def test_markup_not_interpreted(self) -> None:
        """Rich markup in inputs is printed literally."""
        stream = io.StringIO()
        event = ToolCallAttempted(request_id="r", tool_name="t", input="[bold]x[/bold]")
        ConsoleAuditSink(prefix="", stream=stream).emit(event)
        assert json.loads(stream.getvalue())["input"] == "[bold]x[/bold]"


# =============================================================================
# FileAuditSink
# =============================================================================


class TestFileAuditSink:
    """Tests for the JSON Lines file sink."""

    def test_writes_one_line_per_event(self, temp_dir: Path) -> None:
        """Each event becomes one JSON line."""
        path = temp_dir / "audit.jsonl"
        with FileAuditSink(path) as sink:
            sink.emit(_attempted())
            sink.emit(ToolCallExecuted(request_id="r1", tool_name="search_docs", duration_ms=2.0))
        lines = path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 2
        assert json.loads(lines[1])["type"] == "tool_call_executed"

    def test_appends_never_truncates(self, temp_dir: Path) -> None:
        """Reopening a log appends to it."""
        path = temp_dir / "audit.jsonl"
        for _ in range(2):
            with FileAuditSink(path) as sink:
                sink.emit(_attempted())
        assert len(path.read_text(encoding="utf-8").splitlines()) == 2

    def test_creates_parent_directories(self, temp_dir: Path) -> None:
        """Missing parent directories are created."""
        path = temp_dir / "logs" / "nested" / "audit.jsonl"
        with FileAuditSink(path) as sink:
            sink.emit(_attempted())
        assert path.exists()

    def test_emit_after_close(self, temp_dir: Path) -> None:
        """A closed sink rejects events; closing twice is fine."""
        sink = FileAuditSink(temp_dir / "audit.jsonl")
        sink.close()
        sink.close()
        assert sink.closed
        with pytest.raises(AuditSinkClosedError):
            sink.emit(_attempted())

    def test_flush_makes_records_visible(self, temp_dir: Path) -> None:
        """flush() pushes buffered lines to disk."""
        path = temp_dir / "audit.jsonl"
        sink = FileAuditSink(path)
        sink.emit(_attempted())
        sink.flush()
        assert path.read_text(encoding="utf-8").strip()
        sink.close()

    def test_awkward_inputs_still_recorded(self, temp_dir: Path) -> None:
        """Lone surrogates and NaN inputs don't drop events from the log."""
        path = temp_dir / "audit.jsonl"
        with FileAuditSink(path) as sink:
            sink.emit(_attempted())
            sink.emit(
                ToolCallAttempted(
                    request_id="r1",
                    tool_name="search_docs",
                    input={"q": "bad\udcff", "score": float("nan")},
                )
            )
            sink.emit(ToolCallExecuted(request_id="r1", tool_name="search_docs", duration_ms=2.0))
        events = read_audit_log(path)
        assert [e.type for e in events] == [
            "tool_call_attempted",
            "tool_call_attempted",
            "tool_call_executed",
        ]
        assert events[1].input == {"q": "bad\udcff", "score": "nan"}


# =============================================================================
# MultiAuditSink
# =============================================================================


class TestMultiAuditSink:
    """Tests for the fan-out sink."""

    def test_fans_out(self) -> None:
        """Every child receives every event."""
        a, b = InMemoryAuditSink(), InMemoryAuditSink()
        MultiAuditSink([a, b]).emit(_attempted())
        assert len(a) == len(b) == 1

    def test_failing_child_isolated(self) -> None:
        """A raising child doesn't stop the others."""
        good = InMemoryAuditSink()
        result = MultiAuditSink([_FailingSink(), good]).emit(_attempted())
        assert result is None
        assert len(good) == 1

    @pytest.mark.asyncio
    async def test_async_children_gathered(self) -> None:
        """Awaitables from children are combined into one."""
        async_sink = _AsyncSink()
        pending = MultiAuditSink([InMemoryAuditSink(), async_sink]).emit(_attempted())
        assert pending is not None
        await pending
        assert len(async_sink.events) == 1

    def test_close_closes_children(self, temp_dir: Path) -> None:
        """close() closes every child."""
        file_sink = FileAuditSink(temp_dir / "audit.jsonl")
        MultiAuditSink([InMemoryAuditSink(), file_sink]).close()
        assert file_sink.closed
