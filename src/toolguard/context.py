"""
Request-scoped guard context.

A GuardContext holds the budget state for one logical request: how many
tool calls have been made, how many are allowed, and when the request
started. Every invocation in the request shares the same context, so the
call counter is only ever touched through record_call(), which performs
increment-and-read under a lock.
"""

import threading
import time
import uuid
from dataclasses import dataclass, field

DEFAULT_MAX_CALLS = 8
DEFAULT_MAX_DURATION_MS = 60_000


def _now_ms() -> float:
    return time.time() * 1000


@dataclass
class GuardContext:
    """
    Mutable budget state for one request.

    Attributes:
        request_id: Opaque identifier stamped on every audit event
        max_calls: Maximum number of tool calls in this request
        max_duration_ms: Wall-clock limit for the request (None = unlimited)
        started_at: Request start, in milliseconds since the epoch
        calls_made: Tool calls attempted so far (never decreases)
    """

    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    max_calls: int = DEFAULT_MAX_CALLS
    max_duration_ms: int | None = DEFAULT_MAX_DURATION_MS
    started_at: float = field(default_factory=_now_ms)
    calls_made: int = 0
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        if self.max_calls <= 0:
            msg = f"max_calls must be positive, got {self.max_calls}"
            raise ValueError(msg)
        if self.max_duration_ms is not None and self.max_duration_ms <= 0:
            msg = f"max_duration_ms must be positive, got {self.max_duration_ms}"
            raise ValueError(msg)
        if self.calls_made < 0:
            msg = f"calls_made must be non-negative, got {self.calls_made}"
            raise ValueError(msg)

    def record_call(self) -> int:
        """
        Count one call attempt and return the new total.

        The increment is never rolled back, even when the returned value
        is over budget and the call gets rejected.
        """
        with self._lock:
            self.calls_made += 1
            return self.calls_made

    def elapsed_ms(self) -> float:
        """Milliseconds since the request started."""
        return _now_ms() - self.started_at

    def duration_exceeded(self) -> bool:
        """Whether the request has run past max_duration_ms."""
        if self.max_duration_ms is None:
            return False
        return self.elapsed_ms() > self.max_duration_ms

    @property
    def remaining_calls(self) -> int:
        """Calls left before the budget trips (0 once exhausted)."""
        with self._lock:
            return max(0, self.max_calls - self.calls_made)


def create_default_context(
    request_id: str | None = None,
    max_calls: int = DEFAULT_MAX_CALLS,
    max_duration_ms: int | None = DEFAULT_MAX_DURATION_MS,
) -> GuardContext:
    """
    Create a fresh context for a new request.

    Args:
        request_id: Request identifier (a UUID is generated if omitted)
        max_calls: Maximum tool calls in the request
        max_duration_ms: Wall-clock limit in milliseconds (None = unlimited)

    Returns:
        A context starting now with zero calls made
    """
    return GuardContext(
        request_id=request_id or str(uuid.uuid4()),
        max_calls=max_calls,
        max_duration_ms=max_duration_ms,
    )
