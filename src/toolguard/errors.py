"""
Exception hierarchy for toolguard.

All toolguard exceptions inherit from ToolGuardError, allowing hosts to catch
every guard-originated failure with a single except clause while letting the
capability's own exceptions pass through untouched.

Exception Categories:
    - PolicyDeniedError: Tool call blocked by denylist or allowlist
    - PolicyEvaluationError: The policy itself failed (fail-closed block)
    - RedactionError: The audit redactor failed (fail-closed block)
    - BudgetExceededError: Call-count or duration ceiling breached
    - ToolTimeoutError: Tool did not finish inside its time window
    - AuditSinkError: Audit sink could not accept or parse events
    - ConfigError: Configuration file could not be loaded

Every error carries a numeric code for programmatic handling, the tool and
request it concerns (where applicable), and an optional suggestion.
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Policy errors: 1xxx
ERROR_POLICY_DENIED = 1001
ERROR_POLICY_EVALUATION_FAILED = 1002
ERROR_REDACTION_FAILED = 1003

# Budget errors: 2xxx
ERROR_BUDGET_CALLS_EXCEEDED = 2001
ERROR_BUDGET_DURATION_EXCEEDED = 2002

# Tool errors: 3xxx
ERROR_TOOL_TIMEOUT = 3001
ERROR_TOOL_NOT_FOUND = 3002

# Audit errors: 4xxx
ERROR_AUDIT_SINK_CLOSED = 4001
ERROR_AUDIT_LOG_FORMAT = 4002

# Configuration errors: 5xxx
ERROR_CONFIG_INVALID = 5001


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class ToolGuardError(Exception):
    """
    Base exception for all toolguard errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Policy Errors
# =============================================================================


@dataclass
class PolicyDeniedError(ToolGuardError):
    """
    Raised when a tool call is blocked by the policy.

    Recoverable at the request level: other calls in the same request
    may still proceed.

    Attributes:
        tool: Name of the tool that was blocked
        request_id: Request the call belonged to
        reason: Why the policy denied this call
        rule: Which policy rule caused the denial (e.g. "denylist")
    """

    tool: str = ""
    request_id: str = ""
    reason: str = ""
    rule: str | None = None

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Tool call blocked: {self.reason}"
        if self.code == 0:
            self.code = ERROR_POLICY_DENIED
        self.context.update({
            "tool": self.tool,
            "request_id": self.request_id,
            "reason": self.reason,
            "rule": self.rule,
        })


@dataclass
class PolicyEvaluationError(PolicyDeniedError):
    """
    Raised when the policy itself fails while classifying or deciding.

    The guard fails closed: the call is blocked instead of being allowed
    through with an unknown verdict.
    """

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.reason:
            self.reason = f"Policy evaluation failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_POLICY_EVALUATION_FAILED
        if not self.suggestion:
            self.suggestion = "Check the policy's classify/decide implementation"
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class RedactionError(PolicyDeniedError):
    """
    Raised when the redactor fails on a tool input.

    The input can't be audited safely, so the call is blocked and the
    attempted event carries no input at all.
    """

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.reason:
            self.reason = f"Redaction failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_REDACTION_FAILED
        if not self.rule:
            self.rule = "redaction"
        if not self.suggestion:
            self.suggestion = "Check the redactor passed to the guard pipeline"
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


# =============================================================================
# Budget Errors
# =============================================================================


@dataclass
class BudgetExceededError(ToolGuardError):
    """
    Base class for request budget violations.

    Only recoverable by starting a new request with a fresh GuardContext.

    Attributes:
        tool: Name of the tool whose call tripped the budget
        request_id: Request whose budget is exhausted
        reason: Human-readable description of the breached limit
    """

    tool: str = ""
    request_id: str = ""
    reason: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = self.reason
        if not self.suggestion:
            self.suggestion = "Start a new request with a fresh guard context"
        self.context.update({
            "tool": self.tool,
            "request_id": self.request_id,
            "reason": self.reason,
        })


@dataclass
class CallBudgetExceededError(BudgetExceededError):
    """Raised when a request makes more tool calls than max_calls."""

    calls_made: int = 0
    max_calls: int = 0

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.reason:
            self.reason = f"Tool budget exceeded (maxToolCalls={self.max_calls})"
        if self.code == 0:
            self.code = ERROR_BUDGET_CALLS_EXCEEDED
        super().__post_init__()
        self.context.update({
            "calls_made": self.calls_made,
            "max_calls": self.max_calls,
        })


@dataclass
class DurationBudgetExceededError(BudgetExceededError):
    """Raised when a request runs longer than max_duration_ms."""

    elapsed_ms: float = 0.0
    max_duration_ms: int = 0

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.reason:
            self.reason = f"Time budget exceeded (maxDurationMs={self.max_duration_ms})"
        if self.code == 0:
            self.code = ERROR_BUDGET_DURATION_EXCEEDED
        super().__post_init__()
        self.context.update({
            "elapsed_ms": self.elapsed_ms,
            "max_duration_ms": self.max_duration_ms,
        })


# =============================================================================
# Tool Errors
# =============================================================================


@dataclass
class ToolError(ToolGuardError):
    """
    Base class for tool-level errors raised by the guard.

    Attributes:
        tool: Name of the tool concerned
    """

    tool: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["tool"] = self.tool


@dataclass
class ToolTimeoutError(ToolError):
    """
    Raised when a tool exceeds its per-call timeout.

    The underlying work is abandoned, not killed: its side effects may
    still land after this error is raised, so treat the outcome as unknown.
    """

    timeout_ms: int = 0
    request_id: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Tool {self.tool} timed out after {self.timeout_ms}ms"
        if self.code == 0:
            self.code = ERROR_TOOL_TIMEOUT
        if not self.suggestion:
            self.suggestion = "Increase timeout_ms or make the tool faster"
        super().__post_init__()
        self.context.update({
            "timeout_ms": self.timeout_ms,
            "request_id": self.request_id,
        })


@dataclass
class ToolNotFoundError(ToolError):
    """Raised when a tool is not part of a toolset."""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Tool not found: {self.tool}"
        if self.code == 0:
            self.code = ERROR_TOOL_NOT_FOUND
        if not self.suggestion:
            self.suggestion = "Check tool name spelling or register the tool"
        super().__post_init__()


# =============================================================================
# Audit Errors
# =============================================================================


@dataclass
class AuditSinkError(ToolGuardError):
    """
    Base class for audit sink errors.

    Sink errors raised during a guarded call are logged and never reach
    the caller of the guarded tool.

    Attributes:
        sink: Name of the sink class that failed
    """

    sink: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["sink"] = self.sink


@dataclass
class AuditSinkClosedError(AuditSinkError):
    """Raised when emitting to a sink that has already been closed."""

    path: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Audit sink is closed: {self.path}"
        if self.code == 0:
            self.code = ERROR_AUDIT_SINK_CLOSED
        super().__post_init__()
        self.context["path"] = self.path


@dataclass
class AuditLogFormatError(AuditSinkError):
    """Raised when an audit log line cannot be parsed."""

    path: str = ""
    line_number: int = 0
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = (
                f"Invalid audit record at {self.path}:{self.line_number}: "
                f"{self.underlying_error}"
            )
        if self.code == 0:
            self.code = ERROR_AUDIT_LOG_FORMAT
        super().__post_init__()
        self.context.update({
            "path": self.path,
            "line_number": self.line_number,
            "underlying_error": self.underlying_error,
        })


# =============================================================================
# Configuration Errors
# =============================================================================


@dataclass
class ConfigError(ToolGuardError):
    """Raised when a guard configuration file is missing or invalid."""

    path: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid configuration {self.path}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_CONFIG_INVALID
        self.context.update({
            "path": self.path,
            "underlying_error": self.underlying_error,
        })
