"""
Schema definitions for toolguard.

This module defines the Pydantic models used throughout toolguard:
- RiskTier/Classification: How risky a tool call is
- Decision: What the policy says about a tool call
- AuditEvent variants: What the guard reports to audit sinks
- GuardConfig: What a YAML configuration file may contain

Design Decisions:
    - Runtime values (decisions, events) are frozen once constructed
    - Audit events serialize to a flat camelCase record, the wire shape
      that downstream log consumers depend on
    - Configuration models forbid unknown keys so typos fail loudly
"""

import re
import time
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Literal, Union

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from toolguard.errors import ConfigError


# =============================================================================
# Enums
# =============================================================================


class RiskTier(str, Enum):
    """
    Coarse classification of a tool call's potential impact.

    Tiers are not ordered; what each one means is up to the policy author.
    """

    READ = "read"
    WRITE = "write"
    ADMIN = "admin"


class DecisionKind(str, Enum):
    """The three possible policy verdicts."""

    ALLOW = "allow"
    DENY = "deny"
    NEEDS_APPROVAL = "needs_approval"


class AuditEventType(str, Enum):
    """Wire values of the audit event ``type`` field."""

    ATTEMPTED = "tool_call_attempted"
    BLOCKED = "tool_call_blocked"
    NEEDS_APPROVAL = "tool_call_needs_approval"
    EXECUTED = "tool_call_executed"
    TIMEOUT = "tool_call_timeout"
    BUDGET_EXCEEDED = "budget_exceeded"


# =============================================================================
# Policy Models
# =============================================================================


class Classification(BaseModel):
    """
    Result of classifying a tool call.

    Attributes:
        risk: The assigned risk tier
        reason: Optional explanation, passed on to decide()
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    risk: RiskTier
    reason: str | None = None


class Decision(BaseModel):
    """
    Result of evaluating a tool call against the policy.

    Exactly one kind per evaluation. Deny and needs-approval decisions
    always carry a non-empty reason.

    Attributes:
        kind: allow, deny or needs_approval
        reason: Human-readable explanation of the decision
        rule_matched: Which policy rule caused this decision
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: DecisionKind = Field(..., description="The verdict")
    reason: str | None = Field(
        default=None,
        description="Human-readable explanation of the decision",
    )
    rule_matched: str | None = Field(
        default=None,
        description="Which policy rule caused this decision",
    )

    @model_validator(mode="after")
    def require_reason(self) -> "Decision":
        """Deny and needs-approval decisions must say why."""
        if self.kind != DecisionKind.ALLOW and not (self.reason and self.reason.strip()):
            msg = f"A {self.kind.value} decision requires a non-empty reason"
            raise ValueError(msg)
        return self

    @property
    def allowed(self) -> bool:
        """Whether the call may proceed (possibly after approval)."""
        return self.kind != DecisionKind.DENY

    @property
    def needs_approval(self) -> bool:
        """Whether a human has to approve the call first."""
        return self.kind == DecisionKind.NEEDS_APPROVAL

    @classmethod
    def allow(cls, reason: str | None = None, rule: str | None = None) -> "Decision":
        """Create an ALLOW decision."""
        return cls(kind=DecisionKind.ALLOW, reason=reason, rule_matched=rule)

    @classmethod
    def deny(cls, reason: str, rule: str | None = None) -> "Decision":
        """Create a DENY decision."""
        return cls(kind=DecisionKind.DENY, reason=reason, rule_matched=rule)

    @classmethod
    def require_approval(cls, reason: str, rule: str | None = None) -> "Decision":
        """Create an ALLOW-WITH-APPROVAL decision."""
        return cls(kind=DecisionKind.NEEDS_APPROVAL, reason=reason, rule_matched=rule)


# =============================================================================
# Audit Events
# =============================================================================


def now_ms() -> int:
    """Milliseconds since the epoch."""
    return int(time.time() * 1000)


class AuditEventBase(BaseModel):
    """
    Fields shared by every audit event.

    Attributes:
        request_id: The request the event belongs to
        timestamp: Milliseconds since epoch when the event was created
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    request_id: str
    timestamp: int = Field(default_factory=now_ms)

    def to_record(self) -> dict[str, Any]:
        """Return the flat camelCase wire record for this event."""
        return self.model_dump(by_alias=True)


class ToolCallAttempted(AuditEventBase):
    """A tool call reached the guard. ``input`` is already redacted."""

    type: Literal["tool_call_attempted"] = "tool_call_attempted"
    tool_name: str
    input: Any = None


class ToolCallBlocked(AuditEventBase):
    """The policy denied the call, or failed while evaluating it."""

    type: Literal["tool_call_blocked"] = "tool_call_blocked"
    tool_name: str
    reason: str


class ToolCallNeedsApproval(AuditEventBase):
    """The policy requires human approval; informational only."""

    type: Literal["tool_call_needs_approval"] = "tool_call_needs_approval"
    tool_name: str
    reason: str


class ToolCallExecuted(AuditEventBase):
    """The tool completed within its timeout."""

    type: Literal["tool_call_executed"] = "tool_call_executed"
    tool_name: str
    duration_ms: float


class ToolCallTimeout(AuditEventBase):
    """The tool did not complete in time; its outcome is unknown."""

    type: Literal["tool_call_timeout"] = "tool_call_timeout"
    tool_name: str
    timeout_ms: int


class BudgetExceeded(AuditEventBase):
    """A request budget (calls or duration) was exhausted."""

    type: Literal["budget_exceeded"] = "budget_exceeded"
    reason: str
    tool_name: str | None = None


AuditEvent = Annotated[
    Union[
        ToolCallAttempted,
        ToolCallBlocked,
        ToolCallNeedsApproval,
        ToolCallExecuted,
        ToolCallTimeout,
        BudgetExceeded,
    ],
    Field(discriminator="type"),
]

_audit_event_adapter: TypeAdapter[AuditEvent] = TypeAdapter(AuditEvent)


def parse_audit_event(record: dict[str, Any]) -> AuditEvent:
    """
    Validate a wire record back into its audit event model.

    Raises:
        ValidationError: If the record doesn't match any event shape
    """
    return _audit_event_adapter.validate_python(record)


# =============================================================================
# Configuration Models
# =============================================================================


class PolicyConfig(BaseModel):
    """
    Configuration for the simple allowlist/denylist policy.

    Attributes:
        allowlist: If non-empty, only these tools may run
        denylist: These tools never run (wins over everything)
        require_approval_for_risk: Risk tiers that need human approval
        unmatched_risk: Tier for names the token heuristic can't classify
        risk_overrides: Explicit tool name -> tier table
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    allowlist: list[str] | None = Field(
        default=None,
        description="If non-empty, only these tools may run",
    )
    denylist: list[str] = Field(
        default_factory=list,
        description="Tools that are always blocked",
    )
    require_approval_for_risk: list[RiskTier] = Field(
        default_factory=lambda: [RiskTier.WRITE, RiskTier.ADMIN],
        description="Risk tiers that need human approval",
    )
    unmatched_risk: RiskTier = Field(
        default=RiskTier.WRITE,
        description="Tier assigned to names matching no classification token",
    )
    risk_overrides: dict[str, RiskTier] = Field(
        default_factory=dict,
        description="Explicit tool name -> risk tier table",
    )


class BudgetConfig(BaseModel):
    """
    Per-request budget limits.

    Attributes:
        max_tool_calls: Maximum tool calls per request
        max_duration_ms: Maximum wall-clock duration per request (None = unlimited)
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_tool_calls: int = Field(default=8, gt=0)
    max_duration_ms: int | None = Field(default=60_000, gt=0)


class RedactionConfig(BaseModel):
    """
    Redaction applied to tool inputs before they are audited.

    Attributes:
        use_default_patterns: Scrub secrets/PII with the built-in patterns
        patterns: Extra regular expressions to scrub
        fields: Field names whose values are always masked
        replacement: Token substituted for redacted content
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    use_default_patterns: bool = True
    patterns: list[str] = Field(default_factory=list)
    fields: list[str] = Field(default_factory=list)
    replacement: str = Field(default="[REDACTED]", min_length=1)

    @field_validator("patterns")
    @classmethod
    def validate_patterns(cls, v: list[str]) -> list[str]:
        """Reject patterns that don't compile."""
        for pattern in v:
            try:
                re.compile(pattern)
            except re.error as e:
                msg = f"Invalid redaction pattern {pattern!r}: {e}"
                raise ValueError(msg) from e
        return v


class GuardConfig(BaseModel):
    """
    Complete guard configuration, as loaded from YAML.

    Attributes:
        policy: Simple policy settings
        budget: Per-request budget limits
        timeout_ms: Per-call execution timeout
        redaction: Audit redaction settings
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    budget: BudgetConfig = Field(default_factory=BudgetConfig)
    timeout_ms: int = Field(default=15_000, gt=0)
    redaction: RedactionConfig = Field(default_factory=RedactionConfig)


# =============================================================================
# YAML Loading Helpers
# =============================================================================


def load_config(path: Path | str) -> GuardConfig:
    """
    Load a guard configuration from a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        Validated GuardConfig object

    Raises:
        ConfigError: If the file can't be read or doesn't match the schema
    """
    path = Path(path)
    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(path=str(path), underlying_error=str(e)) from e
    return _validate_config(data, str(path))


def load_config_from_string(content: str) -> GuardConfig:
    """Load a guard configuration from a YAML string."""
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(path="<string>", underlying_error=str(e)) from e
    return _validate_config(data, "<string>")


def _validate_config(data: Any, source: str) -> GuardConfig:
    """Validate parsed YAML, treating an empty document as all defaults."""
    try:
        return GuardConfig.model_validate(data or {})
    except ValidationError as e:
        raise ConfigError(path=source, underlying_error=str(e)) from e
