"""
Unit tests for schema models.

Tests cover:
- Decision invariants and helpers
- Audit event wire format and parsing
- Configuration models and YAML loading
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from toolguard.errors import ConfigError
from toolguard.schema import (
    BudgetExceeded,
    Classification,
    Decision,
    DecisionKind,
    GuardConfig,
    RiskTier,
    ToolCallAttempted,
    ToolCallExecuted,
    ToolCallTimeout,
    load_config,
    load_config_from_string,
    parse_audit_event,
)


# =============================================================================
# Decision Tests
# =============================================================================


class TestDecision:
    """Tests for Decision model."""

    def test_allow_without_reason(self) -> None:
        """Allow decisions don't need a reason."""
        decision = Decision.allow()
        assert decision.kind == DecisionKind.ALLOW
        assert decision.allowed
        assert not decision.needs_approval

    def test_deny_requires_reason(self) -> None:
        """Deny decisions must say why."""
        with pytest.raises(ValidationError):
            Decision(kind=DecisionKind.DENY)
        with pytest.raises(ValidationError):
            Decision.deny("   ")

    def test_approval_requires_reason(self) -> None:
        """Needs-approval decisions must say why."""
        with pytest.raises(ValidationError):
            Decision(kind=DecisionKind.NEEDS_APPROVAL, reason="")

    def test_needs_approval_is_allowed(self) -> None:
        """An approval-gated call is not a denial."""
        decision = Decision.require_approval("admin operation requires approval")
        assert decision.allowed
        assert decision.needs_approval

    def test_deny_helpers(self) -> None:
        """Deny keeps its reason and rule."""
        decision = Decision.deny("nope", rule="denylist")
        assert not decision.allowed
        assert decision.reason == "nope"
        assert decision.rule_matched == "denylist"

    def test_decision_is_immutable(self) -> None:
        """Decisions are frozen."""
        decision = Decision.allow()
        with pytest.raises(ValidationError):
            decision.kind = DecisionKind.DENY  # type: ignore[misc]

    def test_classification_accepts_string_tier(self) -> None:
        """Risk tiers validate from their string values."""
        assert Classification(risk="admin").risk == RiskTier.ADMIN


# =============================================================================
# Audit Event Tests
# =============================================================================


class TestAuditEvents:
    """Tests for audit event models."""

    def test_wire_record_is_camel_case(self) -> None:
        """Records use camelCase keys and the wire type string."""
        event = ToolCallExecuted(request_id="r1", tool_name="search_docs", duration_ms=12.5)
        record = event.to_record()
        assert record["type"] == "tool_call_executed"
        assert record["requestId"] == "r1"
        assert record["toolName"] == "search_docs"
        assert record["durationMs"] == 12.5
        assert isinstance(record["timestamp"], int)

    def test_timeout_record(self) -> None:
        """Timeout records carry timeoutMs."""
        record = ToolCallTimeout(request_id="r", tool_name="slow", timeout_ms=50).to_record()
        assert record["timeoutMs"] == 50

    def test_budget_event_tool_name_optional(self) -> None:
        """Budget events may omit the tool name."""
        event = BudgetExceeded(request_id="r", reason="Tool budget exceeded (maxToolCalls=1)")
        assert event.tool_name is None

    def test_parse_round_trip_preserves_type(self) -> None:
        """A record parses back into the same event class."""
        event = ToolCallAttempted(request_id="r", tool_name="t", input={"a": 1})
        parsed = parse_audit_event(event.to_record())
        assert isinstance(parsed, ToolCallAttempted)
        assert parsed.to_record() == event.to_record()

    def test_parse_unknown_type_rejected(self) -> None:
        """Unknown event types don't parse."""
        with pytest.raises(ValidationError):
            parse_audit_event({"type": "tool_call_exploded", "requestId": "r", "timestamp": 1})

    def test_events_are_immutable(self) -> None:
        """Events are frozen."""
        event = ToolCallAttempted(request_id="r", tool_name="t")
        with pytest.raises(ValidationError):
            event.tool_name = "other"  # type: ignore[misc]


# =============================================================================
# Configuration Tests
# =============================================================================


class TestGuardConfig:
    """Tests for configuration models and loading."""

    def test_defaults(self) -> None:
        """Defaults match the library defaults."""
        config = GuardConfig()
        assert config.budget.max_tool_calls == 8
        assert config.budget.max_duration_ms == 60_000
        assert config.timeout_ms == 15_000
        assert config.policy.allowlist is None
        assert config.policy.unmatched_risk == RiskTier.WRITE
        assert set(config.policy.require_approval_for_risk) == {RiskTier.WRITE, RiskTier.ADMIN}
        assert config.redaction.use_default_patterns

    def test_load_from_string(self, sample_config_yaml: str) -> None:
        """Load a full config from YAML text."""
        config = load_config_from_string(sample_config_yaml)
        assert config.policy.denylist == ["delete_resource"]
        assert config.policy.require_approval_for_risk == [RiskTier.ADMIN]
        assert config.policy.risk_overrides == {"archive_invoice": RiskTier.WRITE}
        assert config.budget.max_tool_calls == 3
        assert config.timeout_ms == 5000
        assert config.redaction.fields == ["password"]

    def test_load_from_file(self, sample_config_file: Path) -> None:
        """Load a config from disk."""
        config = load_config(sample_config_file)
        assert config.budget.max_duration_ms == 30_000

    def test_empty_document_is_defaults(self) -> None:
        """An empty file means all defaults."""
        assert load_config_from_string("") == GuardConfig()

    def test_unknown_key_rejected(self) -> None:
        """Typos fail loudly."""
        with pytest.raises(ConfigError):
            load_config_from_string("budget:\n  max_calls: 3\n")

    def test_invalid_tier_rejected(self) -> None:
        """Unknown risk tiers fail validation."""
        with pytest.raises(ConfigError):
            load_config_from_string("policy:\n  require_approval_for_risk: [critical]\n")

    def test_non_positive_limits_rejected(self) -> None:
        """Budgets and timeouts must be positive."""
        with pytest.raises(ConfigError):
            load_config_from_string("timeout_ms: 0\n")
        with pytest.raises(ConfigError):
            load_config_from_string("budget:\n  max_tool_calls: 0\n")

    def test_invalid_pattern_rejected(self) -> None:
        """Redaction patterns must compile."""
        with pytest.raises(ConfigError):
            load_config_from_string("redaction:\n  patterns: ['(unclosed']\n")

    def test_malformed_yaml(self) -> None:
        """Broken YAML raises ConfigError."""
        with pytest.raises(ConfigError):
            load_config_from_string("policy: [unclosed")

    def test_missing_file(self, temp_dir: Path) -> None:
        """A missing file raises ConfigError."""
        with pytest.raises(ConfigError):
            load_config(temp_dir / "nope.yaml")
