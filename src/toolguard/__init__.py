"""
toolguard - guard pipeline for tool calls made by LLM agents.

toolguard sits between an agent's decision to call a tool and the tool's
execution. It provides:
- Risk classification and allow / deny / needs-approval decisions
- Per-request call-count and wall-clock budgets
- Per-call execution timeouts
- Structured audit events with secret and PII redaction

Example usage:
    from toolguard import ConsoleAuditSink, create_simple_policy, guard_tools

    tools = guard_tools(
        host_tools,
        policy=create_simple_policy(denylist=["delete_resource"]),
        audit=ConsoleAuditSink(),
    )
"""

__version__ = "0.1.0"
__author__ = "toolguard Contributors"

from toolguard.audit import (
    AuditSink,
    ConsoleAuditSink,
    FileAuditSink,
    InMemoryAuditSink,
    MultiAuditSink,
    read_audit_log,
)
from toolguard.context import GuardContext, create_default_context
from toolguard.errors import (
    BudgetExceededError,
    PolicyDeniedError,
    PolicyEvaluationError,
    RedactionError,
    ToolGuardError,
    ToolTimeoutError,
)
from toolguard.pipeline import GuardPipeline, guard_tools, guarded
from toolguard.policy import GuardPolicy, PolicyBuilder, SimplePolicy, create_simple_policy
from toolguard.redaction import (
    Redactor,
    compose_redactors,
    create_default_redactor,
    create_field_redactor,
    create_regex_redactor,
)
from toolguard.schema import (
    AuditEventType,
    Classification,
    Decision,
    DecisionKind,
    GuardConfig,
    RiskTier,
    load_config,
)
from toolguard.tools import Capability, Toolset

__all__ = [
    "__version__",
    "__author__",
    "AuditEventType",
    "AuditSink",
    "BudgetExceededError",
    "Capability",
    "Classification",
    "ConsoleAuditSink",
    "Decision",
    "DecisionKind",
    "FileAuditSink",
    "GuardConfig",
    "GuardContext",
    "GuardPipeline",
    "GuardPolicy",
    "InMemoryAuditSink",
    "MultiAuditSink",
    "PolicyBuilder",
    "PolicyDeniedError",
    "PolicyEvaluationError",
    "RedactionError",
    "Redactor",
    "RiskTier",
    "SimplePolicy",
    "ToolGuardError",
    "ToolTimeoutError",
    "Toolset",
    "compose_redactors",
    "create_default_context",
    "create_default_redactor",
    "create_field_redactor",
    "create_regex_redactor",
    "create_simple_policy",
    "guard_tools",
    "guarded",
    "load_config",
    "read_audit_log",
]
