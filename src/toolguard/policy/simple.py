"""
Simple allowlist/denylist policy.

Rules are evaluated in a fixed order, first match wins:
    1. Denylist: listed tools are always denied
    2. Allowlist: if configured and non-empty, unlisted tools are denied
    3. Approval tiers: tools whose risk tier needs approval get it
    4. Otherwise the call is allowed

Classification uses, in order: a caller-supplied classifier (which
replaces everything else), an explicit name -> tier table, then a
case-insensitive token heuristic over the tool name. Names that match no
token get ``unmatched_risk``, which defaults to WRITE so an unknown tool
is never silently treated as read-only.
"""

import re
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from toolguard.policy.base import DecisionRequest, GuardPolicy
from toolguard.schema import Classification, Decision, PolicyConfig, RiskTier

ADMIN_TOKENS: tuple[str, ...] = ("delete", "remove", "destroy", "drop")
WRITE_TOKENS: tuple[str, ...] = (
    "create",
    "write",
    "update",
    "modify",
    "insert",
    "send",
    "post",
)
READ_TOKENS: tuple[str, ...] = (
    "get",
    "list",
    "read",
    "search",
    "find",
    "fetch",
    "query",
    "describe",
    "show",
    "view",
    "lookup",
)

_NAME_PART_RE = re.compile(r"[_\W\d]+|(?<=[a-z])(?=[A-Z])")

DEFAULT_APPROVAL_TIERS: tuple[RiskTier, ...] = (RiskTier.WRITE, RiskTier.ADMIN)

Classifier = Callable[[str, Any], Classification]


def split_name(tool_name: str) -> set[str]:
    """Lowercased snake_case and camelCase parts of a tool name."""
    return {part.lower() for part in _NAME_PART_RE.split(tool_name) if part}


def match_tokens(tool_name: str) -> Classification | None:
    """
    Classify a tool by its name, or None if nothing matches.

    Admin tokens are checked before write tokens, and write before read,
    so "delete_post" is admin and "update_list" is write. Admin and write
    tokens match anywhere in the name. Read tokens must equal a whole
    snake_case or camelCase part, so "transfer_budget" is not a "get".
    """
    lowered = tool_name.lower()
    parts = split_name(tool_name)
    if any(token in lowered for token in ADMIN_TOKENS):
        return Classification(risk=RiskTier.ADMIN, reason="destructive operation")
    if any(token in lowered for token in WRITE_TOKENS):
        return Classification(risk=RiskTier.WRITE, reason="write operation")
    if any(token in parts for token in READ_TOKENS):
        return Classification(risk=RiskTier.READ, reason="read-only operation")
    return None


def classify_by_tokens(
    tool_name: str,
    unmatched_risk: RiskTier = RiskTier.WRITE,
) -> Classification:
    """Token classification with a fallback tier for unrecognized names."""
    result = match_tokens(tool_name)
    if result is None:
        return Classification(risk=unmatched_risk, reason="unrecognized operation")
    return result


class SimplePolicy(GuardPolicy):
    """
    Allowlist/denylist policy with risk-tier approval.

    Usage:
        policy = SimplePolicy(
            denylist=["delete_resource"],
            require_approval_for_risk=[RiskTier.ADMIN],
        )

    Attributes:
        allowlist: Tools allowed to run (None or empty = no restriction)
        denylist: Tools that never run
        require_approval_for_risk: Tiers that need human approval
        unmatched_risk: Tier for names the token heuristic can't place
        risk_overrides: Explicit tool name -> tier table
    """

    def __init__(
        self,
        allowlist: Iterable[str] | None = None,
        denylist: Iterable[str] | None = None,
        require_approval_for_risk: Iterable[RiskTier | str] = DEFAULT_APPROVAL_TIERS,
        unmatched_risk: RiskTier | str = RiskTier.WRITE,
        risk_overrides: Mapping[str, RiskTier | str] | None = None,
        classifier: Classifier | None = None,
    ) -> None:
        self.allowlist: frozenset[str] | None = (
            frozenset(allowlist) if allowlist is not None else None
        )
        self.denylist: frozenset[str] = frozenset(denylist or ())
        self.require_approval_for_risk: frozenset[RiskTier] = frozenset(
            RiskTier(r) for r in require_approval_for_risk
        )
        self.unmatched_risk = RiskTier(unmatched_risk)
        self.risk_overrides: dict[str, RiskTier] = {
            name: RiskTier(risk) for name, risk in (risk_overrides or {}).items()
        }
        self._classifier = classifier

    @classmethod
    def from_config(cls, config: PolicyConfig) -> "SimplePolicy":
        """Build a policy from a validated configuration block."""
        return cls(
            allowlist=config.allowlist,
            denylist=config.denylist,
            require_approval_for_risk=config.require_approval_for_risk,
            unmatched_risk=config.unmatched_risk,
            risk_overrides=config.risk_overrides,
        )

    def classify(self, tool_name: str, tool_input: Any) -> Classification:
        if self._classifier is not None:
            return self._classifier(tool_name, tool_input)

        override = self.risk_overrides.get(tool_name)
        if override is not None:
            return Classification(risk=override, reason="configured risk override")

        return classify_by_tokens(tool_name, self.unmatched_risk)

    def decide(self, request: DecisionRequest) -> Decision:
        tool_name = request.tool_name

        # Denylist wins over everything else
        if tool_name in self.denylist:
            return Decision.deny(f"Tool '{tool_name}' is in denylist", rule="denylist")

        if self.allowlist and tool_name not in self.allowlist:
            return Decision.deny(f"Tool '{tool_name}' is not in allowlist", rule="allowlist")

        if request.risk in self.require_approval_for_risk:
            return Decision.require_approval(
                f"{request.risk.value} operation requires approval",
                rule="require_approval_for_risk",
            )

        return Decision.allow()

    def __repr__(self) -> str:
        return (
            f"<SimplePolicy: allowlist={sorted(self.allowlist) if self.allowlist else None}, "
            f"denylist={sorted(self.denylist)}, "
            f"approval={sorted(r.value for r in self.require_approval_for_risk)}>"
        )


def create_simple_policy(
    allowlist: Iterable[str] | None = None,
    denylist: Iterable[str] | None = None,
    require_approval_for_risk: Iterable[RiskTier | str] = DEFAULT_APPROVAL_TIERS,
    **kwargs: Any,
) -> SimplePolicy:
    """Create a SimplePolicy; keyword arguments are passed through."""
    return SimplePolicy(
        allowlist=allowlist,
        denylist=denylist,
        require_approval_for_risk=require_approval_for_risk,
        **kwargs,
    )
