"""
Composable policy builder.

PolicyBuilder collects ordered classifier and rule functions. Each one
returns a result or None for "no opinion"; the first definitive answer
wins. With no answer, classification defaults to READ and the decision
to allow.

This is the extension point for classification from out-of-band
metadata (say, a risk tag published by a tool registry) without touching
rule precedence.

Usage:
    policy = (
        PolicyBuilder()
        .add_classifier(table_classifier({"archive_invoice": "write"}))
        .add_classifier(token_classifier())
        .add_rule(deny_tools(["delete_resource"]))
        .add_rule(require_approval_for(["admin"]))
        .build()
    )
"""

from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any

from toolguard.policy.base import DecisionRequest, GuardPolicy, resolve
from toolguard.policy.simple import classify_by_tokens, match_tokens
from toolguard.schema import Classification, Decision, RiskTier

ClassifierFn = Callable[
    [str, Any], Classification | None | Awaitable[Classification | None]
]
RuleFn = Callable[[DecisionRequest], Decision | None | Awaitable[Decision | None]]


class BuiltPolicy(GuardPolicy):
    """A policy assembled by PolicyBuilder. Immutable once built."""

    def __init__(
        self,
        classifiers: Iterable[ClassifierFn],
        rules: Iterable[RuleFn],
    ) -> None:
        self.classifiers: tuple[ClassifierFn, ...] = tuple(classifiers)
        self.rules: tuple[RuleFn, ...] = tuple(rules)

    async def classify(self, tool_name: str, tool_input: Any) -> Classification:
        for classifier in self.classifiers:
            result = await resolve(classifier(tool_name, tool_input))
            if result is not None:
                return result
        return Classification(risk=RiskTier.READ)

    async def decide(self, request: DecisionRequest) -> Decision:
        for rule in self.rules:
            decision = await resolve(rule(request))
            if decision is not None:
                return decision
        return Decision.allow()

    def __repr__(self) -> str:
        return f"<BuiltPolicy: {len(self.classifiers)} classifiers, {len(self.rules)} rules>"


class PolicyBuilder:
    """Fluent builder for BuiltPolicy."""

    def __init__(self) -> None:
        self._classifiers: list[ClassifierFn] = []
        self._rules: list[RuleFn] = []

    def add_classifier(self, classifier: ClassifierFn) -> "PolicyBuilder":
        """Append a classifier; earlier classifiers take precedence."""
        self._classifiers.append(classifier)
        return self

    def add_rule(self, rule: RuleFn) -> "PolicyBuilder":
        """Append a decision rule; earlier rules take precedence."""
        self._rules.append(rule)
        return self

    def build(self) -> BuiltPolicy:
        """Freeze the current classifiers and rules into a policy."""
        return BuiltPolicy(self._classifiers, self._rules)


# =============================================================================
# Ready-made classifiers
# =============================================================================


def table_classifier(table: Mapping[str, RiskTier | str]) -> ClassifierFn:
    """Classify tools found in an explicit name -> tier table."""
    tiers = {name: RiskTier(risk) for name, risk in table.items()}

    def classify(tool_name: str, tool_input: Any) -> Classification | None:
        risk = tiers.get(tool_name)
        if risk is None:
            return None
        return Classification(risk=risk, reason="configured risk override")

    return classify


def token_classifier(unmatched_risk: RiskTier | str | None = None) -> ClassifierFn:
    """
    Classify by name tokens (see classify_by_tokens).

    With unmatched_risk=None, unrecognized names get no opinion so later
    classifiers (or the READ default) decide.
    """

    def classify(tool_name: str, tool_input: Any) -> Classification | None:
        if unmatched_risk is None:
            return match_tokens(tool_name)
        return classify_by_tokens(tool_name, RiskTier(unmatched_risk))

    return classify


# =============================================================================
# Ready-made rules
# =============================================================================


def deny_tools(names: Iterable[str]) -> RuleFn:
    """Deny every tool in names."""
    denied = frozenset(names)

    def rule(request: DecisionRequest) -> Decision | None:
        if request.tool_name in denied:
            return Decision.deny(f"Tool '{request.tool_name}' is in denylist", rule="denylist")
        return None

    return rule


def allow_only(names: Iterable[str]) -> RuleFn:
    """Deny every tool not in names."""
    allowed = frozenset(names)

    def rule(request: DecisionRequest) -> Decision | None:
        if request.tool_name not in allowed:
            return Decision.deny(
                f"Tool '{request.tool_name}' is not in allowlist", rule="allowlist"
            )
        return None

    return rule


def require_approval_for(risks: Iterable[RiskTier | str]) -> RuleFn:
    """Require approval for tools classified into any of risks."""
    tiers = frozenset(RiskTier(r) for r in risks)

    def rule(request: DecisionRequest) -> Decision | None:
        if request.risk in tiers:
            return Decision.require_approval(
                f"{request.risk.value} operation requires approval",
                rule="require_approval_for_risk",
            )
        return None

    return rule
