"""
Policy contract and fail-closed evaluation.

A policy answers two questions about a pending tool call:
    1. classify(): how risky is it? (a RiskTier)
    2. decide(): given that risk, allow, deny or require approval?

Either method may be a coroutine, so a policy can consult an external
ruleset. Neither may have side effects outside the decision.

evaluate_policy() runs both and never raises. Any failure, including a
method returning the wrong type, comes back as a failed PolicyEvaluation
that the pipeline routes to "approval required" or "blocked".
"""

import inspect
from abc import ABC, abstractmethod
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Any, TypeVar

import structlog

from toolguard.context import GuardContext
from toolguard.schema import Classification, Decision, RiskTier

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class DecisionRequest:
    """
    Everything decide() gets to look at.

    Attributes:
        tool_name: Name of the tool being called
        tool_input: The tool's (unredacted) input
        ctx: The request's guard context (read it, don't mutate it)
        risk: Tier assigned by classify()
        reason: Reason returned by classify(), if any
    """

    tool_name: str
    tool_input: Any
    ctx: GuardContext
    risk: RiskTier
    reason: str | None = None


class GuardPolicy(ABC):
    """
    Abstract base class for guard policies.

    Subclasses implement classify() and decide(); each may return its
    result directly or as an awaitable.
    """

    @abstractmethod
    def classify(
        self, tool_name: str, tool_input: Any
    ) -> Classification | Awaitable[Classification]:
        """Assign a risk tier to a tool call."""
        ...

    @abstractmethod
    def decide(self, request: DecisionRequest) -> Decision | Awaitable[Decision]:
        """Return the verdict for a classified tool call."""
        ...


@dataclass(frozen=True)
class PolicyEvaluation:
    """
    Outcome of running classify() and decide().

    Exactly one of (classification and decision) or error is set.
    """

    classification: Classification | None = None
    decision: Decision | None = None
    error: Exception | None = None

    @property
    def failed(self) -> bool:
        """Whether the policy itself failed."""
        return self.error is not None

    @property
    def needs_approval(self) -> bool:
        """Approval signal for the pre-execution approval check; True on failure."""
        if self.failed or self.decision is None:
            return True
        return self.decision.needs_approval

    @classmethod
    def ok(cls, classification: Classification, decision: Decision) -> "PolicyEvaluation":
        return cls(classification=classification, decision=decision)

    @classmethod
    def failure(cls, error: Exception) -> "PolicyEvaluation":
        return cls(error=error)


async def resolve(value: T | Awaitable[T]) -> T:
    """Await value if it is awaitable, otherwise return it as-is."""
    if inspect.isawaitable(value):
        return await value
    return value


async def evaluate_policy(
    policy: GuardPolicy,
    tool_name: str,
    tool_input: Any,
    ctx: GuardContext,
) -> PolicyEvaluation:
    """
    Classify and decide one tool call, capturing any policy failure.

    Args:
        policy: The policy to consult
        tool_name: Name of the tool being called
        tool_input: The tool's input
        ctx: The request's guard context

    Returns:
        A successful evaluation, or a failed one carrying the error
    """
    try:
        classification = await resolve(policy.classify(tool_name, tool_input))
        if not isinstance(classification, Classification):
            msg = f"classify() returned {type(classification).__name__}, expected Classification"
            raise TypeError(msg)

        decision = await resolve(
            policy.decide(
                DecisionRequest(
                    tool_name=tool_name,
                    tool_input=tool_input,
                    ctx=ctx,
                    risk=classification.risk,
                    reason=classification.reason,
                )
            )
        )
        if not isinstance(decision, Decision):
            msg = f"decide() returned {type(decision).__name__}, expected Decision"
            raise TypeError(msg)
    except Exception as e:
        logger.warning(
            "policy_evaluation_failed",
            tool=tool_name,
            request_id=ctx.request_id,
            error=str(e),
            exc_info=True,
        )
        return PolicyEvaluation.failure(e)

    return PolicyEvaluation.ok(classification, decision)
