"""
Policy module for toolguard.

A policy classifies each tool call into a risk tier and then decides
whether it is allowed, denied, or needs human approval.

Key concepts:
    - GuardPolicy: classify() + decide(), either may be async
    - SimplePolicy: denylist > allowlist > approval tiers > allow
    - PolicyBuilder: ordered classifier/rule functions, first answer wins
    - evaluate_policy(): runs a policy and captures failures so callers
      can fail closed
"""

from toolguard.policy.base import (
    DecisionRequest,
    GuardPolicy,
    PolicyEvaluation,
    evaluate_policy,
)
from toolguard.policy.builder import (
    BuiltPolicy,
    PolicyBuilder,
    allow_only,
    deny_tools,
    require_approval_for,
    table_classifier,
    token_classifier,
)
from toolguard.policy.simple import (
    SimplePolicy,
    classify_by_tokens,
    create_simple_policy,
    match_tokens,
)

__all__ = [
    "BuiltPolicy",
    "DecisionRequest",
    "GuardPolicy",
    "PolicyBuilder",
    "PolicyEvaluation",
    "SimplePolicy",
    "allow_only",
    "classify_by_tokens",
    "create_simple_policy",
    "deny_tools",
    "evaluate_policy",
    "match_tokens",
    "require_approval_for",
    "table_classifier",
    "token_classifier",
]
