"""
Tools module for toolguard.

Defines the shape of the capabilities the guard wraps. Hosts hand the
guard a mapping of name -> Capability and get back a mapping of the same
shape whose capabilities enforce policy, budgets, timeouts and auditing.
"""

from toolguard.tools.base import ApprovalPredicate, Capability, ExecuteFn
from toolguard.tools.registry import Toolset

__all__ = [
    "ApprovalPredicate",
    "Capability",
    "ExecuteFn",
    "Toolset",
]
