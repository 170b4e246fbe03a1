"""
Capability descriptor: the tool shape toolguard consumes and returns.

The host framework owns its tools. toolguard only needs four optional
fields from each one, so a Capability is a plain frozen dataclass:

    - description: Free text shown to the model
    - input_schema: Opaque input-shape descriptor, passed through untouched
    - needs_approval: A bool, or a predicate over the input (sync or async)
    - execute: The entry point, taking the input and returning a result
      (sync or async)

Guarding a capability produces a new Capability; the original is never
mutated.
"""

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

ApprovalPredicate = Callable[[Any], bool | Awaitable[bool]]
ExecuteFn = Callable[[Any], Any]


@dataclass(frozen=True)
class Capability:
    """
    A tool as seen by the guard.

    Attributes:
        description: Human-readable description of the tool
        input_schema: Input-shape descriptor (never inspected by the guard)
        needs_approval: Approval flag or predicate; None lets the guard decide
        execute: Function from input to result; None for tools the host
            executes elsewhere
    """

    description: str | None = None
    input_schema: Any = None
    needs_approval: bool | ApprovalPredicate | None = None
    execute: ExecuteFn | None = None

    async def requires_approval(self, tool_input: Any) -> bool:
        """
        Evaluate needs_approval for an input.

        A missing flag means no approval; a predicate may be sync or async.
        """
        if self.needs_approval is None:
            return False
        if isinstance(self.needs_approval, bool):
            return self.needs_approval
        result = self.needs_approval(tool_input)
        if inspect.isawaitable(result):
            result = await result
        return bool(result)

    def __repr__(self) -> str:
        return f"<Capability: {self.description or 'no description'}>"
