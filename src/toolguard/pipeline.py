"""
Guard pipeline for toolguard.

The pipeline sits between an agent's decision to call a tool and the
tool's execution. It coordinates:
- Policy: classifies the call and decides allow / deny / needs approval
- GuardContext: per-request call-count and duration budgets
- Redactor: scrubs the input before it is audited
- Audit sink: receives one event per step

Execution Flow (invoke):
    1. Emit tool_call_attempted with the redacted input (no input if the
       redactor fails; the call is then counted and blocked)
    2. Count the call; over max_calls -> budget_exceeded, fail
    3. Over max_duration_ms -> budget_exceeded, fail
    4. Classify + decide; deny or policy failure -> tool_call_blocked, fail
    5. Needs approval -> tool_call_needs_approval (informational)
    6. Execute under timeout_ms; too slow -> tool_call_timeout, fail
    7. Emit tool_call_executed and return the original, unredacted result

Design Principles:
    - Fail-closed: A policy or redactor that errors blocks the call
    - Isolated audit: A failing sink never fails the guarded call
    - Transparent: Tool results and tool exceptions pass through unchanged
"""

import asyncio
import dataclasses
import functools
import inspect
import time
from collections.abc import Callable, Mapping, Sequence
from typing import Any

import structlog

from toolguard.audit.sinks import AuditSink, MultiAuditSink
from toolguard.context import GuardContext, create_default_context
from toolguard.errors import (
    CallBudgetExceededError,
    DurationBudgetExceededError,
    PolicyDeniedError,
    PolicyEvaluationError,
    RedactionError,
    ToolTimeoutError,
)
from toolguard.policy import GuardPolicy, PolicyEvaluation, SimplePolicy, evaluate_policy
from toolguard.redaction import redactor_from_config
from toolguard.schema import (
    AuditEventBase,
    BudgetExceeded,
    GuardConfig,
    ToolCallAttempted,
    ToolCallBlocked,
    ToolCallExecuted,
    ToolCallNeedsApproval,
    ToolCallTimeout,
)
from toolguard.tools import Capability, ExecuteFn, Toolset

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT_MS = 15_000

Redact = Callable[[Any], Any]


class GuardPipeline:
    """
    Enforces policy, budgets, timeouts and auditing around tool calls.

    One pipeline serves one request: its GuardContext is shared by every
    call made through it. Use for_request() to start a new request with
    the same policy, sinks and redactor.

    Usage:
        guard = GuardPipeline(
            policy=create_simple_policy(denylist=["delete_resource"]),
            audit=ConsoleAuditSink(),
            timeout_ms=10_000,
        )
        tools = guard.wrap(host_tools)

    Attributes:
        policy: The policy consulted for every call
        ctx: The request's budget state
        audit: Where audit events go (None = nowhere)
        timeout_ms: Per-call execution timeout
        redactor: Applied to inputs before auditing (None = no redaction)
    """

    def __init__(
        self,
        policy: GuardPolicy,
        ctx: GuardContext | None = None,
        audit: AuditSink | Sequence[AuditSink] | None = None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        redactor: Redact | None = None,
    ) -> None:
        """
        Initialize the pipeline.

        Args:
            policy: Policy to enforce
            ctx: Request context (a default one is created if omitted)
            audit: A sink, a sequence of sinks, or None
            timeout_ms: Per-call execution timeout in milliseconds
            redactor: Callable applied to inputs before they are audited

        Raises:
            ValueError: If timeout_ms is not positive
        """
        if timeout_ms <= 0:
            msg = f"timeout_ms must be positive, got {timeout_ms}"
            raise ValueError(msg)

        self.policy = policy
        self.ctx = ctx if ctx is not None else create_default_context()
        if isinstance(audit, (list, tuple)):
            audit = MultiAuditSink(audit)
        self.audit = audit
        self.timeout_ms = timeout_ms
        self.redactor = redactor
        self._pending: set[asyncio.Future[Any]] = set()

    @classmethod
    def from_config(
        cls,
        config: GuardConfig,
        audit: AuditSink | Sequence[AuditSink] | None = None,
        request_id: str | None = None,
    ) -> "GuardPipeline":
        """
        Assemble a pipeline from a loaded configuration.

        Args:
            config: Validated guard configuration
            audit: Sink(s) for audit events
            request_id: Request identifier (generated if omitted)
        """
        ctx = create_default_context(
            request_id=request_id,
            max_calls=config.budget.max_tool_calls,
            max_duration_ms=config.budget.max_duration_ms,
        )
        return cls(
            policy=SimplePolicy.from_config(config.policy),
            ctx=ctx,
            audit=audit,
            timeout_ms=config.timeout_ms,
            redactor=redactor_from_config(config.redaction),
        )

    def for_request(self, ctx: GuardContext | None = None) -> "GuardPipeline":
        """A pipeline for a new request, sharing everything but the context."""
        return GuardPipeline(
            policy=self.policy,
            ctx=ctx,
            audit=self.audit,
            timeout_ms=self.timeout_ms,
            redactor=self.redactor,
        )

    # =========================================================================
    # Pre-execution approval check
    # =========================================================================

    async def evaluate(self, tool_name: str, tool_input: Any) -> PolicyEvaluation:
        """Classify and decide one call without counting or executing it."""
        return await evaluate_policy(self.policy, tool_name, tool_input, self.ctx)

    async def needs_approval(self, tool_name: str, tool_input: Any) -> bool:
        """
        Whether a pending call must be approved by a human first.

        Fails closed: if the policy errors, approval is required.
        """
        evaluation = await self.evaluate(tool_name, tool_input)
        return evaluation.needs_approval

    # =========================================================================
    # Guarded execution
    # =========================================================================

    async def invoke(self, tool_name: str, execute: ExecuteFn, tool_input: Any) -> Any:
        """
        Run one tool call through the full guard sequence.

        Args:
            tool_name: Name of the tool being called
            execute: The tool's own entry point (sync or async)
            tool_input: Input for the tool

        Returns:
            Whatever execute returned, unredacted

        Raises:
            CallBudgetExceededError: Too many calls in this request
            DurationBudgetExceededError: Request ran out of time
            RedactionError: The redactor failed (call blocked)
            PolicyEvaluationError: The policy failed (call blocked)
            PolicyDeniedError: The policy denied the call
            ToolTimeoutError: execute did not finish in timeout_ms
            Exception: Anything execute itself raised, unchanged
        """
        ctx = self.ctx
        redaction_error: Exception | None = None
        audited_input = tool_input
        if self.redactor is not None:
            try:
                audited_input = self.redactor(tool_input)
            except Exception as e:
                logger.warning(
                    "redaction_failed",
                    tool=tool_name,
                    request_id=ctx.request_id,
                    error=str(e),
                )
                redaction_error = e
                audited_input = None
        self._emit(
            ToolCallAttempted(
                request_id=ctx.request_id,
                tool_name=tool_name,
                input=audited_input,
            )
        )

        self._check_budget(tool_name)

        if redaction_error is not None:
            error = RedactionError(
                tool=tool_name,
                request_id=ctx.request_id,
                underlying_error=str(redaction_error),
            )
            self._block(tool_name, error.reason)
            raise error from redaction_error

        evaluation = await evaluate_policy(self.policy, tool_name, tool_input, ctx)
        if evaluation.failed:
            error = PolicyEvaluationError(
                tool=tool_name,
                request_id=ctx.request_id,
                underlying_error=str(evaluation.error),
            )
            self._block(tool_name, error.reason)
            raise error from evaluation.error

        decision = evaluation.decision
        if not decision.allowed:
            self._block(tool_name, decision.reason)
            raise PolicyDeniedError(
                tool=tool_name,
                request_id=ctx.request_id,
                reason=decision.reason,
                rule=decision.rule_matched,
            )

        # The host owns the actual pause for approval; this is a record of it
        if decision.needs_approval:
            self._emit(
                ToolCallNeedsApproval(
                    request_id=ctx.request_id,
                    tool_name=tool_name,
                    reason=decision.reason or "approval required",
                )
            )

        start = time.perf_counter()
        result = await self._execute_with_timeout(tool_name, execute, tool_input)
        duration_ms = (time.perf_counter() - start) * 1000

        self._emit(
            ToolCallExecuted(
                request_id=ctx.request_id,
                tool_name=tool_name,
                duration_ms=duration_ms,
            )
        )
        logger.debug(
            "tool_call_executed",
            tool=tool_name,
            request_id=ctx.request_id,
            duration_ms=round(duration_ms, 2),
        )
        return result

    def _check_budget(self, tool_name: str) -> None:
        """Count this call and enforce the request's call and time budgets."""
        ctx = self.ctx

        # record_call() is atomic; the increment stays even when rejected
        calls_made = ctx.record_call()
        if calls_made > ctx.max_calls:
            error: CallBudgetExceededError | DurationBudgetExceededError = CallBudgetExceededError(
                tool=tool_name,
                request_id=ctx.request_id,
                calls_made=calls_made,
                max_calls=ctx.max_calls,
            )
            self._budget_exceeded(tool_name, error.reason)
            raise error

        if ctx.max_duration_ms is not None:
            elapsed_ms = ctx.elapsed_ms()
            if elapsed_ms > ctx.max_duration_ms:
                error = DurationBudgetExceededError(
                    tool=tool_name,
                    request_id=ctx.request_id,
                    elapsed_ms=elapsed_ms,
                    max_duration_ms=ctx.max_duration_ms,
                )
                self._budget_exceeded(tool_name, error.reason)
                raise error

    def _budget_exceeded(self, tool_name: str, reason: str) -> None:
        logger.info(
            "budget_exceeded",
            tool=tool_name,
            request_id=self.ctx.request_id,
            reason=reason,
        )
        self._emit(
            BudgetExceeded(
                request_id=self.ctx.request_id,
                tool_name=tool_name,
                reason=reason,
            )
        )

    def _block(self, tool_name: str, reason: str) -> None:
        logger.info(
            "tool_call_blocked",
            tool=tool_name,
            request_id=self.ctx.request_id,
            reason=reason,
        )
        self._emit(
            ToolCallBlocked(
                request_id=self.ctx.request_id,
                tool_name=tool_name,
                reason=reason,
            )
        )

    async def _execute_with_timeout(
        self,
        tool_name: str,
        execute: ExecuteFn,
        tool_input: Any,
    ) -> Any:
        """
        Race execute against the per-call timer.

        On timeout the task is sent a cancellation request and abandoned:
        nothing waits for it to stop, and a sync tool keeps running in its
        worker thread. The outcome of a timed-out call is unknown.
        """
        task = asyncio.ensure_future(_call(execute, tool_input))
        try:
            done, _ = await asyncio.wait({task}, timeout=self.timeout_ms / 1000)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task in done:
            return task.result()

        task.cancel()
        task.add_done_callback(functools.partial(_reap_abandoned, tool_name))
        logger.warning(
            "tool_call_timeout",
            tool=tool_name,
            request_id=self.ctx.request_id,
            timeout_ms=self.timeout_ms,
        )
        self._emit(
            ToolCallTimeout(
                request_id=self.ctx.request_id,
                tool_name=tool_name,
                timeout_ms=self.timeout_ms,
            )
        )
        raise ToolTimeoutError(
            tool=tool_name,
            timeout_ms=self.timeout_ms,
            request_id=self.ctx.request_id,
        )

    # =========================================================================
    # Audit emission
    # =========================================================================

    def _emit(self, event: AuditEventBase) -> None:
        """Hand an event to the sink; sink failures are logged, never raised."""
        if self.audit is None:
            return
        try:
            result = self.audit.emit(event)
        except Exception:
            logger.warning(
                "audit_sink_failed",
                sink=type(self.audit).__name__,
                event_type=event.type,
                request_id=event.request_id,
                exc_info=True,
            )
            return

        if inspect.isawaitable(result):
            future = asyncio.ensure_future(result)
            self._pending.add(future)
            future.add_done_callback(self._sink_done)

    def _sink_done(self, future: "asyncio.Future[Any]") -> None:
        self._pending.discard(future)
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.warning(
                "audit_sink_failed",
                sink=type(self.audit).__name__,
                error=str(error),
            )

    async def drain(self) -> None:
        """Wait for background sink writes scheduled so far to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # =========================================================================
    # Interception wrapper
    # =========================================================================

    def wrap_capability(self, tool_name: str, capability: Capability) -> Capability:
        """
        Return a guarded copy of one capability.

        The description and input schema are kept. A declared needs_approval
        is kept; otherwise one is synthesized from the policy. execute (if
        any) is routed through invoke().
        """
        needs_approval = capability.needs_approval
        if needs_approval is None:

            async def needs_approval(tool_input: Any) -> bool:
                return await self.needs_approval(tool_name, tool_input)

        execute = None
        if capability.execute is not None:
            original = capability.execute

            async def execute(tool_input: Any) -> Any:
                return await self.invoke(tool_name, original, tool_input)

        return dataclasses.replace(capability, needs_approval=needs_approval, execute=execute)

    def wrap(self, tools: Mapping[str, Capability]) -> Toolset:
        """Return a guarded copy of every capability in tools."""
        return Toolset({name: self.wrap_capability(name, cap) for name, cap in tools.items()})

    def __repr__(self) -> str:
        return (
            f"<GuardPipeline: request={self.ctx.request_id}, "
            f"policy={self.policy!r}, timeout_ms={self.timeout_ms}>"
        )


async def _call(execute: ExecuteFn, tool_input: Any) -> Any:
    """Run execute, in a worker thread unless it is a coroutine function."""
    if inspect.iscoroutinefunction(execute):
        return await execute(tool_input)
    result = await asyncio.to_thread(execute, tool_input)
    if inspect.isawaitable(result):
        result = await result
    return result


def _reap_abandoned(tool_name: str, task: "asyncio.Future[Any]") -> None:
    """Retrieve the outcome of a timed-out task so it is never left unobserved."""
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.info("abandoned_tool_call_failed", tool=tool_name, error=str(error))


def guard_tools(
    tools: Mapping[str, Capability],
    policy: GuardPolicy,
    ctx: GuardContext | None = None,
    audit: AuditSink | Sequence[AuditSink] | None = None,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    redactor: Redact | None = None,
) -> Toolset:
    """
    Wrap a toolset with policy, budget, timeout and audit enforcement.

    Usage:
        tools = guard_tools(
            host_tools,
            policy=create_simple_policy(require_approval_for_risk=["write", "admin"]),
            audit=ConsoleAuditSink(),
            timeout_ms=10_000,
        )
    """
    pipeline = GuardPipeline(
        policy=policy,
        ctx=ctx,
        audit=audit,
        timeout_ms=timeout_ms,
        redactor=redactor,
    )
    return pipeline.wrap(tools)


def guarded(
    pipeline: GuardPipeline,
    name: str | None = None,
) -> Callable[[ExecuteFn], Callable[[Any], Any]]:
    """
    Decorator that routes a single-input function through a pipeline.

    Usage:
        @guarded(pipeline)
        def send_email(message):
            ...

        await send_email({"to": "ops@example.com"})
    """

    def decorator(fn: ExecuteFn) -> Callable[[Any], Any]:
        tool_name = name or fn.__name__

        @functools.wraps(fn)
        async def wrapper(tool_input: Any) -> Any:
            return await pipeline.invoke(tool_name, fn, tool_input)

        return wrapper

    return decorator
