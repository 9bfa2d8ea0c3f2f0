"""Agent Handler — recursive agent-as-tool.

Invariants:
    - Refused with NESTING_DEPTH_EXCEEDED once context.depth reaches max_depth
    - The nested loop gets an isolated Session (no history, no permission grants)
      but the same registry, provider and Permission Gate, and the parent's
      CancelSignal
    - Nested usage is returned in ToolResult.usage and rolled into the parent
    - Nested cancellation re-raises CancellationRequested; a nested error is a
      failed tool result
    - Only permission_request events of the nested turn reach the parent's caller
"""

import logging

from agentcore.core.domain_types import ToolCallStatus, TurnOutcome
from agentcore.core.errors import (
    CancellationRequested,
    ErrorContext,
    NestingDepthExceededError,
    ToolExecutionError,
)
from agentcore.core.session_state import Session
from agentcore.core.tool_types import ExecutionContext, ToolResult, UsageDelta

logger = logging.getLogger(__name__)


class AgentHandlers:
    """Runs nested agent turns. bind() attaches the runner after construction."""

    def __init__(self) -> None:
        self._runner = None

    def bind(self, runner) -> None:
        self._runner = runner

    async def agent(self, context: ExecutionContext, input_data: dict) -> ToolResult:
        if context.depth >= context.max_depth:
            raise NestingDepthExceededError(
                context.max_depth,
                ErrorContext(session_id=context.session_id, tool_name="agent"),
            )
        if self._runner is None:
            raise ToolExecutionError("Agent tool is not bound to a runner")

        prompt = input_data["prompt"]
        nested = Session(
            model=self._runner.provider.config.model,
            title=f"sub-agent of {context.session_id}",
        )
        logger.info(
            f"Starting nested agent at depth {context.depth + 1}",
            extra={"session_id": context.session_id, "depth": context.depth + 1},
        )
        result = await self._runner.run_turn(
            nested, prompt,
            cancel=context.cancel,
            on_event=_forward_permission_requests(context),
            depth=context.depth + 1,
        )
        usage = UsageDelta(
            nested.usage.input_tokens, nested.usage.output_tokens, nested.usage.cost,
        )

        if result.status == TurnOutcome.CANCELLED:
            raise CancellationRequested(context.cancel.reason or "cancelled")
        if result.status == TurnOutcome.ERRORED:
            message = result.error.message if result.error else "sub-agent failed"
            return ToolResult(
                ToolCallStatus.FAILED,
                {"status": "error", "error_code": "SUBAGENT_FAILED", "message": message},
                error_code="SUBAGENT_FAILED",
                usage=usage,
            )
        return ToolResult.ok(
            result.final_text or "(sub-agent finished without a final answer)",
            usage=usage,
        )


def _forward_permission_requests(context: ExecutionContext):
    parent_emit = context.emit
    if parent_emit is None:
        return None

    def forward(event: dict) -> None:
        if event.get("type") == "permission_request":
            parent_emit(event)
    return forward
