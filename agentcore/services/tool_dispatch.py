"""Tool Dispatch — validate, authorize and execute one finalized ToolCall.

Invariants:
    - execute() never raises except CancellationRequested: every failure is a
      failed ToolResult the model can read
    - Unknown tool -> UNKNOWN_TOOL; bad JSON or schema mismatch -> VALIDATION_ERROR
    - A sensitive tool without a session grant waits on the Permission Gate;
      deny -> PERMISSION_DENIED and the handler never runs
    - allow_for_session stores the grant so later calls of that tool skip the gate
    - Successful mutating tools notify the HistoryRecorder once per FileChange
    - Permission waits and handlers run under the turn's CancelSignal; a
      non-interruptible handler is allowed to finish and its result is discarded

Design Decisions:
    - ToolCall.transition() enforces the lifecycle; dispatch only requests moves
    - History failures are logged, never turned into tool failures
"""

import dataclasses
import json
import logging
from typing import Any

from jsonschema import Draft7Validator

from agentcore.core.domain_types import PermissionDecision, ToolCallStatus
from agentcore.core.errors import (
    AgentCoreError,
    CancellationRequested,
    ErrorContext,
    PermissionDeniedError,
    ToolExecutionError,
    ToolNotFoundError,
    ToolValidationError,
)
from agentcore.core.messages import ToolCall
from agentcore.core.repository_protocols import HistoryRecorder, PermissionGate
from agentcore.core.tool_types import ExecutionContext, ToolResult
from agentcore.services.tools_registry import ToolRegistry

logger = logging.getLogger(__name__)


class ToolDispatch:
    """Routes a ToolCall through lookup, validation, permission and handler."""

    def __init__(
        self,
        registry: ToolRegistry,
        permission_gate: PermissionGate,
        history: HistoryRecorder | None = None,
    ):
        self.registry = registry
        self.permission_gate = permission_gate
        self.history = history

    async def execute(self, call: ToolCall, context: ExecutionContext) -> ToolResult:
        """Run one call to a terminal status. Returns the result fed back to the model."""
        log_extra = {
            "session_id": context.session_id,
            "tool_name": call.name,
            "tool_call_id": call.id,
            "depth": context.depth,
        }
        err_ctx = ErrorContext(
            session_id=context.session_id, tool_name=call.name, tool_call_id=call.id,
        )

        entry = self.registry.get(call.name)
        if entry is None:
            return self._fail(call, ToolNotFoundError(call.name, err_ctx), log_extra)

        try:
            args = parse_arguments(call.raw_arguments, err_ctx)
            validate_arguments(entry.validator, args, err_ctx)
        except ToolValidationError as e:
            return self._fail(call, e, log_extra)

        info = entry.info
        try:
            if info.sensitive and info.name not in context.permission_grants:
                call.transition(ToolCallStatus.PERMISSION_WAIT)
                decision = await context.cancel.race(
                    self.permission_gate.request(
                        info.name, info.action_description(args), context.session_id,
                    ),
                )
                if decision == PermissionDecision.DENY:
                    return self._fail(
                        call, PermissionDeniedError(info.name, err_ctx), log_extra,
                    )
                if decision == PermissionDecision.ALLOW_FOR_SESSION:
                    context.permission_grants.add(info.name)

            call.transition(ToolCallStatus.RUNNING)
            logger.info(f"Running tool '{info.name}'", extra=log_extra)
            call_context = dataclasses.replace(context, tool_call_id=call.id)
            result = await context.cancel.race(
                entry.handler(call_context, args), interrupt=info.interruptible,
            )
        except CancellationRequested:
            call.transition(ToolCallStatus.CANCELLED)
            logger.info(f"Tool '{info.name}' cancelled", extra=log_extra)
            raise
        except AgentCoreError as e:
            return self._fail(call, e, log_extra)
        except Exception as e:
            logger.error(
                f"Tool '{info.name}' raised: {e}", exc_info=True, extra=log_extra,
            )
            return self._fail(call, ToolExecutionError(str(e), context=err_ctx), log_extra)

        if result.is_error:
            call.transition(ToolCallStatus.FAILED)
            logger.warning(
                f"Tool '{info.name}' failed",
                extra={**log_extra, "error_code": result.error_code},
            )
            return result

        call.transition(ToolCallStatus.COMPLETED)
        if info.mutates_files and self.history is not None:
            await self._record_history(result, log_extra)
        return result

    def _fail(
        self, call: ToolCall, error: AgentCoreError, log_extra: dict,
    ) -> ToolResult:
        call.transition(ToolCallStatus.FAILED)
        logger.warning(
            f"Tool '{call.name}' failed: {error.message}",
            extra={**log_extra, "error_code": error.code},
        )
        return ToolResult.from_error(error)

    async def _record_history(self, result: ToolResult, log_extra: dict) -> None:
        for change in result.file_changes:
            try:
                await self.history.record(change.path, change.before, change.after)
            except Exception as e:
                logger.warning(
                    f"Failed to record history for '{change.path}': {e}",
                    extra=log_extra,
                )


def parse_arguments(raw: str, context: ErrorContext | None = None) -> dict[str, Any]:
    """Parse raw streamed arguments. Empty input means no arguments."""
    if not raw or not raw.strip():
        return {}
    try:
        args = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ToolValidationError(
            f"Arguments are not valid JSON: {e.msg} at position {e.pos}",
            context=context,
        ) from e
    if not isinstance(args, dict):
        raise ToolValidationError(
            "Arguments must be a JSON object", context=context,
        )
    return args


def validate_arguments(
    validator: Draft7Validator, args: dict, context: ErrorContext | None = None,
) -> None:
    errors = sorted(validator.iter_errors(args), key=lambda e: list(e.path))
    if not errors:
        return
    first = errors[0]
    field_path = ".".join(str(p) for p in first.path) or None
    details = "; ".join(
        f"{'.'.join(str(p) for p in e.path) or '<root>'}: {e.message}"
        for e in errors[:5]
    )
    raise ToolValidationError(
        f"Arguments do not match the tool schema: {details}",
        field=field_path, context=context,
    )
