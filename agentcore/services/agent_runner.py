"""Agent Runner — the agent loop: stream, dispatch tools, repeat.

States: idle -> streaming -> (dispatching_tools -> streaming)* -> completed | cancelled | errored

Invariants:
    - One turn per Session at a time (Session.begin_turn raises ConcurrencyError)
    - Failed(retryable=True) discards the current attempt's text and tool calls
      (full-discard-and-restart); callers get a stream_reset event
    - Tool calls dispatch sequentially in ToolCallEnd order; each executed call
      appends exactly one tool Message; tool errors never end the turn
    - Only fatal provider errors, the iteration limit and cancellation end a turn
      from outside the model; partial assistant text is kept in every case
    - No tool Message is appended for a call that never started
    - session.finish_turn() runs exactly once per started turn

Design Decisions:
    - Each provider call runs as one task under CancelSignal.race(): cancellation
      interrupts it wherever it is suspended (stream read, backoff sleep)
    - run_turn() is the primary API returning TurnResult; run() adapts it to an
      async generator for the SSE route via an asyncio.Queue
    - Nested agents (agent tool) call run_turn() on a fresh Session with depth+1
"""

import asyncio
import logging
from contextlib import aclosing
from dataclasses import dataclass
from typing import AsyncIterator, Callable

from agentcore.core.cancellation import CancelSignal
from agentcore.core.context_compaction import (
    SUMMARY_INSTRUCTIONS,
    build_summary_message,
    should_summarize,
    split_for_summary,
    splice_summary,
)
from agentcore.core.domain_types import (
    ErrorKind,
    LoopState,
    ToolCallStatus,
    TurnOutcome,
)
from agentcore.core.errors import (
    AgentCoreError,
    AgentLoopExceededError,
    CancellationRequested,
    ConcurrencyError,
    ErrorCategory,
    ErrorContext,
    ErrorSeverity,
    FatalProviderError,
)
from agentcore.core.events import (
    Completed,
    Failed,
    ProviderEvent,
    TextDelta,
    ToolCallArgDelta,
    ToolCallEnd,
    ToolCallStart,
    UsageReport,
)
from agentcore.core.messages import (
    ToolCall,
    ToolResultPart,
    assistant_message,
    tool_message,
    user_message,
)
from agentcore.core.repository_protocols import HistoryRecorder, PermissionGate
from agentcore.core.session_state import Session
from agentcore.core.tool_types import ExecutionContext, ToolResult
from agentcore.infrastructure.providers.base import ProviderClient
from agentcore.services.agent_runner_helpers import (
    StepProgress,
    context_usage_event,
    done_event,
    permission_request_event,
    stream_reset_event,
    text_event,
    tool_call_event,
    tool_result_event,
    unexpected_error_event,
)
from agentcore.services.permission_broker import PermissionBroker
from agentcore.services.tool_dispatch import ToolDispatch
from agentcore.services.tools_registry import ToolRegistry

logger = logging.getLogger(__name__)

EventSink = Callable[[dict], None]

_END = object()

_TERMINAL_STATES = {
    TurnOutcome.COMPLETED: LoopState.COMPLETED,
    TurnOutcome.CANCELLED: LoopState.CANCELLED,
    TurnOutcome.ERRORED: LoopState.ERRORED,
}


def _discard(event: dict) -> None:
    return None


@dataclass
class TurnResult:
    status: TurnOutcome
    session: Session
    error: AgentCoreError | None = None
    final_text: str = ""


class AgentRunner:
    """Drives one Session through provider calls and tool dispatch."""

    MAX_ITERATIONS = 50

    def __init__(
        self,
        provider: ProviderClient,
        registry: ToolRegistry,
        permission_gate: PermissionGate,
        history: HistoryRecorder | None = None,
        *,
        system_prompt: str | None = None,
        working_dir: str = ".",
        max_iterations: int = MAX_ITERATIONS,
        max_depth: int = 2,
        auto_summarize_ratio: float = 0.0,
        summary_keep_last_n: int = 6,
    ):
        self.provider = provider
        self.registry = registry
        self.permission_gate = permission_gate
        self.dispatch = ToolDispatch(registry, permission_gate, history)
        self.system_prompt = system_prompt
        self.working_dir = working_dir
        self.max_iterations = max_iterations
        self.max_depth = max_depth
        self.auto_summarize_ratio = auto_summarize_ratio
        self.summary_keep_last_n = summary_keep_last_n

    # ── Public API ──────────────────────────────────────────────

    async def run_turn(
        self,
        session: Session,
        user_text: str,
        cancel: CancelSignal | None = None,
        on_event: EventSink | None = None,
        *,
        depth: int = 0,
    ) -> TurnResult:
        """Run one user turn to a terminal status.

        Raises ConcurrencyError if the session already has an active turn;
        every other failure is reported through TurnResult.
        """
        cancel = cancel or CancelSignal()
        emit = on_event or _discard
        if session.is_running:
            raise ConcurrencyError(
                f"Session {session.id} already has an active turn",
                ErrorContext(session_id=session.id),
            )
        await self._maybe_auto_summarize(session, cancel)

        session.begin_turn()
        log_extra = {"session_id": session.id, "depth": depth}
        logger.info("Turn started", extra=log_extra)
        unsubscribe = self._subscribe_permissions(session.id, emit, depth)
        progress = StepProgress()
        pending: list[ToolCall] = []
        context = ExecutionContext(
            session_id=session.id,
            cancel=cancel,
            working_dir=self.working_dir,
            depth=depth,
            max_depth=self.max_depth,
            permission_grants=session.permission_grants,
            emit=emit,
        )

        try:
            session.append(user_message(user_text, step=session.next_step()))
            final_text = await self._iterate(session, context, progress, pending, emit)
        except CancellationRequested:
            self._keep_partial_text(session, progress)
            for call in [*pending, *progress.calls.finished]:
                if not call.status.terminal:
                    call.transition(ToolCallStatus.CANCELLED)
            return self._finish(session, progress, TurnOutcome.CANCELLED, emit, log_extra)
        except AgentCoreError as e:
            self._keep_partial_text(session, progress)
            logger.error(
                f"Turn failed: {e.message}",
                extra={**log_extra, "error_code": e.code},
            )
            emit(e.to_sse_event())
            return self._finish(
                session, progress, TurnOutcome.ERRORED, emit, log_extra, error=e,
            )
        except asyncio.CancelledError:
            self._keep_partial_text(session, progress)
            session.finish_turn(TurnOutcome.CANCELLED)
            raise
        except Exception as e:
            self._keep_partial_text(session, progress)
            logger.error(
                f"Unexpected error in agent runner: {e}", exc_info=True, extra=log_extra,
            )
            emit(unexpected_error_event())
            error = AgentCoreError(
                str(e), "INTERNAL_ERROR", ErrorCategory.INTERNAL,
                ErrorSeverity.CRITICAL, ErrorContext(session_id=session.id),
            )
            return self._finish(
                session, progress, TurnOutcome.ERRORED, emit, log_extra, error=error,
            )
        finally:
            unsubscribe()

        return self._finish(
            session, progress, TurnOutcome.COMPLETED, emit, log_extra,
            final_text=final_text,
        )

    async def run(
        self,
        session: Session,
        user_text: str,
        cancel: CancelSignal | None = None,
    ) -> AsyncIterator[dict]:
        """Async generator form of run_turn() yielding caller events.

        Closing the generator early cancels the turn.
        """
        cancel = cancel or CancelSignal()
        queue: asyncio.Queue = asyncio.Queue()
        task = asyncio.create_task(
            self.run_turn(session, user_text, cancel, queue.put_nowait),
        )
        task.add_done_callback(lambda _: queue.put_nowait(_END))
        try:
            while True:
                event = await queue.get()
                if event is _END:
                    break
                yield event
            task.result()
        finally:
            if not task.done():
                cancel.cancel("event stream closed")
                await asyncio.gather(task, return_exceptions=True)

    async def summarize(
        self,
        session: Session,
        keep_last_n: int | None = None,
        cancel: CancelSignal | None = None,
    ) -> bool:
        """Replace older history with one summary Message. Between turns only.

        Returns False when there was nothing to summarize.
        """
        if session.is_running:
            raise ConcurrencyError(
                f"Cannot summarize session {session.id} during a turn",
                ErrorContext(session_id=session.id),
            )
        keep = self.summary_keep_last_n if keep_last_n is None else keep_last_n
        head, tail = split_for_summary(session.messages, keep)
        if not head:
            return False

        text, usage = await self.provider.complete(
            head + [user_message(SUMMARY_INSTRUCTIONS)],
            system=self.system_prompt, cancel=cancel,
        )
        session.add_usage(usage.input_tokens, usage.output_tokens, usage.cost)
        session.replace_history(splice_summary(build_summary_message(text), tail))
        # Prompt size is unknown until the next provider call
        session.usage.last_input_tokens = 0
        logger.info(
            f"Summarized {len(head)} messages, kept {len(tail)}",
            extra={"session_id": session.id},
        )
        return True

    # ── Loop ────────────────────────────────────────────────────

    async def _iterate(
        self,
        session: Session,
        context: ExecutionContext,
        progress: StepProgress,
        pending: list[ToolCall],
        emit: EventSink,
    ) -> str:
        for _ in range(self.max_iterations):
            step = session.next_step()
            progress.reset()
            progress.state = LoopState.STREAMING
            await context.cancel.race(
                self._stream_step(session, progress, context.cancel, emit),
            )

            calls = progress.calls.finished
            if progress.calls.open_ids:
                logger.warning(
                    f"Ignoring unfinished tool calls: {progress.calls.open_ids}",
                    extra={"session_id": session.id},
                )
            text = progress.text
            progress.text_parts.clear()
            if text:
                session.append(assistant_message(text, step))
            if not calls:
                return text

            progress.state = LoopState.DISPATCHING_TOOLS
            pending[:] = calls
            for call in calls:
                result = await self.dispatch.execute(call, context)
                self._append_result(session, call, result, step)
                emit(tool_result_event(call, result))
            pending.clear()

        raise AgentLoopExceededError(
            self.max_iterations, ErrorContext(session_id=session.id),
        )

    async def _stream_step(
        self,
        session: Session,
        progress: StepProgress,
        cancel: CancelSignal,
        emit: EventSink,
    ) -> None:
        """Consume one provider stream into `progress`."""
        conversation = list(session.messages)
        stream = self.provider.stream(
            conversation, self.registry.catalog(),
            system=self.system_prompt, cancel=cancel,
        )
        async with aclosing(stream) as events:
            async for event in events:
                if self._apply_event(session, progress, event, emit):
                    return

        cancel.raise_if_cancelled()
        raise FatalProviderError(
            "provider stream ended without a terminal event",
            ErrorKind.PARSE_ERROR, ErrorContext(session_id=session.id),
        )

    def _apply_event(
        self,
        session: Session,
        progress: StepProgress,
        event: ProviderEvent,
        emit: EventSink,
    ) -> bool:
        """Fold one provider event into `progress`. True once the stream completed."""
        if isinstance(event, TextDelta):
            progress.text_parts.append(event.text)
            emit(text_event(event.text))
        elif isinstance(event, ToolCallStart):
            progress.calls.start(event.id, event.name)
        elif isinstance(event, ToolCallArgDelta):
            progress.calls.add_fragment(event.id, event.fragment)
        elif isinstance(event, ToolCallEnd):
            call = progress.calls.end(event.id)
            emit(tool_call_event(call))
        elif isinstance(event, UsageReport):
            session.add_usage(event.input_tokens, event.output_tokens, event.cost)
            emit(context_usage_event(session, self.provider.config.context_window))
        elif isinstance(event, Failed):
            if not event.retryable:
                raise FatalProviderError(
                    event.message or "provider failed", event.error_kind,
                    ErrorContext(session_id=session.id),
                )
            logger.warning(
                f"Discarding partial output of failed attempt: {event.message}",
                extra={"session_id": session.id},
            )
            progress.reset()
            emit(stream_reset_event(event.error_kind.value, event.message))
        elif isinstance(event, Completed):
            progress.finish_reason = event.finish_reason
            return True
        return False

    # ── Helpers ─────────────────────────────────────────────────

    def _append_result(
        self, session: Session, call: ToolCall, result: ToolResult, step: int,
    ) -> None:
        part = ToolResultPart(
            tool_call_id=call.id,
            name=call.name,
            content=result.content_text(),
            status=(
                ToolCallStatus.FAILED if result.is_error else ToolCallStatus.COMPLETED
            ),
            error_code=result.error_code,
        )
        session.append(tool_message(call, part, step))
        if result.usage is not None:
            session.add_usage(
                result.usage.input_tokens, result.usage.output_tokens, result.usage.cost,
            )

    def _keep_partial_text(self, session: Session, progress: StepProgress) -> None:
        text = progress.text
        progress.text_parts.clear()
        if text:
            session.append(assistant_message(text, session.step_counter))

    def _finish(
        self,
        session: Session,
        progress: StepProgress,
        outcome: TurnOutcome,
        emit: EventSink,
        log_extra: dict,
        *,
        error: AgentCoreError | None = None,
        final_text: str = "",
    ) -> TurnResult:
        session.finish_turn(outcome)
        last_state = progress.state
        progress.state = _TERMINAL_STATES[outcome]
        logger.info(
            f"Turn {outcome.value} (while {last_state.value})",
            extra={
                **log_extra,
                "turn_status": session.turn_status.value,
                "input_tokens": session.usage.input_tokens,
                "output_tokens": session.usage.output_tokens,
            },
        )
        emit(done_event(outcome))
        return TurnResult(outcome, session, error, final_text)

    def _subscribe_permissions(
        self, session_id: str, emit: EventSink, depth: int,
    ) -> Callable[[], None]:
        if emit is _discard or not isinstance(self.permission_gate, PermissionBroker):
            return lambda: None
        return self.permission_gate.subscribe(
            session_id,
            lambda req: emit(permission_request_event(req.to_dict(), depth)),
        )

    async def _maybe_auto_summarize(self, session: Session, cancel: CancelSignal) -> None:
        if not should_summarize(
            session.usage.last_input_tokens,
            self.provider.config.context_window,
            self.auto_summarize_ratio,
        ):
            return
        try:
            await self.summarize(session, cancel=cancel)
        except CancellationRequested:
            # The turn observes the same signal at its first suspension point
            return
        except AgentCoreError as e:
            logger.warning(
                f"Auto-summarize failed, continuing with full history: {e.message}",
                extra={"session_id": session.id, "error_code": e.code},
            )
