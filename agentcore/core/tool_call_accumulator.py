"""Streaming tool-call accumulator.

Providers deliver tool-call arguments split across ToolCallArgDelta events.
Fragments are buffered per call id; a call is finalized on its ToolCallEnd and
the finalized list keeps ToolCallEnd arrival order, which is dispatch order.

Argument parsing is NOT done here: raw arguments stay opaque until dispatch
validates them against the tool schema.
"""

from agentcore.core.domain_types import ErrorKind
from agentcore.core.errors import FatalProviderError
from agentcore.core.messages import ToolCall


class ToolCallAccumulator:
    """Accumulate streamed tool-call fragments into ToolCall objects."""

    def __init__(self) -> None:
        self._names: dict[str, str] = {}
        self._buffers: dict[str, list[str]] = {}
        self._finished: list[ToolCall] = []
        self._seen: set[str] = set()

    def start(self, call_id: str, name: str) -> None:
        if call_id in self._seen:
            raise FatalProviderError(
                f"duplicate tool call id '{call_id}' in stream",
                ErrorKind.PARSE_ERROR,
            )
        self._seen.add(call_id)
        self._names[call_id] = name
        self._buffers[call_id] = []

    def add_fragment(self, call_id: str, fragment: str) -> None:
        if call_id not in self._buffers:
            raise FatalProviderError(
                f"argument fragment for unknown tool call '{call_id}'",
                ErrorKind.PARSE_ERROR,
            )
        if fragment:
            self._buffers[call_id].append(fragment)

    def end(self, call_id: str) -> ToolCall:
        if call_id not in self._buffers:
            raise FatalProviderError(
                f"end of unknown tool call '{call_id}'",
                ErrorKind.PARSE_ERROR,
            )
        call = ToolCall(
            id=call_id,
            name=self._names.pop(call_id),
            raw_arguments="".join(self._buffers.pop(call_id)),
        )
        self._finished.append(call)
        return call

    @property
    def finished(self) -> list[ToolCall]:
        return list(self._finished)

    @property
    def open_ids(self) -> list[str]:
        return list(self._buffers)

    def reset(self) -> None:
        """Discard everything from an abandoned provider attempt."""
        self._names.clear()
        self._buffers.clear()
        self._finished.clear()
        self._seen.clear()
