"""Provider Events — normalized representation of vendor streaming output.

Invariants:
    - Every provider variant emits only these types, in vendor emission order
    - A stream ends with exactly one Completed or one non-retryable Failed,
      unless the caller cancelled it (then it just stops)
    - Failed(retryable=True) is never terminal: it announces that the current
      attempt was abandoned and a fresh attempt follows
"""

from dataclasses import dataclass
from typing import Literal, Union

from agentcore.core.domain_types import ErrorKind


@dataclass(frozen=True)
class TextDelta:
    text: str
    type: Literal["text_delta"] = "text_delta"


@dataclass(frozen=True)
class ToolCallStart:
    id: str
    name: str
    type: Literal["tool_call_start"] = "tool_call_start"


@dataclass(frozen=True)
class ToolCallArgDelta:
    id: str
    fragment: str
    type: Literal["tool_call_arg_delta"] = "tool_call_arg_delta"


@dataclass(frozen=True)
class ToolCallEnd:
    id: str
    type: Literal["tool_call_end"] = "tool_call_end"


@dataclass(frozen=True)
class UsageReport:
    input_tokens: int
    output_tokens: int
    cost: float = 0.0
    type: Literal["usage"] = "usage"


@dataclass(frozen=True)
class Completed:
    finish_reason: str
    type: Literal["completed"] = "completed"


@dataclass(frozen=True)
class Failed:
    error_kind: ErrorKind
    retryable: bool
    message: str = ""
    type: Literal["failed"] = "failed"


ProviderEvent = Union[
    TextDelta,
    ToolCallStart,
    ToolCallArgDelta,
    ToolCallEnd,
    UsageReport,
    Completed,
    Failed,
]
