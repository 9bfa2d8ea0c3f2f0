"""Tools Registry — name -> (ToolInfo, handler, compiled validator).

Invariants:
    - Names are unique; a duplicate register() raises ValueError
    - Parameter schemas are checked as Draft 7 at registration, never at dispatch
    - freeze() ends the startup window: later register() calls raise
    - catalog() preserves registration order (the model sees a stable tool list)

Design Decisions:
    - Explicit registration calls from toolset.build_registry(): no auto-discovery
    - Validator compiled once per tool and reused by ToolDispatch
"""

from dataclasses import dataclass

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError

from agentcore.core.repository_protocols import ToolHandler
from agentcore.core.tool_types import ToolInfo


@dataclass(frozen=True)
class RegisteredTool:
    info: ToolInfo
    handler: ToolHandler
    validator: Draft7Validator


class ToolRegistry:
    """Static catalog of tools available to the Agent Loop."""

    def __init__(self) -> None:
        self._tools: dict[str, RegisteredTool] = {}
        self._frozen = False

    def register(self, info: ToolInfo, handler: ToolHandler) -> None:
        if self._frozen:
            raise ValueError(
                f"Registry is frozen; cannot register '{info.name}' after startup",
            )
        if info.name in self._tools:
            raise ValueError(f"Tool '{info.name}' is already registered")
        try:
            Draft7Validator.check_schema(info.parameters)
        except SchemaError as e:
            raise ValueError(
                f"Invalid parameter schema for tool '{info.name}': {e.message}",
            ) from e
        self._tools[info.name] = RegisteredTool(
            info, handler, Draft7Validator(info.parameters),
        )

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def lookup(self, name: str) -> ToolInfo | None:
        entry = self._tools.get(name)
        return entry.info if entry else None

    def get(self, name: str) -> RegisteredTool | None:
        return self._tools.get(name)

    def handler(self, name: str) -> ToolHandler | None:
        entry = self._tools.get(name)
        return entry.handler if entry else None

    def catalog(self) -> list[ToolInfo]:
        return [entry.info for entry in self._tools.values()]

    def names(self) -> list[str]:
        return list(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
