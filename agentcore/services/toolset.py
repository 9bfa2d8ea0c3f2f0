"""Toolset — explicit wiring of built-in tools, MCP tools and the agent runner.

Invariants:
    - Every tool -> handler mapping is visible in _builtin_handlers(); adding a
      tool requires editing that dict
    - The registry is frozen before the runner sees it
    - The agent tool is bound to the runner it belongs to (nested turns reuse it)
"""

from typing import Iterable

import httpx

from agentcore.core.repository_protocols import HistoryRecorder, PermissionGate, ToolHandler
from agentcore.core.tool_types import ToolInfo
from agentcore.infrastructure.providers.base import ProviderClient
from agentcore.services.agent_runner import AgentRunner
from agentcore.services.define_agent_tools import TOOLS_AGENT
from agentcore.services.define_file_tools import TOOLS_FILE
from agentcore.services.define_shell_tools import TOOLS_SHELL
from agentcore.services.handle_agent import AgentHandlers
from agentcore.services.handle_file_tools import FileHandlers
from agentcore.services.handle_shell_tools import ShellHandlers
from agentcore.services.tools_registry import ToolRegistry

BUILTIN_TOOLS: list[ToolInfo] = [*TOOLS_FILE, *TOOLS_SHELL, *TOOLS_AGENT]


def _builtin_handlers(
    files: FileHandlers, shell: ShellHandlers, agent: AgentHandlers,
) -> dict[str, ToolHandler]:
    return {
        # Files (read-only)
        "ls": files.ls,
        "view": files.view,
        "glob": files.glob,
        "grep": files.grep,

        # Files (sensitive, mutating)
        "write": files.write,
        "edit": files.edit,
        "delete_file": files.delete_file,

        # Process / network (sensitive)
        "bash": shell.bash,
        "fetch": shell.fetch,

        # Recursive agent-as-tool
        "agent": agent.agent,
    }


def build_registry(
    *,
    bash_timeout_seconds: float = 120,
    fetch_transport: httpx.AsyncBaseTransport | None = None,
    extra_tools: Iterable[tuple[ToolInfo, ToolHandler]] = (),
) -> tuple[ToolRegistry, AgentHandlers]:
    """Register built-ins then extra (e.g. MCP) tools; returns the frozen registry."""
    agent = AgentHandlers()
    handlers = _builtin_handlers(
        FileHandlers(),
        ShellHandlers(bash_timeout_seconds, transport=fetch_transport),
        agent,
    )
    registry = ToolRegistry()
    for info in BUILTIN_TOOLS:
        registry.register(info, handlers[info.name])
    for info, handler in extra_tools:
        registry.register(info, handler)
    registry.freeze()
    return registry, agent


def build_agent_runner(
    provider: ProviderClient,
    permission_gate: PermissionGate,
    history: HistoryRecorder | None = None,
    *,
    bash_timeout_seconds: float = 120,
    fetch_transport: httpx.AsyncBaseTransport | None = None,
    extra_tools: Iterable[tuple[ToolInfo, ToolHandler]] = (),
    **runner_options,
) -> AgentRunner:
    """Registry + runner with the agent tool bound. runner_options go to AgentRunner."""
    registry, agent = build_registry(
        bash_timeout_seconds=bash_timeout_seconds,
        fetch_transport=fetch_transport,
        extra_tools=extra_tools,
    )
    runner = AgentRunner(provider, registry, permission_gate, history, **runner_options)
    agent.bind(runner)
    return runner
