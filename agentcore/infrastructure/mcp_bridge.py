"""MCP Bridge — exposes tools of external MCP servers as registry entries.

Invariants:
    - One MCPToolProvider per configured stdio server; connect() before tool_entries()
    - allowed_tools filters what is exposed; None exposes everything the server lists
    - Exposed names are prefixed `mcp_<server>_` and restricted to [A-Za-z0-9_-]{1,64}
    - MCP tools are sensitive by default (the agent cannot inspect what they do)
    - A result flagged isError becomes a failed ToolResult, never an exception

Design Decisions:
    - AsyncExitStack owns the stdio transport and ClientSession lifetimes
    - The bridge returns (ToolInfo, handler) pairs; services/ does the registering,
      so infrastructure never imports the registry
"""

import logging
import os
import re
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client

from agentcore.core.domain_types import ToolCallStatus
from agentcore.core.errors import ToolExecutionError
from agentcore.core.tool_types import ExecutionContext, ToolInfo, ToolResult

logger = logging.getLogger(__name__)

_NAME_UNSAFE = re.compile(r"[^A-Za-z0-9_-]")

McpHandler = Callable[[ExecutionContext, dict], Awaitable[ToolResult]]


@dataclass
class MCPServerConfig:
    name: str
    command: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    allowed_tools: list[str] | None = None
    sensitive: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MCPServerConfig":
        return cls(
            name=data["name"],
            command=data["command"],
            args=list(data.get("args", [])),
            env=dict(data.get("env", {})),
            allowed_tools=data.get("allowed_tools"),
            sensitive=bool(data.get("sensitive", True)),
        )


class MCPToolProvider:
    """Wraps one MCP server connection as a source of tools."""

    def __init__(self, config: MCPServerConfig) -> None:
        self.config = config
        self._stack: AsyncExitStack | None = None
        self._session: Any = None

    @property
    def connected(self) -> bool:
        return self._session is not None

    async def connect(self) -> None:
        """Spawn the server process and initialize the MCP session."""
        params = StdioServerParameters(
            command=self.config.command,
            args=self.config.args,
            env=_resolve_env(self.config.env) or None,
        )
        logger.info(
            f"Connecting to MCP server '{self.config.name}': "
            f"{self.config.command} {' '.join(self.config.args)}",
        )
        stack = AsyncExitStack()
        try:
            read, write = await stack.enter_async_context(stdio_client(params))
            session = await stack.enter_async_context(ClientSession(read, write))
            await session.initialize()
        except BaseException:
            await stack.aclose()
            raise
        self._stack = stack
        self._session = session
        logger.info(f"Connected to MCP server '{self.config.name}'")

    async def disconnect(self) -> None:
        if self._stack is not None:
            await self._stack.aclose()
        self._stack = None
        self._session = None
        logger.info(f"Disconnected from MCP server '{self.config.name}'")

    async def tool_entries(self) -> list[tuple[ToolInfo, McpHandler]]:
        """List the server's tools (allow-list applied) as registry entries."""
        self._require_session()
        response = await self._session.list_tools()
        entries = []
        for tool in response.tools:
            allowed = self.config.allowed_tools
            if allowed is not None and tool.name not in allowed:
                continue
            info = ToolInfo(
                name=exposed_name(self.config.name, tool.name),
                description=(
                    getattr(tool, "description", None)
                    or f"Tool '{tool.name}' from MCP server '{self.config.name}'"
                ),
                parameters=getattr(tool, "inputSchema", None) or {
                    "type": "object", "properties": {},
                },
                sensitive=self.config.sensitive,
            )
            entries.append((info, self._make_handler(tool.name)))
        return entries

    def _make_handler(self, remote_name: str) -> McpHandler:
        async def handle(context: ExecutionContext, args: dict) -> ToolResult:
            self._require_session()
            result = await self._session.call_tool(remote_name, args)
            text = _render_content(getattr(result, "content", []) or [])
            if getattr(result, "isError", False):
                logger.warning(
                    f"MCP tool '{remote_name}' reported an error",
                    extra={
                        "tool_name": remote_name,
                        "session_id": context.session_id,
                    },
                )
                return ToolResult(
                    ToolCallStatus.FAILED, text or "MCP tool reported an error",
                    error_code="MCP_TOOL_ERROR",
                )
            return ToolResult.ok(text)
        return handle

    def _require_session(self) -> None:
        if self._session is None:
            raise ToolExecutionError(
                f"Not connected to MCP server '{self.config.name}'",
                code="MCP_NOT_CONNECTED",
            )


def exposed_name(server: str, tool: str) -> str:
    return _NAME_UNSAFE.sub("_", f"mcp_{server}_{tool}")[:64]


def _render_content(content: list) -> str:
    parts = []
    for item in content:
        if getattr(item, "type", "") == "text":
            parts.append(item.text)
        else:
            parts.append(f"[{getattr(item, 'type', 'unknown')} content]")
    return "\n".join(parts)


def _resolve_env(env: dict[str, str]) -> dict[str, str]:
    """Expand `${VAR}` values from the current environment."""
    resolved = {}
    for key, value in env.items():
        if value.startswith("${") and value.endswith("}"):
            resolved[key] = os.environ.get(value[2:-1], "")
        else:
            resolved[key] = value
    return resolved
