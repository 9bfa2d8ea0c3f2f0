"""Shell Tool Schemas — bash and fetch. Both are sensitive."""

from agentcore.core.tool_types import ToolInfo


def _describe_bash(args: dict) -> str:
    return f"Run shell command: {args.get('command', '')}"


def _describe_fetch(args: dict) -> str:
    return f"Fetch URL: {args.get('url', '')}"


BASH_TOOL = ToolInfo(
    name="bash",
    description=(
        "Runs a shell command in the working directory and returns combined "
        "stdout/stderr plus the exit code. Long-running commands are killed "
        "after the timeout."
    ),
    parameters={
        "type": "object",
        "properties": {
            "command": {"type": "string", "minLength": 1},
            "timeout": {
                "type": "integer", "minimum": 1, "maximum": 600,
                "description": "Seconds before the command is killed.",
            },
        },
        "required": ["command"],
        "additionalProperties": False,
    },
    sensitive=True,
    interruptible=True,
    describe_action=_describe_bash,
)

FETCH_TOOL = ToolInfo(
    name="fetch",
    description="Downloads a URL over HTTP(S) and returns the response body as text.",
    parameters={
        "type": "object",
        "properties": {
            "url": {"type": "string", "pattern": "^https?://"},
            "max_bytes": {"type": "integer", "minimum": 1, "maximum": 1_000_000},
        },
        "required": ["url"],
        "additionalProperties": False,
    },
    sensitive=True,
    describe_action=_describe_fetch,
)

TOOLS_SHELL = [BASH_TOOL, FETCH_TOOL]
