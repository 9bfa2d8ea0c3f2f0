"""Agent Tool Schema — delegate a self-contained task to a nested agent.

Invariants:
    - The nested agent starts from an empty Session: the prompt must carry all context
    - Not sensitive: the tools the nested agent calls are gated individually
"""

from agentcore.core.tool_types import ToolInfo

AGENT_TOOL = ToolInfo(
    name="agent",
    description=(
        "Starts a sub-agent with the same tools to carry out a self-contained "
        "task and returns its final answer. The sub-agent sees nothing of this "
        "conversation: put every detail it needs into the prompt."
    ),
    parameters={
        "type": "object",
        "properties": {
            "prompt": {
                "type": "string",
                "minLength": 1,
                "description": "Complete task description for the sub-agent.",
            },
        },
        "required": ["prompt"],
        "additionalProperties": False,
    },
    # Cancelling the parent cancels the nested loop through the shared signal
    interruptible=True,
)

TOOLS_AGENT = [AGENT_TOOL]
