"""File Tool Schemas — ls, view, glob, grep (read-only) and write, edit, delete_file.

Invariants:
    - Every path argument is relative to the working directory (absolute paths
      are accepted only when they stay inside it)
    - Mutating tools are sensitive: the Permission Gate sees a one-line description
    - additionalProperties false: unknown arguments are a validation error the
      model can correct

Design Decisions:
    - Schemas are plain JSON Schema dicts wrapped in ToolInfo; no decorators
"""

from agentcore.core.tool_types import ToolInfo


def _describe_write(args: dict) -> str:
    size = len(args.get("content", ""))
    return f"Write {size} characters to '{args.get('path')}'"


def _describe_edit(args: dict) -> str:
    scope = "all occurrences" if args.get("replace_all") else "one occurrence"
    return f"Edit '{args.get('path')}' (replace {scope} of a text fragment)"


def _describe_delete(args: dict) -> str:
    return f"Delete file '{args.get('path')}'"


LS_TOOL = ToolInfo(
    name="ls",
    description=(
        "Lists the entries of a directory. Directories end with '/'. "
        "Use it to discover files before viewing them."
    ),
    parameters={
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Directory to list, relative to the working directory.",
                "default": ".",
            },
        },
        "required": [],
        "additionalProperties": False,
    },
)

VIEW_TOOL = ToolInfo(
    name="view",
    description=(
        "Reads a text file and returns its lines prefixed with line numbers. "
        "Use offset/limit to page through large files."
    ),
    parameters={
        "type": "object",
        "properties": {
            "path": {"type": "string"},
            "offset": {"type": "integer", "minimum": 0, "default": 0},
            "limit": {"type": "integer", "minimum": 1, "maximum": 5000, "default": 2000},
        },
        "required": ["path"],
        "additionalProperties": False,
    },
)

GLOB_TOOL = ToolInfo(
    name="glob",
    description="Finds files whose path matches a glob pattern such as 'src/**/*.py'.",
    parameters={
        "type": "object",
        "properties": {
            "pattern": {"type": "string", "minLength": 1},
            "path": {"type": "string", "default": "."},
        },
        "required": ["pattern"],
        "additionalProperties": False,
    },
)

GREP_TOOL = ToolInfo(
    name="grep",
    description=(
        "Searches file contents with a regular expression. Returns "
        "'path:line: text' for each match. Optionally restrict files with 'include'."
    ),
    parameters={
        "type": "object",
        "properties": {
            "pattern": {"type": "string", "minLength": 1},
            "path": {"type": "string", "default": "."},
            "include": {
                "type": "string",
                "description": "Glob applied to file names, e.g. '*.py'.",
            },
        },
        "required": ["pattern"],
        "additionalProperties": False,
    },
)

WRITE_TOOL = ToolInfo(
    name="write",
    description="Creates or overwrites a text file with the given content.",
    parameters={
        "type": "object",
        "properties": {
            "path": {"type": "string", "minLength": 1},
            "content": {"type": "string"},
        },
        "required": ["path", "content"],
        "additionalProperties": False,
    },
    sensitive=True,
    mutates_files=True,
    describe_action=_describe_write,
)

EDIT_TOOL = ToolInfo(
    name="edit",
    description=(
        "Replaces old_string with new_string in a file. old_string must match "
        "exactly and be unique unless replace_all is true."
    ),
    parameters={
        "type": "object",
        "properties": {
            "path": {"type": "string", "minLength": 1},
            "old_string": {"type": "string", "minLength": 1},
            "new_string": {"type": "string"},
            "replace_all": {"type": "boolean", "default": False},
        },
        "required": ["path", "old_string", "new_string"],
        "additionalProperties": False,
    },
    sensitive=True,
    mutates_files=True,
    describe_action=_describe_edit,
)

DELETE_FILE_TOOL = ToolInfo(
    name="delete_file",
    description="Deletes a single file. Directories are not deleted.",
    parameters={
        "type": "object",
        "properties": {
            "path": {"type": "string", "minLength": 1},
        },
        "required": ["path"],
        "additionalProperties": False,
    },
    sensitive=True,
    mutates_files=True,
    describe_action=_describe_delete,
)

TOOLS_FILE = [
    LS_TOOL,
    VIEW_TOOL,
    GLOB_TOOL,
    GREP_TOOL,
    WRITE_TOOL,
    EDIT_TOOL,
    DELETE_FILE_TOOL,
]
