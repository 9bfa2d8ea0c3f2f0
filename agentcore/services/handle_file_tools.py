"""File Handlers — ls, view, glob, grep, write, edit, delete_file.

Invariants:
    - All paths resolve inside ExecutionContext.working_dir; escapes raise
      ToolExecutionError(PATH_OUTSIDE_WORKDIR)
    - Mutating handlers return exactly one FileChange per file they touched,
      with the full before/after text
    - Expected failures (missing file, ambiguous edit) raise ToolExecutionError;
      dispatch turns them into failed results

Design Decisions:
    - Directory walks run in a worker thread so a slow tree never blocks the loop
    - Output capped (entries, lines, matches) to keep tool results prompt-sized
"""

import asyncio
import fnmatch
import logging
import re
from pathlib import Path

from agentcore.core.errors import ToolExecutionError
from agentcore.core.tool_types import ExecutionContext, FileChange, ToolResult

logger = logging.getLogger(__name__)

MAX_LS_ENTRIES = 500
MAX_GLOB_MATCHES = 500
MAX_GREP_MATCHES = 200
MAX_LINE_CHARS = 2000
_SKIP_DIRS = frozenset({".git", "__pycache__", "node_modules", ".venv"})


class FileHandlers:
    """Filesystem tools rooted at the turn's working directory."""

    async def ls(self, context: ExecutionContext, input_data: dict) -> ToolResult:
        root = resolve_path(context, input_data.get("path", "."))
        if not root.is_dir():
            raise ToolExecutionError(
                f"'{input_data.get('path', '.')}' is not a directory", code="NOT_A_DIRECTORY",
            )
        entries = sorted(
            root.iterdir(), key=lambda p: (not p.is_dir(), p.name.lower()),
        )
        lines = [f"{p.name}/" if p.is_dir() else p.name for p in entries]
        if len(lines) > MAX_LS_ENTRIES:
            hidden = len(lines) - MAX_LS_ENTRIES
            lines = lines[:MAX_LS_ENTRIES] + [f"... ({hidden} more entries)"]
        if not lines:
            return ToolResult.ok("(empty directory)")
        return ToolResult.ok("\n".join(lines))

    async def view(self, context: ExecutionContext, input_data: dict) -> ToolResult:
        path = _existing_file(context, input_data["path"])
        text = _read_text(path)
        offset = input_data.get("offset", 0)
        limit = input_data.get("limit", 2000)
        lines = text.splitlines()
        window = lines[offset:offset + limit]
        numbered = [
            f"{offset + i + 1:6}\t{_clip(line)}" for i, line in enumerate(window)
        ]
        if offset + limit < len(lines):
            numbered.append(
                f"... ({len(lines) - offset - limit} more lines, use offset to continue)",
            )
        return ToolResult.ok("\n".join(numbered) if numbered else "(empty file)")

    async def glob(self, context: ExecutionContext, input_data: dict) -> ToolResult:
        root = resolve_path(context, input_data.get("path", "."))
        pattern = input_data["pattern"]
        base = _workdir(context)
        if Path(pattern).is_absolute() or ".." in Path(pattern).parts:
            raise ToolExecutionError(
                "Glob patterns must be relative and stay inside the working directory",
                code="PATH_OUTSIDE_WORKDIR",
            )
        matches = await asyncio.to_thread(
            lambda: sorted(
                str(p.relative_to(base)) for p in root.glob(pattern)
                if p.is_file() and not _in_skipped_dir(p, base)
            ),
        )
        if not matches:
            return ToolResult.ok("No files matched.")
        if len(matches) > MAX_GLOB_MATCHES:
            hidden = len(matches) - MAX_GLOB_MATCHES
            matches = matches[:MAX_GLOB_MATCHES] + [f"... ({hidden} more matches)"]
        return ToolResult.ok("\n".join(matches))

    async def grep(self, context: ExecutionContext, input_data: dict) -> ToolResult:
        try:
            regex = re.compile(input_data["pattern"])
        except re.error as e:
            raise ToolExecutionError(
                f"Invalid regular expression: {e}", code="INVALID_PATTERN",
            ) from e
        root = resolve_path(context, input_data.get("path", "."))
        include = input_data.get("include")
        base = _workdir(context)
        matches = await asyncio.to_thread(_grep_tree, root, base, regex, include)
        if not matches:
            return ToolResult.ok("No matches found.")
        return ToolResult.ok("\n".join(matches))

    async def write(self, context: ExecutionContext, input_data: dict) -> ToolResult:
        path = resolve_path(context, input_data["path"])
        if path.is_dir():
            raise ToolExecutionError(
                f"'{input_data['path']}' is a directory", code="IS_A_DIRECTORY",
            )
        before = _read_text(path) if path.exists() else ""
        after = input_data["content"]
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(after, encoding="utf-8")
        logger.info(
            f"Wrote {len(after)} chars to {path}",
            extra={"session_id": context.session_id, "tool_name": "write"},
        )
        return ToolResult.ok(
            f"Wrote {len(after)} characters to {input_data['path']}",
            file_changes=[FileChange(str(path), before, after)],
        )

    async def edit(self, context: ExecutionContext, input_data: dict) -> ToolResult:
        path = _existing_file(context, input_data["path"])
        before = _read_text(path)
        old = input_data["old_string"]
        new = input_data["new_string"]
        replace_all = input_data.get("replace_all", False)
        count = before.count(old)
        if count == 0:
            raise ToolExecutionError(
                f"old_string not found in {input_data['path']}", code="EDIT_NO_MATCH",
            )
        if count > 1 and not replace_all:
            raise ToolExecutionError(
                f"old_string occurs {count} times in {input_data['path']}; "
                "add context to make it unique or set replace_all",
                code="EDIT_AMBIGUOUS",
            )
        after = before.replace(old, new) if replace_all else before.replace(old, new, 1)
        path.write_text(after, encoding="utf-8")
        replaced = count if replace_all else 1
        return ToolResult.ok(
            f"Replaced {replaced} occurrence(s) in {input_data['path']}",
            file_changes=[FileChange(str(path), before, after)],
        )

    async def delete_file(self, context: ExecutionContext, input_data: dict) -> ToolResult:
        path = _existing_file(context, input_data["path"])
        before = _read_text(path)
        path.unlink()
        logger.info(
            f"Deleted {path}",
            extra={"session_id": context.session_id, "tool_name": "delete_file"},
        )
        return ToolResult.ok(
            f"Deleted {input_data['path']}",
            file_changes=[FileChange(str(path), before, "")],
        )


# ─── Path helpers ───────────────────────────────────────────────

def _workdir(context: ExecutionContext) -> Path:
    return Path(context.working_dir).resolve()


def resolve_path(context: ExecutionContext, raw: str) -> Path:
    """Resolve `raw` against the working directory, refusing escapes."""
    base = _workdir(context)
    candidate = Path(raw)
    resolved = (candidate if candidate.is_absolute() else base / candidate).resolve()
    if resolved != base and base not in resolved.parents:
        raise ToolExecutionError(
            f"Path '{raw}' is outside the working directory", code="PATH_OUTSIDE_WORKDIR",
        )
    return resolved


def _existing_file(context: ExecutionContext, raw: str) -> Path:
    path = resolve_path(context, raw)
    if not path.exists():
        raise ToolExecutionError(f"File '{raw}' does not exist", code="FILE_NOT_FOUND")
    if not path.is_file():
        raise ToolExecutionError(f"'{raw}' is not a regular file", code="NOT_A_FILE")
    return path


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ToolExecutionError(
            f"'{path.name}' is not a UTF-8 text file", code="BINARY_FILE",
        ) from e


def _clip(line: str) -> str:
    return line if len(line) <= MAX_LINE_CHARS else line[:MAX_LINE_CHARS] + "..."


def _in_skipped_dir(path: Path, base: Path) -> bool:
    return any(part in _SKIP_DIRS for part in path.relative_to(base).parts[:-1])


def _grep_tree(
    root: Path, base: Path, regex: re.Pattern, include: str | None,
) -> list[str]:
    files = [root] if root.is_file() else sorted(p for p in root.rglob("*") if p.is_file())
    matches: list[str] = []
    for path in files:
        if _in_skipped_dir(path, base):
            continue
        if include and not fnmatch.fnmatch(path.name, include):
            continue
        try:
            text = path.read_text(encoding="utf-8")
        except (UnicodeDecodeError, OSError):
            continue
        rel = path.relative_to(base)
        for lineno, line in enumerate(text.splitlines(), start=1):
            if regex.search(line):
                matches.append(f"{rel}:{lineno}: {_clip(line)}")
                if len(matches) >= MAX_GREP_MATCHES:
                    matches.append(f"... (stopped after {MAX_GREP_MATCHES} matches)")
                    return matches
    return matches
