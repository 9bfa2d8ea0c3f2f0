"""Shell Handlers — bash (subprocess) and fetch (httpx).

Invariants:
    - bash runs in the working directory, in its own process group; on timeout
      or cancellation the whole group is killed before the handler returns or
      re-raises, so background children cannot hold the output pipe open
    - A non-zero exit code is a completed result (the model reads the exit code);
      only timeouts and spawn failures are tool errors
    - fetch follows redirects, treats non-2xx as an error and streams the body,
      reading no further once max_bytes is exceeded
"""

import asyncio
import logging
import os
import signal

import httpx

from agentcore.core.errors import ToolExecutionError
from agentcore.core.tool_types import ExecutionContext, ToolResult

logger = logging.getLogger(__name__)

MAX_OUTPUT_CHARS = 30_000
DEFAULT_FETCH_BYTES = 200_000


class ShellHandlers:
    """Process and network tools."""

    def __init__(
        self,
        bash_timeout_seconds: float = 120,
        fetch_timeout_seconds: float = 30,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.bash_timeout_seconds = bash_timeout_seconds
        self.fetch_timeout_seconds = fetch_timeout_seconds
        self._transport = transport

    async def bash(self, context: ExecutionContext, input_data: dict) -> ToolResult:
        command = input_data["command"]
        timeout = input_data.get("timeout") or self.bash_timeout_seconds
        try:
            proc = await asyncio.create_subprocess_shell(
                command,
                cwd=context.working_dir,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                start_new_session=True,
            )
        except OSError as e:
            raise ToolExecutionError(f"Failed to start command: {e}") from e

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            await _kill(proc)
            raise ToolExecutionError(
                f"Command timed out after {timeout}s: {command}", code="TOOL_TIMEOUT",
            )
        except asyncio.CancelledError:
            await _kill(proc)
            logger.info(
                "bash interrupted, process group killed",
                extra={"session_id": context.session_id, "tool_name": "bash"},
            )
            raise

        output = stdout.decode("utf-8", errors="replace")
        if len(output) > MAX_OUTPUT_CHARS:
            output = output[:MAX_OUTPUT_CHARS] + "\n... (output truncated)"
        return ToolResult.ok(f"{output}\n[exit code: {proc.returncode}]".lstrip("\n"))

    async def fetch(self, context: ExecutionContext, input_data: dict) -> ToolResult:
        url = input_data["url"]
        max_bytes = input_data.get("max_bytes", DEFAULT_FETCH_BYTES)
        try:
            async with httpx.AsyncClient(
                timeout=self.fetch_timeout_seconds,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                async with client.stream("GET", url) as response:
                    if response.status_code >= 400:
                        raise ToolExecutionError(
                            f"GET {url} returned HTTP {response.status_code}",
                            code="HTTP_ERROR",
                        )
                    content, truncated = await _read_capped(response, max_bytes)
                    encoding = response.encoding or "utf-8"
        except httpx.HTTPError as e:
            raise ToolExecutionError(f"Request to {url} failed: {e}", code="HTTP_ERROR") from e

        body = content.decode(encoding, errors="replace")
        suffix = "\n... (body truncated)" if truncated else ""
        return ToolResult.ok(body + suffix)


async def _read_capped(response: httpx.Response, max_bytes: int) -> tuple[bytes, bool]:
    buffer = bytearray()
    async for chunk in response.aiter_bytes():
        buffer.extend(chunk)
        if len(buffer) > max_bytes:
            return bytes(buffer[:max_bytes]), True
    return bytes(buffer), False


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is not None:
        return
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        return
    await proc.wait()
