"""Service test fixtures — working directory, gates and runner factory.

Invariants:
    - Every test gets a fresh temporary working directory with a few files
    - make_runner wires the real registry, dispatch and handlers around a
      ScriptedProvider; only the vendor boundary is mocked
"""

import pytest

from agentcore.core.cancellation import CancelSignal
from agentcore.core.domain_types import PermissionDecision
from agentcore.core.tool_types import ExecutionContext
from agentcore.services.file_history import InMemoryFileHistory
from agentcore.services.permission_broker import StaticPermissionGate
from agentcore.services.toolset import build_agent_runner

from tests.services.mock_provider import ScriptedProvider


@pytest.fixture
def workdir(tmp_path):
    (tmp_path / "README.md").write_text("# demo\nhello world\n", encoding="utf-8")
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "main.py").write_text(
        "def main():\n    print('hello')\n", encoding="utf-8",
    )
    return tmp_path


@pytest.fixture
def history():
    return InMemoryFileHistory()


@pytest.fixture
def allow_gate():
    return StaticPermissionGate(PermissionDecision.ALLOW)


@pytest.fixture
def deny_gate():
    return StaticPermissionGate(PermissionDecision.DENY)


@pytest.fixture
def make_runner(workdir, history, allow_gate):
    """Factory: make_runner(scripts, gate=None, provider_kwargs=None, **runner_options)."""

    def _make(scripts, gate=None, provider_kwargs=None, **runner_options):
        provider = ScriptedProvider(scripts, **(provider_kwargs or {}))
        runner_options.setdefault("working_dir", str(workdir))
        runner = build_agent_runner(
            provider, gate or allow_gate, history, **runner_options,
        )
        return runner, provider

    return _make


@pytest.fixture
def context(workdir):
    return ExecutionContext(
        session_id="sess-test", cancel=CancelSignal(), working_dir=str(workdir),
    )
