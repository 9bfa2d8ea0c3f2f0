"""API Dependencies — process-wide runner, permission broker and session store.

Invariants:
    - One PermissionBroker, one FileHistory and one AgentRunner per process
    - Sessions and active-turn cancel signals live in module-level dicts
    - Routes obtain the runner and broker only through Depends(), so tests can
      swap them with app.dependency_overrides

Design Decisions:
    - In-memory store: single-process uvicorn; sessions are lost on restart
    - permission_mode picks the gate: ask -> broker (human answers over HTTP),
      allow / deny -> StaticPermissionGate
"""

import logging
from typing import Iterable

from agentcore.config import Settings, get_settings
from agentcore.core.cancellation import CancelSignal
from agentcore.core.domain_types import PermissionDecision
from agentcore.core.errors import ResourceNotFoundError
from agentcore.core.repository_protocols import PermissionGate, ToolHandler
from agentcore.core.session_state import Session
from agentcore.core.tool_types import ToolInfo
from agentcore.infrastructure.providers import create_provider
from agentcore.services.agent_runner import AgentRunner
from agentcore.services.file_history import InMemoryFileHistory
from agentcore.services.permission_broker import PermissionBroker, StaticPermissionGate
from agentcore.services.toolset import build_agent_runner

logger = logging.getLogger(__name__)

_broker = PermissionBroker()
_history = InMemoryFileHistory()
_runner: AgentRunner | None = None

sessions: dict[str, Session] = {}
active_turns: dict[str, CancelSignal] = {}


def build_permission_gate(mode: str, broker: PermissionBroker) -> PermissionGate:
    if mode == "allow":
        return StaticPermissionGate(PermissionDecision.ALLOW)
    if mode == "deny":
        return StaticPermissionGate(PermissionDecision.DENY)
    return broker


def init_runner(
    settings: Settings,
    extra_tools: Iterable[tuple[ToolInfo, ToolHandler]] = (),
) -> AgentRunner:
    """Build the process runner from settings (called from the app lifespan)."""
    global _runner
    provider = create_provider(
        settings.build_model_config(),
        max_retries=settings.provider_max_retries,
        base_delay_ms=settings.provider_base_delay_ms,
        max_delay_ms=settings.provider_max_delay_ms,
        timeout_seconds=settings.provider_timeout_seconds,
    )
    _runner = build_agent_runner(
        provider,
        build_permission_gate(settings.permission_mode, _broker),
        _history,
        bash_timeout_seconds=settings.bash_timeout_seconds,
        extra_tools=extra_tools,
        system_prompt=settings.agent_system_prompt,
        working_dir=settings.working_dir,
        max_iterations=settings.agent_max_iterations,
        max_depth=settings.agent_max_depth,
        auto_summarize_ratio=settings.auto_summarize_ratio,
        summary_keep_last_n=settings.summary_keep_last_n,
    )
    logger.info(
        f"Runner ready: {len(_runner.registry)} tools, "
        f"permission_mode={settings.permission_mode}",
        extra={"provider": provider.name.value},
    )
    return _runner


def get_runner() -> AgentRunner:
    if _runner is None:
        return init_runner(get_settings())
    return _runner


def get_broker() -> PermissionBroker:
    return _broker


def get_session_or_404(session_id: str) -> Session:
    session = sessions.get(session_id)
    if session is None:
        raise ResourceNotFoundError("Session", session_id)
    return session


def runner_ready() -> bool:
    return _runner is not None
