"""Settings — provider selection, model config bridge, validation."""

import pytest
from pydantic import ValidationError

from agentcore.api.dependencies import build_permission_gate
from agentcore.config import Settings
from agentcore.services.permission_broker import PermissionBroker, StaticPermissionGate


def _settings(**overrides):
    return Settings(_env_file=None, **overrides)


def test_anthropic_is_default_provider():
    config = _settings(anthropic_api_key="ant-key").build_model_config()
    assert config.provider == "anthropic"
    assert config.api_key == "ant-key"
    assert config.cost_per_1m_output == 15.0


def test_openai_uses_its_own_key_and_base_url():
    config = _settings(
        agent_provider="openai",
        agent_model="gpt-4o",
        openai_api_key="oa-key",
        openai_base_url="http://localhost:8000/v1",
    ).build_model_config()

    assert config.provider == "openai"
    assert config.model == "gpt-4o"
    assert config.api_key == "oa-key"
    assert config.base_url == "http://localhost:8000/v1"


def test_env_overrides_defaults(monkeypatch):
    monkeypatch.setenv("AGENT_MAX_ITERATIONS", "7")
    monkeypatch.setenv("MCP_SERVERS", '[{"name": "fs", "command": "npx"}]')
    settings = _settings()
    assert settings.agent_max_iterations == 7
    assert settings.mcp_servers == [{"name": "fs", "command": "npx"}]


@pytest.mark.parametrize("ratio", [-0.1, 1.0, 1.5])
def test_summarize_ratio_must_be_fraction(ratio):
    with pytest.raises(ValidationError):
        _settings(auto_summarize_ratio=ratio)


def test_unknown_permission_mode_rejected():
    with pytest.raises(ValidationError):
        _settings(permission_mode="sometimes")


def test_permission_mode_selects_gate():
    broker = PermissionBroker()
    assert build_permission_gate("ask", broker) is broker
    assert isinstance(build_permission_gate("allow", broker), StaticPermissionGate)
    assert isinstance(build_permission_gate("deny", broker), StaticPermissionGate)
