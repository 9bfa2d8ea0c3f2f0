"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - All secrets come from environment variables (never hardcoded)
    - get_settings() is cached (lru_cache) — single instance per process
    - build_model_config() is the only bridge from settings to a ModelConfig

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - Defaults provided for all non-secret settings: works out-of-the-box locally
    - mcp_servers is a JSON list in one env var:
      MCP_SERVERS='[{"name": "fs", "command": "npx", "args": [...]}]'
"""

from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from agentcore.core.domain_types import ProviderName
from agentcore.infrastructure.providers.base import ModelConfig


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Provider
    agent_provider: ProviderName = ProviderName.ANTHROPIC
    anthropic_api_key: str = "sk-ant-placeholder"
    anthropic_base_url: str | None = None
    openai_api_key: str = "sk-placeholder"
    openai_base_url: str | None = None

    # Model
    agent_model: str = "claude-sonnet-4-5"
    agent_max_tokens: int = 8192
    agent_context_window: int = 200_000
    agent_cost_per_1m_input: float = 3.0
    agent_cost_per_1m_output: float = 15.0
    agent_supports_tools: bool = True
    agent_supports_streaming: bool = True

    # Retry
    provider_max_retries: int = 3
    provider_base_delay_ms: int = 1000
    provider_max_delay_ms: int = 60_000
    provider_timeout_seconds: int = 300

    # Agent loop
    agent_max_iterations: int = 50
    agent_max_depth: int = 2
    auto_summarize_ratio: float = 0.0
    summary_keep_last_n: int = 6
    agent_system_prompt: str | None = None

    # Tools
    working_dir: str = "."
    bash_timeout_seconds: int = 120
    permission_mode: Literal["ask", "allow", "deny"] = "ask"
    mcp_servers: list[dict] = []

    # API
    cors_origins: list[str] = ["http://localhost:5173"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator("auto_summarize_ratio")
    @classmethod
    def check_ratio(cls, v: float) -> float:
        """0 disables auto-summarize; otherwise a fraction of the context window."""
        if not 0.0 <= v < 1.0:
            raise ValueError("auto_summarize_ratio must be in [0, 1)")
        return v

    def build_model_config(self) -> ModelConfig:
        is_openai = self.agent_provider == ProviderName.OPENAI
        return ModelConfig(
            provider=self.agent_provider.value,
            model=self.agent_model,
            api_key=self.openai_api_key if is_openai else self.anthropic_api_key,
            base_url=self.openai_base_url if is_openai else self.anthropic_base_url,
            context_window=self.agent_context_window,
            max_tokens=self.agent_max_tokens,
            supports_tools=self.agent_supports_tools,
            supports_streaming=self.agent_supports_streaming,
            cost_per_1m_input=self.agent_cost_per_1m_input,
            cost_per_1m_output=self.agent_cost_per_1m_output,
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
