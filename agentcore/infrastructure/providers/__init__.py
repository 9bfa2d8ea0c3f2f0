"""Provider Clients — one variant per LLM vendor behind ProviderClient.

Invariants:
    - create_provider() is the only place that chooses a vendor
    - Callers depend on ProviderClient, never on a vendor SDK

Design Decisions:
    - Explicit dict mapping ProviderName -> class (no auto-discovery)
"""

from agentcore.core.domain_types import ProviderName
from agentcore.infrastructure.providers.anthropic_client import AnthropicProvider
from agentcore.infrastructure.providers.base import ModelConfig, ProviderClient
from agentcore.infrastructure.providers.openai_client import OpenAIProvider

_PROVIDERS: dict[ProviderName, type[ProviderClient]] = {
    ProviderName.ANTHROPIC: AnthropicProvider,
    ProviderName.OPENAI: OpenAIProvider,
}


def create_provider(
    config: ModelConfig,
    *,
    max_retries: int = 3,
    base_delay_ms: int = 1000,
    max_delay_ms: int = 60_000,
    timeout_seconds: float = 300,
) -> ProviderClient:
    """Build the vendor variant named by config.provider."""
    try:
        cls = _PROVIDERS[ProviderName(config.provider)]
    except ValueError:
        raise ValueError(f"Unknown provider '{config.provider}'") from None
    return cls(
        config,
        max_retries=max_retries,
        base_delay_ms=base_delay_ms,
        max_delay_ms=max_delay_ms,
        timeout_seconds=timeout_seconds,
    )


__all__ = [
    "AnthropicProvider", "ModelConfig", "OpenAIProvider",
    "ProviderClient", "create_provider",
]
