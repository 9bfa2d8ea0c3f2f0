"""agentcore API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map AgentCoreError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - MCP servers connected and the runner built on startup via lifespan;
      MCP connections closed on shutdown

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - An MCP server that fails to start is logged and skipped; the built-in
      tools still serve
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agentcore.api import dependencies
from agentcore.api.error_handlers import register_error_handlers
from agentcore.api.routes import health, permissions, session_agent_stream, session_lifecycle
from agentcore.config import Settings, get_settings
from agentcore.infrastructure.mcp_bridge import MCPServerConfig, MCPToolProvider
from agentcore.infrastructure.observability import setup_logging

logger = logging.getLogger(__name__)


async def connect_mcp_servers(settings: Settings) -> tuple[list[MCPToolProvider], list]:
    """Connect every configured MCP server; returns (providers, tool entries)."""
    providers: list[MCPToolProvider] = []
    entries: list = []
    for raw in settings.mcp_servers:
        provider = MCPToolProvider(MCPServerConfig.from_dict(raw))
        try:
            await provider.connect()
            entries.extend(await provider.tool_entries())
        except Exception as e:
            logger.error(
                f"MCP server '{provider.config.name}' unavailable: {e}", exc_info=True,
            )
            await provider.disconnect()
            continue
        providers.append(provider)
    return providers, entries


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    mcp_providers, mcp_entries = await connect_mcp_servers(settings)
    dependencies.init_runner(settings, mcp_entries)
    logger.info("agentcore API started")
    yield
    for provider in mcp_providers:
        await provider.disconnect()
    logger.info("agentcore API shutting down")


app = FastAPI(title="agentcore API", version="0.1.0", lifespan=lifespan)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Routes — explicit registration
app.include_router(health.router)
app.include_router(session_lifecycle.router)
app.include_router(session_agent_stream.router)
app.include_router(permissions.router)
