"""Health & Readiness Probes.

Invariants:
    - GET /health/ answers 200 while the process is up
    - GET /health/ready answers 503 until the lifespan has built the runner,
      then reports provider, model, tool count and live turn load
"""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from agentcore.api import dependencies

router = APIRouter(prefix="/api/v1/health", tags=["health"])


@router.get("/", status_code=status.HTTP_200_OK)
async def health_check():
    return {"status": "healthy", "service": "agentcore-api", "version": "0.1.0"}


@router.get("/ready")
async def readiness_check():
    if not dependencies.runner_ready():
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "reason": "runner_not_initialized"},
        )
    runner = dependencies.get_runner()
    return {
        "status": "ready",
        "checks": {
            "provider": runner.provider.name.value,
            "model": runner.provider.config.model,
            "tools": len(runner.registry),
            "sessions": len(dependencies.sessions),
            "active_turns": len(dependencies.active_turns),
        },
    }
