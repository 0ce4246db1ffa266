"""Health check endpoints.

Provides endpoints for monitoring service health and readiness.
"""

from fastapi import APIRouter, Request
from pydantic import BaseModel

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: str
    service: str
    version: str


class ReadinessResponse(BaseModel):
    """Readiness response schema."""

    status: str
    sessions: int


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Check service health.

    Returns:
        Health status with service name and version.
    """
    settings = request.app.state.settings

    return HealthResponse(
        status="healthy",
        service=settings.server_name,
        version=settings.api_version,
    )


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(request: Request) -> ReadinessResponse:
    """Report readiness and the number of live sessions."""
    return ReadinessResponse(
        status="ready",
        sessions=len(request.app.state.session_store),
    )
