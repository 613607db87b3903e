"""Health check endpoint for monitoring service status."""

from fastapi import APIRouter, status
from pydantic import BaseModel

from relay.dependencies import ConnectionManagerDep

router = APIRouter()


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    subscribers: int


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Health check endpoint",
    tags=["health"],
)
async def health_check(manager: ConnectionManagerDep) -> HealthResponse:
    """
    Report that the relay is up and how many subscribers are connected.

    The relay has no backing services, answering at all means healthy.
    """
    return HealthResponse(status="healthy", subscribers=manager.count)
