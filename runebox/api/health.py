"""
Health check endpoints.

Provides liveness and readiness checks with database and schema checks.
"""

from fastapi import APIRouter, Response, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from runebox.api.deps import ServicesDep
from runebox.models.failure import CatalogSyncError

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str | None = None
    schema_version: int | None = None


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """
    Liveness check.

    Returns healthy if the service is running.
    Does not check dependencies.
    """
    return HealthResponse(status="healthy")


@router.get(
    "/ready",
    response_model=HealthResponse,
    responses={503: {"model": HealthResponse}},
)
async def ready(response: Response, services: ServicesDep) -> HealthResponse:
    """
    Readiness check.

    Ready when the local store answers and its schema is current.
    Returns 503 otherwise.
    """
    migrator = services.migrator
    try:
        await services.store.ping()
        version = await migrator.current_version() if migrator else None
        current = migrator is not None and await migrator.is_current()
    except (CatalogSyncError, SQLAlchemyError):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not ready", database="disconnected")

    if not current:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not ready", database="connected", schema_version=version)
    return HealthResponse(status="ready", database="connected", schema_version=version)
