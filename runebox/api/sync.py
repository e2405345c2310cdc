"""
Sync API endpoints.

Status of the background sync plus manual triggers. Sync failures come back
as a result with status "failed"; these endpoints never return 5xx for them.
"""

import logging
from datetime import datetime

from fastapi import APIRouter
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from runebox.api.deps import ServicesDep
from runebox.models.failure import CatalogSyncError, FailureDetail
from runebox.models.sync import SyncMode, SyncResult, SyncStatus
from runebox.services.scheduler import SchedulerState, SchedulerStatus
from runebox.services.startup import StartupStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"])


class SyncResultResponse(BaseModel):
    """One sync run."""

    mode: SyncMode
    status: SyncStatus
    cards_applied: int = 0
    sets_applied: int = 0
    applied: int = 0
    watermark: datetime | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error: FailureDetail | None = None

    @classmethod
    def from_result(cls, result: SyncResult) -> "SyncResultResponse":
        return cls(
            mode=result.mode,
            status=result.status,
            cards_applied=result.cards_applied,
            sets_applied=result.sets_applied,
            applied=result.applied,
            watermark=result.watermark,
            started_at=result.started_at,
            finished_at=result.finished_at,
            error=result.error,
        )


class SchedulerStatusResponse(BaseModel):
    """Background task registration."""

    task_name: str
    state: SchedulerState
    minimum_interval_seconds: int
    interval_seconds: int
    last_run_at: datetime | str = Field(
        ...,
        description='Time of the last tick, or "unknown"',
    )

    @classmethod
    def from_status(cls, scheduler: SchedulerStatus) -> "SchedulerStatusResponse":
        return cls(
            task_name=scheduler.task_name,
            state=scheduler.state,
            minimum_interval_seconds=int(scheduler.minimum_interval.total_seconds()),
            interval_seconds=int(scheduler.interval.total_seconds()),
            last_run_at=scheduler.last_run_at,
        )


class SyncStatusResponse(BaseModel):
    """Overall sync state."""

    startup_status: StartupStatus
    install_id: str | None = None
    scheduler: SchedulerStatusResponse
    watermark: datetime | None = None
    card_count: int | None = None
    in_flight: bool = False
    last_result: SyncResultResponse | None = None
    failures: list[FailureDetail] = Field(default_factory=list)


@router.get("/status", response_model=SyncStatusResponse)
async def sync_status(services: ServicesDep) -> SyncStatusResponse:
    """Scheduler state, startup outcome and local watermark."""
    watermark: datetime | None = None
    card_count: int | None = None
    try:
        watermark = await services.store.watermark()
        card_count = await services.store.count_cards()
    except (CatalogSyncError, SQLAlchemyError) as e:
        logger.warning("Sync status without store figures: %s", e)

    last = services.engine.last_result or services.report.sync
    return SyncStatusResponse(
        startup_status=services.report.status,
        install_id=services.report.install_id,
        scheduler=SchedulerStatusResponse.from_status(services.scheduler.status()),
        watermark=watermark,
        card_count=card_count,
        in_flight=services.engine.in_flight,
        last_result=SyncResultResponse.from_result(last) if last else None,
        failures=services.report.failures,
    )


@router.post("", response_model=SyncResultResponse)
async def sync_now(services: ServicesDep) -> SyncResultResponse:
    """Run an incremental sync now. Status is "skipped" if one is in flight."""
    return SyncResultResponse.from_result(await services.scheduler.run_now())


@router.post("/full", response_model=SyncResultResponse)
async def sync_full(services: ServicesDep) -> SyncResultResponse:
    """Re-fetch the whole catalog."""
    return SyncResultResponse.from_result(await services.engine.full_sync())
