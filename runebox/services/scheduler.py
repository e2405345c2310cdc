"""
Background refresh scheduler.

Registers the sync engine's incremental_sync() to run periodically outside
any request or UI flow. The host decides actual timing: ticks may be late,
coalesced or skipped, and the scheduler only promises never to run more
often than its minimum interval.

State machine:

    UNREGISTERED -> REGISTERING -> REGISTERED
    REGISTERED -> RUNNING -> REGISTERED      (every tick, failed or not)

A failing tick returns to REGISTERED; the scheduler never halts on a sync
failure and never backs off. The next regular tick is the retry.
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError

from runebox.db.store import LocalStore
from runebox.models.failure import CatalogSyncError, describe_failure
from runebox.models.sync import SyncMode, SyncResult, SyncStatus
from runebox.parsers.catalog import parse_timestamp

logger = logging.getLogger(__name__)

TASK_NAME = "background-card-sync"
MINIMUM_INTERVAL = timedelta(minutes=15)
LAST_RUN_KEY = "last_card_sync"
UNKNOWN = "unknown"


class SchedulerState(str, Enum):
    """Registration state of the background task."""

    UNREGISTERED = "unregistered"
    REGISTERING = "registering"
    REGISTERED = "registered"
    RUNNING = "running"


class TickOutcome(str, Enum):
    """What a tick reports back to the host."""

    NEW_DATA = "new_data"
    NO_DATA = "no_data"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class SchedulerStatus:
    """
    Snapshot of the scheduler.

    Attributes:
        task_name: Registered task identifier
        state: Current registration state
        minimum_interval: Shortest period the host allows
        interval: Period actually requested
        last_run_at: Time of the last executed tick, or "unknown"
    """

    task_name: str
    state: SchedulerState
    minimum_interval: timedelta
    interval: timedelta
    last_run_at: datetime | str


class SyncRunner(Protocol):
    async def incremental_sync(self) -> SyncResult: ...


def tick_outcome(result: SyncResult) -> TickOutcome:
    """Map a sync result to a tick outcome; a coalesced run found nothing new."""
    if result.status is SyncStatus.FAILED:
        return TickOutcome.FAILED
    if result.status is SyncStatus.NEW_DATA:
        return TickOutcome.NEW_DATA
    return TickOutcome.NO_DATA


class BackgroundScheduler:
    """
    Periodically invokes incremental sync on the running event loop.

    Args:
        engine: Anything with an async incremental_sync()
        store: When given, the last tick time is persisted to and restored
            from its meta table
        interval: Requested period, raised to minimum_interval if shorter
        minimum_interval: Host-imposed floor
        task_name: Identifier the task is registered under
    """

    def __init__(
        self,
        engine: SyncRunner,
        store: LocalStore | None = None,
        *,
        interval: timedelta = MINIMUM_INTERVAL,
        minimum_interval: timedelta = MINIMUM_INTERVAL,
        task_name: str = TASK_NAME,
    ):
        self.engine = engine
        self.store = store
        self.minimum_interval = minimum_interval
        self.interval = max(interval, minimum_interval)
        self.task_name = task_name
        self._state = SchedulerState.UNREGISTERED
        self._task: asyncio.Task[None] | None = None
        self._last_run_at: datetime | None = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    async def register(self) -> SchedulerStatus:
        """
        Register the periodic task. Idempotent: registering an already
        registered scheduler changes nothing.
        """
        if self._state is not SchedulerState.UNREGISTERED:
            logger.info("Background sync %s already registered", self.task_name)
            return self.status()

        self._state = SchedulerState.REGISTERING
        try:
            if self._last_run_at is None:
                self._last_run_at = await self._load_last_run()
            self._task = asyncio.create_task(self._loop(), name=self.task_name)
        except BaseException:
            self._state = SchedulerState.UNREGISTERED
            raise

        self._state = SchedulerState.REGISTERED
        logger.info(
            "Background sync %s registered every %ss",
            self.task_name,
            int(self.interval.total_seconds()),
        )
        return self.status()

    async def unregister(self) -> None:
        """Stop the periodic task."""
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._state = SchedulerState.UNREGISTERED
        logger.info("Background sync %s unregistered", self.task_name)

    def status(self) -> SchedulerStatus:
        return SchedulerStatus(
            task_name=self.task_name,
            state=self._state,
            minimum_interval=self.minimum_interval,
            interval=self.interval,
            last_run_at=self._last_run_at or UNKNOWN,
        )

    async def tick(self) -> TickOutcome:
        """Run one scheduled sync. Never raises."""
        return tick_outcome(await self._execute())

    async def run_now(self) -> SyncResult:
        """Run a sync immediately (user-initiated), outside the schedule."""
        return await self._execute()

    async def _execute(self) -> SyncResult:
        entered = self._state is SchedulerState.REGISTERED
        if entered:
            self._state = SchedulerState.RUNNING

        try:
            result = await self.engine.incremental_sync()
        except Exception as e:
            logger.exception("Background sync %s tick raised", self.task_name)
            result = SyncResult(
                mode=SyncMode.INCREMENTAL,
                status=SyncStatus.FAILED,
                error=describe_failure(e),
            )
        finally:
            if entered and self._state is SchedulerState.RUNNING:
                self._state = SchedulerState.REGISTERED

        if result.status is not SyncStatus.SKIPPED:
            await self._record_run(datetime.now(UTC))
        return result

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval.total_seconds())
            outcome = await self.tick()
            logger.debug("Background sync %s tick: %s", self.task_name, outcome.value)

    async def _record_run(self, when: datetime) -> None:
        self._last_run_at = when
        if self.store is None:
            return
        try:
            await self.store.set_meta(LAST_RUN_KEY, when.isoformat())
        except (CatalogSyncError, SQLAlchemyError) as e:
            logger.warning("Could not persist last background sync time: %s", e)

    async def _load_last_run(self) -> datetime | None:
        if self.store is None:
            return None
        try:
            return parse_timestamp(await self.store.get_meta(LAST_RUN_KEY))
        except (CatalogSyncError, SQLAlchemyError, ValueError) as e:
            logger.warning("Last background sync time unavailable: %s", e)
            return None
