"""
Startup sequence.

Brings the sync subsystem up in a fixed order and reports what happened:

1. initialize the local store
2. run pending schema migrations
3. load (or create) the install id
4. bootstrap sync: full when the store is empty, incremental otherwise
5. register the background scheduler

A storage or migration failure stops the data path (status FAILED) but the
services are still built, so the HTTP shell can come up and report it. A
failed bootstrap sync only degrades the service; the scheduler retries.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum

from runebox.clients.catalog import CatalogClient
from runebox.config import Settings
from runebox.db.migrations import SchemaMigrator
from runebox.db.store import LocalStore
from runebox.models.failure import CatalogSyncError, FailureDetail
from runebox.models.sync import SyncResult
from runebox.services.identity import IdentityProvider
from runebox.services.scheduler import BackgroundScheduler, SchedulerStatus
from runebox.services.sync_engine import CatalogSource, SyncEngine

logger = logging.getLogger(__name__)


class StartupStatus(str, Enum):
    READY = "ready"
    # Storage is usable but the bootstrap sync failed
    DEGRADED = "degraded"
    # Storage could not be opened or migrated
    FAILED = "failed"


@dataclass
class StartupReport:
    """Outcome of start_services()."""

    status: StartupStatus
    schema_version: int | None = None
    install_id: str | None = None
    sync: SyncResult | None = None
    scheduler: SchedulerStatus | None = None
    failures: list[FailureDetail] = field(default_factory=list)


@dataclass
class Services:
    """Everything the shell needs, built once per process."""

    settings: Settings
    store: LocalStore
    migrator: SchemaMigrator | None
    catalog: CatalogSource
    engine: SyncEngine
    scheduler: BackgroundScheduler
    identity: IdentityProvider
    report: StartupReport


async def start_services(
    settings: Settings,
    *,
    client: CatalogSource | None = None,
    register_scheduler: bool | None = None,
) -> Services:
    """
    Run the startup sequence.

    Args:
        settings: Application settings
        client: Remote catalog to sync from; built from settings when omitted
        register_scheduler: Overrides settings.background_sync_enabled

    Returns:
        The wired services; services.report describes how startup went.
    """
    if register_scheduler is None:
        register_scheduler = settings.background_sync_enabled

    store = LocalStore(settings.database_url, echo=settings.debug)
    catalog = client if client is not None else CatalogClient(settings.catalog_options())
    report = StartupReport(status=StartupStatus.READY)

    storage_ok = True
    try:
        await store.initialize()
    except CatalogSyncError as e:
        logger.error("Local store unavailable: %s", e)
        report.failures.append(e.to_detail())
        storage_ok = False

    migrator = SchemaMigrator(store.engine) if storage_ok else None
    if migrator is not None:
        try:
            report.schema_version = await migrator.migrate()
        except CatalogSyncError as e:
            logger.error("Schema migration failed: %s", e)
            report.failures.append(e.to_detail())
            storage_ok = False

    identity = IdentityProvider(store)
    report.install_id = await identity.get_install_id()

    engine = SyncEngine(store, catalog, migrator, install_id=report.install_id)
    scheduler = BackgroundScheduler(
        engine,
        store if storage_ok else None,
        interval=timedelta(seconds=settings.sync_interval_seconds),
    )

    if not storage_ok:
        report.status = StartupStatus.FAILED
    else:
        if await store.count_cards() == 0:
            report.sync = await engine.full_sync()
        else:
            report.sync = await engine.incremental_sync()

        if report.sync.error is not None:
            report.failures.append(report.sync.error)
            report.status = StartupStatus.DEGRADED

        if register_scheduler:
            report.scheduler = await scheduler.register()

    if report.scheduler is None:
        report.scheduler = scheduler.status()

    logger.info(
        "[%s] Startup %s (schema version %s, %d failure(s))",
        report.install_id,
        report.status.value,
        report.schema_version,
        len(report.failures),
    )
    return Services(
        settings=settings,
        store=store,
        migrator=migrator,
        catalog=catalog,
        engine=engine,
        scheduler=scheduler,
        identity=identity,
        report=report,
    )


async def stop_services(services: Services) -> None:
    """Unregister the scheduler and release the HTTP client and database."""
    await services.scheduler.unregister()
    if isinstance(services.catalog, CatalogClient):
        await services.catalog.aclose()
    await services.store.dispose()
