"""Tests for the startup sequence."""

import pytest

from runebox.config import Settings
from runebox.db.database import create_engine
from runebox.db.migrations import SCHEMA_VERSION, create_baseline_schema
from runebox.models.failure import FailureKind
from runebox.models.sync import SyncMode, SyncStatus
from runebox.services.scheduler import SchedulerState
from runebox.services.startup import StartupStatus, start_services, stop_services


@pytest.fixture
def settings(database_url: str) -> Settings:
    return Settings(
        database_url=database_url,
        catalog_url="https://catalog.example.com",
        background_sync_enabled=False,
    )


class TestStartServices:
    async def test_ready(self, settings: Settings, fake_catalog, make_card) -> None:
        """An empty store is bootstrapped with a full sync."""
        fake_catalog.cards = [make_card("a")]

        services = await start_services(settings, client=fake_catalog)
        try:
            report = services.report
            assert report.status is StartupStatus.READY
            assert report.schema_version == SCHEMA_VERSION
            assert report.install_id
            assert report.sync.mode is SyncMode.FULL
            assert report.sync.status is SyncStatus.NEW_DATA
            assert report.failures == []
            assert report.scheduler.state is SchedulerState.UNREGISTERED
            assert await services.store.count_cards() == 1
        finally:
            await stop_services(services)

    async def test_existing_store_syncs_incrementally(self, settings: Settings, fake_catalog,
                                                      make_card) -> None:
        fake_catalog.cards = [make_card("a")]
        services = await start_services(settings, client=fake_catalog)
        await stop_services(services)

        services = await start_services(settings, client=fake_catalog)
        try:
            assert services.report.sync.mode is SyncMode.INCREMENTAL
            assert services.report.sync.status is SyncStatus.NO_DATA
        finally:
            await stop_services(services)

    async def test_install_id_is_stable(self, settings: Settings, fake_catalog) -> None:
        first = await start_services(settings, client=fake_catalog)
        await stop_services(first)
        second = await start_services(settings, client=fake_catalog)
        await stop_services(second)

        assert first.report.install_id == second.report.install_id
        assert second.engine.install_id == second.report.install_id

    async def test_registers_scheduler_when_enabled(self, settings: Settings,
                                                    fake_catalog) -> None:
        settings.background_sync_enabled = True

        services = await start_services(settings, client=fake_catalog)
        try:
            assert services.report.scheduler.state is SchedulerState.REGISTERED
        finally:
            await stop_services(services)

        assert services.scheduler.state is SchedulerState.UNREGISTERED

    async def test_explicit_override_disables_scheduler(self, settings: Settings,
                                                        fake_catalog) -> None:
        settings.background_sync_enabled = True

        services = await start_services(settings, client=fake_catalog, register_scheduler=False)
        try:
            assert services.scheduler.state is SchedulerState.UNREGISTERED
        finally:
            await stop_services(services)

    async def test_sync_failure_degrades(self, settings: Settings, fake_catalog) -> None:
        """A failed bootstrap sync leaves storage usable and the scheduler registered."""
        settings.background_sync_enabled = True
        fake_catalog.fail_with()

        services = await start_services(settings, client=fake_catalog)
        try:
            report = services.report
            assert report.status is StartupStatus.DEGRADED
            assert [f.kind for f in report.failures] == [FailureKind.REMOTE_FETCH]
            assert report.scheduler.state is SchedulerState.REGISTERED
        finally:
            await stop_services(services)

    async def test_legacy_database_is_migrated(self, settings: Settings, fake_catalog) -> None:
        db_engine = create_engine(settings.database_url)
        async with db_engine.begin() as conn:
            await create_baseline_schema(conn)
        await db_engine.dispose()

        services = await start_services(settings, client=fake_catalog)
        try:
            assert services.report.status is StartupStatus.READY
            assert services.report.schema_version == SCHEMA_VERSION
        finally:
            await stop_services(services)

    async def test_storage_failure(self, tmp_path, fake_catalog) -> None:
        """An unopenable store fails startup without raising."""
        path = tmp_path / "runebox.db"
        path.write_bytes(b"garbage" * 512)
        settings = Settings(
            database_url=f"sqlite+aiosqlite:///{path}",
            background_sync_enabled=True,
        )

        services = await start_services(settings, client=fake_catalog)
        try:
            report = services.report
            assert report.status is StartupStatus.FAILED
            assert report.failures[0].kind is FailureKind.STORAGE_INIT
            assert report.sync is None
            assert report.install_id
            assert services.migrator is None
            assert report.scheduler.state is SchedulerState.UNREGISTERED
            assert fake_catalog.calls == []

            manual = await services.engine.incremental_sync()
            assert manual.status is SyncStatus.FAILED
            assert manual.error.kind is FailureKind.STORAGE_INIT
        finally:
            await stop_services(services)
