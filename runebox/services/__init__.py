"""
RuneBox services.

Sync engine, background scheduler, install identity and the startup sequence.
"""

from runebox.services.identity import INSTALL_ID_KEY, IdentityProvider, generate_install_id
from runebox.services.scheduler import (
    MINIMUM_INTERVAL,
    BackgroundScheduler,
    SchedulerState,
    SchedulerStatus,
    TickOutcome,
)
from runebox.services.startup import (
    Services,
    StartupReport,
    StartupStatus,
    start_services,
    stop_services,
)
from runebox.services.sync_engine import CatalogSource, SyncEngine

__all__ = [
    "INSTALL_ID_KEY",
    "MINIMUM_INTERVAL",
    "BackgroundScheduler",
    "CatalogSource",
    "IdentityProvider",
    "SchedulerState",
    "SchedulerStatus",
    "Services",
    "StartupReport",
    "StartupStatus",
    "SyncEngine",
    "TickOutcome",
    "generate_install_id",
    "start_services",
    "stop_services",
]
