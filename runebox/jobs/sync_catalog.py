"""
One-shot catalog sync.

Runs the startup sequence (store, migrations, install id, bootstrap sync)
without registering the background scheduler, then exits. Suitable for cron
or for seeding a fresh database.

Usage:
    python -m runebox.jobs.sync_catalog
    python -m runebox.jobs.sync_catalog --full
"""

import argparse
import asyncio
import logging
import sys

from runebox.config import Settings, settings
from runebox.models.sync import SyncMode, SyncResult
from runebox.services.startup import StartupStatus, start_services, stop_services

logger = logging.getLogger(__name__)


async def run_sync(app_settings: Settings, *, full: bool = False) -> SyncResult | None:
    """
    Bring the store up to date once.

    Args:
        app_settings: Application settings
        full: Re-fetch the whole catalog even if the store already has cards

    Returns:
        The last sync result, or None if the store could not be opened.
    """
    services = await start_services(app_settings, register_scheduler=False)
    try:
        if services.report.status is StartupStatus.FAILED:
            return None

        result = services.report.sync
        if full and (result is None or result.mode is not SyncMode.FULL):
            result = await services.engine.full_sync()
        return result
    finally:
        await stop_services(services)


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for a one-shot catalog sync."""
    parser = argparse.ArgumentParser(description="Sync the local card catalog once.")
    parser.add_argument(
        "--full",
        action="store_true",
        help="re-fetch the whole catalog instead of only changes",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    result = asyncio.run(run_sync(settings, full=args.full))

    if result is None or not result.ok:
        logger.error("Catalog sync failed")
        return 1
    logger.info("Catalog sync %s: %d rows applied", result.status.value, result.applied)
    return 0


if __name__ == "__main__":
    sys.exit(main())
