"""
Catalog sync engine.

The single authoritative path that reconciles the local store with the
hosted catalog:

- full_sync(): fetch everything, upsert everything (first-run bootstrap)
- incremental_sync(): fetch rows newer than the local watermark, upsert them

Each run fetches completely before writing anything, then writes sets and
cards in a single transaction, so a failed run never leaves a partial batch
behind. At most one run is in flight per engine; a
request that arrives meanwhile is skipped rather than queued, since the next
scheduled tick bounds how stale the mirror can get.

Runs never raise. Failures are logged and returned as a FAILED SyncResult.
"""

import asyncio
import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Protocol

from runebox.db.migrations import SchemaMigrator
from runebox.db.store import LocalStore
from runebox.models.card import Card, CardSet
from runebox.models.failure import CatalogSyncError, MigrationError, describe_failure
from runebox.models.sync import SyncMode, SyncResult, SyncStatus

logger = logging.getLogger(__name__)


class CatalogSource(Protocol):
    """What the engine needs from the remote catalog."""

    async def fetch_all(self) -> list[Card]: ...

    async def fetch_since(self, timestamp: datetime) -> list[Card]: ...

    async def fetch_all_sets(self) -> list[CardSet]: ...

    async def fetch_sets_since(self, timestamp: datetime) -> list[CardSet]: ...


def newest_per_id(cards: Iterable[Card]) -> list[Card]:
    """Collapse duplicate ids in a batch to the record with the newest updated_at."""
    newest: dict[str, Card] = {}
    for card in cards:
        current = newest.get(card.id)
        if current is None or card.updated_at >= current.updated_at:
            newest[card.id] = card
    return list(newest.values())


class SyncEngine:
    """
    Mirrors the hosted catalog into the local store.

    Args:
        store: Initialized local store
        catalog: Remote catalog client
        migrator: When given, runs are refused until the schema is current
        install_id: Per-install identifier included in log lines
    """

    def __init__(
        self,
        store: LocalStore,
        catalog: CatalogSource,
        migrator: SchemaMigrator | None = None,
        *,
        install_id: str | None = None,
    ):
        self.store = store
        self.catalog = catalog
        self.migrator = migrator
        self.install_id = install_id or "unknown"
        self.last_result: SyncResult | None = None
        self._lock = asyncio.Lock()

    @property
    def in_flight(self) -> bool:
        return self._lock.locked()

    async def full_sync(self) -> SyncResult:
        """Fetch the whole catalog and upsert it."""
        return await self._run(SyncMode.FULL)

    async def incremental_sync(self) -> SyncResult:
        """Fetch and upsert only rows changed since the local watermark."""
        return await self._run(SyncMode.INCREMENTAL)

    async def _run(self, mode: SyncMode) -> SyncResult:
        # locked() and acquire happen without an intervening await, so the
        # check-then-enter is atomic on the event loop.
        if self._lock.locked():
            logger.info(
                "[%s] %s sync requested while another run is in flight; skipped",
                self.install_id,
                mode.value,
            )
            return SyncResult(mode=mode, status=SyncStatus.SKIPPED)

        async with self._lock:
            started_at = datetime.now(UTC)
            logger.info("[%s] Starting %s sync", self.install_id, mode.value)
            try:
                result = await self._sync(mode, started_at)
            except CatalogSyncError as e:
                logger.error(
                    "[%s] %s sync failed (%s) at %s: %s%s",
                    self.install_id,
                    mode.value,
                    e.kind.value,
                    started_at.isoformat(),
                    e.message,
                    f" - {e.detail}" if e.detail else "",
                )
                result = self._failed(mode, started_at, e)
            except Exception as e:
                logger.exception(
                    "[%s] %s sync failed unexpectedly at %s",
                    self.install_id,
                    mode.value,
                    started_at.isoformat(),
                )
                result = self._failed(mode, started_at, e)

            self.last_result = result
            return result

    async def _sync(self, mode: SyncMode, started_at: datetime) -> SyncResult:
        if self.migrator is not None and not await self.migrator.is_current():
            version = await self.migrator.current_version()
            raise MigrationError(
                self.migrator.target_version,
                "pending",
                detail=f"local schema is at version {version}",
                message="Schema migration required before syncing",
            )

        if mode is SyncMode.FULL:
            card_watermark = set_watermark = None
        else:
            card_watermark = await self.store.watermark()
            set_watermark = await self.store.sets_watermark()

        # Fetch everything first; nothing is written unless both fetches succeed.
        if card_watermark is None:
            cards = await self.catalog.fetch_all()
        else:
            cards = await self.catalog.fetch_since(card_watermark)
        if set_watermark is None:
            card_sets = await self.catalog.fetch_all_sets()
        else:
            card_sets = await self.catalog.fetch_sets_since(set_watermark)

        sets_applied, cards_applied = await self.store.apply_batch(
            card_sets, newest_per_id(cards), only_if_newer=True
        )

        finished_at = datetime.now(UTC)
        status = SyncStatus.NEW_DATA if cards_applied or sets_applied else SyncStatus.NO_DATA
        logger.info(
            "[%s] %s sync complete: %d cards, %d sets applied (fetched %d/%d, watermark=%s)",
            self.install_id,
            mode.value,
            cards_applied,
            sets_applied,
            len(cards),
            len(card_sets),
            card_watermark.isoformat() if card_watermark else "none",
        )
        return SyncResult(
            mode=mode,
            status=status,
            cards_applied=cards_applied,
            sets_applied=sets_applied,
            watermark=card_watermark,
            started_at=started_at,
            finished_at=finished_at,
        )

    @staticmethod
    def _failed(mode: SyncMode, started_at: datetime, error: BaseException) -> SyncResult:
        return SyncResult(
            mode=mode,
            status=SyncStatus.FAILED,
            started_at=started_at,
            finished_at=datetime.now(UTC),
            error=describe_failure(error),
        )
