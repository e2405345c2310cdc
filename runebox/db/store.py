"""
Local catalog store.

Durable, queryable storage of card records in the on-device SQLite mirror.
Only the sync engine writes cards; everything else reads. Collections and
decks live in the same database and are edited through runebox.db.library
with sessions from LocalStore.session().
"""

import json
import logging
from collections.abc import Callable, Iterable
from datetime import datetime

from sqlalchemy import func, inspect, or_, select, text
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
)
from sqlalchemy.sql.expression import ColumnElement

from runebox.db.database import create_engine, ensure_database_dir
from runebox.db.migrations import (
    SCHEMA_VERSION,
    SCHEMA_VERSION_KEY,
    stamp_schema_version,
)
from runebox.models.card import Card, CardSet
from runebox.models.db import Base, CardDB, CardSetDB, MetaDB
from runebox.models.failure import StorageInitError, UpsertError

logger = logging.getLogger(__name__)

CardPredicate = ColumnElement[bool] | Callable[[Card], bool]

DEFAULT_PAGE_SIZE = 20


def card_to_row(card: Card) -> dict[str, object]:
    """Convert a domain card to a cards-table row."""
    return {
        "id": card.id,
        "set_name": card.set_name,
        "set_abv": card.set_abv,
        "image_url": card.image_url,
        "name": card.name,
        "card_type": card.card_type,
        "rarity": card.rarity,
        "domain": card.domain,
        "energy": card.energy,
        "might": card.might,
        "power": card.power,
        "tags": json.dumps(list(card.tags)),
        "ability": card.ability,
        "price": card.price if card.price is not None else 0.0,
        "price_change": card.price_change,
        "updated_at": card.updated_at,
    }


def card_to_model(db_card: CardDB) -> Card:
    """Convert a database card to a domain model."""
    try:
        tags = tuple(json.loads(db_card.tags or "[]"))
    except json.JSONDecodeError:
        tags = ()
    return Card(
        id=db_card.id,
        set_name=db_card.set_name,
        set_abv=db_card.set_abv,
        name=db_card.name,
        card_type=db_card.card_type,
        rarity=db_card.rarity,
        updated_at=db_card.updated_at,
        image_url=db_card.image_url,
        domain=db_card.domain,
        energy=db_card.energy,
        might=db_card.might,
        power=db_card.power,
        tags=tags,
        ability=db_card.ability,
        price=db_card.price,
        price_change=db_card.price_change,
    )


def card_set_to_row(card_set: CardSet) -> dict[str, object]:
    return {
        "id": card_set.id,
        "set_name": card_set.set_name,
        "set_abv": card_set.set_abv,
        "created_at": card_set.created_at,
    }


async def _write_cards(
    conn: AsyncConnection, rows: list[dict[str, object]], only_if_newer: bool
) -> int:
    """Upsert card rows inside the caller's transaction; returns rows written."""
    if not rows:
        return 0

    table = CardDB.__table__
    stmt = insert(table)
    where = None
    if only_if_newer:
        where = or_(
            table.c.updated_at.is_(None),
            stmt.excluded.updated_at >= table.c.updated_at,
        )
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.id],
        set_={col: stmt.excluded[col] for col in rows[0] if col != "id"},
        where=where,
    )

    applied = 0
    for row in rows:
        result = await conn.execute(stmt, row)
        applied += max(result.rowcount, 0)
    return applied


async def _write_sets(conn: AsyncConnection, rows: list[dict[str, object]]) -> int:
    if not rows:
        return 0

    table = CardSetDB.__table__
    stmt = insert(table)
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.id],
        set_={col: stmt.excluded[col] for col in ("set_name", "set_abv", "created_at")},
    )
    for row in rows:
        await conn.execute(stmt, row)
    return len(rows)


def card_set_to_model(db_set: CardSetDB) -> CardSet:
    """Convert a database set to a domain model."""
    return CardSet(
        id=db_set.id,
        set_name=db_set.set_name,
        set_abv=db_set.set_abv,
        created_at=db_set.created_at,
    )


class LocalStore:
    """
    The on-device card catalog.

    Usage:
        store = LocalStore("sqlite+aiosqlite:///data/runebox.db")
        await store.initialize()
        await store.upsert_many(cards)
    """

    def __init__(self, database_url: str, *, echo: bool = False):
        self.database_url = database_url
        self._echo = echo
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise StorageInitError("Local store is not initialized")
        return self._engine

    @property
    def initialized(self) -> bool:
        return self._session_factory is not None

    def session(self) -> AsyncSession:
        """A new ORM session; the caller commits. Used for collections and decks."""
        if self._session_factory is None:
            raise StorageInitError("Local store is not initialized")
        return self._session_factory()

    async def initialize(self) -> None:
        """
        Open the database and create missing tables and indexes.

        Safe to call on every start. A brand-new database is created directly
        in the current schema and stamped with the latest schema version;
        an existing one is left for the migrator.

        Raises:
            StorageInitError: If the storage engine cannot be opened
                (unwritable path, corrupt file, disk full).
        """
        try:
            ensure_database_dir(self.database_url)
            if self._engine is None:
                self._engine = create_engine(self.database_url, echo=self._echo)

            async with self._engine.begin() as conn:
                existed = await conn.run_sync(
                    lambda sync_conn: inspect(sync_conn).has_table(CardDB.__tablename__)
                )
                await conn.run_sync(Base.metadata.create_all)
                if not existed:
                    version = await conn.scalar(
                        select(MetaDB.value).where(MetaDB.key == SCHEMA_VERSION_KEY)
                    )
                    if version is None:
                        await stamp_schema_version(conn, SCHEMA_VERSION)
        except (SQLAlchemyError, OSError) as e:
            logger.error("Failed to open local store at %s: %s", self.database_url, e)
            raise StorageInitError("Could not open the local store", str(e)) from e

        self._session_factory = async_sessionmaker(self._engine, expire_on_commit=False)
        logger.debug("Local store ready at %s", self.database_url)

    async def dispose(self) -> None:
        """Close all pooled connections."""
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._session_factory = None

    async def ping(self) -> None:
        """Run a trivial query; raises if the database is unreachable."""
        async with self.session() as session:
            await session.execute(text("SELECT 1"))

    # --- Writes ---

    async def upsert_many(self, cards: Iterable[Card], *, only_if_newer: bool = False) -> int:
        """
        Insert or replace cards by id in one transaction.

        Args:
            cards: Records to write, applied in order (the last write for an
                id wins).
            only_if_newer: Skip records whose updated_at is older than the
                stored row's.

        Returns:
            Number of rows written.

        Raises:
            UpsertError: If the transaction fails. Nothing from the batch
                is kept.
        """
        rows = [card_to_row(card) for card in cards]
        if not rows:
            return 0

        try:
            async with self.engine.begin() as conn:
                return await _write_cards(conn, rows, only_if_newer)
        except SQLAlchemyError as e:
            logger.error("Card upsert of %d rows rolled back: %s", len(rows), e)
            raise UpsertError(f"Upsert of {len(rows)} cards failed", str(e)) from e

    async def upsert_sets(self, card_sets: Iterable[CardSet]) -> int:
        """Insert or replace sets by id in one transaction."""
        rows = [card_set_to_row(s) for s in card_sets]
        if not rows:
            return 0

        try:
            async with self.engine.begin() as conn:
                return await _write_sets(conn, rows)
        except SQLAlchemyError as e:
            logger.error("Set upsert of %d rows rolled back: %s", len(rows), e)
            raise UpsertError(f"Upsert of {len(rows)} sets failed", str(e)) from e

    async def apply_batch(
        self,
        card_sets: Iterable[CardSet],
        cards: Iterable[Card],
        *,
        only_if_newer: bool = True,
    ) -> tuple[int, int]:
        """
        Write a sync batch of sets and cards in one transaction.

        Returns:
            (sets written, cards written)

        Raises:
            UpsertError: If any write fails. Neither sets nor cards from the
                batch are kept.
        """
        set_rows = [card_set_to_row(s) for s in card_sets]
        card_rows = [card_to_row(card) for card in cards]
        if not set_rows and not card_rows:
            return 0, 0

        try:
            async with self.engine.begin() as conn:
                sets_applied = await _write_sets(conn, set_rows)
                cards_applied = await _write_cards(conn, card_rows, only_if_newer)
        except SQLAlchemyError as e:
            logger.error(
                "Sync batch of %d sets and %d cards rolled back: %s",
                len(set_rows),
                len(card_rows),
                e,
            )
            raise UpsertError(
                f"Upsert of {len(set_rows)} sets and {len(card_rows)} cards failed", str(e)
            ) from e

        return sets_applied, cards_applied

    # --- Reads ---

    async def query_all(self) -> list[Card]:
        """Every stored card, ordered by id."""
        async with self.session() as session:
            result = await session.execute(select(CardDB).order_by(CardDB.id))
            return [card_to_model(c) for c in result.scalars().all()]

    async def query_by_filter(self, predicate: CardPredicate) -> list[Card]:
        """
        Cards matching a predicate, ordered by id.

        Args:
            predicate: A SQL boolean expression over CardDB columns
                (e.g. ``CardDB.rarity == "epic"``), evaluated in the database,
                or a callable applied to each Card.
        """
        if isinstance(predicate, ColumnElement):
            async with self.session() as session:
                result = await session.execute(
                    select(CardDB).where(predicate).order_by(CardDB.id)
                )
                return [card_to_model(c) for c in result.scalars().all()]

        return [card for card in await self.query_all() if predicate(card)]

    async def get_card(self, card_id: str) -> Card | None:
        async with self.session() as session:
            db_card = await session.get(CardDB, card_id)
            return card_to_model(db_card) if db_card else None

    async def search_cards(
        self,
        query: str | None = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> list[Card]:
        """Cards whose name contains query, newest first, one page at a time."""
        pattern = f"%{query}%" if query else "%"
        offset = (max(page, 1) - 1) * page_size
        async with self.session() as session:
            result = await session.execute(
                select(CardDB)
                .where(CardDB.name.like(pattern))
                .order_by(CardDB.updated_at.desc(), CardDB.id.desc())
                .limit(page_size)
                .offset(offset)
            )
            return [card_to_model(c) for c in result.scalars().all()]

    async def cards_by_set(self, set_abv: str, limit: int = 10) -> list[Card]:
        """Most valuable cards of a set."""
        async with self.session() as session:
            result = await session.execute(
                select(CardDB)
                .where(CardDB.set_abv == set_abv)
                .order_by(CardDB.price.desc(), CardDB.id)
                .limit(limit)
            )
            return [card_to_model(c) for c in result.scalars().all()]

    async def price_movers(self, ascending: bool = False, limit: int = 3) -> list[Card]:
        """Cards with the largest price change (biggest losers when ascending)."""
        order = CardDB.price_change.asc() if ascending else CardDB.price_change.desc()
        async with self.session() as session:
            result = await session.execute(
                select(CardDB)
                .where(CardDB.price_change.is_not(None))
                .order_by(order, CardDB.id)
                .limit(limit)
            )
            return [card_to_model(c) for c in result.scalars().all()]

    async def list_sets(self) -> list[CardSet]:
        """All sets, newest first."""
        async with self.session() as session:
            result = await session.execute(
                select(CardSetDB).order_by(CardSetDB.created_at.desc(), CardSetDB.id)
            )
            return [card_set_to_model(s) for s in result.scalars().all()]

    async def count_cards(self) -> int:
        async with self.session() as session:
            return int(await session.scalar(select(func.count()).select_from(CardDB)) or 0)

    async def watermark(self) -> datetime | None:
        """Newest card updated_at held locally; None when there are no cards."""
        async with self.session() as session:
            return await session.scalar(select(func.max(CardDB.updated_at)))

    async def sets_watermark(self) -> datetime | None:
        """Newest set created_at held locally."""
        async with self.session() as session:
            return await session.scalar(select(func.max(CardSetDB.created_at)))

    # --- Meta key/value ---

    async def get_meta(self, key: str) -> str | None:
        async with self.session() as session:
            return await session.scalar(select(MetaDB.value).where(MetaDB.key == key))

    async def set_meta(self, key: str, value: str) -> None:
        stmt = insert(MetaDB.__table__).values(key=key, value=value)
        stmt = stmt.on_conflict_do_update(index_elements=["key"], set_={"value": value})
        async with self.engine.begin() as conn:
            await conn.execute(stmt)

    async def delete_meta(self, key: str) -> None:
        async with self.engine.begin() as conn:
            await conn.execute(MetaDB.__table__.delete().where(MetaDB.__table__.c.key == key))
