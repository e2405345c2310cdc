"""
Versioned schema migrations for the local catalog mirror.

SQLite cannot change a column's constraints in place, so a migration that
tightens a column rebuilds the table through a shadow copy:

1. CREATE the shadow table (<table>_new) with the target schema
2. INSERT ... SELECT every row, coalescing nulls in tightened columns
3. DROP the old table and RENAME the shadow to the canonical name
4. Recreate the indexes

Each migration runs in one transaction together with the update of the
persisted version counter (meta.schema_version), so a failed or interrupted
migration leaves the previous table and version authoritative.
"""

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from sqlalchemy import inspect, select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from runebox.models.db import MetaDB
from runebox.models.failure import MigrationError

logger = logging.getLogger(__name__)

SCHEMA_VERSION_KEY = "schema_version"

CARD_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_cards_name ON cards(name)",
    "CREATE INDEX IF NOT EXISTS idx_cards_set ON cards(set_abv)",
)

SET_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_sets_name ON sets(set_name)",
    "CREATE INDEX IF NOT EXISTS idx_sets_abv ON sets(set_abv)",
)

# Shape shipped with the first release: nullable price, a price_foil column
# that was never populated, and epoch-millisecond timestamps.
_BASELINE_STATEMENTS = (
    """CREATE TABLE IF NOT EXISTS cards (
        id TEXT PRIMARY KEY,
        set_name TEXT NOT NULL,
        set_abv TEXT NOT NULL,
        image_url TEXT,
        name TEXT NOT NULL,
        card_type TEXT NOT NULL,
        rarity TEXT NOT NULL,
        domain TEXT,
        energy INTEGER,
        might INTEGER,
        power INTEGER,
        tags TEXT,
        ability TEXT,
        price REAL,
        price_foil REAL,
        price_change REAL,
        updated_at INTEGER
    )""",
    *CARD_INDEXES,
    """CREATE TABLE IF NOT EXISTS sets (
        id TEXT PRIMARY KEY,
        set_name TEXT NOT NULL,
        set_abv TEXT NOT NULL,
        created_at INTEGER
    )""",
    *SET_INDEXES,
    """CREATE TABLE IF NOT EXISTS meta (
        key TEXT PRIMARY KEY,
        value TEXT
    )""",
)

_CARDS_V2 = """CREATE TABLE {name} (
    id TEXT NOT NULL PRIMARY KEY,
    set_name TEXT NOT NULL,
    set_abv TEXT NOT NULL,
    image_url TEXT,
    name TEXT NOT NULL,
    card_type TEXT NOT NULL,
    rarity TEXT NOT NULL,
    domain TEXT,
    energy INTEGER,
    might INTEGER,
    power INTEGER,
    tags TEXT,
    ability TEXT,
    price REAL NOT NULL DEFAULT 0,
    price_change REAL,
    updated_at INTEGER
)"""

_CARDS_V3 = """CREATE TABLE {name} (
    id TEXT NOT NULL PRIMARY KEY,
    set_name TEXT NOT NULL,
    set_abv TEXT NOT NULL,
    image_url TEXT,
    name TEXT NOT NULL,
    card_type TEXT NOT NULL,
    rarity TEXT NOT NULL,
    domain TEXT,
    energy INTEGER,
    might INTEGER,
    power INTEGER,
    tags TEXT NOT NULL DEFAULT '[]',
    ability TEXT,
    price REAL NOT NULL DEFAULT 0,
    price_change REAL,
    updated_at DATETIME
)"""

_SETS_V3 = """CREATE TABLE {name} (
    id TEXT NOT NULL PRIMARY KEY,
    set_name TEXT NOT NULL,
    set_abv TEXT NOT NULL,
    created_at DATETIME
)"""

# IF NOT EXISTS: LocalStore.initialize() may already have created these from
# the ORM metadata before the migrator runs.
_LIBRARY_STATEMENTS = (
    """CREATE TABLE IF NOT EXISTS collections (
        id TEXT NOT NULL PRIMARY KEY,
        user_id TEXT NOT NULL,
        name TEXT NOT NULL,
        total_value REAL NOT NULL DEFAULT 0,
        card_count INTEGER NOT NULL DEFAULT 0,
        color TEXT NOT NULL,
        icon TEXT NOT NULL,
        updated_at DATETIME
    )""",
    "CREATE INDEX IF NOT EXISTS idx_collections_user ON collections(user_id)",
    """CREATE TABLE IF NOT EXISTS collection_entries (
        id TEXT NOT NULL PRIMARY KEY,
        collection_id TEXT NOT NULL REFERENCES collections(id) ON DELETE CASCADE,
        card_id TEXT NOT NULL REFERENCES cards(id) ON DELETE CASCADE,
        quantity INTEGER NOT NULL,
        UNIQUE (collection_id, card_id)
    )""",
    """CREATE TABLE IF NOT EXISTS decks (
        id TEXT NOT NULL PRIMARY KEY,
        user_id TEXT NOT NULL,
        name TEXT NOT NULL,
        description TEXT,
        total_value REAL NOT NULL DEFAULT 0,
        card_count INTEGER NOT NULL DEFAULT 0,
        updated_at DATETIME
    )""",
    "CREATE INDEX IF NOT EXISTS idx_decks_user ON decks(user_id)",
    """CREATE TABLE IF NOT EXISTS deck_entries (
        id TEXT NOT NULL PRIMARY KEY,
        deck_id TEXT NOT NULL REFERENCES decks(id) ON DELETE CASCADE,
        card_id TEXT NOT NULL REFERENCES cards(id) ON DELETE CASCADE,
        quantity INTEGER NOT NULL,
        UNIQUE (deck_id, card_id)
    )""",
)

_CARD_COLUMNS = (
    "id",
    "set_name",
    "set_abv",
    "image_url",
    "name",
    "card_type",
    "rarity",
    "domain",
    "energy",
    "might",
    "power",
    "tags",
    "ability",
    "price",
    "price_change",
    "updated_at",
)


def _millis_to_datetime_sql(column: str) -> str:
    """SQL expression turning epoch milliseconds into fixed-width UTC DATETIME text."""
    return (
        f"CASE WHEN typeof({column}) IN ('integer', 'real') THEN "
        f"strftime('%Y-%m-%d %H:%M:%S', CAST({column} AS INTEGER) / 1000, 'unixepoch')"
        f" || '.' || printf('%06d', (CAST({column} AS INTEGER) % 1000) * 1000) "
        f"ELSE {column} END"
    )


@dataclass(frozen=True, slots=True)
class Migration:
    """A named schema transformation identified by its target version."""

    version: int
    name: str
    apply: Callable[[AsyncConnection], Awaitable[None]]


async def _rebuild_table(
    conn: AsyncConnection,
    table: str,
    create_sql: str,
    columns: Sequence[str],
    select_exprs: Sequence[str],
    indexes: Sequence[str],
) -> None:
    """Swap a table for a shadow copy built with a new schema."""
    shadow = f"{table}_new"

    # Leftover from a run that died outside a transaction: discard and redo.
    await conn.exec_driver_sql(f"DROP TABLE IF EXISTS {shadow}")

    await conn.exec_driver_sql(create_sql.format(name=shadow))
    await conn.exec_driver_sql(
        f"INSERT INTO {shadow} ({', '.join(columns)}) "  # noqa: S608
        f"SELECT {', '.join(select_exprs)} FROM {table}"
    )
    await conn.exec_driver_sql(f"DROP TABLE {table}")
    await conn.exec_driver_sql(f"ALTER TABLE {shadow} RENAME TO {table}")
    for statement in indexes:
        await conn.exec_driver_sql(statement)


async def create_baseline_schema(conn: AsyncConnection) -> None:
    """Create the version 1 tables (used when migrating an empty database)."""
    for statement in _BASELINE_STATEMENTS:
        await conn.exec_driver_sql(statement)


async def add_default_price(conn: AsyncConnection) -> None:
    """Make cards.price NOT NULL DEFAULT 0; null prices become 0."""
    select_exprs = ["COALESCE(price, 0)" if c == "price" else c for c in _CARD_COLUMNS]
    await _rebuild_table(conn, "cards", _CARDS_V2, _CARD_COLUMNS, select_exprs, CARD_INDEXES)


async def iso_timestamps(conn: AsyncConnection) -> None:
    """
    Store timestamps as UTC DATETIME text instead of epoch milliseconds.

    Millisecond integers cannot represent the catalog's microsecond
    timestamps, which made the incremental watermark lag the newest row.
    Also gives cards.tags a NOT NULL '[]' default.
    """
    card_exprs = []
    for column in _CARD_COLUMNS:
        if column == "updated_at":
            card_exprs.append(_millis_to_datetime_sql("updated_at"))
        elif column == "tags":
            card_exprs.append("COALESCE(tags, '[]')")
        else:
            card_exprs.append(column)
    await _rebuild_table(conn, "cards", _CARDS_V3, _CARD_COLUMNS, card_exprs, CARD_INDEXES)

    set_columns = ("id", "set_name", "set_abv", "created_at")
    set_exprs = ("id", "set_name", "set_abv", _millis_to_datetime_sql("created_at"))
    await _rebuild_table(conn, "sets", _SETS_V3, set_columns, set_exprs, SET_INDEXES)


async def collections_and_decks(conn: AsyncConnection) -> None:
    """Add the user's collections and decks with their per-card entries."""
    for statement in _LIBRARY_STATEMENTS:
        await conn.exec_driver_sql(statement)


MIGRATIONS: tuple[Migration, ...] = (
    Migration(1, "baseline", create_baseline_schema),
    Migration(2, "add_default_price", add_default_price),
    Migration(3, "iso_timestamps", iso_timestamps),
    Migration(4, "collections_and_decks", collections_and_decks),
)

SCHEMA_VERSION = MIGRATIONS[-1].version


async def read_schema_version(conn: AsyncConnection) -> int:
    """
    Read the persisted schema version.

    Databases created before the counter existed have a cards table but no
    version row; they are on version 1. An empty database is version 0.
    """
    tables = await conn.run_sync(lambda sync_conn: set(inspect(sync_conn).get_table_names()))
    if "meta" in tables:
        value = await conn.scalar(
            select(MetaDB.value).where(MetaDB.key == SCHEMA_VERSION_KEY)
        )
        if value is not None:
            return int(value)
    return 1 if "cards" in tables else 0


async def stamp_schema_version(conn: AsyncConnection, version: int) -> None:
    """Persist the schema version inside the caller's transaction."""
    await conn.run_sync(lambda sync_conn: MetaDB.__table__.create(sync_conn, checkfirst=True))
    stmt = insert(MetaDB).values(key=SCHEMA_VERSION_KEY, value=str(version))
    await conn.execute(
        stmt.on_conflict_do_update(index_elements=[MetaDB.key], set_={"value": str(version)})
    )


class SchemaMigrator:
    """Runs pending migrations against the local store's engine."""

    def __init__(self, engine: AsyncEngine, migrations: Sequence[Migration] = MIGRATIONS):
        versions = [m.version for m in migrations]
        if versions != sorted(set(versions)):
            raise ValueError("Migration versions must be unique and ascending")
        self.engine = engine
        self.migrations = tuple(migrations)

    @property
    def target_version(self) -> int:
        return self.migrations[-1].version if self.migrations else 0

    async def current_version(self) -> int:
        async with self.engine.connect() as conn:
            return await read_schema_version(conn)

    async def is_current(self) -> bool:
        return await self.current_version() >= self.target_version

    async def migrate(self) -> int:
        """
        Apply every migration newer than the persisted version.

        Returns:
            The schema version after migrating.

        Raises:
            MigrationError: If a migration fails. That migration is rolled
                back; earlier ones stay applied.
        """
        version = await self.current_version()
        if version >= self.target_version:
            logger.debug("Schema already at version %d", version)
            return version

        for migration in self.migrations:
            if migration.version <= version:
                continue

            logger.info("Running migration %d (%s)...", migration.version, migration.name)
            try:
                async with self.engine.begin() as conn:
                    # Version is re-read under the write transaction.
                    if await read_schema_version(conn) >= migration.version:
                        continue
                    await migration.apply(conn)
                    await stamp_schema_version(conn, migration.version)
            except SQLAlchemyError as e:
                logger.error(
                    "Migration %d (%s) failed and was rolled back: %s",
                    migration.version,
                    migration.name,
                    e,
                )
                raise MigrationError(migration.version, migration.name, str(e)) from e

            version = migration.version
            logger.info("Migration %d (%s) complete", migration.version, migration.name)

        return version
