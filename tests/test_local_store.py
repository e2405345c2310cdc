"""Tests for the local catalog store."""

from dataclasses import replace
from datetime import timedelta

import pytest
from sqlalchemy import text

from runebox.db.migrations import SCHEMA_VERSION, SchemaMigrator
from runebox.db.store import DEFAULT_PAGE_SIZE, LocalStore
from runebox.models.db import CardDB
from runebox.models.failure import StorageInitError, UpsertError


class TestInitialize:
    async def test_creates_database_file(self, tmp_path) -> None:
        """Initializing creates the parent directory and the database."""
        path = tmp_path / "nested" / "dir" / "runebox.db"
        store = LocalStore(f"sqlite+aiosqlite:///{path}")

        await store.initialize()
        await store.dispose()

        assert path.exists()

    async def test_fresh_database_is_current(self, store: LocalStore) -> None:
        """A brand-new database needs no migrations."""
        migrator = SchemaMigrator(store.engine)

        assert await migrator.current_version() == SCHEMA_VERSION
        assert await migrator.is_current()

    async def test_initialize_twice(self, store: LocalStore, make_card) -> None:
        """Re-initializing keeps existing data."""
        await store.upsert_many([make_card("a")])

        await store.initialize()

        assert await store.count_cards() == 1

    async def test_corrupt_file_raises_storage_init_error(self, tmp_path) -> None:
        """A file that is not a database cannot be opened."""
        path = tmp_path / "runebox.db"
        path.write_bytes(b"this is not a sqlite database" * 100)
        store = LocalStore(f"sqlite+aiosqlite:///{path}")

        with pytest.raises(StorageInitError):
            await store.initialize()

        assert not store.initialized
        await store.dispose()

    async def test_queries_before_initialize_raise(self, database_url: str) -> None:
        store = LocalStore(database_url)

        with pytest.raises(StorageInitError):
            await store.query_all()

    async def test_ping(self, store: LocalStore) -> None:
        await store.ping()


class TestUpsertMany:
    async def test_inserts_rows(self, store: LocalStore, make_card) -> None:
        applied = await store.upsert_many([make_card("a"), make_card("b")])

        assert applied == 2
        assert [c.id for c in await store.query_all()] == ["a", "b"]

    async def test_empty_batch(self, store: LocalStore) -> None:
        assert await store.upsert_many([]) == 0

    async def test_round_trips_fields(self, store: LocalStore, make_card) -> None:
        """Stored cards read back equal, including tags and the UTC timestamp."""
        card = make_card(
            "a",
            tags=("Jinx", "Zaun"),
            domain="Fury,Chaos",
            energy=3,
            ability="Draw a card.",
            price_change=0.5,
        )
        await store.upsert_many([card])

        assert await store.get_card("a") == card

    async def test_last_write_wins(self, store: LocalStore, make_card) -> None:
        """Repeated upserts keep one row per id holding the last write."""
        await store.upsert_many([make_card("a", price=1.0), make_card("b")])
        await store.upsert_many([make_card("a", price=2.0)])
        await store.upsert_many([make_card("a", price=3.0), make_card("a", price=4.0)])

        cards = await store.query_all()

        assert [c.id for c in cards] == ["a", "b"]
        assert (await store.get_card("a")).price == 4.0

    async def test_only_if_newer_skips_stale(self, store: LocalStore, make_card) -> None:
        """An older record does not overwrite a newer stored one."""
        await store.upsert_many([make_card("a", minutes=10, price=5.0)])

        applied = await store.upsert_many(
            [make_card("a", minutes=5, price=1.0)], only_if_newer=True
        )

        assert applied == 0
        assert (await store.get_card("a")).price == 5.0

    async def test_only_if_newer_applies_newer(self, store: LocalStore, make_card) -> None:
        await store.upsert_many([make_card("a", minutes=0, price=5.0)])

        applied = await store.upsert_many(
            [make_card("a", minutes=1, price=6.0)], only_if_newer=True
        )

        assert applied == 1
        assert (await store.get_card("a")).price == 6.0

    async def test_failed_batch_rolls_back(self, store: LocalStore, make_card) -> None:
        """A failing row discards the whole batch."""
        await store.upsert_many([make_card("a", price=1.0)])
        bad = make_card("c", name=None)

        with pytest.raises(UpsertError):
            await store.upsert_many([make_card("a", price=9.0), make_card("b"), bad])

        assert [c.id for c in await store.query_all()] == ["a"]
        assert (await store.get_card("a")).price == 1.0


class TestQueries:
    @pytest.fixture
    async def seeded(self, store: LocalStore, make_card) -> LocalStore:
        await store.upsert_many(
            [
                make_card(
                    "ogn-1", minutes=1, name="Jinx", rarity="epic", price=10.0, price_change=2.0
                ),
                make_card(
                    "ogn-2", minutes=2, name="Vi", rarity="rare", price=4.0, price_change=-3.0
                ),
                make_card("ogn-3", minutes=3, name="Jayce", price=0.5),
                make_card(
                    "sfd-1",
                    minutes=4,
                    name="Jax",
                    set_abv="SFD",
                    set_name="Spiritforged",
                    price=7.0,
                    price_change=0.5,
                ),
            ]
        )
        return store

    async def test_filter_by_sql_expression(self, seeded: LocalStore) -> None:
        """SQL predicates run in the database."""
        cards = await seeded.query_by_filter(CardDB.rarity == "epic")

        assert [c.id for c in cards] == ["ogn-1"]

    async def test_filter_by_callable(self, seeded: LocalStore) -> None:
        """Python predicates run over domain cards."""
        cards = await seeded.query_by_filter(lambda c: c.price > 5)

        assert [c.id for c in cards] == ["ogn-1", "sfd-1"]

    async def test_get_card_missing(self, seeded: LocalStore) -> None:
        assert await seeded.get_card("nope") is None

    async def test_search_by_name(self, seeded: LocalStore) -> None:
        """Search matches substrings, newest first."""
        cards = await seeded.search_cards("Ja")

        assert [c.id for c in cards] == ["sfd-1", "ogn-3"]

    async def test_search_pages(self, store: LocalStore, make_card) -> None:
        await store.upsert_many([make_card(f"c{i:02d}", minutes=i) for i in range(25)])

        first = await store.search_cards(page=1)
        second = await store.search_cards(page=2)

        assert len(first) == DEFAULT_PAGE_SIZE
        assert len(second) == 5
        assert first[0].id == "c24"
        assert {c.id for c in first}.isdisjoint(c.id for c in second)

    async def test_cards_by_set(self, seeded: LocalStore) -> None:
        """Set listings are ordered by price, highest first."""
        cards = await seeded.cards_by_set("OGN", limit=2)

        assert [c.id for c in cards] == ["ogn-1", "ogn-2"]

    async def test_price_movers(self, seeded: LocalStore) -> None:
        """Cards without a price change are not movers."""
        up = await seeded.price_movers(limit=3)
        down = await seeded.price_movers(ascending=True, limit=1)

        assert [c.id for c in up] == ["ogn-1", "sfd-1", "ogn-2"]
        assert [c.id for c in down] == ["ogn-2"]

    async def test_count_and_watermark(self, seeded: LocalStore, make_card) -> None:
        assert await seeded.count_cards() == 4
        assert await seeded.watermark() == make_card(minutes=4).updated_at

    async def test_watermark_empty(self, store: LocalStore) -> None:
        assert await store.watermark() is None
        assert await store.sets_watermark() is None


class TestWatermarkPrecision:
    async def test_microseconds_survive(self, store: LocalStore, make_card) -> None:
        """The watermark equals the newest updated_at exactly."""
        card = make_card("a")
        newer = replace(card, id="b", updated_at=card.updated_at + timedelta(microseconds=1))
        await store.upsert_many([card, newer])

        assert await store.watermark() == newer.updated_at

    async def test_stored_as_datetime_text(self, store: LocalStore, make_card) -> None:
        await store.upsert_many([make_card("a")])

        async with store.engine.connect() as conn:
            raw = await conn.scalar(text("SELECT updated_at FROM cards"))

        assert raw == "2024-12-01 12:00:00.123456"


class TestSets:
    async def test_upsert_and_list(self, store: LocalStore, make_set) -> None:
        """Sets are replaced by id and listed newest first."""
        await store.upsert_sets([make_set("OGN", minutes=0), make_set("SFD", minutes=5)])
        await store.upsert_sets([make_set("OGN", minutes=0, name="Origins (Reprint)")])

        sets = await store.list_sets()

        assert [s.set_abv for s in sets] == ["SFD", "OGN"]
        assert sets[1].set_name == "Origins (Reprint)"
        assert await store.sets_watermark() == make_set(minutes=5).created_at

    async def test_empty(self, store: LocalStore) -> None:
        assert await store.upsert_sets([]) == 0
        assert await store.list_sets() == []


class TestApplyBatch:
    async def test_writes_sets_and_cards(self, store: LocalStore, make_card, make_set) -> None:
        applied = await store.apply_batch([make_set("OGN")], [make_card("a"), make_card("b")])

        assert applied == (1, 2)
        assert [s.set_abv for s in await store.list_sets()] == ["OGN"]
        assert await store.count_cards() == 2

    async def test_empty_batch(self, store: LocalStore) -> None:
        assert await store.apply_batch([], []) == (0, 0)

    async def test_card_failure_discards_sets(self, store: LocalStore, make_card,
                                              make_set) -> None:
        """A failing card row rolls back the sets written in the same batch."""
        await store.upsert_sets([make_set("OGN")])

        with pytest.raises(UpsertError):
            await store.apply_batch(
                [make_set("SFD", minutes=5, name="Spiritforged")],
                [make_card("a"), make_card("b", name=None)],
            )

        assert [s.set_abv for s in await store.list_sets()] == ["OGN"]
        assert await store.sets_watermark() == make_set(minutes=0).created_at
        assert await store.count_cards() == 0

    async def test_skips_older_cards(self, store: LocalStore, make_card) -> None:
        await store.upsert_many([make_card("a", minutes=10, price=5.0)])

        applied = await store.apply_batch([], [make_card("a", minutes=1, price=1.0)])

        assert applied == (0, 0)
        assert (await store.get_card("a")).price == 5.0


class TestMeta:
    async def test_set_get_delete(self, store: LocalStore) -> None:
        assert await store.get_meta("k") is None

        await store.set_meta("k", "v1")
        await store.set_meta("k", "v2")
        assert await store.get_meta("k") == "v2"

        await store.delete_meta("k")
        assert await store.get_meta("k") is None
