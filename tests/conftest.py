import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest

from runebox.db.store import LocalStore
from runebox.models.card import Card, CardSet
from runebox.models.failure import RemoteFetchError

BASE_TIME = datetime(2024, 12, 1, 12, 0, 0, 123456, tzinfo=UTC)


class FakeCatalog:
    """In-memory stand-in for the hosted catalog."""

    def __init__(self) -> None:
        self.cards: list[Card] = []
        self.sets: list[CardSet] = []
        self.calls: list[tuple[str, datetime | None]] = []
        self.error: Exception | None = None
        # When set, fetches wait on it before answering.
        self.gate: asyncio.Event | None = None

    async def _answer(self, name: str, since: datetime | None) -> None:
        self.calls.append((name, since))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error

    async def fetch_all(self) -> list[Card]:
        await self._answer("fetch_all", None)
        return list(self.cards)

    async def fetch_since(self, timestamp: datetime) -> list[Card]:
        await self._answer("fetch_since", timestamp)
        return [c for c in self.cards if c.updated_at > timestamp]

    async def fetch_all_sets(self) -> list[CardSet]:
        await self._answer("fetch_all_sets", None)
        return list(self.sets)

    async def fetch_sets_since(self, timestamp: datetime) -> list[CardSet]:
        await self._answer("fetch_sets_since", timestamp)
        return [s for s in self.sets if s.created_at > timestamp]

    def fail_with(self, message: str = "catalog unreachable") -> None:
        self.error = RemoteFetchError(message, "connection refused")


@pytest.fixture
def make_card() -> Callable[..., Card]:
    """Build a Card with sensible defaults; updated_at is given in minutes after BASE_TIME."""

    def _make(card_id: str = "ogn-001", minutes: int = 0, **overrides: object) -> Card:
        values: dict[str, object] = {
            "id": card_id,
            "set_name": "Origins",
            "set_abv": "OGN",
            "name": f"Card {card_id}",
            "card_type": "Unit",
            "rarity": "common",
            "updated_at": BASE_TIME + timedelta(minutes=minutes),
            "price": 1.0,
        }
        values.update(overrides)
        return Card(**values)  # type: ignore[arg-type]

    return _make


@pytest.fixture
def make_set() -> Callable[..., CardSet]:
    def _make(abv: str = "OGN", minutes: int = 0, name: str = "Origins") -> CardSet:
        return CardSet(
            id=f"set-{abv.lower()}",
            set_name=name,
            set_abv=abv,
            created_at=BASE_TIME + timedelta(minutes=minutes),
        )

    return _make


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'runebox.db'}"


@pytest.fixture
async def store(database_url: str):
    """An initialized store backed by a temporary SQLite file."""
    local_store = LocalStore(database_url)
    await local_store.initialize()
    yield local_store
    await local_store.dispose()


@pytest.fixture
def fake_catalog() -> FakeCatalog:
    return FakeCatalog()
