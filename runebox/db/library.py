"""
Collection and deck CRUD operations.

Async functions over the user's collections and decks, each scoped to a
caller-provided session. Both are keyed by the install id and hold per-card
quantities; card_count and total_value are recomputed from the entries
(priced from the local catalog) every time the entries change.
"""

from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from runebox.models.db import CardDB, CollectionDB, CollectionEntryDB, DeckDB, DeckEntryDB
from runebox.models.library import (
    CardCollection,
    CollectionColor,
    CollectionIcon,
    Deck,
    LibraryEntry,
)


class UnknownCardError(LookupError):
    """Raised when an entry names a card that is not in the local catalog."""

    def __init__(self, card_id: str):
        super().__init__(f"Card {card_id} not found")
        self.card_id = card_id


def _entries_to_model(
    entries: list[CollectionEntryDB] | list[DeckEntryDB],
) -> tuple[LibraryEntry, ...]:
    return tuple(
        LibraryEntry(card_id=e.card_id, quantity=e.quantity)
        for e in sorted(entries, key=lambda e: e.card_id)
    )


async def _refresh_totals(session: AsyncSession, owner: CollectionDB | DeckDB) -> None:
    """Recompute card_count and total_value from the owner's entries."""
    await session.flush()

    if isinstance(owner, CollectionDB):
        entry_table, owner_column = CollectionEntryDB, CollectionEntryDB.collection_id
    else:
        entry_table, owner_column = DeckEntryDB, DeckEntryDB.deck_id

    row = (
        await session.execute(
            select(
                func.coalesce(func.sum(entry_table.quantity), 0),
                func.coalesce(func.sum(entry_table.quantity * CardDB.price), 0.0),
            )
            .select_from(entry_table)
            .outerjoin(CardDB, CardDB.id == entry_table.card_id)
            .where(owner_column == owner.id)
        )
    ).one()

    owner.card_count = int(row[0])
    owner.total_value = float(row[1])
    owner.updated_at = datetime.now(UTC)
    await session.flush()


async def _set_entry(
    session: AsyncSession,
    owner: CollectionDB | DeckDB,
    card_id: str,
    quantity: int,
    *,
    add: bool,
) -> None:
    """Set (or add to) the quantity of one card; a resulting quantity of 0 removes it."""
    if quantity < 0:
        raise ValueError(f"Quantity must not be negative, got {quantity}")
    if await session.get(CardDB, card_id) is None:
        raise UnknownCardError(card_id)

    entry = next((e for e in owner.entries if e.card_id == card_id), None)
    new_quantity = (entry.quantity if entry is not None and add else 0) + quantity

    if new_quantity == 0:
        if entry is not None:
            owner.entries.remove(entry)
    elif entry is not None:
        entry.quantity = new_quantity
    elif isinstance(owner, CollectionDB):
        owner.entries.append(CollectionEntryDB(card_id=card_id, quantity=new_quantity))
    else:
        owner.entries.append(DeckEntryDB(card_id=card_id, quantity=new_quantity))

    await _refresh_totals(session, owner)


# --- Collection Operations ---


async def create_collection(
    session: AsyncSession,
    user_id: str,
    name: str,
    color: CollectionColor = CollectionColor.BLUE,
    icon: CollectionIcon = CollectionIcon.STAR,
) -> CollectionDB:
    """Create an empty collection."""
    collection = CollectionDB(
        user_id=user_id,
        name=name,
        color=CollectionColor(color).value,
        icon=CollectionIcon(icon).value,
        card_count=0,
        total_value=0.0,
        updated_at=datetime.now(UTC),
        entries=[],
    )
    session.add(collection)
    await session.flush()
    return collection


async def get_collection(session: AsyncSession, collection_id: str) -> CollectionDB | None:
    """Get a collection with its entries, or None."""
    result = await session.execute(
        select(CollectionDB)
        .where(CollectionDB.id == collection_id)
        .options(selectinload(CollectionDB.entries))
    )
    return result.scalar_one_or_none()


async def list_collections(
    session: AsyncSession, user_id: str | None = None
) -> list[CollectionDB]:
    """Collections, most recently edited first; only user_id's when given."""
    stmt = select(CollectionDB).options(selectinload(CollectionDB.entries))
    if user_id is not None:
        stmt = stmt.where(CollectionDB.user_id == user_id)
    result = await session.execute(
        stmt.order_by(CollectionDB.updated_at.desc(), CollectionDB.id)
    )
    return list(result.scalars().all())


async def update_collection(
    session: AsyncSession,
    collection_id: str,
    *,
    name: str | None = None,
    color: CollectionColor | None = None,
    icon: CollectionIcon | None = None,
) -> CollectionDB | None:
    """
    Change a collection's name, color or icon.

    Arguments left as None keep their current value. Returns None if the
    collection does not exist.
    """
    collection = await get_collection(session, collection_id)
    if collection is None:
        return None

    if name is not None:
        collection.name = name
    if color is not None:
        collection.color = CollectionColor(color).value
    if icon is not None:
        collection.icon = CollectionIcon(icon).value
    collection.updated_at = datetime.now(UTC)
    await session.flush()
    return collection


async def set_collection_card(
    session: AsyncSession,
    collection_id: str,
    card_id: str,
    quantity: int,
    *,
    add: bool = False,
) -> CollectionDB | None:
    """
    Set how many copies of a card a collection holds.

    With add=True the quantity is added to the current one instead, as when
    importing cards. A resulting quantity of 0 removes the entry.

    Returns:
        The updated collection, or None if it does not exist.

    Raises:
        UnknownCardError: If card_id is not in the local catalog
        ValueError: If quantity is negative
    """
    collection = await get_collection(session, collection_id)
    if collection is None:
        return None

    await _set_entry(session, collection, card_id, quantity, add=add)
    return collection


async def delete_collection(session: AsyncSession, collection_id: str) -> bool:
    """
    Delete a collection and its entries.

    Returns True if deleted, False if not found.
    """
    collection = await get_collection(session, collection_id)
    if collection is None:
        return False

    await session.delete(collection)
    await session.flush()
    return True


def collection_to_model(collection: CollectionDB) -> CardCollection:
    """Convert a database collection to a domain model."""
    return CardCollection(
        id=collection.id,
        user_id=collection.user_id,
        name=collection.name,
        color=CollectionColor(collection.color),
        icon=CollectionIcon(collection.icon),
        card_count=collection.card_count,
        total_value=collection.total_value,
        updated_at=collection.updated_at,
        entries=_entries_to_model(collection.entries),
    )


# --- Deck Operations ---


async def create_deck(
    session: AsyncSession,
    user_id: str,
    name: str,
    description: str | None = None,
) -> DeckDB:
    """Create an empty deck."""
    deck = DeckDB(
        user_id=user_id,
        name=name,
        description=description,
        card_count=0,
        total_value=0.0,
        updated_at=datetime.now(UTC),
        entries=[],
    )
    session.add(deck)
    await session.flush()
    return deck


async def get_deck(session: AsyncSession, deck_id: str) -> DeckDB | None:
    result = await session.execute(
        select(DeckDB).where(DeckDB.id == deck_id).options(selectinload(DeckDB.entries))
    )
    return result.scalar_one_or_none()


async def list_decks(session: AsyncSession, user_id: str | None = None) -> list[DeckDB]:
    """Decks, most recently edited first; only user_id's when given."""
    stmt = select(DeckDB).options(selectinload(DeckDB.entries))
    if user_id is not None:
        stmt = stmt.where(DeckDB.user_id == user_id)
    result = await session.execute(stmt.order_by(DeckDB.updated_at.desc(), DeckDB.id))
    return list(result.scalars().all())


async def update_deck(
    session: AsyncSession,
    deck_id: str,
    *,
    name: str | None = None,
    description: str | None = None,
) -> DeckDB | None:
    """Change a deck's name or description; None keeps the current value."""
    deck = await get_deck(session, deck_id)
    if deck is None:
        return None

    if name is not None:
        deck.name = name
    if description is not None:
        deck.description = description
    deck.updated_at = datetime.now(UTC)
    await session.flush()
    return deck


async def set_deck_card(
    session: AsyncSession,
    deck_id: str,
    card_id: str,
    quantity: int,
    *,
    add: bool = False,
) -> DeckDB | None:
    """Set (or with add=True, add to) the copies of a card in a deck."""
    deck = await get_deck(session, deck_id)
    if deck is None:
        return None

    await _set_entry(session, deck, card_id, quantity, add=add)
    return deck


async def delete_deck(session: AsyncSession, deck_id: str) -> bool:
    deck = await get_deck(session, deck_id)
    if deck is None:
        return False

    await session.delete(deck)
    await session.flush()
    return True


def deck_to_model(deck: DeckDB) -> Deck:
    """Convert a database deck to a domain model."""
    return Deck(
        id=deck.id,
        user_id=deck.user_id,
        name=deck.name,
        description=deck.description,
        card_count=deck.card_count,
        total_value=deck.total_value,
        updated_at=deck.updated_at,
        entries=_entries_to_model(deck.entries),
    )
