"""
Collection and deck API endpoints.

CRUD for the install's card collections and decks. New records belong to
the install id; card entries must name cards present in the local catalog.
"""

from datetime import datetime

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from runebox.api.deps import InstallIdDep, SessionDep
from runebox.db import library
from runebox.models.library import (
    CardCollection,
    CollectionColor,
    CollectionIcon,
    Deck,
    LibraryEntry,
)

collections_router = APIRouter(prefix="/collections", tags=["collections"])
decks_router = APIRouter(prefix="/decks", tags=["decks"])


class EntryResponse(BaseModel):
    card_id: str
    quantity: int

    @classmethod
    def from_entry(cls, entry: LibraryEntry) -> "EntryResponse":
        return cls(card_id=entry.card_id, quantity=entry.quantity)


class CollectionResponse(BaseModel):
    """A collection with its per-card quantities."""

    id: str
    user_id: str
    name: str
    color: CollectionColor
    icon: CollectionIcon
    card_count: int = 0
    total_value: float = 0.0
    updated_at: datetime | None = None
    entries: list[EntryResponse] = Field(default_factory=list)

    @classmethod
    def from_collection(cls, collection: CardCollection) -> "CollectionResponse":
        return cls(
            id=collection.id,
            user_id=collection.user_id,
            name=collection.name,
            color=collection.color,
            icon=collection.icon,
            card_count=collection.card_count,
            total_value=collection.total_value,
            updated_at=collection.updated_at,
            entries=[EntryResponse.from_entry(e) for e in collection.entries],
        )


class DeckResponse(BaseModel):
    """A deck with its per-card quantities."""

    id: str
    user_id: str
    name: str
    description: str | None = None
    card_count: int = 0
    total_value: float = 0.0
    updated_at: datetime | None = None
    entries: list[EntryResponse] = Field(default_factory=list)

    @classmethod
    def from_deck(cls, deck: Deck) -> "DeckResponse":
        return cls(
            id=deck.id,
            user_id=deck.user_id,
            name=deck.name,
            description=deck.description,
            card_count=deck.card_count,
            total_value=deck.total_value,
            updated_at=deck.updated_at,
            entries=[EntryResponse.from_entry(e) for e in deck.entries],
        )


class CollectionCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, examples=["Binder"])
    color: CollectionColor = CollectionColor.BLUE
    icon: CollectionIcon = CollectionIcon.STAR


class CollectionUpdateRequest(BaseModel):
    """Fields left out keep their current value."""

    name: str | None = Field(default=None, min_length=1)
    color: CollectionColor | None = None
    icon: CollectionIcon | None = None


class DeckCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, examples=["Jinx Aggro"])
    description: str | None = None


class DeckUpdateRequest(BaseModel):
    """Fields left out keep their current value."""

    name: str | None = Field(default=None, min_length=1)
    description: str | None = None


class EntryRequest(BaseModel):
    quantity: int = Field(
        ...,
        ge=0,
        description="Copies to hold (PUT) or to add (POST); holding 0 removes the card",
    )


class DeleteResponse(BaseModel):
    id: str
    deleted: bool


def _not_found(kind: str, record_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"{kind} {record_id} not found",
    )


def _unknown_card(e: library.UnknownCardError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


# --- Collections ---


@collections_router.get("", response_model=list[CollectionResponse])
async def list_collections(
    session: SessionDep,
    install_id: InstallIdDep,
    user_id: str | None = None,
) -> list[CollectionResponse]:
    """Collections of user_id (this install when omitted), most recently edited first."""
    collections = await library.list_collections(session, user_id or install_id)
    return [
        CollectionResponse.from_collection(library.collection_to_model(c)) for c in collections
    ]


@collections_router.post(
    "", response_model=CollectionResponse, status_code=status.HTTP_201_CREATED
)
async def create_collection(
    request: CollectionCreateRequest,
    session: SessionDep,
    install_id: InstallIdDep,
) -> CollectionResponse:
    collection = await library.create_collection(
        session, install_id, request.name, request.color, request.icon
    )
    return CollectionResponse.from_collection(library.collection_to_model(collection))


@collections_router.get("/{collection_id}", response_model=CollectionResponse)
async def get_collection(collection_id: str, session: SessionDep) -> CollectionResponse:
    collection = await library.get_collection(session, collection_id)
    if collection is None:
        raise _not_found("Collection", collection_id)
    return CollectionResponse.from_collection(library.collection_to_model(collection))


@collections_router.patch("/{collection_id}", response_model=CollectionResponse)
async def update_collection(
    collection_id: str,
    request: CollectionUpdateRequest,
    session: SessionDep,
) -> CollectionResponse:
    collection = await library.update_collection(
        session,
        collection_id,
        name=request.name,
        color=request.color,
        icon=request.icon,
    )
    if collection is None:
        raise _not_found("Collection", collection_id)
    return CollectionResponse.from_collection(library.collection_to_model(collection))


@collections_router.delete("/{collection_id}", response_model=DeleteResponse)
async def delete_collection(collection_id: str, session: SessionDep) -> DeleteResponse:
    if not await library.delete_collection(session, collection_id):
        raise _not_found("Collection", collection_id)
    return DeleteResponse(id=collection_id, deleted=True)


@collections_router.put("/{collection_id}/cards/{card_id}", response_model=CollectionResponse)
async def set_collection_card(
    collection_id: str,
    card_id: str,
    request: EntryRequest,
    session: SessionDep,
) -> CollectionResponse:
    """Set how many copies of a card the collection holds."""
    return await _edit_collection(session, collection_id, card_id, request.quantity, add=False)


@collections_router.post("/{collection_id}/cards/{card_id}", response_model=CollectionResponse)
async def add_collection_card(
    collection_id: str,
    card_id: str,
    request: EntryRequest,
    session: SessionDep,
) -> CollectionResponse:
    """Add copies of a card to the collection."""
    return await _edit_collection(session, collection_id, card_id, request.quantity, add=True)


async def _edit_collection(
    session: AsyncSession, collection_id: str, card_id: str, quantity: int, *, add: bool
) -> CollectionResponse:
    try:
        collection = await library.set_collection_card(
            session, collection_id, card_id, quantity, add=add
        )
    except library.UnknownCardError as e:
        raise _unknown_card(e) from e
    if collection is None:
        raise _not_found("Collection", collection_id)
    return CollectionResponse.from_collection(library.collection_to_model(collection))


# --- Decks ---


@decks_router.get("", response_model=list[DeckResponse])
async def list_decks(
    session: SessionDep,
    install_id: InstallIdDep,
    user_id: str | None = None,
) -> list[DeckResponse]:
    """Decks of user_id (this install when omitted), most recently edited first."""
    decks = await library.list_decks(session, user_id or install_id)
    return [DeckResponse.from_deck(library.deck_to_model(d)) for d in decks]


@decks_router.post("", response_model=DeckResponse, status_code=status.HTTP_201_CREATED)
async def create_deck(
    request: DeckCreateRequest,
    session: SessionDep,
    install_id: InstallIdDep,
) -> DeckResponse:
    deck = await library.create_deck(session, install_id, request.name, request.description)
    return DeckResponse.from_deck(library.deck_to_model(deck))


@decks_router.get("/{deck_id}", response_model=DeckResponse)
async def get_deck(deck_id: str, session: SessionDep) -> DeckResponse:
    deck = await library.get_deck(session, deck_id)
    if deck is None:
        raise _not_found("Deck", deck_id)
    return DeckResponse.from_deck(library.deck_to_model(deck))


@decks_router.patch("/{deck_id}", response_model=DeckResponse)
async def update_deck(
    deck_id: str,
    request: DeckUpdateRequest,
    session: SessionDep,
) -> DeckResponse:
    deck = await library.update_deck(
        session, deck_id, name=request.name, description=request.description
    )
    if deck is None:
        raise _not_found("Deck", deck_id)
    return DeckResponse.from_deck(library.deck_to_model(deck))


@decks_router.delete("/{deck_id}", response_model=DeleteResponse)
async def delete_deck(deck_id: str, session: SessionDep) -> DeleteResponse:
    if not await library.delete_deck(session, deck_id):
        raise _not_found("Deck", deck_id)
    return DeleteResponse(id=deck_id, deleted=True)


@decks_router.put("/{deck_id}/cards/{card_id}", response_model=DeckResponse)
async def set_deck_card(
    deck_id: str,
    card_id: str,
    request: EntryRequest,
    session: SessionDep,
) -> DeckResponse:
    """Set how many copies of a card the deck holds."""
    return await _edit_deck(session, deck_id, card_id, request.quantity, add=False)


@decks_router.post("/{deck_id}/cards/{card_id}", response_model=DeckResponse)
async def add_deck_card(
    deck_id: str,
    card_id: str,
    request: EntryRequest,
    session: SessionDep,
) -> DeckResponse:
    """Add copies of a card to the deck."""
    return await _edit_deck(session, deck_id, card_id, request.quantity, add=True)


async def _edit_deck(
    session: AsyncSession, deck_id: str, card_id: str, quantity: int, *, add: bool
) -> DeckResponse:
    try:
        deck = await library.set_deck_card(session, deck_id, card_id, quantity, add=add)
    except library.UnknownCardError as e:
        raise _unknown_card(e) from e
    if deck is None:
        raise _not_found("Deck", deck_id)
    return DeckResponse.from_deck(library.deck_to_model(deck))
