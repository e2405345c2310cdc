"""
Card and set API endpoints.

Read-only views over the local catalog mirror.
"""

from datetime import datetime
from typing import Annotated, Literal

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from runebox.api.deps import StoreDep
from runebox.db.store import DEFAULT_PAGE_SIZE
from runebox.models.card import Card, CardSet

router = APIRouter(tags=["cards"])


class CardResponse(BaseModel):
    """A card as stored locally."""

    id: str
    name: str
    set_name: str
    set_abv: str
    card_type: str
    rarity: str
    image_url: str | None = None
    domain: str | None = None
    energy: int | None = None
    might: int | None = None
    power: int | None = None
    tags: list[str] = Field(default_factory=list)
    ability: str | None = None
    price: float = 0.0
    price_change: float | None = None
    updated_at: datetime

    @classmethod
    def from_card(cls, card: Card) -> "CardResponse":
        return cls(
            id=card.id,
            name=card.name,
            set_name=card.set_name,
            set_abv=card.set_abv,
            card_type=card.card_type,
            rarity=card.rarity,
            image_url=card.image_url,
            domain=card.domain,
            energy=card.energy,
            might=card.might,
            power=card.power,
            tags=list(card.tags),
            ability=card.ability,
            price=card.price,
            price_change=card.price_change,
            updated_at=card.updated_at,
        )


class CardListResponse(BaseModel):
    cards: list[CardResponse]
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE


class CardSetResponse(BaseModel):
    id: str
    set_name: str
    set_abv: str
    created_at: datetime

    @classmethod
    def from_set(cls, card_set: CardSet) -> "CardSetResponse":
        return cls(
            id=card_set.id,
            set_name=card_set.set_name,
            set_abv=card_set.set_abv,
            created_at=card_set.created_at,
        )


@router.get("/cards", response_model=CardListResponse)
async def search_cards(
    store: StoreDep,
    q: Annotated[str | None, Query(description="Substring of the card name")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
) -> CardListResponse:
    """Cards matching q, most recently updated first."""
    cards = await store.search_cards(q, page=page)
    return CardListResponse(
        cards=[CardResponse.from_card(c) for c in cards],
        page=page,
        page_size=DEFAULT_PAGE_SIZE,
    )


@router.get("/cards/movers", response_model=list[CardResponse])
async def price_movers(
    store: StoreDep,
    direction: Literal["up", "down"] = "up",
    limit: Annotated[int, Query(ge=1, le=50)] = 3,
) -> list[CardResponse]:
    """Biggest weekly price gainers (up) or losers (down)."""
    cards = await store.price_movers(ascending=direction == "down", limit=limit)
    return [CardResponse.from_card(c) for c in cards]


@router.get("/cards/{card_id}", response_model=CardResponse)
async def get_card(card_id: str, store: StoreDep) -> CardResponse:
    card = await store.get_card(card_id)
    if card is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Card '{card_id}' not found",
        )
    return CardResponse.from_card(card)


@router.get("/sets", response_model=list[CardSetResponse])
async def list_sets(store: StoreDep) -> list[CardSetResponse]:
    """All sets, newest first."""
    return [CardSetResponse.from_set(s) for s in await store.list_sets()]


@router.get("/sets/{set_abv}/cards", response_model=list[CardResponse])
async def set_cards(
    set_abv: str,
    store: StoreDep,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> list[CardResponse]:
    """Most valuable cards of a set."""
    return [CardResponse.from_card(c) for c in await store.cards_by_set(set_abv, limit=limit)]
