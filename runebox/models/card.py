from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True, slots=True)
class Card:
    """
    A catalog card as mirrored from the hosted catalog.

    Attributes:
        id: Catalog-wide unique key, stable across syncs
        set_name: Full set name (e.g., "Origins")
        set_abv: Set abbreviation (e.g., "OGN")
        name: Display name
        card_type: Champion, Legend, Unit, Spell, Gear, Rune, Battlefield or Token
        rarity: common, uncommon, rare, epic or showcase
        updated_at: Remote modification time (aware, UTC); drives last-write-wins
            and the incremental sync watermark
        image_url: Card image reference
        domain: Domain/color
        energy: Energy cost
        might: Might stat
        power: Power stat
        tags: Card tags
        ability: Rules text
        price: Market price, 0 when the catalog has none
        price_change: Price delta since the previous week, if known
    """

    id: str
    set_name: str
    set_abv: str
    name: str
    card_type: str
    rarity: str
    updated_at: datetime
    image_url: str | None = None
    domain: str | None = None
    energy: int | None = None
    might: int | None = None
    power: int | None = None
    tags: tuple[str, ...] = field(default_factory=tuple)
    ability: str | None = None
    price: float = 0.0
    price_change: float | None = None


@dataclass(frozen=True, slots=True)
class CardSet:
    """A card set; mirrored alongside cards using created_at as its watermark."""

    id: str
    set_name: str
    set_abv: str
    created_at: datetime
