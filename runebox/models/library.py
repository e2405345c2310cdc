from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class CollectionColor(str, Enum):
    BLUE = "#3b82f6"
    GREEN = "#22c55e"
    ORANGE = "#f97316"
    RED = "#ef4444"
    PURPLE = "#a855f7"
    CYAN = "#06b6d4"


class CollectionIcon(str, Enum):
    STAR = "star"
    DIAMOND = "diamond"
    CUBE = "cube"
    INBOX = "inbox"
    BOLT = "bolt"


@dataclass(frozen=True, slots=True)
class LibraryEntry:
    """How many copies of one catalog card a collection or deck holds."""

    card_id: str
    quantity: int


@dataclass(frozen=True, slots=True)
class CardCollection:
    """
    A named group of owned cards.

    Attributes:
        id: Random UUID assigned on creation
        user_id: Install id of the owner
        name: Display name
        color: Accent color shown with the collection
        icon: Icon shown with the collection
        card_count: Sum of entry quantities
        total_value: Sum of quantity * current card price when last edited
        updated_at: Time of the last edit
        entries: Per-card quantities, ordered by card id
    """

    id: str
    user_id: str
    name: str
    color: CollectionColor
    icon: CollectionIcon
    card_count: int = 0
    total_value: float = 0.0
    updated_at: datetime | None = None
    entries: tuple[LibraryEntry, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class Deck:
    """A deck under construction; totals follow the same rules as collections."""

    id: str
    user_id: str
    name: str
    description: str | None = None
    card_count: int = 0
    total_value: float = 0.0
    updated_at: datetime | None = None
    entries: tuple[LibraryEntry, ...] = field(default_factory=tuple)
