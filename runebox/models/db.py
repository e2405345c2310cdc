"""
SQLAlchemy ORM models for the local catalog mirror and the user's
collections and decks.

Models mirror the dataclass models but add database persistence. The column
layout here is the current target shape; runebox.db.migrations rebuilds
older on-device tables into exactly this shape.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
)
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class UTCDateTime(TypeDecorator[datetime]):
    """
    Timezone-aware datetime stored as naive UTC with microsecond precision.

    SQLite keeps DATETIME as ISO text, so fixed-width UTC values sort and
    aggregate (MAX) chronologically.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC).replace(tzinfo=None)

    def process_result_value(self, value: Any, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        return value.replace(tzinfo=UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class CardDB(Base):
    """
    Denormalized catalog card.

    Written only by the sync engine. price is NOT NULL with a 0 default so an
    unpriced card never surfaces as null.
    """

    __tablename__ = "cards"
    __table_args__ = (
        Index("idx_cards_name", "name"),
        Index("idx_cards_set", "set_abv"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)

    set_name: Mapped[str] = mapped_column(String)
    set_abv: Mapped[str] = mapped_column(String)

    image_url: Mapped[str | None] = mapped_column(String, nullable=True)
    name: Mapped[str] = mapped_column(String)

    card_type: Mapped[str] = mapped_column(String)
    rarity: Mapped[str] = mapped_column(String)

    domain: Mapped[str | None] = mapped_column(String, nullable=True)
    energy: Mapped[int | None] = mapped_column(Integer, nullable=True)
    might: Mapped[int | None] = mapped_column(Integer, nullable=True)
    power: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # JSON array text
    tags: Mapped[str] = mapped_column(Text, default="[]", server_default="[]")
    ability: Mapped[str | None] = mapped_column(Text, nullable=True)

    price: Mapped[float] = mapped_column(Float, default=0.0, server_default="0")
    price_change: Mapped[float | None] = mapped_column(Float, nullable=True)

    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<CardDB(id={self.id}, name={self.name})>"


class CardSetDB(Base):
    """Catalog set."""

    __tablename__ = "sets"
    __table_args__ = (
        Index("idx_sets_name", "set_name"),
        Index("idx_sets_abv", "set_abv"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    set_name: Mapped[str] = mapped_column(String)
    set_abv: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<CardSetDB(abv={self.set_abv})>"


class MetaDB(Base):
    """
    Key/value bookkeeping.

    Holds the schema version, the per-install identity and the last
    background tick time.
    """

    __tablename__ = "meta"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<MetaDB(key={self.key})>"


def _new_id() -> str:
    return str(uuid4())


class CollectionDB(Base):
    """
    A user's named card collection.

    card_count and total_value are denormalized from the entries and
    recomputed whenever the entries change.
    """

    __tablename__ = "collections"
    __table_args__ = (Index("idx_collections_user", "user_id"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String)
    name: Mapped[str] = mapped_column(String)

    total_value: Mapped[float] = mapped_column(Float, default=0.0, server_default="0")
    card_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    color: Mapped[str] = mapped_column(String)
    icon: Mapped[str] = mapped_column(String)

    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    entries: Mapped[list["CollectionEntryDB"]] = relationship(
        back_populates="collection", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<CollectionDB(id={self.id}, name={self.name})>"


class CollectionEntryDB(Base):
    """Copies of one card in a collection."""

    __tablename__ = "collection_entries"
    __table_args__ = (UniqueConstraint("collection_id", "card_id"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    collection_id: Mapped[str] = mapped_column(
        String, ForeignKey("collections.id", ondelete="CASCADE")
    )
    card_id: Mapped[str] = mapped_column(String, ForeignKey("cards.id", ondelete="CASCADE"))
    quantity: Mapped[int] = mapped_column(Integer)

    collection: Mapped[CollectionDB] = relationship(back_populates="entries")

    def __repr__(self) -> str:
        return f"<CollectionEntryDB(card_id={self.card_id}, quantity={self.quantity})>"


class DeckDB(Base):
    """A user's deck; totals are maintained like CollectionDB's."""

    __tablename__ = "decks"
    __table_args__ = (Index("idx_decks_user", "user_id"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String)
    name: Mapped[str] = mapped_column(String)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    total_value: Mapped[float] = mapped_column(Float, default=0.0, server_default="0")
    card_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    entries: Mapped[list["DeckEntryDB"]] = relationship(
        back_populates="deck", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<DeckDB(id={self.id}, name={self.name})>"


class DeckEntryDB(Base):
    """Copies of one card in a deck."""

    __tablename__ = "deck_entries"
    __table_args__ = (UniqueConstraint("deck_id", "card_id"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    deck_id: Mapped[str] = mapped_column(String, ForeignKey("decks.id", ondelete="CASCADE"))
    card_id: Mapped[str] = mapped_column(String, ForeignKey("cards.id", ondelete="CASCADE"))
    quantity: Mapped[int] = mapped_column(Integer)

    deck: Mapped[DeckDB] = relationship(back_populates="entries")

    def __repr__(self) -> str:
        return f"<DeckEntryDB(card_id={self.card_id}, quantity={self.quantity})>"
