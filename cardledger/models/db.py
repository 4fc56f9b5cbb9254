"""
SQLAlchemy ORM models for persistent storage.

The ledger owns `collections` and `ledger_rows`. The catalog tables
(`card_sets`, `catalog_cards`, `price_history`) are populated by external
sync jobs and are only read by the engine.
"""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class CollectionDB(Base):
    """
    A named grouping of ledger rows owned by one user.

    Deleting a collection deletes all of its rows.
    """

    __tablename__ = "collections"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String(20), default="manual")

    # Rule descriptor for automatic collections, opaque to the ledger
    filters: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    rows: Mapped[list["LedgerRowDB"]] = relationship(
        back_populates="collection",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<CollectionDB(id={self.id}, name={self.name})>"


class LedgerRowDB(Base):
    """
    Ownership record for one (collection, card, variant).

    There is deliberately no unique constraint on the identity key:
    bulk commits append rows, and upserts collapse extras on write.
    """

    __tablename__ = "ledger_rows"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (Index("ix_ledger_identity", "collection_id", "card_id", "variant"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    collection_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("collections.id", ondelete="CASCADE"), index=True
    )
    card_id: Mapped[str] = mapped_column(String(64), ForeignKey("catalog_cards.id"), index=True)
    variant: Mapped[str] = mapped_column(String(50), default="normal")
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # added_at moves on every mutation, created_at never does
    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    collection: Mapped["CollectionDB"] = relationship(back_populates="rows")

    def __repr__(self) -> str:
        return f"<LedgerRowDB(card={self.card_id}, variant={self.variant}, qty={self.quantity})>"


# --- Catalog (read-only) ---


class CardSetDB(Base):
    """A printed set, as synced from the catalog source."""

    __tablename__ = "card_sets"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    series: Mapped[str | None] = mapped_column(String(255), nullable=True)
    images: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    cards: Mapped[list["CatalogCardDB"]] = relationship(back_populates="card_set")


class CatalogCardDB(Base):
    """
    Card metadata and the two marketplace price snapshots.

    Price blobs are stored as the marketplace returned them.
    """

    __tablename__ = "catalog_cards"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    set_id: Mapped[str] = mapped_column(String(64), ForeignKey("card_sets.id"), index=True)
    number: Mapped[str] = mapped_column(String(32))
    name: Mapped[str] = mapped_column(String(255), index=True)
    rarity: Mapped[str | None] = mapped_column(String(100), nullable=True)
    images: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    tcgplayer_prices: Mapped[Any] = mapped_column(JSON, nullable=True)
    cardmarket_prices: Mapped[Any] = mapped_column(JSON, nullable=True)

    synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    card_set: Mapped["CardSetDB"] = relationship(back_populates="cards")

    def __repr__(self) -> str:
        return f"<CatalogCardDB(id={self.id}, number={self.number})>"


class PriceHistoryDB(Base):
    """A discrete historical price point for a card."""

    __tablename__ = "price_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    card_id: Mapped[str] = mapped_column(String(64), ForeignKey("catalog_cards.id"), index=True)
    date: Mapped[str] = mapped_column(String(10))  # YYYY-MM-DD
    market_price: Mapped[float] = mapped_column(Float)
    source: Mapped[str] = mapped_column(String(50), default="tcgplayer")
