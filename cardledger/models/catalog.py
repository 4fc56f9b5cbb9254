from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True, slots=True)
class CatalogCard:
    """
    Read-only card metadata supplied by the catalog.

    Attributes:
        id: Catalog identity (e.g. "base1-4")
        set_id: Containing set
        number: Printed number, free-form, may carry leading zeros
        tcgplayer_prices: Variant-keyed price blob, quoted in USD
        cardmarket_prices: Flat aggregate blob, quoted in EUR
        synced_at: When the price snapshots were last refreshed
    """

    id: str
    set_id: str
    number: str
    name: str
    rarity: str | None = None
    images: dict[str, Any] = field(default_factory=dict)
    set_name: str | None = None
    tcgplayer_prices: dict[str, Any] | None = None
    cardmarket_prices: dict[str, Any] | None = None
    synced_at: datetime | None = None

    @property
    def image(self) -> str | None:
        """Preferred display image, small first."""
        return self.images.get("small") or self.images.get("large")


@dataclass(frozen=True, slots=True)
class PricePoint:
    """A single dated price observation."""

    date: str
    price: float
    source: str
