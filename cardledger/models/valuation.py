from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class SelectedPrice:
    """A unit price picked from one marketplace snapshot."""

    amount: float
    source: str  # "tcgplayer" | "cardmarket"
    currency: str
    converted: bool = False


@dataclass
class ValuationItem:
    """One ledger row joined with its catalog price."""

    card_id: str
    card_name: str
    card_number: str
    rarity: str | None
    set_id: str
    set_name: str | None
    collection_id: str
    variant: str
    quantity: int
    unit_price: float | None = None
    price_source: str | None = None
    price_currency: str | None = None
    currency_mismatch: bool = False
    line_total: float = 0.0
    stale: bool = False


@dataclass
class PortfolioValuation:
    """
    Valuation of a set of ledger rows in one target currency.

    `total` sums only lines priced in `currency`. Lines left unconverted
    (`currency_mismatch`) are summed per currency in `totals_by_currency`,
    which also carries the `currency` total.
    """

    currency: str
    items: list[ValuationItem] = field(default_factory=list)
    total: float = 0.0
    totals_by_currency: dict[str, float] = field(default_factory=dict)
    stale_card_ids: list[str] = field(default_factory=list)
    unpriced_card_ids: list[str] = field(default_factory=list)

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def has_currency_mismatch(self) -> bool:
        return any(item.currency_mismatch for item in self.items)
