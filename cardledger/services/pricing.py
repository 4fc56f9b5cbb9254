"""
Variant-aware unit price selection.

Two snapshots are available per card:

- TCGplayer: keyed by printing variant ("normal", "holofoil", ...), each
  holding market/mid/low statistics, quoted in USD.
- Cardmarket: flat aggregates (trendPrice, averageSellPrice, avg1/7/30,
  reverseHolo*), quoted in EUR.

No currency conversion happens here unless a `CurrencyConverter` is
passed explicitly.
"""

from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

from cardledger.models.catalog import CatalogCard, PricePoint
from cardledger.models.valuation import SelectedPrice

TCGPLAYER = "tcgplayer"
CARDMARKET = "cardmarket"

SOURCE_CURRENCY = {TCGPLAYER: "USD", CARDMARKET: "EUR"}

# Blob keys tried per ledger variant, in order
TCGPLAYER_VARIANT_KEYS: dict[str, tuple[str, ...]] = {
    "normal": ("normal", "unlimited", "holofoil"),
    "holofoil": ("holofoil", "normal", "unlimited"),
    "reverseHolofoil": ("reverseHolofoil", "reverse-holofoil"),
    "1stEditionHolofoil": ("1stEditionHolofoil", "1st-edition", "1stEdition"),
    "1stEditionNormal": ("1stEditionNormal", "1st-edition", "1stEdition"),
}

# Statistic preference within one TCGplayer variant entry
TCGPLAYER_FIELDS = ("marketPrice", "market", "midPrice", "mid", "lowPrice", "low")

# Metadata entries that share the TCGplayer blob with the variants
TCGPLAYER_METADATA_KEYS = frozenset({"updated", "updatedAt", "unit", "url"})

CARDMARKET_REVERSE_FIELDS = ("reverseHoloTrend", "reverseHoloSell", "reverseHoloLow")
CARDMARKET_DEFAULT_FIELDS = ("trendPrice", "averageSellPrice", "lowPrice")

# Rates used when conversion is requested without a configured table
DEFAULT_EXCHANGE_RATES: dict[tuple[str, str], float] = {
    ("USD", "EUR"): 0.92,
    ("EUR", "USD"): 1.09,
    ("USD", "GBP"): 0.79,
    ("GBP", "USD"): 1.27,
    ("EUR", "GBP"): 0.86,
    ("GBP", "EUR"): 1.16,
}

PRICE_STALE_AFTER = timedelta(hours=24)


def _positive(value: Any) -> float | None:
    """Return `value` as a positive float, or None."""
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def _first_positive(data: Any, fields: tuple[str, ...]) -> float | None:
    if not isinstance(data, dict):
        return None
    for name in fields:
        price = _positive(data.get(name))
        if price is not None:
            return price
    return None


def tcgplayer_unit_price(prices: dict[str, Any] | None, variant: str) -> float | None:
    """
    Unit price for a variant from a TCGplayer snapshot.

    The variant's own entries are tried first; if none carries a positive
    price, any variant entry with one is used.
    """
    if not prices:
        return None

    keys = TCGPLAYER_VARIANT_KEYS.get(variant, (variant, "normal", "unlimited", "holofoil"))
    for key in keys:
        price = _first_positive(prices.get(key), TCGPLAYER_FIELDS)
        if price is not None:
            return price

    for key, entry in prices.items():
        if key in TCGPLAYER_METADATA_KEYS:
            continue
        price = _first_positive(entry, TCGPLAYER_FIELDS)
        if price is not None:
            return price
    return None


def cardmarket_unit_price(prices: dict[str, Any] | None, variant: str) -> float | None:
    """Unit price for a variant from a Cardmarket snapshot."""
    if not prices:
        return None
    if variant.lower().startswith("reverse"):
        price = _first_positive(prices, CARDMARKET_REVERSE_FIELDS)
        if price is not None:
            return price
    return _first_positive(prices, CARDMARKET_DEFAULT_FIELDS)


class CurrencyConverter(Protocol):
    """Explicit currency conversion collaborator."""

    def convert(self, amount: float, source: str, target: str) -> float | None: ...


class FixedRateConverter:
    """Converts with a fixed table of (source, target) -> rate."""

    def __init__(self, rates: dict[tuple[str, str], float]) -> None:
        self._rates = {(s.upper(), t.upper()): rate for (s, t), rate in rates.items()}

    def convert(self, amount: float, source: str, target: str) -> float | None:
        source, target = source.upper(), target.upper()
        if source == target:
            return amount
        rate = self._rates.get((source, target))
        if rate is None:
            return None
        return round(amount * rate, 2)


def select_unit_price(
    card: CatalogCard,
    variant: str,
    currency: str,
    converter: CurrencyConverter | None = None,
) -> SelectedPrice | None:
    """
    Pick the unit price used to value one ledger row.

    The source quoted in the target currency is preferred. Otherwise the
    other source is used; its price is converted only when a converter is
    given and knows the rate, and is returned in its own currency otherwise.
    """
    currency = currency.upper()
    candidates = {
        TCGPLAYER: tcgplayer_unit_price(card.tcgplayer_prices, variant),
        CARDMARKET: cardmarket_unit_price(card.cardmarket_prices, variant),
    }
    native = [s for s in (CARDMARKET, TCGPLAYER) if SOURCE_CURRENCY[s] == currency]
    others = [s for s in (TCGPLAYER, CARDMARKET) if s not in native]

    for source in native + others:
        amount = candidates[source]
        if amount is None:
            continue
        source_currency = SOURCE_CURRENCY[source]
        if source_currency != currency and converter is not None:
            converted = converter.convert(amount, source_currency, currency)
            if converted is not None:
                return SelectedPrice(converted, source, currency, converted=True)
        return SelectedPrice(amount, source, source_currency)
    return None


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps from the store as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def is_price_stale(
    synced_at: datetime | None,
    now: datetime | None = None,
    max_age: timedelta = PRICE_STALE_AFTER,
) -> bool:
    """True when the snapshot is older than `max_age` or was never synced."""
    if synced_at is None:
        return True
    if now is None:
        now = datetime.now(UTC)
    return as_utc(now) - as_utc(synced_at) > max_age


def infer_price_history(
    cardmarket_prices: dict[str, Any] | None, now: datetime | None = None
) -> list[PricePoint]:
    """
    Build a 3-point trend from Cardmarket rolling averages.

    Points at 30 days ago (avg30), 7 days ago (avg7) and today (avg1,
    else trendPrice, else averageSellPrice). Missing or non-positive
    values are left out.
    """
    if not cardmarket_prices:
        return []
    if now is None:
        now = datetime.now(UTC)

    candidates = [
        (now - timedelta(days=30), _positive(cardmarket_prices.get("avg30")), "avg30"),
        (now - timedelta(days=7), _positive(cardmarket_prices.get("avg7")), "avg7"),
        (
            now,
            _first_positive(cardmarket_prices, ("avg1", "trendPrice", "averageSellPrice")),
            "current",
        ),
    ]
    return [
        PricePoint(date=when.isoformat(), price=price, source=f"{CARDMARKET} ({label})")
        for when, price, label in candidates
        if price is not None
    ]
