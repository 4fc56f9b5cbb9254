from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from cardledger.config import DEFAULT_VARIANT


class UpsertAction(str, Enum):
    """What an upsert did to the identity key."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass(frozen=True, slots=True)
class UpsertResult:
    """
    Outcome of a single-key upsert.

    `row_id` is None when the key ended with no row. `removed_duplicates`
    counts extra rows collapsed while converging the key to a single row.
    """

    action: UpsertAction
    row_id: str | None = None
    quantity: int = 0
    removed_duplicates: int = 0


@dataclass(frozen=True, slots=True)
class BulkEntry:
    """One user-entered line of a bulk import."""

    raw_text: str
    parsed_number: str
    quantity: int = 1


@dataclass(frozen=True, slots=True)
class CardSummary:
    """The card a bulk entry resolved to."""

    id: str
    name: str
    image: str | None = None
    rarity: str | None = None


@dataclass(frozen=True, slots=True)
class MatchResult:
    """Validation outcome for one bulk entry."""

    entry: BulkEntry
    status: str  # "valid" | "invalid"
    card: CardSummary | None = None
    error: str | None = None

    @property
    def is_valid(self) -> bool:
        return self.status == "valid"


@dataclass(frozen=True, slots=True)
class CommitItem:
    """An already-validated card reference to append to a collection."""

    card_id: str
    quantity: int = 1
    variant: str = DEFAULT_VARIANT


@dataclass(frozen=True, slots=True)
class CompactionResult:
    """Counts from merging duplicate rows in a collection."""

    merged_keys: int = 0
    removed_rows: int = 0


@dataclass(frozen=True, slots=True)
class RemovalResult:
    """
    Outcome of removing cards from a collection.

    Manual collections lose their rows (`removed_rows`). Auto collections
    keep their rows and record the cards in `excluded_card_ids`, the full
    exclusion list after the call.
    """

    removed_rows: int = 0
    excluded_card_ids: list[str] = field(default_factory=list)


@dataclass
class DuplicateGroup:
    """
    Holdings of one (card, variant) in a collection above the threshold.

    `excess` is how many copies could be sold while keeping `threshold`.
    """

    card_id: str
    variant: str
    quantity: int
    excess: int
    row_id: str | None = None
    name: str | None = None
    number: str | None = None
    rarity: str | None = None
    images: dict[str, Any] = field(default_factory=dict)
    set_id: str | None = None
    set_name: str | None = None
    tcgplayer_prices: Any = None
    cardmarket_prices: Any = None
