"""
Bulk import and duplicate detection endpoints.

Validation matches typed card numbers against one set without writing.
Commit appends already-validated cards to a collection.
"""

from typing import Any, Literal

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from cardledger.api.deps import CatalogDep, SessionDep, UserDep
from cardledger.config import DEFAULT_VARIANT, settings
from cardledger.models.ledger import BulkEntry, CommitItem
from cardledger.services.bulk_importer import BulkImporter
from cardledger.services.duplicate_aggregator import DuplicateAggregator

router = APIRouter(prefix="/bulk", tags=["bulk"])


class BulkEntryRequest(BaseModel):
    """One typed or scanned line."""

    raw_text: str = Field(default="", examples=["Charizard 4/102"])
    parsed_number: str = Field(..., examples=["004"])
    quantity: int = Field(default=1, ge=1)


class ValidateRequest(BaseModel):
    """Request model for batch validation."""

    set_id: str = Field(..., examples=["base1"])
    entries: list[BulkEntryRequest]


class MatchedCard(BaseModel):
    """Summary of the card an entry resolved to."""

    id: str
    name: str
    image: str | None = None
    rarity: str | None = None


class EntryResult(BaseModel):
    """Validation outcome for one entry, in request order."""

    raw_text: str
    parsed_number: str
    quantity: int
    status: Literal["valid", "invalid"]
    card: MatchedCard | None = None
    error: str | None = None


class ValidateResponse(BaseModel):
    """Response model for batch validation."""

    set_id: str
    results: list[EntryResult] = Field(default_factory=list)
    valid_count: int = 0
    invalid_count: int = 0


class CommitCardRequest(BaseModel):
    """A validated card reference to append."""

    card_id: str
    quantity: int = 1
    variant: str | None = None


class CommitRequest(BaseModel):
    """Request model for committing a validated batch."""

    collection_id: str
    cards: list[CommitCardRequest]
    compact: bool = Field(
        default=False,
        description="Merge rows sharing a (card, variant) after inserting",
    )


class CommitResponse(BaseModel):
    """Response model for a batch commit."""

    collection_id: str
    count: int
    merged_keys: int | None = None
    removed_rows: int | None = None


class DuplicateResponse(BaseModel):
    """One (card, variant) held above the threshold."""

    card_id: str
    variant: str
    quantity: int
    excess: int
    row_id: str | None = None
    name: str | None = None
    number: str | None = None
    rarity: str | None = None
    images: dict[str, Any] = Field(default_factory=dict)
    set_id: str | None = None
    set_name: str | None = None
    tcgplayer_prices: Any = None
    cardmarket_prices: Any = None


class DuplicatesResponse(BaseModel):
    """Response model for duplicate detection."""

    collection_id: str
    threshold: int
    duplicates: list[DuplicateResponse] = Field(default_factory=list)
    total_excess: int = 0


@router.post("/validate", response_model=ValidateResponse)
async def validate_batch(
    request: ValidateRequest,
    session: SessionDep,
    catalog: CatalogDep,
) -> ValidateResponse:
    """Match each entry against the cards of one set."""
    entries = [
        BulkEntry(raw_text=e.raw_text, parsed_number=e.parsed_number, quantity=e.quantity)
        for e in request.entries
    ]
    matches = await BulkImporter(session, catalog).validate_batch(request.set_id, entries)

    results = [
        EntryResult(
            raw_text=m.entry.raw_text,
            parsed_number=m.entry.parsed_number,
            quantity=m.entry.quantity,
            status="valid" if m.is_valid else "invalid",
            card=(
                MatchedCard(
                    id=m.card.id, name=m.card.name, image=m.card.image, rarity=m.card.rarity
                )
                if m.card is not None
                else None
            ),
            error=m.error,
        )
        for m in matches
    ]
    valid = sum(1 for r in results if r.status == "valid")
    return ValidateResponse(
        set_id=request.set_id,
        results=results,
        valid_count=valid,
        invalid_count=len(results) - valid,
    )


@router.post("/commit", response_model=CommitResponse)
async def commit_batch(
    request: CommitRequest,
    ctx: UserDep,
    session: SessionDep,
    catalog: CatalogDep,
) -> CommitResponse:
    """
    Append validated cards to a collection, one new row per card.

    Existing holdings of the same card are not merged unless `compact`
    is set.
    """
    items = [
        CommitItem(card_id=c.card_id, quantity=c.quantity, variant=c.variant or DEFAULT_VARIANT)
        for c in request.cards
    ]
    count, compaction = await BulkImporter(session, catalog).commit_batch(
        ctx, request.collection_id, items, compact=request.compact
    )
    return CommitResponse(
        collection_id=request.collection_id,
        count=count,
        merged_keys=compaction.merged_keys if compaction else None,
        removed_rows=compaction.removed_rows if compaction else None,
    )


@router.get("/duplicates", response_model=DuplicatesResponse)
async def find_duplicates(
    ctx: UserDep,
    session: SessionDep,
    collection_id: str = Query(...),
    threshold: int | None = Query(default=None, description="Copies to keep (default 4)"),
) -> DuplicatesResponse:
    """List cards held above the threshold, largest holdings first."""
    aggregator = DuplicateAggregator(session)
    groups = await aggregator.find_duplicates(ctx, collection_id, threshold)

    duplicates = [
        DuplicateResponse(
            card_id=g.card_id,
            variant=g.variant,
            quantity=g.quantity,
            excess=g.excess,
            row_id=g.row_id,
            name=g.name,
            number=g.number,
            rarity=g.rarity,
            images=g.images,
            set_id=g.set_id,
            set_name=g.set_name,
            tcgplayer_prices=g.tcgplayer_prices,
            cardmarket_prices=g.cardmarket_prices,
        )
        for g in groups
    ]
    return DuplicatesResponse(
        collection_id=collection_id,
        threshold=threshold if threshold is not None else settings.duplicate_threshold,
        duplicates=duplicates,
        total_excess=sum(d.excess for d in duplicates),
    )
