"""
Ledger API endpoints.

Single-key quantity writes and the per-card ownership view.
"""

from fastapi import APIRouter
from pydantic import BaseModel, Field

from cardledger.api.deps import CatalogDep, SessionDep, UserDep
from cardledger.db import get_ownership
from cardledger.models.ledger import UpsertAction
from cardledger.services.ledger_reconciler import UNSET, LedgerReconciler

router = APIRouter(prefix="/ledger", tags=["ledger"])


class UpsertRequest(BaseModel):
    """Request model for setting the quantity of one card."""

    collection_id: str
    card_id: str = Field(..., examples=["base1-4"])
    variant: str | None = Field(
        default=None,
        description="Printing variant; 'normal' when omitted",
        examples=["holofoil"],
    )
    quantity: int = Field(
        ...,
        description="Absolute quantity to hold; 0 or less removes the card",
    )
    notes: str | None = Field(
        default=None,
        description="Replaces stored notes when present; null clears them",
    )


class UpsertResponse(BaseModel):
    """Response model for an upsert."""

    action: UpsertAction
    row_id: str | None = None
    quantity: int = 0
    removed_duplicates: int = 0


class OwnershipResponse(BaseModel):
    """Total copies held per card across all collections and variants."""

    user_id: str
    cards: dict[str, int] = Field(default_factory=dict)
    total_cards: int = 0
    unique_cards: int = 0


@router.post("", response_model=UpsertResponse)
async def upsert_card(
    request: UpsertRequest,
    ctx: UserDep,
    session: SessionDep,
    catalog: CatalogDep,
) -> UpsertResponse:
    """
    Set the held quantity of one (card, variant) in a collection.

    Repeating the same request leaves the ledger unchanged.
    """
    # An omitted notes field keeps the stored notes; an explicit null clears them
    notes = request.notes if "notes" in request.model_fields_set else UNSET

    result = await LedgerReconciler(session, catalog).upsert(
        ctx,
        request.collection_id,
        request.card_id,
        request.quantity,
        variant=request.variant,
        notes=notes,
    )
    return UpsertResponse(
        action=result.action,
        row_id=result.row_id,
        quantity=result.quantity,
        removed_duplicates=result.removed_duplicates,
    )


@router.get("/ownership", response_model=OwnershipResponse)
async def get_user_ownership(ctx: UserDep, session: SessionDep) -> OwnershipResponse:
    """Owned quantity per card id, summed over collections and variants."""
    cards = await get_ownership(session, ctx)
    return OwnershipResponse(
        user_id=ctx.user_id,
        cards=cards,
        total_cards=sum(cards.values()),
        unique_cards=len(cards),
    )
