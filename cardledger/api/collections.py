"""
Collection API endpoints.

Create, list, inspect, update and delete collections. Remove cards from
a collection and compact its rows.
"""

from datetime import datetime
from typing import Any, Literal

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from cardledger.api.deps import CatalogDep, SessionDep, UserDep
from cardledger.db import get_collection, list_collections, list_rows
from cardledger.models.db import CollectionDB
from cardledger.models.failure import NotFoundError
from cardledger.services.ledger_reconciler import UNSET, LedgerReconciler

router = APIRouter(prefix="/collections", tags=["collections"])


class CollectionCreateRequest(BaseModel):
    """Request model for creating a collection."""

    name: str = Field(..., description="Display name", examples=["Base Set binder"])
    type: Literal["manual", "auto"] = Field(
        default="manual",
        description="manual: rows are edited by hand; auto: rows follow `filters`",
    )
    description: str | None = None
    filters: dict[str, Any] | None = Field(
        default=None,
        description="Rule descriptor for automatic collections (stored as-is)",
        examples=[{"set": "base1", "rarity": "Rare Holo"}],
    )


class CollectionUpdateRequest(BaseModel):
    """Fields to change on a collection. Omitted fields keep their value."""

    name: str | None = Field(default=None, description="New display name")
    description: str | None = Field(default=None, description="New description; null clears it")


class RemoveCardsRequest(BaseModel):
    """Cards to take out of a collection."""

    card_ids: list[str] = Field(..., description="Card ids; every variant is removed")


class RemoveCardsResponse(BaseModel):
    """What removing cards did to the collection."""

    collection_id: str
    removed_rows: int = 0
    excluded_card_ids: list[str] = Field(
        default_factory=list,
        description="Full exclusion list of an auto collection after the call",
    )


class CollectionResponse(BaseModel):
    """Response model for collection data."""

    id: str
    user_id: str
    name: str
    type: str
    description: str | None = None
    filters: dict[str, Any] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class LedgerRowResponse(BaseModel):
    """One stored ledger row."""

    id: str
    card_id: str
    variant: str
    quantity: int
    notes: str | None = None
    added_at: datetime | None = None


class CollectionItemsResponse(BaseModel):
    """Rows of a collection."""

    collection_id: str
    items: list[LedgerRowResponse] = Field(default_factory=list)
    total_cards: int = 0


class DeleteResponse(BaseModel):
    """Response model for delete operations."""

    collection_id: str
    deleted: bool


class CompactionResponse(BaseModel):
    """Response model for compaction."""

    collection_id: str
    merged_keys: int
    removed_rows: int


def _to_response(collection: CollectionDB) -> CollectionResponse:
    return CollectionResponse(
        id=collection.id,
        user_id=collection.user_id,
        name=collection.name,
        type=collection.type,
        description=collection.description,
        filters=collection.filters,
        created_at=collection.created_at,
        updated_at=collection.updated_at,
    )


@router.post("", response_model=CollectionResponse, status_code=status.HTTP_201_CREATED)
async def create_collection(
    request: CollectionCreateRequest,
    ctx: UserDep,
    session: SessionDep,
    catalog: CatalogDep,
) -> CollectionResponse:
    """Create a new collection for the current user."""
    reconciler = LedgerReconciler(session, catalog)
    collection = await reconciler.create_collection(
        ctx,
        request.name,
        collection_type=request.type,
        description=request.description,
        filters=request.filters,
    )
    return _to_response(collection)


@router.get("", response_model=list[CollectionResponse])
async def get_collections(ctx: UserDep, session: SessionDep) -> list[CollectionResponse]:
    """List the current user's collections."""
    return [_to_response(c) for c in await list_collections(session, ctx)]


@router.get("/{collection_id}", response_model=CollectionResponse)
async def get_one_collection(
    collection_id: str, ctx: UserDep, session: SessionDep
) -> CollectionResponse:
    """Get a single collection."""
    collection = await get_collection(session, ctx, collection_id)
    if collection is None:
        raise NotFoundError("collection", collection_id)
    return _to_response(collection)


@router.put("/{collection_id}", response_model=CollectionResponse)
async def update_collection(
    collection_id: str,
    request: CollectionUpdateRequest,
    ctx: UserDep,
    session: SessionDep,
    catalog: CatalogDep,
) -> CollectionResponse:
    """Rename a collection or change its description."""
    fields = request.model_fields_set
    collection = await LedgerReconciler(session, catalog).update_collection(
        ctx,
        collection_id,
        name=request.name if "name" in fields else UNSET,  # type: ignore[arg-type]
        description=request.description if "description" in fields else UNSET,
    )
    return _to_response(collection)


@router.get("/{collection_id}/items", response_model=CollectionItemsResponse)
async def get_collection_items(
    collection_id: str, ctx: UserDep, session: SessionDep
) -> CollectionItemsResponse:
    """List every stored row of a collection, duplicates included."""
    if await get_collection(session, ctx, collection_id) is None:
        raise NotFoundError("collection", collection_id)

    rows = await list_rows(session, collection_id)
    return CollectionItemsResponse(
        collection_id=collection_id,
        items=[
            LedgerRowResponse(
                id=row.id,
                card_id=row.card_id,
                variant=row.variant,
                quantity=row.quantity,
                notes=row.notes,
                added_at=row.added_at,
            )
            for row in rows
        ],
        total_cards=sum(row.quantity for row in rows),
    )


@router.delete("/{collection_id}/items", response_model=RemoveCardsResponse)
async def remove_collection_cards(
    collection_id: str,
    request: RemoveCardsRequest,
    ctx: UserDep,
    session: SessionDep,
    catalog: CatalogDep,
) -> RemoveCardsResponse:
    """
    Remove cards from a collection.

    Manual collections lose the rows. Auto collections record the cards as
    excluded and keep their rows.
    """
    result = await LedgerReconciler(session, catalog).remove_cards(
        ctx, collection_id, request.card_ids
    )
    return RemoveCardsResponse(
        collection_id=collection_id,
        removed_rows=result.removed_rows,
        excluded_card_ids=result.excluded_card_ids,
    )


@router.delete("/{collection_id}", response_model=DeleteResponse)
async def delete_collection(
    collection_id: str,
    ctx: UserDep,
    session: SessionDep,
    catalog: CatalogDep,
) -> DeleteResponse:
    """
    Delete a collection and all of its rows.

    This is an explicit, irreversible operation.
    """
    deleted = await LedgerReconciler(session, catalog).delete_collection(ctx, collection_id)
    return DeleteResponse(collection_id=collection_id, deleted=deleted)


@router.post("/{collection_id}/compact", response_model=CompactionResponse)
async def compact_collection(
    collection_id: str,
    ctx: UserDep,
    session: SessionDep,
    catalog: CatalogDep,
) -> CompactionResponse:
    """Merge rows that share a (card, variant) key into one row each."""
    result = await LedgerReconciler(session, catalog).compact_collection(ctx, collection_id)
    return CompactionResponse(
        collection_id=collection_id,
        merged_keys=result.merged_keys,
        removed_rows=result.removed_rows,
    )
