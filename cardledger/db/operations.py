"""
Database CRUD operations.

Async building blocks for collections and ledger rows. Business rules
(identity-key convergence, quantity semantics, error translation) live in
the services layer; these functions only read and write.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cardledger.models.context import UserContext
from cardledger.models.db import CollectionDB, LedgerRowDB

# --- Collection Operations ---


async def get_collection(
    session: AsyncSession, ctx: UserContext, collection_id: str, *, for_update: bool = False
) -> CollectionDB | None:
    """
    Get a collection owned by the context user.

    Returns None if it does not exist or belongs to another user. With
    `for_update` the row is locked until the transaction ends, which
    serializes writers on the same collection where the backend supports it.
    """
    stmt = select(CollectionDB).where(
        CollectionDB.id == collection_id,
        CollectionDB.user_id == ctx.user_id,
    )
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_collections(session: AsyncSession, ctx: UserContext) -> list[CollectionDB]:
    """List the context user's collections, oldest first."""
    result = await session.execute(
        select(CollectionDB)
        .where(CollectionDB.user_id == ctx.user_id)
        .order_by(CollectionDB.created_at, CollectionDB.id)
    )
    return list(result.scalars().all())


async def list_all_collections(session: AsyncSession) -> list[CollectionDB]:
    """List every collection regardless of owner. For maintenance jobs."""
    result = await session.execute(
        select(CollectionDB).order_by(CollectionDB.user_id, CollectionDB.id)
    )
    return list(result.scalars().all())


async def insert_collection(
    session: AsyncSession,
    ctx: UserContext,
    name: str,
    collection_type: str = "manual",
    description: str | None = None,
    filters: dict[str, Any] | None = None,
) -> CollectionDB:
    """Create a new collection for the context user."""
    collection = CollectionDB(
        user_id=ctx.user_id,
        name=name,
        type=collection_type,
        description=description,
        filters=filters,
    )
    session.add(collection)
    await session.flush()
    return collection


async def remove_collection(session: AsyncSession, collection: CollectionDB) -> int:
    """
    Delete a collection together with its ledger rows.

    Rows are removed explicitly so the cascade holds even on backends
    without foreign key enforcement. Returns the number of rows removed.
    """
    result = await session.execute(
        delete(LedgerRowDB).where(LedgerRowDB.collection_id == collection.id)
    )
    await session.delete(collection)
    await session.flush()
    # rowcount is available on DELETE results; type stubs incomplete for async
    return int(result.rowcount)  # type: ignore[attr-defined]


# --- Ledger Row Operations ---


async def find_rows(
    session: AsyncSession, collection_id: str, card_id: str, variant: str
) -> list[LedgerRowDB]:
    """
    Get every row stored for an identity key.

    Ordered oldest first so the surviving row is chosen consistently.
    """
    result = await session.execute(
        select(LedgerRowDB)
        .where(
            LedgerRowDB.collection_id == collection_id,
            LedgerRowDB.card_id == card_id,
            LedgerRowDB.variant == variant,
        )
        .order_by(LedgerRowDB.created_at, LedgerRowDB.id)
        .with_for_update()
    )
    return list(result.scalars().all())


async def list_rows(session: AsyncSession, collection_id: str) -> list[LedgerRowDB]:
    """Get all rows of a collection, oldest first."""
    result = await session.execute(
        select(LedgerRowDB)
        .where(LedgerRowDB.collection_id == collection_id)
        .order_by(LedgerRowDB.created_at, LedgerRowDB.id)
    )
    return list(result.scalars().all())


async def list_user_rows(
    session: AsyncSession, ctx: UserContext, collection_id: str | None = None
) -> list[LedgerRowDB]:
    """
    Get the context user's rows with a positive quantity.

    Optionally restricted to one collection.
    """
    stmt = (
        select(LedgerRowDB)
        .join(CollectionDB, LedgerRowDB.collection_id == CollectionDB.id)
        .where(CollectionDB.user_id == ctx.user_id, LedgerRowDB.quantity > 0)
        .order_by(LedgerRowDB.collection_id, LedgerRowDB.created_at, LedgerRowDB.id)
    )
    if collection_id is not None:
        stmt = stmt.where(LedgerRowDB.collection_id == collection_id)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def insert_row(
    session: AsyncSession,
    collection_id: str,
    card_id: str,
    variant: str,
    quantity: int,
    notes: str | None = None,
) -> LedgerRowDB:
    """Insert a single ledger row."""
    row = LedgerRowDB(
        collection_id=collection_id,
        card_id=card_id,
        variant=variant,
        quantity=quantity,
        notes=notes,
    )
    session.add(row)
    await session.flush()
    return row


async def insert_rows(session: AsyncSession, rows: list[LedgerRowDB]) -> int:
    """Batch-insert prepared rows. Returns the number inserted."""
    session.add_all(rows)
    await session.flush()
    return len(rows)


async def delete_rows(session: AsyncSession, row_ids: list[str]) -> int:
    """Delete rows by id. Returns the number of deleted records."""
    if not row_ids:
        return 0
    result = await session.execute(delete(LedgerRowDB).where(LedgerRowDB.id.in_(row_ids)))
    return int(result.rowcount)  # type: ignore[attr-defined]


async def delete_card_rows(session: AsyncSession, collection_id: str, card_ids: list[str]) -> int:
    """Delete every variant of the given cards from one collection only."""
    if not card_ids:
        return 0
    result = await session.execute(
        delete(LedgerRowDB).where(
            LedgerRowDB.collection_id == collection_id,
            LedgerRowDB.card_id.in_(card_ids),
        )
    )
    return int(result.rowcount)  # type: ignore[attr-defined]


def touch(row: LedgerRowDB) -> None:
    """Stamp a row as just modified."""
    row.added_at = datetime.now(UTC)


async def get_ownership(session: AsyncSession, ctx: UserContext) -> dict[str, int]:
    """
    Total owned quantity per card across all collections and variants.

    Only rows with a positive quantity count.
    """
    result = await session.execute(
        select(LedgerRowDB.card_id, func.sum(LedgerRowDB.quantity))
        .join(CollectionDB, LedgerRowDB.collection_id == CollectionDB.id)
        .where(CollectionDB.user_id == ctx.user_id, LedgerRowDB.quantity > 0)
        .group_by(LedgerRowDB.card_id)
    )
    return {card_id: int(total) for card_id, total in result.all()}
