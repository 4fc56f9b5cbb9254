"""
Ledger Reconciliation Service.

Maintains one quantity record per (collection, card, variant).

INVARIANTS:
1. At most one row per identity key after any upsert to that key.
   Rows duplicated by older unguarded writes, concurrent inserts, or bulk
   appends are collapsed into the oldest row on the next upsert.
2. A row exists only while its quantity is positive. Writing zero or
   less deletes every row for the key.
3. Upsert replaces the quantity; it never adds to it.

CONCURRENCY:
The identity-key read and the writes that follow run in the caller's
transaction. The owning collection row and the key's rows are read
FOR UPDATE, so on backends with row locks two upserts to the same
collection are serialized. Where locks are unavailable a racing insert
is tolerated and healed by invariant 1.
"""

import logging
from datetime import UTC, datetime
from typing import Final

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cardledger.config import COLLECTION_TYPES, DEFAULT_VARIANT
from cardledger.db.operations import (
    delete_card_rows,
    delete_rows,
    find_rows,
    get_collection,
    insert_collection,
    insert_row,
    list_rows,
    remove_collection,
    touch,
)
from cardledger.models.context import UserContext
from cardledger.models.db import CollectionDB, LedgerRowDB
from cardledger.models.failure import InvalidRequestError, NotFoundError, PersistenceError
from cardledger.models.ledger import (
    CompactionResult,
    RemovalResult,
    UpsertAction,
    UpsertResult,
)
from cardledger.services.catalog import CatalogReference

logger = logging.getLogger(__name__)


class _Unset:
    """Marker for an argument that was not provided at all."""

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Final = _Unset()


def require_identifier(value: str | None, field_name: str) -> str:
    """Return a stripped identifier or raise if it is missing."""
    if value is None or not str(value).strip():
        raise InvalidRequestError(f"{field_name} is required")
    return str(value).strip()


def normalize_variant(variant: str | None) -> str:
    """Variant tag with the default applied."""
    if variant is None or not variant.strip():
        return DEFAULT_VARIANT
    return variant.strip()


def _check_quantity(quantity: object) -> int:
    # bool is an int subclass; True is not a quantity
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidRequestError("quantity must be an integer", detail=f"got {quantity!r}")
    return quantity


class LedgerReconciler:
    """
    Single-key writes against the ledger.

    All methods run inside the session's current transaction and never
    commit; the caller owns the transaction boundary.
    """

    def __init__(self, session: AsyncSession, catalog: CatalogReference) -> None:
        self._session = session
        self._catalog = catalog

    async def _require_collection(
        self, ctx: UserContext, collection_id: str, *, for_update: bool = False
    ) -> CollectionDB:
        collection = await get_collection(
            self._session, ctx, collection_id, for_update=for_update
        )
        if collection is None:
            raise NotFoundError("collection", collection_id)
        return collection

    async def upsert(
        self,
        ctx: UserContext,
        collection_id: str,
        card_id: str,
        quantity: int,
        variant: str | None = None,
        notes: str | None | _Unset = UNSET,
    ) -> UpsertResult:
        """
        Set the owned quantity for one (collection, card, variant).

        Args:
            quantity: Absolute quantity; zero or less removes the key
            variant: Printing variant, "normal" when omitted
            notes: Replaces the stored notes when given (None clears them);
                left untouched when omitted

        Returns:
            UpsertResult with the action taken and the surviving row id

        Raises:
            InvalidRequestError: Missing identifiers or non-integer quantity
            NotFoundError: Collection (or, for positive quantities, card) missing
            PersistenceError: The store rejected a read or write
        """
        collection_id = require_identifier(collection_id, "collection_id")
        card_id = require_identifier(card_id, "card_id")
        quantity = _check_quantity(quantity)
        variant = normalize_variant(variant)

        try:
            await self._require_collection(ctx, collection_id, for_update=True)

            if quantity > 0 and await self._catalog.get_card(card_id) is None:
                raise NotFoundError("card", card_id)

            rows = await find_rows(self._session, collection_id, card_id, variant)

            if quantity <= 0:
                removed = await delete_rows(self._session, [row.id for row in rows])
                if removed:
                    logger.info(
                        "Deleted %s/%s/%s (%d row(s))", collection_id, card_id, variant, removed
                    )
                return UpsertResult(
                    action=UpsertAction.DELETED,
                    removed_duplicates=max(removed - 1, 0),
                )

            if not rows:
                row = await insert_row(
                    self._session,
                    collection_id,
                    card_id,
                    variant,
                    quantity,
                    notes=None if isinstance(notes, _Unset) else notes,
                )
                logger.info("Created %s/%s/%s qty=%d", collection_id, card_id, variant, quantity)
                return UpsertResult(action=UpsertAction.CREATED, row_id=row.id, quantity=quantity)

            survivor, extras = rows[0], rows[1:]
            survivor.quantity = quantity
            if not isinstance(notes, _Unset):
                survivor.notes = notes
            touch(survivor)

            removed = await delete_rows(self._session, [row.id for row in extras])
            if removed:
                logger.warning(
                    "Collapsed %d duplicate row(s) for %s/%s/%s",
                    removed,
                    collection_id,
                    card_id,
                    variant,
                )
            await self._session.flush()

            logger.info("Updated %s/%s/%s qty=%d", collection_id, card_id, variant, quantity)
            return UpsertResult(
                action=UpsertAction.UPDATED,
                row_id=survivor.id,
                quantity=quantity,
                removed_duplicates=removed,
            )
        except SQLAlchemyError as e:
            logger.error("Upsert failed for %s/%s/%s: %s", collection_id, card_id, variant, e)
            raise PersistenceError(type(e).__name__) from e

    async def create_collection(
        self,
        ctx: UserContext,
        name: str,
        collection_type: str = "manual",
        description: str | None = None,
        filters: dict | None = None,
    ) -> CollectionDB:
        """Create a collection for the context user."""
        name = require_identifier(name, "name")
        if collection_type not in COLLECTION_TYPES:
            raise InvalidRequestError(
                f"type must be one of {', '.join(COLLECTION_TYPES)}",
                detail=f"got {collection_type!r}",
            )
        try:
            collection = await insert_collection(
                self._session, ctx, name, collection_type, description, filters
            )
        except SQLAlchemyError as e:
            raise PersistenceError(type(e).__name__) from e
        logger.info("Created collection %s (%s)", collection.id, name)
        return collection

    async def delete_collection(self, ctx: UserContext, collection_id: str) -> bool:
        """
        Delete a collection and, by cascade, all of its rows.

        Raises:
            NotFoundError: If the collection does not exist for this user
            PersistenceError: If the store rejects the delete
        """
        collection_id = require_identifier(collection_id, "collection_id")
        try:
            collection = await self._require_collection(ctx, collection_id, for_update=True)
            removed = await remove_collection(self._session, collection)
        except SQLAlchemyError as e:
            raise PersistenceError(type(e).__name__) from e
        logger.info("Deleted collection %s with %d row(s)", collection_id, removed)
        return True

    async def update_collection(
        self,
        ctx: UserContext,
        collection_id: str,
        name: str | _Unset = UNSET,
        description: str | None | _Unset = UNSET,
    ) -> CollectionDB:
        """
        Rename or re-describe a collection. Omitted fields are left as they are.

        Raises:
            InvalidRequestError: A blank name
            NotFoundError: If the collection does not exist for this user
            PersistenceError: If the store rejects the write
        """
        collection_id = require_identifier(collection_id, "collection_id")
        if not isinstance(name, _Unset):
            name = require_identifier(name, "name")
        try:
            collection = await self._require_collection(ctx, collection_id, for_update=True)
            if not isinstance(name, _Unset):
                collection.name = name
            if not isinstance(description, _Unset):
                collection.description = description
            collection.updated_at = datetime.now(UTC)
            await self._session.flush()
        except SQLAlchemyError as e:
            raise PersistenceError(type(e).__name__) from e
        logger.info("Updated collection %s", collection_id)
        return collection

    async def remove_cards(
        self, ctx: UserContext, collection_id: str, card_ids: list[str] | None
    ) -> RemovalResult:
        """
        Take cards out of a collection, every variant at once.

        Manual collections delete their rows for the cards. Auto collections
        are rebuilt from their filters, so the cards are added to
        `filters["excludedCardIds"]` instead and no rows are touched.

        Raises:
            InvalidRequestError: No card ids, or a blank one
            NotFoundError: If the collection does not exist for this user
            PersistenceError: If the store rejects the write
        """
        collection_id = require_identifier(collection_id, "collection_id")
        if not card_ids:
            raise InvalidRequestError("card_ids must be a non-empty list")
        wanted = list(dict.fromkeys(require_identifier(c, "card_id") for c in card_ids))

        try:
            collection = await self._require_collection(ctx, collection_id, for_update=True)

            if collection.type == "auto":
                filters = dict(collection.filters or {})
                current = filters.get("excludedCardIds")
                if not isinstance(current, list):
                    current = []
                excluded = list(dict.fromkeys([*current, *wanted]))
                filters["excludedCardIds"] = excluded
                # JSON columns only notice reassignment
                collection.filters = filters
                collection.updated_at = datetime.now(UTC)
                await self._session.flush()
                logger.info(
                    "Excluded %d card(s) from auto collection %s", len(wanted), collection_id
                )
                return RemovalResult(excluded_card_ids=excluded)

            removed = await delete_card_rows(self._session, collection_id, wanted)
        except SQLAlchemyError as e:
            raise PersistenceError(type(e).__name__) from e

        logger.info("Removed %d row(s) from collection %s", removed, collection_id)
        return RemovalResult(removed_rows=removed)

    async def compact_collection(self, ctx: UserContext, collection_id: str) -> CompactionResult:
        """
        Merge rows sharing an identity key into one.

        The oldest row of each key keeps the summed quantity and the
        distinct non-empty notes joined in row order; the others are
        deleted. Rows with a non-positive quantity are dropped.
        """
        collection_id = require_identifier(collection_id, "collection_id")
        try:
            await self._require_collection(ctx, collection_id, for_update=True)
            rows = await list_rows(self._session, collection_id)

            groups: dict[tuple[str, str], list[LedgerRowDB]] = {}
            for row in rows:
                groups.setdefault((row.card_id, row.variant), []).append(row)

            merged_keys = 0
            doomed: list[str] = []
            for group in groups.values():
                total = sum(row.quantity or 0 for row in group)
                if total <= 0:
                    doomed.extend(row.id for row in group)
                    continue
                if len(group) == 1:
                    continue

                survivor = group[0]
                survivor.quantity = total
                notes = [row.notes for row in group if row.notes]
                survivor.notes = "\n".join(dict.fromkeys(notes)) or None
                touch(survivor)
                doomed.extend(row.id for row in group[1:])
                merged_keys += 1

            removed = await delete_rows(self._session, doomed)
            await self._session.flush()
        except SQLAlchemyError as e:
            raise PersistenceError(type(e).__name__) from e

        if removed:
            logger.info(
                "Compacted collection %s: %d key(s) merged, %d row(s) removed",
                collection_id,
                merged_keys,
                removed,
            )
        return CompactionResult(merged_keys=merged_keys, removed_rows=removed)
