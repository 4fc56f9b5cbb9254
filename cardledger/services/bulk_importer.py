"""
Bulk import: match typed card numbers against a set, then append rows.

Validation fetches the whole set once and matches in memory. A match is
an exact printed-number match or, failing that, a match after stripping
leading zeros from both sides ("001" == "1").

Commit appends one new row per item with a single batched insert. It does
not merge with existing holdings for the same key; run
`LedgerReconciler.compact_collection` afterwards (or pass `compact=True`)
when holdings must be de-duplicated.
"""

import logging
from collections.abc import Iterable, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cardledger.db.operations import get_collection, insert_rows
from cardledger.models.catalog import CatalogCard
from cardledger.models.context import UserContext
from cardledger.models.db import LedgerRowDB
from cardledger.models.failure import InvalidRequestError, NotFoundError, PersistenceError
from cardledger.models.ledger import (
    BulkEntry,
    CardSummary,
    CommitItem,
    CompactionResult,
    MatchResult,
)
from cardledger.services.catalog import CatalogReference
from cardledger.services.ledger_reconciler import (
    LedgerReconciler,
    normalize_variant,
    require_identifier,
)

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Not found in catalog"


def normalize_number(number: str) -> str:
    """
    Strip whitespace and leading zeros from a printed card number.

    An all-zero number normalizes to "0" rather than to an empty string.
    """
    text = (number or "").strip()
    if not text:
        return ""
    return text.lstrip("0") or "0"


def match_number(number: str, set_cards: Sequence[CatalogCard]) -> CatalogCard | None:
    """
    Find the card a typed number refers to.

    An exact printed-number match anywhere in the set wins over a
    normalized one. Among several candidates of the same kind the first
    in `set_cards` order wins, so callers pass cards sorted by id.
    """
    text = (number or "").strip()
    if not text:
        return None

    for card in set_cards:
        if card.number == text:
            return card

    normalized = normalize_number(text)
    for card in set_cards:
        if normalize_number(card.number) == normalized:
            return card
    return None


def match_entries(
    entries: Iterable[BulkEntry], set_cards: Sequence[CatalogCard]
) -> list[MatchResult]:
    """Resolve every entry against an already-fetched set listing."""
    results: list[MatchResult] = []
    for entry in entries:
        card = match_number(entry.parsed_number, set_cards)
        if card is None:
            logger.debug("No match for %r in set", entry.parsed_number)
            results.append(MatchResult(entry=entry, status="invalid", error=NOT_FOUND_MESSAGE))
            continue
        results.append(
            MatchResult(
                entry=entry,
                status="valid",
                card=CardSummary(id=card.id, name=card.name, image=card.image, rarity=card.rarity),
            )
        )
    return results


class BulkImporter:
    """Validates typed batches and commits validated ones."""

    def __init__(self, session: AsyncSession, catalog: CatalogReference) -> None:
        self._session = session
        self._catalog = catalog

    async def validate_batch(self, set_id: str, entries: Sequence[BulkEntry]) -> list[MatchResult]:
        """
        Match entries against the cards of one set.

        Never writes to the ledger.

        Raises:
            InvalidRequestError: Missing set id or empty batch
            CatalogUnavailableError: The set listing could not be read
        """
        set_id = require_identifier(set_id, "set_id")
        if not entries:
            raise InvalidRequestError("entries must be a non-empty list")

        set_cards = await self._catalog.get_set_cards(set_id)
        results = match_entries(entries, set_cards)

        valid = sum(1 for r in results if r.is_valid)
        logger.info("Validated %d entries for set %s: %d matched", len(results), set_id, valid)
        return results

    async def commit_batch(
        self,
        ctx: UserContext,
        collection_id: str,
        items: Sequence[CommitItem],
        *,
        compact: bool = False,
    ) -> tuple[int, CompactionResult | None]:
        """
        Append validated items to a collection in one batched insert.

        Every item becomes a new row, even when the key is already held.

        Returns:
            Tuple of (rows inserted, compaction result if `compact`)

        Raises:
            InvalidRequestError: Empty batch, missing card id, quantity < 1
            NotFoundError: Collection or any referenced card missing;
                checked before anything is written
            PersistenceError: The store rejected the insert
        """
        collection_id = require_identifier(collection_id, "collection_id")
        if not items:
            raise InvalidRequestError("cards must be a non-empty list")

        prepared: list[LedgerRowDB] = []
        for item in items:
            card_id = require_identifier(item.card_id, "card_id")
            if isinstance(item.quantity, bool) or not isinstance(item.quantity, int):
                raise InvalidRequestError("quantity must be an integer", detail=card_id)
            if item.quantity < 1:
                raise InvalidRequestError(
                    "quantity must be at least 1", detail=f"{card_id}: {item.quantity}"
                )
            prepared.append(
                LedgerRowDB(
                    collection_id=collection_id,
                    card_id=card_id,
                    variant=normalize_variant(item.variant),
                    quantity=item.quantity,
                )
            )

        try:
            if await get_collection(self._session, ctx, collection_id) is None:
                raise NotFoundError("collection", collection_id)

            known = await self._catalog.get_cards([row.card_id for row in prepared])
            missing = sorted({row.card_id for row in prepared} - known.keys())
            if missing:
                raise NotFoundError("card", ", ".join(missing))

            count = await insert_rows(self._session, prepared)
        except SQLAlchemyError as e:
            logger.error("Bulk commit into %s failed: %s", collection_id, e)
            raise PersistenceError(type(e).__name__) from e

        logger.info("Committed %d row(s) into collection %s", count, collection_id)

        compaction = None
        if compact:
            reconciler = LedgerReconciler(self._session, self._catalog)
            compaction = await reconciler.compact_collection(ctx, collection_id)
        return count, compaction

