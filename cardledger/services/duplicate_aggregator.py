"""
Duplicate detection for resale.

Sums holdings per (card, variant) across every stored row of a collection,
so the totals are right even while the one-row-per-key invariant is
temporarily broken, and reports the groups held above a threshold.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from cardledger.config import settings
from cardledger.db.operations import get_collection
from cardledger.models.context import UserContext
from cardledger.models.db import CatalogCardDB, LedgerRowDB
from cardledger.models.failure import InvalidRequestError, NotFoundError, PersistenceError
from cardledger.models.ledger import DuplicateGroup
from cardledger.services.ledger_reconciler import require_identifier

logger = logging.getLogger(__name__)


class DuplicateAggregator:
    """Finds (card, variant) holdings above a keep-threshold."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_duplicates(
        self, ctx: UserContext, collection_id: str, threshold: int | None = None
    ) -> list[DuplicateGroup]:
        """
        Report groups whose summed quantity is strictly above `threshold`.

        A group held at exactly the threshold is not reported. Results are
        sorted by summed quantity, largest first, then by card id and
        variant. Card and set metadata is read from the cached catalog
        rows; price blobs are passed through untouched.

        Args:
            threshold: Copies to keep; defaults to settings.duplicate_threshold (4)

        Raises:
            InvalidRequestError: Missing collection id or negative threshold
            NotFoundError: Collection does not exist for this user
            PersistenceError: The store rejected the query
        """
        collection_id = require_identifier(collection_id, "collection_id")
        if threshold is None:
            threshold = settings.duplicate_threshold
        if threshold < 0:
            raise InvalidRequestError("threshold must not be negative", detail=str(threshold))

        total = func.sum(LedgerRowDB.quantity)
        try:
            if await get_collection(self._session, ctx, collection_id) is None:
                raise NotFoundError("collection", collection_id)

            result = await self._session.execute(
                select(
                    LedgerRowDB.card_id,
                    LedgerRowDB.variant,
                    total.label("quantity"),
                    func.max(LedgerRowDB.id).label("row_id"),
                )
                .where(LedgerRowDB.collection_id == collection_id)
                .group_by(LedgerRowDB.card_id, LedgerRowDB.variant)
                .having(total > threshold)
                .order_by(total.desc(), LedgerRowDB.card_id, LedgerRowDB.variant)
            )
            groups = result.all()

            card_ids = {group.card_id for group in groups}
            cards: dict[str, CatalogCardDB] = {}
            if card_ids:
                card_result = await self._session.execute(
                    select(CatalogCardDB)
                    .where(CatalogCardDB.id.in_(card_ids))
                    .options(selectinload(CatalogCardDB.card_set))
                )
                cards = {card.id: card for card in card_result.scalars().all()}
        except SQLAlchemyError as e:
            logger.error("Duplicate query for %s failed: %s", collection_id, e)
            raise PersistenceError(type(e).__name__) from e

        duplicates: list[DuplicateGroup] = []
        for group in groups:
            quantity = int(group.quantity)
            duplicate = DuplicateGroup(
                card_id=group.card_id,
                variant=group.variant,
                quantity=quantity,
                excess=quantity - threshold,
                row_id=group.row_id,
            )
            card = cards.get(group.card_id)
            if card is not None:
                duplicate.name = card.name
                duplicate.number = card.number
                duplicate.rarity = card.rarity
                duplicate.images = card.images if isinstance(card.images, dict) else {}
                duplicate.set_id = card.set_id
                duplicate.set_name = card.card_set.name if card.card_set is not None else None
                duplicate.tcgplayer_prices = card.tcgplayer_prices
                duplicate.cardmarket_prices = card.cardmarket_prices
            duplicates.append(duplicate)

        logger.debug(
            "Collection %s: %d group(s) above threshold %d",
            collection_id,
            len(duplicates),
            threshold,
        )
        return duplicates
