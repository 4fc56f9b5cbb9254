"""
Catalog reference service.

The ledger engine reads card metadata and price snapshots through the
`CatalogReference` protocol. `SqlCatalog` serves them from the catalog
tables that the sync jobs populate.
"""

import json
import logging
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from cardledger.models.catalog import CatalogCard, PricePoint
from cardledger.models.db import CatalogCardDB, PriceHistoryDB
from cardledger.models.failure import CatalogUnavailableError

logger = logging.getLogger(__name__)


class CatalogReference(Protocol):
    """Read-only access to card metadata, keyed by card and by set."""

    async def get_card(self, card_id: str) -> CatalogCard | None: ...

    async def get_cards(self, card_ids: list[str]) -> dict[str, CatalogCard]: ...

    async def get_set_cards(self, set_id: str) -> list[CatalogCard]: ...

    async def get_price_history(self, card_id: str) -> list[PricePoint]: ...


def parse_json_blob(card_id: str, blob: Any, what: str = "price data") -> dict[str, Any] | None:
    """
    Normalize a stored JSON object (price snapshot, image map) into a dict.

    Blobs may arrive already decoded or as JSON text. Empty values mean
    "no data".

    Raises:
        CatalogUnavailableError: If the blob is present but not a JSON object
    """
    if blob is None or blob == "":
        return None
    if isinstance(blob, str):
        try:
            blob = json.loads(blob)
        except json.JSONDecodeError as e:
            raise CatalogUnavailableError(f"Malformed {what} for card '{card_id}'") from e
    if not isinstance(blob, dict):
        raise CatalogUnavailableError(f"Malformed {what} for card '{card_id}'")
    return blob


def card_from_db(card: CatalogCardDB) -> CatalogCard:
    """Convert a catalog row into the engine's read-only view."""
    images = parse_json_blob(card.id, card.images, what="image data") or {}
    return CatalogCard(
        id=card.id,
        set_id=card.set_id,
        number=card.number,
        name=card.name,
        rarity=card.rarity,
        images=images,
        set_name=card.card_set.name if card.card_set is not None else None,
        tcgplayer_prices=parse_json_blob(card.id, card.tcgplayer_prices),
        cardmarket_prices=parse_json_blob(card.id, card.cardmarket_prices),
        synced_at=card.synced_at,
    )


class SqlCatalog:
    """
    Catalog backed by the local catalog tables.

    Store failures surface as CatalogUnavailableError so callers fail the
    whole operation instead of returning partial results.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _fetch_cards(self, *criteria: Any) -> list[CatalogCard]:
        try:
            result = await self._session.execute(
                select(CatalogCardDB)
                .where(*criteria)
                .options(selectinload(CatalogCardDB.card_set))
                .order_by(CatalogCardDB.id)
            )
            rows = list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Catalog read failed: %s", e)
            raise CatalogUnavailableError(type(e).__name__) from e
        return [card_from_db(row) for row in rows]

    async def get_card(self, card_id: str) -> CatalogCard | None:
        cards = await self._fetch_cards(CatalogCardDB.id == card_id)
        return cards[0] if cards else None

    async def get_cards(self, card_ids: list[str]) -> dict[str, CatalogCard]:
        if not card_ids:
            return {}
        cards = await self._fetch_cards(CatalogCardDB.id.in_(set(card_ids)))
        return {card.id: card for card in cards}

    async def get_set_cards(self, set_id: str) -> list[CatalogCard]:
        """All cards of a set, ordered by catalog id."""
        return await self._fetch_cards(CatalogCardDB.set_id == set_id)

    async def get_price_history(self, card_id: str) -> list[PricePoint]:
        """Recorded price points for a card, oldest first."""
        try:
            result = await self._session.execute(
                select(PriceHistoryDB)
                .where(PriceHistoryDB.card_id == card_id)
                .order_by(PriceHistoryDB.date, PriceHistoryDB.id)
            )
            rows = list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Price history read failed: %s", e)
            raise CatalogUnavailableError(type(e).__name__) from e
        return [
            PricePoint(date=row.date, price=row.market_price, source=row.source) for row in rows
        ]
