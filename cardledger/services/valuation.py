"""
Portfolio valuation.

Joins ledger rows with catalog price snapshots, values each row with the
variant-aware policy from `pricing`, and reports which cards carry stale
price data so a caller can schedule a refresh.
"""

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cardledger.config import settings
from cardledger.db.operations import get_collection, list_user_rows
from cardledger.models.catalog import PricePoint
from cardledger.models.context import UserContext
from cardledger.models.db import LedgerRowDB
from cardledger.models.failure import InvalidRequestError, NotFoundError, PersistenceError
from cardledger.models.valuation import PortfolioValuation, ValuationItem
from cardledger.services.catalog import CatalogReference
from cardledger.services.ledger_reconciler import require_identifier
from cardledger.services.pricing import (
    CurrencyConverter,
    infer_price_history,
    is_price_stale,
    select_unit_price,
)

logger = logging.getLogger(__name__)


class ValuationEngine:
    """Values ledger holdings against the catalog."""

    def __init__(
        self,
        session: AsyncSession,
        catalog: CatalogReference,
        converter: CurrencyConverter | None = None,
        stale_after: timedelta | None = None,
    ) -> None:
        self._session = session
        self._catalog = catalog
        self._converter = converter
        self._stale_after = stale_after or timedelta(hours=settings.price_stale_hours)

    async def valuate_collection(
        self,
        ctx: UserContext,
        collection_id: str,
        currency: str | None = None,
        now: datetime | None = None,
    ) -> PortfolioValuation:
        """
        Value every row of one collection.

        Raises:
            NotFoundError: Collection does not exist for this user
            CatalogUnavailableError: Card data could not be read
        """
        collection_id = require_identifier(collection_id, "collection_id")
        try:
            if await get_collection(self._session, ctx, collection_id) is None:
                raise NotFoundError("collection", collection_id)
            rows = await list_user_rows(self._session, ctx, collection_id)
        except SQLAlchemyError as e:
            raise PersistenceError(type(e).__name__) from e
        return await self._valuate(rows, currency, now)

    async def valuate_portfolio(
        self,
        ctx: UserContext,
        currency: str | None = None,
        now: datetime | None = None,
    ) -> PortfolioValuation:
        """Value every positive-quantity row across the user's collections."""
        try:
            rows = await list_user_rows(self._session, ctx)
        except SQLAlchemyError as e:
            raise PersistenceError(type(e).__name__) from e
        return await self._valuate(rows, currency, now)

    async def _valuate(
        self,
        rows: list[LedgerRowDB],
        currency: str | None,
        now: datetime | None,
    ) -> PortfolioValuation:
        currency = (currency or settings.default_currency).strip().upper()
        if not currency:
            raise InvalidRequestError("currency must not be empty")
        if now is None:
            now = datetime.now(UTC)

        report = PortfolioValuation(currency=currency)
        if not rows:
            return report

        # One catalog read for the whole portfolio; a failure aborts the call
        cards = await self._catalog.get_cards([row.card_id for row in rows])

        stale: set[str] = set()
        unpriced: set[str] = set()
        totals: dict[str, float] = {}

        for row in rows:
            card = cards.get(row.card_id)
            if card is None:
                logger.warning("Ledger row %s references unknown card %s", row.id, row.card_id)
                continue

            item = ValuationItem(
                card_id=card.id,
                card_name=card.name,
                card_number=card.number,
                rarity=card.rarity,
                set_id=card.set_id,
                set_name=card.set_name,
                collection_id=row.collection_id,
                variant=row.variant,
                quantity=row.quantity,
                stale=is_price_stale(card.synced_at, now, self._stale_after),
            )
            if item.stale:
                stale.add(card.id)

            price = select_unit_price(card, row.variant, currency, self._converter)
            if price is None:
                unpriced.add(card.id)
            else:
                item.unit_price = price.amount
                item.price_source = price.source
                item.price_currency = price.currency
                item.currency_mismatch = price.currency != currency
                line = price.amount * row.quantity
                item.line_total = round(line, 2)
                totals[price.currency] = totals.get(price.currency, 0.0) + line

            report.items.append(item)

        # Foreign-currency lines never leak into the headline figure
        report.total = round(totals.get(currency, 0.0), 2)
        report.totals_by_currency = {code: round(totals[code], 2) for code in sorted(totals)}
        report.stale_card_ids = sorted(stale)
        report.unpriced_card_ids = sorted(unpriced)

        mismatched = sum(1 for item in report.items if item.currency_mismatch)
        if mismatched:
            logger.warning(
                "%d row(s) priced in a currency other than %s; no conversion applied",
                mismatched,
                currency,
            )

        logger.info(
            "Valued %d row(s): %.2f %s, %d stale card(s)",
            len(report.items),
            report.total,
            currency,
            len(report.stale_card_ids),
        )
        return report

    async def price_history(self, card_id: str, now: datetime | None = None) -> list[PricePoint]:
        """
        Price series for a card.

        Recorded points when any exist, else a trend inferred from the
        Cardmarket rolling averages, else an empty list.

        Raises:
            NotFoundError: Card does not exist in the catalog
            CatalogUnavailableError: Card data could not be read
        """
        card_id = require_identifier(card_id, "card_id")

        history = await self._catalog.get_price_history(card_id)
        if history:
            return history

        card = await self._catalog.get_card(card_id)
        if card is None:
            raise NotFoundError("card", card_id)
        return infer_price_history(card.cardmarket_prices, now)
