"""
Portfolio valuation and price history endpoints.
"""

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from cardledger.api.deps import CatalogDep, SessionDep, UserDep
from cardledger.models.valuation import PortfolioValuation
from cardledger.services.pricing import DEFAULT_EXCHANGE_RATES, FixedRateConverter
from cardledger.services.valuation import ValuationEngine

router = APIRouter(tags=["portfolio"])


class ValuationItemResponse(BaseModel):
    """One valued ledger row."""

    card_id: str
    card_name: str
    card_number: str
    rarity: str | None = None
    set_id: str
    set_name: str | None = None
    collection_id: str
    variant: str
    quantity: int
    unit_price: float | None = None
    price_source: str | None = None
    price_currency: str | None = None
    currency_mismatch: bool = False
    line_total: float = 0.0
    stale: bool = False


class PortfolioResponse(BaseModel):
    """Response model for a portfolio valuation."""

    currency: str
    total: float = Field(default=0.0, description="Sum of lines priced in `currency` only")
    totals_by_currency: dict[str, float] = Field(default_factory=dict)
    total_cards: int = 0
    items: list[ValuationItemResponse] = Field(default_factory=list)
    stale_card_ids: list[str] = Field(
        default_factory=list,
        description="Cards whose price snapshot is over 24h old or was never synced",
    )
    unpriced_card_ids: list[str] = Field(default_factory=list)
    currency_mismatch: bool = Field(
        default=False,
        description="True when some items are priced in another currency than `currency`",
    )


class PricePointResponse(BaseModel):
    """A single dated price."""

    date: str
    price: float
    source: str


class PriceHistoryResponse(BaseModel):
    """Response model for a card's price history."""

    card_id: str
    points: list[PricePointResponse] = Field(default_factory=list)


def _to_response(report: PortfolioValuation) -> PortfolioResponse:
    return PortfolioResponse(
        currency=report.currency,
        total=report.total,
        totals_by_currency=report.totals_by_currency,
        total_cards=report.total_quantity,
        items=[
            ValuationItemResponse(
                card_id=item.card_id,
                card_name=item.card_name,
                card_number=item.card_number,
                rarity=item.rarity,
                set_id=item.set_id,
                set_name=item.set_name,
                collection_id=item.collection_id,
                variant=item.variant,
                quantity=item.quantity,
                unit_price=item.unit_price,
                price_source=item.price_source,
                price_currency=item.price_currency,
                currency_mismatch=item.currency_mismatch,
                line_total=item.line_total,
                stale=item.stale,
            )
            for item in report.items
        ],
        stale_card_ids=report.stale_card_ids,
        unpriced_card_ids=report.unpriced_card_ids,
        currency_mismatch=report.has_currency_mismatch,
    )


@router.get("/portfolio", response_model=PortfolioResponse)
async def get_portfolio(
    ctx: UserDep,
    session: SessionDep,
    catalog: CatalogDep,
    currency: str | None = Query(default=None, examples=["EUR"]),
    collection_id: str | None = Query(default=None),
    convert: bool = Query(
        default=False,
        description="Convert foreign-currency prices with the built-in rate table",
    ),
) -> PortfolioResponse:
    """
    Value the user's holdings.

    Covers every collection unless `collection_id` is given.
    """
    converter = FixedRateConverter(DEFAULT_EXCHANGE_RATES) if convert else None
    engine = ValuationEngine(session, catalog, converter=converter)

    if collection_id is not None:
        report = await engine.valuate_collection(ctx, collection_id, currency)
    else:
        report = await engine.valuate_portfolio(ctx, currency)
    return _to_response(report)


@router.get("/prices/history/{card_id}", response_model=PriceHistoryResponse)
async def get_price_history(
    card_id: str, session: SessionDep, catalog: CatalogDep
) -> PriceHistoryResponse:
    """
    Price series for one card.

    Recorded points when available, otherwise points inferred from the
    Cardmarket rolling averages, otherwise empty.
    """
    points = await ValuationEngine(session, catalog).price_history(card_id)
    return PriceHistoryResponse(
        card_id=card_id,
        points=[PricePointResponse(date=p.date, price=p.price, source=p.source) for p in points],
    )
