"""Tests for the catalog reference service."""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from cardledger.models.db import CatalogCardDB, PriceHistoryDB
from cardledger.models.failure import CatalogUnavailableError
from cardledger.services.catalog import SqlCatalog, parse_json_blob


class TestParsePriceBlob:
    @pytest.mark.parametrize("blob", [None, ""])
    def test_empty_means_no_prices(self, blob) -> None:
        assert parse_json_blob("base1-1", blob) is None

    def test_dict_passes_through(self) -> None:
        blob = {"trendPrice": 9.0}

        assert parse_json_blob("base1-1", blob) is blob

    def test_json_text_decoded(self) -> None:
        assert parse_json_blob("base1-1", '{"normal": {"market": 1.5}}') == {
            "normal": {"market": 1.5}
        }

    @pytest.mark.parametrize("blob", ["{not json", "[1, 2]", 42])
    def test_malformed_blob(self, blob) -> None:
        with pytest.raises(CatalogUnavailableError) as exc_info:
            parse_json_blob("base1-1", blob)

        assert "base1-1" in exc_info.value.detail


class TestSqlCatalog:
    async def test_get_card(self, seeded: AsyncSession, catalog: SqlCatalog) -> None:
        card = await catalog.get_card("base1-1")

        assert card is not None
        assert card.name == "Alakazam"
        assert card.set_name == "Base Set"
        assert card.image == "https://img/base1-1.png"
        assert card.tcgplayer_prices["normal"]["market"] == 10.0

    async def test_image_falls_back_to_large(
        self, seeded: AsyncSession, catalog: SqlCatalog
    ) -> None:
        card = await catalog.get_card("base1-2")

        assert card.image == "https://img/base1-2_hires.png"
        assert card.cardmarket_prices is None

    async def test_images_stored_as_text(self, seeded: AsyncSession, catalog: SqlCatalog) -> None:
        seeded.add(
            CatalogCardDB(
                id="base1-15",
                set_id="base1",
                number="15",
                name="Venusaur",
                images='{"small": "https://img/base1-15.png"}',
            )
        )
        await seeded.commit()

        card = await catalog.get_card("base1-15")

        assert card.images == {"small": "https://img/base1-15.png"}
        assert card.image == "https://img/base1-15.png"

    async def test_missing_card(self, seeded: AsyncSession, catalog: SqlCatalog) -> None:
        assert await catalog.get_card("nope-1") is None

    async def test_get_cards(self, seeded: AsyncSession, catalog: SqlCatalog) -> None:
        cards = await catalog.get_cards(["base1-4", "base1-1", "base1-4", "nope-1"])

        assert sorted(cards) == ["base1-1", "base1-4"]
        assert await catalog.get_cards([]) == {}

    async def test_set_cards_ordered_by_id(
        self, seeded: AsyncSession, catalog: SqlCatalog
    ) -> None:
        cards = await catalog.get_set_cards("base1")

        assert [c.id for c in cards] == ["base1-1", "base1-10", "base1-2", "base1-4"]
        assert await catalog.get_set_cards("nope") == []

    async def test_malformed_stored_blob(self, seeded: AsyncSession, catalog: SqlCatalog) -> None:
        seeded.add(
            CatalogCardDB(
                id="base1-99", set_id="base1", number="99", name="Bad", tcgplayer_prices="{oops"
            )
        )
        await seeded.commit()

        with pytest.raises(CatalogUnavailableError):
            await catalog.get_card("base1-99")

    async def test_price_history_sorted(self, seeded: AsyncSession, catalog: SqlCatalog) -> None:
        seeded.add_all(
            [
                PriceHistoryDB(card_id="base1-1", date="2024-05-02", market_price=11.0),
                PriceHistoryDB(
                    card_id="base1-1", date="2024-05-01", market_price=9.0, source="cardmarket"
                ),
            ]
        )
        await seeded.commit()

        points = await catalog.get_price_history("base1-1")

        assert [(p.date, p.price, p.source) for p in points] == [
            ("2024-05-01", 9.0, "cardmarket"),
            ("2024-05-02", 11.0, "tcgplayer"),
        ]

    async def test_store_failure(self, session: AsyncSession, monkeypatch) -> None:
        error = OperationalError("SELECT", {}, Exception("database is locked"))
        monkeypatch.setattr(session, "execute", AsyncMock(side_effect=error))
        catalog = SqlCatalog(session)

        with pytest.raises(CatalogUnavailableError) as exc_info:
            await catalog.get_card("base1-1")
        assert exc_info.value.detail == "OperationalError"
        with pytest.raises(CatalogUnavailableError):
            await catalog.get_price_history("base1-1")
