"""Tests for ledger API endpoints."""

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from cardledger.models.db import CollectionDB


@pytest.fixture
async def collection_id(client: AsyncClient, seeded: AsyncSession) -> str:
    response = await client.post("/collections", json={"name": "Binder"})
    return response.json()["id"]


async def _items(client: AsyncClient, collection_id: str) -> list[dict]:
    response = await client.get(f"/collections/{collection_id}/items")
    return response.json()["items"]


class TestUpsertEndpoint:
    async def test_create_update_delete(self, client: AsyncClient, collection_id: str) -> None:
        payload = {"collection_id": collection_id, "card_id": "base1-1", "quantity": 3}

        created = await client.post("/ledger", json=payload)
        updated = await client.post("/ledger", json={**payload, "quantity": 1})
        deleted = await client.post("/ledger", json={**payload, "quantity": 0})

        assert created.status_code == 200
        assert created.json()["action"] == "created"
        assert updated.json()["action"] == "updated"
        assert updated.json()["row_id"] == created.json()["row_id"]
        assert deleted.json() == {
            "action": "deleted",
            "row_id": None,
            "quantity": 0,
            "removed_duplicates": 0,
        }
        assert await _items(client, collection_id) == []

    async def test_variant_defaults_to_normal(
        self, client: AsyncClient, collection_id: str
    ) -> None:
        await client.post(
            "/ledger", json={"collection_id": collection_id, "card_id": "base1-1", "quantity": 2}
        )

        items = await _items(client, collection_id)
        assert items[0]["variant"] == "normal"

    async def test_heals_duplicates(
        self, client: AsyncClient, collection_id: str, add_row
    ) -> None:
        await add_row(collection_id, "base1-1", 1, variant="holofoil", age_minutes=2)
        await add_row(collection_id, "base1-1", 1, variant="holofoil", age_minutes=1)

        response = await client.post(
            "/ledger",
            json={
                "collection_id": collection_id,
                "card_id": "base1-1",
                "variant": "holofoil",
                "quantity": 4,
            },
        )

        assert response.json()["removed_duplicates"] == 1
        assert [i["quantity"] for i in await _items(client, collection_id)] == [4]

    async def test_omitted_notes_kept_null_clears(
        self, client: AsyncClient, collection_id: str
    ) -> None:
        base = {"collection_id": collection_id, "card_id": "base1-1"}

        await client.post("/ledger", json={**base, "quantity": 1, "notes": "PSA 10"})
        await client.post("/ledger", json={**base, "quantity": 2})
        kept = (await _items(client, collection_id))[0]["notes"]

        await client.post("/ledger", json={**base, "quantity": 2, "notes": None})
        cleared = (await _items(client, collection_id))[0]["notes"]

        assert kept == "PSA 10"
        assert cleared is None

    async def test_unknown_card(self, client: AsyncClient, collection_id: str) -> None:
        response = await client.post(
            "/ledger", json={"collection_id": collection_id, "card_id": "nope-1", "quantity": 1}
        )

        assert response.status_code == 404
        assert response.json()["failure"]["kind"] == "not_found"

    async def test_unknown_collection(self, client: AsyncClient, seeded: AsyncSession) -> None:
        response = await client.post(
            "/ledger", json={"collection_id": "missing", "card_id": "base1-1", "quantity": 1}
        )

        assert response.status_code == 404

    async def test_failed_call_leaves_service_usable(
        self, client: AsyncClient, collection_id: str
    ) -> None:
        bad = await client.post(
            "/ledger", json={"collection_id": collection_id, "card_id": " ", "quantity": 1}
        )
        good = await client.post(
            "/ledger", json={"collection_id": collection_id, "card_id": "base1-1", "quantity": 1}
        )

        assert bad.status_code == 400
        assert good.status_code == 200


class TestOwnershipEndpoint:
    async def test_ownership(
        self, client: AsyncClient, seeded: AsyncSession, collection_id: str, add_row
    ) -> None:
        other = CollectionDB(user_id="guest", name="Other")
        seeded.add(other)
        await seeded.commit()
        await add_row(collection_id, "base1-1", 2)
        await add_row(collection_id, "base1-1", 1, variant="holofoil")
        await add_row(other.id, "base1-2", 4)

        response = await client.get("/ledger/ownership")

        assert response.status_code == 200
        assert response.json() == {
            "user_id": "guest",
            "cards": {"base1-1": 3, "base1-2": 4},
            "total_cards": 7,
            "unique_cards": 2,
        }

    async def test_ownership_empty_for_new_user(self, client: AsyncClient) -> None:
        response = await client.get("/ledger/ownership", headers={"X-User-Id": "misty"})

        assert response.json()["cards"] == {}
