"""Tests for bulk import and duplicate endpoints."""

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession


@pytest.fixture
async def collection_id(client: AsyncClient, seeded: AsyncSession) -> str:
    response = await client.post("/collections", json={"name": "Binder"})
    return response.json()["id"]


class TestValidateEndpoint:
    async def test_validate(self, client: AsyncClient, seeded: AsyncSession) -> None:
        response = await client.post(
            "/bulk/validate",
            json={
                "set_id": "base1",
                "entries": [
                    {"raw_text": "Alakazam 001", "parsed_number": "001", "quantity": 2},
                    {"raw_text": "Blastoise 2", "parsed_number": "2"},
                    {"raw_text": "garbage", "parsed_number": "999"},
                ],
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["valid_count"] == 2
        assert data["invalid_count"] == 1

        first, second, third = data["results"]
        assert first["status"] == "valid"
        assert first["quantity"] == 2
        assert first["card"] == {
            "id": "base1-1",
            "name": "Alakazam",
            "image": "https://img/base1-1.png",
            "rarity": "Rare Holo",
        }
        assert second["card"]["id"] == "base1-2"
        assert third["status"] == "invalid"
        assert third["card"] is None
        assert third["error"] == "Not found in catalog"

    async def test_validate_empty_batch(self, client: AsyncClient) -> None:
        response = await client.post("/bulk/validate", json={"set_id": "base1", "entries": []})

        assert response.status_code == 400
        assert response.json()["failure"]["kind"] == "invalid_input"

    async def test_validate_non_array_payload(self, client: AsyncClient) -> None:
        response = await client.post(
            "/bulk/validate", json={"set_id": "base1", "entries": "001,002"}
        )

        assert response.status_code == 422


class TestCommitEndpoint:
    async def test_commit(self, client: AsyncClient, collection_id: str) -> None:
        response = await client.post(
            "/bulk/commit",
            json={
                "collection_id": collection_id,
                "cards": [
                    {"card_id": "base1-1", "quantity": 2},
                    {"card_id": "base1-1", "quantity": 1},
                    {"card_id": "base1-2", "quantity": 1, "variant": "holofoil"},
                ],
            },
        )

        assert response.status_code == 200
        assert response.json() == {
            "collection_id": collection_id,
            "count": 3,
            "merged_keys": None,
            "removed_rows": None,
        }
        items = (await client.get(f"/collections/{collection_id}/items")).json()["items"]
        assert len(items) == 3

    async def test_commit_and_compact(self, client: AsyncClient, collection_id: str) -> None:
        response = await client.post(
            "/bulk/commit",
            json={
                "collection_id": collection_id,
                "cards": [{"card_id": "base1-1"}, {"card_id": "base1-1", "quantity": 2}],
                "compact": True,
            },
        )

        data = response.json()
        assert data["count"] == 2
        assert data["merged_keys"] == 1
        assert data["removed_rows"] == 1

    async def test_commit_missing_collection(
        self, client: AsyncClient, seeded: AsyncSession
    ) -> None:
        response = await client.post(
            "/bulk/commit",
            json={"collection_id": "missing", "cards": [{"card_id": "base1-1"}]},
        )

        assert response.status_code == 404

    async def test_commit_is_all_or_nothing(
        self, client: AsyncClient, collection_id: str
    ) -> None:
        response = await client.post(
            "/bulk/commit",
            json={
                "collection_id": collection_id,
                "cards": [{"card_id": "base1-1"}, {"card_id": "fake-1"}],
            },
        )

        assert response.status_code == 404
        items = (await client.get(f"/collections/{collection_id}/items")).json()["items"]
        assert items == []

    async def test_commit_rejects_zero_quantity(
        self, client: AsyncClient, collection_id: str
    ) -> None:
        response = await client.post(
            "/bulk/commit",
            json={"collection_id": collection_id, "cards": [{"card_id": "base1-1", "quantity": 0}]},
        )

        assert response.status_code == 400


class TestDuplicatesEndpoint:
    async def test_duplicates_default_threshold(
        self, client: AsyncClient, collection_id: str, add_row
    ) -> None:
        await add_row(collection_id, "base1-1", 3, age_minutes=1)
        await add_row(collection_id, "base1-1", 3)
        await add_row(collection_id, "base1-2", 4, variant="holofoil")

        response = await client.get("/bulk/duplicates", params={"collection_id": collection_id})

        assert response.status_code == 200
        data = response.json()
        assert data["threshold"] == 4
        assert data["total_excess"] == 2
        [group] = data["duplicates"]
        assert group["card_id"] == "base1-1"
        assert group["quantity"] == 6
        assert group["excess"] == 2
        assert group["name"] == "Alakazam"
        assert group["set_name"] == "Base Set"

    async def test_duplicates_custom_threshold(
        self, client: AsyncClient, collection_id: str, add_row
    ) -> None:
        await add_row(collection_id, "base1-1", 2)
        await add_row(collection_id, "base1-2", 3, variant="holofoil")

        response = await client.get(
            "/bulk/duplicates", params={"collection_id": collection_id, "threshold": 1}
        )

        data = response.json()
        assert data["threshold"] == 1
        assert [(g["card_id"], g["excess"]) for g in data["duplicates"]] == [
            ("base1-2", 2),
            ("base1-1", 1),
        ]

    async def test_duplicates_negative_threshold(
        self, client: AsyncClient, collection_id: str
    ) -> None:
        response = await client.get(
            "/bulk/duplicates", params={"collection_id": collection_id, "threshold": -1}
        )

        assert response.status_code == 400

    async def test_duplicates_missing_collection(self, client: AsyncClient) -> None:
        response = await client.get("/bulk/duplicates", params={"collection_id": "missing"})

        assert response.status_code == 404
