"""Integration tests for GET /api/v1/search-config."""

from httpx import AsyncClient

from oraculo.models.vector_store import VectorStore
from tests.support import make_auth_headers, test_session_factory


async def _seed_stores() -> None:
    async with test_session_factory() as session:
        session.add_all(
            [
                VectorStore(vector_store_id="vs-a", name="A", is_searchable=True),
                VectorStore(
                    vector_store_id="vs-default",
                    name="Padrão",
                    is_searchable=True,
                    is_default=True,
                ),
                VectorStore(vector_store_id="vs-hidden", name="Oculto"),
            ]
        )
        await session.commit()


class TestSearchConfig:
    async def test_requires_auth(self, async_client: AsyncClient) -> None:
        resp = await async_client.get("/api/v1/search-config")
        assert resp.status_code == 401

    async def test_returns_searchable_ids(self, authed_client: AsyncClient) -> None:
        await _seed_stores()

        resp = await authed_client.get("/api/v1/search-config")

        assert resp.status_code == 200
        assert resp.json()["data"]["searchable_ids"] == ["vs-default", "vs-a"]

    async def test_empty(self, authed_client: AsyncClient) -> None:
        resp = await authed_client.get("/api/v1/search-config")
        assert resp.json()["data"]["searchable_ids"] == []

    async def test_state_includes_searchable_ids(
        self, async_client: AsyncClient
    ) -> None:
        await _seed_stores()
        resp = await async_client.get(
            "/api/v1/chat/state", headers=make_auth_headers(user_id="user-9")
        )
        assert resp.json()["data"]["searchable_vector_stores"] == ["vs-default", "vs-a"]
