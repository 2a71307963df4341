"""Integration tests for the read-only JSON API."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    import httpx

    from mdnegotiation.drivers import MemoryCacheDriver
    from tests.conftest import CountingConverter


class TestGetItem:
    async def test_returns_markdown_document(
        self, client: httpx.AsyncClient, memory_driver: MemoryCacheDriver
    ) -> None:
        response = await client.get("/api/markdown/1")

        assert response.status_code == 200
        data = response.json()
        assert set(data) == {"id", "title", "slug", "permalink", "markdown", "tokens", "modified"}
        assert data["id"] == 1
        assert data["slug"] == "hello-world"
        assert data["markdown"].startswith("# Hello World\n")
        assert data["modified"] == "2026-01-02T10:30:00Z"
        assert response.headers["x-markdown-source"] == "mdnegotiation"
        assert response.headers["x-markdown-tokens"] == str(data["tokens"])
        assert await memory_driver.get("md_1_rest") == data["markdown"]
        assert await memory_driver.get("md_1") is None

    async def test_cached_after_first_call(
        self, client: httpx.AsyncClient, converter: CountingConverter
    ) -> None:
        await client.get("/api/markdown/2")
        await client.get("/api/markdown/2")
        assert converter.calls == 1

    async def test_unknown_id(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/markdown/999")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "CONTENT_NOT_FOUND"

    @pytest.mark.parametrize("content_id", [3, 4, 5, 7])
    async def test_not_servable(self, client: httpx.AsyncClient, content_id: int) -> None:
        response = await client.get(f"/api/markdown/{content_id}")
        assert response.status_code == 403
        error = response.json()["error"]
        assert error["code"] == "ACCESS_DENIED"
        assert error["recoverable"] is False

    async def test_password_header(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/markdown/4", headers={"X-Content-Password": "s3cret"})
        assert response.status_code == 200


class TestListItems:
    async def test_lists_published_posts(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/markdown", params={"post_type": "post"})

        assert response.status_code == 200
        items = response.json()
        assert {item["id"] for item in items} == {1, 4, 5}
        assert set(items[0]) == {"id", "title", "slug", "permalink", "modified"}
        assert response.headers["x-total-count"] == "3"
        assert response.headers["x-total-pages"] == "1"

    async def test_defaults_to_posts(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/markdown")
        assert response.headers["x-total-count"] == "3"

    async def test_pagination(self, client: httpx.AsyncClient) -> None:
        response = await client.get(
            "/api/markdown", params={"post_type": "post", "per_page": 2, "page": 2}
        )
        assert len(response.json()) == 1
        assert response.headers["x-total-pages"] == "2"

    async def test_products(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/markdown", params={"post_type": "product"})
        assert [item["slug"] for item in response.json()] == ["widget"]

    async def test_type_not_enabled(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/markdown", params={"post_type": "attachment"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "CONTENT_TYPE_NOT_ENABLED"

    @pytest.mark.parametrize(
        "params",
        [
            {"per_page": 0},
            {"per_page": 101},
            {"page": 0},
            {"per_page": "ten"},
            {"post_type": "Bad Type!"},
        ],
    )
    async def test_invalid_input(self, client: httpx.AsyncClient, params: dict) -> None:
        response = await client.get("/api/markdown", params=params)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_INPUT"


class TestStatus:
    async def test_status(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/status")

        assert response.status_code == 200
        data = response.json()
        assert data["enabled"] is True
        assert data["converter_name"] == "markdownify"
        assert data["cache_driver"] == "memory"
        assert data["allowed_types"] == ["post", "page", "product"]
        assert data["supported_media_types"] == ["text/markdown", "text/x-markdown"]
        assert "version" in data


async def test_api_can_be_disabled(make_state, client_for) -> None:
    state = make_state(negotiation={"api_enabled": False})
    async with client_for(state) as client:
        response = await client.get("/api/status")
    assert response.status_code == 404
