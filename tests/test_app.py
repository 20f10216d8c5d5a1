# Copyright 2025 Google LLC.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""
Tests for the HTTP routes, exercised through Starlette's TestClient.
"""

import os
from unittest.mock import AsyncMock, Mock, patch

import pytest
from gallery_search.app import create_app
from gallery_search.clients import ExternalCatalogClient
from gallery_search.exceptions import UpstreamError
from gallery_search.index import IndexSnapshots
from gallery_search.services import SearchEngine
from starlette.testclient import TestClient


@pytest.fixture
def engine(settings, clients):
    return SearchEngine.from_settings(settings, *clients)


@pytest.fixture
def client(settings, engine, http):
    return TestClient(create_app(settings, engine=engine, http=http))


class TestCors:
    def test_headers_on_every_response(self, client):
        response = client.get("/api/search", params={"tags": "lumine"})

        assert response.headers["access-control-allow-origin"] == "*"
        assert response.headers["access-control-allow-methods"] == "GET, OPTIONS"
        assert response.headers["access-control-allow-headers"] == "Content-Type"

    @pytest.mark.parametrize(
        "path",
        ["/api/search", "/api/proxy", "/api/video-proxy", "/api/serve-index", "/api/health"],
    )
    def test_preflight(self, client, path):
        response = client.options(path)

        assert response.status_code == 200
        assert response.content == b""
        assert response.headers["access-control-allow-origin"] == "*"

    def test_route_specific_headers(self, client):
        proxy = client.options("/api/proxy")
        video = client.options("/api/video-proxy")

        assert (
            proxy.headers["access-control-allow-methods"]
            == "GET, POST, PUT, DELETE, OPTIONS"
        )
        assert video.headers["access-control-allow-headers"] == "Range, Content-Type"


class TestSearchRoute:
    def test_historical_search(self, client):
        response = client.get(
            "/api/search", params={"tags": "LUMINE", "mode": "historical"}
        )

        assert response.status_code == 200
        body = response.json()
        assert [p["id"] for p in body["posts"]] == ["h1", "h3", "h6"]
        assert body["total"] == 3
        assert body["page"] == 1
        assert body["source"] == "historical"
        assert "sources" not in body
        post = body["posts"][0]
        for key in ("id", "file_url", "preview_url", "tag_string", "source"):
            assert key in post

    def test_and_query(self, client):
        response = client.get(
            "/api/search", params={"tags": "  lumine   paimon ", "mode": "historical"}
        )
        assert [p["id"] for p in response.json()["posts"]] == ["h3"]

    def test_unified_response_shape(self, client):
        body = client.get("/api/search", params={"tags": "lumine"}).json()

        assert body["mode"] == "unified"
        assert body["sources"] == {"local": 3, "external": 3}
        assert body["source"] == "unified"
        sources = {p["source"] for p in body["posts"]}
        assert sources == {"historical", "danbooru"}

    def test_unified_external_throws(self, settings, clients, http):
        store, _ = clients
        catalog = Mock(spec=ExternalCatalogClient)
        catalog.source = "danbooru"
        catalog.search = AsyncMock(side_effect=ConnectionError("down"))
        engine = SearchEngine.from_settings(settings, store, catalog)
        client = TestClient(create_app(settings, engine=engine, http=http))

        response = client.get("/api/search", params={"tags": "lumine"})

        assert response.status_code == 200
        body = response.json()
        assert [p["id"] for p in body["posts"]] == ["h1", "h3", "h6"]
        assert body["sources"]["external"] == 0

    def test_malformed_page_and_limit(self, client):
        response = client.get(
            "/api/search",
            params={"tags": "lumine", "page": "abc", "limit": "not-a-number"},
        )

        assert response.status_code == 200
        assert response.json()["page"] == 1

    def test_page_two(self, client):
        body = client.get(
            "/api/search",
            params={"tags": "genshin_impact", "mode": "historical", "page": "2", "limit": "2"},
        ).json()

        assert body["page"] == 2
        assert [p["id"] for p in body["posts"]] == ["h1", "h3"]
        assert body["total"] == 4

    def test_no_tags_lists_recent(self, client):
        body = client.get("/api/search", params={"mode": "historical"}).json()

        assert body["total"] > 0
        assert [p["id"] for p in body["posts"]] == ["h1", "h2", "h3"]

    def test_unexpected_error_is_500(self, settings, http):
        engine = Mock(spec=SearchEngine)
        engine.search = AsyncMock(side_effect=KeyError("boom"))
        client = TestClient(create_app(settings, engine=engine, http=http))

        response = client.get("/api/search", params={"tags": "lumine"})

        assert response.status_code == 500
        assert response.json()["error"] == "Search failed"
        assert "boom" in response.json()["message"]
        assert response.headers["access-control-allow-origin"] == "*"


class TestAutocompleteRoute:
    def test_suggestions(self, client):
        response = client.get("/api/search", params={"autocomplete": "GENSH"})

        assert response.status_code == 200
        assert response.json() == [
            {"name": "genshin_impact", "post_count": 4, "category": 0}
        ]

    def test_empty_autocomplete(self, client):
        response = client.get("/api/search", params={"autocomplete": ""})

        assert response.status_code == 200
        assert response.json() == []

    def test_limit(self, client):
        response = client.get("/api/search", params={"autocomplete": "meg", "limit": "1"})
        assert len(response.json()) == 1


class TestProxyRoutes:
    def test_proxy_requires_url(self, client):
        response = client.get("/api/proxy")

        assert response.status_code == 400
        assert response.json() == {"error": "Missing url parameter"}
        assert response.headers["access-control-allow-origin"] == "*"

    def test_video_proxy_requires_url(self, client):
        response = client.get("/api/video-proxy", params={"url": " "})
        assert response.status_code == 400
        assert response.json() == {"error": "Missing url parameter"}


class TestServeIndexRoute:
    @pytest.fixture
    def snapshots(self):
        snapshots = Mock(spec=IndexSnapshots)
        snapshots.get = AsyncMock(return_value={"tags": {"lumine": 3}})
        return snapshots

    @pytest.fixture
    def index_client(self, settings, engine, http, snapshots):
        app = create_app(settings, engine=engine, http=http, snapshots=snapshots)
        return TestClient(app)

    @pytest.mark.parametrize("kind", ["search", "autocomplete"])
    def test_serves_index(self, index_client, snapshots, kind):
        response = index_client.get("/api/serve-index", params={"type": kind})

        assert response.status_code == 200
        assert response.json() == {"tags": {"lumine": 3}}
        snapshots.get.assert_awaited_once_with(kind)

    @pytest.mark.parametrize("params", [{}, {"type": "items"}])
    def test_invalid_type(self, index_client, snapshots, params):
        response = index_client.get("/api/serve-index", params=params)

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid type parameter"}
        snapshots.get.assert_not_awaited()

    def test_missing_index(self, index_client, snapshots):
        snapshots.get.return_value = None

        response = index_client.get("/api/serve-index", params={"type": "search"})

        assert response.status_code == 404
        assert response.json() == {"error": "Index not found"}

    def test_unexpected_error(self, index_client, snapshots):
        snapshots.get.side_effect = UpstreamError("boom")

        response = index_client.get("/api/serve-index", params={"type": "search"})

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to serve index"}
        assert response.headers["access-control-allow-origin"] == "*"

    def test_reads_through_storage(self, settings, engine, storage, http):
        storage.files["indices/search-index-autocomplete.json"] = {"tags": {}}
        app = create_app(settings, engine=engine, http=http)

        with TestClient(app) as client:
            first = client.get("/api/serve-index", params={"type": "autocomplete"})
            client.get("/api/serve-index", params={"type": "autocomplete"})
            missing = client.get("/api/serve-index", params={"type": "search"})

        assert first.json() == {"tags": {}}
        assert storage.count("indices/search-index-autocomplete.json") == 1
        assert missing.status_code == 404


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}


def test_lifespan_builds_from_environment(storage):
    env = {
        "GALLERY_STORAGE_BASE_URL": "https://storage.test",
        "GALLERY_EXTERNAL_API_URL": "https://catalog.test",
        "GALLERY_BATCH_COUNT": "3",
    }
    with patch.dict(os.environ, env):
        app = create_app(http=storage.client())
        with TestClient(app) as client:
            body = client.get(
                "/api/search", params={"tags": "aether", "mode": "historical"}
            ).json()
            assert isinstance(app.state.engine, SearchEngine)
            assert isinstance(app.state.snapshots, IndexSnapshots)

    assert [p["id"] for p in body["posts"]] == ["h6"]
