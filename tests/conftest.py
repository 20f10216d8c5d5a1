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
Global pytest configuration and fixtures.

Pytest automatically discovers and loads this file. Fixtures defined here are
available to all tests in this directory and its subdirectories without
needing to import them explicitly.
"""

import os
from typing import Any
from unittest.mock import patch

import httpx
import pytest
from gallery_search.clients import create_clients
from gallery_search.data_models.config import GallerySettings

STORAGE_URL = "https://storage.test"
CATALOG_URL = "https://catalog.test"


@pytest.fixture(autouse=True)
def clean_env():
    """
    Automatically clear environment variables for all tests to ensure
    tests are hermetic and don't depend on the host environment.
    """
    with patch.dict(os.environ, {}, clear=True):
        yield


@pytest.fixture(autouse=True)
def mock_load_dotenv():
    """
    Automatically mock load_dotenv for all tests to prevent
    loading environment variables from local .env files.
    """
    with patch("gallery_search.config.load_dotenv"):
        yield


class FakeStorage:
    """
    In-memory stand-in for the object storage and the external catalog.

    Serves `files` (path under the storage root -> JSON payload) and records
    every requested path so tests can assert on fetch counts.
    """

    def __init__(
        self,
        files: dict[str, Any],
        catalog_posts: list[dict[str, Any]] | None = None,
    ) -> None:
        self.files = files
        self.catalog_posts = catalog_posts or []
        self.failing: set[str] = set()
        self.timing_out: set[str] = set()
        self.catalog_status = 200
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "catalog.test":
            if self.catalog_status != 200:
                return httpx.Response(self.catalog_status)
            return httpx.Response(200, json=self.catalog_posts)

        path = request.url.path.lstrip("/")
        if path in self.timing_out:
            raise httpx.ReadTimeout("timed out", request=request)
        if path in self.failing:
            return httpx.Response(500, text="boom")
        if path not in self.files:
            return httpx.Response(404)
        return httpx.Response(200, json=self.files[path])

    def count(self, path: str) -> int:
        return sum(1 for r in self.requests if r.url.path.lstrip("/") == path)

    @property
    def catalog_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.host == "catalog.test"]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def _item(item_id: str, tags: list[str], score: int, ext: str = "jpg", **extra):
    return {
        "id": item_id,
        "file_url": f"images/{item_id}.{ext}",
        "thumbnail_url": f"thumbnails/{item_id}.jpg",
        "tags": tags,
        "score": score,
        "created_at": "2025-01-01T00:00:00Z",
        **extra,
    }


GALLERY_FILES = {
    "indices/tags/g.json": {"genshin_impact": ["h1", "h2", "h3", "h4"]},
    "indices/tags/l.json": {"lumine": ["h1", "h3", "h6"]},
    "indices/tags/p.json": {"paimon": ["h2", "h3"]},
    "indices/tags/k.json": {"keqing": ["h4"], "konosuba": ["h5"]},
    "indices/tags/m.json": {"megumin": ["h5"], "megumin_(cosplay)": ["h6"]},
    "indices/tags/a.json": {"aether": ["h6"]},
    "indices/items/batch-001.json": {
        "items": [
            _item("h1", ["genshin_impact", "lumine"], 5, rating="safe"),
            _item("h2", ["genshin_impact", "paimon"], 10, ext="png"),
            _item("h3", ["genshin_impact", "lumine", "paimon"], 5, ext="mp4"),
        ],
        "total_items": 3,
    },
    "indices/items/batch-002.json": {
        "items": [
            _item("h4", ["genshin_impact", "keqing"], 20, rating="questionable"),
            _item("h5", ["konosuba", "megumin"], 7, artist="someone"),
        ],
        "total_items": 2,
    },
    "indices/items/batch-003.json": {
        "items": [_item("h6", ["lumine", "aether", "megumin_(cosplay)"], 1)],
        "total_items": 1,
    },
}

CATALOG_POSTS = [
    {
        "id": 9001,
        "file_url": "https://cdn.catalog.test/9001.jpg",
        "large_file_url": "https://cdn.catalog.test/sample/9001.jpg",
        "preview_file_url": "https://cdn.catalog.test/preview/9001.jpg",
        "tag_string": "genshin_impact lumine",
        "tag_string_artist": "artist_a",
        "rating": "g",
        "score": 42,
        "created_at": "2024-05-01T00:00:00Z",
        "file_ext": "jpg",
    },
    {
        "id": 9002,
        "file_url": None,
        "large_file_url": "https://cdn.catalog.test/sample/9002.png",
        "preview_file_url": "",
        "tag_string": "genshin_impact",
        "rating": "e",
        "score": 3,
    },
    {"id": 9003, "tag_string": "deleted_post"},
]


@pytest.fixture
def settings() -> GallerySettings:
    return GallerySettings(
        storage_base_url=STORAGE_URL,
        external_api_url=CATALOG_URL,
        batch_count=3,
        batch_fanout=2,
    )


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage(dict(GALLERY_FILES), list(CATALOG_POSTS))


@pytest.fixture
def http(storage) -> httpx.AsyncClient:
    return storage.client()


@pytest.fixture
def clients(settings, http):
    return create_clients(settings, http)
