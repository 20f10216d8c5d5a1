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
Clients module for the read-only stores and the external catalog API.
Provides an async JSON fetcher for the object storage that hosts the tag index
and item batches, and a client for a Danbooru-compatible posts API.
"""

import json
import logging
from typing import Any

import httpx

from gallery_search.data_models.config import GallerySettings
from gallery_search.data_models.enums import Rating
from gallery_search.data_models.search import Post, ResultSet, file_extension
from gallery_search.exceptions import UpstreamError, UpstreamTimeoutError
from gallery_search.version import __version__

logger = logging.getLogger(__name__)

# Danbooru uses single-letter ratings; g and s are both work-safe.
_EXTERNAL_RATINGS = {
    "g": Rating.SAFE.value,
    "s": Rating.SAFE.value,
    "q": Rating.QUESTIONABLE.value,
    "e": Rating.EXPLICIT.value,
}


class IndexStoreClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        settings: GallerySettings,
    ) -> None:
        """
        Initialize the store client.

        Args:
            http: Shared async HTTP client; its lifetime is owned by the caller.
            settings: Service settings providing the storage URLs and timeout.
        """
        self.http = http
        self.settings = settings

    async def fetch_json(self, path: str) -> Any:
        """
        Fetches and decodes one JSON resource under the index prefix.

        Raises:
            UpstreamTimeoutError: If the fetch exceeds the configured timeout.
            UpstreamError: On network errors, non-2xx responses or invalid JSON.
        """
        url = self.settings.index_url(path)
        return await _get_json(self.http, url, timeout=self.settings.fetch_timeout)


class ExternalCatalogClient:
    """Searches an imageboard exposing a Danbooru-style `posts.json` endpoint."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        base_url: str = "https://danbooru.donmai.us",
        source: str = "danbooru",
        timeout: float = 10.0,
    ) -> None:
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.source = source
        self.timeout = timeout

    async def search(self, tags: str, page: int = 1, limit: int = 20) -> ResultSet:
        """
        Searches the external catalog.

        Never raises for upstream problems: a network error, bad status or
        malformed body is logged and yields an empty result set.
        """
        params = {"tags": tags, "page": page, "limit": limit}
        try:
            payload = await _get_json(
                self.http,
                f"{self.base_url}/posts.json",
                params=params,
                timeout=self.timeout,
            )
        except UpstreamError as e:
            logger.warning("External catalog search failed for %r: %s", tags, e)
            return ResultSet(source=self.source)

        if not isinstance(payload, list):
            logger.warning(
                "External catalog returned %s instead of a post list",
                type(payload).__name__,
            )
            return ResultSet(source=self.source)

        posts = []
        for raw in payload:
            post = self._to_post(raw) if isinstance(raw, dict) else None
            if post is not None:
                posts.append(post)
        return ResultSet(posts=posts, total=len(payload), source=self.source)

    def _to_post(self, raw: dict[str, Any]) -> Post | None:
        file_url = _non_blank(raw.get("file_url"))
        large_url = _non_blank(raw.get("large_file_url"))
        preview_url = _non_blank(raw.get("preview_file_url"))
        if not (file_url or large_url or preview_url):
            return None

        rating = raw.get("rating")
        return Post(
            id=str(raw.get("id", "")),
            file_url=file_url or large_url or preview_url,
            preview_url=preview_url or large_url or file_url,
            large_file_url=large_url or file_url or preview_url,
            tag_string=raw.get("tag_string") or "",
            tag_string_artist=raw.get("tag_string_artist") or "",
            rating=_EXTERNAL_RATINGS.get(rating, rating or Rating.QUESTIONABLE.value),
            score=raw.get("score") or 0,
            created_at=raw.get("created_at"),
            file_ext=raw.get("file_ext") or file_extension(file_url or large_url),
            source=self.source,
        )


def create_http_client(settings: GallerySettings) -> httpx.AsyncClient:
    """Builds the shared async HTTP client used by the store and catalog clients."""
    return httpx.AsyncClient(
        headers={
            "User-Agent": f"{settings.user_agent}/{__version__}",
            "Accept": "application/json",
        },
        timeout=settings.fetch_timeout,
        follow_redirects=True,
    )


def create_clients(
    settings: GallerySettings, http: httpx.AsyncClient
) -> tuple[IndexStoreClient, ExternalCatalogClient]:
    """
    Factory function to create the store and catalog clients from settings.

    Both clients share `http`; closing it is the caller's responsibility.
    """
    store = IndexStoreClient(http, settings)
    catalog = ExternalCatalogClient(
        http,
        base_url=settings.external_api_url,
        source=settings.external_source,
        timeout=settings.fetch_timeout,
    )
    return store, catalog


async def _get_json(
    http: httpx.AsyncClient,
    url: str,
    *,
    params: dict[str, Any] | None = None,
    timeout: float | None = None,
) -> Any:
    try:
        response = await http.get(url, params=params, timeout=timeout)
        response.raise_for_status()
        return response.json()
    except httpx.TimeoutException as e:
        raise UpstreamTimeoutError(f"Timed out fetching {url}", url=url) from e
    except httpx.HTTPStatusError as e:
        raise UpstreamError(
            f"HTTP {e.response.status_code} fetching {url}", url=url
        ) from e
    except httpx.HTTPError as e:
        raise UpstreamError(f"Request to {url} failed: {e}", url=url) from e
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise UpstreamError(f"Malformed JSON from {url}: {e}", url=url) from e


def _non_blank(value: Any) -> str:
    if isinstance(value, str) and value.strip():
        return value
    return ""
