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
Access to the externally hosted tag index and item batch files.

Two storage layouts are supported:

* sharded: `tags/<first character>.json` maps tags to item ids, and items live
  in numbered `items/batch-NNN.json` files.
* monolithic: a single `search-index.json` holding both the tag index and the
  items.

The search and autocomplete index files can also be served whole, from a
snapshot refreshed every few minutes.

All loads go through a ShardCache so a shard is fetched at most once while it
stays cached. Fetch failures surface as UpstreamError for the caller to
isolate.
"""

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from gallery_search.cache import ShardCache
from gallery_search.clients import IndexStoreClient
from gallery_search.data_models.config import GallerySettings
from gallery_search.data_models.enums import IndexLayout
from gallery_search.data_models.search import ItemRecord
from gallery_search.exceptions import UpstreamError

logger = logging.getLogger(__name__)

TAG_SHARD_PATH = "tags/{key}.json"
ITEM_BATCH_PATH = "items/batch-{number:03d}.json"
MONOLITHIC_INDEX_PATH = "search-index.json"
AUTOCOMPLETE_INDEX_PATH = "search-index-autocomplete.json"

# Whole index files handed to browser clients, by the `type` they are asked for.
INDEX_FILES = {
    "search": MONOLITHIC_INDEX_PATH,
    "autocomplete": AUTOCOMPLETE_INDEX_PATH,
}
INDEX_SNAPSHOT_TTL = 300.0

# Shard used for tags whose first character is not a letter or digit.
FALLBACK_SHARD = "_"


@dataclass
class ItemBatch:
    number: int
    items: list[ItemRecord] = field(default_factory=list)
    total: int = 0


class TagIndex(ABC):
    """Maps lowercase tags to the ids of the items carrying them."""

    @abstractmethod
    async def lookup(self, tag: str) -> list[str]:
        """Returns the ids for an exact tag, or [] when the tag is unknown."""

    @abstractmethod
    async def tags_with_prefix(self, prefix: str) -> list[tuple[str, list[str]]]:
        """Returns (tag, ids) pairs for every known tag starting with prefix."""


class ItemStore(ABC):
    """Numbered batches of item records."""

    @property
    @abstractmethod
    def batch_numbers(self) -> Sequence[int]:
        """Batch numbers in load order."""

    @abstractmethod
    async def load_batch(self, number: int) -> ItemBatch:
        """Loads one batch of items."""


class ShardedTagIndex(TagIndex):
    def __init__(self, store: IndexStoreClient, cache: ShardCache) -> None:
        self.store = store
        self.cache = cache

    @staticmethod
    def shard_key(tag: str) -> str:
        first = tag[:1]
        return first if first.isalnum() else FALLBACK_SHARD

    async def lookup(self, tag: str) -> list[str]:
        if not tag:
            return []
        shard = await self._load_shard(self.shard_key(tag))
        return list(shard.get(tag, []))

    async def tags_with_prefix(self, prefix: str) -> list[tuple[str, list[str]]]:
        if not prefix:
            return []
        shard = await self._load_shard(self.shard_key(prefix))
        return [(tag, ids) for tag, ids in shard.items() if tag.startswith(prefix)]

    async def _load_shard(self, key: str) -> dict[str, list[str]]:
        async def load() -> dict[str, list[str]]:
            payload = await self.store.fetch_json(TAG_SHARD_PATH.format(key=key))
            return _parse_tag_map(payload, f"tag shard {key!r}")

        return await self.cache.get_or_load(("tags", key), load)


class BatchItemStore(ItemStore):
    def __init__(
        self, store: IndexStoreClient, cache: ShardCache, batch_count: int
    ) -> None:
        self.store = store
        self.cache = cache
        self.batch_count = batch_count

    @property
    def batch_numbers(self) -> Sequence[int]:
        return range(1, self.batch_count + 1)

    async def load_batch(self, number: int) -> ItemBatch:
        async def load() -> ItemBatch:
            payload = await self.store.fetch_json(ITEM_BATCH_PATH.format(number=number))
            return _parse_batch(number, payload)

        return await self.cache.get_or_load(("batch", number), load)


class MonolithicIndex(TagIndex, ItemStore):
    """Tag index and items served from one file, exposed as a single batch."""

    def __init__(self, store: IndexStoreClient, cache: ShardCache) -> None:
        self.store = store
        self.cache = cache

    @property
    def batch_numbers(self) -> Sequence[int]:
        return (1,)

    async def lookup(self, tag: str) -> list[str]:
        if not tag:
            return []
        tag_map, _ = await self._load()
        return list(tag_map.get(tag, []))

    async def tags_with_prefix(self, prefix: str) -> list[tuple[str, list[str]]]:
        if not prefix:
            return []
        tag_map, _ = await self._load()
        return [(tag, ids) for tag, ids in tag_map.items() if tag.startswith(prefix)]

    async def load_batch(self, number: int) -> ItemBatch:
        if number != 1:
            return ItemBatch(number=number)
        _, batch = await self._load()
        return batch

    async def _load(self) -> tuple[dict[str, list[str]], ItemBatch]:
        async def load() -> tuple[dict[str, list[str]], ItemBatch]:
            payload = await self.store.fetch_json(MONOLITHIC_INDEX_PATH)
            if not isinstance(payload, dict):
                raise UpstreamError("Malformed search index: expected an object")
            raw_tags = payload.get("tagIndex", payload.get("tag_index", {}))
            tag_map = _parse_tag_map(raw_tags, "search index")
            items_payload = {
                "items": payload.get("items", payload.get("images", [])),
                "total_items": payload.get("total_items", payload.get("totalImages")),
            }
            return tag_map, _parse_batch(1, items_payload)

        return await self.cache.get_or_load(("index", MONOLITHIC_INDEX_PATH), load)


class IndexSnapshots:
    """
    Whole index files served as-is, for clients that search in the browser.

    A snapshot is refetched once it is older than `ttl` seconds. When a
    refetch fails the last good copy is served instead; None means the file
    has never loaded.
    """

    def __init__(
        self,
        store: IndexStoreClient,
        ttl: float = INDEX_SNAPSHOT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.cache = ShardCache(ttl=ttl, clock=clock)
        self._last_good: dict[str, Any] = {}

    async def get(self, kind: str) -> Any | None:
        path = INDEX_FILES[kind]
        try:
            data = await self.cache.get_or_load(
                ("snapshot", kind), lambda: self.store.fetch_json(path)
            )
        except UpstreamError as e:
            logger.warning("Failed to fetch %s index: %s", kind, e)
            return self._last_good.get(kind)
        self._last_good[kind] = data
        return data


def create_index(
    settings: GallerySettings, store: IndexStoreClient, cache: ShardCache
) -> tuple[TagIndex, ItemStore]:
    """Builds the tag index and item store matching the configured layout."""
    if settings.index_layout == IndexLayout.MONOLITHIC:
        index = MonolithicIndex(store, cache)
        return index, index
    return (
        ShardedTagIndex(store, cache),
        BatchItemStore(store, cache, settings.batch_count),
    )


def _parse_tag_map(payload: Any, label: str) -> dict[str, list[str]]:
    if not isinstance(payload, dict):
        raise UpstreamError(f"Malformed {label}: expected an object")
    tag_map = {}
    for tag, ids in payload.items():
        if isinstance(ids, list):
            tag_map[str(tag).lower()] = [str(i) for i in ids]
    return tag_map


def _parse_batch(number: int, payload: Any) -> ItemBatch:
    if isinstance(payload, list):
        raw_items, total = payload, None
    elif isinstance(payload, dict):
        raw_items, total = payload.get("items") or [], payload.get("total_items")
    else:
        raise UpstreamError(f"Malformed item batch {number}")

    items = []
    for raw in raw_items:
        # Some index builds use camelCase paths.
        if isinstance(raw, dict) and "file_url" not in raw and "fileUrl" in raw:
            raw = {
                **raw,
                "file_url": raw["fileUrl"],
                "thumbnail_url": raw.get("thumbnailUrl"),
            }
        try:
            items.append(ItemRecord.model_validate(raw))
        except ValidationError as e:
            logger.debug("Skipping malformed item in batch %d: %s", number, e)
    if not isinstance(total, int):
        total = len(items)
    return ItemBatch(number=number, items=items, total=total)
