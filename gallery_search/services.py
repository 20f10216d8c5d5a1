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

import logging
from collections.abc import Iterable, Sequence
from typing import TypeVar

from gallery_search.cache import ShardCache
from gallery_search.clients import ExternalCatalogClient, IndexStoreClient
from gallery_search.data_models.config import GallerySettings
from gallery_search.data_models.enums import SearchMode
from gallery_search.data_models.search import (
    ItemRecord,
    Post,
    Query,
    ResultSet,
    SearchResponse,
    SourceCounts,
    TagSuggestion,
)
from gallery_search.exceptions import UpstreamError
from gallery_search.index import ItemStore, TagIndex, create_index
from gallery_search.utils import gather_settled, normalize_query, split_tokens

logger = logging.getLogger(__name__)

LOCAL_SOURCE = "historical"
UNIFIED_SOURCE = "unified"
DEFAULT_AUTOCOMPLETE_LIMIT = 20

T = TypeVar("T")


def paginate(records: Sequence[T], page: int, limit: int) -> list[T]:
    """Returns the slice of records for a 1-based page of the given size."""
    skip = (page - 1) * limit
    return list(records[skip : skip + limit])


class SearchEngine:
    """
    Tag search over the read-only index stores, with external backfill.

    The engine holds no state of its own; everything it fetches is memoized
    in the ShardCache shared by its tag index and item store.
    """

    def __init__(
        self,
        tag_index: TagIndex,
        item_store: ItemStore,
        catalog: ExternalCatalogClient,
        *,
        base_url: str,
        batch_fanout: int = 5,
        partial_match_limit: int = 10,
        local_source: str = LOCAL_SOURCE,
    ) -> None:
        self.tag_index = tag_index
        self.item_store = item_store
        self.catalog = catalog
        self.base_url = base_url
        self.batch_fanout = max(1, batch_fanout)
        self.partial_match_limit = partial_match_limit
        self.local_source = local_source

    @classmethod
    def from_settings(
        cls,
        settings: GallerySettings,
        store: IndexStoreClient,
        catalog: ExternalCatalogClient,
        cache: ShardCache | None = None,
    ) -> "SearchEngine":
        if cache is None:
            cache = ShardCache(ttl=settings.cache_ttl)
        tag_index, item_store = create_index(settings, store, cache)
        return cls(
            tag_index,
            item_store,
            catalog,
            base_url=settings.storage_base_url,
            batch_fanout=settings.batch_fanout,
            partial_match_limit=settings.partial_match_limit,
        )

    async def search(self, query: Query) -> SearchResponse:
        """Runs a query in the mode it asks for and builds the route response."""
        logger.info(
            "Search tags=%r page=%d limit=%d mode=%s",
            query.tags,
            query.page,
            query.limit,
            query.mode.value,
        )
        if query.mode == SearchMode.HISTORICAL:
            local = await self.search_local(query)
            return SearchResponse(
                posts=local.posts,
                total=local.total,
                page=query.page,
                source=local.source,
            )

        if query.mode == SearchMode.EXTERNAL:
            external = await self.search_external(
                query.normalized_tags, query.page, query.limit
            )
            return SearchResponse(
                posts=external.posts[: query.limit],
                total=external.total,
                page=query.page,
                source=external.source,
            )

        return await self.search_unified(query)

    async def search_unified(self, query: Query) -> SearchResponse:
        """
        Local results first; the external catalog only fills a short page.

        Totals from both sources are summed without deduplication, so an item
        present in both is counted twice.
        """
        local = await self.search_local(query)
        if len(local.posts) >= query.limit:
            return SearchResponse(
                posts=local.posts[: query.limit],
                total=local.total,
                page=query.page,
                source=local.source,
                sources=SourceCounts(local=local.total, external=0),
                mode=UNIFIED_SOURCE,
            )

        remaining = query.limit - len(local.posts)
        external = await self.search_external(
            query.normalized_tags, query.page, remaining
        )
        merged = (local.posts + external.posts)[: query.limit]

        if local.posts and external.posts:
            source = UNIFIED_SOURCE
        elif external.posts:
            source = external.source
        else:
            source = local.source

        return SearchResponse(
            posts=merged,
            total=local.total + external.total,
            page=query.page,
            source=source,
            sources=SourceCounts(local=local.total, external=external.total),
            mode=UNIFIED_SOURCE,
        )

    async def search_local(self, query: Query) -> ResultSet:
        ids = await self.resolve_tag_ids(query.tags)
        if ids is None:
            return await self.default_listing(query.page, query.limit)

        records = await self.resolve_items(ids)
        return ResultSet(
            posts=[self._to_post(r) for r in paginate(records, query.page, query.limit)],
            total=len(records),
            source=self.local_source,
        )

    async def search_external(self, tags: str, page: int, limit: int) -> ResultSet:
        """Queries the external catalog; any failure yields an empty result."""
        try:
            return await self.catalog.search(tags, page=page, limit=limit)
        except Exception as e:  # noqa: BLE001
            logger.warning("External catalog unavailable for %r: %s", tags, e)
            return ResultSet(source=self.catalog.source)

    async def default_listing(self, page: int, limit: int) -> ResultSet:
        """
        First batch in stored order, used when the query has no tags.

        No ranking is applied since there is nothing to rank against.
        """
        numbers = list(self.item_store.batch_numbers)
        if not numbers:
            return ResultSet(source=self.local_source)
        try:
            batch = await self.item_store.load_batch(numbers[0])
        except UpstreamError as e:
            logger.warning("Default listing unavailable: %s", e)
            return ResultSet(source=self.local_source)

        return ResultSet(
            posts=[self._to_post(r) for r in paginate(batch.items, page, limit)],
            total=batch.total,
            source=self.local_source,
        )

    async def resolve_tag_ids(self, query: str) -> list[str] | None:
        """
        Resolves a tag query to candidate item ids, in discovery order.

        Returns None for an empty query, meaning "no filter". The whole query
        is tried as a single tag first; failing that, a multi-word query
        requires every word to be a tag of the item (AND), and a single word
        falls back to tags that start with it.
        """
        normalized = normalize_query(query)
        if not normalized:
            return None

        exact = await self._lookup(normalized)
        if exact:
            return _unique(exact)

        tokens = split_tokens(normalized)
        if len(tokens) > 1:
            return await self._intersect(tokens)
        return await self._expand_prefix(normalized)

    async def resolve_items(self, ids: Sequence[str]) -> list[ItemRecord]:
        """
        Locates the records for ids across the item batches, best score first.

        Batches load in groups of `batch_fanout`; loading stops once every id
        has been found. Records with equal scores keep the order of `ids`.
        """
        positions: dict[str, int] = {}
        for i, item_id in enumerate(ids):
            positions.setdefault(item_id, i)
        if not positions:
            return []

        found: dict[str, ItemRecord] = {}
        numbers = list(self.item_store.batch_numbers)
        for start in range(0, len(numbers), self.batch_fanout):
            group = numbers[start : start + self.batch_fanout]
            outcomes = await gather_settled(
                *(self.item_store.load_batch(n) for n in group)
            )
            for number, outcome in zip(group, outcomes):
                if not outcome.ok:
                    logger.warning("Skipping item batch %d: %s", number, outcome.error)
                    continue
                for item in outcome.value.items:
                    if item.id in positions and item.id not in found:
                        found[item.id] = item
            if len(found) == len(positions):
                break
        else:
            if len(found) < len(positions):
                logger.debug(
                    "Located %d of %d candidate items", len(found), len(positions)
                )

        return sorted(found.values(), key=lambda r: (-r.score, positions[r.id]))

    async def autocomplete(
        self, text: str, limit: int = DEFAULT_AUTOCOMPLETE_LIMIT
    ) -> list[TagSuggestion]:
        """Suggests known tags completing the last word of text."""
        words = normalize_query(text).split()
        if not words or limit < 1:
            return []
        target = words[-1]

        try:
            matches = await self.tag_index.tags_with_prefix(target)
        except UpstreamError as e:
            logger.warning("Autocomplete unavailable for %r: %s", target, e)
            return []

        matches.sort(key=lambda pair: (-len(pair[1]), pair[0]))
        return [
            TagSuggestion(name=tag, post_count=len(ids))
            for tag, ids in matches[:limit]
        ]

    async def _lookup(self, tag: str) -> list[str]:
        try:
            return await self.tag_index.lookup(tag)
        except UpstreamError as e:
            logger.warning("Tag lookup failed for %r: %s", tag, e)
            return []

    async def _intersect(self, tokens: list[str]) -> list[str]:
        outcomes = await gather_settled(*(self.tag_index.lookup(t) for t in tokens))
        id_lists = []
        for token, outcome in zip(tokens, outcomes):
            if outcome.ok:
                id_lists.append(outcome.value)
            else:
                logger.warning("Tag lookup failed for %r: %s", token, outcome.error)
                id_lists.append([])

        common = set(id_lists[0]).intersection(*id_lists[1:])
        return _unique(i for i in id_lists[0] if i in common)

    async def _expand_prefix(self, prefix: str) -> list[str]:
        if self.partial_match_limit < 1:
            return []
        try:
            matches = await self.tag_index.tags_with_prefix(prefix)
        except UpstreamError as e:
            logger.warning("Prefix expansion failed for %r: %s", prefix, e)
            return []

        # Shortest tags are the closest completions of the prefix.
        matches.sort(key=lambda pair: (len(pair[0]), pair[0]))
        ids: list[str] = []
        for _, tag_ids in matches[: self.partial_match_limit]:
            ids.extend(tag_ids)
        return _unique(ids)

    def _to_post(self, record: ItemRecord) -> Post:
        return Post.from_item(record, self.base_url, self.local_source)


def _unique(ids: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(ids))
