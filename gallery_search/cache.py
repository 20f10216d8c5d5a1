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
Read-through cache for shards fetched from the index and batch stores.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Hashable
from typing import Any

logger = logging.getLogger(__name__)


class ShardCache:
    """
    Memoizes loaded shards (tag shards, item batches, whole index files) by key.

    Entries are append-only by default and live as long as the cache object.
    Passing `ttl` makes entries expire after that many seconds, which matters
    only for long-lived processes whose backing data can change. Failed loads
    are never stored, so the next request retries them. Concurrent loads of
    the same key share a single in-flight fetch.
    """

    def __init__(
        self,
        ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, Any]] = {}
        self._pending: dict[Hashable, asyncio.Future] = {}

    def __contains__(self, key: Hashable) -> bool:
        return self._lookup(key) is not _MISSING

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: Hashable, default: Any = None) -> Any:
        value = self._lookup(key)
        return default if value is _MISSING else value

    def put(self, key: Hashable, value: Any) -> None:
        self._entries[key] = (self._clock(), value)

    def invalidate(self, key: Hashable | None = None) -> None:
        """Drops one entry, or every entry when key is None."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    async def get_or_load(
        self, key: Hashable, loader: Callable[[], Awaitable[Any]]
    ) -> Any:
        """
        Returns the cached value for key, calling loader once on a miss.

        The load runs in its own task, so cancelling one caller leaves the
        fetch running for every other caller waiting on the same key.
        """
        value = self._lookup(key)
        if value is not _MISSING:
            return value

        pending = self._pending.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._load(key, loader))
            pending.add_done_callback(_retrieve_exception)
            self._pending[key] = pending
        return await asyncio.shield(pending)

    async def _load(
        self, key: Hashable, loader: Callable[[], Awaitable[Any]]
    ) -> Any:
        try:
            value = await loader()
        finally:
            self._pending.pop(key, None)
        self.put(key, value)
        logger.debug("Cached shard %s", key)
        return value

    def _lookup(self, key: Hashable) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return _MISSING
        stored_at, value = entry
        if self.ttl is not None and self._clock() - stored_at >= self.ttl:
            del self._entries[key]
            return _MISSING
        return value


_MISSING = object()


def _retrieve_exception(task: asyncio.Future) -> None:
    # Marks a failure as retrieved when no waiter is left to observe it.
    if not task.cancelled():
        task.exception()
