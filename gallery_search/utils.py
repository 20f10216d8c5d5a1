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

import asyncio
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Settled(Generic[T]):
    """Outcome of one awaitable run through gather_settled."""

    value: T | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def gather_settled(*aws: Awaitable[T]) -> list[Settled[T]]:
    """
    Runs the awaitables concurrently and waits for all of them.

    Unlike a bare asyncio.gather, a failure in one task never cancels or hides
    the others: each result is captured as a Settled holding either the value
    or the exception, in the same order as the inputs. Cancellation of the
    caller still propagates.
    """
    results = await asyncio.gather(*aws, return_exceptions=True)
    settled = []
    for result in results:
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, BaseException):
            settled.append(Settled(error=result))
        else:
            settled.append(Settled(value=result))
    return settled


def parse_positive_int(value: Any, default: int) -> int:
    """
    Parses a query parameter as an integer >= 1.

    Anything that is missing, non-numeric or below 1 yields the default, so a
    request like `page=abc` behaves the same as no page at all.
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return parsed if parsed >= 1 else default


def normalize_query(text: str | None) -> str:
    """Trims, lowercases and collapses internal whitespace."""
    if not text:
        return ""
    return " ".join(text.lower().split())


def split_tokens(text: str | None) -> list[str]:
    """Splits a query into unique tag tokens, keeping their first-seen order."""
    return list(dict.fromkeys(normalize_query(text).split()))
