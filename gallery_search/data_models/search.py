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
Data models for search functionality.

This module defines the Pydantic models for search queries, the item records
stored in the batch files, and the post shape returned to the gallery front end.
"""

from posixpath import splitext
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

from gallery_search.data_models.enums import Rating, SearchMode
from gallery_search.utils import normalize_query, parse_positive_int

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 42


class Query(BaseModel):
    """A normalized search request."""

    tags: str = Field(default="", description="Free-text tag query")
    page: int = Field(default=DEFAULT_PAGE, ge=1, description="1-based page number")
    limit: int = Field(default=DEFAULT_LIMIT, ge=1, description="Page size")
    mode: SearchMode = Field(
        default=SearchMode.UNIFIED, description="Which backing sources to use"
    )

    @classmethod
    def from_params(
        cls,
        tags: str | None = None,
        page: Any = None,
        limit: Any = None,
        mode: str | None = None,
        *,
        max_limit: int | None = None,
    ) -> "Query":
        """Builds a query from raw request parameters.

        Malformed or non-positive numbers degrade to the defaults instead of
        raising.
        """
        limit_value = parse_positive_int(limit, DEFAULT_LIMIT)
        if max_limit is not None:
            limit_value = min(limit_value, max_limit)
        return cls(
            tags=tags or "",
            page=parse_positive_int(page, DEFAULT_PAGE),
            limit=limit_value,
            mode=SearchMode.parse(mode),
        )

    @property
    def normalized_tags(self) -> str:
        return normalize_query(self.tags)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class ItemRecord(BaseModel):
    """An item as stored in the item batch files."""

    model_config = ConfigDict(extra="ignore")

    id: str
    file_url: str = ""
    thumbnail_url: str = ""
    tags: list[str] = Field(default_factory=list)
    artist: str | None = None
    rating: str = Rating.SAFE.value
    score: int = 0
    created_at: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        return str(v)

    @field_validator("rating", mode="before")
    @classmethod
    def default_rating(cls, v: Any) -> str:
        return str(v) if v else Rating.SAFE.value

    @field_validator("score", mode="before")
    @classmethod
    def default_score(cls, v: Any) -> int:
        if v is None or v == "":
            return 0
        return int(v)

    @field_validator("tags", mode="before")
    @classmethod
    def split_tag_string(cls, v: Any) -> list[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return v.split()
        return [str(t) for t in v]

    @field_validator("file_url", "thumbnail_url", mode="before")
    @classmethod
    def empty_path(cls, v: Any) -> str:
        return v or ""


class Post(BaseModel):
    """A single gallery post as returned to the front end."""

    id: str
    file_url: str
    preview_url: str
    large_file_url: str
    tag_string: str = ""
    tag_string_artist: str = ""
    rating: str = Rating.SAFE.value
    score: int = 0
    created_at: str | None = None
    file_ext: str = ""
    source: str

    @property
    def tag_set(self) -> set[str]:
        return set(self.tag_string.split())

    @classmethod
    def from_item(cls, item: ItemRecord, base_url: str, source: str) -> "Post":
        """Converts a stored item, resolving its relative paths against base_url."""
        file_url = resolve_url(base_url, item.file_url)
        preview_url = resolve_url(base_url, item.thumbnail_url) or file_url
        return cls(
            id=item.id,
            file_url=file_url,
            preview_url=preview_url,
            large_file_url=file_url,
            tag_string=" ".join(item.tags),
            tag_string_artist=item.artist or "",
            rating=item.rating,
            score=item.score,
            created_at=item.created_at,
            file_ext=file_extension(item.file_url),
            source=source,
        )


class ResultSet(BaseModel):
    """Posts from one backing source, with the count of all matches."""

    posts: list[Post] = Field(default_factory=list)
    total: int = 0
    source: str


class SourceCounts(BaseModel):
    local: int = 0
    external: int = 0


class SearchResponse(BaseModel):
    """Response body of the search route."""

    posts: list[Post] = Field(default_factory=list)
    total: int = 0
    page: int = DEFAULT_PAGE
    source: str
    sources: SourceCounts | None = None
    mode: str | None = None

    def to_json(self) -> dict[str, Any]:
        """Serializes the response, leaving out the unified-only fields when unset."""
        unset = {name for name in ("sources", "mode") if getattr(self, name) is None}
        return self.model_dump(mode="json", exclude=unset)


class TagSuggestion(BaseModel):
    """An autocomplete suggestion."""

    name: str
    post_count: int
    category: int = 0


def resolve_url(base_url: str, path: str) -> str:
    """Joins a stored relative path onto base_url, leaving absolute URLs alone."""
    if not path:
        return ""
    if urlparse(path).scheme in ("http", "https"):
        return path
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


def file_extension(path: str) -> str:
    """Returns the lowercase extension of a URL or path without the dot."""
    if not path:
        return ""
    _, ext = splitext(urlparse(path).path)
    return ext.lstrip(".").lower()
