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
Pydantic models for configuring the gallery search service.
"""

from pydantic import BaseModel, Field, field_validator

from .enums import IndexLayout


class GallerySettings(BaseModel):
    """Configuration for the search engine, its stores and the external catalog."""

    storage_base_url: str = Field(
        description="Base URL of the object storage holding indices and media"
    )
    index_prefix: str = Field(
        default="indices", description="Path prefix of the index files"
    )
    index_layout: IndexLayout = Field(
        default=IndexLayout.SHARDED,
        description="Whether tags are sharded by first letter or kept in one file",
    )
    batch_count: int = Field(
        default=50, ge=1, description="Number of numbered item batch shards"
    )
    batch_fanout: int = Field(
        default=5, ge=1, description="Item batches loaded in parallel per group"
    )
    fetch_timeout: float = Field(
        default=10.0, gt=0, description="Timeout in seconds for each upstream fetch"
    )
    cache_ttl: float | None = Field(
        default=None,
        gt=0,
        description="Shard cache entry lifetime in seconds; None keeps entries forever",
    )
    index_snapshot_ttl: float = Field(
        default=300.0,
        gt=0,
        description="Seconds before a served index file is refetched from storage",
    )
    partial_match_limit: int = Field(
        default=10,
        ge=0,
        description="Maximum number of tags used when expanding a query by prefix",
    )
    max_limit: int = Field(default=200, ge=1, description="Upper cap for page size")
    external_api_url: str = Field(
        default="https://danbooru.donmai.us",
        description="Base URL of the external catalog API",
    )
    external_source: str = Field(
        default="danbooru", description="Source label attached to external posts"
    )
    user_agent: str = Field(
        default="gallery-search", description="User-Agent sent to stores and APIs"
    )

    @field_validator("storage_base_url", "external_api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("URL must not be empty")
        return v.rstrip("/")

    @field_validator("index_prefix")
    @classmethod
    def strip_prefix_slashes(cls, v: str) -> str:
        return v.strip().strip("/")

    def storage_url(self, path: str) -> str:
        """Resolves a path relative to the storage base URL."""
        return f"{self.storage_base_url}/{path.lstrip('/')}"

    def index_url(self, path: str) -> str:
        """Resolves a path relative to the index prefix."""
        if self.index_prefix:
            return self.storage_url(f"{self.index_prefix}/{path.lstrip('/')}")
        return self.storage_url(path)
