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
Configuration module for the gallery search service.
"""

import os

from dotenv import load_dotenv

from .data_models.config import GallerySettings

# Environment variable names
STORAGE_BASE_URL_ENV = "GALLERY_STORAGE_BASE_URL"
INDEX_PREFIX_ENV = "GALLERY_INDEX_PREFIX"
INDEX_LAYOUT_ENV = "GALLERY_INDEX_LAYOUT"
BATCH_COUNT_ENV = "GALLERY_BATCH_COUNT"
BATCH_FANOUT_ENV = "GALLERY_BATCH_FANOUT"
FETCH_TIMEOUT_ENV = "GALLERY_FETCH_TIMEOUT"
CACHE_TTL_ENV = "GALLERY_CACHE_TTL"
INDEX_SNAPSHOT_TTL_ENV = "GALLERY_INDEX_SNAPSHOT_TTL"
PARTIAL_MATCH_LIMIT_ENV = "GALLERY_PARTIAL_MATCH_LIMIT"
MAX_LIMIT_ENV = "GALLERY_MAX_LIMIT"
EXTERNAL_API_URL_ENV = "GALLERY_EXTERNAL_API_URL"
EXTERNAL_SOURCE_ENV = "GALLERY_EXTERNAL_SOURCE"
USER_AGENT_ENV = "GALLERY_USER_AGENT"

# Optional settings, keyed by the GallerySettings field they populate.
_OPTIONAL_SETTINGS = {
    "index_prefix": INDEX_PREFIX_ENV,
    "index_layout": INDEX_LAYOUT_ENV,
    "batch_count": BATCH_COUNT_ENV,
    "batch_fanout": BATCH_FANOUT_ENV,
    "fetch_timeout": FETCH_TIMEOUT_ENV,
    "cache_ttl": CACHE_TTL_ENV,
    "index_snapshot_ttl": INDEX_SNAPSHOT_TTL_ENV,
    "partial_match_limit": PARTIAL_MATCH_LIMIT_ENV,
    "max_limit": MAX_LIMIT_ENV,
    "external_api_url": EXTERNAL_API_URL_ENV,
    "external_source": EXTERNAL_SOURCE_ENV,
    "user_agent": USER_AGENT_ENV,
}


def _load_env_file() -> None:
    """Load .env file if present in the current directory."""
    load_dotenv()


def get_settings() -> GallerySettings:
    """
    Get gallery search configuration from environment variables.

    Returns:
        GallerySettings object containing the configuration

    Raises:
        ValueError: If required configuration is missing or invalid
    """
    _load_env_file()

    storage_base_url = os.getenv(STORAGE_BASE_URL_ENV)
    if not storage_base_url:
        raise ValueError(f"{STORAGE_BASE_URL_ENV} environment variable is required")

    # Build config data, only including fields that are provided
    config_data = {"storage_base_url": storage_base_url}
    for field_name, env_name in _OPTIONAL_SETTINGS.items():
        value = os.getenv(env_name)
        if value is not None and value.strip():
            config_data[field_name] = value.strip()

    return GallerySettings.model_validate(config_data)
