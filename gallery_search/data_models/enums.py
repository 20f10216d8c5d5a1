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
Enumerations shared by the search models and configuration.
"""

from enum import Enum


class SearchMode(str, Enum):
    """Which backing source(s) a search reads from."""

    UNIFIED = "unified"
    HISTORICAL = "historical"
    EXTERNAL = "external"

    @classmethod
    def parse(cls, value: str | None) -> "SearchMode":
        """Maps a raw query parameter to a mode, accepting legacy aliases.

        Unknown or empty values fall back to UNIFIED.
        """
        if not value:
            return cls.UNIFIED
        key = value.strip().lower()
        try:
            return cls(key)
        except ValueError:
            return _MODE_ALIASES.get(key, cls.UNIFIED)


_MODE_ALIASES = {
    "all": SearchMode.UNIFIED,
    "local": SearchMode.HISTORICAL,
    "danbooru": SearchMode.EXTERNAL,
}


class IndexLayout(str, Enum):
    """How the tag index is laid out in object storage."""

    SHARDED = "sharded"
    MONOLITHIC = "monolithic"


class Rating(str, Enum):
    SAFE = "safe"
    QUESTIONABLE = "questionable"
    EXPLICIT = "explicit"
