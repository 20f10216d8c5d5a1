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
Exceptions raised by the gallery search service.
"""


class GallerySearchError(Exception):
    """Base class for all errors raised by this package."""

    def __str__(self) -> str:
        return f"{self.__class__.__name__}: {super().__str__()}"


class UpstreamError(GallerySearchError):
    """A store or external API could not be fetched or returned bad data."""

    def __init__(self, message: str, *, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class UpstreamTimeoutError(UpstreamError):
    """An upstream fetch exceeded its timeout."""


class MissingParameterError(GallerySearchError):
    """A required request parameter was not supplied."""

    def __init__(self, parameter: str) -> None:
        super().__init__(f"Missing {parameter} parameter")
        self.parameter = parameter
