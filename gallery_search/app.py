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
Starlette application exposing the gallery routes.
"""

import logging
from contextlib import asynccontextmanager

import httpx
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from gallery_search.clients import create_clients, create_http_client
from gallery_search.config import get_settings
from gallery_search.data_models.config import GallerySettings
from gallery_search.data_models.search import Query
from gallery_search.exceptions import MissingParameterError
from gallery_search.index import INDEX_FILES, IndexSnapshots
from gallery_search.middleware import CORSHeadersMiddleware
from gallery_search.proxy import proxy_page, proxy_video
from gallery_search.services import DEFAULT_AUTOCOMPLETE_LIMIT, SearchEngine
from gallery_search.utils import parse_positive_int

logger = logging.getLogger(__name__)

DEFAULT_MAX_LIMIT = 200

ROUTE_METHODS = {
    "/api/proxy": "GET, POST, PUT, DELETE, OPTIONS",
}
ROUTE_HEADERS = {
    "/api/video-proxy": "Range, Content-Type",
}


async def search(request: Request) -> Response:
    params = request.query_params
    engine: SearchEngine = request.app.state.engine
    try:
        if "autocomplete" in params:
            limit = parse_positive_int(params.get("limit"), DEFAULT_AUTOCOMPLETE_LIMIT)
            suggestions = await engine.autocomplete(params["autocomplete"], limit)
            return JSONResponse([s.model_dump() for s in suggestions])

        query = Query.from_params(
            tags=params.get("tags"),
            page=params.get("page"),
            limit=params.get("limit"),
            mode=params.get("mode"),
            max_limit=request.app.state.max_limit,
        )
        response = await engine.search(query)
        return JSONResponse(response.to_json())
    except Exception as e:
        logger.exception("Search failed")
        return JSONResponse(
            {"error": "Search failed", "message": str(e)}, status_code=500
        )


async def page_proxy(request: Request) -> Response:
    url = _require(request, "url")
    return await proxy_page(request.app.state.http, url)


async def video_proxy(request: Request) -> Response:
    url = _require(request, "url")
    return await proxy_video(
        request.app.state.http, url, request.headers.get("range")
    )


async def serve_index(request: Request) -> Response:
    kind = request.query_params.get("type", "")
    if kind not in INDEX_FILES:
        return JSONResponse({"error": "Invalid type parameter"}, status_code=400)
    try:
        data = await request.app.state.snapshots.get(kind)
    except Exception:
        logger.exception("Serve index failed")
        return JSONResponse({"error": "Failed to serve index"}, status_code=500)
    if data is None:
        return JSONResponse({"error": "Index not found"}, status_code=404)
    return JSONResponse(data)


async def health(request: Request) -> Response:
    return JSONResponse({"status": "ok"})


async def missing_parameter(request: Request, exc: MissingParameterError) -> Response:
    return JSONResponse({"error": f"Missing {exc.parameter} parameter"}, status_code=400)


def _require(request: Request, name: str) -> str:
    value = request.query_params.get(name, "").strip()
    if not value:
        raise MissingParameterError(name)
    return value


def create_app(
    settings: GallerySettings | None = None,
    *,
    engine: SearchEngine | None = None,
    http: httpx.AsyncClient | None = None,
    snapshots: IndexSnapshots | None = None,
) -> Starlette:
    """
    Builds the application.

    `engine`, `http` and `snapshots` may be injected (tests do this); whatever
    is missing is built from `settings`, or from the environment when settings
    is None.
    An HTTP client created here is closed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: Starlette):
        owned_http = None
        state = app.state
        if state.http is None or state.engine is None or state.snapshots is None:
            resolved = settings or get_settings()
            state.max_limit = resolved.max_limit
            if state.http is None:
                owned_http = state.http = create_http_client(resolved)
            store, catalog = create_clients(resolved, state.http)
            if state.engine is None:
                state.engine = SearchEngine.from_settings(resolved, store, catalog)
            if state.snapshots is None:
                state.snapshots = IndexSnapshots(
                    store, ttl=resolved.index_snapshot_ttl
                )
        try:
            yield
        finally:
            if owned_http is not None:
                await owned_http.aclose()

    app = Starlette(
        routes=[
            Route("/api/search", search, methods=["GET"]),
            Route(
                "/api/proxy", page_proxy, methods=["GET", "POST", "PUT", "DELETE"]
            ),
            Route("/api/video-proxy", video_proxy, methods=["GET"]),
            Route("/api/serve-index", serve_index, methods=["GET"]),
            Route("/api/health", health, methods=["GET"]),
        ],
        middleware=[
            Middleware(
                CORSHeadersMiddleware,
                route_methods=ROUTE_METHODS,
                route_headers=ROUTE_HEADERS,
            )
        ],
        exception_handlers={MissingParameterError: missing_parameter},
        lifespan=lifespan,
    )
    app.state.engine = engine
    app.state.http = http
    app.state.snapshots = snapshots
    app.state.max_limit = settings.max_limit if settings else DEFAULT_MAX_LIMIT
    return app
