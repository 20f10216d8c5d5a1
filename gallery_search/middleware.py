import logging
from collections.abc import Awaitable, Callable, Mapping

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)

DEFAULT_ALLOW_METHODS = "GET, OPTIONS"
DEFAULT_ALLOW_HEADERS = "Content-Type"


class CORSHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware that answers CORS preflight requests and stamps the CORS
    headers on every response.

    Any origin is allowed. The allowed methods and headers can differ per
    route, keyed by exact request path.
    """

    def __init__(
        self,
        app: ASGIApp,
        route_methods: Mapping[str, str] | None = None,
        route_headers: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(app)
        self.route_methods = dict(route_methods or {})
        self.route_headers = dict(route_headers or {})

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        if request.method == "OPTIONS":
            logger.debug("Preflight for %s", request.url.path)
            response = Response(status_code=200)
        else:
            response = await call_next(request)

        path = request.url.path.rstrip("/") or "/"
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = self.route_methods.get(
            path, DEFAULT_ALLOW_METHODS
        )
        response.headers["Access-Control-Allow-Headers"] = self.route_headers.get(
            path, DEFAULT_ALLOW_HEADERS
        )
        return response
