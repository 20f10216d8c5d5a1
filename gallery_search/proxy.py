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
Server-side proxies for remote pages, images and videos.

The page proxy fetches a URL with browser-like headers, decodes the body and
flags anti-bot block pages. The video proxy streams bytes through unchanged,
forwarding range requests so players can seek.
"""

import logging

import httpx
from starlette.background import BackgroundTask
from starlette.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse

logger = logging.getLogger(__name__)

PAGE_TIMEOUT = 30.0
VIDEO_TIMEOUT = 60.0
BLOCKED_MESSAGE = "Request blocked by anti-bot protection"

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,"
        "image/avif,image/webp,image/apng,*/*;q=0.8"
    ),
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate, br",
    "DNT": "1",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Ch-Ua": '"Not_A Brand";v="8", "Chromium";v="120", "Google Chrome";v="120"',
    "Sec-Ch-Ua-Mobile": "?0",
    "Sec-Ch-Ua-Platform": '"Windows"',
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Referer": "https://www.google.com/",
}

VIDEO_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    "Accept": "*/*",
    "Accept-Language": "en-US,en;q=0.5",
}


def is_blocked(contents: str, status_code: int) -> bool:
    """Heuristic for CAPTCHA and challenge pages served instead of content."""
    if status_code == 403:
        return True
    if "Cloudflare" in contents and "challenge" in contents:
        return True
    return "captcha" in contents or "CAPTCHA" in contents


async def proxy_page(
    http: httpx.AsyncClient, url: str, timeout: float = PAGE_TIMEOUT
) -> Response:
    """Fetches url and wraps its decoded body as `{contents, status}`."""
    logger.info("Proxying request to %s", url)
    try:
        upstream = await http.get(url, headers=BROWSER_HEADERS, timeout=timeout)
    except httpx.TimeoutException:
        logger.error("Proxy request to %s timed out", url)
        return JSONResponse(
            {"error": "Request timeout", "status": {"http_code": 408}},
            status_code=408,
        )
    except httpx.DecodingError as e:
        logger.error("Decompression of %s failed: %s", url, e)
        return JSONResponse(
            {"error": "Decompression failed", "status": {"http_code": 500}},
            status_code=500,
        )
    except httpx.HTTPError as e:
        logger.error("Proxy request to %s failed: %s", url, e)
        return JSONResponse(
            {"error": str(e), "status": {"http_code": 500}}, status_code=500
        )

    contents = upstream.content.decode("utf-8", errors="replace")
    status = {"http_code": upstream.status_code}
    if is_blocked(contents, upstream.status_code):
        logger.info("Detected CAPTCHA/block page from %s", url)
        status.update(blocked=True, message=BLOCKED_MESSAGE)
    return JSONResponse({"contents": contents, "status": status})


async def proxy_video(
    http: httpx.AsyncClient,
    url: str,
    range_header: str | None = None,
    timeout: float = VIDEO_TIMEOUT,
) -> Response:
    """Streams a remote video, forwarding Range and the ranging headers."""
    headers = dict(VIDEO_HEADERS)
    if range_header:
        headers["Range"] = range_header
        logger.debug("Forwarding Range header: %s", range_header)

    request = http.build_request("GET", url, headers=headers, timeout=timeout)
    try:
        upstream = await http.send(request, stream=True)
    except httpx.TimeoutException:
        logger.error("Video request to %s timed out", url)
        return PlainTextResponse("Video request timeout", status_code=408)
    except httpx.HTTPError as e:
        logger.error("Video proxy error for %s: %s", url, e)
        return PlainTextResponse(f"Video proxy error: {e}", status_code=500)

    response_headers = {
        "Content-Type": upstream.headers.get("content-type", "video/mp4"),
        "Accept-Ranges": upstream.headers.get("accept-ranges", "bytes"),
    }
    for name in ("content-length", "content-range"):
        if name in upstream.headers:
            response_headers[name.title()] = upstream.headers[name]

    return StreamingResponse(
        upstream.aiter_raw(),
        status_code=upstream.status_code,
        headers=response_headers,
        background=BackgroundTask(upstream.aclose),
    )
