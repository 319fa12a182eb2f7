"""Registry v2 API mirror routes.

Every ``/v2/...`` request is resolved to an upstream registry and streamed
back from it unchanged.
https://github.com/opencontainers/distribution-spec
"""

import logging
from typing import Optional

import aiohttp
from quart import Blueprint, Response, current_app, request
from werkzeug.datastructures import Headers
from yarl import URL

from registry_mirror.exceptions import MirrorError

logger = logging.getLogger(__name__)

registry_bp = Blueprint("registry", __name__)

PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE"]

HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "trailers",
    "transfer-encoding",
    "upgrade",
})

# Set by the serving process itself
SERVER_HEADERS = frozenset({"date", "server"})


def _response_headers(resp: aiohttp.ClientResponse) -> Headers:
    headers = Headers()
    for name, value in resp.headers.items():
        lowered = name.lower()
        if lowered not in HOP_BY_HOP_HEADERS and lowered not in SERVER_HEADERS:
            headers.add(name, value)
    return headers


def upstream_request_path(raw_path: Optional[bytes], path: str) -> str:
    """Return the request path as the client sent it, still percent-encoded.

    An encoded slash (``%2F``) stays inside its segment instead of splitting
    it, both when resolving the org alias and when forwarding upstream.
    """
    if raw_path:
        return raw_path.decode("latin-1")
    return URL.build(path=path).raw_path


async def _stream_body(resp: aiohttp.ClientResponse, chunk_size: int):
    try:
        async for chunk in resp.content.iter_chunked(chunk_size):
            yield chunk
    finally:
        resp.release()


@registry_bp.route("/v2/", methods=PROXY_METHODS, defaults={"path": ""})
@registry_bp.route("/v2/<path:path>", methods=PROXY_METHODS)
async def proxy_registry(path: str):
    """Mirror a registry API request to its upstream."""
    registry_proxy = current_app.config["REGISTRY_PROXY"]
    config = current_app.config["CONFIG"]
    upstream_path = upstream_request_path(request.scope.get("raw_path"), request.path)

    try:
        _, resp = await registry_proxy.forward(
            request.method,
            upstream_path,
            request.headers,
            query=request.query_string.decode("latin-1"),
        )
    except MirrorError as e:
        logger.error(f"Failed to proxy {request.method} {request.path}: {e!r}")
        return {"error": "Failed to proxy request"}, 500

    response = Response(
        _stream_body(resp, config.proxy.chunk_size),
        status=resp.status,
        headers=_response_headers(resp),
    )
    # Replaces RESPONSE_TIMEOUT, which would cut long blob downloads short
    response.timeout = config.proxy.response_timeout
    return response
