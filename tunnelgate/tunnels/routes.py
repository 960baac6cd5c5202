"""Tunnel listing and proxy routes.

Every path is dispatched through ``classify`` so that route precedence is the
explicit order in ``tunnelgate.tunnels.router.ROUTES``.
"""

import json
import logging
from typing import AsyncIterator, Optional
from urllib.parse import quote

from quart import Blueprint, Response, g, request, send_from_directory
from werkzeug.exceptions import NotFound

from tunnelgate import __version__
from tunnelgate.errors import InvalidRequest, MethodNotAllowed
from tunnelgate.gateway import get_gateway
from tunnelgate.headers import select_headers
from tunnelgate.proxy.forwarder import build_target
from tunnelgate.proxy.invoke import FORWARDED_HEADERS, REGISTRY_PATH
from tunnelgate.tunnels.router import RouteKind, RouteMatch, classify

logger = logging.getLogger(__name__)

tunnels_bp = Blueprint("tunnels", __name__)

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


@tunnels_bp.route("/", defaults={"path": ""}, methods=ALL_METHODS)
@tunnels_bp.route("/<path:path>", methods=ALL_METHODS)
async def dispatch(path: str):
    """Classify the request and hand it to its handler."""
    match = classify(request.method, _raw_path())
    g.route_kind = match.kind.value
    return await _HANDLERS[match.kind](match)


# =============================================================================
# Handlers
# =============================================================================


async def preflight(match: RouteMatch):
    """CORS preflight; the CORS layer adds the Access-Control-* headers."""
    return Response("", status=204)


async def list_tunnels(match: RouteMatch):
    """List live tunnels without their URLs."""
    gateway = get_gateway()
    snapshot = await gateway.registry.fetch_snapshot(request.headers)

    body = {
        "success": snapshot.success,
        "data": [record.public_view() for record in snapshot.records],
        "count": snapshot.count,
    }
    return Response(
        json.dumps(body, separators=(",", ":")),
        status=200,
        content_type="application/json",
        headers={"Cache-Control": "public, max-age=60"},
    )


async def registry_probe(match: RouteMatch):
    """Relay the tunnel's process registry.

    Only Accept/Content-Type are sent so caller credentials stay here.
    """
    gateway = get_gateway()
    record = await gateway.resolver.resolve(match.client_id, request.headers)

    result = await gateway.forwarder.fetch(
        "GET",
        build_target(record.tunnel_url, REGISTRY_PATH),
        headers=select_headers(request.headers, FORWARDED_HEADERS),
        kind="registry_probe",
    )
    return Response(
        result.body.decode("utf-8", errors="replace"),
        status=result.status,
        content_type="application/json",
    )


async def invoke(match: RouteMatch):
    """Invoke a unary RPC method through the tunnel."""
    gateway = get_gateway()
    gateway.resolver.authorize(match.client_id)

    raw = await request.get_data()
    if raw.strip():
        try:
            payload = json.loads(raw)
        except ValueError as e:
            raise InvalidRequest(f"Request body is not valid JSON: {e}") from e
    else:
        payload = {}

    reply, status = await gateway.invoker.invoke(
        match.client_id,
        match.params["service"],
        match.params["method"],
        payload,
        request.headers,
    )
    return reply, status


async def forward(match: RouteMatch):
    """Proxy any request under /tunnel/<id>/ to the tunnel endpoint."""
    gateway = get_gateway()
    record = await gateway.resolver.resolve(match.client_id, request.headers)

    target = build_target(
        record.tunnel_url,
        match.params.get("remainder", ""),
        request.query_string.decode("latin-1"),
    )
    return await gateway.forwarder.forward(
        request.method,
        target,
        request.headers,
        await _request_body(),
        request.content_length,
    )


async def method_not_allowed(match: RouteMatch):
    raise MethodNotAllowed(request.method, match.allowed)


async def default(match: RouteMatch):
    """Serve a static asset if configured, else the service description."""
    static_dir = get_gateway().config.static_dir
    if static_dir and request.method in ("GET", "HEAD"):
        filename = request.path.lstrip("/") or "index.html"
        try:
            return await send_from_directory(static_dir, filename)
        except NotFound:
            logger.debug(f"No static asset for {request.path}")

    return {
        "message": "Tunnel URL Service",
        "version": __version__,
        "endpoints": {
            "GET /tunnels": "List tunnels (tunnel URLs are never exposed)",
            "GET /tunnel/:clientId/api/grpc/registry": "Process registry of a tunnel",
            "POST /tunnel/:clientId/grpc/:service/:method": "Invoke a unary RPC method",
            "ALL /tunnel/:clientId/*": "Proxy any method, path and query to a tunnel",
        },
        "examples": [
            "GET /tunnels",
            "GET /tunnel/gowinproc",
            "POST /tunnel/gowinproc/api/some-endpoint",
            "GET /tunnel/testclient/path/to/resource?query=value",
        ],
        "security": {
            "note": "Tunnel URLs are held by the registry and never returned to callers.",
        },
    }, 200


_HANDLERS = {
    RouteKind.PREFLIGHT: preflight,
    RouteKind.LIST_TUNNELS: list_tunnels,
    RouteKind.REGISTRY_PROBE: registry_probe,
    RouteKind.INVOKE: invoke,
    RouteKind.FORWARD: forward,
    RouteKind.METHOD_NOT_ALLOWED: method_not_allowed,
    RouteKind.DEFAULT: default,
}


def _raw_path() -> str:
    """Request path as sent by the client, before percent-decoding."""
    raw = request.scope.get("raw_path")
    if raw:
        return raw.decode("latin-1").split("?", 1)[0]
    return quote(request.path)


async def _request_body() -> Optional[AsyncIterator[bytes]]:
    """Inbound body as a chunk stream, or None when the request has none."""
    body = request.body
    try:
        first = await body.__anext__()
    except StopAsyncIteration:
        return None

    async def chunks() -> AsyncIterator[bytes]:
        yield first
        async for chunk in body:
            yield chunk

    return chunks()
