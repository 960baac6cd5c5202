"""
Tunnel Gate: client ID based router for dynamically registered tunnels

A Python async service providing:
- Tunnel listing with tunnel URLs hidden from callers
- Transparent HTTP proxying to the tunnel registered for a client ID
- Process registry lookup and JSON RPC invocation through a tunnel
- Optional client ID allowlist and per-tunnel endpoint overrides
"""

import logging
from typing import Optional

from quart import Quart, Response, g
from quart_cors import cors
from werkzeug.exceptions import HTTPException

from tunnelgate.config import Config
from tunnelgate.registry import RegistryTransport

__version__ = "1.1.0"

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[Config] = None,
    registry_transport: Optional[RegistryTransport] = None,
) -> Quart:
    """Create and configure the Quart application.

    Args:
        config: Application configuration; loaded from the environment if None
        registry_transport: Overrides the HTTP registry transport, e.g. with a
                            LocalRegistryTransport for a colocated registry
    """
    app = Quart(__name__)

    if config is None:
        config = Config.from_env()

    app.config["CONFIG"] = config
    app.config["MAX_CONTENT_LENGTH"] = config.upstream.max_body_size

    # Configure logging
    logging.basicConfig(
        level=logging.DEBUG if config.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    from tunnelgate.gateway import Gateway

    gateway = Gateway.from_config(config, transport=registry_transport)
    app.extensions["tunnelgate"] = gateway

    if not config.access.allowed_client_ids:
        logger.warning("ALLOWED_CLIENT_IDS is not set; all tunnels are reachable")

    _register_operational_routes(app)
    _register_error_handlers(app)

    # Register blueprints
    from tunnelgate.tunnels.routes import ALL_METHODS, tunnels_bp

    app.register_blueprint(tunnels_bp)

    @app.after_request
    async def count_request(response: Response) -> Response:
        from tunnelgate.metrics import REQUESTS

        REQUESTS.labels(
            route=getattr(g, "route_kind", "other"), status=str(response.status_code)
        ).inc()
        return response

    origins = config.cors_origins
    default_origin = "*" if not origins or "*" in origins else origins[0]

    @app.after_request
    async def add_default_origin(response: Response) -> Response:
        # quart-cors only answers requests that carry an Origin header
        if "Access-Control-Allow-Origin" not in response.headers:
            response.headers["Access-Control-Allow-Origin"] = default_origin
        return response

    # Attaches CORS headers to every response, errors included
    app = cors(
        app,
        allow_origin=config.cors_origins,
        send_origin_wildcard=True,
        allow_methods=ALL_METHODS,
        allow_headers=["Content-Type", "Authorization", "Accept"],
    )

    return app


def _register_operational_routes(app: Quart) -> None:
    from tunnelgate.errors import TunnelGateError
    from tunnelgate.gateway import get_gateway
    from tunnelgate.metrics import render

    @app.route("/healthz")
    async def healthz():
        """Health check endpoint."""
        return {"status": "healthy"}, 200

    @app.route("/readyz")
    async def readyz():
        """Readiness check endpoint."""
        # Ready when the tunnel registry answers
        try:
            await get_gateway().registry.fetch_snapshot()
            return {"status": "ready"}, 200
        except TunnelGateError as e:
            return {"status": "not ready", "error": e.code}, 503

    @app.route("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        body, content_type = render()
        return Response(body, status=200, content_type=content_type)


def _register_error_handlers(app: Quart) -> None:
    from tunnelgate.errors import MethodNotAllowed, TunnelGateError

    @app.errorhandler(TunnelGateError)
    async def handle_gateway_error(error: TunnelGateError):
        headers = {}
        if isinstance(error, MethodNotAllowed):
            headers["Allow"] = ", ".join(error.allowed)
        return error.to_dict(), error.status, headers

    @app.errorhandler(HTTPException)
    async def handle_http_error(error: HTTPException):
        code = (error.name or "error").lower().replace(" ", "_")
        headers = {}
        valid_methods = getattr(error, "valid_methods", None)
        if valid_methods:
            headers["Allow"] = ", ".join(sorted(valid_methods))
        return {"error": code, "message": error.description}, error.code or 500, headers

    @app.errorhandler(Exception)
    async def handle_unexpected_error(error: Exception):
        logger.exception(f"Unhandled error: {error}")
        return {"error": "internal_error", "message": str(error)}, 500
