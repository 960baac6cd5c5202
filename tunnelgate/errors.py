"""Error taxonomy for the tunnel gateway.

Every failure a request can hit is one of these exceptions. The application
error handler turns them into ``{"error": code, "message": ...}`` JSON bodies.
"""

from typing import Any, Iterable, Optional


class TunnelGateError(Exception):
    """Base class for errors that map to a JSON error response."""

    code = "internal_error"
    status = 500

    def __init__(self, message: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message or self.code)
        self.message = message
        if status is not None:
            self.status = status

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.code}
        if self.message:
            body["message"] = self.message
        return body


class InvalidRequest(TunnelGateError):
    code = "invalid_request"
    status = 400


class Forbidden(TunnelGateError):
    """Client ID is not on the configured allowlist."""

    code = "forbidden"
    status = 403

    def __init__(self, client_id: str):
        super().__init__(f"Access to client ID '{client_id}' is not allowed")
        self.client_id = client_id


class TunnelNotFound(TunnelGateError):
    code = "tunnel_not_found"
    status = 404

    def __init__(self, client_id: str):
        super().__init__(f"Tunnel '{client_id}' not found")
        self.client_id = client_id


class ServiceNotFound(TunnelGateError):
    code = "service_not_found"
    status = 404

    def __init__(self, service: str):
        super().__init__(f"No process exposes service '{service}'")
        self.service = service


class MethodNotAllowed(TunnelGateError):
    """A reserved tunnel sub-path was called with an unsupported verb."""

    code = "method_not_allowed"
    status = 405

    def __init__(self, method: str, allowed: Iterable[str]):
        self.allowed = sorted(allowed)
        super().__init__(
            f"{method} is not allowed here; use {', '.join(self.allowed)}"
        )


class RegistryError(TunnelGateError):
    """The registry authority answered with a non-success status."""

    code = "registry_error"

    def __init__(self, status: int, status_text: str = ""):
        super().__init__("Failed to fetch tunnels", status=status)
        self.status_text = status_text

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["status"] = self.status
        body["statusText"] = self.status_text
        return body


class UpstreamUnreachable(TunnelGateError):
    """Transport failure talking to the registry or a tunnel endpoint."""

    code = "upstream_unreachable"
    status = 500


class ConnectionFailed(TunnelGateError):
    """Transport failure on the transparent forwarding path."""

    code = "connection_failed"
    status = 500


class InvocationFailed(TunnelGateError):
    """The tunnel's invoke endpoint reported failure."""

    code = "invocation_failed"
    status = 502

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": False}
        body.update(super().to_dict())
        return body


class NotImplementedMethod(TunnelGateError):
    """Streaming RPC variants are not supported by the invoke path."""

    code = "not_implemented"
    status = 501
