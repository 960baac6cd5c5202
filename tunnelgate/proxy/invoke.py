"""RPC invocation through a tunnel's process registry.

A tunnel endpoint may front several processes. It publishes which process
serves which gRPC service at ``/api/grpc/registry`` and accepts JSON
invocations at ``/api/grpc/invoke``:

    {"process": ..., "service": ..., "method": ..., "data": <payload>}

``data`` is sent as a nested JSON value, not a JSON-encoded string. The reply
is ``{"success": bool, "data"?: ..., "error"?: str}``.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from tunnelgate.errors import (
    InvocationFailed,
    NotImplementedMethod,
    ServiceNotFound,
)
from tunnelgate.headers import HeaderSource, select_headers
from tunnelgate.proxy.forwarder import ProxyForwarder, build_target
from tunnelgate.registry.resolver import TunnelResolver

logger = logging.getLogger(__name__)

REGISTRY_PATH = "/api/grpc/registry"
INVOKE_PATH = "/api/grpc/invoke"

# Caller headers passed on to the process registry; never credentials
FORWARDED_HEADERS = ("Accept", "Content-Type")


def _pick(data: dict, snake: str, camel: str, default: Any = None) -> Any:
    if snake in data:
        return data[snake]
    return data.get(camel, default)


@dataclass
class MethodInfo:
    name: str
    input_type: str = ""
    output_type: str = ""
    client_streaming: bool = False
    server_streaming: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "MethodInfo":
        return cls(
            name=str(data.get("name", "")),
            input_type=_pick(data, "input_type", "inputType", ""),
            output_type=_pick(data, "output_type", "outputType", ""),
            client_streaming=bool(_pick(data, "client_streaming", "clientStreaming", False)),
            server_streaming=bool(_pick(data, "server_streaming", "serverStreaming", False)),
        )

    @property
    def streaming(self) -> bool:
        return self.client_streaming or self.server_streaming


@dataclass
class ServiceInfo:
    name: str
    methods: list[MethodInfo] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "ServiceInfo":
        return cls(
            name=str(data.get("name", "")),
            methods=[MethodInfo.from_dict(m) for m in data.get("methods") or []],
        )

    def find_method(self, name: str) -> Optional[MethodInfo]:
        for method in self.methods:
            if method.name == name:
                return method
        return None


@dataclass
class ProcessInfo:
    name: str
    services: list[ServiceInfo] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "ProcessInfo":
        return cls(
            name=str(data.get("name", "")),
            services=[ServiceInfo.from_dict(s) for s in data.get("services") or []],
        )

    def find_service(self, name: str) -> Optional[ServiceInfo]:
        for service in self.services:
            if service.name == name:
                return service
        return None


@dataclass
class ProcessRegistry:
    """The processes a tunnel endpoint currently runs."""
    processes: list[ProcessInfo]
    proxy_base_url: str = ""
    timestamp: Any = None

    @classmethod
    def from_dict(cls, data: dict) -> "ProcessRegistry":
        processes = _pick(data, "available_processes", "availableProcesses") or []
        return cls(
            processes=[ProcessInfo.from_dict(p) for p in processes],
            proxy_base_url=_pick(data, "proxy_base_url", "proxyBaseUrl", ""),
            timestamp=data.get("timestamp"),
        )

    def owner_of(self, service: str) -> Optional[tuple[ProcessInfo, ServiceInfo]]:
        """First process exposing the service, with its service entry."""
        for process in self.processes:
            found = process.find_service(service)
            if found is not None:
                return process, found
        return None


class InvocationAdapter:
    """Routes an invocation to whichever process serves the service."""

    def __init__(self, resolver: TunnelResolver, forwarder: ProxyForwarder):
        self.resolver = resolver
        self.forwarder = forwarder

    async def fetch_registry(
        self, tunnel_url: str, headers: HeaderSource = ()
    ) -> ProcessRegistry:
        """Fetch and parse a tunnel endpoint's process registry."""
        result = await self.forwarder.fetch(
            "GET",
            build_target(tunnel_url, REGISTRY_PATH),
            headers=select_headers(headers, FORWARDED_HEADERS),
            kind="process_registry",
        )
        if not result.ok:
            raise InvocationFailed(
                f"Process registry request failed with {result.status} {result.reason}",
                status=result.status,
            )
        try:
            return ProcessRegistry.from_dict(json.loads(result.body))
        except (ValueError, TypeError, AttributeError) as e:
            raise InvocationFailed(f"Malformed process registry: {e}") from e

    async def invoke(
        self,
        client_id: str,
        service: str,
        method: str,
        payload: Any,
        headers: HeaderSource = (),
    ) -> tuple[dict, int]:
        """Invoke a unary method on the process that serves ``service``.

        Args:
            client_id: Tunnel identity
            service: Fully qualified gRPC service name
            method: Method name on that service
            payload: JSON-compatible request message
            headers: Inbound request headers

        Returns:
            (upstream reply, upstream status)

        Raises:
            Forbidden, TunnelNotFound: From resolution
            ServiceNotFound: No process exposes the service
            NotImplementedMethod: The method is client/server streaming
            InvocationFailed: The upstream reported or implied failure
        """
        record = await self.resolver.resolve(client_id, headers)
        registry = await self.fetch_registry(record.tunnel_url, headers)

        owner = registry.owner_of(service)
        if owner is None:
            logger.info(f"Service '{service}' not found on tunnel '{client_id}'")
            raise ServiceNotFound(service)
        process, service_info = owner

        method_info = service_info.find_method(method)
        if method_info is not None and method_info.streaming:
            raise NotImplementedMethod(
                f"Streaming method '{service}/{method}' is not supported"
            )

        logger.info(f"Invoking {service}/{method} on process '{process.name}' of '{client_id}'")
        result = await self.forwarder.fetch(
            "POST",
            build_target(record.tunnel_url, INVOKE_PATH),
            headers=[("Accept", "application/json")],
            json={
                "process": process.name,
                "service": service,
                "method": method,
                "data": payload,
            },
            kind="invoke",
        )

        try:
            reply = json.loads(result.body)
        except ValueError as e:
            raise InvocationFailed(
                f"Invoke endpoint returned a non-JSON response ({result.status})",
                status=result.status,
            ) from e
        if not isinstance(reply, dict) or not reply.get("success"):
            error = reply.get("error") if isinstance(reply, dict) else None
            raise InvocationFailed(error or "Invocation failed", status=result.status)

        return reply, result.status
