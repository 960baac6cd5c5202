"""Per-application wiring of the tunnel gateway components."""

from dataclasses import dataclass
from typing import Optional

from quart import current_app

from tunnelgate.config import Config
from tunnelgate.proxy import InvocationAdapter, ProxyForwarder
from tunnelgate.registry import (
    HttpRegistryTransport,
    RegistryClient,
    RegistryTransport,
    TunnelResolver,
)


@dataclass
class Gateway:
    config: Config
    registry: RegistryClient
    resolver: TunnelResolver
    forwarder: ProxyForwarder
    invoker: InvocationAdapter

    @classmethod
    def from_config(
        cls, config: Config, transport: Optional[RegistryTransport] = None
    ) -> "Gateway":
        """Build the components.

        Args:
            config: Application configuration
            transport: Registry transport; defaults to an HTTP call to
                       ``config.registry.url``
        """
        if transport is None:
            transport = HttpRegistryTransport(
                config.registry.url, timeout=config.registry.timeout
            )
        registry = RegistryClient(transport)
        resolver = TunnelResolver(
            registry,
            allowlist=config.access.allowed_client_ids,
            overrides=config.access.endpoint_overrides,
        )
        forwarder = ProxyForwarder(
            timeout=config.upstream.timeout,
            chunk_size=config.upstream.chunk_size,
        )
        return cls(
            config=config,
            registry=registry,
            resolver=resolver,
            forwarder=forwarder,
            invoker=InvocationAdapter(resolver, forwarder),
        )


def get_gateway() -> Gateway:
    """Get the gateway of the current application."""
    return current_app.extensions["tunnelgate"]
