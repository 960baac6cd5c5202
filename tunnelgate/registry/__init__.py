"""Tunnel registry lookup and client ID resolution."""

from tunnelgate.registry.client import (
    HttpRegistryTransport,
    LocalRegistryTransport,
    RegistryClient,
    RegistryReply,
    RegistryTransport,
    TunnelRecord,
    TunnelSnapshot,
)
from tunnelgate.registry.resolver import TunnelResolver, apply_override, resolve

__all__ = [
    "HttpRegistryTransport",
    "LocalRegistryTransport",
    "RegistryClient",
    "RegistryReply",
    "RegistryTransport",
    "TunnelRecord",
    "TunnelResolver",
    "TunnelSnapshot",
    "apply_override",
    "resolve",
]
