"""Outbound calls to resolved tunnel endpoints."""

from tunnelgate.proxy.forwarder import ProxyForwarder, UpstreamResult, build_target
from tunnelgate.proxy.invoke import InvocationAdapter, ProcessRegistry

__all__ = [
    "InvocationAdapter",
    "ProcessRegistry",
    "ProxyForwarder",
    "UpstreamResult",
    "build_target",
]
