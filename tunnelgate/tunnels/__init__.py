"""Tunnel routing: request classification and the HTTP routes."""

from tunnelgate.tunnels.router import ROUTES, RouteKind, RouteMatch, classify

__all__ = ["ROUTES", "RouteKind", "RouteMatch", "classify"]
