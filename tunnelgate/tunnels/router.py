"""Inbound request classification.

Routes are an ordered list of matchers and the first match wins. Order
matters: the generic ``/tunnel/<id>/...`` pattern also matches the reserved
sub-paths listed before it. A reserved matcher whose path matches but whose
method does not yields METHOD_NOT_ALLOWED instead of falling through.
"""

import enum
import re
from dataclasses import dataclass, field
from typing import FrozenSet, Optional, Pattern
from urllib.parse import unquote


class RouteKind(enum.Enum):
    PREFLIGHT = "preflight"
    LIST_TUNNELS = "list_tunnels"
    REGISTRY_PROBE = "registry_probe"
    INVOKE = "invoke"
    FORWARD = "forward"
    METHOD_NOT_ALLOWED = "method_not_allowed"
    DEFAULT = "default"


@dataclass(frozen=True)
class Matcher:
    kind: RouteKind
    pattern: Pattern[str]
    methods: Optional[FrozenSet[str]] = None  # None matches any method
    reserved: bool = False


@dataclass
class RouteMatch:
    kind: RouteKind
    params: dict[str, str] = field(default_factory=dict)
    allowed: FrozenSet[str] = frozenset()

    @property
    def client_id(self) -> Optional[str]:
        return self.params.get("client_id")


_CLIENT = r"(?P<client_id>[^/]+)"

ROUTES: tuple[Matcher, ...] = (
    Matcher(RouteKind.PREFLIGHT, re.compile(r".*"), frozenset({"OPTIONS"})),
    Matcher(RouteKind.LIST_TUNNELS, re.compile(r"^/tunnels$"), frozenset({"GET", "HEAD"})),
    Matcher(
        RouteKind.REGISTRY_PROBE,
        re.compile(rf"^/tunnel/{_CLIENT}/api/grpc/registry/?$"),
        frozenset({"GET"}),
        reserved=True,
    ),
    Matcher(
        RouteKind.INVOKE,
        re.compile(rf"^/tunnel/{_CLIENT}/grpc/(?P<service>[^/]+)/(?P<method>[^/]+)/?$"),
        frozenset({"POST"}),
        reserved=True,
    ),
    Matcher(RouteKind.FORWARD, re.compile(rf"^/tunnel/{_CLIENT}(?P<remainder>/.*)?$")),
)


def classify(method: str, path: str, routes: tuple[Matcher, ...] = ROUTES) -> RouteMatch:
    """Return the first route matching the request.

    ``path`` is the raw, still percent-encoded request path. Captured
    segments are decoded, except ``remainder`` which is forwarded as sent.
    """
    method = method.upper()
    for matcher in routes:
        found = matcher.pattern.match(path)
        if found is None:
            continue
        params = {
            k: v if k == "remainder" else unquote(v)
            for k, v in found.groupdict().items()
            if v is not None
        }
        if matcher.methods is None or method in matcher.methods:
            return RouteMatch(matcher.kind, params, matcher.methods or frozenset())
        if matcher.reserved:
            return RouteMatch(RouteKind.METHOD_NOT_ALLOWED, params, matcher.methods)
    return RouteMatch(RouteKind.DEFAULT)

