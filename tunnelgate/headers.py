"""Header filtering shared by every outbound call."""

from typing import Iterable, Mapping, Union

# Hop-by-hop headers (RFC 9110)
HOP_BY_HOP = frozenset({
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

# The HTTP client recomputes these
_REQUEST_SKIP = HOP_BY_HOP | {"host", "content-length"}
_RESPONSE_SKIP = HOP_BY_HOP | {"content-length"}

HeaderSource = Union[Mapping[str, str], Iterable[tuple[str, str]]]


def _items(headers: HeaderSource) -> Iterable[tuple[str, str]]:
    if hasattr(headers, "items"):
        return headers.items()
    return headers


def request_headers(headers: HeaderSource) -> list[tuple[str, str]]:
    """Headers of an inbound request that may be sent upstream."""
    return [(k, v) for k, v in _items(headers) if k.lower() not in _REQUEST_SKIP]


def response_headers(headers: HeaderSource) -> list[tuple[str, str]]:
    """Headers of an upstream response that may be relayed to the caller."""
    return [(k, v) for k, v in _items(headers) if k.lower() not in _RESPONSE_SKIP]


def select_headers(headers: HeaderSource, names: Iterable[str]) -> list[tuple[str, str]]:
    """Keep only the named headers, e.g. to avoid leaking caller credentials."""
    wanted = {name.lower() for name in names}
    return [(k, v) for k, v in _items(headers) if k.lower() in wanted]
