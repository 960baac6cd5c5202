"""Client for the tunnel registry authority.

The registry authority owns the live ``clientId -> tunnelUrl`` mapping and
exposes it at ``GET /tunnels``. Every call here performs exactly one request:
there is no retry and no local cache, so each resolution sees the registry's
current state.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import aiohttp

from tunnelgate.errors import RegistryError, UpstreamUnreachable
from tunnelgate.headers import HeaderSource, request_headers
from tunnelgate.metrics import UPSTREAM_DURATION, UPSTREAM_FAILURES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TunnelRecord:
    """A live tunnel as reported by the registry authority."""
    client_id: str
    tunnel_url: str
    created_at: Any = None
    updated_at: Any = None

    @classmethod
    def from_wire(cls, data: dict) -> "TunnelRecord":
        return cls(
            client_id=str(data["clientId"]),
            tunnel_url=str(data["tunnelUrl"]),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )

    def public_view(self) -> dict:
        """Listing entry with the tunnel URL removed."""
        return {
            "clientId": self.client_id,
            "updatedAt": self.updated_at,
            "createdAt": self.created_at,
        }


@dataclass
class TunnelSnapshot:
    """One ``GET /tunnels`` answer."""
    success: bool
    records: list[TunnelRecord]
    count: int


@dataclass
class RegistryReply:
    """Raw transport result before it is interpreted."""
    status: int
    reason: str
    payload: Optional[Any] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class RegistryTransport(ABC):
    """How ``GET /tunnels`` reaches the registry authority."""

    @abstractmethod
    async def get_tunnels(self, headers: list[tuple[str, str]]) -> RegistryReply:
        """Perform one registry call with the given outbound headers."""


class HttpRegistryTransport(RegistryTransport):
    """Plain network call to the registry authority."""

    def __init__(self, url: str, timeout: float = 10.0):
        self.url = url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def get_tunnels(self, headers: list[tuple[str, str]]) -> RegistryReply:
        url = f"{self.url}/tunnels"

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.get(url, headers=headers) as resp:
                if resp.status < 200 or resp.status >= 300:
                    return RegistryReply(resp.status, resp.reason or "")
                try:
                    payload = await resp.json(content_type=None)
                except ValueError:
                    logger.error(f"Registry at {url} returned a non-JSON body")
                    return RegistryReply(502, "Bad Gateway")
                return RegistryReply(resp.status, resp.reason or "", payload)


RegistryHandler = Callable[[list[tuple[str, str]]], Awaitable[RegistryReply]]


class LocalRegistryTransport(RegistryTransport):
    """In-process call for a registry colocated with the gateway.

    Args:
        handler: Coroutine function taking the forwarded headers and
                 returning a RegistryReply
    """

    def __init__(self, handler: RegistryHandler):
        self.handler = handler

    async def get_tunnels(self, headers: list[tuple[str, str]]) -> RegistryReply:
        return await self.handler(headers)


class RegistryClient:
    """Fetches tunnel snapshots through a RegistryTransport."""

    def __init__(self, transport: RegistryTransport):
        self.transport = transport

    async def fetch_snapshot(self, headers: HeaderSource = ()) -> TunnelSnapshot:
        """Fetch the current tunnel set.

        Args:
            headers: Original request headers, forwarded for auth passthrough

        Raises:
            RegistryError: The registry answered with a non-success status
            UpstreamUnreachable: The registry could not be reached
        """
        try:
            with UPSTREAM_DURATION.labels(kind="registry").time():
                reply = await self.transport.get_tunnels(request_headers(headers))
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            UPSTREAM_FAILURES.labels(kind="registry").inc()
            logger.error(f"Tunnel registry unreachable: {e!r}")
            raise UpstreamUnreachable(f"Tunnel registry unreachable: {e!r}") from e

        if not reply.ok:
            logger.warning(f"Tunnel registry returned {reply.status} {reply.reason}")
            raise RegistryError(reply.status, reply.reason)

        return _parse_snapshot(reply.payload)

    async def list_tunnels(self, headers: HeaderSource = ()) -> list[TunnelRecord]:
        snapshot = await self.fetch_snapshot(headers)
        return snapshot.records


def _parse_snapshot(payload: Any) -> TunnelSnapshot:
    try:
        records = [TunnelRecord.from_wire(item) for item in payload["data"]]
        return TunnelSnapshot(
            success=bool(payload.get("success", True)),
            records=records,
            count=int(payload.get("count", len(records))),
        )
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        logger.error(f"Malformed tunnel registry payload: {e!r}")
        raise RegistryError(502, "Bad Gateway") from e
