"""Transparent forwarding to resolved tunnel endpoints."""

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterable, AsyncIterator, Iterable, Optional, Union
from urllib.parse import urlsplit, urlunsplit

import aiohttp
from quart import Response
from yarl import URL

from tunnelgate.errors import ConnectionFailed, UpstreamUnreachable
from tunnelgate.headers import HeaderSource, request_headers, response_headers
from tunnelgate.metrics import UPSTREAM_DURATION, UPSTREAM_FAILURES

logger = logging.getLogger(__name__)


def build_target(tunnel_url: str, path: str, query: str = "") -> str:
    """Point a tunnel URL at the caller's path and query.

    The tunnel URL's own path and query are replaced, never joined:
    ``build_target("https://up.example/base", "/path", "a=1")`` gives
    ``https://up.example/path?a=1``.
    """
    parts = urlsplit(tunnel_url)
    return urlunsplit((parts.scheme, parts.netloc, path or "/", query, ""))


@dataclass
class UpstreamResult:
    """A fully read upstream response."""
    status: int
    reason: str
    headers: list[tuple[str, str]]
    body: bytes

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class ProxyForwarder:
    """Sends requests to tunnel endpoints."""

    def __init__(self, timeout: float = 30.0, chunk_size: int = 65536):
        # Streamed bodies are bounded per read, not in total
        self.timeout = aiohttp.ClientTimeout(
            total=None, sock_connect=timeout, sock_read=timeout
        )
        self.chunk_size = chunk_size

    def _get_session(self, decompress: bool = True) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(timeout=self.timeout, auto_decompress=decompress)

    async def forward(
        self,
        method: str,
        target: str,
        headers: HeaderSource = (),
        body: Union[bytes, AsyncIterable[bytes], None] = None,
        content_length: Optional[int] = None,
    ) -> Response:
        """Forward a request and stream the upstream response back.

        Status and headers (minus hop-by-hop) are relayed as-is, including
        non-2xx statuses. A streamed ``body`` is sent chunked unless
        ``content_length`` is given.

        Raises:
            ConnectionFailed: The tunnel endpoint could not be reached
        """
        outbound = request_headers(headers)
        if content_length is not None:
            outbound.append(("Content-Length", str(content_length)))

        session = self._get_session(decompress=False)
        try:
            with UPSTREAM_DURATION.labels(kind="forward").time():
                upstream = await session.request(
                    method,
                    URL(target, encoded=True),
                    headers=outbound,
                    data=body or None,
                    allow_redirects=False,
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            await session.close()
            UPSTREAM_FAILURES.labels(kind="forward").inc()
            logger.warning(f"Forward {method} failed: {e!r}")
            raise ConnectionFailed(f"Failed to connect to tunnel: {e!r}") from e
        except BaseException:
            await session.close()
            raise

        logger.debug(f"Forward {method} {target} -> {upstream.status}")

        async def stream() -> AsyncIterator[bytes]:
            # Also runs on cancellation when the caller disconnects
            try:
                async for chunk in upstream.content.iter_chunked(self.chunk_size):
                    yield chunk
            finally:
                upstream.release()
                await session.close()

        response = Response(
            stream(),
            status=upstream.status,
            headers=response_headers(upstream.headers),
        )
        # Bounded by the per-read upstream timeout instead
        response.timeout = None
        return response

    async def fetch(
        self,
        method: str,
        target: str,
        headers: Iterable[tuple[str, str]] = (),
        json: Optional[object] = None,
        kind: str = "fetch",
    ) -> UpstreamResult:
        """Make a buffered request to a tunnel endpoint.

        Used by the reserved sub-routes, which inspect or re-wrap the body.

        Raises:
            UpstreamUnreachable: The tunnel endpoint could not be reached
        """
        try:
            async with self._get_session() as session:
                with UPSTREAM_DURATION.labels(kind=kind).time():
                    async with session.request(
                        method,
                        URL(target, encoded=True),
                        headers=list(headers),
                        json=json,
                    ) as resp:
                        body = await resp.read()
                        return UpstreamResult(
                            status=resp.status,
                            reason=resp.reason or "",
                            headers=response_headers(resp.headers),
                            body=body,
                        )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            UPSTREAM_FAILURES.labels(kind=kind).inc()
            logger.warning(f"{kind} {method} failed: {e!r}")
            raise UpstreamUnreachable(f"Tunnel endpoint unreachable: {e!r}") from e
