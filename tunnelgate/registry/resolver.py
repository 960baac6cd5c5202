"""Client ID to tunnel endpoint resolution."""

import dataclasses
import logging
from typing import Iterable, Mapping, Optional

from tunnelgate.auth import require_access
from tunnelgate.errors import TunnelNotFound
from tunnelgate.headers import HeaderSource
from tunnelgate.registry.client import RegistryClient, TunnelRecord

logger = logging.getLogger(__name__)


def resolve(client_id: str, records: Iterable[TunnelRecord]) -> Optional[TunnelRecord]:
    """Find the record for a client ID.

    Exact match; if the registry lists a client ID twice the first entry wins.
    """
    for record in records:
        if record.client_id == client_id:
            return record
    return None


def apply_override(
    record: TunnelRecord, overrides: Optional[Mapping[str, str]]
) -> TunnelRecord:
    """Swap in a locally configured tunnel URL when one exists for the record."""
    if not overrides or record.client_id not in overrides:
        return record
    return dataclasses.replace(record, tunnel_url=overrides[record.client_id])


class TunnelResolver:
    """Gate, look up and override in the order every tunnel route needs."""

    def __init__(
        self,
        registry: RegistryClient,
        allowlist: Optional[Iterable[str]] = None,
        overrides: Optional[Mapping[str, str]] = None,
    ):
        self.registry = registry
        self.allowlist = list(allowlist or [])
        self.overrides = dict(overrides or {})

    def authorize(self, client_id: str) -> None:
        """Raise Forbidden unless the client ID passes the allowlist."""
        require_access(client_id, self.allowlist)

    async def resolve(self, client_id: str, headers: HeaderSource = ()) -> TunnelRecord:
        """Resolve a client ID to the record to proxy to.

        Args:
            client_id: Tunnel identity from the request path
            headers: Inbound request headers, passed on to the registry

        Raises:
            Forbidden: Client ID is not allowlisted; the registry is not called
            TunnelNotFound: The registry does not list the client ID
        """
        self.authorize(client_id)

        records = await self.registry.list_tunnels(headers)
        record = resolve(client_id, records)
        if record is None:
            logger.info(f"Tunnel '{client_id}' not found in registry")
            raise TunnelNotFound(client_id)

        record = apply_override(record, self.overrides)
        logger.debug(f"Resolved tunnel '{client_id}' to {record.tunnel_url}")
        return record
