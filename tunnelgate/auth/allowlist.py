"""Client ID allowlist.

An empty or unset allowlist leaves every tunnel reachable; configuring one
restricts access to exactly the listed client IDs.
"""

import enum
import logging
from typing import Iterable, Optional

from tunnelgate.errors import Forbidden

logger = logging.getLogger(__name__)


class AccessDecision(enum.Enum):
    ALLOW = "allow"
    DENY = "deny"


def check(client_id: str, allowlist: Optional[Iterable[str]]) -> AccessDecision:
    """Decide whether a client ID may be proxied to.

    Args:
        client_id: The tunnel identity taken from the request path
        allowlist: Configured client IDs, or None when unset

    Returns:
        ALLOW when the allowlist is unset/empty or contains the client ID
    """
    if not allowlist:
        return AccessDecision.ALLOW

    allowed = {entry.strip() for entry in allowlist if entry.strip()}
    if not allowed or client_id in allowed:
        return AccessDecision.ALLOW
    return AccessDecision.DENY


def require_access(client_id: str, allowlist: Optional[Iterable[str]]) -> None:
    """Raise Forbidden unless the client ID passes the allowlist."""
    if check(client_id, allowlist) is AccessDecision.DENY:
        logger.info(f"Denied access to client ID '{client_id}'")
        raise Forbidden(client_id)
