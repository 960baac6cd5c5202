"""Access control for tunnel routes."""

from tunnelgate.auth.allowlist import AccessDecision, check, require_access

__all__ = ["AccessDecision", "check", "require_access"]
