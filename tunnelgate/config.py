"""Configuration management for the tunnel gateway."""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import yaml


@dataclass
class RegistryConfig:
    """Tunnel registry authority configuration."""
    url: str = "http://tunnel-registry:8080"
    timeout: float = 10.0


@dataclass
class UpstreamConfig:
    """Outbound calls to resolved tunnel endpoints."""
    timeout: float = 30.0
    chunk_size: int = 65536
    # Inbound bodies are streamed upstream; None means no limit
    max_body_size: Optional[int] = None


@dataclass
class AccessConfig:
    """Access control and per-tunnel endpoint overrides."""
    allowed_client_ids: List[str] = field(default_factory=list)
    endpoint_overrides: Dict[str, str] = field(default_factory=dict)


@dataclass
class Config:
    """Main application configuration."""
    # Server
    host: str = "0.0.0.0"
    port: int = 8787
    debug: bool = False
    workers: int = 4

    registry: RegistryConfig = field(default_factory=RegistryConfig)
    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)
    access: AccessConfig = field(default_factory=AccessConfig)

    # Browser access
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    # Optional static asset directory served for unmatched paths
    static_dir: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        config = cls()

        # Server config
        config.host = os.getenv("HOST", config.host)
        config.port = int(os.getenv("PORT", config.port))
        config.debug = os.getenv("DEBUG", "false").lower() == "true"
        config.workers = int(os.getenv("WORKERS", config.workers))

        # Registry config
        config.registry.url = os.getenv("REGISTRY_URL", config.registry.url)
        config.registry.timeout = float(
            os.getenv("REGISTRY_TIMEOUT", config.registry.timeout)
        )

        # Upstream config
        config.upstream.timeout = float(
            os.getenv("UPSTREAM_TIMEOUT", config.upstream.timeout)
        )
        config.upstream.max_body_size = parse_optional(
            os.getenv("UPSTREAM_MAX_BODY_SIZE"), int
        )

        # Access config
        config.access.allowed_client_ids = parse_list(
            os.getenv("ALLOWED_CLIENT_IDS", "")
        )
        config.access.endpoint_overrides = parse_overrides(
            os.getenv("TUNNEL_ENDPOINT_OVERRIDES", "")
        )

        cors_origins = parse_list(os.getenv("CORS_ORIGINS", ""))
        if cors_origins:
            config.cors_origins = cors_origins

        config.static_dir = os.getenv("STATIC_DIR") or None

        return config

    @classmethod
    def from_yaml(cls, path: str) -> "Config":
        """Load configuration from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        config = cls()

        if "server" in data:
            config.host = data["server"].get("host", config.host)
            config.port = data["server"].get("port", config.port)
            config.debug = data["server"].get("debug", config.debug)
            config.workers = data["server"].get("workers", config.workers)

        if "registry" in data:
            registry_data = data["registry"]
            config.registry = RegistryConfig(
                url=registry_data.get("url", config.registry.url),
                timeout=float(registry_data.get("timeout", config.registry.timeout)),
            )

        if "upstream" in data:
            upstream_data = data["upstream"]
            config.upstream = UpstreamConfig(
                timeout=float(upstream_data.get("timeout", config.upstream.timeout)),
                chunk_size=int(
                    upstream_data.get("chunk_size", config.upstream.chunk_size)
                ),
                max_body_size=parse_optional(upstream_data.get("max_body_size"), int),
            )

        if "access" in data:
            access_data = data["access"]
            allowed = access_data.get("allowed_client_ids", [])
            if isinstance(allowed, str):
                allowed = parse_list(allowed)
            overrides = access_data.get("endpoint_overrides", {})
            if isinstance(overrides, str):
                overrides = parse_overrides(overrides)
            config.access = AccessConfig(
                allowed_client_ids=[str(item) for item in allowed],
                endpoint_overrides={str(k): str(v) for k, v in overrides.items()},
            )

        if "cors" in data:
            origins = data["cors"].get("origins", config.cors_origins)
            if isinstance(origins, str):
                origins = parse_list(origins)
            config.cors_origins = origins or config.cors_origins

        config.static_dir = data.get("static_dir", config.static_dir)

        return config


def parse_list(value: str) -> List[str]:
    """Split a comma-separated setting, dropping blank entries."""
    return [item.strip() for item in value.split(",") if item.strip()]


def parse_optional(value, cast):
    """Convert a setting that may be unset or blank to None."""
    if value is None or str(value).strip() == "":
        return None
    return cast(value)


def parse_overrides(value: str) -> Dict[str, str]:
    """Parse ``id=url`` pairs separated by commas.

    Raises:
        ValueError: If an entry has no ``=`` or an empty side.
    """
    overrides: Dict[str, str] = {}
    for entry in parse_list(value):
        client_id, sep, url = entry.partition("=")
        client_id, url = client_id.strip(), url.strip()
        if not sep or not client_id or not url:
            raise ValueError(f"Invalid endpoint override entry: {entry!r}")
        overrides[client_id] = url
    return overrides


def load_config() -> Config:
    """Load configuration from CONFIG_PATH if it exists, else the environment."""
    config_path = os.getenv("CONFIG_PATH")
    if config_path and os.path.exists(config_path):
        return Config.from_yaml(config_path)
    return Config.from_env()
