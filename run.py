#!/usr/bin/env python3
"""Entry point for the tunnel gateway service."""

import asyncio
import logging

from tunnelgate import create_app
from tunnelgate.config import load_config

logger = logging.getLogger(__name__)


def main():
    """Run the application."""
    config = load_config()

    app = create_app(config)
    logger.info(f"Tunnel registry: {config.registry.url}")

    # Run with hypercorn for production, or built-in for dev
    if config.debug:
        app.run(host=config.host, port=config.port, debug=True)
    else:
        import hypercorn.asyncio
        from hypercorn.config import Config as HypercornConfig

        hypercorn_config = HypercornConfig()
        hypercorn_config.bind = [f"{config.host}:{config.port}"]
        hypercorn_config.workers = config.workers

        asyncio.run(hypercorn.asyncio.serve(app, hypercorn_config))


if __name__ == "__main__":
    main()
