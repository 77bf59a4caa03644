#!/usr/bin/env python3
"""
Image Proxy Server CLI.

Runs the image-generation proxy that keeps the OpenRouter API key on the
server.

Usage:
    python -m atelier.cli.serve
    python -m atelier.cli.serve --port 3001 --production
"""

import argparse
import logging
import sys

from dotenv import load_dotenv

from atelier.core.logging_config import PROXY_LOG_NAME, setup_logging
from atelier.webserver.config import ServerConfig

logger = logging.getLogger(__name__)


def build_config(args: argparse.Namespace) -> ServerConfig:
    """
    Merges command-line overrides into the environment configuration.

    Args:
        args: Command-line arguments.

    Returns:
        ServerConfig: The effective configuration.
    """
    config = ServerConfig.from_env()
    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port
    if args.production:
        config.production = True
    return config


def serve(args: argparse.Namespace) -> int:
    """
    Starts the proxy server and blocks until it stops.

    Returns:
        int: Exit code (0 for success, 1 for failure).
    """
    import uvicorn

    from atelier.webserver.server import create_app

    config = build_config(args)
    if not config.openrouter_api_key:
        logger.warning("OPENROUTER_API_KEY is not set; AI requests will fail.")
    if not config.api_tokens:
        logger.warning("ATELIER_API_TOKENS is empty; every request will be rejected.")

    try:
        app = create_app(config)
        environment = "production" if config.production else "development"
        logger.info(f"Server running on port {config.port} ({environment})")
        uvicorn.run(app, host=config.host, port=config.port, log_level="info")
        return 0
    except Exception as e:
        logger.error(f"Server failed: {e}")
        return 1


def main() -> int:
    """Main entry point for the proxy server CLI."""
    load_dotenv()

    parser = argparse.ArgumentParser(
        description="Run the I-Catching image-generation proxy."
    )
    parser.add_argument("--host", help="Interface to bind (default: ATELIER_HOST)")
    parser.add_argument("--port", type=int, help="Port to bind (default: PORT)")
    parser.add_argument(
        "--production",
        action="store_true",
        help="Disable development CORS origins",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    setup_logging(debug_mode=args.debug, log_name=PROXY_LOG_NAME)
    return serve(args)


if __name__ == "__main__":
    sys.exit(main())
