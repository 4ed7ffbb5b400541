#!/usr/bin/env python3
"""
================================================================================
NightVision MCP Server - Connects AI assistants to NightVision
================================================================================

Exposes the NightVision CLI and REST API as MCP tools over stdio, so an
assistant can manage targets, launch scans, triage vulnerabilities, manage
nuclei templates and capture traffic.

STARTUP:
    1. Check that the NightVision CLI is installed (exit 1 otherwise)
    2. Load the persisted token and verify it against the API
    3. Register the tools and serve over stdio

CONFIGURATION:
    Environment variables (see config.py) or command line overrides:
    --api-url, --cli, --timeout, --debug

LICENSE: MIT
================================================================================
"""

import argparse
import asyncio
import logging
import sys
from contextlib import asynccontextmanager

from .background import BackgroundDispatcher
from .config import Settings, load_settings
from .service import NightVisionService, token_preview
from .token_store import TokenStore
from .tools import setup_mcp_server

# stdout carries the MCP stdio stream, so all logging goes to stderr
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)]
)
logger = logging.getLogger(__name__)


def parse_args():
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(description="Run the NightVision MCP Server")
    parser.add_argument("--api-url", type=str, default=None, help="NightVision API base URL")
    parser.add_argument("--cli", type=str, default=None, help="NightVision CLI binary (default: nightvision)")
    parser.add_argument("--timeout", type=float, default=None, help="HTTP request timeout in seconds (default: none)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args()


def apply_overrides(settings: Settings, args) -> Settings:
    """Command line arguments take precedence over the environment"""
    if args.api_url:
        settings.api_url = args.api_url if args.api_url.endswith("/") else args.api_url + "/"
    if args.cli:
        settings.cli_binary = args.cli
    if args.timeout:
        settings.request_timeout = args.timeout
    if args.debug:
        settings.debug = True
    return settings


async def prepare_service(service: NightVisionService, store: TokenStore) -> bool:
    """
    Run the startup checks.

    Returns:
        False when the NightVision CLI is not installed
    """
    try:
        if not await service.is_installed():
            return False

        token = store.load()
        if not token:
            logger.warning("No authentication token found. You will need to authenticate to use the tools.")
            logger.warning(f"Please run: {service.settings.login_hint}")
            return True

        service.set_token(token)
        logger.info(f"Loaded authentication token: {token_preview(token)}")
        if await service.verify_token():
            logger.info("Successfully verified authentication.")
        else:
            logger.warning("Your authentication token appears to be invalid or expired.")
            logger.warning(f"If you encounter authentication issues, please run: {service.settings.login_hint}")
        return True
    finally:
        # The session belongs to this loop; the server creates its own later
        await service.close()


def make_lifespan(service: NightVisionService, dispatcher: BackgroundDispatcher):
    @asynccontextmanager
    async def lifespan(server):
        try:
            yield {}
        finally:
            await dispatcher.drain()
            await service.close()

    return lifespan


def main():
    """Main entry point for the MCP server"""
    args = parse_args()
    settings = apply_overrides(load_settings(), args)

    if settings.debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.debug("Debug logging enabled")

    try:
        service = NightVisionService(settings)
        store = TokenStore(settings.config_dir)

        if not asyncio.run(prepare_service(service, store)):
            logger.error("NightVision CLI not found. Please install NightVision and make sure it's in your PATH.")
            sys.exit(1)

        dispatcher = BackgroundDispatcher()
        mcp = setup_mcp_server(service, store, dispatcher, lifespan=make_lifespan(service, dispatcher))
        logger.info(f"Starting NightVision MCP server against {settings.api_url}")
        mcp.run()
    except Exception as e:
        logger.error(f"Failed to start MCP server: {str(e)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
