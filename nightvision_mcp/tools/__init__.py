"""MCP tool registration for the NightVision server."""

from mcp.server.fastmcp import FastMCP

from ..background import BackgroundDispatcher
from ..service import NightVisionService
from ..token_store import TokenStore
from .api import register_api_tools
from .auth import register_auth_tools
from .nuclei import register_nuclei_tools
from .projects import register_project_tools
from .scans import register_scan_tools
from .targets import register_target_tools
from .traffic import register_traffic_tools

SERVER_NAME = "NightVision Scanner"


def register_tools(mcp, service: NightVisionService, store: TokenStore, dispatcher: BackgroundDispatcher):
    """Register every NightVision tool on an MCP server (or anything with a compatible tool() decorator)"""
    register_auth_tools(mcp, service, store)
    register_target_tools(mcp, service)
    register_scan_tools(mcp, service, dispatcher)
    register_api_tools(mcp, service)
    register_nuclei_tools(mcp, service)
    register_project_tools(mcp, service)
    register_traffic_tools(mcp, service)


def setup_mcp_server(
    service: NightVisionService,
    store: TokenStore,
    dispatcher: BackgroundDispatcher,
    lifespan=None,
) -> FastMCP:
    """
    Set up the MCP server with all NightVision tools

    Args:
        service: Initialized NightVisionService
        store: Token store used by the authenticate tool
        dispatcher: Background dispatcher for scan launches
        lifespan: Optional FastMCP lifespan context manager

    Returns:
        Configured FastMCP instance
    """
    mcp = FastMCP(SERVER_NAME, lifespan=lifespan)
    register_tools(mcp, service, store, dispatcher)
    return mcp
