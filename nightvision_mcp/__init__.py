"""NightVision MCP server: the NightVision CLI and REST API as MCP tools."""

__version__ = "1.0.0"
