"""
================================================================================
Configuration for the NightVision MCP Server
================================================================================

All settings come from environment variables. A `.env` file in the working
directory is loaded first, so local overrides do not need to be exported.

CONFIGURATION:
    - NIGHTVISION_API_URL: REST API base URL (default: production API)
    - NIGHTVISION_CLI: NightVision CLI binary (default: nightvision)
    - NIGHTVISION_CONFIG_DIR: Token directory (default: ~/.nightvision)
    - NIGHTVISION_MAX_OUTPUT_MB: CLI output buffer in MiB (default: 50)
    - NIGHTVISION_REQUEST_TIMEOUT: HTTP timeout in seconds (default: unset)
    - DEBUG_MODE: Enable debug logging (default: 0)

LICENSE: MIT
================================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()

# ============================================================================
# DEFAULTS
# ============================================================================

PRODUCTION_API_URL = "https://api.nightvision.net/api/v1/"
DEFAULT_CLI_BINARY = "nightvision"
DEFAULT_CONFIG_DIR = os.path.join(os.path.expanduser("~"), ".nightvision")
DEFAULT_MAX_OUTPUT_MB = 50  # CLI default buffer is far too small for swagger extract


def _env_flag(name: str, default: str = "0") -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes", "y")


def _env_float(name: str) -> Optional[float]:
    value = os.environ.get(name, "").strip()
    return float(value) if value else None


@dataclass
class Settings:
    """Runtime settings shared by the service and the bootstrap."""

    api_url: str = PRODUCTION_API_URL
    cli_binary: str = DEFAULT_CLI_BINARY
    config_dir: str = DEFAULT_CONFIG_DIR
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_MB * 1024 * 1024
    request_timeout: Optional[float] = None
    debug: bool = False

    @property
    def login_hint(self) -> str:
        return f"{self.cli_binary} login --api-url {self.api_url}"


def load_settings() -> Settings:
    """
    Build settings from the current environment.

    Returns:
        Settings populated from NIGHTVISION_* variables, falling back to defaults
    """
    api_url = os.environ.get("NIGHTVISION_API_URL", PRODUCTION_API_URL)
    # Endpoints are joined as relative paths, so the base must end with a slash
    if not api_url.endswith("/"):
        api_url += "/"

    return Settings(
        api_url=api_url,
        cli_binary=os.environ.get("NIGHTVISION_CLI", DEFAULT_CLI_BINARY),
        config_dir=os.path.expanduser(os.environ.get("NIGHTVISION_CONFIG_DIR", DEFAULT_CONFIG_DIR)),
        max_output_bytes=int(os.environ.get("NIGHTVISION_MAX_OUTPUT_MB", DEFAULT_MAX_OUTPUT_MB)) * 1024 * 1024,
        request_timeout=_env_float("NIGHTVISION_REQUEST_TIMEOUT"),
        debug=_env_flag("DEBUG_MODE"),
    )
