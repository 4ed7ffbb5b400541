"""Pytest configuration for the NightVision MCP server."""

import pytest

from nightvision_mcp.background import BackgroundDispatcher
from nightvision_mcp.config import Settings
from nightvision_mcp.service import NightVisionService
from nightvision_mcp.token_store import TokenStore

API_URL = "https://api.example.test/api/v1/"


class FakeMCP:
    """Stands in for FastMCP: collects the decorated tool handlers by name."""

    def __init__(self):
        self.tools = {}

    def tool(self, name=None, **kwargs):
        def decorator(func):
            self.tools[name or func.__name__] = func
            return func

        return decorator


def make_cli_result(stdout="", stderr="", return_code=0, error=None, buffer_exceeded=False):
    result = {
        "stdout": stdout,
        "stderr": stderr,
        "return_code": return_code,
        "success": return_code == 0 and not buffer_exceeded,
        "buffer_exceeded": buffer_exceeded,
    }
    if error:
        result["error"] = error
    return result


@pytest.fixture
def settings(tmp_path):
    return Settings(api_url=API_URL, cli_binary="nightvision", config_dir=str(tmp_path / "nightvision"))


@pytest.fixture
def service(settings):
    return NightVisionService(settings)


@pytest.fixture
def authed_service(service):
    service.set_token("tok-1234567890abcdefghij")
    return service


@pytest.fixture
def store(settings):
    return TokenStore(settings.config_dir)


@pytest.fixture
def cli_result():
    return make_cli_result


@pytest.fixture
def fake_mcp():
    return FakeMCP()


@pytest.fixture
def dispatcher():
    return BackgroundDispatcher()
