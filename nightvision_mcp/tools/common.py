"""
Shared plumbing for NightVision MCP tools.

Every handler returns a CallToolResult. Errors never propagate into the
protocol layer: they become error-flagged results carrying a tool-specific
prefix.
"""

import functools
import json
import logging
import traceback
from typing import Any, Callable, Dict, Literal

from mcp.types import CallToolResult, TextContent

from ..errors import NotAuthenticatedError

logger = logging.getLogger(__name__)

NOT_AUTHENTICATED_MESSAGE = "Not authenticated. Please use the authenticate tool to set a token first."

OutputFormat = Literal["json", "text", "table"]


def text_result(text: str) -> CallToolResult:
    return CallToolResult(content=[TextContent(type="text", text=text)], isError=False)


def error_result(text: str) -> CallToolResult:
    return CallToolResult(content=[TextContent(type="text", text=text)], isError=True)


def result_text(result: CallToolResult) -> str:
    """Text of the first content block, mostly for logging and tests"""
    return result.content[0].text if result.content else ""


def known_parameters(**params: Any) -> str:
    """Render the parameters already supplied to a two-phase tool, dropping unset ones"""
    return json.dumps({key: value for key, value in params.items() if value is not None}, indent=2)


def tool_handler(service, error_prefix: str, require_auth: bool = True) -> Callable:
    """
    Wrap an async tool function with the authentication preamble and error envelope.

    Args:
        service: NightVisionService whose token gates the call
        error_prefix: Prefix for error messages, e.g. "Error listing targets"
        require_auth: Refuse the call (without any I/O) when no token is held

    Returns:
        Decorator producing a handler that always returns a CallToolResult
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> CallToolResult:
            try:
                if require_auth and not service.get_token():
                    raise NotAuthenticatedError(NOT_AUTHENTICATED_MESSAGE)
                result = await func(*args, **kwargs)
            except NotAuthenticatedError as e:
                return error_result(str(e))
            except Exception as e:
                logger.error(f"{error_prefix}: {str(e)}")
                logger.debug(traceback.format_exc())
                return error_result(f"{error_prefix}: {str(e)}")

            if isinstance(result, CallToolResult):
                return result
            return text_result(result)

        return wrapper

    return decorator


def parse_json(output: str) -> Any:
    """Parse CLI JSON output, returning None when it is not JSON"""
    try:
        return json.loads(output)
    except ValueError as e:
        logger.warning(f"Failed to parse JSON output: {e}")
        return None


def as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}
