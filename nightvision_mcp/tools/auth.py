"""Authentication tool: set, create or check the NightVision token."""

import logging
from typing import Optional

from ..service import NightVisionService, token_preview
from ..token_store import TokenStore
from .common import error_result, text_result, tool_handler

logger = logging.getLogger(__name__)


def register_auth_tools(mcp, service: NightVisionService, store: TokenStore):
    """Register the authenticate tool"""
    hint = service.settings.login_hint

    @mcp.tool(name="authenticate", structured_output=False)
    @tool_handler(service, "Authentication error", require_auth=False)
    async def authenticate(
        token: Optional[str] = None,
        create_new: bool = False,
        expiry_date: Optional[str] = None,
    ):
        """
        Authenticate with NightVision.

        Args:
            token: NightVision API token to use for authentication
            create_new: Create a new token through an interactive CLI login
            expiry_date: Expiry date for a new token in format YYYY-MM-DD

        Returns:
            Authentication status. Called with no arguments it reports the current state.
        """
        if create_new:
            logger.warning("The NightVision CLI requires an interactive login session to create a new token.")
            logger.warning("Complete the login prompt in the terminal where the MCP server is running.")
            try:
                new_token = await service.create_token(expiry_date)
            except Exception as e:
                return error_result(
                    f"Failed to create new token: {e}\n\nThe NightVision CLI requires an interactive login "
                    f"session. Please run the following command in your terminal:\n{hint}"
                )

            service.set_token(new_token)
            store.save(new_token)

            if not await service.verify_token():
                return error_result(
                    f"Created a new token (starts with: {token_preview(new_token)}) but it couldn't be validated.\n\n"
                    "The login process may not have completed successfully. Please try again or run the "
                    f"following command in your terminal:\n{hint}"
                )
            return text_result(
                "Successfully created and saved a new authentication token. "
                f"Token starts with: {token_preview(new_token)}\n"
                "This token can be used with both the NightVision CLI and API requests."
            )

        if token:
            service.set_token(token)
            store.save(token)

            if not await service.verify_token():
                service.set_token(None)
                store.clear()
                return error_result(
                    f"The provided token is not valid.\n\nPlease run the following command and then try again:\n{hint}"
                )
            return text_result(f"Successfully authenticated. Token starts with: {token_preview(token)}")

        current_token = service.get_token()
        if not current_token:
            return text_result("Not authenticated. Please provide a token or create a new one.")

        if await service.verify_token():
            return text_result(f"Authenticated successfully. Token starts with: {token_preview(current_token)}")
        return error_result(
            f"You have a token (starts with: {token_preview(current_token)}) but it appears to be invalid "
            f"or expired.\n\nPlease run the following command and then try again:\n{hint}"
        )
