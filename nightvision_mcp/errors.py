"""Error types raised by the NightVision service layer."""

from typing import Optional


class NightVisionError(Exception):
    """Base class for every error the service raises."""


class NotAuthenticatedError(NightVisionError):
    """No token is held for the current process."""


class ExternalToolError(NightVisionError):
    """The NightVision CLI could not be spawned or exited non-zero."""


class ApiError(NightVisionError):
    """
    Non-2xx response (or transport failure) from the NightVision REST API.

    Attributes:
        status: HTTP status code, None when the request never got a response
        detail: Server-provided detail message or the transport error text
    """

    def __init__(self, status: Optional[int], detail: str):
        self.status = status
        self.detail = detail
        super().__init__(f"API request failed ({status}): {detail}")


class ValidationError(NightVisionError):
    """A required parameter is missing or malformed; raised before any I/O."""


class NotFoundError(NightVisionError):
    """A name-keyed lookup returned no result."""


class CredentialCreationError(NightVisionError):
    """Token creation through the CLI did not produce a usable token."""
