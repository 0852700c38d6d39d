"""Error taxonomy shared by handlers, the registry and every transport."""

from typing import Optional

from portfolio_mcp.response import ErrorCodes


class ToolError(Exception):
    """Base class for errors a tool call can fail with."""
    code = ErrorCodes.UNEXPECTED_EXCEPTION

    def __init__(self, message: str, tool: Optional[str] = None, step: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.tool = tool
        self.step = step

    def __str__(self) -> str:
        return self.message


class NotFoundError(ToolError):
    """A slug or id lookup missed."""
    code = ErrorCodes.NOT_FOUND


class UnknownToolError(NotFoundError):
    """No tool is registered under the requested name."""


class ToolValidationError(ToolError):
    """Arguments are missing or malformed."""
    code = ErrorCodes.INVALID_ARGUMENT


class ArgumentValidationError(ToolValidationError):
    """The request itself is malformed: arguments fail the input schema or the body is not JSON."""


class SlugCollisionError(ToolValidationError):
    """A derived slug is already taken."""


class UpstreamError(ToolError):
    """The store or a third-party API returned a failure."""
    code = ErrorCodes.EXTERNAL_SERVICE_ERROR


class ConfigurationError(ToolError):
    """A required credential or environment value is absent."""
    code = ErrorCodes.CONFIGURATION_ERROR


class RequestTimeoutError(ToolError):
    """A health probe or outbound call exceeded its time bound."""
    code = ErrorCodes.TIMEOUT
