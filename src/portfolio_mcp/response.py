"""
Result envelope for MCP SDK tool calls, plus the error codes ToolError
subclasses carry.

    {"ok": true,  "error": null,        "message": "get_company completed", "data": {...}}
    {"ok": false, "error": "not_found", "message": "Company not found: x", "data": {"tool": ..., "step": ...}}
"""

from typing import Any, Dict


class ErrorCodes:
    """Stable error codes, one per ToolError subclass."""
    UNEXPECTED_EXCEPTION = "unexpected_exception"
    INVALID_ARGUMENT = "invalid_argument"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    CONFIGURATION_ERROR = "configuration_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class ResponseEnvelope:
    """Builds envelopes for tool results returned over the MCP SDK server."""

    @staticmethod
    def success(tool: str, data: Any = None) -> Dict[str, Any]:
        return {
            "ok": True,
            "error": None,
            "message": f"{tool} completed",
            "data": data if data is not None else {},
        }

    @staticmethod
    def error(code: str, message: str, data: Any = None) -> Dict[str, Any]:
        return {
            "ok": False,
            "error": code,
            "message": message,
            "data": data if data is not None else {},
        }

    @classmethod
    def from_error(cls, error) -> Dict[str, Any]:
        """Envelope for a ToolError; data names the tool and failing step when known."""
        context = {key: value for key, value in (("tool", error.tool), ("step", error.step)) if value}
        return cls.error(error.code, str(error), context)
