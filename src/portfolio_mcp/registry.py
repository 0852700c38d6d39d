"""
Tool registry: the single source of truth for tool names, schemas and handlers.

Each handler module exports a TOOLS list of ToolSpec entries; the registry is
assembled from those lists at startup (see handlers.build_registry). Schemas
are checked when a tool is registered, so a malformed schema or a duplicate
name fails the process at startup instead of at call time.

Usage:
    registry = build_registry()
    result = await registry.invoke(ctx, "get_company", {"slug": "dtiq"})
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

import sentry_sdk
from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError
from mcp import types

from portfolio_mcp.errors import ArgumentValidationError, ToolError, UnknownToolError, UpstreamError

logger = logging.getLogger(__name__)

Handler = Callable[[Any, Dict[str, Any]], Awaitable[Any]]


def object_schema(properties: Optional[Dict[str, Any]] = None, required: Optional[List[str]] = None) -> dict:
    """Build a JSON-Schema object for tool input."""
    return {
        "type": "object",
        "properties": properties or {},
        "required": required or [],
    }


@dataclass
class ToolSpec:
    """One advertised tool: name, description, input schema and its handler."""
    name: str
    description: str
    input_schema: Dict[str, Any]
    handler: Handler

    def descriptor(self) -> Dict[str, Any]:
        """Registry entry as advertised over HTTP and the /mcp endpoint."""
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


class ToolRegistry:
    """Ordered name → ToolSpec table with validation and dispatch."""

    def __init__(self, specs: Optional[List[ToolSpec]] = None):
        self._tools: Dict[str, ToolSpec] = {}
        self._validators: Dict[str, Draft202012Validator] = {}
        for spec in specs or []:
            self.register(spec)

    def register(self, spec: ToolSpec):
        """
        Add a tool.

        Raises:
            ValueError: On a duplicate name, a non-coroutine handler, or an
                invalid input schema
        """
        if spec.name in self._tools:
            raise ValueError(f"Duplicate tool name: {spec.name}")
        if not inspect.iscoroutinefunction(spec.handler):
            raise ValueError(f"Handler for {spec.name} must be an async function")
        try:
            Draft202012Validator.check_schema(spec.input_schema)
        except SchemaError as e:
            raise ValueError(f"Invalid input schema for {spec.name}: {e.message}") from e

        properties = spec.input_schema.get("properties", {})
        for field in spec.input_schema.get("required", []):
            if field not in properties:
                raise ValueError(f"Tool {spec.name} requires undeclared argument '{field}'")

        self._tools[spec.name] = spec
        self._validators[spec.name] = Draft202012Validator(spec.input_schema)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def names(self) -> List[str]:
        return list(self._tools)

    def get(self, name: str) -> ToolSpec:
        spec = self._tools.get(name)
        if spec is None:
            raise UnknownToolError(f"Tool not found: {name}", tool=name)
        return spec

    def descriptors(self) -> List[Dict[str, Any]]:
        return [spec.descriptor() for spec in self._tools.values()]

    def mcp_tools(self) -> List[types.Tool]:
        """Registry as MCP SDK Tool objects."""
        return [
            types.Tool(name=spec.name, description=spec.description, inputSchema=spec.input_schema)
            for spec in self._tools.values()
        ]

    def anthropic_tools(self) -> List[Dict[str, Any]]:
        """Registry in the completion API's tool format."""
        return [
            {
                "name": spec.name,
                "description": spec.description,
                "input_schema": spec.input_schema,
            }
            for spec in self._tools.values()
        ]

    def validate_arguments(self, name: str, arguments: Any) -> Dict[str, Any]:
        """
        Check arguments against the tool's input schema.

        Keys whose value is None are treated as omitted.

        Returns:
            dict: The cleaned arguments

        Raises:
            UnknownToolError: If the tool is not registered
            ArgumentValidationError: If the arguments do not satisfy the schema
        """
        self.get(name)
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise ArgumentValidationError(
                f"Invalid arguments for {name}: expected an object, got {type(arguments).__name__}",
                tool=name,
            )

        cleaned = {key: value for key, value in arguments.items() if value is not None}
        errors = sorted(self._validators[name].iter_errors(cleaned), key=lambda e: list(e.path))
        if errors:
            problems = []
            for error in errors:
                path = ".".join(str(p) for p in error.path)
                problems.append(f"{path}: {error.message}" if path else error.message)
            raise ArgumentValidationError(f"Invalid arguments for {name}: {'; '.join(problems)}", tool=name)
        return cleaned

    async def invoke(self, ctx, name: str, arguments: Any) -> Any:
        """
        Validate arguments and run the named handler.

        Handler errors propagate as ToolError subclasses; anything else is
        wrapped in UpstreamError carrying the tool name.
        """
        spec = self.get(name)
        cleaned = self.validate_arguments(name, arguments)

        logger.info(f"Tool call: {name} {cleaned}")
        try:
            return await spec.handler(ctx, cleaned)
        except ToolError as e:
            if e.tool is None:
                e.tool = name
            logger.error(f"Tool {name} failed ({e.code}): {e}")
            raise
        except Exception as e:
            logger.exception(f"Tool {name} failed")
            sentry_sdk.capture_exception(e)
            raise UpstreamError(f"{name} failed: {e}", tool=name) from e
