#!/usr/bin/env python3
"""
Tests for the tool registry.

Covers startup-time consistency checks, argument validation and dispatch.
"""

import pytest
from unittest.mock import patch

from portfolio_mcp.errors import (
    ArgumentValidationError,
    NotFoundError,
    ToolValidationError,
    UnknownToolError,
    UpstreamError,
)
from portfolio_mcp.registry import ToolRegistry, ToolSpec, object_schema

EXPECTED_TOOLS = {
    "list_companies", "get_company", "update_company_status", "get_portfolio_summary",
    "list_milestones", "add_milestone", "update_milestone",
    "add_note", "get_recent_activity",
    "add_requirement", "update_requirement",
    "add_contact", "list_contacts",
    "list_documents", "list_platform_documents", "add_document", "get_document_content",
    "send_email", "send_project_update",
    "list_dev_tasks", "add_dev_task", "update_dev_task", "delete_dev_task",
    "list_deployments", "get_deployment", "create_deployment", "update_deployment",
    "update_deployment_component", "check_deployment_health", "delete_deployment",
    "list_calendar_events", "create_calendar_event", "search_emails", "get_email",
}


async def echo(ctx, arguments):
    return arguments


def echo_spec(name="echo", schema=None):
    return ToolSpec(
        name=name,
        description="Echo arguments",
        input_schema=schema or object_schema(
            {
                "text": {"type": "string"},
                "mode": {"type": "string", "enum": ["loud", "quiet"]},
                "count": {"type": "integer", "minimum": 1},
            },
            ["text"],
        ),
        handler=echo,
    )


class TestRegistryConsistency:
    """Startup checks on the assembled registry."""

    def test_full_registry_advertises_every_tool(self, registry):
        assert set(registry.names()) == EXPECTED_TOOLS
        assert len(registry) == len(EXPECTED_TOOLS)

    def test_descriptors_match_names_in_order(self, registry):
        descriptors = registry.descriptors()
        assert [d["name"] for d in descriptors] == registry.names()
        for descriptor in descriptors:
            assert descriptor["description"]
            assert descriptor["inputSchema"]["type"] == "object"

    def test_anthropic_format_uses_input_schema_key(self, registry):
        tools = registry.anthropic_tools()
        assert len(tools) == len(registry)
        assert set(tools[0]) == {"name", "description", "input_schema"}

    def test_mcp_tools_are_sdk_objects(self, registry):
        tools = registry.mcp_tools()
        assert tools[0].name == registry.names()[0]
        assert tools[0].inputSchema == registry.get(tools[0].name).input_schema

    def test_duplicate_name_rejected(self):
        registry = ToolRegistry([echo_spec()])
        with pytest.raises(ValueError, match="Duplicate tool name"):
            registry.register(echo_spec())

    def test_sync_handler_rejected(self):
        spec = echo_spec()
        spec.handler = lambda ctx, arguments: arguments
        with pytest.raises(ValueError, match="async"):
            ToolRegistry([spec])

    def test_invalid_schema_rejected(self):
        with pytest.raises(ValueError, match="Invalid input schema"):
            ToolRegistry([echo_spec(schema={"type": "object", "properties": {"x": {"type": "nonsense"}}})])

    def test_required_argument_must_be_declared(self):
        with pytest.raises(ValueError, match="undeclared argument"):
            ToolRegistry([echo_spec(schema=object_schema({"a": {"type": "string"}}, ["b"]))])


class TestArgumentValidation:
    """validate_arguments runs before any handler."""

    def test_missing_required_argument(self):
        registry = ToolRegistry([echo_spec()])
        with pytest.raises(ArgumentValidationError, match="'text' is a required property"):
            registry.validate_arguments("echo", {})

    def test_out_of_enum_value(self):
        registry = ToolRegistry([echo_spec()])
        with pytest.raises(ArgumentValidationError, match="mode"):
            registry.validate_arguments("echo", {"text": "hi", "mode": "shouting"})

    def test_wrong_type(self):
        registry = ToolRegistry([echo_spec()])
        with pytest.raises(ArgumentValidationError, match="count"):
            registry.validate_arguments("echo", {"text": "hi", "count": "three"})

    def test_none_values_treated_as_omitted(self):
        registry = ToolRegistry([echo_spec()])
        assert registry.validate_arguments("echo", {"text": "hi", "mode": None}) == {"text": "hi"}

    def test_non_object_arguments(self):
        registry = ToolRegistry([echo_spec()])
        with pytest.raises(ArgumentValidationError, match="expected an object"):
            registry.validate_arguments("echo", ["hi"])

    def test_missing_arguments_default_to_empty(self):
        registry = ToolRegistry([echo_spec(schema=object_schema())])
        assert registry.validate_arguments("echo", None) == {}


class TestInvoke:
    """Dispatch through invoke()."""

    @pytest.mark.asyncio
    async def test_invoke_passes_cleaned_arguments(self):
        registry = ToolRegistry([echo_spec()])
        assert await registry.invoke(None, "echo", {"text": "hi", "count": None}) == {"text": "hi"}

    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        registry = ToolRegistry([echo_spec()])
        with pytest.raises(UnknownToolError, match="Tool not found: nope"):
            await registry.invoke(None, "nope", {})

    @pytest.mark.asyncio
    async def test_validation_happens_before_handler(self):
        calls = []

        async def handler(ctx, arguments):
            calls.append(arguments)

        registry = ToolRegistry([ToolSpec("t", "d", object_schema({"a": {"type": "string"}}, ["a"]), handler)])
        with pytest.raises(ToolValidationError):
            await registry.invoke(None, "t", {})
        assert calls == []

    @pytest.mark.asyncio
    async def test_tool_errors_propagate_with_tool_name(self):
        async def handler(ctx, arguments):
            raise NotFoundError("Company not found: nope")

        registry = ToolRegistry([ToolSpec("lookup", "d", object_schema(), handler)])
        with pytest.raises(NotFoundError) as excinfo:
            await registry.invoke(None, "lookup", {})
        assert excinfo.value.tool == "lookup"

    @pytest.mark.asyncio
    async def test_unexpected_errors_wrapped(self):
        async def handler(ctx, arguments):
            raise KeyError("boom")

        registry = ToolRegistry([ToolSpec("broken", "d", object_schema(), handler)])
        with patch("portfolio_mcp.registry.sentry_sdk.capture_exception") as capture:
            with pytest.raises(UpstreamError, match="broken failed") as excinfo:
                await registry.invoke(None, "broken", {})
        capture.assert_called_once()
        assert excinfo.value.tool == "broken"
        assert isinstance(excinfo.value.__cause__, KeyError)
