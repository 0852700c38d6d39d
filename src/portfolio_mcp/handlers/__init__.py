"""
Tool handlers, one module per entity.

build_registry() assembles every module's TOOLS list in advertised order.
Adding a tool means adding one ToolSpec (name, schema, handler) to a TOOLS
list; the registry rejects duplicates and malformed schemas at startup.
"""

from portfolio_mcp.handlers import (
    activity,
    companies,
    contacts,
    deployments,
    dev_tasks,
    documents,
    email,
    google,
    milestones,
    requirements,
)
from portfolio_mcp.registry import ToolRegistry

HANDLER_MODULES = [
    companies,
    milestones,
    activity,
    requirements,
    contacts,
    documents,
    email,
    dev_tasks,
    deployments,
    google,
]


def build_registry() -> ToolRegistry:
    """Create the full tool registry."""
    registry = ToolRegistry()
    for module in HANDLER_MODULES:
        for spec in module.TOOLS:
            registry.register(spec)
    return registry
