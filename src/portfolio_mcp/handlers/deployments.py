"""
Deployment tools.

A deployment is a named app made of exactly four components (github,
frontend, mcp_server, database). Components are created with the deployment
and probed by the health checker.
"""

import logging
import re
from typing import Any, Dict, List

from portfolio_mcp.errors import NotFoundError, SlugCollisionError, ToolValidationError, UpstreamError
from portfolio_mcp.health_checker import check_deployment
from portfolio_mcp.registry import ToolSpec, object_schema
from portfolio_mcp.store import now_iso

logger = logging.getLogger(__name__)

DEPLOYMENT_STATUSES = ["active", "deploying", "failed", "stopped"]
COMPONENT_TYPES = ["github", "frontend", "mcp_server", "database"]
COMPONENT_STATUSES = ["healthy", "degraded", "down", "unknown", "not_configured"]

DEPLOYMENT_SELECT = "*, deployment_components(*)"


def slugify(name: str) -> str:
    """Lowercase, collapse non-alphanumeric runs to one hyphen, trim hyphens."""
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def order_components(components: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    rank = {t: i for i, t in enumerate(COMPONENT_TYPES)}
    return sorted(components or [], key=lambda c: rank.get(c.get("component_type"), len(rank)))


def _component_status(url) -> str:
    return "unknown" if url else "not_configured"


async def load_deployment(ctx, slug: str) -> Dict[str, Any]:
    """
    Fetch a deployment with its components in fixed type order.

    Raises:
        NotFoundError: If no deployment has this slug
    """
    deployment = await ctx.store.first(
        ctx.store.table("deployments").select(DEPLOYMENT_SELECT).eq("slug", slug).limit(1),
        step=f"get deployment {slug}",
    )
    if not deployment:
        raise NotFoundError(f"Deployment not found: {slug}")
    deployment["deployment_components"] = order_components(deployment.get("deployment_components"))
    return deployment


async def list_deployments(ctx, arguments: dict) -> List[Dict[str, Any]]:
    query = ctx.store.table("deployments").select(DEPLOYMENT_SELECT)
    if arguments.get("status"):
        query = query.eq("status", arguments["status"])
    deployments = await ctx.store.run(query.order("name"), step="list deployments")
    for deployment in deployments:
        deployment["deployment_components"] = order_components(deployment.get("deployment_components"))
    return deployments


async def get_deployment(ctx, arguments: dict) -> Dict[str, Any]:
    return await load_deployment(ctx, arguments["slug"])


async def create_deployment(ctx, arguments: dict) -> Dict[str, Any]:
    """
    Create a deployment and its four components.

    If the component insert fails the deployment row is deleted again so a
    deployment never exists without its components.

    Raises:
        ToolValidationError: If the name has no alphanumeric characters
        SlugCollisionError: If the derived slug is already taken
        UpstreamError: If the store rejects either insert
    """
    name = arguments["name"]
    slug = slugify(name)
    if not slug:
        raise ToolValidationError(f"Cannot derive a slug from deployment name '{name}'")

    existing = await ctx.store.first(
        ctx.store.table("deployments").select("id").eq("slug", slug).limit(1),
        step=f"check deployment slug {slug}",
    )
    if existing:
        raise SlugCollisionError(f"A deployment with slug '{slug}' already exists")

    rows = await ctx.store.run(
        ctx.store.table("deployments").insert({
            "name": name,
            "slug": slug,
            "description": arguments.get("description"),
            "status": "active",
        }),
        step="insert deployment",
    )
    if not rows:
        raise UpstreamError("insert deployment returned no row", step="insert deployment")
    deployment = rows[0]

    components = []
    for component_type in COMPONENT_TYPES:
        url = arguments.get(f"{component_type}_url")
        components.append({
            "deployment_id": deployment["id"],
            "component_type": component_type,
            "url": url,
            "status": _component_status(url),
            "config": {},
        })

    try:
        created = await ctx.store.run(
            ctx.store.table("deployment_components").insert(components),
            step="insert deployment components",
        )
    except UpstreamError as e:
        logger.warning(f"Component insert failed for {slug}, removing deployment {deployment['id']}")
        await ctx.store.run(
            ctx.store.table("deployments").delete().eq("id", deployment["id"]),
            step=f"roll back deployment {slug}",
        )
        raise UpstreamError(f"Creating components for {slug} failed: {e}", step="insert deployment components") from e

    deployment["deployment_components"] = order_components(created)
    logger.info(f"Created deployment {slug}")
    return {"success": True, "deployment": deployment}


async def update_deployment(ctx, arguments: dict) -> Dict[str, Any]:
    slug = arguments["slug"]
    deployment = await load_deployment(ctx, slug)

    updates: Dict[str, Any] = {"updated_at": now_iso()}
    for field in ("status", "description", "name"):
        if field in arguments:
            updates[field] = arguments[field]

    rows = await ctx.store.run(
        ctx.store.table("deployments").update(updates).eq("id", deployment["id"]),
        step=f"update deployment {slug}",
    )
    return {"success": True, "deployment": rows[0] if rows else None}


async def update_deployment_component(ctx, arguments: dict) -> Dict[str, Any]:
    """
    Update one component of a deployment.

    config is merged into the stored config. An empty url clears it and marks
    the component not_configured; a url set on a not_configured component
    moves it to unknown until the next health check.
    """
    slug = arguments["slug"]
    component_type = arguments["component_type"]
    deployment = await load_deployment(ctx, slug)

    component = next(
        (c for c in deployment["deployment_components"] if c.get("component_type") == component_type),
        None,
    )
    if component is None:
        raise NotFoundError(f"Component {component_type} not found for deployment {slug}")

    updates: Dict[str, Any] = {"updated_at": now_iso()}
    if "url" in arguments:
        url = arguments["url"] or None
        updates["url"] = url
        if url is None:
            updates["status"] = "not_configured"
            updates["error_message"] = None
        elif component.get("status") == "not_configured":
            updates["status"] = "unknown"
    if arguments.get("status"):
        updates["status"] = arguments["status"]
    if "config" in arguments:
        updates["config"] = {**(component.get("config") or {}), **arguments["config"]}

    rows = await ctx.store.run(
        ctx.store.table("deployment_components").update(updates).eq("id", component["id"]),
        step=f"update {component_type} component of {slug}",
    )
    return {"success": True, "component": rows[0] if rows else None}


async def check_deployment_health(ctx, arguments: dict) -> Dict[str, Any]:
    deployment = await load_deployment(ctx, arguments["slug"])
    return await check_deployment(ctx.store, deployment)


async def delete_deployment(ctx, arguments: dict) -> Dict[str, Any]:
    slug = arguments["slug"]
    rows = await ctx.store.run(
        ctx.store.table("deployments").delete().eq("slug", slug),
        step=f"delete deployment {slug}",
    )
    if not rows:
        raise NotFoundError(f"Deployment not found: {slug}")
    logger.info(f"Deleted deployment {slug}")
    return {"success": True, "deleted": slug}


TOOLS = [
    ToolSpec(
        name="list_deployments",
        description="List deployments with their components, optionally filtered by status",
        input_schema=object_schema(
            {"status": {"type": "string", "enum": DEPLOYMENT_STATUSES, "description": "Filter by status"}}
        ),
        handler=list_deployments,
    ),
    ToolSpec(
        name="get_deployment",
        description="Get a deployment and its github, frontend, mcp_server and database components",
        input_schema=object_schema({"slug": {"type": "string", "description": "Deployment slug"}}, ["slug"]),
        handler=get_deployment,
    ),
    ToolSpec(
        name="create_deployment",
        description="Create a deployment. The slug is derived from the name and all four components are created.",
        input_schema=object_schema(
            {
                "name": {"type": "string", "description": "Deployment name"},
                "description": {"type": "string", "description": "What this deployment is"},
                "github_url": {"type": "string", "description": "Repository URL"},
                "frontend_url": {"type": "string", "description": "Frontend URL"},
                "mcp_server_url": {"type": "string", "description": "MCP server base URL (/health is probed)"},
                "database_url": {"type": "string", "description": "Database URL"},
            },
            ["name"],
        ),
        handler=create_deployment,
    ),
    ToolSpec(
        name="update_deployment",
        description="Update a deployment's status, name or description",
        input_schema=object_schema(
            {
                "slug": {"type": "string", "description": "Deployment slug"},
                "status": {"type": "string", "enum": DEPLOYMENT_STATUSES, "description": "New status"},
                "description": {"type": "string", "description": "New description"},
                "name": {"type": "string", "description": "New display name (the slug is unchanged)"},
            },
            ["slug"],
        ),
        handler=update_deployment,
    ),
    ToolSpec(
        name="update_deployment_component",
        description="Update one component of a deployment. config is merged into the existing config; an empty url clears it.",
        input_schema=object_schema(
            {
                "slug": {"type": "string", "description": "Deployment slug"},
                "component_type": {"type": "string", "enum": COMPONENT_TYPES, "description": "Which component"},
                "url": {"type": "string", "description": "Component URL (empty string to clear)"},
                "status": {"type": "string", "enum": COMPONENT_STATUSES, "description": "Override status"},
                "config": {"type": "object", "description": "Config keys to merge"},
            },
            ["slug", "component_type"],
        ),
        handler=update_deployment_component,
    ),
    ToolSpec(
        name="check_deployment_health",
        description="Probe every configured component of a deployment and record its health",
        input_schema=object_schema({"slug": {"type": "string", "description": "Deployment slug"}}, ["slug"]),
        handler=check_deployment_health,
    ),
    ToolSpec(
        name="delete_deployment",
        description="Delete a deployment and its components",
        input_schema=object_schema({"slug": {"type": "string", "description": "Deployment slug"}}, ["slug"]),
        handler=delete_deployment,
    ),
]
