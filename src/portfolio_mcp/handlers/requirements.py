"""Requirement tools: what we still need from each company."""

import logging
from typing import Any, Dict, List

from portfolio_mcp.errors import NotFoundError, ToolValidationError
from portfolio_mcp.registry import ToolSpec, object_schema
from portfolio_mcp.store import now_iso

logger = logging.getLogger(__name__)

REQUIREMENT_STATUSES = ["needed", "requested", "received"]


def pick_requirement(matches: List[Dict[str, Any]], item: str) -> Dict[str, Any]:
    """
    Choose the requirement an item fragment refers to.

    A single substring match wins. Among several, an exact (case-insensitive)
    title match wins; otherwise the fragment is ambiguous.
    """
    if len(matches) == 1:
        return matches[0]
    exact = [m for m in matches if (m.get("item") or "").lower() == item.lower()]
    if len(exact) == 1:
        return exact[0]
    names = ", ".join(repr(m.get("item")) for m in matches)
    raise ToolValidationError(
        f"'{item}' matches {len(matches)} requirements ({names}); use a more specific item name"
    )


async def add_requirement(ctx, arguments: dict) -> Dict[str, Any]:
    company = await ctx.store.resolve_company(arguments["slug"])
    row = {
        "company_id": company["id"],
        "item": arguments["item"],
        "status": arguments.get("status", "needed"),
    }
    if arguments.get("notes"):
        row["notes"] = arguments["notes"]
    rows = await ctx.store.run(ctx.store.table("requirements").insert(row), step="insert requirement")
    return {"success": True, "requirement": rows[0] if rows else None}


async def update_requirement(ctx, arguments: dict) -> Dict[str, Any]:
    """Update the requirement whose item contains the given text (case-insensitive)."""
    slug = arguments["slug"]
    item = arguments["item"]
    company = await ctx.store.resolve_company(slug)

    # % and _ in the item are literal characters, not LIKE wildcards.
    rows = await ctx.store.run(
        ctx.store.table("requirements")
        .select("id, item, status")
        .eq("company_id", company["id"]),
        step="find requirement",
    )
    needle = item.lower()
    matches = [r for r in rows if needle in (r.get("item") or "").lower()]
    if not matches:
        raise NotFoundError(f"Requirement not found for {slug}: {item}")
    target = pick_requirement(matches, item)

    rows = await ctx.store.run(
        ctx.store.table("requirements")
        .update({"status": arguments["status"], "updated_at": now_iso()})
        .eq("id", target["id"]),
        step=f"update requirement {target['id']}",
    )
    logger.info(f"Requirement '{target['item']}' ({slug}) -> {arguments['status']}")
    return {"success": True, "requirement": rows[0] if rows else None}


TOOLS = [
    ToolSpec(
        name="update_requirement",
        description="Update status of a requirement (what we need from a company). Matches the item name by case-insensitive substring.",
        input_schema=object_schema(
            {
                "slug": {"type": "string", "description": "Company slug"},
                "item": {"type": "string", "description": "Requirement item name (or a unique part of it)"},
                "status": {"type": "string", "enum": REQUIREMENT_STATUSES, "description": "New status"},
            },
            ["slug", "item", "status"],
        ),
        handler=update_requirement,
    ),
    ToolSpec(
        name="add_requirement",
        description="Add a new requirement for a company",
        input_schema=object_schema(
            {
                "slug": {"type": "string", "description": "Company slug"},
                "item": {"type": "string", "description": "Requirement item name"},
                "status": {"type": "string", "enum": REQUIREMENT_STATUSES, "description": "Initial status (default: needed)"},
                "notes": {"type": "string", "description": "Optional notes"},
            },
            ["slug", "item"],
        ),
        handler=add_requirement,
    ),
]
