"""Activity log tools. The log is append-only."""

from typing import Any, Dict, List

from portfolio_mcp.registry import ToolSpec, object_schema

ACTIVITY_TYPES = ["note", "milestone", "document", "meeting", "call", "email"]
DEFAULT_LIMIT = 20


async def log_activity(ctx, company_id, content: str, activity_type: str = "note") -> Dict[str, Any]:
    """Append one activity row; company_id None records a global entry."""
    rows = await ctx.store.run(
        ctx.store.table("activity").insert({
            "company_id": company_id,
            "type": activity_type,
            "content": content,
        }),
        step="insert activity",
    )
    return rows[0] if rows else {}


async def add_note(ctx, arguments: dict) -> Dict[str, Any]:
    company = await ctx.store.resolve_company(arguments["slug"])
    activity = await log_activity(
        ctx, company["id"], arguments["content"], arguments.get("type", "note")
    )
    return {"success": True, "activity": activity}


async def get_recent_activity(ctx, arguments: dict) -> List[Dict[str, Any]]:
    """Newest-first activity, across all companies or for one company."""
    limit = int(arguments.get("limit", DEFAULT_LIMIT))
    query = (
        ctx.store.table("activity")
        .select("*, companies(name, slug)")
        .order("created_at", desc=True)
        .limit(limit)
    )
    if arguments.get("slug"):
        company = await ctx.store.resolve_company(arguments["slug"])
        query = query.eq("company_id", company["id"])
    return await ctx.store.run(query, step="recent activity")


TOOLS = [
    ToolSpec(
        name="add_note",
        description="Add a note or activity entry for a company (meetings, calls, updates, etc.)",
        input_schema=object_schema(
            {
                "slug": {"type": "string", "description": "Company slug"},
                "content": {"type": "string", "description": "Note content"},
                "type": {"type": "string", "enum": ACTIVITY_TYPES, "description": "Type of activity (default: note)"},
            },
            ["slug", "content"],
        ),
        handler=add_note,
    ),
    ToolSpec(
        name="get_recent_activity",
        description="Get recent activity/notes across all companies or for a specific company",
        input_schema=object_schema(
            {
                "slug": {"type": "string", "description": "Optional company slug to filter by"},
                "limit": {
                    "type": "integer",
                    "minimum": 1,
                    "maximum": 200,
                    "description": "Number of entries to return (default 20)",
                },
            }
        ),
        handler=get_recent_activity,
    ),
]
