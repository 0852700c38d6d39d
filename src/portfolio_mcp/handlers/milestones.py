"""Milestone tools."""

import logging
from typing import Any, Dict, List

from portfolio_mcp.errors import NotFoundError
from portfolio_mcp.registry import ToolSpec, object_schema
from portfolio_mcp.store import now_iso

logger = logging.getLogger(__name__)

MILESTONE_STATUSES = ["pending", "in_progress", "done", "blocked"]


async def list_milestones(ctx, arguments: dict) -> List[Dict[str, Any]]:
    company = await ctx.store.resolve_company(arguments["slug"])
    return await ctx.store.run(
        ctx.store.table("milestones")
        .select("*")
        .eq("company_id", company["id"])
        .order("order_index")
        .order("created_at"),
        step="list milestones",
    )


async def add_milestone(ctx, arguments: dict) -> Dict[str, Any]:
    """
    Append a milestone after the company's current last one.

    order_index is max(existing) + 1 over rows that have one, or 0 when none do.
    Deleted indexes are never reused and nothing is resequenced.
    """
    company = await ctx.store.resolve_company(arguments["slug"])

    last = await ctx.store.first(
        ctx.store.table("milestones")
        .select("order_index")
        .eq("company_id", company["id"])
        .not_.is_("order_index", "null")
        .order("order_index", desc=True)
        .limit(1),
        step="find last milestone",
    )
    order_index = last["order_index"] + 1 if last else 0

    row = {
        "company_id": company["id"],
        "title": arguments["title"],
        "order_index": order_index,
    }
    if arguments.get("due_date"):
        row["due_date"] = arguments["due_date"]

    rows = await ctx.store.run(ctx.store.table("milestones").insert(row), step="insert milestone")
    return {"success": True, "milestone": rows[0] if rows else None}


async def update_milestone(ctx, arguments: dict) -> Dict[str, Any]:
    """
    Change a milestone's status.

    Moving to done stamps completed_at; moving away from done leaves it as is.
    updated_at is stamped on every call.
    """
    milestone_id = arguments["milestone_id"]
    status = arguments["status"]
    now = now_iso()

    update = {"status": status, "updated_at": now}
    if status == "done":
        update["completed_at"] = now
    if arguments.get("notes"):
        update["notes"] = arguments["notes"]

    rows = await ctx.store.run(
        ctx.store.table("milestones").update(update).eq("id", milestone_id),
        step=f"update milestone {milestone_id}",
    )
    if not rows:
        raise NotFoundError(f"Milestone not found: {milestone_id}")
    logger.info(f"Milestone {milestone_id} -> {status}")
    return {"success": True, "milestone": rows[0]}


TOOLS = [
    ToolSpec(
        name="list_milestones",
        description="List all milestones for a company",
        input_schema=object_schema({"slug": {"type": "string", "description": "Company slug"}}, ["slug"]),
        handler=list_milestones,
    ),
    ToolSpec(
        name="update_milestone",
        description="Update a milestone's status (mark as done, in progress, blocked, etc.)",
        input_schema=object_schema(
            {
                "milestone_id": {"type": "string", "description": "Milestone UUID"},
                "status": {"type": "string", "enum": MILESTONE_STATUSES, "description": "New status"},
                "notes": {"type": "string", "description": "Optional notes about the update"},
            },
            ["milestone_id", "status"],
        ),
        handler=update_milestone,
    ),
    ToolSpec(
        name="add_milestone",
        description="Add a new milestone to a company",
        input_schema=object_schema(
            {
                "slug": {"type": "string", "description": "Company slug"},
                "title": {"type": "string", "description": "Milestone title"},
                "due_date": {"type": "string", "description": "Optional due date (YYYY-MM-DD)"},
            },
            ["slug", "title"],
        ),
        handler=add_milestone,
    ),
]
