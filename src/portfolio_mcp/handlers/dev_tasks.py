"""Dev task tools."""

import logging
from typing import Any, Dict, List

from portfolio_mcp.errors import NotFoundError
from portfolio_mcp.registry import ToolSpec, object_schema
from portfolio_mcp.store import now_iso

logger = logging.getLogger(__name__)

TASK_STATUSES = ["todo", "in_progress", "blocked", "done"]
TASK_PRIORITIES = ["high", "medium", "low"]
PRIORITY_RANK = {p: i for i, p in enumerate(TASK_PRIORITIES)}

UPDATABLE_FIELDS = ("title", "description", "assigned_to", "priority", "steps", "due_date", "notes")


def sort_tasks(tasks: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """High priority first, then by due date with undated tasks last."""
    return sorted(
        tasks,
        key=lambda t: (
            PRIORITY_RANK.get(t.get("priority"), len(PRIORITY_RANK)),
            t.get("due_date") is None,
            t.get("due_date") or "",
        ),
    )


async def list_dev_tasks(ctx, arguments: dict) -> List[Dict[str, Any]]:
    query = ctx.store.table("dev_tasks").select("*, companies(name, slug)")
    for field in ("status", "assigned_to", "priority"):
        if arguments.get(field):
            query = query.eq(field, arguments[field])
    if arguments.get("slug"):
        company = await ctx.store.resolve_company(arguments["slug"])
        query = query.eq("company_id", company["id"])
    tasks = await ctx.store.run(query, step="list dev tasks")
    return sort_tasks(tasks)


async def add_dev_task(ctx, arguments: dict) -> Dict[str, Any]:
    row = {
        "title": arguments["title"],
        "description": arguments.get("description"),
        "assigned_to": arguments.get("assigned_to"),
        "priority": arguments.get("priority", "medium"),
        "steps": arguments.get("steps", []),
        "due_date": arguments.get("due_date"),
    }
    if arguments.get("slug"):
        company = await ctx.store.resolve_company(arguments["slug"])
        row["company_id"] = company["id"]

    rows = await ctx.store.run(ctx.store.table("dev_tasks").insert(row), step="insert dev task")
    return {"success": True, "task": rows[0] if rows else None}


async def update_dev_task(ctx, arguments: dict) -> Dict[str, Any]:
    """
    Update a dev task.

    updated_at is always stamped; completed_at is stamped when the status
    moves to done and is never cleared.
    """
    task_id = arguments["task_id"]
    now = now_iso()
    updates: Dict[str, Any] = {"updated_at": now}
    if arguments.get("status"):
        updates["status"] = arguments["status"]
        if arguments["status"] == "done":
            updates["completed_at"] = now
    for field in UPDATABLE_FIELDS:
        if field in arguments:
            updates[field] = arguments[field]

    rows = await ctx.store.run(
        ctx.store.table("dev_tasks").update(updates).eq("id", task_id),
        step=f"update dev task {task_id}",
    )
    if not rows:
        raise NotFoundError(f"Dev task not found: {task_id}")
    return {"success": True, "task": rows[0]}


async def delete_dev_task(ctx, arguments: dict) -> Dict[str, Any]:
    task_id = arguments["task_id"]
    rows = await ctx.store.run(
        ctx.store.table("dev_tasks").delete().eq("id", task_id),
        step=f"delete dev task {task_id}",
    )
    if not rows:
        raise NotFoundError(f"Dev task not found: {task_id}")
    logger.info(f"Deleted dev task {task_id}")
    return {"success": True, "deleted": task_id}


TOOLS = [
    ToolSpec(
        name="list_dev_tasks",
        description="List dev tasks, optionally filtered by status, assignee, priority, or company",
        input_schema=object_schema(
            {
                "status": {"type": "string", "enum": TASK_STATUSES, "description": "Filter by status"},
                "assigned_to": {"type": "string", "description": "Filter by assignee name"},
                "priority": {"type": "string", "enum": TASK_PRIORITIES, "description": "Filter by priority"},
                "slug": {"type": "string", "description": "Filter by company slug"},
            }
        ),
        handler=list_dev_tasks,
    ),
    ToolSpec(
        name="add_dev_task",
        description="Add a new dev task with optional step-by-step instructions",
        input_schema=object_schema(
            {
                "title": {"type": "string", "description": "Task title"},
                "description": {"type": "string", "description": "Task description"},
                "assigned_to": {"type": "string", "description": "Who is responsible"},
                "priority": {"type": "string", "enum": TASK_PRIORITIES, "description": "Priority level (default: medium)"},
                "steps": {"type": "array", "items": {"type": "string"}, "description": "Step-by-step instructions"},
                "due_date": {"type": "string", "description": "Due date (YYYY-MM-DD)"},
                "slug": {"type": "string", "description": "Optional company slug the task belongs to"},
            },
            ["title"],
        ),
        handler=add_dev_task,
    ),
    ToolSpec(
        name="update_dev_task",
        description="Update a dev task's status, assignee, priority, or details",
        input_schema=object_schema(
            {
                "task_id": {"type": "string", "description": "Task UUID"},
                "status": {"type": "string", "enum": TASK_STATUSES, "description": "New status"},
                "assigned_to": {"type": "string", "description": "New assignee"},
                "priority": {"type": "string", "enum": TASK_PRIORITIES, "description": "New priority"},
                "title": {"type": "string", "description": "New title"},
                "description": {"type": "string", "description": "New description"},
                "steps": {"type": "array", "items": {"type": "string"}, "description": "Replacement step list"},
                "due_date": {"type": "string", "description": "New due date (YYYY-MM-DD)"},
                "notes": {"type": "string", "description": "Progress notes"},
            },
            ["task_id"],
        ),
        handler=update_dev_task,
    ),
    ToolSpec(
        name="delete_dev_task",
        description="Delete a dev task",
        input_schema=object_schema({"task_id": {"type": "string", "description": "Task UUID"}}, ["task_id"]),
        handler=delete_dev_task,
    ),
]
