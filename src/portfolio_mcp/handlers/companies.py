"""Company lookups, status updates and the portfolio summary."""

import logging
from typing import Any, Dict, List

from portfolio_mcp.errors import NotFoundError
from portfolio_mcp.registry import ToolSpec, object_schema
from portfolio_mcp.report import progress
from portfolio_mcp.store import now_iso

logger = logging.getLogger(__name__)

COMPANY_STATUSES = ["discovery", "active", "pilot", "deployed"]

SLUG_PROPERTY = {"type": "string", "description": "Company slug (dtiq, element8, qwilt, packetfabric, welink)"}


async def list_companies(ctx, arguments: dict) -> List[Dict[str, Any]]:
    return await ctx.store.run(
        ctx.store.table("companies")
        .select("id, slug, name, description, status, tools, created_at")
        .order("name"),
        step="list companies",
    )


async def get_company(ctx, arguments: dict) -> Dict[str, Any]:
    """Company with contacts, milestones, documents, requirements and activity."""
    slug = arguments["slug"]
    company = await ctx.store.first(
        ctx.store.table("companies")
        .select("*, contacts(*), milestones(*), documents(*), requirements(*), activity(*)")
        .eq("slug", slug)
        .limit(1),
        step=f"get company {slug}",
    )
    if not company:
        raise NotFoundError(f"Company not found: {slug}")

    # Milestones by order_index, ties by insertion; activity and documents newest first
    company["milestones"] = sorted(
        company.get("milestones") or [],
        key=lambda m: (m.get("order_index") or 0, m.get("created_at") or ""),
    )
    company["activity"] = sorted(
        company.get("activity") or [], key=lambda a: a.get("created_at") or "", reverse=True
    )
    company["documents"] = sorted(
        company.get("documents") or [], key=lambda d: d.get("uploaded_at") or "", reverse=True
    )
    return company


async def update_company_status(ctx, arguments: dict) -> Dict[str, Any]:
    slug = arguments["slug"]
    await ctx.store.resolve_company(slug)
    rows = await ctx.store.run(
        ctx.store.table("companies")
        .update({"status": arguments["status"], "updated_at": now_iso()})
        .eq("slug", slug),
        step=f"update company {slug}",
    )
    logger.info(f"Company {slug} status -> {arguments['status']}")
    return {"success": True, "company": rows[0] if rows else None}


async def get_portfolio_summary(ctx, arguments: dict) -> List[Dict[str, Any]]:
    """Progress per company: round(100 * done / total), 0 with no milestones."""
    companies = await ctx.store.run(
        ctx.store.table("companies").select("slug, name, status, milestones(status)").order("name"),
        step="portfolio summary",
    )
    summary = []
    for company in companies:
        done, total, percent = progress(company.get("milestones"))
        summary.append({
            "name": company.get("name"),
            "slug": company.get("slug"),
            "status": company.get("status"),
            "progress": percent,
            "milestones": f"{done}/{total}",
        })
    return summary


TOOLS = [
    ToolSpec(
        name="list_companies",
        description="List all portfolio companies with their status and progress",
        input_schema=object_schema(),
        handler=list_companies,
    ),
    ToolSpec(
        name="get_company",
        description="Get full details for a company including milestones, requirements, contacts, and recent activity",
        input_schema=object_schema({"slug": SLUG_PROPERTY}, ["slug"]),
        handler=get_company,
    ),
    ToolSpec(
        name="update_company_status",
        description="Update a company's overall status",
        input_schema=object_schema(
            {
                "slug": {"type": "string", "description": "Company slug"},
                "status": {"type": "string", "enum": COMPANY_STATUSES, "description": "New status"},
            },
            ["slug", "status"],
        ),
        handler=update_company_status,
    ),
    ToolSpec(
        name="get_portfolio_summary",
        description="Get high-level summary of all companies with progress percentages",
        input_schema=object_schema(),
        handler=get_portfolio_summary,
    ),
]
