"""Contact tools."""

from typing import Any, Dict, List

from portfolio_mcp.registry import ToolSpec, object_schema

CONTACT_FIELDS = ("name", "role", "email", "phone", "is_primary", "notes")


async def add_contact(ctx, arguments: dict) -> Dict[str, Any]:
    company = await ctx.store.resolve_company(arguments["slug"])
    row = {"company_id": company["id"]}
    row.update({field: arguments[field] for field in CONTACT_FIELDS if field in arguments})
    rows = await ctx.store.run(ctx.store.table("contacts").insert(row), step="insert contact")
    return {"success": True, "contact": rows[0] if rows else None}


async def list_contacts(ctx, arguments: dict) -> List[Dict[str, Any]]:
    company = await ctx.store.resolve_company(arguments["slug"])
    return await ctx.store.run(
        ctx.store.table("contacts")
        .select("*")
        .eq("company_id", company["id"])
        .order("is_primary", desc=True)
        .order("name"),
        step="list contacts",
    )


TOOLS = [
    ToolSpec(
        name="add_contact",
        description="Add a contact person for a company",
        input_schema=object_schema(
            {
                "slug": {"type": "string", "description": "Company slug"},
                "name": {"type": "string", "description": "Contact name"},
                "role": {"type": "string", "description": "Role/title"},
                "email": {"type": "string", "description": "Email address"},
                "phone": {"type": "string", "description": "Phone number"},
                "is_primary": {"type": "boolean", "description": "Primary contact for the company"},
                "notes": {"type": "string", "description": "Optional notes"},
            },
            ["slug", "name"],
        ),
        handler=add_contact,
    ),
    ToolSpec(
        name="list_contacts",
        description="List all contacts for a company",
        input_schema=object_schema({"slug": {"type": "string", "description": "Company slug"}}, ["slug"]),
        handler=list_contacts,
    ),
]
