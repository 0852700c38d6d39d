"""Outbound email tools."""

import logging
from datetime import datetime
from typing import Any, Dict

from portfolio_mcp.handlers.activity import log_activity
from portfolio_mcp.registry import ToolSpec, object_schema
from portfolio_mcp.report import default_subject, render_portfolio_update

logger = logging.getLogger(__name__)


async def send_email(ctx, arguments: dict) -> Dict[str, Any]:
    to = arguments["to"]
    await ctx.mailer.send(to, arguments["subject"], arguments["body"])
    return {"success": True, "message": f"Email sent to {to}"}


async def send_project_update(ctx, arguments: dict) -> Dict[str, Any]:
    """
    Render and send the portfolio update, then log it.

    Every successful send appends one global (company-less) email activity
    row naming the recipient.
    """
    ctx.mailer.require_configured()

    to = arguments["to"]
    include_details = bool(arguments.get("include_details", False))

    companies = await ctx.store.run(
        ctx.store.table("companies")
        .select("slug, name, status, description, milestones(title, status, order_index), requirements(item, status)")
        .order("name"),
        step="load portfolio for update",
    )

    now = datetime.now()
    subject = arguments.get("subject") or default_subject(now)
    html = render_portfolio_update(companies, now, include_details=include_details)

    await ctx.mailer.send(to, subject, html)

    detail = " (with details)" if include_details else ""
    await log_activity(ctx, None, f"Sent portfolio update to {to}{detail}", "email")
    logger.info(f"Portfolio update sent to {to} ({len(companies)} companies)")

    return {"success": True, "message": f"Portfolio update sent to {to}", "subject": subject}


TOOLS = [
    ToolSpec(
        name="send_email",
        description="Send an email",
        input_schema=object_schema(
            {
                "to": {"type": "string", "description": "Recipient email address"},
                "subject": {"type": "string", "description": "Email subject line"},
                "body": {"type": "string", "description": "Email body (HTML supported)"},
            },
            ["to", "subject", "body"],
        ),
        handler=send_email,
    ),
    ToolSpec(
        name="send_project_update",
        description="Generate and send a portfolio status update email. Automatically pulls current data and formats it nicely.",
        input_schema=object_schema(
            {
                "to": {"type": "string", "description": "Recipient email address"},
                "subject": {"type": "string", "description": "Email subject (optional, will generate default)"},
                "include_details": {"type": "boolean", "description": "Include detailed milestones and requirements (default: false)"},
            },
            ["to"],
        ),
        handler=send_project_update,
    ),
]
