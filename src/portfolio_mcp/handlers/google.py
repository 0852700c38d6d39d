"""Google Calendar and Gmail tools."""

from typing import Any, Dict

from portfolio_mcp.registry import ToolSpec, object_schema


async def list_calendar_events(ctx, arguments: dict) -> Dict[str, Any]:
    events = await ctx.google.list_events(
        days_ahead=arguments.get("days_ahead", 7),
        max_results=arguments.get("max_results", 20),
        calendar_id=arguments.get("calendar_id", "primary"),
    )
    return {"count": len(events), "events": events}


async def create_calendar_event(ctx, arguments: dict) -> Dict[str, Any]:
    event = await ctx.google.create_event(
        arguments["summary"],
        arguments["start"],
        arguments["end"],
        description=arguments.get("description"),
        location=arguments.get("location"),
        attendees=arguments.get("attendees"),
        timezone_name=arguments.get("timezone"),
    )
    return {"success": True, "event": event}


async def search_emails(ctx, arguments: dict) -> Dict[str, Any]:
    messages = await ctx.google.search_messages(
        query=arguments.get("query", ""),
        max_results=arguments.get("max_results", 10),
    )
    return {"count": len(messages), "messages": messages}


async def get_email(ctx, arguments: dict) -> Dict[str, Any]:
    return await ctx.google.get_message(arguments["message_id"])


TOOLS = [
    ToolSpec(
        name="list_calendar_events",
        description="List upcoming Google Calendar events",
        input_schema=object_schema(
            {
                "days_ahead": {"type": "integer", "minimum": 1, "maximum": 365, "description": "How many days ahead to look (default: 7)"},
                "max_results": {"type": "integer", "minimum": 1, "maximum": 250, "description": "Maximum events to return (default: 20)"},
                "calendar_id": {"type": "string", "description": "Calendar ID (default: primary)"},
            }
        ),
        handler=list_calendar_events,
    ),
    ToolSpec(
        name="create_calendar_event",
        description="Create a Google Calendar event and invite attendees",
        input_schema=object_schema(
            {
                "summary": {"type": "string", "description": "Event title"},
                "start": {"type": "string", "description": "Start (ISO datetime, or YYYY-MM-DD for all-day)"},
                "end": {"type": "string", "description": "End (ISO datetime, or YYYY-MM-DD for all-day)"},
                "description": {"type": "string", "description": "Event description"},
                "location": {"type": "string", "description": "Location or meeting link"},
                "attendees": {"type": "array", "items": {"type": "string"}, "description": "Attendee email addresses"},
                "timezone": {"type": "string", "description": "IANA time zone, e.g. America/New_York"},
            },
            ["summary", "start", "end"],
        ),
        handler=create_calendar_event,
    ),
    ToolSpec(
        name="search_emails",
        description="Search Gmail using Gmail search syntax (e.g. 'from:alice newer_than:7d')",
        input_schema=object_schema(
            {
                "query": {"type": "string", "description": "Gmail search query"},
                "max_results": {"type": "integer", "minimum": 1, "maximum": 100, "description": "Maximum messages (default: 10)"},
            }
        ),
        handler=search_emails,
    ),
    ToolSpec(
        name="get_email",
        description="Read a Gmail message's headers and plain-text body",
        input_schema=object_schema(
            {"message_id": {"type": "string", "description": "Gmail message ID from search_emails"}},
            ["message_id"],
        ),
        handler=get_email,
    ),
]
