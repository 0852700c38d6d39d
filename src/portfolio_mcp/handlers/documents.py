"""
Document tools.

Documents belong to a company or, with no company, to the shared platform
library. Content is only ever fetched for text-like file types; anything else
is returned as metadata plus its URL.
"""

import base64
import binascii
import logging
import re
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import httpx

from portfolio_mcp.errors import (
    ArgumentValidationError,
    NotFoundError,
    RequestTimeoutError,
    ToolValidationError,
    UpstreamError,
)
from portfolio_mcp.handlers.activity import log_activity
from portfolio_mcp.registry import ToolSpec, object_schema

logger = logging.getLogger(__name__)

TEXT_FILE_TYPES = {"txt", "md", "markdown", "csv", "json", "html", "htm", "xml", "yaml", "yml", "log"}
MAX_CONTENT_CHARS = 50_000
FETCH_TIMEOUT = 30  # seconds


def derive_file_type(name: Optional[str], url: Optional[str] = None) -> Optional[str]:
    """Lowercase extension of the file name, or of the URL path when the name has none."""
    for candidate in (name, urlparse(url).path if url else None):
        if candidate:
            suffix = PurePosixPath(candidate).suffix
            if suffix:
                return suffix[1:].lower()
    return None


def truncate_content(text: str, limit: int = MAX_CONTENT_CHARS) -> Dict[str, Any]:
    """Cut text to limit characters, appending a marker when anything was dropped."""
    total = len(text)
    if total <= limit:
        return {"content": text, "truncated": False, "total_chars": total}
    marker = f"\n\n[... truncated, showing first {limit} of {total} characters]"
    return {"content": text[:limit] + marker, "truncated": True, "total_chars": total}


def _storage_name(filename: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]+", "_", filename).strip("_") or "file"


async def list_documents(ctx, arguments: dict) -> List[Dict[str, Any]]:
    company = await ctx.store.resolve_company(arguments["slug"])
    return await ctx.store.run(
        ctx.store.table("documents")
        .select("*")
        .eq("company_id", company["id"])
        .order("uploaded_at", desc=True),
        step="list documents",
    )


async def list_platform_documents(ctx, arguments: dict) -> List[Dict[str, Any]]:
    return await ctx.store.run(
        ctx.store.table("documents")
        .select("*")
        .is_("company_id", "null")
        .order("uploaded_at", desc=True),
        step="list platform documents",
    )


async def add_document(ctx, arguments: dict) -> Dict[str, Any]:
    """Register a document; without a slug it goes to the platform library."""
    company_id = None
    if arguments.get("slug"):
        company = await ctx.store.resolve_company(arguments["slug"])
        company_id = company["id"]

    row = {
        "company_id": company_id,
        "name": arguments["name"],
        "category": arguments.get("category"),
        "url": arguments.get("url"),
        "notes": arguments.get("notes"),
        "content_type": arguments.get("content_type"),
        "file_type": derive_file_type(arguments["name"], arguments.get("url")),
    }
    rows = await ctx.store.run(ctx.store.table("documents").insert(row), step="insert document")
    document = rows[0] if rows else None

    if company_id:
        await log_activity(ctx, company_id, f"Added document: {arguments['name']}", "document")
    return {"success": True, "document": document}


async def get_document_content(ctx, arguments: dict) -> Dict[str, Any]:
    """
    Return a document's text.

    Only TEXT_FILE_TYPES are fetched; the text is cut at MAX_CONTENT_CHARS
    with a truncation marker. Other types come back with content None and
    the URL to open instead.
    """
    document_id = arguments["document_id"]
    document = await ctx.store.first(
        ctx.store.table("documents").select("*").eq("id", document_id).limit(1),
        step=f"get document {document_id}",
    )
    if not document:
        raise NotFoundError(f"Document not found: {document_id}")

    url = document.get("url")
    file_type = document.get("file_type") or derive_file_type(document.get("name"), url)

    if file_type not in TEXT_FILE_TYPES:
        return {
            "document": document,
            "file_type": file_type,
            "content": None,
            "url": url,
            "message": f"Content is not extracted for '{file_type or 'unknown'}' files; open the URL to view it.",
        }

    if not url:
        raise ToolValidationError(f"Document {document_id} has no URL to fetch content from")

    try:
        response = await ctx.http.get(url, timeout=FETCH_TIMEOUT)
    except httpx.TimeoutException as e:
        raise RequestTimeoutError(f"Fetching {url} timed out after {FETCH_TIMEOUT}s", step="fetch document") from e
    except httpx.HTTPError as e:
        raise UpstreamError(f"Fetching {url} failed: {e}", step="fetch document") from e
    if response.status_code >= 400:
        raise UpstreamError(f"Fetching {url} failed: HTTP {response.status_code}", step="fetch document")

    result = truncate_content(response.text)
    if result["truncated"]:
        logger.info(f"Document {document_id} truncated ({result['total_chars']} chars)")
    return {"document": document, "file_type": file_type, "url": url, **result}


async def register_upload(
    ctx,
    slug: str,
    filename: str,
    content_base64: str,
    content_type: str,
    category: Optional[str] = None,
    description: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Store an uploaded file and register it as a company document.

    Returns:
        dict: {success, document, url}

    Raises:
        NotFoundError: If the company slug is unknown
        ArgumentValidationError: If content_base64 is not valid base64
        UpstreamError: If storage or the store rejects the write
    """
    company = await ctx.store.resolve_company(slug)
    try:
        data = base64.b64decode(content_base64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ArgumentValidationError(f"content_base64 is not valid base64: {e}") from e

    stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    storage_path = f"{slug}/{stamp}-{_storage_name(filename)}"
    url = await ctx.store.upload(ctx.settings.storage_bucket, storage_path, data, content_type)

    rows = await ctx.store.run(
        ctx.store.table("documents").insert({
            "company_id": company["id"],
            "name": filename,
            "category": category,
            "description": description,
            "storage_path": storage_path,
            "url": url,
            "content_type": content_type,
            "file_type": derive_file_type(filename),
        }),
        step="insert uploaded document",
    )
    await log_activity(ctx, company["id"], f"Uploaded document: {filename}", "document")
    logger.info(f"Uploaded {filename} ({len(data)} bytes) for {slug}")
    return {"success": True, "document": rows[0] if rows else None, "url": url}


TOOLS = [
    ToolSpec(
        name="list_documents",
        description="List all documents for a company",
        input_schema=object_schema({"slug": {"type": "string", "description": "Company slug"}}, ["slug"]),
        handler=list_documents,
    ),
    ToolSpec(
        name="list_platform_documents",
        description="List shared platform documents that are not tied to any company",
        input_schema=object_schema(),
        handler=list_platform_documents,
    ),
    ToolSpec(
        name="add_document",
        description="Register a document for a company, or for the shared platform library when no slug is given",
        input_schema=object_schema(
            {
                "slug": {"type": "string", "description": "Company slug (omit for a platform document)"},
                "name": {"type": "string", "description": "Document name, including its file extension"},
                "category": {"type": "string", "description": "Document category (handbook, api_docs, ticket_export, guide, etc.)"},
                "url": {"type": "string", "description": "URL of the document"},
                "notes": {"type": "string", "description": "Optional notes"},
                "content_type": {"type": "string", "description": "MIME type, e.g. text/markdown"},
            },
            ["name"],
        ),
        handler=add_document,
    ),
    ToolSpec(
        name="get_document_content",
        description=(
            "Read the text of a document. Text formats (txt, md, csv, json, html, xml, yaml, log) are "
            "returned, truncated at 50,000 characters; other formats return only metadata and a URL."
        ),
        input_schema=object_schema(
            {"document_id": {"type": "string", "description": "Document UUID"}},
            ["document_id"],
        ),
        handler=get_document_content,
    ),
]
