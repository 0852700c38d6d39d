"""
Store access for portfolio-mcp.

Thin wrapper around a supabase client. Queries are built with the regular
PostgREST builder (``store.table("milestones").select("*").eq(...)``) and
executed through ``Store.run`` which moves the blocking call to a worker
thread and turns upstream failures into UpstreamError with the failing step.

Usage:
    store = Store(create_client(url, key))
    company = await store.resolve_company("dtiq")
    rows = await store.run(
        store.table("milestones").select("*").eq("company_id", company["id"]),
        step="list milestones",
    )
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from postgrest.exceptions import APIError
from supabase import Client, create_client

from portfolio_mcp.errors import NotFoundError, UpstreamError

logger = logging.getLogger(__name__)


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


class Store:
    """Query/update interface over the external relational store."""

    def __init__(self, client: Client):
        self.client = client

    @classmethod
    def connect(cls, url: str, key: str) -> "Store":
        """Create a store backed by a new supabase client."""
        client = create_client(url, key)
        logger.info(f"Supabase client initialized: {url}")
        return cls(client)

    def table(self, name: str):
        """Start a query builder on a table."""
        return self.client.table(name)

    async def run(self, query, step: str) -> List[Dict[str, Any]]:
        """
        Execute a query builder and return its rows.

        Args:
            query: PostgREST request builder, ready to execute
            step: Short description of the operation, used in error messages

        Returns:
            list: Rows returned by the store (empty list when none)

        Raises:
            UpstreamError: If the store rejects the query or is unreachable
        """
        try:
            response = await asyncio.to_thread(query.execute)
        except APIError as e:
            detail = getattr(e, "message", None) or str(e)
            logger.warning(f"Store error during '{step}': {detail}")
            raise UpstreamError(f"{step} failed: {detail}", step=step) from e
        except Exception as e:
            logger.warning(f"Store unreachable during '{step}': {e}")
            raise UpstreamError(f"{step} failed: {e}", step=step) from e

        data = response.data if response is not None else None
        if data is None:
            return []
        if isinstance(data, dict):
            return [data]
        return list(data)

    async def first(self, query, step: str) -> Optional[Dict[str, Any]]:
        """Execute a query and return its first row, or None."""
        rows = await self.run(query, step)
        return rows[0] if rows else None

    async def resolve_company(self, slug: str, columns: str = "id") -> Dict[str, Any]:
        """
        Look up a company by slug.

        Every child-entity handler calls this before acting so that a bad slug
        is reported as NotFoundError rather than as a store failure.

        Raises:
            NotFoundError: If no company has this slug
        """
        company = await self.first(
            self.table("companies").select(columns).eq("slug", slug).limit(1),
            step=f"resolve company {slug}",
        )
        if not company:
            raise NotFoundError(f"Company not found: {slug}")
        return company

    async def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        """
        Upload bytes to a storage bucket and return the object's public URL.

        Raises:
            UpstreamError: If the storage service rejects the upload
        """
        try:
            storage = self.client.storage.from_(bucket)
            await asyncio.to_thread(
                storage.upload,
                path,
                data,
                {"content-type": content_type, "upsert": "false"},
            )
            return storage.get_public_url(path)
        except Exception as e:
            logger.warning(f"Storage upload failed for {bucket}/{path}: {e}")
            raise UpstreamError(f"upload {path} failed: {e}", step="upload") from e
