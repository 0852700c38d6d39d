"""
Explicit dependencies for tool handlers.

Every handler receives a ToolContext instead of reaching for module-level
clients. build_context() creates the clients from Settings at startup and
aclose() releases them on shutdown.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

import httpx

from portfolio_mcp.env_config import Settings
from portfolio_mcp.errors import ConfigurationError
from portfolio_mcp.google_client import GoogleClient
from portfolio_mcp.mailer import Mailer
from portfolio_mcp.store import Store

logger = logging.getLogger(__name__)


@dataclass
class ToolContext:
    """Clients and settings shared by all handlers for one process."""
    store: Store
    mailer: Mailer
    google: GoogleClient
    http: httpx.AsyncClient
    settings: Settings = field(default_factory=Settings)

    async def aclose(self):
        await self.http.aclose()
        logger.info("Tool context closed")


def build_context(settings: Settings, store: Optional[Store] = None) -> ToolContext:
    """
    Create the handler dependencies from settings.

    Args:
        settings: Resolved configuration
        store: Pre-built store (tests and the seed command pass their own)

    Raises:
        ConfigurationError: If no store was passed and SUPABASE_URL/SUPABASE_KEY are missing
    """
    if store is None:
        if not settings.supabase_url or not settings.supabase_key:
            raise ConfigurationError(
                "Store not configured. Set SUPABASE_URL and SUPABASE_KEY environment variables."
            )
        store = Store.connect(settings.supabase_url, settings.supabase_key)

    http = httpx.AsyncClient(follow_redirects=True)
    mailer = Mailer(
        settings.gmail_user,
        settings.gmail_app_password,
        host=settings.smtp_host,
        port=settings.smtp_port,
    )
    google = GoogleClient(
        http,
        settings.google_client_id,
        settings.google_client_secret,
        settings.google_refresh_token,
    )

    if not mailer.is_configured:
        logger.warning("Gmail credentials not set (email tools will fail until configured)")
    if not google.is_configured:
        logger.warning("Google OAuth credentials not set (calendar/mail tools will fail until configured)")

    return ToolContext(store=store, mailer=mailer, google=google, http=http, settings=settings)
