"""
Environment configuration for portfolio-mcp.

Loads environment variables from:
1. The .env file named by PORTFOLIO_MCP_ENV_FILE (default: ./.env), if it exists
2. System environment variables (which override .env values)

Settings.from_env() collects everything the server needs in one place.
Credentials for optional integrations (mail, Google, completion API) may be
absent; the tools that need them raise ConfigurationError at call time.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from portfolio_mcp.errors import ConfigurationError

# Path to the .env file
ENV_FILE = Path(os.environ.get("PORTFOLIO_MCP_ENV_FILE", ".env"))

DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_PORT = 3000


def load_env_file(path: Optional[Path] = None):
    """Load environment variables from .env file if it exists."""
    env_file = path or ENV_FILE
    if not env_file.exists():
        return

    with open(env_file) as f:
        for line in f:
            line = line.strip()

            # Skip comments and empty lines
            if not line or line.startswith("#"):
                continue

            # Parse KEY=VALUE
            if "=" in line:
                key, value = line.split("=", 1)
                key = key.strip()
                value = value.strip().strip('"').strip("'")

                # Only set if not already in environment
                if key not in os.environ:
                    os.environ[key] = value


# Load .env file when module is imported
load_env_file()


def get_env(key: str, default: Optional[str] = None) -> Optional[str]:
    """Get environment variable with optional default."""
    value = os.getenv(key)
    if value is None or value == "":
        return default
    return value


def require_env(key: str) -> str:
    """Get required environment variable or raise ConfigurationError."""
    value = get_env(key)
    if value is None:
        raise ConfigurationError(f"{key} environment variable is required but not set")
    return value


def get_int_env(key: str, default: int) -> int:
    """Get integer environment variable, falling back to default."""
    value = get_env(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer, got {value!r}")


@dataclass
class Settings:
    """Resolved configuration for one server process."""
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    storage_bucket: str = "documents"
    anthropic_api_key: Optional[str] = None
    anthropic_model: str = DEFAULT_MODEL
    agent_max_rounds: int = 10
    gmail_user: Optional[str] = None
    gmail_app_password: Optional[str] = None
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    google_client_id: Optional[str] = None
    google_client_secret: Optional[str] = None
    google_refresh_token: Optional[str] = None
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    sentry_dsn: Optional[str] = None
    sentry_environment: str = "development"
    sentry_release: str = "portfolio-mcp@1.0.0"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the current environment."""
        return cls(
            supabase_url=get_env("SUPABASE_URL"),
            supabase_key=get_env("SUPABASE_KEY"),
            storage_bucket=get_env("SUPABASE_STORAGE_BUCKET", "documents"),
            anthropic_api_key=get_env("ANTHROPIC_API_KEY"),
            anthropic_model=get_env("ANTHROPIC_MODEL", DEFAULT_MODEL),
            agent_max_rounds=get_int_env("AGENT_MAX_ROUNDS", 10),
            gmail_user=get_env("GMAIL_USER"),
            gmail_app_password=get_env("GMAIL_APP_PASSWORD"),
            smtp_host=get_env("SMTP_HOST", "smtp.gmail.com"),
            smtp_port=get_int_env("SMTP_PORT", 587),
            google_client_id=get_env("GOOGLE_CLIENT_ID"),
            google_client_secret=get_env("GOOGLE_CLIENT_SECRET"),
            google_refresh_token=get_env("GOOGLE_REFRESH_TOKEN"),
            host=get_env("MCP_HTTP_HOST", "0.0.0.0"),
            port=get_int_env("PORT", get_int_env("MCP_HTTP_PORT", DEFAULT_PORT)),
            sentry_dsn=get_env("SENTRY_DSN"),
            sentry_environment=get_env("SENTRY_ENVIRONMENT", "development"),
            sentry_release=get_env("SENTRY_RELEASE", "portfolio-mcp@1.0.0"),
        )

    @property
    def llm_configured(self) -> bool:
        return bool(self.anthropic_api_key)
