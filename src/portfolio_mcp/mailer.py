"""Outbound email over Gmail SMTP."""

import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from portfolio_mcp.errors import ConfigurationError, UpstreamError

logger = logging.getLogger(__name__)

NOT_CONFIGURED_MESSAGE = (
    "Email not configured. Set GMAIL_USER and GMAIL_APP_PASSWORD environment variables."
)


class Mailer:
    """Sends HTML mail from the configured Gmail account."""

    def __init__(
        self,
        user: Optional[str],
        password: Optional[str],
        host: str = "smtp.gmail.com",
        port: int = 587,
    ):
        self.user = user
        self.password = password
        self.host = host
        self.port = port

    @property
    def is_configured(self) -> bool:
        return bool(self.user and self.password)

    def require_configured(self):
        if not self.is_configured:
            raise ConfigurationError(NOT_CONFIGURED_MESSAGE)

    async def send(self, to: str, subject: str, html: str):
        """
        Send an HTML email (runs the SMTP session in a thread).

        Raises:
            ConfigurationError: If Gmail credentials are missing
            UpstreamError: If the SMTP server rejects the message
        """
        self.require_configured()

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.user
        msg["To"] = to
        msg.attach(MIMEText(html, "html"))

        try:
            await asyncio.to_thread(self._smtp_send, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {to}: {e}")
            raise UpstreamError(f"Failed to send email to {to}: {e}", step="smtp send") from e

        logger.info(f"Email sent to {to}: {subject}")

    def _smtp_send(self, msg: MIMEMultipart):
        with smtplib.SMTP(self.host, self.port, timeout=30) as server:
            server.starttls()
            server.login(self.user, self.password)
            server.send_message(msg)
