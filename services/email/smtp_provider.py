"""
SMTP email provider implementation.
"""

from __future__ import annotations

import asyncio
import smtplib
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from app.core.logging import get_logger
from .base import EmailProvider

logger = get_logger().bind(module="email_smtp")


class SMTPEmailProvider(EmailProvider):
    """
    Email provider using plain SMTP with STARTTLS.
    """

    def __init__(
        self,
        smtp_host: Optional[str] = None,
        smtp_port: int = 587,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
        smtp_use_tls: bool = True,
        from_email: Optional[str] = None,
        from_name: str = "FX Briefing",
    ):
        super().__init__(from_email or smtp_user, from_name)
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls

    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_user and self.smtp_password and self.from_email)

    def _build_message(self, to: str, subject: str, html_body: str, text_body: Optional[str]) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to
        if text_body:
            msg.attach(MIMEText(text_body, "plain", "utf-8"))
        msg.attach(MIMEText(html_body, "html", "utf-8"))
        return msg

    def _deliver(self, msg: MIMEMultipart) -> None:
        with smtplib.SMTP(self.smtp_host, self.smtp_port) as server:
            if self.smtp_use_tls:
                server.starttls()
            server.login(self.smtp_user, self.smtp_password)
            server.send_message(msg)

    async def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: Optional[str] = None,
    ) -> str:
        if not self.is_configured():
            logger.warning("email_not_configured", to_email=to, subject=subject)
            raise ValueError("SMTP email provider is not configured")

        msg = self._build_message(to, subject, html_body, text_body)
        try:
            # smtplib blocks; keep it off the event loop.
            await asyncio.to_thread(self._deliver, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(
                "email_send_failed",
                to_email=to,
                subject=subject,
                error=str(e),
                exc_info=True,
            )
            raise

        message_id = f"smtp-{datetime.now(timezone.utc).timestamp()}"
        logger.info("email_sent", to_email=to, subject=subject, message_id=message_id)
        return message_id
