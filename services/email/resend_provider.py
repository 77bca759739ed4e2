# services/email/resend_provider.py
"""
Resend email provider, talking to the HTTPS API directly with httpx.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from app.core.logging import get_logger
from .base import EmailProvider

logger = get_logger().bind(module="email_resend")

RESEND_API_URL = "https://api.resend.com/emails"


class ResendEmailProvider(EmailProvider):
    def __init__(
        self,
        api_key: Optional[str] = None,
        from_email: Optional[str] = None,
        from_name: str = "FX Briefing",
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout_s: float = 10.0,
        api_url: str = RESEND_API_URL,
    ):
        super().__init__(from_email, from_name)
        self.api_key = api_key
        self.api_url = api_url
        self.timeout_s = timeout_s
        self._client = client

    def is_configured(self) -> bool:
        return bool(self.api_key and self.from_email)

    async def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        if self._client is not None:
            return await self._client.post(self.api_url, json=payload, headers=headers, timeout=self.timeout_s)
        async with httpx.AsyncClient() as client:
            return await client.post(self.api_url, json=payload, headers=headers, timeout=self.timeout_s)

    async def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: Optional[str] = None,
    ) -> str:
        """
        Send via `POST /emails`.

        Raises:
            ValueError: provider is not configured
            httpx.HTTPError: transport failure or non-2xx answer
        """
        if not self.is_configured():
            logger.warning("resend_email_not_configured", to_email=to, subject=subject)
            raise ValueError("Resend email provider is not configured")

        payload: Dict[str, Any] = {
            "from": self.sender,
            "to": [to],
            "subject": subject,
            "html": html_body,
        }
        if text_body:
            payload["text"] = text_body

        try:
            response = await self._post(payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "email_send_failed",
                to_email=to,
                subject=subject,
                status_code=e.response.status_code,
                body=e.response.text[:500],
            )
            raise
        except httpx.HTTPError as e:
            logger.error("email_send_failed", to_email=to, subject=subject, error=str(e))
            raise

        message_id = str(response.json().get("id") or "")
        logger.info("email_sent", to_email=to, subject=subject, message_id=message_id)
        return message_id
