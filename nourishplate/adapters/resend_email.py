"""Resend email adapter — implements EmailPort over the Resend HTTP API.

One POST per message, bearer credential, no retries.
"""

from __future__ import annotations

import logging

import httpx

from nourishplate.core.errors import UpstreamError
from nourishplate.ports.email_port import EmailMessage

logger = logging.getLogger(__name__)

_RESEND_EMAILS_URL = "https://api.resend.com/emails"


class ResendEmailAdapter:
    """Resend implementation of EmailPort."""

    def __init__(self, api_key: str, timeout: float = 15) -> None:
        if not api_key:
            raise ValueError("Resend API key is required")
        self._api_key = api_key
        self._timeout = timeout

    @staticmethod
    def _payload(message: EmailMessage) -> dict:
        payload = {
            "from": message.sender,
            "to": list(message.to),
            "subject": message.subject,
            "html": message.html,
            "text": message.text,
        }
        if message.reply_to:
            payload["reply_to"] = message.reply_to
        return payload

    async def send(self, message: EmailMessage) -> str:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            resp = await client.post(
                _RESEND_EMAILS_URL,
                json=self._payload(message),
                headers={"Authorization": f"Bearer {self._api_key}"},
            )

        try:
            data = resp.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if not resp.is_success:
            logger.warning(
                "Resend rejected email to %s: %s %s",
                message.to, resp.status_code, data.get("message"),
            )
            raise UpstreamError(
                data.get("message") or "Failed to send email",
                upstream_status=resp.status_code,
            )

        return data.get("id", "")
