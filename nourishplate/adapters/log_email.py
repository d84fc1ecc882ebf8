"""Log-only email adapter — implements EmailPort without sending anything.

Used for local development (EMAIL_PROVIDER=log).
"""

from __future__ import annotations

import logging
import uuid

from nourishplate.ports.email_port import EmailMessage

logger = logging.getLogger(__name__)


class LogEmailAdapter:
    """Writes each message to the log and hands back a fake id."""

    def __init__(self) -> None:
        self.sent: list[EmailMessage] = []

    async def send(self, message: EmailMessage) -> str:
        message_id = f"log-{uuid.uuid4()}"
        self.sent.append(message)
        logger.info(
            "Email %s to %s: %s\n%s", message_id, message.to, message.subject, message.text,
        )
        return message_id
