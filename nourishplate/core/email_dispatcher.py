"""
NourishPlate — Transactional Email Dispatcher.

Validates, renders and sends family invitations through an EmailPort.
Every call ends in an EmailSendResult; no exception leaves this module.
A single attempt is made per call, so calling twice sends two emails.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from nourishplate.core.email_templates import render_invite_email
from nourishplate.core.errors import UnexpectedError, UpstreamError, ValidationError
from nourishplate.core.invite_request import InviteRequest, is_valid_email
from nourishplate.ports.email_port import EmailMessage

if TYPE_CHECKING:
    from nourishplate.ports.email_port import EmailPort

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Sender profiles
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SenderProfile:
    """Who an email comes from and where replies go."""

    name: str
    from_address: str
    reply_to_inviter: bool = True
    default_reply_to: str | None = None

    def reply_to(self, inviter_email: str) -> str | None:
        if self.reply_to_inviter and inviter_email:
            return inviter_email
        return self.default_reply_to


SENDER_PROFILES: dict[str, SenderProfile] = {
    "nourishplate": SenderProfile(
        name="nourishplate",
        from_address="NourishPlate <noreply@nourishplate.com>",
        reply_to_inviter=True,
        default_reply_to="noreply@nourishplate.com",
    ),
    # Resend's shared test domain; only delivers to the account owner
    "resend-sandbox": SenderProfile(
        name="resend-sandbox",
        from_address="NourishPlate <onboarding@resend.dev>",
        reply_to_inviter=False,
    ),
}


def get_sender_profile(name: str | None = None) -> SenderProfile:
    """Return the named sender profile, defaulting to EMAIL_SENDER_PROFILE."""
    if name is None:
        from nourishplate.config import settings
        name = settings.EMAIL_SENDER_PROFILE

    profile = SENDER_PROFILES.get(name.lower())
    if profile is None:
        raise ValueError(
            f"Unknown EMAIL_SENDER_PROFILE={name!r}. "
            f"Supported: {', '.join(SENDER_PROFILES)}"
        )
    return profile


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------


@dataclass
class EmailSendResult:
    success: bool
    message_id: str | None = None
    error: str | None = None
    status_code: int = 200

    @classmethod
    def failed(cls, exc: Exception) -> EmailSendResult:
        status = getattr(exc, "status_code", UnexpectedError.status_code)
        return cls(success=False, error=str(exc) or "Internal server error", status_code=status)

    def to_response(self) -> dict:
        if self.success:
            return {
                "success": True,
                "messageId": self.message_id,
                "message": "Email sent successfully",
            }
        return {"success": False, "error": self.error}


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class EmailDispatcher:
    """Sends invitation emails through the configured provider."""

    def __init__(
        self,
        email_port: EmailPort | None = None,
        sender: SenderProfile | None = None,
    ) -> None:
        if email_port is None:
            from nourishplate.adapters.email_factory import create_email_adapter
            email_port = create_email_adapter()
        self._port = email_port
        self._sender = sender or get_sender_profile()

    @property
    def sender(self) -> SenderProfile:
        return self._sender

    def build_message(self, request: InviteRequest) -> EmailMessage:
        rendered = render_invite_email(request)
        return EmailMessage(
            sender=self._sender.from_address,
            to=[request.invite_email],
            subject=rendered.subject,
            html=rendered.html,
            text=rendered.text,
            reply_to=self._sender.reply_to(request.inviter_email),
        )

    async def send_invite(self, payload: InviteRequest | dict) -> EmailSendResult:
        """Validate, render and send one family invitation."""
        try:
            if isinstance(payload, InviteRequest):
                payload.check()
                request = payload
            else:
                request = InviteRequest.from_payload(payload)
        except ValidationError as exc:
            logger.warning("Rejected invite request: %s", exc)
            return EmailSendResult.failed(exc)

        logger.info("Sending family invite email to %s", request.invite_email)
        return await self._deliver(self.build_message(request))

    async def send_rendered(
        self,
        to: str,
        subject: str,
        html: str,
        text: str,
        reply_to: str | None = None,
    ) -> EmailSendResult:
        """Send an already rendered email from the configured sender."""
        if not is_valid_email(to):
            return EmailSendResult.failed(ValidationError("Invalid email format"))
        if not subject or not (html or text):
            return EmailSendResult.failed(
                ValidationError("Missing required fields: subject and a body are required")
            )

        message = EmailMessage(
            sender=self._sender.from_address,
            to=[to],
            subject=subject,
            html=html,
            text=text,
            reply_to=reply_to or self._sender.default_reply_to,
        )
        return await self._deliver(message)

    async def _deliver(self, message: EmailMessage) -> EmailSendResult:
        try:
            message_id = await self._port.send(message)
        except UpstreamError as exc:
            return EmailSendResult.failed(exc)
        except Exception as exc:
            logger.error("Unexpected error sending email to %s: %s", message.to, exc)
            return EmailSendResult.failed(UnexpectedError(str(exc)))

        logger.info("Email sent to %s (id=%s)", message.to, message_id)
        return EmailSendResult(success=True, message_id=message_id)
