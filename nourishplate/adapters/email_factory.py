"""Email adapter factory — creates the right adapter based on config."""

from __future__ import annotations

from nourishplate.config import settings
from nourishplate.ports.email_port import EmailPort


def create_email_adapter() -> EmailPort:
    """Return the email adapter matching the EMAIL_PROVIDER setting."""
    provider = settings.EMAIL_PROVIDER.lower()

    if provider == "resend":
        from nourishplate.adapters.resend_email import ResendEmailAdapter

        return ResendEmailAdapter(
            api_key=settings.RESEND_API_KEY,
            timeout=settings.EMAIL_TIMEOUT_SECONDS,
        )

    if provider == "log":
        from nourishplate.adapters.log_email import LogEmailAdapter

        return LogEmailAdapter()

    raise ValueError(f"Unknown EMAIL_PROVIDER: {provider!r}")
