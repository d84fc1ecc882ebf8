"""Email port — abstract interface for sending transactional email.

Core modules depend on this protocol, never on a specific provider.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol


@dataclass(frozen=True)
class EmailMessage:
    """A fully rendered email ready to hand to a provider."""

    sender: str
    to: list[str] = field(default_factory=list)
    subject: str = ""
    html: str = ""
    text: str = ""
    reply_to: str | None = None


class EmailPort(Protocol):
    """Abstract email interface used by core modules.

    `send` returns the provider's message id. It raises UpstreamError when
    the provider rejects the message; transport errors propagate as-is.
    """

    async def send(self, message: EmailMessage) -> str: ...
