"""
NourishPlate — Invitation Token Codec.

An invite token is the URL-safe base64 of "<family_id>:<email>" with the
padding stripped. Decoding also accepts the standard alphabet and padded
tokens that older links were issued with.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from urllib.parse import urlencode

from nourishplate.core.errors import InvalidToken

logger = logging.getLogger(__name__)

TOKEN_DELIMITER = ":"


@dataclass(frozen=True)
class InviteTokenPayload:
    family_id: str
    email: str


def encode_invite_token(family_id: str, email: str) -> str:
    """Encode a family id + email pair into an opaque URL-safe token."""
    for label, part in (("family_id", family_id), ("email", email)):
        if not part:
            raise ValueError(f"{label} must not be empty")
        if TOKEN_DELIMITER in part:
            raise ValueError(f"{label} must not contain {TOKEN_DELIMITER!r}")

    raw = f"{family_id}{TOKEN_DELIMITER}{email}".encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_invite_token(token: str) -> InviteTokenPayload:
    """Decode a token back into its family id and email.

    Raises:
        InvalidToken: for anything that is not exactly two non-empty parts.
    """
    if not token or not token.strip():
        raise InvalidToken("Invitation token is empty")

    token = token.strip()
    padded = token + "=" * (-len(token) % 4)
    try:
        decoded = base64.b64decode(padded, altchars=b"-_", validate=True).decode("utf-8")
    except (binascii.Error, ValueError) as exc:
        logger.info("Rejected undecodable invite token: %s", exc)
        raise InvalidToken("Invitation token could not be decoded") from exc

    parts = decoded.split(TOKEN_DELIMITER)
    if len(parts) != 2 or not all(p.strip() for p in parts):
        raise InvalidToken("Invalid token format")

    family_id, email = (p.strip() for p in parts)
    return InviteTokenPayload(family_id=family_id, email=email)


def build_invite_link(
    base_url: str, family_id: str, email: str, path: str = "/family-invite",
) -> str:
    """Return the link a recipient follows to accept an invitation."""
    token = encode_invite_token(family_id, email)
    return f"{base_url.rstrip('/')}{path}?{urlencode({'token': token})}"
