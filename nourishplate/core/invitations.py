"""
NourishPlate — Family Invitation Workflow.

Creating an invitation records a pending membership and emails the invitee a
tokenized link. Following the link loads the invitation; accepting it moves
the membership from pending to accepted and links the invitee's profile to
the family. Invitations are single-use.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING
from urllib.parse import urlencode

from nourishplate.core.email_dispatcher import EmailSendResult
from nourishplate.core.email_templates import ANONYMOUS_INVITER
from nourishplate.core.errors import (
    AuthRequired,
    InvalidToken,
    InvitationNotFound,
    UnexpectedError,
    ValidationError,
)
from nourishplate.core.invite_request import DEFAULT_ROLE, InviteRequest, is_valid_email
from nourishplate.core.invite_token import (
    TOKEN_DELIMITER,
    build_invite_link,
    decode_invite_token,
)

if TYPE_CHECKING:
    from nourishplate.core.email_dispatcher import EmailDispatcher
    from nourishplate.data.db import FamilyDB

logger = logging.getLogger(__name__)

INVITE_PATH = "/family-invite"
SIGN_IN_PATH = "/auth"


@dataclass(frozen=True)
class SignedInUser:
    """Identity of the caller as vouched for by the auth gateway."""

    user_id: str
    email: str
    full_name: str | None = None


@dataclass(frozen=True)
class InvitationDetails:
    family_id: str
    family_name: str
    inviter_name: str
    role: str
    email: str
    member_id: str

    def to_response(self) -> dict:
        return {
            "familyId": self.family_id,
            "familyName": self.family_name,
            "inviterName": self.inviter_name,
            "role": self.role,
            "email": self.email,
        }


class AcceptanceStatus(str, Enum):
    ACCEPTED = "accepted"
    DECLINED = "declined"
    SIGN_IN_REQUIRED = "sign_in_required"
    INVALID_TOKEN = "invalid_token"
    NOT_FOUND = "not_found"
    EMAIL_MISMATCH = "email_mismatch"
    ERROR = "error"


_HTTP_STATUS = {
    AcceptanceStatus.ACCEPTED: 200,
    AcceptanceStatus.DECLINED: 200,
    AcceptanceStatus.SIGN_IN_REQUIRED: 401,
    AcceptanceStatus.INVALID_TOKEN: 400,
    AcceptanceStatus.NOT_FOUND: 404,
    AcceptanceStatus.EMAIL_MISMATCH: 403,
    AcceptanceStatus.ERROR: 500,
}


@dataclass(frozen=True)
class AcceptanceOutcome:
    status: AcceptanceStatus
    message: str
    redirect_to: str | None = None

    @property
    def success(self) -> bool:
        return self.status in (AcceptanceStatus.ACCEPTED, AcceptanceStatus.DECLINED)

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self.status]

    def to_response(self) -> dict:
        return {
            "success": self.success,
            "status": self.status.value,
            "message": self.message,
            "redirectTo": self.redirect_to,
        }


_INVALID_LINK = AcceptanceOutcome(
    AcceptanceStatus.INVALID_TOKEN,
    "Invalid invitation link. Please check the link and try again.",
    "/",
)
_NOT_AVAILABLE = AcceptanceOutcome(
    AcceptanceStatus.NOT_FOUND,
    "This invitation is no longer available.",
    "/",
)


def _require_user(user: SignedInUser | None) -> SignedInUser:
    if user is None or not user.user_id:
        raise AuthRequired("Sign in to continue")
    return user


def sign_in_redirect(email: str, token: str) -> str:
    """Sign-in URL that brings the user back to the invitation afterwards."""
    back_to = f"{INVITE_PATH}?{urlencode({'token': token})}"
    return f"{SIGN_IN_PATH}?{urlencode({'email': email, 'redirect': back_to})}"


class InvitationService:
    """Sends, loads, accepts and declines family invitations."""

    def __init__(
        self,
        family_db: FamilyDB,
        dispatcher: EmailDispatcher | None = None,
        base_url: str | None = None,
    ) -> None:
        if base_url is None:
            from nourishplate.config import settings
            base_url = settings.APP_BASE_URL
        self._db = family_db
        self._dispatcher = dispatcher
        self._base_url = base_url.rstrip("/")

    @property
    def dispatcher(self) -> EmailDispatcher:
        if self._dispatcher is None:
            from nourishplate.core.email_dispatcher import EmailDispatcher
            self._dispatcher = EmailDispatcher()
        return self._dispatcher

    def _inviter_name(self, user_id: str | None) -> str:
        if not user_id:
            return ANONYMOUS_INVITER
        profile = self._db.get_profile(user_id)
        return (profile.full_name if profile else None) or ANONYMOUS_INVITER

    # --- Sending ---

    async def send_invitation(
        self,
        family_id: str,
        inviter: SignedInUser | None,
        invite_email: str,
        role: str = DEFAULT_ROLE,
    ) -> EmailSendResult:
        """Record a pending membership for `invite_email` and email them the link."""
        try:
            inviter = _require_user(inviter)
            invite_email = (invite_email or "").strip()
            if not invite_email:
                raise ValidationError("Missing required fields: inviteEmail is required")
            if not is_valid_email(invite_email) or TOKEN_DELIMITER in invite_email:
                raise ValidationError("Invalid email format")

            family = self._db.get_family(family_id)
            profile = self._db.get_profile(inviter.user_id)
            # Only members can invite; outsiders see the same error as a missing family
            if family is None or profile is None or profile.family_id != family_id:
                raise InvitationNotFound("Family not found")
        except (AuthRequired, ValidationError, InvitationNotFound) as exc:
            logger.warning("Rejected invitation to family %s: %s", family_id, exc)
            return EmailSendResult.failed(exc)

        try:
            # Link first so a bad address never leaves a pending row behind
            invite_link = build_invite_link(
                self._base_url, family_id, invite_email.lower(), INVITE_PATH,
            )
            member = self._db.add_pending_member(
                family_id, invite_email, role=role or DEFAULT_ROLE, invited_by=inviter.user_id,
            )
            request = InviteRequest(
                inviter_name=inviter.full_name or profile.full_name or ANONYMOUS_INVITER,
                inviter_email=inviter.email,
                family_name=family.name,
                invite_email=invite_email,
                role=member.role,
                invite_link=invite_link,
            )
        except Exception as exc:
            logger.error("Error creating invitation for family %s: %s", family_id, exc)
            return EmailSendResult.failed(UnexpectedError(str(exc)))
        return await self.dispatcher.send_invite(request)

    # --- Following the link ---

    def load_invitation(self, token: str) -> InvitationDetails:
        """Resolve a token to the pending invitation it points at.

        Raises:
            InvalidToken: the token does not decode.
            InvitationNotFound: no such family, or no pending membership for the email.
        """
        payload = decode_invite_token(token)

        family = self._db.get_family(payload.family_id)
        if family is None:
            raise InvitationNotFound("Family not found")
        member = self._db.get_pending_member(payload.family_id, payload.email)
        if member is None:
            raise InvitationNotFound("No pending invitation for this address")

        return InvitationDetails(
            family_id=family.id,
            family_name=family.name or "Family",
            inviter_name=self._inviter_name(member.invited_by or family.created_by),
            role=member.role or DEFAULT_ROLE,
            email=member.email,
            member_id=member.id,
        )

    def _lookup(self, token: str) -> InvitationDetails | AcceptanceOutcome:
        try:
            return self.load_invitation(token)
        except InvalidToken as exc:
            logger.info("Invitation link rejected: %s", exc)
            return _INVALID_LINK
        except InvitationNotFound as exc:
            logger.info("Invitation not available: %s", exc)
            return _NOT_AVAILABLE

    def accept_invitation(
        self, token: str, user: SignedInUser | None,
    ) -> AcceptanceOutcome:
        """Accept the invitation behind `token` on behalf of `user`."""
        details = self._lookup(token)
        if isinstance(details, AcceptanceOutcome):
            return details

        try:
            user = _require_user(user)
        except AuthRequired:
            return AcceptanceOutcome(
                AcceptanceStatus.SIGN_IN_REQUIRED,
                "Please sign in to accept this invitation.",
                sign_in_redirect(details.email, token),
            )

        if user.email.strip().lower() != details.email:
            logger.warning(
                "User %s tried to accept an invitation addressed to %s",
                user.user_id, details.email,
            )
            return AcceptanceOutcome(
                AcceptanceStatus.EMAIL_MISMATCH,
                f"This invitation is for {details.email}. "
                "Please log in with the correct email address.",
            )

        try:
            self._db.accept_membership(
                details.member_id, user.user_id, user.email, full_name=user.full_name,
            )
        except InvitationNotFound as exc:
            logger.info("Invitation already used: %s", exc)
            return _NOT_AVAILABLE
        except sqlite3.Error as exc:
            logger.error("Error accepting invite %s: %s", details.member_id, exc)
            return AcceptanceOutcome(
                AcceptanceStatus.ERROR, "Failed to accept invitation. Please try again.",
            )

        return AcceptanceOutcome(
            AcceptanceStatus.ACCEPTED,
            f"You've successfully joined {details.family_name}.",
            "/family",
        )

    def decline_invitation(self, token: str) -> AcceptanceOutcome:
        details = self._lookup(token)
        if isinstance(details, AcceptanceOutcome):
            return details

        try:
            declined = self._db.decline_membership(details.member_id)
        except sqlite3.Error as exc:
            logger.error("Error declining invite %s: %s", details.member_id, exc)
            return AcceptanceOutcome(AcceptanceStatus.ERROR, "Failed to decline invitation.")

        if not declined:
            return _NOT_AVAILABLE
        return AcceptanceOutcome(
            AcceptanceStatus.DECLINED, "You have declined the family invitation.", "/",
        )
