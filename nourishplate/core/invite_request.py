"""
NourishPlate — Invite request contract.

The JSON body the invite endpoint accepts, and the checks that must pass
before anything is rendered or sent.
"""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from nourishplate.core.errors import ValidationError

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

DEFAULT_ROLE = "member"
MISSING_FIELDS_MESSAGE = (
    "Missing required fields: inviteEmail, familyName, and inviteLink are required"
)


def is_valid_email(address: str) -> bool:
    return bool(address) and _EMAIL_PATTERN.match(address) is not None


class InviteRequest(BaseModel):
    """Family invitation to be emailed.

    JSON example:
    {
        "inviterName": "Dana",
        "inviterEmail": "dana@example.com",
        "familyName": "Smiths",
        "inviteEmail": "amit@example.com",
        "role": "parent",
        "inviteLink": "https://app.nourishplate.com/family-invite?token=..."
    }
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    inviter_name: str = Field("", alias="inviterName")
    inviter_email: str = Field("", alias="inviterEmail")
    family_name: str = Field("", alias="familyName")
    invite_email: str = Field("", alias="inviteEmail")
    role: str = DEFAULT_ROLE
    invite_link: str = Field("", alias="inviteLink")

    @field_validator(
        "inviter_name", "inviter_email", "family_name", "invite_email", "invite_link",
        mode="before",
    )
    @classmethod
    def none_to_empty(cls, v: str | None) -> str:
        return "" if v is None else v

    @field_validator("inviter_name", "inviter_email", "family_name", "invite_email", "invite_link")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        return v.strip()

    @field_validator("role", mode="before")
    @classmethod
    def default_role(cls, v: str | None) -> str:
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_ROLE
        return v.strip() if isinstance(v, str) else v

    @classmethod
    def from_payload(cls, payload: object) -> InviteRequest:
        """Build and check a request from a decoded JSON body.

        Raises:
            ValidationError: the body is not an object, a field has the wrong
                type, a required field is missing, or the address is malformed.
        """
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")
        try:
            request = cls.model_validate(payload)
        except PydanticValidationError as exc:
            fields = ", ".join(str(err["loc"][0]) for err in exc.errors())
            raise ValidationError(f"Malformed fields: {fields}") from exc
        request.check()
        return request

    def check(self) -> None:
        if not (self.invite_email and self.family_name and self.invite_link):
            raise ValidationError(MISSING_FIELDS_MESSAGE)
        if not is_valid_email(self.invite_email):
            raise ValidationError("Invalid email format")
