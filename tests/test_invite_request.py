"""Tests for nourishplate.core.invite_request — invite payload validation."""

import pytest

from nourishplate.core.errors import ValidationError
from nourishplate.core.invite_request import (
    MISSING_FIELDS_MESSAGE,
    InviteRequest,
    is_valid_email,
)

_VALID = {
    "inviterName": "Dana",
    "inviterEmail": "dana@example.com",
    "familyName": "Smiths",
    "inviteEmail": "amit@example.com",
    "role": "parent",
    "inviteLink": "https://app.nourishplate.com/family-invite?token=abc",
}


class TestIsValidEmail:
    @pytest.mark.parametrize("address", ["a@b.co", "first.last@sub.example.org"])
    def test_valid(self, address):
        assert is_valid_email(address)

    @pytest.mark.parametrize("address", ["", "plain", "a@b", "a b@c.com", "@b.com", "a@.com "])
    def test_invalid(self, address):
        assert not is_valid_email(address)


class TestFromPayload:
    def test_valid_payload(self):
        request = InviteRequest.from_payload(_VALID)
        assert request.invite_email == "amit@example.com"
        assert request.family_name == "Smiths"
        assert request.role == "parent"

    def test_role_defaults_to_member(self):
        payload = {**_VALID}
        del payload["role"]
        assert InviteRequest.from_payload(payload).role == "member"

    def test_blank_role_defaults_to_member(self):
        assert InviteRequest.from_payload({**_VALID, "role": "  "}).role == "member"

    def test_optional_inviter_fields(self):
        payload = {k: v for k, v in _VALID.items() if not k.startswith("inviter")}
        request = InviteRequest.from_payload(payload)
        assert request.inviter_name == ""
        assert request.inviter_email == ""

    @pytest.mark.parametrize("missing", ["inviteEmail", "familyName", "inviteLink"])
    def test_missing_required_field(self, missing):
        payload = {**_VALID, missing: ""}
        with pytest.raises(ValidationError) as exc_info:
            InviteRequest.from_payload(payload)
        assert str(exc_info.value) == MISSING_FIELDS_MESSAGE

    def test_null_required_field(self):
        with pytest.raises(ValidationError, match="Missing required fields"):
            InviteRequest.from_payload({**_VALID, "familyName": None})

    def test_bad_email(self):
        with pytest.raises(ValidationError, match="Invalid email format"):
            InviteRequest.from_payload({**_VALID, "inviteEmail": "not-an-email"})

    def test_whitespace_is_stripped(self):
        request = InviteRequest.from_payload({**_VALID, "inviteEmail": "  amit@example.com "})
        assert request.invite_email == "amit@example.com"

    def test_non_object_body(self):
        with pytest.raises(ValidationError, match="JSON object"):
            InviteRequest.from_payload(["not", "a", "dict"])

    def test_wrong_field_type(self):
        with pytest.raises(ValidationError, match="Malformed fields"):
            InviteRequest.from_payload({**_VALID, "familyName": {"nested": True}})

    def test_accepts_python_field_names(self):
        request = InviteRequest(
            family_name="Smiths", invite_email="a@b.com", invite_link="https://x.test/i",
        )
        request.check()
        assert request.role == "member"
