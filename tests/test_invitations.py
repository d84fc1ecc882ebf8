"""Tests for nourishplate.core.invitations — send, load, accept, decline."""

import sqlite3
from urllib.parse import parse_qs, urlparse

import pytest
from unittest.mock import patch

from nourishplate.core.errors import InvalidToken, InvitationNotFound
from nourishplate.core.invitations import (
    AcceptanceStatus,
    InvitationService,
    SignedInUser,
)
from nourishplate.core.invite_token import encode_invite_token
from nourishplate.data.models import MembershipStatus

_DANA = SignedInUser(user_id="u-dana", email="dana@example.com", full_name="Dana")
_AMIT = SignedInUser(user_id="u-amit", email="amit@example.com", full_name="Amit")


@pytest.fixture
def family(family_db):
    family_db.upsert_profile("u-dana", "dana@example.com", full_name="Dana")
    return family_db.create_family("Smiths", "u-dana", "dana@example.com")


@pytest.fixture
def service(family_db, dispatcher):
    return InvitationService(family_db, dispatcher, base_url="https://app.nourishplate.com")


@pytest.fixture
def token(family_db, family):
    family_db.add_pending_member(family.id, "amit@example.com", invited_by="u-dana")
    return encode_invite_token(family.id, "amit@example.com")


class TestSendInvitation:
    @pytest.mark.asyncio
    async def test_sends_email_with_decodable_link(self, service, family, family_db, log_email):
        result = await service.send_invitation(family.id, _DANA, "amit@example.com")

        assert result.success is True
        sent = log_email.sent[0]
        assert sent.to == ["amit@example.com"]
        assert sent.subject == "Dana invited you to join their family on NourishPlate"
        assert "Smiths" in sent.text
        assert family_db.get_pending_member(family.id, "amit@example.com") is not None

        link = next(w for w in sent.text.split() if w.startswith("https://app.nourishplate.com"))
        token = parse_qs(urlparse(link).query)["token"][0]
        assert service.load_invitation(token).family_name == "Smiths"

    @pytest.mark.asyncio
    async def test_resend_reuses_pending_membership(self, service, family, family_db, log_email):
        await service.send_invitation(family.id, _DANA, "amit@example.com")
        await service.send_invitation(family.id, _DANA, "amit@example.com")

        assert len(log_email.sent) == 2
        assert len(family_db.list_members(family.id)) == 2

    @pytest.mark.asyncio
    async def test_requires_signed_in_inviter(self, service, family, log_email):
        result = await service.send_invitation(family.id, None, "amit@example.com")
        assert result.status_code == 401
        assert log_email.sent == []

    @pytest.mark.asyncio
    async def test_bad_address(self, service, family, log_email):
        result = await service.send_invitation(family.id, _DANA, "amit")
        assert result.status_code == 400
        assert result.error == "Invalid email format"
        assert log_email.sent == []

    @pytest.mark.asyncio
    async def test_address_with_token_delimiter_writes_nothing(
        self, service, family, family_db, log_email,
    ):
        result = await service.send_invitation(family.id, _DANA, "a:b@c.com")

        assert result.success is False
        assert result.status_code == 400
        assert result.error == "Invalid email format"
        assert [m.email for m in family_db.list_members(family.id)] == ["dana@example.com"]
        assert log_email.sent == []

    @pytest.mark.asyncio
    async def test_storage_failure_is_500_result(self, service, family, family_db, log_email):
        with patch.object(
            family_db, "add_pending_member",
            side_effect=sqlite3.OperationalError("database is locked"),
        ):
            result = await service.send_invitation(family.id, _DANA, "amit@example.com")

        assert result.success is False
        assert result.status_code == 500
        assert result.error == "database is locked"
        assert log_email.sent == []

    @pytest.mark.asyncio
    async def test_unknown_family(self, service, log_email):
        result = await service.send_invitation("nope", _DANA, "amit@example.com")
        assert result.status_code == 404
        assert log_email.sent == []

    @pytest.mark.asyncio
    async def test_outsider_cannot_invite(self, service, family, family_db, log_email):
        family_db.upsert_profile("u-eve", "eve@example.com")
        eve = SignedInUser(user_id="u-eve", email="eve@example.com")

        result = await service.send_invitation(family.id, eve, "amit@example.com")

        assert result.status_code == 404
        assert family_db.get_pending_member(family.id, "amit@example.com") is None


class TestLoadInvitation:
    def test_details(self, service, token):
        details = service.load_invitation(token)
        assert details.family_name == "Smiths"
        assert details.inviter_name == "Dana"
        assert details.role == "member"
        assert details.email == "amit@example.com"

    def test_invalid_token(self, service):
        with pytest.raises(InvalidToken):
            service.load_invitation("garbage!!")

    def test_unknown_family(self, service):
        with pytest.raises(InvitationNotFound):
            service.load_invitation(encode_invite_token("nope", "amit@example.com"))

    def test_no_pending_membership(self, service, family):
        with pytest.raises(InvitationNotFound):
            service.load_invitation(encode_invite_token(family.id, "stranger@example.com"))


class TestAcceptInvitation:
    def test_accept(self, service, token, family, family_db):
        outcome = service.accept_invitation(token, _AMIT)

        assert outcome.status == AcceptanceStatus.ACCEPTED
        assert outcome.success is True
        assert outcome.redirect_to == "/family"
        assert "Smiths" in outcome.message
        assert family_db.get_profile("u-amit").family_id == family.id
        member = next(m for m in family_db.list_members(family.id) if m.user_id == "u-amit")
        assert member.status == MembershipStatus.ACCEPTED

    def test_email_match_is_case_insensitive(self, service, token):
        user = SignedInUser(user_id="u-amit", email="Amit@Example.com")
        assert service.accept_invitation(token, user).status == AcceptanceStatus.ACCEPTED

    def test_invalid_token_redirects_home(self, service, family_db):
        outcome = service.accept_invitation("not-a-token", _AMIT)
        assert outcome.status == AcceptanceStatus.INVALID_TOKEN
        assert outcome.redirect_to == "/"
        assert outcome.http_status == 400

    def test_signed_out_is_deferred_to_sign_in(self, service, token, family, family_db):
        outcome = service.accept_invitation(token, None)

        assert outcome.status == AcceptanceStatus.SIGN_IN_REQUIRED
        assert outcome.http_status == 401
        redirect = urlparse(outcome.redirect_to)
        assert redirect.path == "/auth"
        query = parse_qs(redirect.query)
        assert query["email"] == ["amit@example.com"]
        assert query["redirect"] == [f"/family-invite?token={token}"]
        assert family_db.get_pending_member(family.id, "amit@example.com") is not None

    def test_email_mismatch_changes_nothing(self, service, token, family, family_db):
        eve = SignedInUser(user_id="u-eve", email="eve@example.com")
        outcome = service.accept_invitation(token, eve)

        assert outcome.status == AcceptanceStatus.EMAIL_MISMATCH
        assert "amit@example.com" in outcome.message
        assert family_db.get_pending_member(family.id, "amit@example.com") is not None
        assert family_db.get_profile("u-eve") is None

    def test_accepting_twice_is_rejected(self, service, token):
        service.accept_invitation(token, _AMIT)
        outcome = service.accept_invitation(token, _AMIT)
        assert outcome.status == AcceptanceStatus.NOT_FOUND
        assert outcome.success is False

    def test_response_shape(self, service, token):
        body = service.accept_invitation(token, _AMIT).to_response()
        assert body == {
            "success": True,
            "status": "accepted",
            "message": "You've successfully joined Smiths.",
            "redirectTo": "/family",
        }


class TestDeclineInvitation:
    def test_decline(self, service, token, family, family_db):
        outcome = service.decline_invitation(token)
        assert outcome.status == AcceptanceStatus.DECLINED
        assert outcome.redirect_to == "/"
        assert family_db.get_pending_member(family.id, "amit@example.com") is None

    def test_decline_after_accept(self, service, token):
        service.accept_invitation(token, _AMIT)
        assert service.decline_invitation(token).status == AcceptanceStatus.NOT_FOUND

    def test_decline_invalid_token(self, service):
        assert service.decline_invitation("").status == AcceptanceStatus.INVALID_TOKEN
