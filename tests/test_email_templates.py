"""Tests for nourishplate.core.email_templates — invitation rendering."""

from nourishplate.core.email_templates import invite_subject, render_invite_email
from nourishplate.core.invite_request import InviteRequest

_LINK = "https://app.nourishplate.com/family-invite?token=ZmFtLTE6YUBiLmNvbQ"


def _request(**overrides):
    fields = dict(
        inviter_name="Dana",
        inviter_email="dana@example.com",
        family_name="Smiths",
        invite_email="amit@example.com",
        role="parent",
        invite_link=_LINK,
    )
    fields.update(overrides)
    return InviteRequest(**fields)


class TestRenderInviteEmail:
    def test_subject_names_inviter(self):
        assert render_invite_email(_request()).subject == (
            "Dana invited you to join their family on NourishPlate"
        )

    def test_anonymous_inviter(self):
        email = render_invite_email(_request(inviter_name="", inviter_email=""))
        assert email.subject == "Someone invited you to join their family on NourishPlate"
        assert "Someone" in email.text
        assert "()" not in email.text
        assert "contact Someone directly" not in email.text

    def test_bodies_carry_details(self):
        email = render_invite_email(_request())
        for body in (email.html, email.text):
            assert "Dana" in body
            assert "dana@example.com" in body
            assert "Smiths" in body
            assert "parent" in body

    def test_link_appears_in_both_bodies(self):
        email = render_invite_email(_request())
        assert email.html.count(_LINK) >= 2
        assert email.text.count(_LINK) == 1

    def test_default_role_is_member(self):
        email = render_invite_email(_request(role=None))
        assert "as a member" in email.text

    def test_html_is_escaped_text_is_not(self):
        email = render_invite_email(_request(family_name="<b>Smiths & Co</b>"))
        assert "&lt;b&gt;Smiths &amp; Co&lt;/b&gt;" in email.html
        assert "<b>Smiths & Co</b>" in email.text

    def test_link_with_query_params_kept_verbatim(self):
        link = "https://x/accept?token=abc&ref=mail"
        email = render_invite_email(_request(invite_link=link))
        assert email.html.count(link) >= 2
        assert "&amp;ref" not in email.html
        assert link in email.text

    def test_non_http_link_stays_escaped(self):
        email = render_invite_email(_request(invite_link="javascript:alert(1)&x"))
        assert "javascript:alert(1)&amp;x" in email.html
        assert "javascript:alert(1)&x" not in email.html

    def test_link_with_quote_stays_escaped(self):
        email = render_invite_email(_request(invite_link='https://x/a?t=1" onclick="y'))
        assert 'onclick="y' not in email.html
        assert "&#34;" in email.html

    def test_deterministic(self):
        assert render_invite_email(_request()) == render_invite_email(_request())


def test_invite_subject_empty_name():
    assert invite_subject("").startswith("Someone ")
