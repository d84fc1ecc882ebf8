"""
NourishPlate — Email Template Renderer.

Pure rendering of a family invitation into subject, HTML and plain text.
HTML is autoescaped; the text body is rendered verbatim.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape
from markupsafe import Markup

from nourishplate.core.invite_request import DEFAULT_ROLE, InviteRequest

_TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"

_ENV = Environment(
    loader=FileSystemLoader(_TEMPLATES_DIR),
    autoescape=select_autoescape(["html"]),
    undefined=StrictUndefined,
)

ANONYMOUS_INVITER = "Someone"

_BENEFITS = [
    "📋 View and contribute to family meal plans",
    "👶 Access kids' nutrition profiles and preferences",
    "🛒 Collaborate on shopping lists",
    "📊 Track family nutrition goals",
    "🍳 Share cooking assignments",
]


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str
    text: str


_UNSAFE_URL_CHARS = frozenset("\"'<> \t\r\n")


def _link_markup(link: str) -> Markup | str:
    """Leave well-formed http(s) links unescaped so they survive verbatim in HTML."""
    if urlparse(link).scheme in ("http", "https") and not _UNSAFE_URL_CHARS & set(link):
        return Markup(link)
    return link


def invite_subject(inviter_name: str) -> str:
    return f"{inviter_name or ANONYMOUS_INVITER} invited you to join their family on NourishPlate"


def render_invite_email(request: InviteRequest) -> RenderedEmail:
    """Render the invitation email for a validated request."""
    context = {
        "inviter_name": request.inviter_name or ANONYMOUS_INVITER,
        "named_inviter": bool(request.inviter_name),
        "inviter_email": request.inviter_email,
        "family_name": request.family_name,
        "role": request.role or DEFAULT_ROLE,
        "invite_link": request.invite_link,
        "invite_href": _link_markup(request.invite_link),
        "benefits": _BENEFITS,
    }
    return RenderedEmail(
        subject=invite_subject(request.inviter_name),
        html=_ENV.get_template("invite_email.html").render(context).strip(),
        text=_ENV.get_template("invite_email.txt").render(context).strip(),
    )
