"""
NourishPlate — Family Data Models.

Families group the people who share kids' profiles, meal plans and shopping
lists. A person joins a family through an invitation: a membership row starts
out pending and is accepted or declined by the invitee.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class MembershipStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


@dataclass
class Family:
    """A household sharing one NourishPlate workspace."""

    id: str
    name: str
    created_by: str        # user_id of the parent who created it
    created_at: str = ""


@dataclass
class FamilyMember:
    """A person's membership in a family, invited by email.

    user_id stays None until the invitee accepts while signed in.
    """

    id: str
    family_id: str
    email: str                        # lowercased
    role: str                         # "parent" | "member" | free text
    status: MembershipStatus
    user_id: str | None = None
    invited_by: str | None = None     # user_id of the inviter
    invited_at: str = ""
    accepted_at: str | None = None


@dataclass
class UserProfile:
    """The bits of a user account the family features need."""

    user_id: str
    email: str
    full_name: str | None = None
    family_id: str | None = None
