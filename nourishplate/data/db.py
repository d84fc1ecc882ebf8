"""
NourishPlate — Family Database.

Families, memberships and user profiles in SQLite. Accepting an invitation
touches two tables; both writes share one transaction so a failure leaves
the invitation pending and the profile untouched.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path

from nourishplate.core.errors import InvitationNotFound
from nourishplate.data.models import Family, FamilyMember, MembershipStatus, UserProfile

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class FamilyDB:
    """SQLite-backed storage for families, memberships and profiles."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from nourishplate.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS families (
                    id          TEXT PRIMARY KEY,
                    name        TEXT NOT NULL,
                    created_by  TEXT NOT NULL,
                    created_at  TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS family_members (
                    id           TEXT PRIMARY KEY,
                    family_id    TEXT NOT NULL REFERENCES families(id),
                    email        TEXT NOT NULL,
                    role         TEXT NOT NULL DEFAULT 'member',
                    status       TEXT NOT NULL DEFAULT 'pending',
                    user_id      TEXT,
                    invited_by   TEXT,
                    invited_at   TEXT NOT NULL,
                    accepted_at  TEXT
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_family_members_family_email
                ON family_members (family_id, email)
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS user_profiles (
                    user_id    TEXT PRIMARY KEY,
                    email      TEXT NOT NULL,
                    full_name  TEXT,
                    family_id  TEXT REFERENCES families(id)
                )
            """)
        logger.debug("Family tables initialized at %s", self._db_path)

    @staticmethod
    def _row_to_family(row: sqlite3.Row) -> Family:
        return Family(
            id=row["id"],
            name=row["name"],
            created_by=row["created_by"],
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_member(row: sqlite3.Row) -> FamilyMember:
        return FamilyMember(
            id=row["id"],
            family_id=row["family_id"],
            email=row["email"],
            role=row["role"],
            status=MembershipStatus(row["status"]),
            user_id=row["user_id"],
            invited_by=row["invited_by"],
            invited_at=row["invited_at"],
            accepted_at=row["accepted_at"],
        )

    @staticmethod
    def _row_to_profile(row: sqlite3.Row) -> UserProfile:
        return UserProfile(
            user_id=row["user_id"],
            email=row["email"],
            full_name=row["full_name"],
            family_id=row["family_id"],
        )

    # --- Profiles ---

    @staticmethod
    def _upsert_profile(
        conn: sqlite3.Connection,
        user_id: str,
        email: str,
        full_name: str | None,
        family_id: str | None,
    ) -> None:
        conn.execute(
            """
            INSERT INTO user_profiles (user_id, email, full_name, family_id)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                email     = excluded.email,
                full_name = COALESCE(excluded.full_name, user_profiles.full_name),
                family_id = COALESCE(excluded.family_id, user_profiles.family_id)
            """,
            (user_id, email.lower(), full_name, family_id),
        )

    def upsert_profile(
        self,
        user_id: str,
        email: str,
        full_name: str | None = None,
        family_id: str | None = None,
    ) -> UserProfile:
        """Create or update a profile. None fields keep their stored value."""
        with self._connect() as conn:
            self._upsert_profile(conn, user_id, email, full_name, family_id)
            row = conn.execute(
                "SELECT * FROM user_profiles WHERE user_id = ?", (user_id,)
            ).fetchone()
        return self._row_to_profile(row)

    def get_profile(self, user_id: str) -> UserProfile | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM user_profiles WHERE user_id = ?", (user_id,)
            ).fetchone()
        return self._row_to_profile(row) if row else None

    # --- Families ---

    def create_family(
        self, name: str, created_by: str, creator_email: str,
    ) -> Family:
        """Create a family with its creator as an accepted parent."""
        family = Family(
            id=str(uuid.uuid4()),
            name=name,
            created_by=created_by,
            created_at=_now_iso(),
        )
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO families (id, name, created_by, created_at) VALUES (?, ?, ?, ?)",
                (family.id, family.name, family.created_by, family.created_at),
            )
            conn.execute(
                """
                INSERT INTO family_members
                    (id, family_id, email, role, status, user_id,
                     invited_by, invited_at, accepted_at)
                VALUES (?, ?, ?, 'parent', 'accepted', ?, NULL, ?, ?)
                """,
                (
                    str(uuid.uuid4()), family.id, creator_email.lower(),
                    created_by, family.created_at, family.created_at,
                ),
            )
            self._upsert_profile(conn, created_by, creator_email, None, family.id)
        logger.info("Created family '%s' (%s)", name, family.id)
        return family

    def get_family(self, family_id: str) -> Family | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM families WHERE id = ?", (family_id,)
            ).fetchone()
        return self._row_to_family(row) if row else None

    # --- Memberships ---

    def add_pending_member(
        self,
        family_id: str,
        email: str,
        role: str = "member",
        invited_by: str | None = None,
    ) -> FamilyMember:
        """Record an invitation, reusing an existing pending one for the same email."""
        existing = self.get_pending_member(family_id, email)
        if existing is not None:
            logger.info("Reusing pending invitation %s for %s", existing.id, existing.email)
            return existing

        member = FamilyMember(
            id=str(uuid.uuid4()),
            family_id=family_id,
            email=email.lower(),
            role=role,
            status=MembershipStatus.PENDING,
            invited_by=invited_by,
            invited_at=_now_iso(),
        )
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO family_members
                    (id, family_id, email, role, status, user_id,
                     invited_by, invited_at, accepted_at)
                VALUES (?, ?, ?, ?, ?, NULL, ?, ?, NULL)
                """,
                (
                    member.id, member.family_id, member.email, member.role,
                    member.status.value, member.invited_by, member.invited_at,
                ),
            )
        logger.info("Added pending member %s to family %s", member.email, family_id)
        return member

    def get_pending_member(self, family_id: str, email: str) -> FamilyMember | None:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM family_members
                WHERE family_id = ? AND email = ? AND status = 'pending'
                ORDER BY invited_at DESC LIMIT 1
                """,
                (family_id, email.lower()),
            ).fetchone()
        return self._row_to_member(row) if row else None

    def get_member(self, member_id: str) -> FamilyMember | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM family_members WHERE id = ?", (member_id,)
            ).fetchone()
        return self._row_to_member(row) if row else None

    def list_members(self, family_id: str) -> list[FamilyMember]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM family_members WHERE family_id = ? ORDER BY invited_at",
                (family_id,),
            ).fetchall()
        return [self._row_to_member(r) for r in rows]

    def accept_membership(
        self,
        member_id: str,
        user_id: str,
        email: str,
        full_name: str | None = None,
    ) -> FamilyMember:
        """Mark a pending membership accepted and link the user's profile to the family.

        Both writes commit together or not at all.

        Raises:
            InvitationNotFound: the membership does not exist or is no longer pending.
        """
        accepted_at = _now_iso()
        with self._connect() as conn:
            row = conn.execute(
                "SELECT family_id FROM family_members WHERE id = ?", (member_id,)
            ).fetchone()
            if row is None:
                raise InvitationNotFound(f"No membership {member_id}")

            cursor = conn.execute(
                """
                UPDATE family_members
                SET status = 'accepted', user_id = ?, accepted_at = ?
                WHERE id = ? AND status = 'pending'
                """,
                (user_id, accepted_at, member_id),
            )
            if cursor.rowcount == 0:
                raise InvitationNotFound(f"Membership {member_id} is no longer pending")

            self._upsert_profile(conn, user_id, email, full_name, row["family_id"])
            accepted = conn.execute(
                "SELECT * FROM family_members WHERE id = ?", (member_id,)
            ).fetchone()

        logger.info("User %s accepted membership %s", user_id, member_id)
        return self._row_to_member(accepted)

    def decline_membership(self, member_id: str) -> bool:
        """Mark a pending membership declined. Returns False if it was not pending."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE family_members SET status = 'declined' WHERE id = ? AND status = 'pending'",
                (member_id,),
            )
        declined = cursor.rowcount > 0
        if declined:
            logger.info("Membership %s declined", member_id)
        return declined
