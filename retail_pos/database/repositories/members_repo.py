from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal
import sqlite3

from .discounts_repo import Discount, DiscountsRepo


class DomainError(Exception):
    """Domain-level error suitable for surfacing to the caller."""
    pass


@dataclass
class MemberTier:
    tier_id: int
    name: str
    min_points: int
    multiplier: Decimal


@dataclass
class Member:
    member_id: int
    name: str
    phone: str | None
    total_points: int
    total_points_earned: int
    is_banned: bool
    ban_reason: str | None
    tier_id: int | None
    tier: MemberTier | None = None
    discounts: list[Discount] = field(default_factory=list)


@dataclass
class MemberPoint:
    point_id: int
    member_id: int
    transaction_id: int
    points_earned: int
    date_earned: str
    notes: str | None


def _row_to_tier(r: sqlite3.Row) -> MemberTier:
    return MemberTier(
        tier_id=int(r["tier_id"]),
        name=r["name"],
        min_points=int(r["min_points"]),
        multiplier=Decimal(str(r["multiplier"])),
    )


class MembersRepo:
    """
    Loyalty members, their tiers and the point ledger.

    members.total_points / total_points_earned are the running aggregate of
    member_points; both are written together inside the checkout unit of work.
    """

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    # ------------------------------------------------------------------
    # READ
    # ------------------------------------------------------------------
    def get(self, member_id: int) -> Member | None:
        r = self.conn.execute(
            """
            SELECT member_id, name, phone, total_points, total_points_earned,
                   is_banned, ban_reason, tier_id
              FROM members
             WHERE member_id = ?
            """,
            (member_id,),
        ).fetchone()
        if not r:
            return None
        return Member(
            member_id=int(r["member_id"]),
            name=r["name"],
            phone=r["phone"],
            total_points=int(r["total_points"]),
            total_points_earned=int(r["total_points_earned"]),
            is_banned=bool(r["is_banned"]),
            ban_reason=r["ban_reason"],
            tier_id=None if r["tier_id"] is None else int(r["tier_id"]),
        )

    def get_with_relations(self, member_id: int) -> Member | None:
        """Member plus its tier and its member-scoped discounts."""
        m = self.get(member_id)
        if m is None:
            return None
        if m.tier_id is not None:
            m.tier = self.get_tier(m.tier_id)
        m.discounts = DiscountsRepo(self.conn).list_for_member(m.member_id)
        return m

    def get_tier(self, tier_id: int) -> MemberTier | None:
        r = self.conn.execute(
            "SELECT tier_id, name, min_points, multiplier FROM member_tiers WHERE tier_id=?",
            (tier_id,),
        ).fetchone()
        return _row_to_tier(r) if r else None

    def list_tiers(self) -> list[MemberTier]:
        """All tiers, lowest threshold first."""
        rows = self.conn.execute(
            "SELECT tier_id, name, min_points, multiplier FROM member_tiers ORDER BY min_points ASC"
        ).fetchall()
        return [_row_to_tier(r) for r in rows]

    def point_history(self, member_id: int) -> list[MemberPoint]:
        rows = self.conn.execute(
            """
            SELECT point_id, member_id, transaction_id, points_earned, date_earned, notes
              FROM member_points
             WHERE member_id = ?
             ORDER BY date_earned DESC, point_id DESC
            """,
            (member_id,),
        ).fetchall()
        return [
            MemberPoint(
                point_id=int(r["point_id"]),
                member_id=int(r["member_id"]),
                transaction_id=int(r["transaction_id"]),
                points_earned=int(r["points_earned"]),
                date_earned=r["date_earned"],
                notes=r["notes"],
            )
            for r in rows
        ]

    # ------------------------------------------------------------------
    # WRITE (inside the checkout unit of work; none of these commit)
    # ------------------------------------------------------------------
    def apply_points(self, member_id: int, points: int) -> tuple[int, int]:
        """
        Add `points` to both counters and return the new
        (total_points, total_points_earned).
        """
        if points < 0:
            raise DomainError("Points earned cannot be negative")
        cur = self.conn.execute(
            """
            UPDATE members
               SET total_points        = total_points + :p,
                   total_points_earned = total_points_earned + :p
             WHERE member_id = :id
            """,
            {"p": int(points), "id": int(member_id)},
        )
        if cur.rowcount == 0:
            raise DomainError(f"Member with ID {member_id} not found")
        r = self.conn.execute(
            "SELECT total_points, total_points_earned FROM members WHERE member_id=?",
            (member_id,),
        ).fetchone()
        return int(r["total_points"]), int(r["total_points_earned"])

    def set_tier(self, member_id: int, tier_id: int) -> None:
        cur = self.conn.execute(
            "UPDATE members SET tier_id=? WHERE member_id=?",
            (tier_id, member_id),
        )
        if cur.rowcount == 0:
            raise DomainError(f"Member with ID {member_id} not found")

    def add_point_entry(
        self,
        member_id: int,
        transaction_id: int,
        points_earned: int,
        date_earned: str,
        notes: str | None = None,
    ) -> int:
        cur = self.conn.execute(
            """
            INSERT INTO member_points(member_id, transaction_id, points_earned, date_earned, notes)
            VALUES (?, ?, ?, ?, ?)
            """,
            (member_id, transaction_id, points_earned, date_earned, notes),
        )
        return int(cur.lastrowid)
