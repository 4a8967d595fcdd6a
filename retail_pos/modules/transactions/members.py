from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional
import sqlite3

from ...database.repositories.members_repo import Member, MembersRepo, MemberTier
from ...database.repositories.settings_repo import PointRuleSettings
from ...database.unit_of_work import UnitOfWork
from ...utils.helpers import now_str
from ...utils.loggers import get_logger
from .calculations import earned_points, eligible_tier
from .types import MemberStatusResult

_log = get_logger(__name__)


@dataclass(frozen=True)
class NextTierInfo:
    next_tier: Optional[MemberTier]
    points_needed: int


@dataclass(frozen=True)
class PointsOutcome:
    earned: int
    total_points: int
    total_points_earned: int
    tier_id: Optional[int]
    tier_changed: bool


def calculate_member_points(
    amount: Decimal,
    member: Optional[Member],
    settings: PointRuleSettings,
) -> int:
    """Points a sale of `amount` would earn `member` right now. Writes nothing."""
    if not settings.enabled:
        return 0
    tier_multiplier = member.tier.multiplier if member is not None and member.tier else None
    return earned_points(amount, settings.base_amount, settings.point_multiplier, tier_multiplier)


def process_points(
    uow: UnitOfWork,
    member: Member,
    final_amount: Decimal,
    settings: PointRuleSettings,
    transaction_id: int,
    now: Optional[datetime] = None,
) -> PointsOutcome:
    """
    Award loyalty points for one committed sale. Must run inside `uow`.

    Adds the earned points to both member counters, moves the member up to
    the highest tier their lifetime points now reach (never down) and writes
    one ledger row. Disabled point rules, or a sale too small to earn
    anything, leave the member and the ledger untouched.
    """
    earned = calculate_member_points(final_amount, member, settings)
    if earned <= 0:
        return PointsOutcome(0, member.total_points, member.total_points_earned, member.tier_id, False)

    total_points, total_earned = uow.members.apply_points(member.member_id, earned)

    tier_id = member.tier_id
    target = eligible_tier(uow.members.list_tiers(), total_earned)
    current_min = member.tier.min_points if member.tier is not None else None
    tier_changed = False
    if target is not None and target.tier_id != tier_id and (current_min is None or target.min_points > current_min):
        uow.members.set_tier(member.member_id, target.tier_id)
        tier_id = target.tier_id
        tier_changed = True
        _log.info("Member %s advanced to tier %s", member.member_id, target.name)

    uow.members.add_point_entry(
        member.member_id,
        transaction_id,
        earned,
        now_str(now),
        notes=f"Earned from transaction {transaction_id}",
    )
    return PointsOutcome(earned, total_points, total_earned, tier_id, tier_changed)


class MemberService:
    """Read-side member checks used before the commit."""

    def __init__(self, conn: sqlite3.Connection):
        self.repo = MembersRepo(conn)

    def validate_member_status(self, member_id: int) -> MemberStatusResult:
        member = self.repo.get(member_id)
        if member is None:
            return MemberStatusResult(False, "Member not found")
        if member.is_banned:
            return MemberStatusResult(False, member.ban_reason or "Member is banned")
        return MemberStatusResult(True, "Member is valid")

    def next_tier_info(self, member: Member) -> NextTierInfo:
        """
        The tier above the member's current one and the lifetime points still
        missing; the lowest tier when the member has none yet.
        """
        tiers = self.repo.list_tiers()
        if member.tier is None:
            candidates = tiers
        else:
            candidates = [t for t in tiers if t.min_points > member.tier.min_points]
        nxt = candidates[0] if candidates else None
        if nxt is None:
            return NextTierInfo(None, 0)
        return NextTierInfo(nxt, max(nxt.min_points - member.total_points_earned, 0))
