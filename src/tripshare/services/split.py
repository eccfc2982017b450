from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Mapping, Optional, Sequence

from tripshare.db.models import DynamicSplit, Expense, FrozenSplit, Share, SplitTarget, SplitType
from tripshare.logging import get_logger

log = get_logger(__name__)


@dataclass(slots=True)
class MembershipSnapshot:
    """Current trip and sub-group membership, as read right before evaluation."""

    trip_members: Sequence[int] = ()
    groups: Mapping[int, Sequence[int]] = field(default_factory=dict)

    def members_of(self, group_id: Optional[int]) -> Sequence[int]:
        if group_id is None:
            return ()
        return self.groups.get(group_id, ())


@dataclass(frozen=True, slots=True)
class CustomSelection:
    member_id: int
    amount_cents: Optional[int] = None


@dataclass(frozen=True, slots=True)
class ShareSumMismatch:
    expense_id: int
    expected_cents: int
    actual_cents: int


def equal_share(amount_cents: int, count: int) -> int:
    """One member's rounded part of ``amount_cents`` split ``count`` ways.

    Each part is rounded on its own; the leftover is not redistributed, so the
    parts may miss the total by up to one minor unit per member.
    """
    if count <= 0:
        raise ValueError("count must be positive")
    return int((Decimal(amount_cents) / Decimal(count)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def split_equally(amount_cents: int, members: Sequence[int]) -> list[Share]:
    if not members:
        return []
    share = equal_share(amount_cents, len(members))
    return [Share(member_id=member_id, amount_cents=share) for member_id in members]


def resolve(expense: Expense, membership: MembershipSnapshot) -> list[Share]:
    strategy = expense.strategy
    if isinstance(strategy, FrozenSplit):
        return list(strategy.shares)

    members = _resolve_members(strategy, membership)
    if expense.split_type == SplitType.EXACT:
        log.warning(
            "split.exact_with_dynamic_target",
            expense_id=expense.id,
            target=strategy.target.value,
        )
    if not members:
        log.warning(
            "split.empty_target",
            expense_id=expense.id,
            target=strategy.target.value,
            group_id=strategy.group_id,
        )
    return split_equally(expense.amount_cents, members)


def _resolve_members(strategy: DynamicSplit, membership: MembershipSnapshot) -> Sequence[int]:
    if strategy.target == SplitTarget.GROUP:
        return membership.members_of(strategy.group_id)
    return membership.trip_members


def freeze_custom_shares(
    amount_cents: int,
    split_type: SplitType,
    selections: Sequence[CustomSelection],
) -> list[Share]:
    if not selections:
        raise ValueError("custom split must include at least one member")

    if split_type == SplitType.EQUAL:
        return split_equally(amount_cents, [s.member_id for s in selections])

    return [Share(member_id=s.member_id, amount_cents=s.amount_cents or 0) for s in selections]


def validate_exact_shares(expense: Expense) -> ShareSumMismatch | None:
    if expense.split_target != SplitTarget.CUSTOM:
        return None
    actual = sum(share.amount_cents for share in expense.shares or ())
    if actual == expense.amount_cents:
        return None
    return ShareSumMismatch(expense_id=expense.id, expected_cents=expense.amount_cents, actual_cents=actual)
