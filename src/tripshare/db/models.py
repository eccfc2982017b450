from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Union


class SplitType(str, Enum):
    EQUAL = "EQUAL"
    EXACT = "EXACT"


class SplitTarget(str, Enum):
    ALL = "ALL"
    GROUP = "GROUP"
    CUSTOM = "CUSTOM"


class PromptPayKind(str, Enum):
    PHONE = "PHONE"
    NATIONAL_ID = "NATIONAL_ID"
    EWALLET = "EWALLET"
    UNKNOWN = "UNKNOWN"


@dataclass(slots=True)
class Member:
    id: int
    display_name: Optional[str]
    promptpay_id: Optional[str] = None
    promptpay_kind: Optional[PromptPayKind] = None

    @property
    def label(self) -> str:
        return self.display_name or f"#{self.id}"


@dataclass(slots=True)
class Trip:
    id: int
    name: str
    code: str
    created_by: Optional[int]


@dataclass(slots=True)
class SubGroup:
    id: int
    trip_id: int
    name: str


@dataclass(frozen=True, slots=True)
class Share:
    member_id: int
    amount_cents: int


@dataclass(frozen=True, slots=True)
class DynamicSplit:
    """Shares recomputed from current membership on every read."""

    target: SplitTarget
    group_id: Optional[int] = None


@dataclass(frozen=True, slots=True)
class FrozenSplit:
    """Shares fixed when the expense was recorded."""

    shares: Sequence[Share]


SplitStrategy = Union[DynamicSplit, FrozenSplit]


@dataclass(slots=True)
class Expense:
    id: int
    trip_id: int
    payer_id: int
    title: str
    amount_cents: int
    split_type: SplitType = SplitType.EQUAL
    split_target: SplitTarget = SplitTarget.ALL
    split_group_id: Optional[int] = None
    shares: Optional[Sequence[Share]] = None

    @property
    def strategy(self) -> SplitStrategy:
        if self.split_target == SplitTarget.CUSTOM:
            return FrozenSplit(shares=tuple(self.shares or ()))
        if self.split_target == SplitTarget.GROUP:
            return DynamicSplit(target=SplitTarget.GROUP, group_id=self.split_group_id)
        return DynamicSplit(target=SplitTarget.ALL)


@dataclass(slots=True)
class Payment:
    id: int
    trip_id: int
    from_id: int
    to_id: int
    amount_cents: int
    slip_url: Optional[str] = None
