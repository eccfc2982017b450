from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Iterator, Optional, Sequence, Union

from tripshare.db.models import Expense, Payment, SplitTarget
from tripshare.logging import get_logger
from tripshare.services.split import MembershipSnapshot, resolve

if TYPE_CHECKING:
    from tripshare.services.settlement import Balance

log = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class EmptySplitTarget:
    expense_id: int
    target: SplitTarget
    group_id: Optional[int] = None


@dataclass(frozen=True, slots=True)
class UnmatchedPayment:
    payment_id: int
    from_id: int
    to_id: int
    amount_cents: int
    outstanding_cents: int


@dataclass(frozen=True, slots=True)
class SelfPayment:
    payment_id: int
    member_id: int
    amount_cents: int


Diagnostic = Union[EmptySplitTarget, UnmatchedPayment, SelfPayment]


@dataclass(slots=True)
class DebtMatrix:
    """Signed running amounts keyed by ``(debtor, creditor)``, in cents."""

    cells: dict[tuple[int, int], int] = field(default_factory=dict)

    def add(self, debtor: int, creditor: int, amount_cents: int) -> None:
        if debtor == creditor:
            return
        key = (debtor, creditor)
        self.cells[key] = self.cells.get(key, 0) + amount_cents

    def get(self, debtor: int, creditor: int) -> int:
        return self.cells.get((debtor, creditor), 0)

    def pairs(self) -> Iterator[tuple[int, int]]:
        """Unordered pairs with at least one cell, smaller id first."""
        seen: set[tuple[int, int]] = set()
        for debtor, creditor in self.cells:
            pair = (min(debtor, creditor), max(debtor, creditor))
            if pair not in seen:
                seen.add(pair)
                yield pair

    @classmethod
    def from_balances(cls, balances: Iterable["Balance"]) -> "DebtMatrix":
        matrix = cls()
        for balance in balances:
            matrix.add(balance.debtor_id, balance.creditor_id, balance.amount_cents)
        return matrix


@dataclass(slots=True)
class LedgerResult:
    matrix: DebtMatrix
    diagnostics: list[Diagnostic] = field(default_factory=list)


def aggregate(
    expenses: Sequence[Expense],
    payments: Sequence[Payment],
    membership: MembershipSnapshot,
) -> LedgerResult:
    matrix = DebtMatrix()
    diagnostics: list[Diagnostic] = []

    for expense in expenses:
        shares = resolve(expense, membership)
        if not shares:
            diagnostics.append(
                EmptySplitTarget(
                    expense_id=expense.id,
                    target=expense.split_target,
                    group_id=expense.split_group_id,
                )
            )
            continue
        for share in shares:
            if share.member_id == expense.payer_id:
                continue
            matrix.add(share.member_id, expense.payer_id, share.amount_cents)

    for payment in payments:
        if payment.from_id == payment.to_id:
            # Never reaches the matrix; no (m, m) cell exists.
            diagnostics.append(
                SelfPayment(payment_id=payment.id, member_id=payment.from_id, amount_cents=payment.amount_cents)
            )
            continue
        outstanding = matrix.get(payment.from_id, payment.to_id)
        if payment.amount_cents > outstanding:
            log.warning(
                "ledger.unmatched_payment",
                payment_id=payment.id,
                amount_cents=payment.amount_cents,
                outstanding_cents=outstanding,
            )
            diagnostics.append(
                UnmatchedPayment(
                    payment_id=payment.id,
                    from_id=payment.from_id,
                    to_id=payment.to_id,
                    amount_cents=payment.amount_cents,
                    outstanding_cents=outstanding,
                )
            )
        matrix.add(payment.from_id, payment.to_id, -payment.amount_cents)

    log.info(
        "ledger.aggregate",
        expenses=len(expenses),
        payments=len(payments),
        cells=len(matrix.cells),
        diagnostics=len(diagnostics),
    )
    return LedgerResult(matrix=matrix, diagnostics=diagnostics)
