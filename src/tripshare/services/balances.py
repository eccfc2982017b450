from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional, Protocol, Sequence

from tripshare.db.models import Expense, Member, Payment, PromptPayKind, SplitTarget
from tripshare.logging import get_logger
from tripshare.services.ledger import Diagnostic, EmptySplitTarget, SelfPayment, UnmatchedPayment, aggregate
from tripshare.services.settlement import Balance, simplify
from tripshare.services.split import MembershipSnapshot
from tripshare.utils.parse import format_amount


class MemberDirectory(Protocol):
    async def list_trip_members(self, trip_id: int) -> list[Member]: ...

    async def list_group_members(self, group_id: int) -> list[Member]: ...


class ExpenseStore(Protocol):
    async def list_trip_expenses(self, trip_id: int) -> list[Expense]: ...


class PaymentStore(Protocol):
    async def list_trip_payments(self, trip_id: int) -> list[Payment]: ...


class LedgerStore(MemberDirectory, ExpenseStore, PaymentStore, Protocol):
    pass


@dataclass(slots=True)
class LedgerSnapshot:
    members: Sequence[Member]
    membership: MembershipSnapshot
    expenses: Sequence[Expense]
    payments: Sequence[Payment]


@dataclass(slots=True)
class BalanceReport:
    balances: list[Balance]
    diagnostics: list[Diagnostic] = field(default_factory=list)


@dataclass(slots=True)
class BalanceView:
    debtor_id: int
    debtor_name: str
    creditor_id: int
    creditor_name: str
    amount_cents: int
    creditor_promptpay_id: Optional[str] = None
    creditor_promptpay_kind: Optional[PromptPayKind] = None


async def load_snapshot(store: LedgerStore, trip_id: int) -> LedgerSnapshot:
    members = await store.list_trip_members(trip_id)
    expenses = await store.list_trip_expenses(trip_id)
    payments = await store.list_trip_payments(trip_id)

    group_ids = sorted(
        {
            exp.split_group_id
            for exp in expenses
            if exp.split_target == SplitTarget.GROUP and exp.split_group_id is not None
        }
    )
    groups: dict[int, list[int]] = {}
    for group_id in group_ids:
        groups[group_id] = [m.id for m in await store.list_group_members(group_id)]

    membership = MembershipSnapshot(trip_members=[m.id for m in members], groups=groups)
    return LedgerSnapshot(members=members, membership=membership, expenses=expenses, payments=payments)


def compute_report(snapshot: LedgerSnapshot) -> BalanceReport:
    result = aggregate(snapshot.expenses, snapshot.payments, snapshot.membership)
    balances = simplify(result.matrix)

    log = get_logger(__name__)
    log.info("balances.computed", balances=len(balances), diagnostics=len(result.diagnostics))
    return BalanceReport(balances=balances, diagnostics=result.diagnostics)


async def build_trip_report(store: LedgerStore, trip_id: int) -> tuple[LedgerSnapshot, BalanceReport]:
    snapshot = await load_snapshot(store, trip_id)
    return snapshot, compute_report(snapshot)


def attach_receiving_ids(balances: Iterable[Balance], members: Iterable[Member]) -> list[BalanceView]:
    by_id = {m.id: m for m in members}
    views: list[BalanceView] = []
    for balance in balances:
        debtor = by_id.get(balance.debtor_id)
        creditor = by_id.get(balance.creditor_id)
        views.append(
            BalanceView(
                debtor_id=balance.debtor_id,
                debtor_name=debtor.label if debtor else f"#{balance.debtor_id}",
                creditor_id=balance.creditor_id,
                creditor_name=creditor.label if creditor else f"#{balance.creditor_id}",
                amount_cents=balance.amount_cents,
                creditor_promptpay_id=creditor.promptpay_id if creditor else None,
                creditor_promptpay_kind=creditor.promptpay_kind if creditor else None,
            )
        )
    return views


def format_balances(views: Sequence[BalanceView], currency: str) -> str:
    lines = ["Who owes whom:"]
    if not views:
        lines.append("• everyone is settled up")
        return "\n".join(lines)

    for view in views:
        line = f"• {view.debtor_name} → {view.creditor_name}: {format_amount(view.amount_cents)} {currency}"
        if view.creditor_promptpay_id:
            kind = view.creditor_promptpay_kind.value if view.creditor_promptpay_kind else PromptPayKind.UNKNOWN.value
            line += f" (PromptPay {kind}: {view.creditor_promptpay_id})"
        lines.append(line)
    return "\n".join(lines)


def format_diagnostics(diagnostics: Sequence[Diagnostic], members: Iterable[Member], currency: str) -> list[str]:
    if not diagnostics:
        return []

    names = {m.id: m.label for m in members}
    lines = ["\nNotes:"]
    for diag in diagnostics:
        if isinstance(diag, EmptySplitTarget):
            if diag.target == SplitTarget.GROUP:
                where = f"group #{diag.group_id}"
            elif diag.target == SplitTarget.CUSTOM:
                where = "its custom list"
            else:
                where = "the trip"
            lines.append(f"• expense #{diag.expense_id} is split across nobody in {where}")
        elif isinstance(diag, UnmatchedPayment):
            payer = names.get(diag.from_id, f"#{diag.from_id}")
            payee = names.get(diag.to_id, f"#{diag.to_id}")
            lines.append(
                f"• payment #{diag.payment_id} from {payer} to {payee} "
                f"({format_amount(diag.amount_cents)} {currency}) exceeds what was owed "
                f"({format_amount(diag.outstanding_cents)} {currency})"
            )
        elif isinstance(diag, SelfPayment):
            who = names.get(diag.member_id, f"#{diag.member_id}")
            lines.append(
                f"• payment #{diag.payment_id} ({format_amount(diag.amount_cents)} {currency}) "
                f"was sent by {who} to themselves and is ignored"
            )
    return lines
