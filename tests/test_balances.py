import pytest

from tripshare.db.models import Expense, Member, Payment, PromptPayKind, SplitTarget
from tripshare.services.balances import (
    attach_receiving_ids,
    build_trip_report,
    format_balances,
    format_diagnostics,
    load_snapshot,
)
from tripshare.services.ledger import EmptySplitTarget, SelfPayment, UnmatchedPayment
from tripshare.services.settlement import Balance


class StubStore:
    def __init__(self) -> None:
        self.members = [
            Member(1, "Alice", promptpay_id="0812345678", promptpay_kind=PromptPayKind.PHONE),
            Member(2, "Bob"),
            Member(3, "Carol"),
        ]
        self.groups = {7: [2, 3], 8: [1]}
        self.expenses = [
            Expense(id=1, trip_id=1, payer_id=1, title="Villa", amount_cents=30000),
            Expense(id=2, trip_id=1, payer_id=2, title="Drinks", amount_cents=6000,
                    split_target=SplitTarget.GROUP, split_group_id=7),
        ]
        self.payments = [Payment(id=1, trip_id=1, from_id=2, to_id=1, amount_cents=10000)]
        self.group_queries: list[int] = []

    async def list_trip_members(self, trip_id: int) -> list[Member]:
        return list(self.members)

    async def list_group_members(self, group_id: int) -> list[Member]:
        self.group_queries.append(group_id)
        by_id = {m.id: m for m in self.members}
        return [by_id[i] for i in self.groups.get(group_id, [])]

    async def list_trip_expenses(self, trip_id: int) -> list[Expense]:
        return list(self.expenses)

    async def list_trip_payments(self, trip_id: int) -> list[Payment]:
        return list(self.payments)


@pytest.mark.asyncio
async def test_load_snapshot_reads_only_referenced_groups():
    store = StubStore()

    snapshot = await load_snapshot(store, 1)

    assert store.group_queries == [7]
    assert list(snapshot.membership.trip_members) == [1, 2, 3]
    assert snapshot.membership.groups == {7: [2, 3]}


@pytest.mark.asyncio
async def test_trip_report_nets_expenses_and_payments():
    store = StubStore()

    _, report = await build_trip_report(store, 1)

    assert report.balances == [
        Balance(debtor_id=3, creditor_id=1, amount_cents=10000),
        Balance(debtor_id=3, creditor_id=2, amount_cents=3000),
    ]
    assert report.diagnostics == []


@pytest.mark.asyncio
async def test_group_change_is_reflected_in_old_expenses():
    store = StubStore()
    store.payments = []
    _, before = await build_trip_report(store, 1)

    store.groups[7] = [1, 2, 3]
    _, after = await build_trip_report(store, 1)

    assert Balance(3, 2, 3000) in before.balances
    assert Balance(3, 2, 2000) in after.balances
    # Alice now owes Bob 20.00 for drinks, Bob owes Alice 100.00 for the villa
    assert Balance(2, 1, 8000) in after.balances


@pytest.mark.asyncio
async def test_report_exposes_diagnostics():
    store = StubStore()
    store.groups[7] = []
    store.payments.append(Payment(id=2, trip_id=1, from_id=3, to_id=2, amount_cents=100))

    _, report = await build_trip_report(store, 1)

    assert EmptySplitTarget(expense_id=2, target=SplitTarget.GROUP, group_id=7) in report.diagnostics
    assert UnmatchedPayment(payment_id=2, from_id=3, to_id=2, amount_cents=100, outstanding_cents=0) in report.diagnostics

    notes = format_diagnostics(report.diagnostics, store.members, "THB")
    assert any("expense #2" in line for line in notes)
    assert any("payment #2 from Carol to Bob" in line for line in notes)


@pytest.mark.asyncio
async def test_balances_carry_creditor_promptpay():
    store = StubStore()
    snapshot, report = await build_trip_report(store, 1)

    views = attach_receiving_ids(report.balances, snapshot.members)
    text = format_balances(views, "THB")

    assert views[0].creditor_promptpay_id == "0812345678"
    assert views[1].creditor_promptpay_id is None
    assert "Carol → Alice: 100.00 THB (PromptPay PHONE: 0812345678)" in text
    assert "Carol → Bob: 30.00 THB" in text


def test_format_balances_when_settled():
    assert "settled up" in format_balances([], "THB")


def test_format_diagnostics_names_self_payment():
    members = [Member(1, "Alice"), Member(2, "Bob")]

    notes = format_diagnostics([SelfPayment(payment_id=4, member_id=2, amount_cents=1550)], members, "THB")

    assert notes[0] == "\nNotes:"
    assert notes[1] == "• payment #4 (15.50 THB) was sent by Bob to themselves and is ignored"
