from __future__ import annotations

from aiogram import Router, html
from aiogram.filters import Command
from aiogram.types import Message

from tripshare.config import get_settings
from tripshare.db.models import SplitTarget, SplitType
from tripshare.db.repo import TripShareRepository, get_global_repository
from tripshare.logging import get_logger
from tripshare.services.authz import assert_group_in_trip, assert_trip_member, is_trip_member
from tripshare.services.balances import (
    attach_receiving_ids,
    build_trip_report,
    format_balances,
    format_diagnostics,
    load_snapshot,
)
from tripshare.services.split import CustomSelection, freeze_custom_shares, resolve, validate_exact_shares
from tripshare.utils.parse import (
    format_amount,
    parse_amount,
    parse_int,
    parse_payer,
    parse_split,
    parse_title,
    split_args,
)

expenses_router = Router()

ADDEXPENSE_USAGE = (
    "Usage: /addexpense [trip_id] | [title] | [amount] | all | paid by @user\n"
    "Split: all · group [group_id] · custom @a @b · exact @a=10.00 @b=5.50\n"
    "The payer defaults to you."
)


async def _current_user_id(repo: TripShareRepository, message: Message) -> int | None:
    user = message.from_user
    if not user:
        return None
    return await repo.ensure_user(user.id, user.username, user.full_name)


def _trip_id_arg(message: Message) -> int:
    return parse_int((message.text or "").partition(" ")[2], "trip id")


def _split_and_payer(extra: list[str]) -> tuple[str, str | None]:
    """Pick the split mode and an optional ``paid by`` clause, in either order."""
    split_text: str | None = None
    payer: str | None = None
    for part in extra:
        username = parse_payer(part)
        if username is not None:
            if payer is not None:
                raise ValueError("Only one payer can be given")
            payer = username
        elif part:
            if split_text is not None:
                raise ValueError("Only one split mode can be given")
            split_text = part
    return split_text or "all", payer


@expenses_router.message(Command("addexpense"))
async def cmd_addexpense(message: Message) -> None:
    repo = get_global_repository()
    if not message.text:
        return
    try:
        parts = split_args(message.text, "addexpense")
        if len(parts) < 3:
            raise ValueError("not enough arguments")
        trip_id = parse_int(parts[0], "trip id")
        title = parse_title(parts[1])
        amount_cents = parse_amount(parts[2])
        split_text, payer_username = _split_and_payer(parts[3:])
        split = parse_split(split_text)
    except ValueError as exc:
        await message.answer(f"{html.quote(str(exc))}\n\n{ADDEXPENSE_USAGE}")
        return

    user_id = await _current_user_id(repo, message)
    if user_id is None:
        return
    await assert_trip_member(repo.db, user_id, trip_id)

    payer_id = user_id
    if payer_username is not None:
        row = await repo.get_user_by_username(payer_username)
        if row is None or not await is_trip_member(repo.db, row["id"], trip_id):
            await message.answer(f"@{html.quote(payer_username)} is not a member of this trip")
            return
        payer_id = row["id"]

    if split.target == SplitTarget.GROUP:
        assert split.group_id is not None
        await assert_group_in_trip(repo.db, split.group_id, trip_id)

    shares = None
    if split.target == SplitTarget.CUSTOM:
        member_ids = {m.id for m in await repo.list_trip_members(trip_id)}
        selections: list[CustomSelection] = []
        for username, member_amount in split.members.items():
            row = await repo.get_user_by_username(username)
            if row is None or row["id"] not in member_ids:
                await message.answer(f"@{html.quote(username)} is not a member of this trip")
                return
            selections.append(CustomSelection(member_id=row["id"], amount_cents=member_amount))
        shares = freeze_custom_shares(amount_cents, split.split_type, selections)

    expense = await repo.create_expense(
        trip_id=trip_id,
        payer_id=payer_id,
        created_by=user_id,
        title=title,
        amount_cents=amount_cents,
        split_type=split.split_type,
        split_target=split.target,
        split_group_id=split.group_id,
        shares=shares,
    )
    log = get_logger(__name__)
    log.info(
        "expense.created",
        expense_id=expense.id,
        trip_id=trip_id,
        payer_id=payer_id,
        target=expense.split_target.value,
    )

    currency = get_settings().currency
    text = (
        f"Expense added: #{expense.id} {html.quote(expense.title)} — "
        f"{format_amount(expense.amount_cents)} {currency}"
    )
    if split.split_type == SplitType.EXACT:
        mismatch = validate_exact_shares(expense)
        if mismatch is not None:
            log.warning(
                "expense.exact_mismatch",
                expense_id=expense.id,
                expected_cents=mismatch.expected_cents,
                actual_cents=mismatch.actual_cents,
            )
            text += (
                f"\n⚠️ Exact amounts add up to {format_amount(mismatch.actual_cents)} {currency}, "
                f"not {format_amount(mismatch.expected_cents)} {currency}."
            )
    await message.answer(text)


@expenses_router.message(Command("pay"))
async def cmd_pay(message: Message) -> None:
    repo = get_global_repository()
    if not message.text:
        return
    try:
        parts = split_args(message.text, "pay")
        if len(parts) < 3:
            raise ValueError("not enough arguments")
        trip_id = parse_int(parts[0], "trip id")
        amount_cents = parse_amount(parts[2])
    except ValueError as exc:
        await message.answer(f"{html.quote(str(exc))}\n\nUsage: /pay [trip_id] | @user | [amount] | [slip url]")
        return
    slip_url = parts[3] if len(parts) > 3 and parts[3] else None

    user_id = await _current_user_id(repo, message)
    if user_id is None:
        return
    await assert_trip_member(repo.db, user_id, trip_id)

    recipient = await repo.get_user_by_username(parts[1])
    if recipient is None:
        await message.answer("User not found")
        return
    if not await is_trip_member(repo.db, recipient["id"], trip_id):
        await message.answer(f"{html.quote(parts[1])} is not a member of this trip")
        return
    if recipient["id"] == user_id:
        await message.answer("You cannot pay yourself.")
        return

    payment = await repo.record_payment(trip_id, user_id, recipient["id"], amount_cents, slip_url)
    get_logger(__name__).info("payment.recorded", payment_id=payment.id, trip_id=trip_id)
    await message.answer(
        f"💸 Payment #{payment.id} recorded: {format_amount(amount_cents)} {get_settings().currency} "
        f"to {html.quote(parts[1])}"
    )


@expenses_router.message(Command("payments"))
async def cmd_payments(message: Message) -> None:
    repo = get_global_repository()
    try:
        trip_id = _trip_id_arg(message)
    except ValueError:
        await message.answer("Usage: /payments [trip_id]")
        return

    user_id = await _current_user_id(repo, message)
    if user_id is None:
        return
    await assert_trip_member(repo.db, user_id, trip_id)

    payments = await repo.list_trip_payments(trip_id)
    names = {m.id: m.label for m in await repo.list_trip_members(trip_id)}
    currency = get_settings().currency

    lines = ["Payments:"]
    if not payments:
        lines.append("• no payments yet")
    for payment in payments:
        sender = names.get(payment.from_id, f"#{payment.from_id}")
        receiver = names.get(payment.to_id, f"#{payment.to_id}")
        line = (
            f"• #{payment.id} {html.quote(sender)} → {html.quote(receiver)}: "
            f"{format_amount(payment.amount_cents)} {currency}"
        )
        if payment.slip_url:
            line += f" (slip: {html.quote(payment.slip_url)})"
        lines.append(line)
    await message.answer("\n".join(lines))


@expenses_router.message(Command("expenses"))
async def cmd_expenses(message: Message) -> None:
    repo = get_global_repository()
    try:
        trip_id = _trip_id_arg(message)
    except ValueError:
        await message.answer("Usage: /expenses [trip_id]")
        return

    user_id = await _current_user_id(repo, message)
    if user_id is None:
        return
    await assert_trip_member(repo.db, user_id, trip_id)

    snapshot = await load_snapshot(repo, trip_id)
    currency = get_settings().currency
    names = {m.id: m.label for m in snapshot.members}

    lines = ["Expenses:"]
    if not snapshot.expenses:
        lines.append("• no expenses yet")
    for expense in snapshot.expenses:
        payer = names.get(expense.payer_id, f"#{expense.payer_id}")
        lines.append(
            f"• #{expense.id} {html.quote(expense.title)} — {format_amount(expense.amount_cents)} {currency} "
            f"(paid by {html.quote(payer)}, {expense.split_target.value.lower()})"
        )
        for share in resolve(expense, snapshot.membership):
            who = names.get(share.member_id, f"#{share.member_id}")
            lines.append(f"    {html.quote(who)}: {format_amount(share.amount_cents)}")
    await message.answer("\n".join(lines))


@expenses_router.message(Command("balances"))
async def cmd_balances(message: Message) -> None:
    repo = get_global_repository()
    try:
        trip_id = _trip_id_arg(message)
    except ValueError:
        await message.answer("Usage: /balances [trip_id]")
        return

    user_id = await _current_user_id(repo, message)
    if user_id is None:
        return
    await assert_trip_member(repo.db, user_id, trip_id)

    snapshot, report = await build_trip_report(repo, trip_id)
    currency = get_settings().currency
    views = attach_receiving_ids(report.balances, snapshot.members)

    text = format_balances(views, currency)
    notes = format_diagnostics(report.diagnostics, snapshot.members, currency)
    await message.answer(html.quote("\n".join([text, *notes])))
