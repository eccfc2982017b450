from __future__ import annotations

from aiogram import Router, html
from aiogram.filters import Command
from aiogram.types import Message

from tripshare.db.repo import TripShareRepository, get_global_repository
from tripshare.logging import get_logger
from tripshare.services.authz import assert_trip_member, assert_trip_owner, is_trip_owner
from tripshare.utils.parse import parse_group_name, parse_int, parse_title, split_args

trips_router = Router()


async def _current_user_id(repo: TripShareRepository, message: Message) -> int | None:
    user = message.from_user
    if not user:
        return None
    return await repo.ensure_user(user.id, user.username, user.full_name)


@trips_router.message(Command("newtrip"))
async def cmd_newtrip(message: Message) -> None:
    repo = get_global_repository()
    if not message.text:
        return
    try:
        name = parse_title(message.text.partition(" ")[2])
    except ValueError:
        await message.answer("Usage: /newtrip [name]")
        return

    user_id = await _current_user_id(repo, message)
    if user_id is None:
        return

    trip = await repo.create_trip(name, user_id)
    get_logger(__name__).info("trip.created", trip_id=trip.id, user_id=user_id)
    await message.answer(
        f"🧳 Trip #{trip.id} <b>{html.quote(trip.name)}</b> created.\n"
        f"Friends can join with /jointrip {trip.code}"
    )


@trips_router.message(Command("jointrip"))
async def cmd_jointrip(message: Message) -> None:
    repo = get_global_repository()
    if not message.text:
        return
    code = message.text.partition(" ")[2].strip()
    if len(code) != 6:
        await message.answer("Usage: /jointrip [6-character code]")
        return

    trip = await repo.get_trip_by_code(code)
    if trip is None:
        await message.answer("❌ No trip with this code.")
        return

    user_id = await _current_user_id(repo, message)
    if user_id is None:
        return

    await repo.add_trip_member(trip.id, user_id)
    await message.answer(f"✅ You joined trip #{trip.id} <b>{html.quote(trip.name)}</b>.")


@trips_router.message(Command("members"))
async def cmd_members(message: Message) -> None:
    repo = get_global_repository()
    if not message.text:
        return
    try:
        trip_id = parse_int(message.text.partition(" ")[2], "trip id")
    except ValueError:
        await message.answer("Usage: /members [trip_id]")
        return

    user_id = await _current_user_id(repo, message)
    if user_id is None:
        return
    await assert_trip_member(repo.db, user_id, trip_id)

    members = await repo.list_trip_members(trip_id)
    lines = [f"Members of trip #{trip_id}:"]
    for member in members:
        line = f"• {html.quote(member.label)}"
        if member.promptpay_id:
            line += " (PromptPay ✓)"
        lines.append(line)
    await message.answer("\n".join(lines))


@trips_router.message(Command("trips"))
async def cmd_trips(message: Message) -> None:
    repo = get_global_repository()
    user_id = await _current_user_id(repo, message)
    if user_id is None:
        return

    trips = await repo.list_user_trips(user_id)
    if not trips:
        await message.answer("You are not in any trip yet. Start one with /newtrip")
        return

    lines = ["Your trips:"]
    for trip in trips:
        owner = " (owner)" if trip.created_by == user_id else ""
        lines.append(f"• #{trip.id} {html.quote(trip.name)} · code {trip.code}{owner}")
    await message.answer("\n".join(lines))


@trips_router.message(Command("leavetrip"))
async def cmd_leavetrip(message: Message) -> None:
    repo = get_global_repository()
    if not message.text:
        return
    try:
        trip_id = parse_int(message.text.partition(" ")[2], "trip id")
    except ValueError:
        await message.answer("Usage: /leavetrip [trip_id]")
        return

    user_id = await _current_user_id(repo, message)
    if user_id is None:
        return
    await assert_trip_member(repo.db, user_id, trip_id)
    if await is_trip_owner(repo.db, user_id, trip_id):
        await message.answer("The trip owner cannot leave the trip.")
        return

    await repo.remove_trip_member(trip_id, user_id)
    get_logger(__name__).info("trip.member_left", trip_id=trip_id, user_id=user_id)
    await message.answer(f"You left trip #{trip_id}.")


@trips_router.message(Command("kick"))
async def cmd_kick(message: Message) -> None:
    repo = get_global_repository()
    if not message.text:
        return
    try:
        parts = split_args(message.text, "kick")
        if len(parts) != 2:
            raise ValueError("expected two arguments")
        trip_id = parse_int(parts[0], "trip id")
    except ValueError:
        await message.answer("Usage: /kick [trip_id] | @user")
        return

    user_id = await _current_user_id(repo, message)
    if user_id is None:
        return
    await assert_trip_owner(repo.db, user_id, trip_id)

    target = await repo.get_user_by_username(parts[1])
    if target is None:
        await message.answer("User not found")
        return
    if target["id"] == user_id:
        await message.answer("You cannot remove yourself.")
        return

    await repo.remove_trip_member(trip_id, target["id"])
    get_logger(__name__).info("trip.member_removed", trip_id=trip_id, user_id=target["id"])
    await message.answer(f"{html.quote(parts[1])} was removed from trip #{trip_id}.")


@trips_router.message(Command("newgroup"))
async def cmd_newgroup(message: Message) -> None:
    repo = get_global_repository()
    if not message.text:
        return
    try:
        parts = split_args(message.text, "newgroup")
        if len(parts) != 2:
            raise ValueError("expected two arguments")
        trip_id = parse_int(parts[0], "trip id")
        name = parse_group_name(parts[1])
    except ValueError as exc:
        await message.answer(f"{html.quote(str(exc))}\n\nUsage: /newgroup [trip_id] | [name]")
        return

    user_id = await _current_user_id(repo, message)
    if user_id is None:
        return
    await assert_trip_member(repo.db, user_id, trip_id)

    group = await repo.create_subgroup(trip_id, name)
    await repo.join_subgroup(group.id, user_id)
    await message.answer(
        f"👥 Group #{group.id} <b>{html.quote(group.name)}</b> created. Others join with /joingroup {group.id}"
    )


@trips_router.message(Command("groups"))
async def cmd_groups(message: Message) -> None:
    repo = get_global_repository()
    if not message.text:
        return
    try:
        trip_id = parse_int(message.text.partition(" ")[2], "trip id")
    except ValueError:
        await message.answer("Usage: /groups [trip_id]")
        return

    user_id = await _current_user_id(repo, message)
    if user_id is None:
        return
    await assert_trip_member(repo.db, user_id, trip_id)

    groups = await repo.list_trip_subgroups(trip_id)
    if not groups:
        await message.answer("No groups yet. Create one with /newgroup")
        return

    lines = [f"Groups of trip #{trip_id}:"]
    for group in groups:
        members = await repo.list_group_members(group.id)
        names = ", ".join(html.quote(m.label) for m in members) or "nobody"
        lines.append(f"• #{group.id} {html.quote(group.name)}: {names}")
    await message.answer("\n".join(lines))


async def _change_group_membership(message: Message, join: bool) -> None:
    repo = get_global_repository()
    if not message.text:
        return
    command = "joingroup" if join else "leavegroup"
    try:
        group_id = parse_int(message.text.partition(" ")[2], "group id")
    except ValueError:
        await message.answer(f"Usage: /{command} [group_id]")
        return

    group = await repo.get_subgroup(group_id)
    if group is None:
        await message.answer("Group not found")
        return

    user_id = await _current_user_id(repo, message)
    if user_id is None:
        return
    await assert_trip_member(repo.db, user_id, group.trip_id)

    if join:
        await repo.join_subgroup(group.id, user_id)
        await message.answer(f"✅ You joined group <b>{html.quote(group.name)}</b>.")
    else:
        await repo.leave_subgroup(group.id, user_id)
        await message.answer(f"You left group <b>{html.quote(group.name)}</b>.")


@trips_router.message(Command("joingroup"))
async def cmd_joingroup(message: Message) -> None:
    await _change_group_membership(message, join=True)


@trips_router.message(Command("leavegroup"))
async def cmd_leavegroup(message: Message) -> None:
    await _change_group_membership(message, join=False)


@trips_router.message(Command("deletegroup"))
async def cmd_deletegroup(message: Message) -> None:
    repo = get_global_repository()
    if not message.text:
        return
    try:
        group_id = parse_int(message.text.partition(" ")[2], "group id")
    except ValueError:
        await message.answer("Usage: /deletegroup [group_id]")
        return

    group = await repo.get_subgroup(group_id)
    if group is None:
        await message.answer("Group not found")
        return

    user_id = await _current_user_id(repo, message)
    if user_id is None:
        return
    await assert_trip_member(repo.db, user_id, group.trip_id)

    await repo.delete_subgroup(group.id)
    get_logger(__name__).info("group.deleted", group_id=group.id, trip_id=group.trip_id)
    await message.answer(f"Group <b>{html.quote(group.name)}</b> deleted.")
