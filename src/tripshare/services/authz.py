from __future__ import annotations

from typing import Protocol


class Repository(Protocol):
    async def fetchval(self, query: str, *args: object) -> object: ...


class AuthorizationError(PermissionError):
    pass


async def is_trip_member(repo: Repository, user_id: int, trip_id: int) -> bool:
    member_id = await repo.fetchval(
        "SELECT user_id FROM trip_members WHERE trip_id = $1 AND user_id = $2",
        trip_id,
        user_id,
    )
    return member_id is not None


async def assert_trip_member(repo: Repository, user_id: int, trip_id: int) -> None:
    if not await is_trip_member(repo, user_id, trip_id):
        raise AuthorizationError("You are not a member of this trip.")


async def is_trip_owner(repo: Repository, user_id: int, trip_id: int) -> bool:
    owner_id = await repo.fetchval(
        "SELECT created_by FROM trips WHERE id = $1",
        trip_id,
    )
    return owner_id == user_id


async def assert_trip_owner(repo: Repository, user_id: int, trip_id: int) -> None:
    if not await is_trip_owner(repo, user_id, trip_id):
        raise AuthorizationError("Only the trip owner can do this.")


async def assert_group_in_trip(repo: Repository, group_id: int, trip_id: int) -> None:
    owner_trip = await repo.fetchval(
        "SELECT trip_id FROM sub_groups WHERE id = $1",
        group_id,
    )
    if owner_trip != trip_id:
        raise AuthorizationError("This group does not belong to the trip.")
