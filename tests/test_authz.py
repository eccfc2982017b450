import pytest

from tripshare.services.authz import (
    AuthorizationError,
    assert_group_in_trip,
    assert_trip_member,
    assert_trip_owner,
    is_trip_member,
    is_trip_owner,
)


class StubRepo:
    def __init__(self, owner_id: int, members: set[int], groups: dict[int, int] | None = None) -> None:
        self.owner_id = owner_id
        self.members = members
        self.groups = groups or {}

    async def fetchval(self, query: str, *args: object) -> object:
        if "FROM trips" in query:
            return self.owner_id if args[0] == 1 else None
        if "FROM sub_groups" in query:
            return self.groups.get(args[0])
        return args[1] if args[0] == 1 and args[1] in self.members else None


@pytest.mark.asyncio
async def test_is_trip_member():
    repo = StubRepo(owner_id=42, members={42, 100})
    assert await is_trip_member(repo, 100, 1) is True
    assert await is_trip_member(repo, 100, 2) is False


@pytest.mark.asyncio
async def test_assert_trip_member_denied():
    repo = StubRepo(owner_id=10, members={10})
    with pytest.raises(AuthorizationError):
        await assert_trip_member(repo, 99, 1)


@pytest.mark.asyncio
async def test_assert_trip_owner():
    repo = StubRepo(owner_id=10, members={10, 20})
    await assert_trip_owner(repo, 10, 1)
    with pytest.raises(AuthorizationError):
        await assert_trip_owner(repo, 20, 1)


@pytest.mark.asyncio
async def test_assert_group_in_trip():
    repo = StubRepo(owner_id=10, members={10}, groups={5: 1, 6: 2})
    await assert_group_in_trip(repo, 5, 1)
    with pytest.raises(AuthorizationError):
        await assert_group_in_trip(repo, 6, 1)
    with pytest.raises(AuthorizationError):
        await assert_group_in_trip(repo, 404, 1)


@pytest.mark.asyncio
async def test_is_trip_owner():
    repo = StubRepo(owner_id=10, members={10, 20})
    assert await is_trip_owner(repo, 10, 1) is True
    assert await is_trip_owner(repo, 20, 1) is False
    assert await is_trip_owner(repo, 10, 2) is False
