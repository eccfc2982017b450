from dataclasses import dataclass

import pytest

from tripshare.config import get_settings
from tripshare.db.models import Expense, Member, Payment, SplitTarget, SplitType, SubGroup, Trip
from tripshare.db.repo import set_global_repository
from tripshare.handlers.expenses import cmd_addexpense, cmd_payments
from tripshare.handlers.trips import cmd_deletegroup, cmd_kick, cmd_leavetrip, cmd_newgroup, cmd_trips
from tripshare.services.authz import AuthorizationError

USERS = {"alice": 1, "bob": 2, "carol": 3, "dave": 4}
NAMES = {1: "Alice", 2: "Bob", 3: "Carol", 4: "Dave"}


@dataclass
class FakeUser:
    id: int
    username: str | None = None
    full_name: str = "Tester"


class FakeMessage:
    def __init__(self, text: str, user_id: int) -> None:
        self.text = text
        self.from_user = FakeUser(user_id)
        self.answers: list[str] = []

    async def answer(self, text: str, **kwargs) -> None:
        self.answers.append(text)


class StubRepo:
    """Trip 1 owned by Alice with Alice, Bob and Carol; group 5 belongs to it."""

    def __init__(self) -> None:
        self.db = self
        self.owner_id = 1
        self.members = {1, 2, 3}
        self.groups = {5: SubGroup(id=5, trip_id=1, name="Divers")}
        self.removed: list[tuple[int, int]] = []
        self.deleted_groups: list[int] = []
        self.created_groups: list[str] = []
        self.expenses: list[dict] = []
        self.payments: list[Payment] = []

    async def fetchval(self, query: str, *args: object) -> object:
        if "FROM trips" in query:
            return self.owner_id if args[0] == 1 else None
        if "FROM sub_groups" in query:
            group = self.groups.get(args[0])
            return group.trip_id if group else None
        trip_id, user_id = args
        return user_id if trip_id == 1 and user_id in self.members else None

    async def ensure_user(self, tg_id: int, username: str | None, full_name: str) -> int:
        return tg_id

    async def get_user_by_username(self, username: str):
        user_id = USERS.get(username.lstrip("@"))
        return {"id": user_id} if user_id else None

    async def list_trip_members(self, trip_id: int) -> list[Member]:
        return [Member(i, NAMES[i]) for i in sorted(self.members)]

    async def remove_trip_member(self, trip_id: int, user_id: int) -> None:
        self.removed.append((trip_id, user_id))
        self.members.discard(user_id)

    async def list_user_trips(self, user_id: int) -> list[Trip]:
        if user_id not in self.members:
            return []
        return [Trip(id=1, name="Krabi", code="AB12CD", created_by=self.owner_id)]

    async def get_subgroup(self, group_id: int) -> SubGroup | None:
        return self.groups.get(group_id)

    async def delete_subgroup(self, group_id: int) -> None:
        self.deleted_groups.append(group_id)
        self.groups.pop(group_id, None)

    async def create_subgroup(self, trip_id: int, name: str) -> SubGroup:
        self.created_groups.append(name)
        return SubGroup(id=6, trip_id=trip_id, name=name)

    async def join_subgroup(self, group_id: int, user_id: int) -> None:
        pass

    async def create_expense(self, **kwargs) -> Expense:
        self.expenses.append(dict(kwargs))
        shares = kwargs.pop("shares")
        kwargs.pop("created_by")
        return Expense(
            id=21,
            shares=list(shares or ()) if kwargs["split_target"] == SplitTarget.CUSTOM else None,
            **kwargs,
        )

    async def list_trip_payments(self, trip_id: int) -> list[Payment]:
        return list(self.payments)


@pytest.fixture
def repo(monkeypatch):
    monkeypatch.setenv("BOT_TOKEN", "123:abc")
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/tripshare")
    monkeypatch.setenv("CURRENCY", "THB")
    get_settings.cache_clear()
    stub = StubRepo()
    set_global_repository(stub)  # type: ignore[arg-type]
    yield stub
    get_settings.cache_clear()


@pytest.mark.asyncio
async def test_member_can_leave_trip(repo):
    message = FakeMessage("/leavetrip 1", user_id=2)

    await cmd_leavetrip(message)

    assert repo.removed == [(1, 2)]
    assert message.answers == ["You left trip #1."]


@pytest.mark.asyncio
async def test_owner_cannot_leave_trip(repo):
    message = FakeMessage("/leavetrip 1", user_id=1)

    await cmd_leavetrip(message)

    assert repo.removed == []
    assert "owner cannot leave" in message.answers[0]


@pytest.mark.asyncio
async def test_outsider_cannot_leave_trip(repo):
    with pytest.raises(AuthorizationError):
        await cmd_leavetrip(FakeMessage("/leavetrip 1", user_id=4))
    assert repo.removed == []


@pytest.mark.asyncio
async def test_only_owner_can_kick(repo):
    with pytest.raises(AuthorizationError):
        await cmd_kick(FakeMessage("/kick 1 | @carol", user_id=2))
    assert repo.removed == []

    message = FakeMessage("/kick 1 | @carol", user_id=1)
    await cmd_kick(message)

    assert repo.removed == [(1, 3)]
    assert "removed from trip #1" in message.answers[0]


@pytest.mark.asyncio
async def test_trips_lists_callers_trips(repo):
    owner = FakeMessage("/trips", user_id=1)
    outsider = FakeMessage("/trips", user_id=4)

    await cmd_trips(owner)
    await cmd_trips(outsider)

    assert owner.answers == ["Your trips:\n• #1 Krabi · code AB12CD (owner)"]
    assert "not in any trip" in outsider.answers[0]


@pytest.mark.asyncio
async def test_deletegroup(repo):
    missing = FakeMessage("/deletegroup 99", user_id=2)
    await cmd_deletegroup(missing)
    assert missing.answers == ["Group not found"]

    with pytest.raises(AuthorizationError):
        await cmd_deletegroup(FakeMessage("/deletegroup 5", user_id=4))

    message = FakeMessage("/deletegroup 5", user_id=2)
    await cmd_deletegroup(message)

    assert repo.deleted_groups == [5]
    assert "Divers" in message.answers[0]


@pytest.mark.asyncio
async def test_newgroup_rejects_long_names(repo):
    message = FakeMessage(f"/newgroup 1 | {'x' * 51}", user_id=2)

    await cmd_newgroup(message)

    assert repo.created_groups == []
    assert "at most 50 characters" in message.answers[0]


@pytest.mark.asyncio
async def test_payments_show_member_names(repo):
    repo.payments = [
        Payment(id=1, trip_id=1, from_id=2, to_id=1, amount_cents=10000, slip_url="https://slip/1"),
        Payment(id=2, trip_id=1, from_id=3, to_id=2, amount_cents=550),
    ]
    message = FakeMessage("/payments 1", user_id=3)

    await cmd_payments(message)

    lines = message.answers[0].split("\n")
    assert lines[0] == "Payments:"
    assert lines[1] == "• #1 Bob → Alice: 100.00 THB (slip: https://slip/1)"
    assert lines[2] == "• #2 Carol → Bob: 5.50 THB"


@pytest.mark.asyncio
async def test_addexpense_records_named_payer(repo):
    message = FakeMessage("/addexpense 1 | Dinner | 90 | paid by @bob", user_id=1)

    await cmd_addexpense(message)

    assert repo.expenses[0]["payer_id"] == 2
    assert repo.expenses[0]["created_by"] == 1
    assert repo.expenses[0]["split_target"] == SplitTarget.ALL
    assert message.answers[0].startswith("Expense added: #21 Dinner")


@pytest.mark.asyncio
async def test_addexpense_payer_clause_before_split(repo):
    await cmd_addexpense(FakeMessage("/addexpense 1 | Taxi | 30 | paid by @carol | group 5", user_id=1))

    assert repo.expenses[0]["payer_id"] == 3
    assert repo.expenses[0]["split_target"] == SplitTarget.GROUP
    assert repo.expenses[0]["split_group_id"] == 5


@pytest.mark.asyncio
async def test_addexpense_rejects_payer_outside_trip(repo):
    message = FakeMessage("/addexpense 1 | Dinner | 90 | paid by @dave", user_id=1)

    await cmd_addexpense(message)

    assert repo.expenses == []
    assert message.answers == ["@dave is not a member of this trip"]


@pytest.mark.asyncio
async def test_addexpense_warns_when_exact_amounts_do_not_add_up(repo):
    message = FakeMessage("/addexpense 1 | Boat | 20 | exact @alice=10 @bob=5", user_id=1)

    await cmd_addexpense(message)

    assert repo.expenses[0]["split_type"] == SplitType.EXACT
    assert "Expense added: #21 Boat" in message.answers[0]
    assert "add up to 15.00 THB, not 20.00 THB" in message.answers[0]


@pytest.mark.asyncio
async def test_addexpense_exact_amounts_that_match_have_no_warning(repo):
    message = FakeMessage("/addexpense 1 | Boat | 15 | exact @alice=10 @bob=5", user_id=1)

    await cmd_addexpense(message)

    assert "⚠️" not in message.answers[0]
