from __future__ import annotations

import secrets
import string
from typing import Any, Iterable, Optional, Sequence

import asyncpg

from tripshare.db.models import (
    Expense,
    Member,
    Payment,
    PromptPayKind,
    Share,
    SplitTarget,
    SplitType,
    SubGroup,
    Trip,
)
from tripshare.logging import get_logger, sql_logger

JOIN_CODE_ALPHABET = string.ascii_uppercase + string.digits
JOIN_CODE_LENGTH = 6


class Database:
    def __init__(self, dsn: str) -> None:
        self._dsn = dsn
        self._pool: asyncpg.Pool | None = None
        self._log = get_logger(__name__)

    async def connect(self) -> None:
        if self._pool is None:
            # asyncpg expects a plain postgresql:// scheme, without "+asyncpg"
            dsn = self._dsn.replace("+asyncpg", "")
            self._pool = await asyncpg.create_pool(dsn)
            self._log.info("db.pool.created")

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            self._log.info("db.pool.closed")

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        await self._ensure_pool()
        assert self._pool
        sql_logger.debug("sql.fetch", query=query, args=args)
        return await self._pool.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        await self._ensure_pool()
        assert self._pool
        sql_logger.debug("sql.fetchrow", query=query, args=args)
        return await self._pool.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        await self._ensure_pool()
        assert self._pool
        sql_logger.debug("sql.fetchval", query=query, args=args)
        return await self._pool.fetchval(query, *args)

    async def execute(self, query: str, *args: Any) -> str:
        await self._ensure_pool()
        assert self._pool
        sql_logger.debug("sql.execute", query=query, args=args)
        return await self._pool.execute(query, *args)

    async def executemany(self, command: str, args: Iterable[Iterable[Any]]) -> None:
        await self._ensure_pool()
        assert self._pool
        sql_logger.debug("sql.executemany", query=command)
        await self._pool.executemany(command, args)

    async def _ensure_pool(self) -> None:
        if self._pool is None:
            await self.connect()


def generate_join_code() -> str:
    return "".join(secrets.choice(JOIN_CODE_ALPHABET) for _ in range(JOIN_CODE_LENGTH))


def _member_from_row(row: Any) -> Member:
    kind = row.get("promptpay_kind")
    return Member(
        id=int(row["id"]),
        display_name=row.get("display_name") or row.get("username"),
        promptpay_id=row.get("promptpay_id"),
        promptpay_kind=PromptPayKind(kind) if kind else None,
    )


def _expense_from_row(row: Any, shares: Sequence[Share] | None) -> Expense:
    return Expense(
        id=int(row["id"]),
        trip_id=int(row["trip_id"]),
        payer_id=int(row["payer_id"]),
        title=row["title"],
        amount_cents=int(row["amount_cents"]),
        split_type=SplitType(row["split_type"]),
        split_target=SplitTarget(row["split_target"]),
        split_group_id=row.get("split_group_id"),
        shares=shares,
    )


def _payment_from_row(row: Any) -> Payment:
    return Payment(
        id=int(row["id"]),
        trip_id=int(row["trip_id"]),
        from_id=int(row["from_user_id"]),
        to_id=int(row["to_user_id"]),
        amount_cents=int(row["amount_cents"]),
        slip_url=row.get("slip_url"),
    )


class TripShareRepository:
    def __init__(self, db: Database) -> None:
        self.db = db

    async def ensure_user(self, tg_id: int, username: Optional[str], full_name: Optional[str]) -> int:
        row = await self.db.fetchrow(
            """
            INSERT INTO users (tg_id, username, display_name)
            VALUES ($1, $2, $3)
            ON CONFLICT (tg_id) DO UPDATE
                SET username = EXCLUDED.username,
                    display_name = COALESCE(users.display_name, EXCLUDED.display_name)
            RETURNING id
            """,
            tg_id,
            username,
            full_name,
        )
        assert row is not None
        return int(row["id"])

    async def get_user_by_username(self, username: str) -> asyncpg.Record | None:
        clean = username.lstrip("@")
        return await self.db.fetchrow("SELECT * FROM users WHERE username = $1", clean)

    async def set_promptpay(self, user_id: int, promptpay_id: str, kind: PromptPayKind) -> None:
        await self.db.execute(
            "UPDATE users SET promptpay_id = $1, promptpay_kind = $2 WHERE id = $3",
            promptpay_id,
            kind.value,
            user_id,
        )

    # trips

    async def create_trip(self, name: str, created_by: int) -> Trip:
        row = await self.db.fetchrow(
            """
            INSERT INTO trips (name, code, created_by)
            VALUES ($1, $2, $3)
            RETURNING *
            """,
            name,
            generate_join_code(),
            created_by,
        )
        assert row is not None
        await self.add_trip_member(int(row["id"]), created_by)
        return Trip(id=int(row["id"]), name=row["name"], code=row["code"], created_by=row["created_by"])

    async def list_user_trips(self, user_id: int) -> list[Trip]:
        rows = await self.db.fetch(
            """
            SELECT t.*
            FROM trips t
            JOIN trip_members tm ON tm.trip_id = t.id
            WHERE tm.user_id = $1
            ORDER BY t.created_at DESC, t.id DESC
            """,
            user_id,
        )
        return [Trip(id=int(r["id"]), name=r["name"], code=r["code"], created_by=r["created_by"]) for r in rows]

    async def get_trip_by_code(self, code: str) -> Trip | None:
        row = await self.db.fetchrow("SELECT * FROM trips WHERE code = $1", code.strip().upper())
        if row is None:
            return None
        return Trip(id=int(row["id"]), name=row["name"], code=row["code"], created_by=row["created_by"])

    async def add_trip_member(self, trip_id: int, user_id: int) -> None:
        await self.db.execute(
            """
            INSERT INTO trip_members (trip_id, user_id)
            VALUES ($1, $2)
            ON CONFLICT (trip_id, user_id) DO NOTHING
            """,
            trip_id,
            user_id,
        )

    async def remove_trip_member(self, trip_id: int, user_id: int) -> None:
        await self.db.execute(
            """
            DELETE FROM sub_group_members
            WHERE user_id = $2
              AND sub_group_id IN (SELECT id FROM sub_groups WHERE trip_id = $1)
            """,
            trip_id,
            user_id,
        )
        await self.db.execute(
            "DELETE FROM trip_members WHERE trip_id = $1 AND user_id = $2",
            trip_id,
            user_id,
        )

    async def list_trip_members(self, trip_id: int) -> list[Member]:
        rows = await self.db.fetch(
            """
            SELECT u.*
            FROM trip_members tm
            JOIN users u ON u.id = tm.user_id
            WHERE tm.trip_id = $1
            ORDER BY u.id
            """,
            trip_id,
        )
        return [_member_from_row(row) for row in rows]

    # sub-groups

    async def create_subgroup(self, trip_id: int, name: str) -> SubGroup:
        row = await self.db.fetchrow(
            "INSERT INTO sub_groups (trip_id, name) VALUES ($1, $2) RETURNING *",
            trip_id,
            name,
        )
        assert row is not None
        return SubGroup(id=int(row["id"]), trip_id=int(row["trip_id"]), name=row["name"])

    async def get_subgroup(self, group_id: int) -> SubGroup | None:
        row = await self.db.fetchrow("SELECT * FROM sub_groups WHERE id = $1", group_id)
        if row is None:
            return None
        return SubGroup(id=int(row["id"]), trip_id=int(row["trip_id"]), name=row["name"])

    async def list_trip_subgroups(self, trip_id: int) -> list[SubGroup]:
        rows = await self.db.fetch("SELECT * FROM sub_groups WHERE trip_id = $1 ORDER BY id", trip_id)
        return [SubGroup(id=int(r["id"]), trip_id=int(r["trip_id"]), name=r["name"]) for r in rows]

    async def join_subgroup(self, group_id: int, user_id: int) -> None:
        await self.db.execute(
            """
            INSERT INTO sub_group_members (sub_group_id, user_id)
            VALUES ($1, $2)
            ON CONFLICT (sub_group_id, user_id) DO NOTHING
            """,
            group_id,
            user_id,
        )

    async def delete_subgroup(self, group_id: int) -> None:
        # GROUP expenses keep their row; split_group_id is nulled by the FK.
        await self.db.execute("DELETE FROM sub_group_members WHERE sub_group_id = $1", group_id)
        await self.db.execute("DELETE FROM sub_groups WHERE id = $1", group_id)

    async def leave_subgroup(self, group_id: int, user_id: int) -> None:
        await self.db.execute(
            "DELETE FROM sub_group_members WHERE sub_group_id = $1 AND user_id = $2",
            group_id,
            user_id,
        )

    async def list_group_members(self, group_id: int) -> list[Member]:
        rows = await self.db.fetch(
            """
            SELECT u.*
            FROM sub_group_members sgm
            JOIN users u ON u.id = sgm.user_id
            WHERE sgm.sub_group_id = $1
            ORDER BY u.id
            """,
            group_id,
        )
        return [_member_from_row(row) for row in rows]

    # expenses

    async def create_expense(
        self,
        trip_id: int,
        payer_id: int,
        created_by: int,
        title: str,
        amount_cents: int,
        split_type: SplitType,
        split_target: SplitTarget,
        split_group_id: Optional[int] = None,
        shares: Sequence[Share] | None = None,
    ) -> Expense:
        row = await self.db.fetchrow(
            """
            INSERT INTO expenses (
                trip_id, payer_id, created_by, title, amount_cents,
                split_type, split_target, split_group_id
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            RETURNING *
            """,
            trip_id,
            payer_id,
            created_by,
            title,
            amount_cents,
            split_type.value,
            split_target.value,
            split_group_id,
        )
        assert row is not None
        # Only CUSTOM splits persist shares; ALL/GROUP are resolved on read.
        if split_target == SplitTarget.CUSTOM and shares:
            await self.db.executemany(
                """
                INSERT INTO expense_shares (expense_id, user_id, amount_cents)
                VALUES ($1, $2, $3)
                """,
                ((row["id"], share.member_id, share.amount_cents) for share in shares),
            )
        return _expense_from_row(row, list(shares or ()) if split_target == SplitTarget.CUSTOM else None)

    async def list_trip_expenses(self, trip_id: int) -> list[Expense]:
        rows = await self.db.fetch(
            "SELECT * FROM expenses WHERE trip_id = $1 ORDER BY created_at, id",
            trip_id,
        )
        share_rows = await self.db.fetch(
            """
            SELECT es.expense_id, es.user_id, es.amount_cents
            FROM expense_shares es
            JOIN expenses e ON e.id = es.expense_id
            WHERE e.trip_id = $1
            ORDER BY es.expense_id, es.user_id
            """,
            trip_id,
        )
        shares: dict[int, list[Share]] = {}
        for sr in share_rows:
            shares.setdefault(int(sr["expense_id"]), []).append(
                Share(member_id=int(sr["user_id"]), amount_cents=int(sr["amount_cents"]))
            )

        expenses: list[Expense] = []
        for row in rows:
            frozen = shares.get(int(row["id"]), []) if row["split_target"] == SplitTarget.CUSTOM.value else None
            expenses.append(_expense_from_row(row, frozen))
        return expenses

    # payments

    async def record_payment(
        self,
        trip_id: int,
        from_id: int,
        to_id: int,
        amount_cents: int,
        slip_url: Optional[str] = None,
    ) -> Payment:
        row = await self.db.fetchrow(
            """
            INSERT INTO payments (trip_id, from_user_id, to_user_id, amount_cents, slip_url)
            VALUES ($1, $2, $3, $4, $5)
            RETURNING *
            """,
            trip_id,
            from_id,
            to_id,
            amount_cents,
            slip_url,
        )
        assert row is not None
        return _payment_from_row(row)

    async def list_trip_payments(self, trip_id: int) -> list[Payment]:
        rows = await self.db.fetch(
            "SELECT * FROM payments WHERE trip_id = $1 ORDER BY created_at, id",
            trip_id,
        )
        return [_payment_from_row(row) for row in rows]


_global_repo: TripShareRepository | None = None


def set_global_repository(repo: TripShareRepository) -> None:
    global _global_repo
    _global_repo = repo


def get_global_repository() -> TripShareRepository:
    if _global_repo is None:
        raise RuntimeError("Repository is not initialised")
    return _global_repo
