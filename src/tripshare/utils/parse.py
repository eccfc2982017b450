from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Optional

from tripshare.db.models import SplitTarget, SplitType

AMOUNT_RE = re.compile(r"^\d+(?:[.,]\d{1,2})?$")
PAYER_RE = re.compile(r"^paid\s+by\s+(\S+)$", re.IGNORECASE)
MAX_TITLE_LENGTH = 100
MAX_GROUP_NAME_LENGTH = 50


def parse_amount(text: str) -> int:
    """
    Parse a user-entered amount into minor units.

    Accepts "300", "300.5", "300.50" and "300,50"; thousands separators and
    more than two fractional digits are rejected.
    """
    value = text.strip()
    if not AMOUNT_RE.match(value):
        raise ValueError(f"Invalid amount: {text!r}")
    try:
        cents = int(Decimal(value.replace(",", ".")) * 100)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount: {text!r}") from exc
    if cents <= 0:
        raise ValueError("Amount must be positive")
    return cents


def format_amount(amount_cents: int) -> str:
    return f"{Decimal(amount_cents).scaleb(-2):.2f}"


def split_args(text: str, command: str) -> list[str]:
    """Drop the leading /command (and any @botname) and split on '|'."""
    body = text.strip()
    if body.startswith("/"):
        head, _, body = body.partition(" ")
        if head.split("@", 1)[0] != f"/{command}":
            raise ValueError(f"Expected /{command}")
    if not body.strip():
        return []
    return [part.strip() for part in body.split("|")]


def parse_int(text: str, what: str = "id") -> int:
    try:
        return int(text.strip())
    except ValueError as exc:
        raise ValueError(f"Invalid {what}: {text!r}") from exc


def parse_title(text: str) -> str:
    title = text.strip()
    if not title:
        raise ValueError("Title is required")
    if len(title) > MAX_TITLE_LENGTH:
        raise ValueError(f"Title must be at most {MAX_TITLE_LENGTH} characters")
    return title


def parse_group_name(text: str) -> str:
    name = text.strip()
    if not name:
        raise ValueError("Group name is required")
    if len(name) > MAX_GROUP_NAME_LENGTH:
        raise ValueError(f"Group name must be at most {MAX_GROUP_NAME_LENGTH} characters")
    return name


@dataclass(slots=True)
class SplitSpec:
    target: SplitTarget
    split_type: SplitType = SplitType.EQUAL
    group_id: Optional[int] = None
    # username -> amount in cents (None for EQUAL custom splits)
    members: dict[str, Optional[int]] = field(default_factory=dict)


def parse_split(text: str) -> SplitSpec:
    """
    Parse the split part of /addexpense.

    - all
    - group <group_id>
    - custom @alice @bob
    - exact @alice=120.00 @bob=80
    """
    parts = text.split()
    if not parts or parts[0].lower() == "all":
        if len(parts) > 1:
            raise ValueError("'all' takes no arguments")
        return SplitSpec(target=SplitTarget.ALL)

    mode = parts[0].lower()
    if mode == "group":
        if len(parts) != 2:
            raise ValueError("Usage: group <group_id>")
        return SplitSpec(target=SplitTarget.GROUP, group_id=parse_int(parts[1], "group id"))

    if mode == "custom":
        members: dict[str, Optional[int]] = {}
        for username in parts[1:]:
            members[_clean_username(username)] = None
        if not members:
            raise ValueError("Custom split needs at least one @user")
        return SplitSpec(target=SplitTarget.CUSTOM, members=members)

    if mode == "exact":
        members = {}
        for item in parts[1:]:
            username, sep, amount = item.partition("=")
            if not sep:
                raise ValueError(f"Expected @user=amount, got {item!r}")
            members[_clean_username(username)] = parse_amount(amount)
        if not members:
            raise ValueError("Exact split needs at least one @user=amount")
        return SplitSpec(target=SplitTarget.CUSTOM, split_type=SplitType.EXACT, members=members)

    raise ValueError(f"Unknown split mode: {parts[0]!r}")


def _clean_username(value: str) -> str:
    username = value.strip().lstrip("@")
    if not username:
        raise ValueError("Empty username")
    return username


def parse_payer(text: str) -> Optional[str]:
    """Username from a ``paid by @user`` clause, or None for any other text."""
    match = PAYER_RE.match(text.strip())
    if not match:
        return None
    return _clean_username(match.group(1))
