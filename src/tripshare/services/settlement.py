from __future__ import annotations

from dataclasses import dataclass
from typing import List

from tripshare.services.ledger import DebtMatrix

# Nets at or below one minor unit are rounding noise.
ROUNDING_SLACK_CENTS = 1


@dataclass(frozen=True, slots=True)
class Balance:
    debtor_id: int
    creditor_id: int
    amount_cents: int


def simplify(matrix: DebtMatrix) -> List[Balance]:
    balances: list[Balance] = []

    for a, b in matrix.pairs():
        net = matrix.get(a, b) - matrix.get(b, a)
        if net > ROUNDING_SLACK_CENTS:
            balances.append(Balance(debtor_id=a, creditor_id=b, amount_cents=net))
        elif -net > ROUNDING_SLACK_CENTS:
            balances.append(Balance(debtor_id=b, creditor_id=a, amount_cents=-net))

    balances.sort(key=lambda x: (x.debtor_id, x.creditor_id))
    return balances
