"""Who owes whom: two derivations of debt relations.

- :func:`minimize_transactions` (Mode A) works from the balance vector and
  produces a minimal-transaction settlement plan.  Used for summaries and
  settlement suggestions.
- :func:`pairwise_debts` (Mode B) works from raw expense splits and shows
  the consolidated two-party net between each pair of members.  Used for
  group detail and audit views.

The two modes are not expected to agree: Mode A reroutes debt through
whoever is convenient, Mode B keeps the provenance of each debt.

All arithmetic is in integer minor units, so a balance either is zero or
is at least one cent away from it and no epsilon is needed.
"""

from __future__ import annotations

import uuid
from collections.abc import Hashable, Iterable, Mapping
from decimal import Decimal
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict

from splitledger.ledger.money import from_minor, to_minor


class DebtRelation(BaseModel):
    """A derived, never-persisted ``from_user_id → to_user_id`` debt."""

    model_config = ConfigDict(frozen=True)

    from_user_id: Any
    to_user_id: Any
    amount: Decimal
    group_id: uuid.UUID | None = None


class SplitRecord(Protocol):
    user_id: Any
    amount: Decimal


class ExpenseRecord(Protocol):
    payer_id: Any
    splits: Iterable[SplitRecord]


class SettlementRecord(Protocol):
    from_user_id: Any
    to_user_id: Any
    amount: Decimal


# ── Mode A ────────────────────────────────────────────────────────────────────


def minimize_transactions(
    balances: Mapping[Hashable, Decimal] | Iterable[tuple[Hashable, Decimal]],
    *,
    group_id: uuid.UUID | None = None,
) -> list[DebtRelation]:
    """Greedy creditor/debtor matching over a balance vector.

    Creditors (positive balance) are taken largest first and debtors
    (negative balance) most negative first; ties keep the input order.
    Each step settles ``min(credit, |debt|)`` between the current pair and
    advances past whichever side reached zero.

    Args:
        balances: ``{member: balance}`` or ordered ``(member, balance)``
            pairs.  Members at zero may be included and are ignored.
        group_id: Optional group tag copied onto every relation.

    Returns:
        Relations whose amounts, when paid, bring every balance to zero.
    """
    pairs = balances.items() if isinstance(balances, Mapping) else balances
    minor = [(member, to_minor(amount)) for member, amount in pairs]

    creditors = sorted(
        ([member, amount] for member, amount in minor if amount > 0),
        key=lambda item: item[1],
        reverse=True,
    )
    debtors = sorted(
        ([member, amount] for member, amount in minor if amount < 0),
        key=lambda item: item[1],
    )
    # sorted(reverse=True) keeps ties in input order as well.

    relations: list[DebtRelation] = []
    c = d = 0
    while c < len(creditors) and d < len(debtors):
        creditor, debtor = creditors[c], debtors[d]
        amount = min(creditor[1], -debtor[1])

        relations.append(
            DebtRelation(
                from_user_id=debtor[0],
                to_user_id=creditor[0],
                amount=from_minor(amount),
                group_id=group_id,
            )
        )
        creditor[1] -= amount
        debtor[1] += amount

        if creditor[1] == 0:
            c += 1
        if debtor[1] == 0:
            d += 1

    return relations


# ── Mode B ────────────────────────────────────────────────────────────────────


def pairwise_debts(
    expenses: Iterable[ExpenseRecord],
    settlements: Iterable[SettlementRecord] = (),
    *,
    group_id: uuid.UUID | None = None,
) -> list[DebtRelation]:
    """Transaction-derived debts, netted per pair of members.

    Every split line whose participant is not the payer adds to
    ``debt[(participant, payer)]``.  Each settlement ``from → to`` passed
    in counts as ``to`` owing ``from`` the settled amount, which cancels
    against the debt it paid off.  Opposing debts between the same two
    members are then netted into a single relation; pairs that cancel
    exactly are dropped.

    Args:
        expenses: Records with ``payer_id`` and ``splits`` (each with
            ``user_id`` and ``amount``).  Pass active expenses only.
        settlements: Confirmed settlements to subtract.  Leave empty for
            the gross, expenses-only view.
        group_id: Optional group tag copied onto every relation.

    Returns:
        One relation per pair with a non-zero net, ordered by the first
        appearance of the pair.
    """
    debt: dict[tuple[Hashable, Hashable], int] = {}

    def _add(ower: Hashable, owed: Hashable, amount: int) -> None:
        debt[(ower, owed)] = debt.get((ower, owed), 0) + amount

    for expense in expenses:
        for split in expense.splits:
            if split.user_id != expense.payer_id:
                _add(split.user_id, expense.payer_id, to_minor(split.amount))

    for settlement in settlements:
        _add(settlement.to_user_id, settlement.from_user_id, to_minor(settlement.amount))

    relations: list[DebtRelation] = []
    seen: set[frozenset[Hashable]] = set()
    for (ower, owed), amount in debt.items():
        pair = frozenset((ower, owed))
        if pair in seen:
            continue
        seen.add(pair)

        net = amount - debt.get((owed, ower), 0)
        if net == 0:
            continue
        debtor, creditor = (ower, owed) if net > 0 else (owed, ower)
        relations.append(
            DebtRelation(
                from_user_id=debtor,
                to_user_id=creditor,
                amount=from_minor(abs(net)),
                group_id=group_id,
            )
        )

    return relations
