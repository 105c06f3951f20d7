"""Balance derivation from ledger replay.

A member's balance is **always derived**, never stored: it is the sum of
their ledger lines within the group.  Positive means the group owes the
member; negative means the member owes the group.

The pure helpers here build the lines for each kind of ledger event and
fold lines into a balance map.  :func:`get_balances` and
:func:`get_balance` run the same fold against the store.
"""

from __future__ import annotations

import uuid
from collections.abc import Hashable, Iterable, Mapping
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from splitledger.ledger.money import from_minor, to_minor

# A ledger line as (member, signed minor units).
Line = tuple[Hashable, int]


def expense_lines(payer: Hashable, splits: Iterable[tuple[Hashable, Decimal]]) -> list[Line]:
    """Build the ledger lines for applying an expense.

    Every participant is debited their owed amount and the payer is
    credited the total of all owed amounts.  A payer who is also a
    participant is not skipped: their own share nets out against the
    credit.

    Args:
        payer: The member who paid.
        splits: ``(member, owed_amount)`` pairs.

    Returns:
        Lines with one entry per distinct member, in first-seen order
        (participants first, then the payer if not a participant).
    """
    deltas: dict[Hashable, int] = {}
    total = 0
    for member, owed in splits:
        owed_minor = to_minor(owed)
        deltas[member] = deltas.get(member, 0) - owed_minor
        total += owed_minor
    deltas[payer] = deltas.get(payer, 0) + total
    return list(deltas.items())


def settlement_lines(from_user: Hashable, to_user: Hashable, amount: Decimal) -> list[Line]:
    """Build the ledger lines for a confirmed settlement.

    The payer's debt shrinks (balance moves up) and the recipient's credit
    shrinks by the same amount: the inverse sign of an expense, since a
    settlement discharges debt rather than creating it.
    """
    amount_minor = to_minor(amount)
    return [(from_user, amount_minor), (to_user, -amount_minor)]


def reversal_lines(lines: Iterable[Line]) -> list[Line]:
    """Return the exact negation of *lines*."""
    return [(member, -amount) for member, amount in lines]


def fold_balances(
    lines: Iterable[Line],
    members: Iterable[Hashable] = (),
) -> dict[Hashable, int]:
    """Fold ledger lines into a balance map in minor units.

    Members listed in *members* appear with a zero balance even when they
    have no lines yet; they come first, in the given order.
    """
    balances: dict[Hashable, int] = {member: 0 for member in members}
    for member, amount in lines:
        balances[member] = balances.get(member, 0) + amount
    return balances


def is_zero_sum(balances: Mapping[Hashable, int]) -> bool:
    """Return ``True`` when the balances of a group add up to exactly zero."""
    return sum(balances.values()) == 0


def to_decimal_balances(balances: Mapping[Hashable, int]) -> dict[Hashable, Decimal]:
    """Convert a minor-unit balance map to two-place decimals."""
    return {member: from_minor(amount) for member, amount in balances.items()}


async def get_balances(session: AsyncSession, group_id: uuid.UUID) -> dict[int, Decimal]:
    """Derive every member's balance in a group.

    Members without any ledger lines get a zero balance.

    Args:
        session: Active async database session.
        group_id: The group to derive balances for.

    Returns:
        ``{user_id: balance}`` ordered by join time, then any former
        member that still has ledger lines.
    """
    from splitledger.ledger.repository import get_line_totals, get_member_ids

    members = await get_member_ids(session, group_id)
    totals = await get_line_totals(session, group_id)
    return to_decimal_balances(fold_balances(totals.items(), members))


async def get_balance(session: AsyncSession, group_id: uuid.UUID, user_id: int) -> Decimal:
    """Derive one member's balance; zero for a member with no lines."""
    from splitledger.ledger.repository import get_line_totals

    totals = await get_line_totals(session, group_id, user_id=user_id)
    return from_minor(totals.get(user_id, 0))
