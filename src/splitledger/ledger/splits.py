"""Split calculation: how an expense amount is divided among participants.

Provides :func:`compute_splits`, a pure function supporting three policies:

- ``equal`` — everyone owes the same amount
- ``percentage`` — each participant owes their percentage of the amount
- ``share`` — each participant owes in proportion to an integer share count

All arithmetic happens in integer minor units.  Any leftover cents that an
exact division cannot place are handed out one at a time to the first
participants (in the order given) that carry a non-zero weight, so the
owed amounts always add up to the expense amount exactly.
"""

from __future__ import annotations

from collections.abc import Hashable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import StrEnum

from splitledger.config import settings
from splitledger.errors import InvalidAmount, InvalidSplit
from splitledger.ledger.money import from_minor, to_decimal, to_minor

HUNDRED = Decimal("100")

# Percentages are stored with four decimal places.
PERCENT_QUANTUM = Decimal("0.0001")


class SplitPolicy(StrEnum):
    """How an expense is apportioned among its participants."""

    EQUAL = "equal"
    PERCENTAGE = "percentage"
    SHARE = "share"


@dataclass(frozen=True)
class SplitShare:
    """One participant's portion of an expense.

    Attributes:
        user_id: The participant.
        amount: What the participant owes, two decimal places.
        percentage: The supplied percentage (``percentage`` policy only).
        shares: The supplied share count (``share`` policy only).
    """

    user_id: Hashable
    amount: Decimal
    percentage: Decimal | None = None
    shares: int | None = None


def compute_splits(
    amount: Decimal | int | str,
    policy: SplitPolicy | str,
    participants: Iterable[Hashable],
    weights: Mapping[Hashable, Decimal | int | str] | None = None,
    *,
    tolerance: Decimal | None = None,
) -> list[SplitShare]:
    """Divide *amount* among *participants* according to *policy*.

    Args:
        amount: The expense amount (positive, at most two decimals).
        policy: One of :class:`SplitPolicy`.
        participants: Members sharing the expense, in a stable order.  The
            order decides who receives leftover cents.
        weights: Percentages or share counts keyed by participant.  Ignored
            for ``equal``; a missing weight counts as 0.
        tolerance: Allowed deviation of the percentage total from 100.
            Defaults to ``settings.percentage_tolerance``.

    Returns:
        One :class:`SplitShare` per participant, in input order.  The
        amounts sum to *amount* exactly.

    Raises:
        InvalidAmount: If *amount* is not positive or has sub-cent precision.
        InvalidSplit: If participants are empty or duplicated, the policy is
            unknown, percentages do not total 100, shares total zero, or a
            weight is negative / non-integral (shares).
    """
    try:
        policy = SplitPolicy(policy)
    except ValueError as exc:
        raise InvalidSplit(f"Unknown split policy: {policy!r}") from exc

    total_minor = to_minor(amount)
    if total_minor <= 0:
        raise InvalidAmount(
            "Expense amount must be a positive number.",
            details={"amount": str(amount)},
        )

    members = list(participants)
    if not members:
        raise InvalidSplit("An expense needs at least one participant.")
    if len(set(members)) != len(members):
        raise InvalidSplit("Each participant may appear only once.")

    weights = weights or {}

    if policy is SplitPolicy.EQUAL:
        owed = _allocate(total_minor, [Decimal(1)] * len(members))
        shares = [SplitShare(m, from_minor(o)) for m, o in zip(members, owed)]

    elif policy is SplitPolicy.PERCENTAGE:
        pcts = [_percentage(weights.get(m, 0), m) for m in members]
        total_pct = sum(pcts, Decimal("0"))
        limit = settings.percentage_tolerance if tolerance is None else tolerance
        if abs(total_pct - HUNDRED) > limit:
            raise InvalidSplit(
                f"Percentages must add up to 100 (got {total_pct}).",
                details={"total_percentage": str(total_pct)},
            )
        owed = _allocate(total_minor, pcts)
        shares = [
            SplitShare(m, from_minor(o), percentage=p)
            for m, o, p in zip(members, owed, pcts)
        ]

    else:
        counts = [_share_count(weights.get(m, 0), m) for m in members]
        if sum(counts) <= 0:
            raise InvalidSplit("Total shares must be greater than zero.")
        owed = _allocate(total_minor, [Decimal(c) for c in counts])
        shares = [
            SplitShare(m, from_minor(o), shares=c)
            for m, o, c in zip(members, owed, counts)
        ]

    check_split_total(from_minor(total_minor), [s.amount for s in shares])
    return shares


def check_split_total(
    amount: Decimal | int | str,
    owed_amounts: Iterable[Decimal | int | str],
) -> None:
    """Verify that split amounts add up to the expense amount exactly.

    Raises:
        InvalidSplit: If the totals differ by any amount.
    """
    expected = to_minor(amount)
    actual = sum(to_minor(a) for a in owed_amounts)
    if actual != expected:
        raise InvalidSplit(
            f"Split amounts add up to {from_minor(actual)}, "
            f"expected {from_minor(expected)}.",
            details={"expected": str(from_minor(expected)), "actual": str(from_minor(actual))},
        )


def _allocate(total_minor: int, weights: Sequence[Decimal]) -> list[int]:
    """Split *total_minor* proportionally to *weights*, exactly.

    Each slot gets the floor of its proportional share; the leftover units
    (fewer than the number of non-zero weights) go one each to the first
    non-zero slots.
    """
    weight_sum = sum(weights, Decimal("0"))
    allocated = [int((Decimal(total_minor) * w) // weight_sum) for w in weights]

    leftover = total_minor - sum(allocated)
    for index, weight in enumerate(weights):
        if leftover <= 0:
            break
        if weight > 0:
            allocated[index] += 1
            leftover -= 1
    return allocated


def _percentage(raw: Decimal | int | str, member: Hashable) -> Decimal:
    value = to_decimal(raw)
    if not value.is_finite() or value < 0:
        raise InvalidSplit(
            f"Percentage for {member!r} must be a non-negative number.",
            details={"member": str(member)},
        )
    try:
        return value.quantize(PERCENT_QUANTUM)
    except InvalidOperation as exc:
        raise InvalidSplit(
            f"Percentage for {member!r} is out of range.",
            details={"member": str(member)},
        ) from exc


def _share_count(raw: Decimal | int | str, member: Hashable) -> int:
    if isinstance(raw, bool):
        raise InvalidSplit(f"Share count for {member!r} must be an integer.")
    value = to_decimal(raw)
    if not value.is_finite() or value < 0 or value != value.to_integral_value():
        raise InvalidSplit(
            f"Share count for {member!r} must be a non-negative integer.",
            details={"member": str(member)},
        )
    return int(value)
