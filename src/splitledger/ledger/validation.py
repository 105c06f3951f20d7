"""Settlement and expense validation rules.

:func:`validate_settlement` checks a proposed settlement before it is
stored.  Hard failures raise the matching :mod:`splitledger.errors` kind;
soft problems (overpayment) come back as a list of warning strings that
the caller may show but that never block the settlement.
"""

from __future__ import annotations

from collections.abc import Collection
from decimal import Decimal

from splitledger.config import settings
from splitledger.errors import InvalidAmount, InvalidRequest, NotFound


def validate_settlement(
    amount: Decimal,
    from_user_id: int,
    to_user_id: int,
    member_ids: Collection[int],
    *,
    note: str | None = None,
    from_balance: Decimal | None = None,
) -> list[str]:
    """Validate a proposed settlement between two group members.

    Args:
        amount: The settlement amount (must be positive).
        from_user_id: Member paying.
        to_user_id: Member receiving.
        member_ids: Members of the group.
        note: Optional free-text note.
        from_balance: The payer's current balance.  If provided, an
            overpayment warning is produced but the settlement is allowed.

    Returns:
        Warning strings (``"WARNING: ..."``).  Empty means no warnings.

    Raises:
        InvalidAmount: If *amount* is not positive.
        NotFound: If either party is not a member of the group.
        InvalidRequest: If both parties are the same member or the note
            is too long.
    """
    if amount <= 0:
        raise InvalidAmount(
            "Settlement amount must be a positive number.",
            details={"amount": str(amount)},
        )

    missing = [user for user in (from_user_id, to_user_id) if user not in member_ids]
    if missing:
        raise NotFound(
            "Both users must be members of the group.",
            details={"missing_user_ids": missing},
        )

    if from_user_id == to_user_id:
        raise InvalidRequest("A member cannot settle with themselves.")

    if note is not None and len(note) > settings.max_note_length:
        raise InvalidRequest(
            f"Settlement note cannot be longer than {settings.max_note_length} characters."
        )

    warnings: list[str] = []
    if from_balance is not None:
        _check_overpayment(warnings, amount, from_balance)
    return warnings


def validate_description(description: str) -> str:
    """Strip and length-check an expense description.

    Raises:
        InvalidRequest: If the description is empty or too long.
    """
    cleaned = description.strip()
    if not cleaned:
        raise InvalidRequest("Please provide a description.")
    if len(cleaned) > settings.max_description_length:
        raise InvalidRequest(
            f"Description cannot be longer than {settings.max_description_length} characters."
        )
    return cleaned


def _check_overpayment(warnings: list[str], amount: Decimal, balance: Decimal) -> None:
    """Append a warning if the settlement exceeds what the payer owes.

    The payer owes the group something only while their balance is
    negative; the outstanding debt is ``abs(balance)``.
    """
    debt = -balance if balance < 0 else Decimal("0")

    if debt == 0:
        warnings.append(
            f"WARNING: The payer does not currently owe anything. "
            f"This settlement of {amount} will create a credit."
        )
    elif amount > debt:
        warnings.append(
            f"WARNING: Settlement amount ({amount}) exceeds the "
            f"outstanding balance ({debt}). The difference will "
            f"become a credit."
        )
