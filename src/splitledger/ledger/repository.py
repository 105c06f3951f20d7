"""Database repository for ledger operations.

Async functions for persisting and querying groups, expenses, settlements,
ledger entries and the activity trail.  Every write function adds to the
session and flushes; the caller owns the transaction and the commit.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Sequence
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from splitledger.config import settings
from splitledger.ledger.balance import Line
from splitledger.ledger.models import (
    ActivityAction,
    ActivityLog,
    Expense,
    ExpenseSplit,
    Group,
    GroupMember,
    LedgerEntry,
    LedgerLine,
    MemberRole,
    PaymentMethod,
    Settlement,
    SettlementStatus,
)
from splitledger.ledger.splits import SplitShare


# ── Groups and membership ────────────────────────────────────────────────────


async def create_group(
    session: AsyncSession,
    *,
    name: str,
    created_by: int,
    currency: str | None = None,
) -> Group:
    """Create a group and enrol its creator as an admin member.

    Args:
        session: Active async database session (caller manages commit).
        name: Display name of the group.
        created_by: User ID of the creator.
        currency: Currency code for the group's amounts.  Defaults to
            ``settings.default_currency``.

    Returns:
        The newly created :class:`Group` (with ``id`` populated after flush).
    """
    group = Group(
        name=name,
        created_by=created_by,
        currency=(currency or settings.default_currency).upper(),
    )
    group.members.append(GroupMember(user_id=created_by, role=MemberRole.ADMIN.value))
    session.add(group)
    await session.flush()
    return group


async def add_member(
    session: AsyncSession,
    group_id: uuid.UUID,
    user_id: int,
    role: MemberRole = MemberRole.MEMBER,
    added_by: int | None = None,
) -> tuple[GroupMember, bool]:
    """Enrol a user in a group, starting them at a zero balance.

    A new membership is recorded in the activity trail as done by
    *added_by* (the user themselves when omitted).

    Returns:
        A tuple of ``(member, created)`` where *created* is ``False`` if
        the user was already a member.
    """
    stmt = select(GroupMember).where(
        GroupMember.group_id == group_id,
        GroupMember.user_id == user_id,
    )
    existing = (await session.execute(stmt)).scalar_one_or_none()
    if existing is not None:
        return existing, False

    member = GroupMember(group_id=group_id, user_id=user_id, role=role.value)
    session.add(member)
    await session.flush()
    await save_activity(
        session,
        group_id=group_id,
        user_id=user_id if added_by is None else added_by,
        action=ActivityAction.MEMBER_ADDED,
        description=f"User {user_id} joined the group",
        details={"user_id": user_id, "role": role.value},
    )
    return member, True


async def get_group(session: AsyncSession, group_id: uuid.UUID) -> Group | None:
    """Look up a group by ID."""
    return await session.get(Group, group_id)


async def get_member_ids(session: AsyncSession, group_id: uuid.UUID) -> list[int]:
    """Return the user IDs of a group's members, in join order."""
    stmt = (
        select(GroupMember.user_id)
        .where(GroupMember.group_id == group_id)
        .order_by(GroupMember.joined_at, GroupMember.id)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_user_groups(session: AsyncSession, user_id: int) -> list[Group]:
    """Return every group the user is a member of, oldest first."""
    stmt = (
        select(Group)
        .join(GroupMember, GroupMember.group_id == Group.id)
        .where(GroupMember.user_id == user_id)
        .order_by(Group.created_at)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


# ── Expenses ─────────────────────────────────────────────────────────────────


async def save_expense(
    session: AsyncSession,
    *,
    group_id: uuid.UUID,
    payer_id: int,
    amount: Decimal,
    split_policy: str,
    splits: Sequence[SplitShare],
    description: str,
    event_date: date,
    created_by: int,
    category: str | None = None,
    payment_method: PaymentMethod = PaymentMethod.CASH,
) -> Expense:
    """Persist an expense together with its split lines.

    Args:
        session: Active async database session (caller manages commit).
        group_id: Group the expense belongs to.
        payer_id: User who paid.
        amount: Expense amount (positive, two decimals).
        split_policy: ``'equal'``, ``'percentage'`` or ``'share'``.
        splits: Output of :func:`~splitledger.ledger.splits.compute_splits`.
        description: Short description of the expense.
        event_date: Date the expense happened.
        created_by: User who recorded the expense.
        category: Optional category label.
        payment_method: How the payer paid.

    Returns:
        The newly created :class:`Expense` with its ``splits`` populated.
    """
    expense = Expense(
        group_id=group_id,
        payer_id=payer_id,
        amount=amount,
        split_policy=str(split_policy),
        description=description,
        category=category,
        payment_method=PaymentMethod(payment_method).value,
        event_date=event_date,
        created_by=created_by,
        splits=[
            ExpenseSplit(
                user_id=share.user_id,
                position=position,
                amount=share.amount,
                percentage=share.percentage,
                shares=share.shares,
            )
            for position, share in enumerate(splits)
        ],
    )
    session.add(expense)
    await session.flush()
    return expense


async def get_expense(session: AsyncSession, expense_id: uuid.UUID) -> Expense | None:
    """Look up an expense by ID (splits are loaded eagerly)."""
    return await session.get(Expense, expense_id)


async def get_active_expenses(session: AsyncSession, group_id: uuid.UUID) -> list[Expense]:
    """Return a group's active (non-superseded, non-deleted) expenses.

    Returns:
        Expenses ordered by ``event_date`` then ``created_at``.
    """
    stmt = (
        select(Expense)
        .where(
            Expense.group_id == group_id,
            Expense.superseded_by.is_(None),
            Expense.deleted_at.is_(None),
        )
        .order_by(Expense.event_date, Expense.created_at)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_expenses(
    session: AsyncSession,
    *,
    group_id: uuid.UUID | None = None,
    user_id: int | None = None,
    limit: int | None = None,
) -> list[Expense]:
    """Return active expenses, newest first.

    Args:
        session: Active async database session.
        group_id: Restrict to one group.
        user_id: Restrict to the groups the user is a member of.
        limit: Maximum number of expenses to return.
    """
    stmt = select(Expense).where(
        Expense.superseded_by.is_(None),
        Expense.deleted_at.is_(None),
    )
    if group_id is not None:
        stmt = stmt.where(Expense.group_id == group_id)
    if user_id is not None:
        stmt = stmt.join(GroupMember, GroupMember.group_id == Expense.group_id).where(
            GroupMember.user_id == user_id
        )
    stmt = stmt.order_by(Expense.event_date.desc(), Expense.created_at.desc())
    if limit is not None:
        stmt = stmt.limit(limit)

    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_expense_total(session: AsyncSession, group_id: uuid.UUID) -> Decimal:
    """Sum the amounts of a group's active expenses."""
    stmt = select(func.coalesce(func.sum(Expense.amount), 0)).where(
        Expense.group_id == group_id,
        Expense.superseded_by.is_(None),
        Expense.deleted_at.is_(None),
    )
    result = await session.execute(stmt)
    return Decimal(result.scalar_one()).quantize(Decimal("0.01"))


# ── Settlements ──────────────────────────────────────────────────────────────


async def save_settlement(
    session: AsyncSession,
    *,
    group_id: uuid.UUID,
    from_user_id: int,
    to_user_id: int,
    amount: Decimal,
    created_by: int,
    payment_method: PaymentMethod = PaymentMethod.CASH,
    note: str | None = None,
) -> Settlement:
    """Persist a new settlement in the ``pending`` state.

    Returns:
        The newly created :class:`Settlement` instance.
    """
    settlement = Settlement(
        group_id=group_id,
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        amount=amount,
        status=SettlementStatus.PENDING.value,
        payment_method=PaymentMethod(payment_method).value,
        note=note,
        created_by=created_by,
    )
    session.add(settlement)
    await session.flush()
    return settlement


async def get_settlement(session: AsyncSession, settlement_id: uuid.UUID) -> Settlement | None:
    """Look up a settlement by ID."""
    return await session.get(Settlement, settlement_id)


async def get_settlements(
    session: AsyncSession,
    *,
    group_id: uuid.UUID | None = None,
    user_id: int | None = None,
    status: SettlementStatus | None = None,
) -> list[Settlement]:
    """Return settlements matching the given filters, newest first.

    Args:
        session: Active async database session.
        group_id: Restrict to one group.
        user_id: Restrict to settlements where the user pays or receives.
        status: Restrict to one status.
    """
    stmt = select(Settlement)
    if group_id is not None:
        stmt = stmt.where(Settlement.group_id == group_id)
    if user_id is not None:
        stmt = stmt.where(
            or_(Settlement.from_user_id == user_id, Settlement.to_user_id == user_id)
        )
    if status is not None:
        stmt = stmt.where(Settlement.status == SettlementStatus(status).value)
    stmt = stmt.order_by(Settlement.created_at.desc())

    result = await session.execute(stmt)
    return list(result.scalars().all())


async def count_pending_settlements(session: AsyncSession, user_id: int) -> int:
    """Count pending settlements where the user pays or receives."""
    stmt = select(func.count(Settlement.id)).where(
        Settlement.status == SettlementStatus.PENDING.value,
        or_(Settlement.from_user_id == user_id, Settlement.to_user_id == user_id),
    )
    result = await session.execute(stmt)
    return int(result.scalar_one())


# ── Ledger entries ───────────────────────────────────────────────────────────


async def save_ledger_entry(
    session: AsyncSession,
    *,
    group_id: uuid.UUID,
    event_type: str,
    lines: Iterable[Line],
    expense_id: uuid.UUID | None = None,
    settlement_id: uuid.UUID | None = None,
) -> LedgerEntry:
    """Append an entry and its lines to the ledger.

    Zero-amount lines are dropped; they carry no information.

    Returns:
        The newly created :class:`LedgerEntry` (with ``id`` populated).
    """
    entry = LedgerEntry(
        group_id=group_id,
        event_type=str(event_type),
        expense_id=expense_id,
        settlement_id=settlement_id,
        lines=[
            LedgerLine(user_id=member, amount_minor=amount)
            for member, amount in lines
            if amount != 0
        ],
    )
    session.add(entry)
    await session.flush()
    return entry


async def get_ledger_entry(
    session: AsyncSession,
    *,
    event_type: str,
    expense_id: uuid.UUID | None = None,
    settlement_id: uuid.UUID | None = None,
) -> LedgerEntry | None:
    """Find the entry recorded for an expense or settlement event, if any."""
    stmt = select(LedgerEntry).where(LedgerEntry.event_type == str(event_type))
    if expense_id is not None:
        stmt = stmt.where(LedgerEntry.expense_id == expense_id)
    if settlement_id is not None:
        stmt = stmt.where(LedgerEntry.settlement_id == settlement_id)
    result = await session.execute(stmt.limit(1))
    return result.scalar_one_or_none()


async def get_line_totals(
    session: AsyncSession,
    group_id: uuid.UUID,
    *,
    user_id: int | None = None,
) -> dict[int, int]:
    """Sum every member's ledger lines within a group.

    Returns:
        ``{user_id: total_minor_units}`` for members that have lines.
    """
    stmt = (
        select(LedgerLine.user_id, func.sum(LedgerLine.amount_minor))
        .join(LedgerEntry, LedgerEntry.id == LedgerLine.entry_id)
        .where(LedgerEntry.group_id == group_id)
        .group_by(LedgerLine.user_id)
    )
    if user_id is not None:
        stmt = stmt.where(LedgerLine.user_id == user_id)

    result = await session.execute(stmt)
    return {member: int(total or 0) for member, total in result.all()}


# ── Activity ─────────────────────────────────────────────────────────────────


async def save_activity(
    session: AsyncSession,
    *,
    group_id: uuid.UUID,
    user_id: int,
    action: str,
    description: str,
    details: dict[str, Any] | None = None,
) -> ActivityLog:
    """Record an action in the group's activity trail. Caller must commit."""
    row = ActivityLog(
        group_id=group_id,
        user_id=user_id,
        action=str(action),
        description=description,
        details=details or {},
    )
    session.add(row)
    await session.flush()
    return row


async def get_recent_activity(
    session: AsyncSession,
    group_id: uuid.UUID,
    limit: int = 20,
) -> list[ActivityLog]:
    """Return the most recent activity records of a group, newest first."""
    stmt = (
        select(ActivityLog)
        .where(ActivityLog.group_id == group_id)
        .order_by(ActivityLog.created_at.desc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())
