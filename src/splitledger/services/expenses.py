"""Expense lifecycle: create, amend and delete.

Each operation runs as one serialized unit on the group's ledger, so the
expense record, its ledger entry and its activity record are written
together or not at all.

- ``create`` computes the splits, stores the expense and applies it.
- ``amend`` reverses the old expense, stores a replacement and applies it.
- ``delete`` reverses the expense and marks it deleted.

``get``, ``list_for_group`` and ``list_for_user`` read expenses without
taking the group lock.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from splitledger.errors import InvalidRequest, InvalidState, NotFound, Unauthorized
from splitledger.ledger.ledger import BalanceLedger
from splitledger.ledger.models import ActivityAction, Expense, Group, PaymentMethod
from splitledger.ledger.money import format_money, from_minor, to_minor
from splitledger.ledger.repository import (
    get_expense,
    get_expenses,
    get_group,
    get_member_ids,
    save_activity,
    save_expense,
)
from splitledger.ledger.splits import SplitPolicy, SplitShare, compute_splits
from splitledger.ledger.validation import validate_description

logger = logging.getLogger(__name__)


class ExpenseDraft(BaseModel):
    """An expense as submitted by the application layer.

    Amount and weight *values* are checked by the split calculator, which
    raises the ledger's own error kinds; this model only fixes the shape.
    """

    group_id: uuid.UUID
    payer_id: int
    amount: Decimal = Field(..., description="Expense amount, positive, two decimals.")
    split_policy: SplitPolicy = SplitPolicy.EQUAL
    participants: list[int] = Field(
        default_factory=list,
        description="Members sharing the expense; order decides leftover cents.",
    )
    weights: dict[int, Decimal] = Field(
        default_factory=dict,
        description="Percentages or share counts keyed by participant.",
    )
    description: str
    category: str | None = None
    payment_method: PaymentMethod = PaymentMethod.CASH
    event_date: date | None = Field(
        default=None,
        description="Date of the expense. None means today.",
    )


class ExpenseService:
    """Creates, amends and deletes expenses through the balance ledger."""

    def __init__(self, ledger: BalanceLedger) -> None:
        self._ledger = ledger

    async def create(self, draft: ExpenseDraft, created_by: int) -> Expense:
        """Record an expense and apply its splits to the group's balances.

        Raises:
            NotFound: Unknown group, or payer / participant not a member.
            Unauthorized: *created_by* is not a member of the group.
            InvalidAmount: Amount not positive or finer than a cent.
            InvalidSplit: The weights do not describe a valid split.
            InvalidRequest: Description empty or too long.
        """

        async def _create(session: AsyncSession, group: Group) -> Expense:
            await _require_member(session, group, created_by)
            expense = await self._store(session, group, draft, created_by)
            await self._ledger.apply_expense(session, group, expense)
            await save_activity(
                session,
                group_id=group.id,
                user_id=created_by,
                action=ActivityAction.EXPENSE_CREATED,
                description=(
                    f"Added expense: {expense.description} "
                    f"({format_money(expense.amount, group.currency)})"
                ),
                details={"expense_id": str(expense.id)},
            )
            return expense

        expense = await self._ledger.run(draft.group_id, _create)
        logger.info("Created expense %s in group %s", expense.id, draft.group_id)
        return expense

    async def amend(self, expense_id: uuid.UUID, draft: ExpenseDraft, acting_user_id: int) -> Expense:
        """Replace an expense: reverse its effect, then apply the new version.

        The old row is kept for the audit trail and points at its
        replacement through ``superseded_by``.

        Returns:
            The replacement :class:`Expense`.

        Raises:
            NotFound: Unknown expense, or a member referenced by *draft*.
            InvalidRequest: *draft* targets a different group.
            InvalidState: The expense was already superseded or deleted.
            Unauthorized: *acting_user_id* is not a member of the group.
        """
        group_id = await self._group_of(expense_id)
        if draft.group_id != group_id:
            raise InvalidRequest("An expense cannot be moved to another group.")

        async def _amend(session: AsyncSession, group: Group) -> Expense:
            await _require_member(session, group, acting_user_id)
            old = await _require_active(session, expense_id)
            await self._ledger.reverse_expense(session, group, old)
            new = await self._store(session, group, draft, acting_user_id)
            old.superseded_by = new.id
            await self._ledger.apply_expense(session, group, new)
            await save_activity(
                session,
                group_id=group.id,
                user_id=acting_user_id,
                action=ActivityAction.EXPENSE_EDITED,
                description=(
                    f"Edited expense: {new.description} "
                    f"({format_money(old.amount, group.currency)} → "
                    f"{format_money(new.amount, group.currency)})"
                ),
                details={"expense_id": str(new.id), "replaces": str(old.id)},
            )
            return new

        new = await self._ledger.run(group_id, _amend)
        logger.info("Amended expense %s → %s in group %s", expense_id, new.id, group_id)
        return new

    async def delete(self, expense_id: uuid.UUID, acting_user_id: int) -> Expense:
        """Reverse an expense's balance effect and mark it deleted.

        Raises:
            NotFound: Unknown expense.
            InvalidState: The expense was already superseded or deleted.
            Unauthorized: *acting_user_id* is not a member of the group.
        """
        group_id = await self._group_of(expense_id)

        async def _delete(session: AsyncSession, group: Group) -> Expense:
            await _require_member(session, group, acting_user_id)
            expense = await _require_active(session, expense_id)
            await self._ledger.reverse_expense(session, group, expense)
            expense.deleted_at = datetime.now(timezone.utc)
            await save_activity(
                session,
                group_id=group.id,
                user_id=acting_user_id,
                action=ActivityAction.EXPENSE_DELETED,
                description=(
                    f"Deleted expense: {expense.description} "
                    f"({format_money(expense.amount, group.currency)})"
                ),
                details={"expense_id": str(expense.id)},
            )
            return expense

        expense = await self._ledger.run(group_id, _delete)
        logger.info("Deleted expense %s in group %s", expense_id, group_id)
        return expense

    async def get(self, expense_id: uuid.UUID) -> Expense:
        """Fetch an expense with its splits.

        Raises:
            NotFound: Unknown expense.
        """

        async def _read(session: AsyncSession) -> Expense:
            expense = await get_expense(session, expense_id)
            if expense is None:
                raise NotFound("Expense not found.", details={"expense_id": str(expense_id)})
            return expense

        return await self._ledger.read(_read)

    async def list_for_group(self, group_id: uuid.UUID) -> list[Expense]:
        """A group's active expenses with their splits, newest first.

        Raises:
            NotFound: Unknown group.
        """

        async def _read(session: AsyncSession) -> list[Expense]:
            if await get_group(session, group_id) is None:
                raise NotFound("Group not found.", details={"group_id": str(group_id)})
            return await get_expenses(session, group_id=group_id)

        return await self._ledger.read(_read)

    async def list_for_user(self, user_id: int) -> list[Expense]:
        """Active expenses across every group the user belongs to, newest first."""

        async def _read(session: AsyncSession) -> list[Expense]:
            return await get_expenses(session, user_id=user_id)

        return await self._ledger.read(_read)

    # ── Internals ────────────────────────────────────────────────────────

    async def _group_of(self, expense_id: uuid.UUID) -> uuid.UUID:
        return (await self.get(expense_id)).group_id

    async def _store(
        self,
        session: AsyncSession,
        group: Group,
        draft: ExpenseDraft,
        created_by: int,
    ) -> Expense:
        """Validate *draft* against the group, compute splits, persist."""
        members = set(await get_member_ids(session, group.id))
        if draft.payer_id not in members:
            raise NotFound(
                "The payer is not a member of this group.",
                details={"user_id": draft.payer_id},
            )
        outsiders = [user for user in draft.participants if user not in members]
        if outsiders:
            raise NotFound(
                "Every participant must be a member of this group.",
                details={"missing_user_ids": outsiders},
            )

        description = validate_description(draft.description)
        splits: list[SplitShare] = compute_splits(
            draft.amount,
            draft.split_policy,
            draft.participants,
            draft.weights,
        )
        return await save_expense(
            session,
            group_id=group.id,
            payer_id=draft.payer_id,
            amount=from_minor(to_minor(draft.amount)),
            split_policy=draft.split_policy,
            splits=splits,
            description=description,
            category=draft.category.strip().lower() if draft.category else None,
            payment_method=draft.payment_method,
            event_date=draft.event_date or date.today(),
            created_by=created_by,
        )


async def _require_member(session: AsyncSession, group: Group, user_id: int) -> None:
    if user_id not in await get_member_ids(session, group.id):
        raise Unauthorized(
            "Not authorized to change expenses in this group.",
            details={"user_id": user_id, "group_id": str(group.id)},
        )


async def _require_active(session: AsyncSession, expense_id: uuid.UUID) -> Expense:
    expense = await get_expense(session, expense_id)
    if expense is None:
        raise NotFound("Expense not found.", details={"expense_id": str(expense_id)})
    if not expense.is_active:
        raise InvalidState(
            "Expense has already been edited or deleted.",
            details={"expense_id": str(expense_id)},
        )
    return expense
