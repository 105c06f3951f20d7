"""Read-only views over ledger state.

- ``group_balances`` — every member's balance in a group
- ``suggested_settlements`` — Mode A, the minimal payment plan
- ``gross_transaction_debts`` — Mode B over expense splits only
- ``net_outstanding_debts`` — Mode B with confirmed settlements subtracted
- ``group_expense_total`` — what the group has spent, over active expenses
- ``user_summary`` — one user's position across all their groups
- ``group_activity`` — the recent activity trail

None of these take the group lock; a balance that changes between read
and response is acceptable for presentation.
"""

from __future__ import annotations

import uuid
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from splitledger.errors import NotFound
from splitledger.ledger.balance import get_balances
from splitledger.ledger.debts import DebtRelation, minimize_transactions, pairwise_debts
from splitledger.ledger.models import ActivityLog, Group, SettlementStatus
from splitledger.ledger.repository import (
    count_pending_settlements,
    get_active_expenses,
    get_expense_total,
    get_group,
    get_recent_activity,
    get_settlements,
    get_user_groups,
)


class MemberBalance(BaseModel):
    """A member's signed balance: positive means the group owes them."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    balance: Decimal


class GroupPosition(BaseModel):
    """One user's balance in one group."""

    model_config = ConfigDict(frozen=True)

    group_id: uuid.UUID
    name: str
    currency: str
    balance: Decimal
    member_count: int


class UserSummary(BaseModel):
    """A user's position across every group they belong to.

    Totals add balances across groups without currency conversion.
    """

    user_id: int
    total_owed: Decimal = Field(description="What the user's groups owe the user.")
    total_owe: Decimal = Field(description="What the user owes their groups.")
    net_balance: Decimal
    pending_settlements: int
    groups: list[GroupPosition] = Field(default_factory=list)
    debt_relations: list[DebtRelation] = Field(default_factory=list)


async def group_balances(session: AsyncSession, group_id: uuid.UUID) -> list[MemberBalance]:
    """Every member's balance in the group, in join order."""
    await _require_group(session, group_id)
    balances = await get_balances(session, group_id)
    return [MemberBalance(user_id=user, balance=amount) for user, amount in balances.items()]


async def suggested_settlements(session: AsyncSession, group_id: uuid.UUID) -> list[DebtRelation]:
    """Minimal set of payments that would bring every balance to zero."""
    await _require_group(session, group_id)
    balances = await get_balances(session, group_id)
    return minimize_transactions(balances, group_id=group_id)


async def gross_transaction_debts(session: AsyncSession, group_id: uuid.UUID) -> list[DebtRelation]:
    """Who owes whom according to expense splits alone.

    Confirmed settlements are ignored, so this is the history of debt as
    it was incurred rather than what is still outstanding.
    """
    await _require_group(session, group_id)
    expenses = await get_active_expenses(session, group_id)
    return pairwise_debts(expenses, group_id=group_id)


async def net_outstanding_debts(session: AsyncSession, group_id: uuid.UUID) -> list[DebtRelation]:
    """Who still owes whom: expense-split debts minus confirmed settlements."""
    await _require_group(session, group_id)
    expenses = await get_active_expenses(session, group_id)
    settlements = await get_settlements(
        session,
        group_id=group_id,
        status=SettlementStatus.CONFIRMED,
    )
    return pairwise_debts(expenses, settlements, group_id=group_id)


async def group_expense_total(session: AsyncSession, group_id: uuid.UUID) -> Decimal:
    """Total of the group's active expenses; edited and deleted ones are excluded."""
    await _require_group(session, group_id)
    return await get_expense_total(session, group_id)


async def user_summary(session: AsyncSession, user_id: int) -> UserSummary:
    """Summarise a user's balances, pending settlements and debts.

    Debt relations are Mode A per group, limited to relations involving
    the user, and tagged with their group.
    """
    groups = await get_user_groups(session, user_id)

    total_owed = Decimal("0.00")
    total_owe = Decimal("0.00")
    positions: list[GroupPosition] = []
    relations: list[DebtRelation] = []

    for group in groups:
        balances = await get_balances(session, group.id)
        balance = balances.get(user_id, Decimal("0.00"))
        if balance > 0:
            total_owed += balance
        else:
            total_owe += -balance

        positions.append(
            GroupPosition(
                group_id=group.id,
                name=group.name,
                currency=group.currency,
                balance=balance,
                member_count=len(balances),
            )
        )
        relations.extend(
            relation
            for relation in minimize_transactions(balances, group_id=group.id)
            if user_id in (relation.from_user_id, relation.to_user_id)
        )

    return UserSummary(
        user_id=user_id,
        total_owed=total_owed,
        total_owe=total_owe,
        net_balance=total_owed - total_owe,
        pending_settlements=await count_pending_settlements(session, user_id),
        groups=positions,
        debt_relations=relations,
    )


async def group_activity(
    session: AsyncSession,
    group_id: uuid.UUID,
    limit: int = 20,
) -> list[ActivityLog]:
    """The group's most recent activity records, newest first."""
    await _require_group(session, group_id)
    return await get_recent_activity(session, group_id, limit=limit)


async def _require_group(session: AsyncSession, group_id: uuid.UUID) -> Group:
    group = await get_group(session, group_id)
    if group is None:
        raise NotFound("Group not found.", details={"group_id": str(group_id)})
    return group
