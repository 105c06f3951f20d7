"""The balance ledger: the only writer of group balances.

:class:`BalanceLedger` appends entries to the ledger for three kinds of
events: an expense being applied, an expense being reversed (edit or
delete), and a settlement being confirmed.  Balances are folds over those
entries (see :mod:`splitledger.ledger.balance`).

All mutations of one group go through :meth:`BalanceLedger.run`, which

1. serializes them with a per-group :class:`asyncio.Lock`,
2. executes them in a single database transaction,
3. relies on the group's ``ledger_version`` column to detect a writer in
   another process and retries the whole operation when that happens,
4. dispatches :class:`~splitledger.observability.LedgerEvent` hooks once
   the transaction has committed and the lock is released.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
import weakref
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime, timezone
from decimal import Decimal
from typing import TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from splitledger.config import settings
from splitledger.errors import ConcurrencyConflict, InvalidState, NotFound
from splitledger.ledger.balance import (
    Line,
    expense_lines,
    fold_balances,
    get_balance,
    get_balances,
    is_zero_sum,
    reversal_lines,
    settlement_lines,
    to_decimal_balances,
)
from splitledger.ledger.models import Expense, Group, LedgerEntry, LedgerEventType, Settlement
from splitledger.ledger.money import from_minor
from splitledger.ledger.repository import (
    get_group,
    get_ledger_entry,
    get_line_totals,
    get_member_ids,
    save_ledger_entry,
)
from splitledger.observability import HookRegistry, LedgerEvent, default_hooks

logger = logging.getLogger(__name__)

T = TypeVar("T")

GroupOperation = Callable[[AsyncSession, Group], Awaitable[T]]

# session.info key holding the events queued by the current unit.
_EVENTS_KEY = "splitledger.ledger_events"


class BalanceLedger:
    """Serialized, transactional writer of ledger entries.

    Usage::

        ledger = BalanceLedger(session_factory)

        async def add(session, group):
            expense = await save_expense(session, ...)
            await ledger.apply_expense(session, group, expense)
            return expense

        expense = await ledger.run(group_id, add)

    Operations passed to :meth:`run` must not call :meth:`run` for the
    same group; the per-group lock is not re-entrant.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        hooks: HookRegistry | None = None,
        max_retries: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._hooks = default_hooks if hooks is None else hooks
        self._max_retries = max_retries or settings.ledger_max_retries
        self._locks: weakref.WeakValueDictionary[uuid.UUID, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    # ── Units of work ────────────────────────────────────────────────────

    async def run(self, group_id: uuid.UUID, operation: GroupOperation[T]) -> T:
        """Execute *operation* as one serialized, atomic unit on a group.

        Hooks for the unit's events run after the group lock is released.

        Args:
            group_id: The group whose balances the operation may change.
            operation: ``async (session, group) -> result``.  It runs inside
                a fresh transaction; anything it raises rolls the whole
                unit back.

        Returns:
            Whatever *operation* returned.

        Raises:
            NotFound: If the group does not exist.
            ConcurrencyConflict: If another writer won the version check
                on every attempt.
        """
        lock = self._lock_for(group_id)
        async with lock:
            result, events = await self._attempt(group_id, operation)

        for event in events:
            self._hooks.dispatch(event)
        return result

    async def _attempt(
        self,
        group_id: uuid.UUID,
        operation: GroupOperation[T],
    ) -> tuple[T, list[LedgerEvent]]:
        for attempt in range(1, self._max_retries + 1):
            events: list[LedgerEvent] = []
            try:
                async with self._session_factory() as session:
                    session.info[_EVENTS_KEY] = events
                    async with session.begin():
                        group = await get_group(session, group_id)
                        if group is None:
                            raise NotFound(
                                "Group not found.",
                                details={"group_id": str(group_id)},
                            )
                        result = await operation(session, group)
            except StaleDataError:
                logger.warning(
                    "Ledger version conflict on group %s (attempt %d/%d)",
                    group_id,
                    attempt,
                    self._max_retries,
                )
                continue
            return result, events

        raise ConcurrencyConflict(
            "The group's ledger kept changing concurrently; please retry.",
            details={"group_id": str(group_id), "attempts": self._max_retries},
        )

    def _lock_for(self, group_id: uuid.UUID) -> asyncio.Lock:
        # Entries vanish once no unit holds or awaits the lock.
        lock = self._locks.get(group_id)
        if lock is None:
            lock = self._locks[group_id] = asyncio.Lock()
        return lock

    async def read(self, operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """Run a read-only *operation* in its own session, without the lock."""
        async with self._session_factory() as session:
            return await operation(session)

    # ── Mutations (call inside run) ──────────────────────────────────────

    async def apply_expense(
        self,
        session: AsyncSession,
        group: Group,
        expense: Expense,
    ) -> LedgerEntry:
        """Debit every participant their share and credit the payer.

        The split sum is not re-validated here; the splits are taken as
        stored on the expense.

        Raises:
            InvalidState: If the expense belongs to another group or was
                already applied.
        """
        self._check_group(group, expense.group_id, "Expense")
        existing = await get_ledger_entry(
            session,
            event_type=LedgerEventType.EXPENSE_APPLIED,
            expense_id=expense.id,
        )
        if existing is not None:
            raise InvalidState(
                "Expense has already been applied to the ledger.",
                details={"expense_id": str(expense.id)},
            )

        lines = expense_lines(expense.payer_id, [(s.user_id, s.amount) for s in expense.splits])
        return await self._append(
            session,
            group,
            LedgerEventType.EXPENSE_APPLIED,
            lines,
            expense_id=expense.id,
        )

    async def reverse_expense(
        self,
        session: AsyncSession,
        group: Group,
        expense: Expense,
    ) -> LedgerEntry:
        """Undo an applied expense by appending the negation of its entry.

        Raises:
            InvalidState: If the expense was never applied or is already
                reversed.
        """
        self._check_group(group, expense.group_id, "Expense")
        applied = await get_ledger_entry(
            session,
            event_type=LedgerEventType.EXPENSE_APPLIED,
            expense_id=expense.id,
        )
        if applied is None:
            raise InvalidState(
                "Expense was never applied to the ledger.",
                details={"expense_id": str(expense.id)},
            )
        reversed_entry = await get_ledger_entry(
            session,
            event_type=LedgerEventType.EXPENSE_REVERSED,
            expense_id=expense.id,
        )
        if reversed_entry is not None:
            raise InvalidState(
                "Expense has already been reversed.",
                details={"expense_id": str(expense.id)},
            )

        lines = reversal_lines((line.user_id, line.amount_minor) for line in applied.lines)
        return await self._append(
            session,
            group,
            LedgerEventType.EXPENSE_REVERSED,
            lines,
            expense_id=expense.id,
        )

    async def apply_settlement_confirmation(
        self,
        session: AsyncSession,
        group: Group,
        settlement: Settlement,
    ) -> LedgerEntry:
        """Move ``settlement.amount`` from the recipient's balance to the payer's.

        Raises:
            InvalidState: If the settlement belongs to another group or its
                confirmation was already recorded.
        """
        self._check_group(group, settlement.group_id, "Settlement")
        existing = await get_ledger_entry(
            session,
            event_type=LedgerEventType.SETTLEMENT_CONFIRMED,
            settlement_id=settlement.id,
        )
        if existing is not None:
            raise InvalidState(
                "Settlement has already been applied to the ledger.",
                details={"settlement_id": str(settlement.id)},
            )

        lines = settlement_lines(settlement.from_user_id, settlement.to_user_id, settlement.amount)
        return await self._append(
            session,
            group,
            LedgerEventType.SETTLEMENT_CONFIRMED,
            lines,
            settlement_id=settlement.id,
        )

    # ── Reads ────────────────────────────────────────────────────────────

    async def balances(self, group_id: uuid.UUID) -> dict[int, Decimal]:
        """Every member's balance in the group (zero for members without lines)."""

        async def _read(session: AsyncSession) -> dict[int, Decimal]:
            await self._require_group(session, group_id)
            return await get_balances(session, group_id)

        return await self.read(_read)

    async def balance(self, group_id: uuid.UUID, user_id: int) -> Decimal:
        """One member's balance; zero for a user unknown to the ledger."""

        async def _read(session: AsyncSession) -> Decimal:
            await self._require_group(session, group_id)
            return await get_balance(session, group_id, user_id)

        return await self.read(_read)

    # ── Internals ────────────────────────────────────────────────────────

    async def _append(
        self,
        session: AsyncSession,
        group: Group,
        event_type: LedgerEventType,
        lines: Iterable[Line],
        *,
        expense_id: uuid.UUID | None = None,
        settlement_id: uuid.UUID | None = None,
    ) -> LedgerEntry:
        events = session.info.get(_EVENTS_KEY)
        if events is None:
            raise RuntimeError("Ledger mutations must run inside BalanceLedger.run()")

        lines = list(lines)
        entry = await save_ledger_entry(
            session,
            group_id=group.id,
            event_type=event_type,
            lines=lines,
            expense_id=expense_id,
            settlement_id=settlement_id,
        )
        # Dirtying the group makes the flush bump and check ledger_version.
        group.last_entry_at = datetime.now(timezone.utc)
        await session.flush()

        totals = await get_line_totals(session, group.id)
        members = await get_member_ids(session, group.id)
        balances = fold_balances(totals.items(), members)
        if not is_zero_sum(balances):
            logger.error(
                "Zero-sum violated in group %s after %s entry %s: %s",
                group.id,
                event_type,
                entry.id,
                balances,
            )
            raise InvalidState(
                "Ledger balances no longer sum to zero.",
                details={"group_id": str(group.id), "entry_id": str(entry.id)},
            )

        events.append(
            LedgerEvent(
                event_type=str(event_type),
                group_id=group.id,
                entry_id=entry.id,
                deltas={member: from_minor(amount) for member, amount in lines},
                balances=to_decimal_balances(balances),
                source_id=expense_id or settlement_id,
            )
        )
        return entry

    @staticmethod
    def _check_group(group: Group, record_group_id: uuid.UUID, kind: str) -> None:
        if record_group_id != group.id:
            raise InvalidState(
                f"{kind} does not belong to this group.",
                details={"group_id": str(group.id)},
            )

    @staticmethod
    async def _require_group(session: AsyncSession, group_id: uuid.UUID) -> Group:
        group = await get_group(session, group_id)
        if group is None:
            raise NotFound("Group not found.", details={"group_id": str(group_id)})
        return group
