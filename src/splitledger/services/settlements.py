"""Settlement workflow: a proposed payment between two group members.

States::

    pending ──confirm (by recipient)──▶ confirmed   (applies the transfer)
       │
       └──dispute (moderation)───────▶ disputed    (no balance effect)

Both terminal states are final.  Confirmation is the only path by which a
settlement reaches the balances, and it happens at most once: the status
check, the status change and the ledger entry are written in one
serialized unit, and the ledger refuses a second entry for the same
settlement.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from splitledger.errors import InvalidRequest, InvalidState, NotFound, Unauthorized
from splitledger.ledger.balance import get_balance
from splitledger.ledger.ledger import BalanceLedger
from splitledger.ledger.models import (
    ActivityAction,
    Group,
    PaymentMethod,
    Settlement,
    SettlementStatus,
)
from splitledger.ledger.money import format_money, from_minor, to_minor
from splitledger.ledger.repository import (
    get_member_ids,
    get_settlement,
    get_settlements,
    save_activity,
    save_settlement,
)
from splitledger.ledger.validation import validate_settlement

logger = logging.getLogger(__name__)


class SettlementWorkflow:
    """Creates settlements and moves them through their lifecycle."""

    def __init__(self, ledger: BalanceLedger) -> None:
        self._ledger = ledger

    async def create(
        self,
        group_id: uuid.UUID,
        from_user_id: int,
        to_user_id: int,
        amount: Decimal | int | str,
        method: PaymentMethod | str = PaymentMethod.CASH,
        note: str | None = None,
        created_by: int | None = None,
    ) -> tuple[Settlement, list[str]]:
        """Propose a payment from *from_user_id* to *to_user_id*.

        No balance changes until the recipient confirms.

        Args:
            group_id: Group both users belong to.
            from_user_id: Member paying.
            to_user_id: Member receiving.
            amount: Amount paid (positive, two decimals).
            method: ``cash``, ``upi`` or ``card``.
            note: Optional note for the recipient.
            created_by: Member recording the settlement; defaults to the
                payer.  Must be one of the two parties.

        Returns:
            A tuple of ``(settlement, warnings)``.  Warnings flag an
            overpayment and never block the settlement.

        Raises:
            InvalidAmount: Amount not positive or finer than a cent.
            NotFound: Unknown group, or a party is not a member.
            InvalidRequest: Self-settlement or a note that is too long.
            Unauthorized: *created_by* is neither party.
        """
        creator = from_user_id if created_by is None else created_by
        if creator not in (from_user_id, to_user_id):
            raise Unauthorized(
                "Only the payer or the recipient can record a settlement.",
                details={"user_id": creator},
            )
        try:
            method = PaymentMethod(method)
        except ValueError as exc:
            raise InvalidRequest(f"Unknown payment method: {method!r}") from exc
        value = from_minor(to_minor(amount))
        cleaned_note = (note.strip() or None) if note else None

        async def _create(session: AsyncSession, group: Group) -> tuple[Settlement, list[str]]:
            members = await get_member_ids(session, group.id)
            warnings = validate_settlement(
                value,
                from_user_id,
                to_user_id,
                members,
                note=cleaned_note,
                from_balance=await get_balance(session, group.id, from_user_id),
            )
            settlement = await save_settlement(
                session,
                group_id=group.id,
                from_user_id=from_user_id,
                to_user_id=to_user_id,
                amount=value,
                created_by=creator,
                payment_method=method,
                note=cleaned_note,
            )
            await save_activity(
                session,
                group_id=group.id,
                user_id=creator,
                action=ActivityAction.SETTLEMENT_CREATED,
                description=(
                    f"User {from_user_id} paid {format_money(value, group.currency)} "
                    f"to user {to_user_id}"
                ),
                details={"settlement_id": str(settlement.id)},
            )
            return settlement, warnings

        settlement, warnings = await self._ledger.run(group_id, _create)
        logger.info(
            "Created settlement %s in group %s (%d warning(s))",
            settlement.id,
            group_id,
            len(warnings),
        )
        return settlement, warnings

    async def confirm(self, settlement_id: uuid.UUID, acting_user_id: int) -> Settlement:
        """Confirm receipt of a pending settlement and apply it to balances.

        Raises:
            NotFound: Unknown settlement.
            Unauthorized: *acting_user_id* is not the recipient; the
                settlement stays pending.
            InvalidState: The settlement is not pending (already confirmed
                or disputed); no balance changes.
        """
        group_id = (await self.get(settlement_id)).group_id

        async def _confirm(session: AsyncSession, group: Group) -> Settlement:
            settlement = await _require_settlement(session, settlement_id)
            if settlement.to_user_id != acting_user_id:
                raise Unauthorized(
                    "Only the recipient can confirm this settlement.",
                    details={"settlement_id": str(settlement_id), "user_id": acting_user_id},
                )
            _require_pending(settlement)

            settlement.status = SettlementStatus.CONFIRMED.value
            settlement.confirmed_at = datetime.now(timezone.utc)
            await self._ledger.apply_settlement_confirmation(session, group, settlement)
            await save_activity(
                session,
                group_id=group.id,
                user_id=acting_user_id,
                action=ActivityAction.SETTLEMENT_CONFIRMED,
                description=(
                    f"User {acting_user_id} confirmed payment of "
                    f"{format_money(settlement.amount, group.currency)} "
                    f"from user {settlement.from_user_id}"
                ),
                details={"settlement_id": str(settlement.id)},
            )
            return settlement

        settlement = await self._ledger.run(group_id, _confirm)
        logger.info("Confirmed settlement %s in group %s", settlement_id, group_id)
        return settlement

    async def dispute(
        self,
        settlement_id: uuid.UUID,
        moderator_id: int,
        reason: str | None = None,
    ) -> Settlement:
        """Mark a pending settlement as disputed.

        This is the hook for an external moderation action; authorising
        *moderator_id* is the caller's job.  Balances are not touched.

        Raises:
            NotFound: Unknown settlement.
            InvalidState: The settlement is not pending.
        """
        group_id = (await self.get(settlement_id)).group_id

        async def _dispute(session: AsyncSession, group: Group) -> Settlement:
            settlement = await _require_settlement(session, settlement_id)
            _require_pending(settlement)
            settlement.status = SettlementStatus.DISPUTED.value
            settlement.disputed_at = datetime.now(timezone.utc)
            await save_activity(
                session,
                group_id=group.id,
                user_id=moderator_id,
                action=ActivityAction.SETTLEMENT_DISPUTED,
                description=f"Settlement of {format_money(settlement.amount, group.currency)} disputed",
                details={"settlement_id": str(settlement.id), "reason": reason},
            )
            return settlement

        settlement = await self._ledger.run(group_id, _dispute)
        logger.info("Disputed settlement %s in group %s", settlement_id, group_id)
        return settlement

    # ── Reads ────────────────────────────────────────────────────────────

    async def get(self, settlement_id: uuid.UUID) -> Settlement:
        """Fetch a settlement.

        Raises:
            NotFound: Unknown settlement.
        """

        async def _read(session: AsyncSession) -> Settlement:
            return await _require_settlement(session, settlement_id)

        return await self._ledger.read(_read)

    async def list_for_group(
        self,
        group_id: uuid.UUID,
        status: SettlementStatus | None = None,
    ) -> list[Settlement]:
        """Settlements of one group, newest first."""

        async def _read(session: AsyncSession) -> list[Settlement]:
            return await get_settlements(session, group_id=group_id, status=status)

        return await self._ledger.read(_read)

    async def list_for_user(
        self,
        user_id: int,
        status: SettlementStatus | None = None,
    ) -> list[Settlement]:
        """Settlements the user pays or receives, across groups, newest first."""

        async def _read(session: AsyncSession) -> list[Settlement]:
            return await get_settlements(session, user_id=user_id, status=status)

        return await self._ledger.read(_read)


async def _require_settlement(session: AsyncSession, settlement_id: uuid.UUID) -> Settlement:
    settlement = await get_settlement(session, settlement_id)
    if settlement is None:
        raise NotFound("Settlement not found.", details={"settlement_id": str(settlement_id)})
    return settlement


def _require_pending(settlement: Settlement) -> None:
    if settlement.status != SettlementStatus.PENDING:
        raise InvalidState(
            "Settlement is not pending.",
            details={"settlement_id": str(settlement.id), "status": settlement.status},
        )
