"""Tests for the read-only ledger views."""

from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from splitledger.errors import NotFound
from splitledger.ledger.models import SettlementStatus
from splitledger.services import queries

USER_A = 100
USER_B = 200
USER_C = 300

GROUP_ID = uuid4()


def _group(group_id=GROUP_ID, name: str = "Trip") -> SimpleNamespace:
    return SimpleNamespace(id=group_id, name=name, currency="INR")


def _expense(payer, *splits) -> SimpleNamespace:
    return SimpleNamespace(
        payer_id=payer,
        splits=[SimpleNamespace(user_id=user, amount=Decimal(amount)) for user, amount in splits],
    )


class TestGroupViews:
    @pytest.mark.asyncio
    async def test_group_balances(self) -> None:
        session = AsyncMock()
        with (
            patch("splitledger.services.queries.get_group", return_value=_group()),
            patch(
                "splitledger.services.queries.get_balances",
                return_value={USER_A: Decimal("20.00"), USER_B: Decimal("-20.00")},
            ),
        ):
            result = await queries.group_balances(session, GROUP_ID)

        assert [(b.user_id, b.balance) for b in result] == [
            (USER_A, Decimal("20.00")),
            (USER_B, Decimal("-20.00")),
        ]

    @pytest.mark.asyncio
    async def test_unknown_group(self) -> None:
        with patch("splitledger.services.queries.get_group", return_value=None):
            with pytest.raises(NotFound):
                await queries.suggested_settlements(AsyncMock(), GROUP_ID)

    @pytest.mark.asyncio
    async def test_suggested_settlements(self) -> None:
        with (
            patch("splitledger.services.queries.get_group", return_value=_group()),
            patch(
                "splitledger.services.queries.get_balances",
                return_value={
                    USER_A: Decimal("30.00"),
                    USER_B: Decimal("-10.00"),
                    USER_C: Decimal("-20.00"),
                },
            ),
        ):
            result = await queries.suggested_settlements(AsyncMock(), GROUP_ID)

        assert [(r.from_user_id, r.to_user_id, r.amount, r.group_id) for r in result] == [
            (USER_C, USER_A, Decimal("20.00"), GROUP_ID),
            (USER_B, USER_A, Decimal("10.00"), GROUP_ID),
        ]

    @pytest.mark.asyncio
    async def test_gross_debts_ignore_settlements(self) -> None:
        expenses = [_expense(USER_A, (USER_B, "500"))]
        with (
            patch("splitledger.services.queries.get_group", return_value=_group()),
            patch(
                "splitledger.services.queries.get_active_expenses",
                return_value=expenses,
            ),
            patch("splitledger.services.queries.get_settlements") as mock_settlements,
        ):
            result = await queries.gross_transaction_debts(AsyncMock(), GROUP_ID)

        mock_settlements.assert_not_called()
        assert [(r.from_user_id, r.to_user_id, r.amount) for r in result] == [
            (USER_B, USER_A, Decimal("500.00")),
        ]

    @pytest.mark.asyncio
    async def test_net_debts_subtract_confirmed_settlements(self) -> None:
        session = AsyncMock()
        expenses = [_expense(USER_A, (USER_B, "500"))]
        settlements = [SimpleNamespace(from_user_id=USER_B, to_user_id=USER_A, amount=Decimal("200"))]
        with (
            patch("splitledger.services.queries.get_group", return_value=_group()),
            patch(
                "splitledger.services.queries.get_active_expenses",
                return_value=expenses,
            ),
            patch(
                "splitledger.services.queries.get_settlements",
                return_value=settlements,
            ) as mock_settlements,
        ):
            result = await queries.net_outstanding_debts(session, GROUP_ID)

        mock_settlements.assert_called_once_with(
            session,
            group_id=GROUP_ID,
            status=SettlementStatus.CONFIRMED,
        )
        assert [(r.from_user_id, r.to_user_id, r.amount) for r in result] == [
            (USER_B, USER_A, Decimal("300.00")),
        ]

    @pytest.mark.asyncio
    async def test_group_expense_total(self) -> None:
        session = AsyncMock()
        with (
            patch("splitledger.services.queries.get_group", return_value=_group()),
            patch(
                "splitledger.services.queries.get_expense_total",
                return_value=Decimal("1250.50"),
            ) as mock_total,
        ):
            total = await queries.group_expense_total(session, GROUP_ID)

        assert total == Decimal("1250.50")
        mock_total.assert_called_once_with(session, GROUP_ID)

    @pytest.mark.asyncio
    async def test_group_expense_total_unknown_group(self) -> None:
        with patch("splitledger.services.queries.get_group", return_value=None):
            with pytest.raises(NotFound):
                await queries.group_expense_total(AsyncMock(), GROUP_ID)

    @pytest.mark.asyncio
    async def test_group_activity(self) -> None:
        session = AsyncMock()
        rows = [SimpleNamespace(action="expense_created")]
        with (
            patch("splitledger.services.queries.get_group", return_value=_group()),
            patch(
                "splitledger.services.queries.get_recent_activity",
                return_value=rows,
            ) as mock_recent,
        ):
            result = await queries.group_activity(session, GROUP_ID, limit=5)

        assert result == rows
        mock_recent.assert_called_once_with(session, GROUP_ID, limit=5)


class TestUserSummary:
    @pytest.mark.asyncio
    async def test_across_groups(self) -> None:
        trip = _group(uuid4(), "Trip")
        flat = _group(uuid4(), "Flat")
        with (
            patch(
                "splitledger.services.queries.get_user_groups",
                return_value=[trip, flat],
            ),
            patch(
                "splitledger.services.queries.get_balances",
                side_effect=[
                    {USER_A: Decimal("50.00"), USER_B: Decimal("-50.00")},
                    {USER_A: Decimal("-20.00"), USER_C: Decimal("20.00"), USER_B: Decimal("0.00")},
                ],
            ),
            patch(
                "splitledger.services.queries.count_pending_settlements",
                return_value=2,
            ),
        ):
            summary = await queries.user_summary(AsyncMock(), USER_A)

        assert summary.total_owed == Decimal("50.00")
        assert summary.total_owe == Decimal("20.00")
        assert summary.net_balance == Decimal("30.00")
        assert summary.pending_settlements == 2
        assert [(g.name, g.balance, g.member_count) for g in summary.groups] == [
            ("Trip", Decimal("50.00"), 2),
            ("Flat", Decimal("-20.00"), 3),
        ]
        assert [
            (r.from_user_id, r.to_user_id, r.amount, r.group_id) for r in summary.debt_relations
        ] == [
            (USER_B, USER_A, Decimal("50.00"), trip.id),
            (USER_A, USER_C, Decimal("20.00"), flat.id),
        ]

    @pytest.mark.asyncio
    async def test_user_without_groups(self) -> None:
        with (
            patch("splitledger.services.queries.get_user_groups", return_value=[]),
            patch(
                "splitledger.services.queries.count_pending_settlements",
                return_value=0,
            ),
        ):
            summary = await queries.user_summary(AsyncMock(), USER_A)

        assert summary.net_balance == Decimal("0.00")
        assert summary.groups == []
        assert summary.debt_relations == []
