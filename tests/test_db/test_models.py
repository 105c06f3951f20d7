"""Tests for ORM model behaviour that does not need a database."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from splitledger.ledger.models import Base, Expense, Group, Settlement


class TestExpense:
    def test_active_by_default(self) -> None:
        assert Expense(description="Dinner").is_active

    def test_superseded_is_inactive(self) -> None:
        assert not Expense(description="Dinner", superseded_by=uuid4()).is_active

    def test_deleted_is_inactive(self) -> None:
        assert not Expense(description="Dinner", deleted_at=datetime.now(timezone.utc)).is_active


class TestVersioning:
    def test_group_is_versioned(self) -> None:
        assert Group.__mapper__.version_id_col is Group.__table__.c.ledger_version

    def test_settlement_is_versioned(self) -> None:
        assert Settlement.__mapper__.version_id_col is Settlement.__table__.c.version


class TestConstraints:
    def test_all_tables_registered(self) -> None:
        assert set(Base.metadata.tables) == {
            "groups",
            "group_members",
            "expenses",
            "expense_splits",
            "settlements",
            "ledger_entries",
            "ledger_lines",
            "activity_log",
        }

    def test_status_check_lists_every_state(self) -> None:
        checks = {
            c.name: str(c.sqltext)
            for c in Settlement.__table__.constraints
            if c.name == "ck_settlements_status"
        }
        assert checks["ck_settlements_status"] == (
            "status IN ('pending', 'confirmed', 'disputed')"
        )
