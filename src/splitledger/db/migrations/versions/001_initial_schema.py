"""Initial schema — groups, expenses, settlements, ledger, activity.

Revision ID: 001
Revises: None
Create Date: 2026-10-18

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def _group_fk() -> sa.Column:
    return sa.Column(
        "group_id",
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
    )


def upgrade() -> None:
    # ── groups ────────────────────────────────────────────────────────
    op.create_table(
        "groups",
        _id(),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("currency", sa.Text, nullable=False, server_default="INR"),
        sa.Column("created_by", sa.BigInteger, nullable=False),
        sa.Column("ledger_version", sa.Integer, nullable=False),
        sa.Column("last_entry_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )

    op.create_table(
        "group_members",
        _id(),
        _group_fk(),
        sa.Column("user_id", sa.BigInteger, nullable=False),
        sa.Column("role", sa.Text, nullable=False, server_default="member"),
        _created_at("joined_at"),
        sa.UniqueConstraint("group_id", "user_id", name="uq_group_members_user"),
        sa.CheckConstraint("role IN ('admin', 'member')", name="ck_group_members_role"),
    )
    op.create_index("ix_group_members_user_id", "group_members", ["user_id"])

    # ── expenses ──────────────────────────────────────────────────────
    op.create_table(
        "expenses",
        _id(),
        _group_fk(),
        sa.Column("payer_id", sa.BigInteger, nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("split_policy", sa.Text, nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("category", sa.Text, nullable=True),
        sa.Column("payment_method", sa.Text, nullable=False, server_default="cash"),
        sa.Column("event_date", sa.Date, nullable=False),
        sa.Column("created_by", sa.BigInteger, nullable=False),
        _created_at(),
        sa.Column(
            "superseded_by",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("expenses.id"),
            nullable=True,
        ),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        sa.CheckConstraint(
            "split_policy IN ('equal', 'percentage', 'share')",
            name="ck_expenses_split_policy",
        ),
        sa.CheckConstraint(
            "payment_method IN ('cash', 'upi', 'card')",
            name="ck_expenses_payment_method",
        ),
    )
    op.create_index("ix_expenses_group_date", "expenses", ["group_id", "event_date"])

    op.create_table(
        "expense_splits",
        sa.Column(
            "expense_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("expenses.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("user_id", sa.BigInteger, primary_key=True),
        sa.Column("position", sa.Integer, nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("percentage", sa.Numeric(7, 4), nullable=True),
        sa.Column("shares", sa.Integer, nullable=True),
        sa.CheckConstraint("amount >= 0", name="ck_expense_splits_amount"),
    )

    # ── settlements ───────────────────────────────────────────────────
    op.create_table(
        "settlements",
        _id(),
        _group_fk(),
        sa.Column("from_user_id", sa.BigInteger, nullable=False),
        sa.Column("to_user_id", sa.BigInteger, nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.Text, nullable=False, server_default="pending"),
        sa.Column("payment_method", sa.Text, nullable=False, server_default="cash"),
        sa.Column("note", sa.Text, nullable=True),
        sa.Column("created_by", sa.BigInteger, nullable=False),
        _created_at(),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("disputed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer, nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_settlements_amount_positive"),
        sa.CheckConstraint("from_user_id <> to_user_id", name="ck_settlements_distinct_users"),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'disputed')",
            name="ck_settlements_status",
        ),
        sa.CheckConstraint(
            "payment_method IN ('cash', 'upi', 'card')",
            name="ck_settlements_payment_method",
        ),
    )
    op.create_index("ix_settlements_group_id", "settlements", ["group_id"])
    op.create_index("ix_settlements_users", "settlements", ["from_user_id", "to_user_id"])
    op.create_index("ix_settlements_status", "settlements", ["status"])

    # ── ledger ────────────────────────────────────────────────────────
    op.create_table(
        "ledger_entries",
        _id(),
        _group_fk(),
        sa.Column("event_type", sa.Text, nullable=False),
        sa.Column(
            "expense_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("expenses.id"),
            nullable=True,
        ),
        sa.Column(
            "settlement_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("settlements.id"),
            nullable=True,
        ),
        _created_at(),
        sa.CheckConstraint(
            "event_type IN ('expense_applied', 'expense_reversed', 'settlement_confirmed')",
            name="ck_ledger_entries_event_type",
        ),
        sa.UniqueConstraint("event_type", "expense_id", name="uq_ledger_entries_expense_event"),
        sa.UniqueConstraint("settlement_id", name="uq_ledger_entries_settlement"),
    )
    op.create_index("ix_ledger_entries_group_id", "ledger_entries", ["group_id"])

    op.create_table(
        "ledger_lines",
        _id(),
        sa.Column(
            "entry_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("ledger_entries.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.BigInteger, nullable=False),
        sa.Column("amount_minor", sa.BigInteger, nullable=False),
    )
    op.create_index("ix_ledger_lines_entry_id", "ledger_lines", ["entry_id"])

    # ── activity_log ──────────────────────────────────────────────────
    op.create_table(
        "activity_log",
        _id(),
        _group_fk(),
        sa.Column("user_id", sa.BigInteger, nullable=False),
        sa.Column("action", sa.Text, nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column(
            "details",
            postgresql.JSONB,
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        _created_at(),
        sa.CheckConstraint(
            "action IN ('expense_created', 'expense_edited', 'expense_deleted', "
            "'settlement_created', 'settlement_confirmed', 'settlement_disputed', "
            "'member_added')",
            name="ck_activity_log_action",
        ),
    )
    op.create_index("ix_activity_log_group_created", "activity_log", ["group_id", "created_at"])


def downgrade() -> None:
    op.drop_table("activity_log")
    op.drop_table("ledger_lines")
    op.drop_table("ledger_entries")
    op.drop_table("settlements")
    op.drop_table("expense_splits")
    op.drop_table("expenses")
    op.drop_table("group_members")
    op.drop_table("groups")
