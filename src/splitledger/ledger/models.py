"""SQLAlchemy ORM models for the ledger store.

All tables use UUID primary keys and TIMESTAMPTZ timestamps.  Expense and
settlement records keep their amounts as ``NUMERIC(12, 2)``; ledger lines
hold signed integer minor units so that balance folds are exact.

Balances are never stored: a member's balance is the sum of their ledger
lines within the group.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Shared declarative base for all ledger models."""


# ── Enumerations ──────────────────────────────────────────────────────────────


class MemberRole(StrEnum):
    ADMIN = "admin"
    MEMBER = "member"


class PaymentMethod(StrEnum):
    CASH = "cash"
    UPI = "upi"
    CARD = "card"


class SettlementStatus(StrEnum):
    """Settlement lifecycle: ``pending`` → ``confirmed`` | ``disputed``."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    DISPUTED = "disputed"


class LedgerEventType(StrEnum):
    """Kinds of balance-affecting events recorded in the ledger."""

    EXPENSE_APPLIED = "expense_applied"
    EXPENSE_REVERSED = "expense_reversed"
    SETTLEMENT_CONFIRMED = "settlement_confirmed"


class ActivityAction(StrEnum):
    EXPENSE_CREATED = "expense_created"
    EXPENSE_EDITED = "expense_edited"
    EXPENSE_DELETED = "expense_deleted"
    SETTLEMENT_CREATED = "settlement_created"
    SETTLEMENT_CONFIRMED = "settlement_confirmed"
    SETTLEMENT_DISPUTED = "settlement_disputed"
    MEMBER_ADDED = "member_added"


def _in_clause(column: str, enum: type[StrEnum]) -> str:
    values = ", ".join(f"'{member.value}'" for member in enum)
    return f"{column} IN ({values})"


# ── Groups ────────────────────────────────────────────────────────────────────


class Group(Base):
    """A group whose members share expenses.

    ``ledger_version`` is bumped by every ledger mutation and checked on
    write, so two writers that read the same version cannot both commit.
    """

    __tablename__ = "groups"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    currency: Mapped[str] = mapped_column(Text, nullable=False, server_default="INR")
    created_by: Mapped[int] = mapped_column(BigInteger, nullable=False)
    ledger_version: Mapped[int] = mapped_column(Integer, nullable=False)
    last_entry_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __mapper_args__ = {"version_id_col": ledger_version}

    # relationships
    members: Mapped[list["GroupMember"]] = relationship(
        back_populates="group", cascade="all, delete-orphan"
    )


class GroupMember(Base):
    """Membership of one user in one group.  Implies a zero opening balance."""

    __tablename__ = "group_members"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    group_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("groups.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    role: Mapped[str] = mapped_column(Text, nullable=False, server_default=MemberRole.MEMBER.value)
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_group_members_user"),
        CheckConstraint(_in_clause("role", MemberRole), name="ck_group_members_role"),
    )

    group: Mapped["Group"] = relationship(back_populates="members")


# ── Expenses ──────────────────────────────────────────────────────────────────


class Expense(Base):
    """An expense paid by one member and split among participants.

    Immutable once applied: an edit creates a replacement row and points
    ``superseded_by`` at it; a deletion stamps ``deleted_at``.  Both are
    paired with a reversal entry in the ledger.
    """

    __tablename__ = "expenses"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    group_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("groups.id", ondelete="CASCADE"), nullable=False
    )
    payer_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    split_policy: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_method: Mapped[str] = mapped_column(
        Text, nullable=False, server_default=PaymentMethod.CASH.value
    )
    event_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_by: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    superseded_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("expenses.id"), nullable=True
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        CheckConstraint(
            "split_policy IN ('equal', 'percentage', 'share')",
            name="ck_expenses_split_policy",
        ),
        CheckConstraint(_in_clause("payment_method", PaymentMethod), name="ck_expenses_payment_method"),
    )

    # relationships
    splits: Mapped[list["ExpenseSplit"]] = relationship(
        back_populates="expense",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ExpenseSplit.position",
    )

    @property
    def is_active(self) -> bool:
        return self.superseded_by is None and self.deleted_at is None


class ExpenseSplit(Base):
    """One participant's owed portion of an expense."""

    __tablename__ = "expense_splits"

    expense_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("expenses.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    percentage: Mapped[Decimal | None] = mapped_column(Numeric(7, 4), nullable=True)
    shares: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_expense_splits_amount"),
    )

    expense: Mapped["Expense"] = relationship(back_populates="splits")


# ── Settlements ───────────────────────────────────────────────────────────────


class Settlement(Base):
    """A proposed or completed payment from one member to another.

    ``version`` is checked on every status change, so a confirmation and a
    dispute racing each other cannot both commit.
    """

    __tablename__ = "settlements"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    group_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("groups.id", ondelete="CASCADE"), nullable=False
    )
    from_user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    to_user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(
        Text, nullable=False, server_default=SettlementStatus.PENDING.value
    )
    payment_method: Mapped[str] = mapped_column(
        Text, nullable=False, server_default=PaymentMethod.CASH.value
    )
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    disputed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_settlements_amount_positive"),
        CheckConstraint("from_user_id <> to_user_id", name="ck_settlements_distinct_users"),
        CheckConstraint(_in_clause("status", SettlementStatus), name="ck_settlements_status"),
        CheckConstraint(_in_clause("payment_method", PaymentMethod), name="ck_settlements_payment_method"),
    )


# ── Ledger ────────────────────────────────────────────────────────────────────


class LedgerEntry(Base):
    """Append-only record of one balance-affecting event.

    The lines of an entry always sum to zero.  Unique constraints make
    applying or reversing an expense, and confirming a settlement,
    possible at most once.
    """

    __tablename__ = "ledger_entries"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    group_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("groups.id", ondelete="CASCADE"), nullable=False
    )
    event_type: Mapped[str] = mapped_column(Text, nullable=False)
    expense_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("expenses.id"), nullable=True
    )
    settlement_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("settlements.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(_in_clause("event_type", LedgerEventType), name="ck_ledger_entries_event_type"),
        UniqueConstraint("event_type", "expense_id", name="uq_ledger_entries_expense_event"),
        UniqueConstraint("settlement_id", name="uq_ledger_entries_settlement"),
    )

    lines: Mapped[list["LedgerLine"]] = relationship(
        back_populates="entry", cascade="all, delete-orphan", lazy="selectin"
    )


class LedgerLine(Base):
    """Signed balance delta for one member, in minor units."""

    __tablename__ = "ledger_lines"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    entry_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("ledger_entries.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    amount_minor: Mapped[int] = mapped_column(BigInteger, nullable=False)

    entry: Mapped["LedgerEntry"] = relationship(back_populates="lines")


# ── Activity ──────────────────────────────────────────────────────────────────


class ActivityLog(Base):
    """Human-readable trail of actions taken in a group."""

    __tablename__ = "activity_log"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    group_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("groups.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    action: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[dict] = mapped_column(JSONB, nullable=False, server_default="{}")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(_in_clause("action", ActivityAction), name="ck_activity_log_action"),
    )
