from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from sqlalchemy import String, DateTime, Numeric, ForeignKey, Boolean, Text, Index, event, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.clock import utcnow
from app.db.base import Base
from app.db.models.common import HasId, HasCreatedAt, HasUpdatedAt


class LedgerAccount(Base, HasId, HasCreatedAt, HasUpdatedAt):
    __tablename__ = "ledger_account"

    name: Mapped[str] = mapped_column(String(256), nullable=False)
    account_type: Mapped[str] = mapped_column(String(24), nullable=False, default="current")  # AccountType
    balance: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    owner_user_id: Mapped[str | None] = mapped_column(ForeignKey("auth_user.id"), nullable=True, index=True)
    is_main_account: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    owner = relationship("User")
    transactions = relationship("LedgerTransaction", back_populates="account", order_by="LedgerTransaction.transaction_date")


class LedgerTransaction(Base, HasId, HasCreatedAt):
    __tablename__ = "ledger_transaction"

    account_id: Mapped[str] = mapped_column(ForeignKey("ledger_account.id"), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(8), nullable=False)  # credit|debit
    category: Mapped[str] = mapped_column(String(48), nullable=False, index=True)  # TransactionCategory
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    reference_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    reference_type: Mapped[str | None] = mapped_column(String(24), nullable=True)  # ReferenceType
    payment_method: Mapped[str | None] = mapped_column(String(24), nullable=True)
    processed_by: Mapped[str] = mapped_column(String(128), nullable=False, default="system")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    transaction_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    # Audit trail for payment modifications
    is_modification: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    original_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    modification_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    account = relationship("LedgerAccount", back_populates="transactions")


Index(
    "ux_ledger_account_single_main",
    LedgerAccount.is_main_account,
    unique=True,
    postgresql_where=text("is_main_account AND is_active"),
    sqlite_where=text("is_main_account = 1 AND is_active = 1"),
)
Index(
    "ux_ledger_account_owner_active",
    LedgerAccount.owner_user_id,
    unique=True,
    postgresql_where=text("owner_user_id IS NOT NULL AND is_active"),
    sqlite_where=text("owner_user_id IS NOT NULL AND is_active = 1"),
)
Index("ix_ledger_txn_account_time", LedgerTransaction.account_id, LedgerTransaction.transaction_date)


@event.listens_for(LedgerTransaction, "before_update")
def _ledger_transaction_is_immutable(mapper, connection, target):
    raise RuntimeError("ledger transactions are immutable; post a correcting transaction instead")
