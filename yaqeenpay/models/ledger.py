# yaqeenpay/models/ledger.py

import enum
from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, \
    Numeric, UniqueConstraint
from sqlalchemy.orm import relationship
from yaqeenpay.core.database import Base


class LedgerAccountTypeEnum(enum.Enum):
    buyer_wallet = "buyer_wallet"
    seller_wallet = "seller_wallet"
    escrow_holding = "escrow_holding"
    platform_fee_revenue = "platform_fee_revenue"
    external_clearing = "external_clearing"


class LedgerReferenceTypeEnum(enum.Enum):
    top_up = "top_up"
    escrow_funding = "escrow_funding"
    escrow_release = "escrow_release"
    escrow_refund = "escrow_refund"
    escrow_cancel = "escrow_cancel"
    fee_collection = "fee_collection"
    withdrawal = "withdrawal"
    withdrawal_reversal = "withdrawal_reversal"
    admin_adjustment = "admin_adjustment"


class LedgerAccount(Base):
    __tablename__ = "ledger_accounts"
    __table_args__ = (
        UniqueConstraint("account_type", "user_id", "currency",
                         name="uq_ledger_account_owner"),
    )

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(64), unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=False)
    account_type = Column(Enum(LedgerAccountTypeEnum), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    currency = Column(String(3), nullable=False)
    balance = Column(Numeric(18, 2), default=Decimal("0.00"), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class LedgerEntry(Base):
    __tablename__ = "ledger_entries"

    id = Column(Integer, primary_key=True, index=True)
    debit_account_id = Column(Integer, ForeignKey("ledger_accounts.id"),
                              nullable=False, index=True)
    credit_account_id = Column(Integer, ForeignKey("ledger_accounts.id"),
                               nullable=False, index=True)
    amount = Column(Numeric(18, 2), nullable=False)
    currency = Column(String(3), nullable=False)

    reference_type = Column(Enum(LedgerReferenceTypeEnum), nullable=False)
    reference_id = Column(String(64), nullable=True, index=True)
    correlation_id = Column(String(64), nullable=True, index=True)
    description = Column(String(500), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    debit_account = relationship("LedgerAccount",
                                 foreign_keys=[debit_account_id])
    credit_account = relationship("LedgerAccount",
                                  foreign_keys=[credit_account_id])
