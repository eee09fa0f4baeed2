# yaqeenpay/models/wallet.py

import enum
from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, \
    Enum, Numeric
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from yaqeenpay.core.database import Base


class WalletTransactionTypeEnum(enum.Enum):
    credit = "credit"
    debit = "debit"
    freeze = "freeze"
    unfreeze = "unfreeze"
    frozen_to_debit = "frozen_to_debit"


class Wallet(Base):
    __tablename__ = "wallets"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True,
                     nullable=False)
    balance = Column(Numeric(18, 2), default=Decimal("0.00"), nullable=False)
    frozen_balance = Column(Numeric(18, 2), default=Decimal("0.00"),
                            nullable=False)
    currency = Column(String(3), default="PKR", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(),
                        onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="wallet")
    transactions = relationship("WalletTransaction", back_populates="wallet",
                                order_by="WalletTransaction.id")

    @property
    def available_balance(self) -> Decimal:
        return (self.balance or Decimal("0")) - (
                self.frozen_balance or Decimal("0"))


class WalletTransaction(Base):
    __tablename__ = "wallet_transactions"

    id = Column(Integer, primary_key=True, index=True)
    wallet_id = Column(Integer, ForeignKey("wallets.id"), nullable=False,
                       index=True)
    transaction_type = Column(Enum(WalletTransactionTypeEnum), nullable=False)
    amount = Column(Numeric(18, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    balance_after = Column(Numeric(18, 2), nullable=False)
    frozen_after = Column(Numeric(18, 2), nullable=False)
    reason = Column(String(500), nullable=True)

    reference_id = Column(String(64), nullable=True, index=True)
    reference_type = Column(String(50), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    wallet = relationship("Wallet", back_populates="transactions")
