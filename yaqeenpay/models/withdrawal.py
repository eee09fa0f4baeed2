# yaqeenpay/models/withdrawal.py

import enum
from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, \
    Numeric, Text
from sqlalchemy.orm import relationship
from yaqeenpay.core.database import Base


class WithdrawalChannelEnum(enum.Enum):
    jazzcash = "jazzcash"
    easypaisa = "easypaisa"
    bank_transfer = "bank_transfer"


class WithdrawalStatusEnum(enum.Enum):
    initiated = "initiated"
    pending_provider = "pending_provider"
    settled = "settled"
    failed = "failed"
    reversed = "reversed"


class Withdrawal(Base):
    __tablename__ = "withdrawals"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False,
                     index=True)

    amount = Column(Numeric(18, 2), nullable=False)
    fee_amount = Column(Numeric(18, 2), default=Decimal("0.00"),
                        nullable=False)
    currency = Column(String(3), nullable=False)
    channel = Column(Enum(WithdrawalChannelEnum), nullable=False)
    status = Column(Enum(WithdrawalStatusEnum),
                    default=WithdrawalStatusEnum.initiated, nullable=False,
                    index=True)

    account_title = Column(String(200), nullable=True)
    account_number = Column(String(64), nullable=False)
    bank_name = Column(String(100), nullable=True)

    reference = Column(String(40), unique=True, nullable=False, index=True)
    channel_reference = Column(String(100), nullable=True)
    failure_reason = Column(Text, nullable=True)

    requested_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    settled_at = Column(DateTime, nullable=True)
    failed_at = Column(DateTime, nullable=True)
    reversed_at = Column(DateTime, nullable=True)

    user = relationship("User")

    @property
    def total_debited(self) -> Decimal:
        return self.amount + (self.fee_amount or Decimal("0"))
