# yaqeenpay/models/topup.py

import enum
from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, \
    Enum, Numeric, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from yaqeenpay.core.database import Base


class TopUpChannelEnum(enum.Enum):
    jazzcash = "jazzcash"
    easypaisa = "easypaisa"
    bank_transfer = "bank_transfer"
    qr = "qr"


class TopUpStatusEnum(enum.Enum):
    initiated = "initiated"
    pending_confirmation = "pending_confirmation"
    confirmed = "confirmed"
    failed = "failed"
    cancelled = "cancelled"


class TopUpReviewStatusEnum(enum.Enum):
    paid = "paid"
    not_paid = "not_paid"
    suspicious = "suspicious"


class TopupLockStatusEnum(enum.Enum):
    locked = "locked"
    completed = "completed"
    expired = "expired"


class TopUp(Base):
    __tablename__ = "top_ups"
    __table_args__ = (
        UniqueConstraint("channel", "external_reference",
                         name="uq_topup_channel_reference"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False,
                     index=True)
    wallet_id = Column(Integer, ForeignKey("wallets.id"), nullable=False)
    amount = Column(Numeric(18, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    channel = Column(Enum(TopUpChannelEnum), nullable=False)
    status = Column(Enum(TopUpStatusEnum), default=TopUpStatusEnum.initiated,
                    nullable=False, index=True)
    external_reference = Column(String(100), nullable=True)
    wallet_transaction_id = Column(Integer,
                                   ForeignKey("wallet_transactions.id"),
                                   nullable=True)
    failure_reason = Column(Text, nullable=True)

    requested_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    confirmed_at = Column(DateTime, nullable=True)
    failed_at = Column(DateTime, nullable=True)

    user = relationship("User")
    proofs = relationship("TopUpProof", back_populates="top_up")


class TopUpProof(Base):
    __tablename__ = "top_up_proofs"

    id = Column(Integer, primary_key=True, index=True)
    top_up_id = Column(Integer, ForeignKey("top_ups.id"), nullable=False,
                       index=True)
    file_url = Column(String(500), nullable=False)
    notes = Column(Text, nullable=True)
    submitted_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    top_up = relationship("TopUp", back_populates="proofs")


class WalletTopupLock(Base):
    __tablename__ = "wallet_topup_locks"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False,
                     index=True)
    amount = Column(Numeric(18, 2), nullable=False, index=True)
    currency = Column(String(3), nullable=False)
    status = Column(Enum(TopupLockStatusEnum),
                    default=TopupLockStatusEnum.locked, nullable=False,
                    index=True)
    transaction_reference = Column(String(40), unique=True, nullable=False,
                                   index=True)
    top_up_id = Column(Integer, ForeignKey("top_ups.id"), nullable=True)

    locked_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    payment_initiated_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    def is_expired(self, now: datetime = None) -> bool:
        return (now or datetime.utcnow()) >= self.expires_at


class BankSmsPayment(Base):
    __tablename__ = "bank_sms_payments"

    id = Column(Integer, primary_key=True, index=True)
    sender = Column(String(64), nullable=True)
    raw_message = Column(Text, nullable=True)
    amount = Column(Numeric(18, 2), nullable=False)
    reference = Column(String(100), nullable=True)
    processed = Column(Boolean, default=False, nullable=False)
    lock_id = Column(Integer, ForeignKey("wallet_topup_locks.id"),
                     nullable=True)
    top_up_id = Column(Integer, ForeignKey("top_ups.id"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
