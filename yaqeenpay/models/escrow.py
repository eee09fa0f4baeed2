# yaqeenpay/models/escrow.py

import enum
from decimal import Decimal
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, \
    Numeric
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from yaqeenpay.core.database import Base


class EscrowStatusEnum(enum.Enum):
    created = "created"
    funded = "funded"
    released = "released"
    disputed = "disputed"
    refunded = "refunded"
    cancelled = "cancelled"
    completed = "completed"


class Escrow(Base):
    __tablename__ = "escrows"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), unique=True,
                      nullable=False)
    buyer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    seller_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    amount = Column(Numeric(18, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    fee_rate = Column(Numeric(5, 4), default=Decimal("0.05"), nullable=False)
    fee_amount = Column(Numeric(18, 2), default=Decimal("0.00"),
                        nullable=False)
    seller_amount = Column(Numeric(18, 2), default=Decimal("0.00"),
                           nullable=False)
    refunded_amount = Column(Numeric(18, 2), default=Decimal("0.00"),
                             nullable=False)

    status = Column(Enum(EscrowStatusEnum), default=EscrowStatusEnum.created,
                    nullable=False, index=True)

    funded_at = Column(DateTime, nullable=True)
    released_at = Column(DateTime, nullable=True)
    refunded_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    disputed_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())

    order = relationship("Order", back_populates="escrow")
