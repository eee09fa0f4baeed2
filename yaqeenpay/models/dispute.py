# yaqeenpay/models/dispute.py

import enum
import json
from datetime import datetime
from typing import List
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, \
    Text
from sqlalchemy.orm import relationship
from yaqeenpay.core.database import Base


class DisputeStatusEnum(enum.Enum):
    open = "open"
    escalated = "escalated"
    resolved = "resolved"
    closed = "closed"


class DisputeResolutionEnum(enum.Enum):
    in_favor_of_buyer = "in_favor_of_buyer"
    in_favor_of_seller = "in_favor_of_seller"
    compromise = "compromise"


class Dispute(Base):
    __tablename__ = "disputes"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False,
                      index=True)
    escrow_id = Column(Integer, ForeignKey("escrows.id"), nullable=True)
    raised_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    reason = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    evidence = Column(Text, nullable=True)  # JSON list of urls

    status = Column(Enum(DisputeStatusEnum), default=DisputeStatusEnum.open,
                    nullable=False, index=True)
    resolution = Column(Enum(DisputeResolutionEnum), nullable=True)
    resolution_notes = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)
    resolved_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    escalated_at = Column(DateTime, nullable=True)
    resolved_at = Column(DateTime, nullable=True)

    order = relationship("Order", back_populates="disputes")
    raised_by = relationship("User", foreign_keys=[raised_by_id])

    @property
    def evidence_list(self) -> List[str]:
        if not self.evidence:
            return []
        return json.loads(self.evidence)

    @property
    def is_active(self) -> bool:
        return self.status in (DisputeStatusEnum.open,
                               DisputeStatusEnum.escalated)
