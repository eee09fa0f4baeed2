# yaqeenpay/models/rating.py

from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, \
    Text, UniqueConstraint
from yaqeenpay.core.database import Base


class Rating(Base):
    __tablename__ = "ratings"
    __table_args__ = (
        UniqueConstraint("order_id", "reviewer_id",
                         name="uq_rating_order_reviewer"),
    )

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False,
                      index=True)
    reviewer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    reviewee_id = Column(Integer, ForeignKey("users.id"), nullable=False,
                         index=True)
    reviewer_role = Column(String(10), nullable=False)  # buyer / seller
    reviewee_role = Column(String(10), nullable=False)
    score = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    category = Column(String(20), default="overall", nullable=False)
    is_verified = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, nullable=True)
