# yaqeenpay/models/order.py

import enum
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, \
    Enum, Numeric, Text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from yaqeenpay.core.database import Base


class OrderStatusEnum(enum.Enum):
    created = "created"
    payment_pending = "payment_pending"
    awaiting_shipment = "awaiting_shipment"
    shipped = "shipped"
    delivered = "delivered"
    delivered_pending_decision = "delivered_pending_decision"
    completed = "completed"
    cancelled = "cancelled"
    rejected = "rejected"
    disputed = "disputed"
    dispute_resolved = "dispute_resolved"


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(32), unique=True, index=True, nullable=False)
    buyer_id = Column(Integer, ForeignKey("users.id"), nullable=False,
                      index=True)
    seller_id = Column(Integer, ForeignKey("users.id"), nullable=False,
                       index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)

    product_id = Column(Integer, ForeignKey("products.id"), nullable=True)
    quantity = Column(Integer, default=1, nullable=False)

    amount = Column(Numeric(18, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(Enum(OrderStatusEnum), default=OrderStatusEnum.created,
                    nullable=False, index=True)
    is_amount_frozen = Column(Boolean, default=False, nullable=False)

    payment_date = Column(DateTime, nullable=True)
    shipped_date = Column(DateTime, nullable=True)
    delivered_date = Column(DateTime, nullable=True)
    completed_date = Column(DateTime, nullable=True)
    cancelled_date = Column(DateTime, nullable=True)
    rejected_date = Column(DateTime, nullable=True)

    courier = Column(String(100), nullable=True)
    tracking_number = Column(String(100), nullable=True)
    shipping_proof = Column(String(500), nullable=True)

    delivery_confirmation_code = Column(String(6), nullable=True)
    delivery_confirmation_expiry = Column(DateTime, nullable=True)
    delivery_address = Column(Text, nullable=True)
    delivery_notes = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(),
                        onupdate=func.now())

    # Relationships
    buyer = relationship("User", foreign_keys=[buyer_id])
    seller = relationship("User", foreign_keys=[seller_id])
    product = relationship("Product")
    escrow = relationship("Escrow", back_populates="order", uselist=False)
    disputes = relationship("Dispute", back_populates="order")
    items = relationship("OrderItem", back_populates="order",
                         order_by="OrderItem.id")

    def is_party(self, user_id: int) -> bool:
        return user_id in (self.buyer_id, self.seller_id)


class OrderItem(Base):
    """One product line of an order checked out from the cart"""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False,
                      index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    product_name = Column(String(200), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(18, 2), nullable=False)
    currency = Column(String(3), nullable=False)

    order = relationship("Order", back_populates="items")

    @property
    def line_total(self):
        return self.unit_price * self.quantity
