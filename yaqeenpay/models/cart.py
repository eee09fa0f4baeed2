# yaqeenpay/models/cart.py

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, \
    Numeric, UniqueConstraint
from sqlalchemy.orm import relationship
from yaqeenpay.core.database import Base


class CartItem(Base):
    __tablename__ = "cart_items"
    __table_args__ = (
        UniqueConstraint("user_id", "product_id", name="uq_cart_item_product"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False,
                     index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, default=1, nullable=False)
    # Price when the line was last touched; checkout charges the live price
    unit_price = Column(Numeric(18, 2), nullable=False)
    currency = Column(String(3), nullable=False)

    added_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow,
                        onupdate=datetime.utcnow, nullable=False)

    product = relationship("Product")


class WishlistItem(Base):
    __tablename__ = "wishlist_items"
    __table_args__ = (
        UniqueConstraint("user_id", "product_id",
                         name="uq_wishlist_item_product"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False,
                     index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    product = relationship("Product")
