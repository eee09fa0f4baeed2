# yaqeenpay/services/wishlist_service.py

import logging
from typing import Any, Dict, List
from sqlalchemy.orm import Session
from yaqeenpay.core.exceptions import NotFoundError, InvalidStateError
from yaqeenpay.models.cart import CartItem, WishlistItem
from yaqeenpay.models.user import User
from yaqeenpay.services.cart_service import CartService
from yaqeenpay.services.catalog_service import CatalogService

logger = logging.getLogger(__name__)


class WishlistService:

    @staticmethod
    def to_dict(item: WishlistItem) -> Dict[str, Any]:
        product = item.product
        return {
            "id": item.id,
            "product_id": item.product_id,
            "product_name": product.name,
            "seller_id": product.seller_id,
            "price": product.price,
            "currency": product.currency,
            "is_available": product.is_active and product.stock_quantity > 0,
            "created_at": item.created_at.isoformat() if item.created_at else None
        }

    @staticmethod
    def add(db: Session, user: User, product_id: int) -> WishlistItem:
        """Saving a product twice returns the existing entry"""
        product = CatalogService.get_product(db, product_id)
        if not product.is_active:
            raise InvalidStateError(f"Product {product.id} is not available")

        item = db.query(WishlistItem).filter(
            WishlistItem.user_id == user.id,
            WishlistItem.product_id == product.id
        ).first()
        if item:
            return item

        item = WishlistItem(user_id=user.id, product_id=product.id)
        db.add(item)
        db.commit()
        db.refresh(item)
        logger.info(f"Wishlist: user {user.id} saved product {product.id}")
        return item

    @staticmethod
    def remove(db: Session, user: User, product_id: int) -> None:
        item = db.query(WishlistItem).filter(
            WishlistItem.user_id == user.id,
            WishlistItem.product_id == product_id
        ).first()
        if not item:
            raise NotFoundError("Product is not in your wishlist")
        db.delete(item)
        db.commit()

    @staticmethod
    def list_items(db: Session, user: User) -> List[WishlistItem]:
        return db.query(WishlistItem).filter(
            WishlistItem.user_id == user.id).order_by(
            WishlistItem.created_at.desc(), WishlistItem.id.desc()).all()

    @staticmethod
    def move_to_cart(db: Session, user: User, product_id: int,
                     quantity: int = 1) -> CartItem:
        item = db.query(WishlistItem).filter(
            WishlistItem.user_id == user.id,
            WishlistItem.product_id == product_id
        ).first()
        if not item:
            raise NotFoundError("Product is not in your wishlist")

        cart_item = CartService.add_item(db, user, product_id, quantity)
        db.delete(item)
        db.commit()
        return cart_item
