# yaqeenpay/services/cart_service.py

import logging
from collections import OrderedDict
from decimal import Decimal
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from yaqeenpay.core.exceptions import ValidationError, NotFoundError, \
    InvalidStateError
from yaqeenpay.models.cart import CartItem
from yaqeenpay.models.catalog import Product
from yaqeenpay.models.user import User
from yaqeenpay.services.catalog_service import CatalogService

logger = logging.getLogger(__name__)


def unavailability_reason(product: Product, quantity: int) -> Optional[str]:
    if not product.is_active:
        return "Product no longer available"
    if product.stock_quantity < quantity:
        return "Insufficient stock"
    return None


class CartService:

    @staticmethod
    def item_to_dict(item: CartItem) -> Dict[str, Any]:
        product = item.product
        reason = unavailability_reason(product, item.quantity)
        return {
            "id": item.id,
            "product_id": item.product_id,
            "product_name": product.name,
            "seller_id": product.seller_id,
            "unit_price": item.unit_price,
            "currency": item.currency,
            "quantity": item.quantity,
            "total_price": item.unit_price * item.quantity,
            "stock_quantity": product.stock_quantity,
            "is_available": reason is None,
            "unavailability_reason": reason,
            "added_at": item.added_at.isoformat() if item.added_at else None
        }

    @staticmethod
    def _orderable_product(db: Session, user: User, product_id: int,
                           quantity: int) -> Product:
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than zero")
        product = CatalogService.get_product(db, product_id)
        if not product.is_active:
            raise InvalidStateError(f"Product {product.id} is not available")
        if product.seller_id == user.id:
            raise ValidationError("You cannot add your own product to cart")
        if product.stock_quantity < quantity:
            raise ValidationError(
                f"Only {product.stock_quantity} of product {product.id} in stock")
        return product

    @staticmethod
    def _get_item(db: Session, user: User, item_id: int) -> CartItem:
        item = db.query(CartItem).filter(
            CartItem.id == item_id,
            CartItem.user_id == user.id
        ).first()
        if not item:
            raise NotFoundError("Cart item not found")
        return item

    @staticmethod
    def add_item(db: Session, user: User, product_id: int,
                 quantity: int = 1) -> CartItem:
        """Add a product, merging with an existing line for the same
        product"""
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than zero")
        item = db.query(CartItem).filter(
            CartItem.user_id == user.id,
            CartItem.product_id == product_id
        ).first()
        new_quantity = quantity + (item.quantity if item else 0)
        product = CartService._orderable_product(db, user, product_id,
                                                 new_quantity)

        if item is None:
            item = CartItem(user_id=user.id, product_id=product.id)
            db.add(item)
        item.quantity = new_quantity
        item.unit_price = product.price
        item.currency = product.currency

        db.commit()
        db.refresh(item)
        logger.info(
            f"Cart: user {user.id} has {item.quantity} x product {product.id}")
        return item

    @staticmethod
    def update_item(db: Session, user: User, item_id: int,
                    quantity: int) -> Optional[CartItem]:
        """Set a line's quantity; zero removes the line"""
        item = CartService._get_item(db, user, item_id)
        if quantity == 0:
            db.delete(item)
            db.commit()
            return None

        product = CartService._orderable_product(db, user, item.product_id,
                                                 quantity)
        item.quantity = quantity
        item.unit_price = product.price
        item.currency = product.currency
        db.commit()
        db.refresh(item)
        return item

    @staticmethod
    def remove_item(db: Session, user: User, item_id: int) -> None:
        item = CartService._get_item(db, user, item_id)
        db.delete(item)
        db.commit()

    @staticmethod
    def clear(db: Session, user: User) -> int:
        removed = db.query(CartItem).filter(
            CartItem.user_id == user.id).delete(synchronize_session=False)
        db.commit()
        logger.info(f"Cart cleared for user {user.id}: {removed} lines")
        return removed

    @staticmethod
    def list_items(db: Session, user_id: int,
                   item_ids: Optional[List[int]] = None) -> List[CartItem]:
        query = db.query(CartItem).filter(CartItem.user_id == user_id)
        if item_ids is not None:
            query = query.filter(CartItem.id.in_(item_ids))
        return query.order_by(CartItem.added_at, CartItem.id).all()

    @staticmethod
    def get_cart(db: Session, user: User) -> Dict[str, Any]:
        """Cart lines grouped by seller; the subtotal counts available lines
        only"""
        lines = [CartService.item_to_dict(item)
                 for item in CartService.list_items(db, user.id)]

        sellers: "OrderedDict[int, Dict[str, Any]]" = OrderedDict()
        subtotals: Dict[str, Decimal] = {}
        for line in lines:
            group = sellers.setdefault(line["seller_id"], {
                "seller_id": line["seller_id"],
                "items": []
            })
            group["items"].append(line)
            if line["is_available"]:
                subtotals[line["currency"]] = \
                    subtotals.get(line["currency"], Decimal("0")) + \
                    line["total_price"]

        return {
            "items": lines,
            "sellers": list(sellers.values()),
            "subtotals": subtotals,
            "total_items": sum(line["quantity"] for line in lines)
        }
