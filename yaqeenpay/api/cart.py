# yaqeenpay/api/cart.py

import logging
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from yaqeenpay.core.database import get_db
from yaqeenpay.core.core_auth import get_current_user
from yaqeenpay.models.user import User
from yaqeenpay.schemas.marketplace import CartItemAdd, CartItemUpdate, \
    CheckoutRequest
from yaqeenpay.services.cart_service import CartService
from yaqeenpay.services.order_service import OrderService
from yaqeenpay.api.utils import handle_operation_errors, \
    create_success_response

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
@handle_operation_errors("get cart")
async def get_cart(
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    return create_success_response("cart", CartService.get_cart(db, current_user),
                                   current_user.id)


@router.post("/items", status_code=status.HTTP_201_CREATED)
@handle_operation_errors("add to cart")
async def add_to_cart(
        payload: CartItemAdd,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    item = CartService.add_item(db, current_user, payload.product_id,
                                payload.quantity)
    return create_success_response("cart_item_added",
                                   CartService.item_to_dict(item),
                                   current_user.id)


@router.put("/items/{item_id}")
@handle_operation_errors("update cart item")
async def update_cart_item(
        item_id: int,
        payload: CartItemUpdate,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    item = CartService.update_item(db, current_user, item_id,
                                   payload.quantity)
    return create_success_response(
        "cart_item_updated",
        CartService.item_to_dict(item) if item else None, current_user.id)


@router.delete("/items/{item_id}")
@handle_operation_errors("remove cart item")
async def remove_cart_item(
        item_id: int,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    CartService.remove_item(db, current_user, item_id)
    return create_success_response("cart_item_removed", {"id": item_id},
                                   current_user.id)


@router.delete("")
@handle_operation_errors("clear cart")
async def clear_cart(
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    removed = CartService.clear(db, current_user)
    return create_success_response("cart_cleared", {"removed": removed},
                                   current_user.id)


@router.post("/checkout", status_code=status.HTTP_201_CREATED)
@handle_operation_errors("checkout cart")
async def checkout(
        payload: CheckoutRequest,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    """One escrowed order per seller; pay each order separately"""
    result = OrderService.checkout_cart(
        db, current_user,
        item_ids=payload.cart_item_ids,
        delivery_address=payload.delivery_address,
        delivery_notes=payload.delivery_notes
    )
    orders = result["orders"]
    return create_success_response("cart_checked_out", {
        "orders": [OrderService.to_dict(o) for o in orders],
        "totals": result["totals"],
        "total_items": result["total_items"]
    }, current_user.id, f"{len(orders)} order(s) created")
