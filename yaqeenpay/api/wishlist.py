# yaqeenpay/api/wishlist.py

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from yaqeenpay.core.database import get_db
from yaqeenpay.core.core_auth import get_current_user
from yaqeenpay.models.user import User
from yaqeenpay.schemas.marketplace import WishlistAdd
from yaqeenpay.services.cart_service import CartService
from yaqeenpay.services.wishlist_service import WishlistService
from yaqeenpay.api.utils import handle_operation_errors, \
    create_success_response

router = APIRouter()


@router.get("")
@handle_operation_errors("list wishlist")
async def list_wishlist(
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    items = WishlistService.list_items(db, current_user)
    return create_success_response(
        "wishlist", [WishlistService.to_dict(i) for i in items],
        current_user.id)


@router.post("", status_code=status.HTTP_201_CREATED)
@handle_operation_errors("add to wishlist")
async def add_to_wishlist(
        payload: WishlistAdd,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    item = WishlistService.add(db, current_user, payload.product_id)
    return create_success_response("wishlist_item_added",
                                   WishlistService.to_dict(item),
                                   current_user.id)


@router.delete("/{product_id}")
@handle_operation_errors("remove from wishlist")
async def remove_from_wishlist(
        product_id: int,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    WishlistService.remove(db, current_user, product_id)
    return create_success_response("wishlist_item_removed",
                                   {"product_id": product_id},
                                   current_user.id)


@router.post("/{product_id}/move-to-cart")
@handle_operation_errors("move wishlist item to cart")
async def move_to_cart(
        product_id: int,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    item = WishlistService.move_to_cart(db, current_user, product_id)
    return create_success_response("wishlist_item_moved",
                                   CartService.item_to_dict(item),
                                   current_user.id)
