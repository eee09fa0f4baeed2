# yaqeenpay/api/orders.py

import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from yaqeenpay.core.database import get_db
from yaqeenpay.core.core_auth import get_current_user
from yaqeenpay.models.order import OrderStatusEnum
from yaqeenpay.models.user import User
from yaqeenpay.schemas.order import OrderCreate, ShipRequest, DeliverRequest, \
    RejectRequest, DisputeCreate
from yaqeenpay.services.dispute_service import DisputeService
from yaqeenpay.services.order_service import OrderService
from yaqeenpay.api.utils import handle_operation_errors, \
    create_success_response, paginate

logger = logging.getLogger(__name__)

router = APIRouter()


def _order_page(db: Session, user: User, role: Optional[str],
                order_status: Optional[OrderStatusEnum], page: int,
                page_size: int):
    result = paginate(
        OrderService.list_for_user(db, user.id, role, order_status), page,
        page_size)
    result["items"] = [OrderService.to_dict(o) for o in result["items"]]
    return result


@router.post("", status_code=status.HTTP_201_CREATED)
@handle_operation_errors("create order")
async def create_order(
        payload: OrderCreate,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    order = OrderService.create_order(
        db, current_user,
        title=payload.title,
        amount=payload.amount,
        seller_id=payload.seller_id,
        product_id=payload.product_id,
        quantity=payload.quantity,
        description=payload.description,
        currency=payload.currency
    )
    return create_success_response("order_created",
                                   OrderService.to_dict(order),
                                   current_user.id,
                                   f"Order {order.code} created")


@router.get("")
@handle_operation_errors("list orders")
async def list_my_orders(
        order_status: Optional[OrderStatusEnum] = Query(None, alias="status"),
        page: int = Query(1, ge=1),
        page_size: int = Query(20, ge=1, le=100),
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    """Orders where the current user is buyer or seller"""
    return create_success_response(
        "orders",
        _order_page(db, current_user, None, order_status, page, page_size),
        current_user.id)


@router.get("/buyer")
@handle_operation_errors("list buyer orders")
async def list_buyer_orders(
        order_status: Optional[OrderStatusEnum] = Query(None, alias="status"),
        page: int = Query(1, ge=1),
        page_size: int = Query(20, ge=1, le=100),
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    return create_success_response(
        "buyer_orders",
        _order_page(db, current_user, "buyer", order_status, page, page_size),
        current_user.id)


@router.get("/seller")
@handle_operation_errors("list seller orders")
async def list_seller_orders(
        order_status: Optional[OrderStatusEnum] = Query(None, alias="status"),
        page: int = Query(1, ge=1),
        page_size: int = Query(20, ge=1, le=100),
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    return create_success_response(
        "seller_orders",
        _order_page(db, current_user, "seller", order_status, page, page_size),
        current_user.id)


@router.get("/{order_id}")
@handle_operation_errors("get order")
async def get_order(
        order_id: int,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    order = OrderService.get_order(db, order_id, current_user)
    return create_success_response("order", OrderService.to_dict(order),
                                   current_user.id)


@router.post("/{order_id}/pay")
@handle_operation_errors("pay for order")
async def pay_for_order(
        order_id: int,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    """Freeze the order amount in the buyer's wallet and fund the escrow"""
    order = OrderService.pay_for_order(db, order_id, current_user)
    return create_success_response("order_paid", OrderService.to_dict(order),
                                   current_user.id,
                                   "Payment held in escrow")


@router.post("/{order_id}/ship")
@handle_operation_errors("ship order")
async def ship_order(
        order_id: int,
        payload: ShipRequest,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    order = OrderService.mark_shipped(db, order_id, current_user,
                                      payload.courier,
                                      payload.tracking_number,
                                      payload.shipping_proof)
    return create_success_response("order_shipped",
                                   OrderService.to_dict(order),
                                   current_user.id)


@router.post("/{order_id}/deliver")
@handle_operation_errors("mark order delivered")
async def deliver_order(
        order_id: int,
        payload: Optional[DeliverRequest] = None,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    order = OrderService.mark_delivered(db, order_id, current_user,
                                        payload.notes if payload else None)
    return create_success_response("order_delivered",
                                   OrderService.to_dict(order),
                                   current_user.id)


@router.post("/{order_id}/complete")
@handle_operation_errors("confirm delivery")
async def complete_order(
        order_id: int,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    """Buyer confirmation; releases the escrow to the seller"""
    order = OrderService.confirm_delivery(db, order_id, current_user)
    return create_success_response("order_completed",
                                   OrderService.to_dict(order),
                                   current_user.id,
                                   "Order completed and payment released")


@router.post("/{order_id}/reject")
@handle_operation_errors("reject order")
async def reject_order(
        order_id: int,
        payload: RejectRequest,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    result = OrderService.reject_order(db, order_id, current_user,
                                       payload.reason)
    dispute = result["dispute"]
    return create_success_response("order_rejected", {
        "order": OrderService.to_dict(result["order"]),
        "dispute": DisputeService.to_dict(dispute) if dispute else None,
        "requires_admin_review": result["requires_admin_review"]
    }, current_user.id,
        "Rejection sent for admin review" if dispute else "Order rejected")


@router.post("/{order_id}/cancel")
@handle_operation_errors("cancel order")
async def cancel_order(
        order_id: int,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    order = OrderService.cancel_order(db, order_id, current_user)
    return create_success_response("order_cancelled",
                                   OrderService.to_dict(order),
                                   current_user.id)


@router.post("/{order_id}/dispute", status_code=status.HTTP_201_CREATED)
@handle_operation_errors("open dispute")
async def open_dispute(
        order_id: int,
        payload: DisputeCreate,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    dispute = DisputeService.create_dispute(db, order_id, current_user,
                                            payload.reason,
                                            payload.description,
                                            payload.evidence)
    return create_success_response("dispute_opened",
                                   DisputeService.to_dict(dispute),
                                   current_user.id)
