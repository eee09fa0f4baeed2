# yaqeenpay/services/order_workflow.py

import logging
import secrets
import string
from datetime import datetime, timedelta
from typing import Optional
from yaqeenpay.core.config import settings
from yaqeenpay.core.exceptions import InvalidStateError, ValidationError
from yaqeenpay.core.money import Money
from yaqeenpay.models.dispute import DisputeResolutionEnum
from yaqeenpay.models.order import Order, OrderStatusEnum

logger = logging.getLogger(__name__)

_CODE_ALPHABET = string.ascii_uppercase + string.digits

S = OrderStatusEnum

# operation -> (allowed source statuses, target status)
TRANSITIONS = {
    "mark_payment_pending": ({S.created}, S.payment_pending),
    "confirm_payment": ({S.created, S.payment_pending}, S.awaiting_shipment),
    "mark_shipped": ({S.awaiting_shipment}, S.shipped),
    "mark_delivered": ({S.shipped}, S.delivered_pending_decision),
    "complete": ({S.delivered_pending_decision, S.delivered, S.shipped},
                 S.completed),
    "cancel": ({S.created, S.payment_pending, S.awaiting_shipment},
               S.cancelled),
    "reject_before_shipment": ({S.created, S.payment_pending}, S.rejected),
    "mark_disputed": ({S.awaiting_shipment, S.shipped, S.delivered,
                       S.delivered_pending_decision}, S.disputed),
}

DISPUTE_OUTCOMES = {
    DisputeResolutionEnum.in_favor_of_buyer: S.rejected,
    DisputeResolutionEnum.in_favor_of_seller: S.completed,
    DisputeResolutionEnum.compromise: S.dispute_resolved,
}


def generate_order_code(now: Optional[datetime] = None) -> str:
    now = now or datetime.utcnow()
    suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(6))
    return f"ORD-{now.strftime('%Y%m%d')}-{suffix}"


def generate_confirmation_code() -> str:
    return "".join(secrets.choice(_CODE_ALPHABET) for _ in range(6))


class OrderWorkflow:
    """Order status transitions. Only touches the order row; money moves
    through EscrowService."""

    @staticmethod
    def can(order: Order, operation: str) -> bool:
        allowed, _ = TRANSITIONS[operation]
        return order.status in allowed

    @staticmethod
    def require(order: Order, operation: str) -> None:
        if not OrderWorkflow.can(order, operation):
            raise InvalidStateError(
                f"Cannot {operation.replace('_', ' ')} order {order.code} in status {order.status.value}")

    @staticmethod
    def _apply(order: Order, operation: str) -> Order:
        OrderWorkflow.require(order, operation)
        _, target = TRANSITIONS[operation]
        old_status = order.status
        order.status = target
        logger.info(
            f"Order {order.code}: {old_status.value} -> {target.value}")
        return order

    @staticmethod
    def mark_payment_pending(order: Order) -> Order:
        return OrderWorkflow._apply(order, "mark_payment_pending")

    @staticmethod
    def confirm_payment(order: Order, frozen: Money) -> Order:
        OrderWorkflow.require(order, "confirm_payment")
        if frozen.currency != order.currency or frozen.amount != order.amount:
            raise ValidationError(
                f"Frozen amount {frozen.amount} {frozen.currency} does not match order amount {order.amount} {order.currency}")
        OrderWorkflow._apply(order, "confirm_payment")
        order.is_amount_frozen = True
        order.payment_date = datetime.utcnow()
        return order

    @staticmethod
    def mark_shipped(order: Order, courier: str, tracking_number: str,
                     shipping_proof: Optional[str] = None) -> Order:
        OrderWorkflow._apply(order, "mark_shipped")
        order.courier = courier
        order.tracking_number = tracking_number
        order.shipping_proof = shipping_proof
        order.shipped_date = datetime.utcnow()
        return order

    @staticmethod
    def mark_delivered(order: Order, notes: Optional[str] = None,
                       now: Optional[datetime] = None) -> Order:
        OrderWorkflow._apply(order, "mark_delivered")
        now = now or datetime.utcnow()
        order.delivered_date = now
        if notes:
            order.delivery_notes = notes
        order.delivery_confirmation_code = generate_confirmation_code()
        order.delivery_confirmation_expiry = now + timedelta(
            hours=settings.DELIVERY_CONFIRMATION_HOURS)
        return order

    @staticmethod
    def complete(order: Order) -> Order:
        OrderWorkflow._apply(order, "complete")
        order.completed_date = datetime.utcnow()
        return order

    @staticmethod
    def cancel(order: Order) -> Order:
        OrderWorkflow._apply(order, "cancel")
        order.cancelled_date = datetime.utcnow()
        return order

    @staticmethod
    def reject_before_shipment(order: Order, reason: Optional[str]) -> Order:
        OrderWorkflow._apply(order, "reject_before_shipment")
        order.rejection_reason = reason
        order.rejected_date = datetime.utcnow()
        return order

    @staticmethod
    def mark_disputed(order: Order) -> Order:
        return OrderWorkflow._apply(order, "mark_disputed")

    @staticmethod
    def resolve_dispute(order: Order,
                        resolution: DisputeResolutionEnum) -> Order:
        if order.status != S.disputed:
            raise InvalidStateError(
                f"Order {order.code} is not disputed (status {order.status.value})")
        target = DISPUTE_OUTCOMES[resolution]
        order.status = target
        now = datetime.utcnow()
        if target == S.rejected:
            order.rejected_date = now
        else:
            order.completed_date = now
        logger.info(
            f"Order {order.code}: disputed -> {target.value} ({resolution.value})")
        return order
