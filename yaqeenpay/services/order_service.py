# yaqeenpay/services/order_service.py

import logging
from collections import OrderedDict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from yaqeenpay.core.database import atomic_operation
from yaqeenpay.core.exceptions import ValidationError, NotFoundError, \
    PermissionDeniedError, InvalidStateError
from yaqeenpay.core.money import Money, to_decimal, normalize_currency
from yaqeenpay.models.escrow import EscrowStatusEnum
from yaqeenpay.models.order import Order, OrderItem, OrderStatusEnum
from yaqeenpay.models.user import User
from yaqeenpay.services.cart_service import CartService, \
    unavailability_reason
from yaqeenpay.services.catalog_service import CatalogService
from yaqeenpay.services.dispute_service import DisputeService
from yaqeenpay.services.escrow_service import EscrowService
from yaqeenpay.services.order_workflow import OrderWorkflow, \
    generate_order_code
from yaqeenpay.services.outbox import OutboxService

logger = logging.getLogger(__name__)

PAID_REJECTABLE_STATUSES = [
    OrderStatusEnum.awaiting_shipment,
    OrderStatusEnum.shipped,
    OrderStatusEnum.delivered,
    OrderStatusEnum.delivered_pending_decision
]


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class OrderService:

    @staticmethod
    def to_dict(order: Order) -> Dict[str, Any]:
        escrow = order.escrow
        return {
            "id": order.id,
            "code": order.code,
            "buyer_id": order.buyer_id,
            "seller_id": order.seller_id,
            "title": order.title,
            "description": order.description,
            "product_id": order.product_id,
            "quantity": order.quantity,
            "amount": order.amount,
            "currency": order.currency,
            "status": order.status.value,
            "is_amount_frozen": order.is_amount_frozen,
            "courier": order.courier,
            "tracking_number": order.tracking_number,
            "shipping_proof": order.shipping_proof,
            "delivery_address": order.delivery_address,
            "delivery_notes": order.delivery_notes,
            "items": [{
                "product_id": item.product_id,
                "product_name": item.product_name,
                "quantity": item.quantity,
                "unit_price": item.unit_price,
                "line_total": item.line_total
            } for item in order.items],
            "delivery_confirmation_expiry": _iso(order.delivery_confirmation_expiry),
            "rejection_reason": order.rejection_reason,
            "payment_date": _iso(order.payment_date),
            "shipped_date": _iso(order.shipped_date),
            "delivered_date": _iso(order.delivered_date),
            "completed_date": _iso(order.completed_date),
            "cancelled_date": _iso(order.cancelled_date),
            "rejected_date": _iso(order.rejected_date),
            "created_at": _iso(order.created_at),
            "escrow": {
                "id": escrow.id,
                "status": escrow.status.value,
                "fee_rate": escrow.fee_rate,
                "fee_amount": escrow.fee_amount,
                "seller_amount": escrow.seller_amount,
                "refunded_amount": escrow.refunded_amount
            } if escrow else None
        }

    @staticmethod
    def _restock(db: Session, order: Order) -> None:
        """Return reserved stock for a single-product or cart order"""
        lines = [(item.product_id, item.quantity) for item in order.items]
        if not lines and order.product_id is not None:
            lines = [(order.product_id, order.quantity)]
        for product_id, quantity in lines:
            product = CatalogService.get_product(db, product_id, lock=True)
            CatalogService.release_stock(db, product, quantity)

    @staticmethod
    def _load(db: Session, order_id: int, lock: bool = True) -> Order:
        query = db.query(Order).filter(Order.id == order_id)
        if lock:
            query = query.with_for_update()
        order = query.first()
        if not order:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    @staticmethod
    def create_order(
            db: Session,
            buyer: User,
            title: str,
            amount=None,
            seller_id: Optional[int] = None,
            product_id: Optional[int] = None,
            quantity: int = 1,
            description: Optional[str] = None,
            currency: Optional[str] = None
    ) -> Order:
        with atomic_operation(db):
            product = None
            if product_id is not None:
                product = CatalogService.get_product(db, product_id, lock=True)
                seller_id = product.seller_id
                amount = product.price * quantity
                currency = product.currency
            elif seller_id is None or amount is None:
                raise ValidationError(
                    "Either a product or a seller and amount are required")

            if seller_id == buyer.id:
                raise ValidationError("You cannot buy from yourself")

            seller = db.query(User).filter(User.id == seller_id).first()
            if not seller or not seller.is_active:
                raise ValidationError("Seller not found or inactive")

            amount = to_decimal(amount)
            if amount <= 0:
                raise ValidationError("Order amount must be greater than zero")

            if product is not None:
                CatalogService.reserve_stock(db, product, quantity)

            order = Order(
                code=generate_order_code(),
                buyer_id=buyer.id,
                seller_id=seller.id,
                title=title,
                description=description,
                product_id=product.id if product else None,
                quantity=quantity,
                amount=amount,
                currency=normalize_currency(currency),
                status=OrderStatusEnum.created,
                is_amount_frozen=False
            )
            db.add(order)
            db.flush()
            EscrowService.create_for_order(db, order)

        db.refresh(order)
        logger.info(
            f"Order {order.code} created: buyer {buyer.id}, seller {order.seller_id}, {order.amount} {order.currency}")
        return order

    @staticmethod
    def checkout_cart(
            db: Session,
            buyer: User,
            item_ids: Optional[List[int]] = None,
            delivery_address: Optional[str] = None,
            delivery_notes: Optional[str] = None
    ) -> Dict[str, Any]:
        """Turn cart lines into one escrowed order per seller and currency.

        Either every selected line becomes an order or nothing changes.
        Orders are charged at the live product price.
        """
        with atomic_operation(db):
            items = CartService.list_items(db, buyer.id, item_ids)
            if not items:
                raise ValidationError("No cart items selected for checkout")
            if item_ids is not None and len(items) != len(set(item_ids)):
                raise NotFoundError("Some selected cart items were not found")

            groups: "OrderedDict[tuple, list]" = OrderedDict()
            unavailable = []
            for item in items:
                product = CatalogService.get_product(db, item.product_id,
                                                     lock=True)
                if unavailability_reason(product, item.quantity):
                    unavailable.append(product.name)
                    continue
                if product.seller_id == buyer.id:
                    raise ValidationError("You cannot buy from yourself")
                groups.setdefault((product.seller_id, product.currency),
                                  []).append((item, product))
            if unavailable:
                raise ValidationError(
                    f"Some items are no longer available: {', '.join(unavailable)}")

            orders = []
            for (seller_id, currency), lines in groups.items():
                seller = db.query(User).filter(User.id == seller_id).first()
                if not seller or not seller.is_active:
                    raise ValidationError(
                        f"Seller {seller_id} not found or inactive")

                if len(lines) == 1:
                    title = lines[0][1].name
                else:
                    title = f"{len(lines)} items from {seller.full_name or seller.username}"
                order = Order(
                    code=generate_order_code(),
                    buyer_id=buyer.id,
                    seller_id=seller.id,
                    title=title[:200],
                    description=", ".join(
                        f"{product.name} (x{item.quantity})"
                        for item, product in lines),
                    product_id=None,
                    quantity=sum(item.quantity for item, _ in lines),
                    amount=to_decimal(sum(
                        (product.price * item.quantity
                         for item, product in lines), Decimal("0"))),
                    currency=normalize_currency(currency),
                    status=OrderStatusEnum.created,
                    is_amount_frozen=False,
                    delivery_address=delivery_address,
                    delivery_notes=delivery_notes
                )
                for item, product in lines:
                    CatalogService.reserve_stock(db, product, item.quantity)
                    order.items.append(OrderItem(
                        product_id=product.id,
                        product_name=product.name,
                        quantity=item.quantity,
                        unit_price=product.price,
                        currency=product.currency
                    ))
                    db.delete(item)
                db.add(order)
                db.flush()
                EscrowService.create_for_order(db, order)
                orders.append(order)

        totals: Dict[str, Decimal] = {}
        for order in orders:
            db.refresh(order)
            totals[order.currency] = totals.get(order.currency,
                                                Decimal("0")) + order.amount
        logger.info(
            f"Cart checkout by buyer {buyer.id}: orders {[o.code for o in orders]}")
        return {
            "orders": orders,
            "totals": totals,
            "total_items": sum(o.quantity for o in orders)
        }

    @staticmethod
    def pay_for_order(db: Session, order_id: int, user: User) -> Order:
        with atomic_operation(db):
            order = OrderService._load(db, order_id)
            if order.buyer_id != user.id:
                raise PermissionDeniedError("Only the buyer can pay for an order")
            OrderWorkflow.require(order, "confirm_payment")

            escrow = EscrowService.get_for_order(db, order.id)
            EscrowService.fund(db, escrow)
            OrderWorkflow.confirm_payment(
                order, Money(escrow.amount, escrow.currency))

            OutboxService.notify(
                db, "OrderPaid", order.seller_id,
                message=f"Order {order.code} has been paid and is ready to ship",
                reference_type="order", reference_id=order.id,
                amount=order.amount, currency=order.currency)

        logger.info(f"Order {order.code} paid by buyer {user.id}")
        return order

    @staticmethod
    def mark_shipped(db: Session, order_id: int, user: User, courier: str,
                     tracking_number: str,
                     shipping_proof: Optional[str] = None) -> Order:
        with atomic_operation(db):
            order = OrderService._load(db, order_id)
            if order.seller_id != user.id:
                raise PermissionDeniedError("Only the seller can ship an order")
            OrderWorkflow.mark_shipped(order, courier, tracking_number,
                                       shipping_proof)
            OutboxService.notify(
                db, "OrderShipped", order.buyer_id,
                message=f"Order {order.code} shipped via {courier}, tracking {tracking_number}",
                reference_type="order", reference_id=order.id)
        return order

    @staticmethod
    def mark_delivered(db: Session, order_id: int, user: User,
                       notes: Optional[str] = None) -> Order:
        with atomic_operation(db):
            order = OrderService._load(db, order_id)
            if order.seller_id != user.id and not user.is_admin:
                raise PermissionDeniedError(
                    "Only the seller or an admin can mark an order delivered")
            OrderWorkflow.mark_delivered(order, notes)
            OutboxService.notify(
                db, "OrderDelivered", order.buyer_id,
                message=f"Order {order.code} was delivered. Please confirm or reject it",
                reference_type="order", reference_id=order.id)
        return order

    @staticmethod
    def _release_and_complete(db: Session, order: Order) -> None:
        if not order.is_amount_frozen:
            raise InvalidStateError(
                f"Order {order.code} has no frozen funds to release")
        escrow = EscrowService.get_for_order(db, order.id)
        EscrowService.release(db, escrow)
        EscrowService.complete(db, escrow)
        OrderWorkflow.complete(order)
        order.is_amount_frozen = False

        OutboxService.notify(
            db, "OrderCompleted", order.seller_id,
            message=f"Order {order.code} completed. {escrow.seller_amount} {escrow.currency} credited",
            reference_type="order", reference_id=order.id,
            amount=escrow.seller_amount, currency=escrow.currency)

    @staticmethod
    def confirm_delivery(db: Session, order_id: int, user: User) -> Order:
        with atomic_operation(db):
            order = OrderService._load(db, order_id)
            if order.buyer_id != user.id:
                raise PermissionDeniedError(
                    "Only the buyer can confirm delivery")
            if order.status not in (OrderStatusEnum.shipped,
                                    OrderStatusEnum.delivered_pending_decision):
                raise InvalidStateError(
                    f"Cannot confirm delivery of order {order.code} in status {order.status.value}")
            if order.status == OrderStatusEnum.shipped:
                OrderWorkflow.mark_delivered(order)
            OrderService._release_and_complete(db, order)

        logger.info(f"Order {order.code} confirmed by buyer {user.id}")
        return order

    @staticmethod
    def cancel_order(db: Session, order_id: int, user: User) -> Order:
        with atomic_operation(db):
            order = OrderService._load(db, order_id)
            if not order.is_party(user.id):
                raise PermissionDeniedError(
                    "Only the buyer or seller can cancel an order")
            OrderWorkflow.cancel(order)

            escrow = EscrowService.get_for_order(db, order.id)
            if escrow.status == EscrowStatusEnum.created:
                EscrowService.cancel(db, escrow)
            else:
                EscrowService.refund(db, escrow)
            order.is_amount_frozen = False
            OrderService._restock(db, order)

            other_party = order.seller_id if user.id == order.buyer_id else order.buyer_id
            OutboxService.notify(
                db, "OrderCancelled", other_party,
                message=f"Order {order.code} was cancelled",
                reference_type="order", reference_id=order.id)

        logger.info(f"Order {order.code} cancelled by user {user.id}")
        return order

    @staticmethod
    def reject_order(db: Session, order_id: int, user: User,
                     reason: Optional[str] = None) -> Dict[str, Any]:
        """Unpaid orders are rejected outright; paid ones go to a dispute
        for admin review"""
        with atomic_operation(db):
            order = OrderService._load(db, order_id)
            if order.buyer_id != user.id:
                raise PermissionDeniedError("Only the buyer can reject an order")

            dispute = None
            if OrderWorkflow.can(order, "reject_before_shipment"):
                OrderWorkflow.reject_before_shipment(order, reason)
                escrow = EscrowService.get_for_order(db, order.id)
                EscrowService.cancel(db, escrow)
                OrderService._restock(db, order)
            elif order.is_amount_frozen and order.status in PAID_REJECTABLE_STATUSES:
                order.rejection_reason = reason
                dispute = DisputeService.open_dispute(
                    db, order, user, "Order rejected by buyer", reason)
            else:
                raise InvalidStateError(
                    f"Cannot reject order {order.code} in status {order.status.value}")

        logger.info(
            f"Order {order.code} rejected by buyer {user.id}, dispute={dispute.id if dispute else None}")
        return {
            "order": order,
            "dispute": dispute,
            "requires_admin_review": dispute is not None
        }

    @staticmethod
    def auto_complete_expired(db: Session,
                              now: Optional[datetime] = None) -> int:
        """Release orders whose buyer decision window has passed"""
        now = now or datetime.utcnow()
        expired_ids = [row.id for row in db.query(Order.id).filter(
            Order.status == OrderStatusEnum.delivered_pending_decision,
            Order.delivery_confirmation_expiry.isnot(None),
            Order.delivery_confirmation_expiry < now
        ).all()]

        completed = 0
        for order_id in expired_ids:
            try:
                with atomic_operation(db):
                    order = OrderService._load(db, order_id)
                    if order.status != OrderStatusEnum.delivered_pending_decision:
                        continue
                    OrderService._release_and_complete(db, order)
                completed += 1
                logger.info(f"Order {order.code} auto-completed")
            except Exception as e:
                logger.error(f"Auto-complete failed for order {order_id}: {e}")

        if expired_ids:
            logger.info(
                f"Auto-complete: {completed} of {len(expired_ids)} expired orders completed")
        return completed

    @staticmethod
    def list_for_user(db: Session, user_id: int, role: Optional[str] = None,
                      status: Optional[OrderStatusEnum] = None):
        query = db.query(Order)
        if role == "buyer":
            query = query.filter(Order.buyer_id == user_id)
        elif role == "seller":
            query = query.filter(Order.seller_id == user_id)
        else:
            query = query.filter(
                (Order.buyer_id == user_id) | (Order.seller_id == user_id))
        if status:
            query = query.filter(Order.status == status)
        return query.order_by(Order.created_at.desc(), Order.id.desc())

    @staticmethod
    def get_order(db: Session, order_id: int, user: User) -> Order:
        order = OrderService._load(db, order_id, lock=False)
        if not user.is_admin and not order.is_party(user.id):
            raise PermissionDeniedError("You cannot view this order")
        return order
