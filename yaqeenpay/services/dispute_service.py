# yaqeenpay/services/dispute_service.py

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy import or_
from sqlalchemy.orm import Session
from yaqeenpay.core.database import atomic_operation
from yaqeenpay.core.exceptions import ValidationError, NotFoundError, \
    PermissionDeniedError, InvalidStateError
from yaqeenpay.models.dispute import Dispute, DisputeStatusEnum, \
    DisputeResolutionEnum
from yaqeenpay.models.escrow import EscrowStatusEnum
from yaqeenpay.models.order import Order
from yaqeenpay.models.user import User
from yaqeenpay.services.escrow_service import EscrowService
from yaqeenpay.services.order_workflow import OrderWorkflow
from yaqeenpay.services.outbox import OutboxService

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = [DisputeStatusEnum.open, DisputeStatusEnum.escalated]


class DisputeService:

    @staticmethod
    def to_dict(dispute: Dispute) -> Dict[str, Any]:
        return {
            "id": dispute.id,
            "order_id": dispute.order_id,
            "escrow_id": dispute.escrow_id,
            "raised_by_id": dispute.raised_by_id,
            "reason": dispute.reason,
            "description": dispute.description,
            "evidence": dispute.evidence_list,
            "status": dispute.status.value,
            "resolution": dispute.resolution.value if dispute.resolution else None,
            "resolution_notes": dispute.resolution_notes,
            "admin_notes": dispute.admin_notes,
            "resolved_by_id": dispute.resolved_by_id,
            "created_at": dispute.created_at.isoformat() if dispute.created_at else None,
            "escalated_at": dispute.escalated_at.isoformat() if dispute.escalated_at else None,
            "resolved_at": dispute.resolved_at.isoformat() if dispute.resolved_at else None
        }

    @staticmethod
    def _get(db: Session, dispute_id: int, lock: bool = False) -> Dispute:
        query = db.query(Dispute).filter(Dispute.id == dispute_id)
        if lock:
            query = query.with_for_update()
        dispute = query.first()
        if not dispute:
            raise NotFoundError(f"Dispute {dispute_id} not found")
        return dispute

    @staticmethod
    def open_dispute(db: Session, order: Order, user: User, reason: str,
                     description: Optional[str] = None,
                     evidence: Optional[List[str]] = None) -> Dispute:
        """Open a dispute inside the caller's transaction"""
        if not order.is_party(user.id):
            raise PermissionDeniedError(
                "Only the buyer or seller can dispute an order")
        if not reason or not reason.strip():
            raise ValidationError("Dispute reason is required")

        active = db.query(Dispute).filter(
            Dispute.order_id == order.id,
            Dispute.status.in_(ACTIVE_STATUSES)
        ).first()
        if active:
            raise InvalidStateError(
                f"Order {order.code} already has an active dispute")

        escrow = EscrowService.get_for_order(db, order.id)
        if escrow.status != EscrowStatusEnum.funded or not order.is_amount_frozen:
            raise InvalidStateError(
                f"Order {order.code} has no funds held in escrow to dispute")

        OrderWorkflow.mark_disputed(order)
        EscrowService.dispute(db, escrow)

        dispute = Dispute(
            order_id=order.id,
            escrow_id=escrow.id,
            raised_by_id=user.id,
            reason=reason.strip(),
            description=description,
            evidence=json.dumps(evidence) if evidence else None,
            status=DisputeStatusEnum.open
        )
        db.add(dispute)
        db.flush()

        other_party = order.seller_id if user.id == order.buyer_id else order.buyer_id
        OutboxService.notify(
            db, "DisputeOpened", other_party,
            message=f"A dispute was opened on order {order.code}: {dispute.reason}",
            reference_type="dispute", reference_id=dispute.id,
            order_code=order.code)

        logger.info(
            f"Dispute {dispute.id} opened on order {order.code} by user {user.id}")
        return dispute

    @staticmethod
    def create_dispute(db: Session, order_id: int, user: User, reason: str,
                       description: Optional[str] = None,
                       evidence: Optional[List[str]] = None) -> Dispute:
        with atomic_operation(db):
            order = db.query(Order).filter(
                Order.id == order_id).with_for_update().first()
            if not order:
                raise NotFoundError(f"Order {order_id} not found")
            dispute = DisputeService.open_dispute(db, order, user, reason,
                                                  description, evidence)
        return dispute

    @staticmethod
    def add_evidence(db: Session, dispute_id: int, user: User,
                     urls: List[str]) -> Dispute:
        dispute = DisputeService._get(db, dispute_id)
        if not dispute.order.is_party(user.id):
            raise PermissionDeniedError("Only parties can add evidence")
        if not dispute.is_active:
            raise InvalidStateError(
                f"Dispute {dispute.id} is {dispute.status.value}")
        urls = [u.strip() for u in urls if u and u.strip()]
        if not urls:
            raise ValidationError("At least one evidence url is required")

        dispute.evidence = json.dumps(dispute.evidence_list + urls)
        db.commit()
        db.refresh(dispute)
        return dispute

    @staticmethod
    def escalate(db: Session, dispute_id: int, user: User) -> Dispute:
        dispute = DisputeService._get(db, dispute_id)
        if dispute.raised_by_id != user.id:
            raise PermissionDeniedError(
                "Only the user who raised the dispute can escalate it")
        if dispute.status != DisputeStatusEnum.open:
            raise InvalidStateError(
                f"Only open disputes can be escalated (status {dispute.status.value})")

        dispute.status = DisputeStatusEnum.escalated
        dispute.escalated_at = datetime.utcnow()
        db.commit()
        db.refresh(dispute)
        logger.info(f"Dispute {dispute.id} escalated by user {user.id}")
        return dispute

    @staticmethod
    def add_admin_notes(db: Session, dispute_id: int, admin: User,
                        notes: str) -> Dispute:
        if not admin.is_admin:
            raise PermissionDeniedError("Admin rights required")
        dispute = DisputeService._get(db, dispute_id)
        stamp = datetime.utcnow().strftime("%Y-%m-%d %H:%M")
        entry = f"[{stamp} admin {admin.id}] {notes.strip()}"
        dispute.admin_notes = f"{dispute.admin_notes}\n{entry}" if dispute.admin_notes else entry
        db.commit()
        db.refresh(dispute)
        return dispute

    @staticmethod
    def resolve(db: Session, dispute_id: int, admin: User,
                resolution: DisputeResolutionEnum,
                notes: Optional[str] = None,
                buyer_refund_amount=None) -> Dispute:
        if not admin.is_admin:
            raise PermissionDeniedError("Admin rights required")

        with atomic_operation(db):
            dispute = DisputeService._get(db, dispute_id, lock=True)
            if not dispute.is_active:
                raise InvalidStateError(
                    f"Dispute {dispute.id} is already {dispute.status.value}")

            order = db.query(Order).filter(
                Order.id == dispute.order_id).with_for_update().first()
            escrow = EscrowService.get_for_order(db, order.id)

            if resolution == DisputeResolutionEnum.in_favor_of_buyer:
                EscrowService.refund(db, escrow)
            elif resolution == DisputeResolutionEnum.in_favor_of_seller:
                EscrowService.release(db, escrow)
                EscrowService.complete(db, escrow)
            else:
                if buyer_refund_amount is None:
                    raise ValidationError(
                        "Compromise needs a buyer refund amount")
                EscrowService.settle_split(db, escrow, buyer_refund_amount)
                EscrowService.complete(db, escrow)

            OrderWorkflow.resolve_dispute(order, resolution)
            order.is_amount_frozen = False

            dispute.status = DisputeStatusEnum.resolved
            dispute.resolution = resolution
            dispute.resolution_notes = notes
            dispute.resolved_by_id = admin.id
            dispute.resolved_at = datetime.utcnow()
            db.flush()

            for party_id in (order.buyer_id, order.seller_id):
                OutboxService.notify(
                    db, "DisputeResolved", party_id,
                    message=f"Dispute on order {order.code} resolved: {resolution.value.replace('_', ' ')}",
                    reference_type="dispute", reference_id=dispute.id,
                    order_code=order.code)

        logger.info(
            f"Dispute {dispute.id} resolved by admin {admin.id}: {resolution.value}")
        return dispute

    @staticmethod
    def list_all(db: Session, status: Optional[DisputeStatusEnum] = None):
        query = db.query(Dispute)
        if status:
            query = query.filter(Dispute.status == status)
        return query.order_by(Dispute.created_at.desc(), Dispute.id.desc())

    @staticmethod
    def list_for_user(db: Session, user_id: int):
        return db.query(Dispute).join(Order).filter(
            or_(Order.buyer_id == user_id, Order.seller_id == user_id)
        ).order_by(Dispute.created_at.desc(), Dispute.id.desc())

    @staticmethod
    def get(db: Session, dispute_id: int, user: User) -> Dispute:
        dispute = DisputeService._get(db, dispute_id)
        if not user.is_admin and not dispute.order.is_party(user.id):
            raise PermissionDeniedError("You cannot view this dispute")
        return dispute
