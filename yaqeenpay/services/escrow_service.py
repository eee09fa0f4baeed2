# yaqeenpay/services/escrow_service.py

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional
from sqlalchemy.orm import Session
from yaqeenpay.core.config import settings
from yaqeenpay.core.exceptions import InvalidStateError, NotFoundError, \
    ValidationError
from yaqeenpay.core.money import to_decimal
from yaqeenpay.models.escrow import Escrow, EscrowStatusEnum
from yaqeenpay.models.ledger import LedgerAccountTypeEnum, \
    LedgerReferenceTypeEnum
from yaqeenpay.models.order import Order
from yaqeenpay.models.user import User
from yaqeenpay.services.admin_settings import AdminSettingsService
from yaqeenpay.services.ledger_service import LedgerService
from yaqeenpay.services.wallet_service import WalletService

logger = logging.getLogger(__name__)

FEE_RATE_SETTING = "escrow.fee_rate"


class EscrowService:
    """Escrow state machine. Every money movement of an escrow happens here,
    never in the callers. Methods flush only."""

    @staticmethod
    def current_fee_rate(db: Session) -> Decimal:
        configured = AdminSettingsService.get_value(db, FEE_RATE_SETTING,
                                                    settings.ESCROW_FEE_RATE)
        try:
            rate = Decimal(str(configured))
        except InvalidOperation:
            rate = None
        if rate is None or not rate.is_finite() or rate < 0 or rate > 1:
            logger.warning(
                f"Ignoring escrow fee rate {configured!r}, using {settings.ESCROW_FEE_RATE}")
            rate = Decimal(str(settings.ESCROW_FEE_RATE))
        return rate

    @staticmethod
    def create_for_order(db: Session, order: Order) -> Escrow:
        escrow = Escrow(
            order_id=order.id,
            buyer_id=order.buyer_id,
            seller_id=order.seller_id,
            amount=order.amount,
            currency=order.currency,
            fee_rate=EscrowService.current_fee_rate(db),
            fee_amount=Decimal("0.00"),
            seller_amount=Decimal("0.00"),
            refunded_amount=Decimal("0.00"),
            status=EscrowStatusEnum.created
        )
        db.add(escrow)
        db.flush()
        logger.info(
            f"Escrow {escrow.id} created for order {order.code}: {escrow.amount} {escrow.currency}")
        return escrow

    @staticmethod
    def get_for_order(db: Session, order_id: int, lock: bool = True) -> Escrow:
        query = db.query(Escrow).filter(Escrow.order_id == order_id)
        if lock:
            query = query.with_for_update()
        escrow = query.first()
        if not escrow:
            raise NotFoundError(f"Escrow for order {order_id} not found")
        return escrow

    @staticmethod
    def _require(escrow: Escrow, *allowed: EscrowStatusEnum) -> None:
        if escrow.status not in allowed:
            raise InvalidStateError(
                f"Escrow {escrow.id} is {escrow.status.value}, expected one of "
                f"{', '.join(s.value for s in allowed)}")

    @staticmethod
    def _user(db: Session, user_id: int) -> User:
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError(f"User {user_id} not found")
        return user

    @staticmethod
    def _holding(db: Session, escrow: Escrow):
        return LedgerService.system_account(
            db, LedgerAccountTypeEnum.escrow_holding, escrow.currency)

    @staticmethod
    def fund(db: Session, escrow: Escrow,
             correlation_id: Optional[str] = None) -> Escrow:
        EscrowService._require(escrow, EscrowStatusEnum.created)

        buyer = EscrowService._user(db, escrow.buyer_id)
        wallet = WalletService.get_wallet(db, buyer.id, lock=True)
        WalletService.freeze(db, wallet, escrow.amount,
                             reason=f"Escrow {escrow.id} funding",
                             reference_id=escrow.order_id,
                             reference_type="order")

        LedgerService.post_entry(
            db,
            LedgerService.user_account(
                db, buyer, escrow.currency,
                side=LedgerAccountTypeEnum.buyer_wallet),
            EscrowService._holding(db, escrow),
            escrow.amount,
            LedgerReferenceTypeEnum.escrow_funding,
            reference_id=escrow.id,
            correlation_id=correlation_id,
            description=f"Escrow funding for order {escrow.order_id}"
        )

        escrow.status = EscrowStatusEnum.funded
        escrow.funded_at = datetime.utcnow()
        db.flush()
        logger.info(f"Escrow {escrow.id} funded")
        return escrow

    @staticmethod
    def _pay_seller(db: Session, escrow: Escrow, amount: Decimal,
                    correlation_id: str) -> Decimal:
        """Move amount of the buyer's frozen funds to the seller, keeping the
        fee; returns the fee taken"""
        fee = settings.calculate_escrow_fee(amount, escrow.fee_rate)
        seller_amount = amount - fee

        buyer_wallet = WalletService.get_wallet(db, escrow.buyer_id, lock=True)
        WalletService.transfer_frozen_to_debit(
            db, buyer_wallet, amount,
            reason=f"Escrow {escrow.id} released",
            reference_id=escrow.order_id, reference_type="order")

        holding = EscrowService._holding(db, escrow)
        if seller_amount > 0:
            seller = EscrowService._user(db, escrow.seller_id)
            seller_wallet = WalletService.get_or_create_wallet(
                db, seller.id, escrow.currency, lock=True)
            WalletService.credit(
                db, seller_wallet, seller_amount,
                reason=f"Payment for order {escrow.order_id}",
                reference_id=escrow.order_id, reference_type="order")
            LedgerService.post_entry(
                db, holding,
                LedgerService.user_account(
                    db, seller, escrow.currency,
                    side=LedgerAccountTypeEnum.seller_wallet),
                seller_amount,
                LedgerReferenceTypeEnum.escrow_release,
                reference_id=escrow.id,
                correlation_id=correlation_id,
                description=f"Escrow release for order {escrow.order_id}"
            )

        if fee > 0:
            LedgerService.post_entry(
                db, holding,
                LedgerService.system_account(
                    db, LedgerAccountTypeEnum.platform_fee_revenue,
                    escrow.currency),
                fee,
                LedgerReferenceTypeEnum.fee_collection,
                reference_id=escrow.id,
                correlation_id=correlation_id,
                description=f"Platform fee for order {escrow.order_id}"
            )

        escrow.fee_amount = (escrow.fee_amount or Decimal("0.00")) + fee
        escrow.seller_amount = (escrow.seller_amount or Decimal(
            "0.00")) + seller_amount
        return fee

    @staticmethod
    def _refund_buyer(db: Session, escrow: Escrow, amount: Decimal,
                      correlation_id: str) -> None:
        buyer = EscrowService._user(db, escrow.buyer_id)
        wallet = WalletService.get_wallet(db, buyer.id, lock=True)
        WalletService.unfreeze(db, wallet, amount,
                               reason=f"Escrow {escrow.id} refund",
                               reference_id=escrow.order_id,
                               reference_type="order")
        LedgerService.post_entry(
            db,
            EscrowService._holding(db, escrow),
            LedgerService.user_account(
                db, buyer, escrow.currency,
                side=LedgerAccountTypeEnum.buyer_wallet),
            amount,
            LedgerReferenceTypeEnum.escrow_refund,
            reference_id=escrow.id,
            correlation_id=correlation_id,
            description=f"Escrow refund for order {escrow.order_id}"
        )
        escrow.refunded_amount = (escrow.refunded_amount or Decimal(
            "0.00")) + amount

    @staticmethod
    def release(db: Session, escrow: Escrow,
                correlation_id: Optional[str] = None) -> Escrow:
        EscrowService._require(escrow, EscrowStatusEnum.funded,
                               EscrowStatusEnum.disputed)
        correlation_id = correlation_id or LedgerService.new_correlation_id()

        fee = EscrowService._pay_seller(db, escrow, escrow.amount,
                                        correlation_id)

        escrow.status = EscrowStatusEnum.released
        escrow.released_at = datetime.utcnow()
        db.flush()
        logger.info(
            f"Escrow {escrow.id} released: seller {escrow.seller_amount}, fee {fee}")
        return escrow

    @staticmethod
    def dispute(db: Session, escrow: Escrow) -> Escrow:
        EscrowService._require(escrow, EscrowStatusEnum.funded)
        escrow.status = EscrowStatusEnum.disputed
        escrow.disputed_at = datetime.utcnow()
        db.flush()
        logger.info(f"Escrow {escrow.id} disputed")
        return escrow

    @staticmethod
    def refund(db: Session, escrow: Escrow,
               correlation_id: Optional[str] = None) -> Escrow:
        EscrowService._require(escrow, EscrowStatusEnum.funded,
                               EscrowStatusEnum.disputed)
        correlation_id = correlation_id or LedgerService.new_correlation_id()

        EscrowService._refund_buyer(db, escrow, escrow.amount, correlation_id)

        escrow.status = EscrowStatusEnum.refunded
        escrow.refunded_at = datetime.utcnow()
        db.flush()
        logger.info(f"Escrow {escrow.id} refunded {escrow.amount}")
        return escrow

    @staticmethod
    def cancel(db: Session, escrow: Escrow) -> Escrow:
        EscrowService._require(escrow, EscrowStatusEnum.created)
        escrow.status = EscrowStatusEnum.cancelled
        escrow.cancelled_at = datetime.utcnow()
        db.flush()
        logger.info(f"Escrow {escrow.id} cancelled")
        return escrow

    @staticmethod
    def complete(db: Session, escrow: Escrow) -> Escrow:
        EscrowService._require(escrow, EscrowStatusEnum.released)
        escrow.status = EscrowStatusEnum.completed
        escrow.completed_at = datetime.utcnow()
        db.flush()
        return escrow

    @staticmethod
    def settle_split(db: Session, escrow: Escrow, buyer_refund_amount,
                     correlation_id: Optional[str] = None) -> Escrow:
        """Compromise: refund part of a disputed escrow to the buyer and
        release the rest to the seller, with the fee taken on that rest"""
        EscrowService._require(escrow, EscrowStatusEnum.disputed)
        buyer_refund = to_decimal(buyer_refund_amount)
        if buyer_refund <= 0 or buyer_refund >= escrow.amount:
            raise ValidationError(
                f"Buyer refund must be between 0 and {escrow.amount} exclusive")
        correlation_id = correlation_id or LedgerService.new_correlation_id()

        EscrowService._refund_buyer(db, escrow, buyer_refund, correlation_id)
        EscrowService._pay_seller(db, escrow, escrow.amount - buyer_refund,
                                  correlation_id)

        now = datetime.utcnow()
        escrow.status = EscrowStatusEnum.released
        escrow.refunded_at = now
        escrow.released_at = now
        db.flush()
        logger.info(
            f"Escrow {escrow.id} split: buyer {buyer_refund}, seller {escrow.seller_amount}, fee {escrow.fee_amount}")
        return escrow
