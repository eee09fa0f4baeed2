# yaqeenpay/services/topup_service.py

import logging
import secrets
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Optional
from sqlalchemy.orm import Session
from yaqeenpay.core.config import settings
from yaqeenpay.core.database import atomic_operation
from yaqeenpay.core.exceptions import ValidationError, NotFoundError, \
    PermissionDeniedError, InvalidStateError
from yaqeenpay.core.money import to_decimal, normalize_currency
from yaqeenpay.models.ledger import LedgerAccountTypeEnum, \
    LedgerReferenceTypeEnum
from yaqeenpay.models.topup import TopUp, TopUpProof, WalletTopupLock, \
    BankSmsPayment, TopUpChannelEnum, TopUpStatusEnum, TopUpReviewStatusEnum, \
    TopupLockStatusEnum
from yaqeenpay.models.user import User
from yaqeenpay.services.ledger_service import LedgerService
from yaqeenpay.services.outbox import OutboxService
from yaqeenpay.services.wallet_service import WalletService

logger = logging.getLogger(__name__)

OPEN_STATUSES = [TopUpStatusEnum.initiated,
                 TopUpStatusEnum.pending_confirmation]


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _check_limits(amount: Decimal) -> None:
    minimum = to_decimal(settings.MIN_TOPUP_AMOUNT)
    maximum = to_decimal(settings.MAX_TOPUP_AMOUNT)
    if amount < minimum or amount > maximum:
        raise ValidationError(
            f"Top-up amount must be between {minimum} and {maximum}")


class TopUpService:
    """Wallet top-ups. A top-up credits its wallet at most once."""

    @staticmethod
    def to_dict(top_up: TopUp) -> Dict[str, Any]:
        return {
            "id": top_up.id,
            "user_id": top_up.user_id,
            "wallet_id": top_up.wallet_id,
            "amount": top_up.amount,
            "currency": top_up.currency,
            "channel": top_up.channel.value,
            "status": top_up.status.value,
            "external_reference": top_up.external_reference,
            "wallet_transaction_id": top_up.wallet_transaction_id,
            "failure_reason": top_up.failure_reason,
            "proofs": [{"id": p.id, "file_url": p.file_url, "notes": p.notes,
                        "submitted_at": _iso(p.submitted_at)}
                       for p in top_up.proofs],
            "requested_at": _iso(top_up.requested_at),
            "confirmed_at": _iso(top_up.confirmed_at),
            "failed_at": _iso(top_up.failed_at)
        }

    @staticmethod
    def _get(db: Session, top_up_id: int, lock: bool = False) -> TopUp:
        query = db.query(TopUp).filter(TopUp.id == top_up_id)
        if lock:
            query = query.with_for_update()
        top_up = query.first()
        if not top_up:
            raise NotFoundError(f"Top-up {top_up_id} not found")
        return top_up

    @staticmethod
    def _owned(db: Session, top_up_id: int, user: User) -> TopUp:
        top_up = TopUpService._get(db, top_up_id)
        if top_up.user_id != user.id:
            raise PermissionDeniedError("This top-up belongs to another user")
        return top_up

    @staticmethod
    def _reference_taken(db: Session, channel: TopUpChannelEnum,
                         external_reference: str) -> Optional[TopUp]:
        return db.query(TopUp).filter(
            TopUp.channel == channel,
            TopUp.external_reference == external_reference
        ).first()

    @staticmethod
    def initiate(db: Session, user: User, amount,
                 channel: TopUpChannelEnum,
                 external_reference: Optional[str] = None,
                 currency: Optional[str] = None) -> TopUp:
        amount = to_decimal(amount)
        _check_limits(amount)

        if external_reference:
            external_reference = external_reference.strip()
            existing = TopUpService._reference_taken(db, channel,
                                                     external_reference)
            if existing:
                if existing.user_id != user.id:
                    raise ValidationError(
                        "This payment reference has already been used")
                logger.info(
                    f"Top-up {existing.id} returned for repeated reference {external_reference}")
                return existing

        wallet = WalletService.get_or_create_wallet(db, user.id, currency)
        top_up = TopUp(
            user_id=user.id,
            wallet_id=wallet.id,
            amount=amount,
            currency=normalize_currency(currency or wallet.currency),
            channel=channel,
            status=TopUpStatusEnum.initiated,
            external_reference=external_reference or None
        )
        db.add(top_up)
        db.commit()
        db.refresh(top_up)
        logger.info(
            f"Top-up {top_up.id} initiated by user {user.id}: {amount} via {channel.value}")
        return top_up

    @staticmethod
    def submit_proof(db: Session, top_up_id: int, user: User, file_url: str,
                     notes: Optional[str] = None) -> TopUp:
        top_up = TopUpService._owned(db, top_up_id, user)
        if top_up.status not in OPEN_STATUSES:
            raise InvalidStateError(
                f"Cannot add proof to a {top_up.status.value} top-up")

        db.add(TopUpProof(top_up_id=top_up.id, file_url=file_url, notes=notes))
        if top_up.status == TopUpStatusEnum.initiated:
            top_up.status = TopUpStatusEnum.pending_confirmation
        db.commit()
        db.refresh(top_up)
        return top_up

    @staticmethod
    def mark_pending_confirmation(db: Session, top_up_id: int, user: User,
                                  external_reference: Optional[str] = None) -> TopUp:
        """The user reports the payment as made"""
        top_up = TopUpService._owned(db, top_up_id, user)
        if top_up.status == TopUpStatusEnum.pending_confirmation:
            return top_up
        if top_up.status != TopUpStatusEnum.initiated:
            raise InvalidStateError(
                f"Top-up {top_up.id} is {top_up.status.value}")

        if external_reference:
            external_reference = external_reference.strip()
            taken = TopUpService._reference_taken(db, top_up.channel,
                                                  external_reference)
            if taken and taken.id != top_up.id:
                raise ValidationError(
                    "This payment reference has already been used")
            top_up.external_reference = external_reference

        top_up.status = TopUpStatusEnum.pending_confirmation
        db.commit()
        db.refresh(top_up)
        return top_up

    @staticmethod
    def apply_confirmation(db: Session, top_up: TopUp,
                           correlation_id: Optional[str] = None) -> TopUp:
        """Credit the wallet for an open top-up inside the caller's
        transaction"""
        if top_up.status == TopUpStatusEnum.confirmed:
            return top_up
        if top_up.status not in OPEN_STATUSES:
            raise InvalidStateError(
                f"Cannot confirm a {top_up.status.value} top-up")

        user = db.query(User).filter(User.id == top_up.user_id).first()
        wallet = WalletService.get_or_create_wallet(db, user.id,
                                                    top_up.currency, lock=True)
        transaction = WalletService.credit(
            db, wallet, top_up.amount,
            reason=f"Top-up via {top_up.channel.value}",
            reference_id=top_up.id, reference_type="top_up")

        LedgerService.post_entry(
            db,
            LedgerService.system_account(
                db, LedgerAccountTypeEnum.external_clearing, top_up.currency),
            LedgerService.user_account(db, user, top_up.currency),
            top_up.amount,
            LedgerReferenceTypeEnum.top_up,
            reference_id=top_up.id,
            correlation_id=correlation_id,
            description=f"Top-up {top_up.id} via {top_up.channel.value}"
        )

        top_up.status = TopUpStatusEnum.confirmed
        top_up.confirmed_at = datetime.utcnow()
        top_up.wallet_transaction_id = transaction.id
        db.flush()

        OutboxService.notify(
            db, "TopUpConfirmed", user.id,
            reference_type="top_up", reference_id=top_up.id,
            amount=top_up.amount, currency=top_up.currency,
            reference=top_up.external_reference)
        logger.info(
            f"Top-up {top_up.id} confirmed: {top_up.amount} {top_up.currency} to user {user.id}")
        return top_up

    @staticmethod
    def confirm(db: Session, top_up_id: int) -> TopUp:
        with atomic_operation(db):
            top_up = TopUpService._get(db, top_up_id, lock=True)
            TopUpService.apply_confirmation(db, top_up)
        return top_up

    @staticmethod
    def fail(db: Session, top_up_id: int, reason: Optional[str] = None) -> TopUp:
        top_up = TopUpService._get(db, top_up_id, lock=True)
        if top_up.status not in OPEN_STATUSES:
            raise InvalidStateError(
                f"Cannot fail a {top_up.status.value} top-up")
        top_up.status = TopUpStatusEnum.failed
        top_up.failure_reason = reason
        top_up.failed_at = datetime.utcnow()
        db.commit()
        db.refresh(top_up)
        logger.warning(f"Top-up {top_up.id} failed: {reason}")
        return top_up

    @staticmethod
    def cancel(db: Session, top_up_id: int, user: User) -> TopUp:
        top_up = TopUpService._owned(db, top_up_id, user)
        if top_up.status != TopUpStatusEnum.initiated:
            raise InvalidStateError(
                f"Only initiated top-ups can be cancelled (status {top_up.status.value})")
        top_up.status = TopUpStatusEnum.cancelled
        db.commit()
        db.refresh(top_up)
        return top_up

    @staticmethod
    def review(db: Session, top_up_id: int,
               review_status: TopUpReviewStatusEnum,
               notes: Optional[str] = None) -> TopUp:
        top_up = TopUpService._get(db, top_up_id)
        if review_status == TopUpReviewStatusEnum.paid:
            if top_up.status == TopUpStatusEnum.confirmed:
                return top_up
            return TopUpService.confirm(db, top_up_id)

        if top_up.status == TopUpStatusEnum.failed:
            return top_up
        reason = f"{review_status.value}: {notes}" if notes else review_status.value
        return TopUpService.fail(db, top_up_id, reason)

    @staticmethod
    def list_for_user(db: Session, user_id: int):
        return db.query(TopUp).filter(TopUp.user_id == user_id).order_by(
            TopUp.requested_at.desc(), TopUp.id.desc())

    @staticmethod
    def list_all(db: Session, status: Optional[TopUpStatusEnum] = None):
        query = db.query(TopUp)
        if status:
            query = query.filter(TopUp.status == status)
        return query.order_by(TopUp.requested_at.desc(), TopUp.id.desc())


class TopupLockService:
    """Amount-matched QR top-ups. A lock reserves an exact amount for one
    user so an incoming bank SMS can be matched to them."""

    @staticmethod
    def to_dict(lock: WalletTopupLock) -> Dict[str, Any]:
        return {
            "id": lock.id,
            "user_id": lock.user_id,
            "amount": lock.amount,
            "currency": lock.currency,
            "status": lock.status.value,
            "transaction_reference": lock.transaction_reference,
            "top_up_id": lock.top_up_id,
            "locked_at": _iso(lock.locked_at),
            "expires_at": _iso(lock.expires_at),
            "payment_initiated_at": _iso(lock.payment_initiated_at),
            "completed_at": _iso(lock.completed_at)
        }

    @staticmethod
    def sms_to_dict(payment: BankSmsPayment) -> Dict[str, Any]:
        return {
            "id": payment.id,
            "sender": payment.sender,
            "amount": payment.amount,
            "reference": payment.reference,
            "processed": payment.processed,
            "lock_id": payment.lock_id,
            "top_up_id": payment.top_up_id,
            "created_at": _iso(payment.created_at)
        }

    @staticmethod
    def _generate_reference(db: Session, now: datetime) -> str:
        while True:
            reference = f"WTU{now.strftime('%Y%m%d%H%M%S')}{secrets.randbelow(10000):04d}"
            if not db.query(WalletTopupLock).filter(
                    WalletTopupLock.transaction_reference == reference).first():
                return reference

    @staticmethod
    def _expire_stale(db: Session, now: datetime) -> int:
        expired = db.query(WalletTopupLock).filter(
            WalletTopupLock.status == TopupLockStatusEnum.locked,
            WalletTopupLock.expires_at <= now
        ).update({"status": TopupLockStatusEnum.expired},
                 synchronize_session=False)
        db.flush()
        return expired

    @staticmethod
    def create_lock(db: Session, user: User, amount,
                    now: Optional[datetime] = None) -> WalletTopupLock:
        now = now or datetime.utcnow()
        amount = to_decimal(amount)
        _check_limits(amount)

        with atomic_operation(db):
            TopupLockService._expire_stale(db, now)

            db.query(WalletTopupLock).filter(
                WalletTopupLock.user_id == user.id,
                WalletTopupLock.status == TopupLockStatusEnum.locked
            ).update({"status": TopupLockStatusEnum.expired},
                     synchronize_session=False)

            requested = amount
            while db.query(WalletTopupLock).filter(
                    WalletTopupLock.status == TopupLockStatusEnum.locked,
                    WalletTopupLock.amount == amount,
                    WalletTopupLock.user_id != user.id
            ).with_for_update().first():
                amount += 1

            if amount != requested:
                _check_limits(amount)

            lock = WalletTopupLock(
                user_id=user.id,
                amount=amount,
                currency=normalize_currency(None),
                status=TopupLockStatusEnum.locked,
                transaction_reference=TopupLockService._generate_reference(
                    db, now),
                locked_at=now,
                expires_at=now + timedelta(minutes=settings.topup_lock_minutes)
            )
            db.add(lock)
            db.flush()

        if amount != requested:
            logger.info(
                f"Top-up lock amount bumped from {requested} to {amount} for user {user.id}")
        logger.info(
            f"Top-up lock {lock.transaction_reference} created for user {user.id}: {amount}")
        return lock

    @staticmethod
    def get_lock(db: Session, reference: str,
                 user: Optional[User] = None) -> WalletTopupLock:
        lock = db.query(WalletTopupLock).filter(
            WalletTopupLock.transaction_reference == reference).first()
        if not lock:
            raise NotFoundError(f"Top-up lock {reference} not found")
        if user is not None and lock.user_id != user.id and not user.is_admin:
            raise PermissionDeniedError("This top-up lock belongs to another user")
        return lock

    @staticmethod
    def mark_payment_initiated(db: Session, user: User, reference: str,
                               now: Optional[datetime] = None) -> WalletTopupLock:
        now = now or datetime.utcnow()
        lock = TopupLockService.get_lock(db, reference, user)
        if lock.status != TopupLockStatusEnum.locked or lock.is_expired(now):
            raise InvalidStateError(f"Top-up lock {reference} is no longer active")
        lock.payment_initiated_at = now
        db.commit()
        db.refresh(lock)
        return lock

    @staticmethod
    def _find_match(db: Session, reference: Optional[str], paid_amount: Decimal,
                    now: datetime) -> Optional[WalletTopupLock]:
        query = db.query(WalletTopupLock).filter(
            WalletTopupLock.status == TopupLockStatusEnum.locked,
            WalletTopupLock.expires_at > now,
            WalletTopupLock.amount == paid_amount
        )
        if reference:
            query = query.filter(
                WalletTopupLock.transaction_reference == reference)
        return query.order_by(WalletTopupLock.locked_at).with_for_update().first()

    @staticmethod
    def _complete(db: Session, lock: WalletTopupLock, now: datetime) -> TopUp:
        wallet = WalletService.get_or_create_wallet(db, lock.user_id,
                                                    lock.currency)
        top_up = TopUp(
            user_id=lock.user_id,
            wallet_id=wallet.id,
            amount=lock.amount,
            currency=lock.currency,
            channel=TopUpChannelEnum.qr,
            status=TopUpStatusEnum.initiated,
            external_reference=lock.transaction_reference
        )
        db.add(top_up)
        db.flush()
        TopUpService.apply_confirmation(db, top_up)

        lock.status = TopupLockStatusEnum.completed
        lock.completed_at = now
        lock.top_up_id = top_up.id
        db.flush()
        return top_up

    @staticmethod
    def verify_and_complete(db: Session, reference: Optional[str], paid_amount,
                            now: Optional[datetime] = None) -> Optional[TopUp]:
        now = now or datetime.utcnow()
        paid_amount = to_decimal(paid_amount)
        with atomic_operation(db):
            lock = TopupLockService._find_match(db, reference, paid_amount, now)
            if not lock:
                logger.warning(
                    f"No active top-up lock for reference={reference} amount={paid_amount}")
                return None
            top_up = TopupLockService._complete(db, lock, now)
        logger.info(f"Top-up lock {lock.transaction_reference} completed")
        return top_up

    @staticmethod
    def process_bank_sms(db: Session, sender: Optional[str],
                         message: Optional[str], amount,
                         reference: Optional[str] = None,
                         now: Optional[datetime] = None) -> BankSmsPayment:
        now = now or datetime.utcnow()
        amount = to_decimal(amount)
        if amount <= 0:
            raise ValidationError("Payment amount must be greater than zero")

        with atomic_operation(db):
            payment = BankSmsPayment(
                sender=sender,
                raw_message=message,
                amount=amount,
                reference=reference,
                processed=False
            )
            db.add(payment)
            db.flush()

            lock = TopupLockService._find_match(db, reference, amount, now)
            if lock:
                top_up = TopupLockService._complete(db, lock, now)
                payment.processed = True
                payment.lock_id = lock.id
                payment.top_up_id = top_up.id
                db.flush()

        if payment.processed:
            logger.info(
                f"Bank SMS {payment.id} matched lock {payment.lock_id}, top-up {payment.top_up_id}")
        else:
            logger.warning(
                f"Bank SMS {payment.id} for {amount} did not match any lock")
        return payment

    @staticmethod
    def cleanup_expired(db: Session, now: Optional[datetime] = None) -> int:
        now = now or datetime.utcnow()
        with atomic_operation(db):
            expired = TopupLockService._expire_stale(db, now)
        if expired:
            logger.info(f"Expired {expired} top-up locks")
        return expired
