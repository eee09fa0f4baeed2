# yaqeenpay/services/withdrawal_service.py

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session
from yaqeenpay.core.config import settings
from yaqeenpay.core.database import atomic_operation
from yaqeenpay.core.exceptions import ValidationError, NotFoundError, \
    PermissionDeniedError, InvalidStateError, InsufficientFundsError
from yaqeenpay.core.money import to_decimal
from yaqeenpay.models.ledger import LedgerAccountTypeEnum, \
    LedgerReferenceTypeEnum
from yaqeenpay.models.user import User
from yaqeenpay.models.withdrawal import Withdrawal, WithdrawalChannelEnum, \
    WithdrawalStatusEnum
from yaqeenpay.services.ledger_service import LedgerService
from yaqeenpay.services.outbox import OutboxService
from yaqeenpay.services.wallet_service import WalletService

logger = logging.getLogger(__name__)

_TICKS_EPOCH = datetime(1, 1, 1)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _ticks(now: datetime) -> int:
    """100-nanosecond intervals since 0001-01-01"""
    delta = now - _TICKS_EPOCH
    return (delta.days * 86400 + delta.seconds) * 10_000_000 + delta.microseconds * 10


class WithdrawalService:

    @staticmethod
    def to_dict(withdrawal: Withdrawal) -> Dict[str, Any]:
        return {
            "id": withdrawal.id,
            "user_id": withdrawal.user_id,
            "amount": withdrawal.amount,
            "fee_amount": withdrawal.fee_amount,
            "total_debited": withdrawal.total_debited,
            "currency": withdrawal.currency,
            "channel": withdrawal.channel.value,
            "status": withdrawal.status.value,
            "account_title": withdrawal.account_title,
            "account_number": withdrawal.account_number,
            "bank_name": withdrawal.bank_name,
            "reference": withdrawal.reference,
            "channel_reference": withdrawal.channel_reference,
            "failure_reason": withdrawal.failure_reason,
            "requested_at": _iso(withdrawal.requested_at),
            "settled_at": _iso(withdrawal.settled_at),
            "failed_at": _iso(withdrawal.failed_at),
            "reversed_at": _iso(withdrawal.reversed_at)
        }

    @staticmethod
    def _generate_reference(db: Session) -> str:
        ticks = _ticks(datetime.utcnow())
        while True:
            reference = f"2{ticks}"
            if not db.query(Withdrawal).filter(
                    Withdrawal.reference == reference).first():
                return reference
            ticks += 1

    @staticmethod
    def _get(db: Session, withdrawal_id: int, lock: bool = True) -> Withdrawal:
        query = db.query(Withdrawal).filter(Withdrawal.id == withdrawal_id)
        if lock:
            query = query.with_for_update()
        withdrawal = query.first()
        if not withdrawal:
            raise NotFoundError(f"Withdrawal {withdrawal_id} not found")
        return withdrawal

    @staticmethod
    def _require(withdrawal: Withdrawal, *allowed: WithdrawalStatusEnum) -> None:
        if withdrawal.status not in allowed:
            raise InvalidStateError(
                f"Withdrawal {withdrawal.reference} is {withdrawal.status.value}")

    @staticmethod
    def request(
            db: Session,
            user: User,
            amount,
            channel: WithdrawalChannelEnum,
            account_number: str,
            account_title: Optional[str] = None,
            bank_name: Optional[str] = None
    ) -> Withdrawal:
        amount = to_decimal(amount)
        minimum = to_decimal(settings.MIN_WITHDRAWAL_AMOUNT)
        maximum = to_decimal(settings.MAX_WITHDRAWAL_AMOUNT)
        if amount < minimum or amount > maximum:
            raise ValidationError(
                f"Withdrawal amount must be between {minimum} and {maximum}")
        if channel == WithdrawalChannelEnum.bank_transfer and not bank_name:
            raise ValidationError("Bank name is required for bank transfers")

        fee = settings.calculate_withdrawal_fee(amount)
        total = amount + fee

        with atomic_operation(db):
            wallet = WalletService.get_wallet(db, user.id, lock=True)
            if wallet.available_balance < total:
                raise InsufficientFundsError(
                    f"Insufficient balance. Required: {total} (amount: {amount} + fee: {fee}), available: {wallet.available_balance}")

            withdrawal = Withdrawal(
                user_id=user.id,
                amount=amount,
                fee_amount=fee,
                currency=wallet.currency,
                channel=channel,
                status=WithdrawalStatusEnum.initiated,
                account_title=account_title,
                account_number=account_number,
                bank_name=bank_name,
                reference=WithdrawalService._generate_reference(db)
            )
            db.add(withdrawal)
            db.flush()

            WalletService.debit(db, wallet, total,
                                reason=f"Withdrawal {withdrawal.reference}",
                                reference_id=withdrawal.id,
                                reference_type="withdrawal")

            correlation_id = LedgerService.new_correlation_id()
            user_account = LedgerService.user_account(db, user, wallet.currency)
            LedgerService.post_entry(
                db, user_account,
                LedgerService.system_account(
                    db, LedgerAccountTypeEnum.external_clearing,
                    wallet.currency),
                amount, LedgerReferenceTypeEnum.withdrawal,
                reference_id=withdrawal.id, correlation_id=correlation_id,
                description=f"Withdrawal {withdrawal.reference}")
            if fee > 0:
                LedgerService.post_entry(
                    db, user_account,
                    LedgerService.system_account(
                        db, LedgerAccountTypeEnum.platform_fee_revenue,
                        wallet.currency),
                    fee, LedgerReferenceTypeEnum.withdrawal,
                    reference_id=withdrawal.id, correlation_id=correlation_id,
                    description=f"Withdrawal fee {withdrawal.reference}")

            for message_type in ("WithdrawalInitiated",
                                 "WithdrawalPendingApproval"):
                OutboxService.notify(
                    db, message_type, user.id,
                    reference_type="withdrawal", reference_id=withdrawal.id,
                    amount=amount, currency=withdrawal.currency,
                    reference=withdrawal.reference)

        logger.info(
            f"Withdrawal {withdrawal.reference} requested by user {user.id}: {amount} + fee {fee}")
        return withdrawal

    @staticmethod
    def _mark_settled(db: Session, withdrawal: Withdrawal) -> None:
        withdrawal.status = WithdrawalStatusEnum.settled
        withdrawal.settled_at = datetime.utcnow()
        OutboxService.notify(
            db, "WithdrawalSettled", withdrawal.user_id,
            reference_type="withdrawal", reference_id=withdrawal.id,
            amount=withdrawal.amount, currency=withdrawal.currency,
            reference=withdrawal.reference)

    @staticmethod
    def approve(db: Session, withdrawal_id: int, admin: User,
                channel_reference: Optional[str] = None,
                settle: bool = True) -> Withdrawal:
        if not admin.is_admin:
            raise PermissionDeniedError("Admin rights required")
        with atomic_operation(db):
            withdrawal = WithdrawalService._get(db, withdrawal_id)
            WithdrawalService._require(withdrawal,
                                       WithdrawalStatusEnum.initiated)
            withdrawal.status = WithdrawalStatusEnum.pending_provider
            if channel_reference:
                withdrawal.channel_reference = channel_reference
            if settle:
                WithdrawalService._mark_settled(db, withdrawal)
            db.flush()

        logger.info(
            f"Withdrawal {withdrawal.reference} approved by admin {admin.id}, status {withdrawal.status.value}")
        return withdrawal

    @staticmethod
    def settle(db: Session, withdrawal_id: int, admin: User,
               channel_reference: Optional[str] = None) -> Withdrawal:
        if not admin.is_admin:
            raise PermissionDeniedError("Admin rights required")
        with atomic_operation(db):
            withdrawal = WithdrawalService._get(db, withdrawal_id)
            WithdrawalService._require(withdrawal,
                                       WithdrawalStatusEnum.pending_provider)
            if channel_reference:
                withdrawal.channel_reference = channel_reference
            WithdrawalService._mark_settled(db, withdrawal)
            db.flush()
        return withdrawal

    @staticmethod
    def _refund(db: Session, withdrawal: Withdrawal, reason: str) -> None:
        """Return amount and fee to the wallet with mirror ledger entries"""
        user = db.query(User).filter(User.id == withdrawal.user_id).first()
        wallet = WalletService.get_wallet(db, user.id, lock=True)
        WalletService.credit(db, wallet, withdrawal.total_debited,
                             reason=f"Withdrawal {withdrawal.reference} returned: {reason}",
                             reference_id=withdrawal.id,
                             reference_type="withdrawal")

        correlation_id = LedgerService.new_correlation_id()
        user_account = LedgerService.user_account(db, user, withdrawal.currency)
        LedgerService.post_entry(
            db,
            LedgerService.system_account(
                db, LedgerAccountTypeEnum.external_clearing,
                withdrawal.currency),
            user_account, withdrawal.amount,
            LedgerReferenceTypeEnum.withdrawal_reversal,
            reference_id=withdrawal.id, correlation_id=correlation_id,
            description=f"Withdrawal {withdrawal.reference} returned")
        if withdrawal.fee_amount and withdrawal.fee_amount > 0:
            LedgerService.post_entry(
                db,
                LedgerService.system_account(
                    db, LedgerAccountTypeEnum.platform_fee_revenue,
                    withdrawal.currency),
                user_account, withdrawal.fee_amount,
                LedgerReferenceTypeEnum.withdrawal_reversal,
                reference_id=withdrawal.id, correlation_id=correlation_id,
                description=f"Withdrawal fee {withdrawal.reference} returned")
        withdrawal.failure_reason = reason

    @staticmethod
    def fail(db: Session, withdrawal_id: int, admin: User,
             reason: str) -> Withdrawal:
        if not admin.is_admin:
            raise PermissionDeniedError("Admin rights required")
        with atomic_operation(db):
            withdrawal = WithdrawalService._get(db, withdrawal_id)
            WithdrawalService._require(withdrawal,
                                       WithdrawalStatusEnum.initiated,
                                       WithdrawalStatusEnum.pending_provider)
            WithdrawalService._refund(db, withdrawal, reason)
            withdrawal.status = WithdrawalStatusEnum.failed
            withdrawal.failed_at = datetime.utcnow()
            OutboxService.notify(
                db, "WithdrawalFailed", withdrawal.user_id,
                message=f"Withdrawal {withdrawal.reference} failed: {reason}. Funds returned to your wallet",
                reference_type="withdrawal", reference_id=withdrawal.id)
            db.flush()

        logger.warning(
            f"Withdrawal {withdrawal.reference} failed by admin {admin.id}: {reason}")
        return withdrawal

    @staticmethod
    def reverse(db: Session, withdrawal_id: int, admin: User,
                reason: str) -> Withdrawal:
        if not admin.is_admin:
            raise PermissionDeniedError("Admin rights required")
        with atomic_operation(db):
            withdrawal = WithdrawalService._get(db, withdrawal_id)
            WithdrawalService._require(withdrawal,
                                       WithdrawalStatusEnum.pending_provider)
            WithdrawalService._refund(db, withdrawal, reason)
            withdrawal.status = WithdrawalStatusEnum.reversed
            withdrawal.reversed_at = datetime.utcnow()
            OutboxService.notify(
                db, "WithdrawalReversed", withdrawal.user_id,
                message=f"Withdrawal {withdrawal.reference} reversed: {reason}. Funds returned to your wallet",
                reference_type="withdrawal", reference_id=withdrawal.id)
            db.flush()

        logger.warning(
            f"Withdrawal {withdrawal.reference} reversed by admin {admin.id}: {reason}")
        return withdrawal

    @staticmethod
    def stats(db: Session) -> Dict[str, Any]:
        rows = db.query(
            Withdrawal.status,
            func.count(Withdrawal.id),
            func.coalesce(func.sum(Withdrawal.amount), 0)
        ).group_by(Withdrawal.status).all()

        by_status = {s.value: {"count": 0, "total_amount": Decimal("0.00")}
                     for s in WithdrawalStatusEnum}
        for status, count, total in rows:
            by_status[status.value] = {"count": count,
                                       "total_amount": to_decimal(total)}

        return {
            "by_status": by_status,
            "total_count": sum(v["count"] for v in by_status.values()),
            "pending_count": by_status["initiated"]["count"] + by_status["pending_provider"]["count"]
        }

    @staticmethod
    def list_for_user(db: Session, user_id: int):
        return db.query(Withdrawal).filter(
            Withdrawal.user_id == user_id).order_by(
            Withdrawal.requested_at.desc(), Withdrawal.id.desc())

    @staticmethod
    def list_all(db: Session, status: Optional[WithdrawalStatusEnum] = None):
        query = db.query(Withdrawal)
        if status:
            query = query.filter(Withdrawal.status == status)
        return query.order_by(Withdrawal.requested_at.desc(),
                              Withdrawal.id.desc())

    @staticmethod
    def get(db: Session, withdrawal_id: int, user: User) -> Withdrawal:
        withdrawal = WithdrawalService._get(db, withdrawal_id, lock=False)
        if withdrawal.user_id != user.id and not user.is_admin:
            raise PermissionDeniedError("You cannot view this withdrawal")
        return withdrawal
