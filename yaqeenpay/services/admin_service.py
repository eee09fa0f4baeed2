# yaqeenpay/services/admin_service.py

import logging
from decimal import Decimal
from typing import Any, Dict, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session
from yaqeenpay.core.config import settings
from yaqeenpay.core.database import atomic_operation
from yaqeenpay.core.exceptions import ValidationError, NotFoundError
from yaqeenpay.core.money import to_decimal
from yaqeenpay.models.dispute import Dispute, DisputeStatusEnum
from yaqeenpay.models.escrow import Escrow, EscrowStatusEnum
from yaqeenpay.models.kyc import KycDocument, BusinessProfile, \
    VerificationStatusEnum
from yaqeenpay.models.ledger import LedgerAccount, LedgerAccountTypeEnum, \
    LedgerReferenceTypeEnum
from yaqeenpay.models.order import Order, OrderStatusEnum
from yaqeenpay.models.topup import TopUp, TopUpStatusEnum
from yaqeenpay.models.user import User, UserRoleEnum
from yaqeenpay.models.withdrawal import Withdrawal, WithdrawalStatusEnum
from yaqeenpay.services.ledger_service import LedgerService
from yaqeenpay.services.wallet_service import WalletService

logger = logging.getLogger(__name__)

USER_ACTIONS = ("activate", "deactivate", "changerole")


class AdminService:
    """Back-office operations that span several modules"""

    @staticmethod
    def user_to_dict(user: User) -> Dict[str, Any]:
        return {
            "id": user.id,
            "username": user.username,
            "email": user.email,
            "phone_number": user.phone_number,
            "full_name": user.full_name,
            "role": user.role.value,
            "is_active": user.is_active,
            "is_admin": user.is_admin,
            "kyc_status": user.kyc_status.value,
            "created_at": user.created_at.isoformat() if user.created_at else None
        }

    @staticmethod
    def user_action(db: Session, admin: User, user_id: int, action: str,
                    role: Optional[UserRoleEnum] = None) -> User:
        if action not in USER_ACTIONS:
            raise ValidationError(
                f"Action must be one of {', '.join(USER_ACTIONS)}")
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError(f"User {user_id} not found")
        if user.id == admin.id and action != "activate":
            raise ValidationError("Admins cannot change their own account")

        if action == "activate":
            user.is_active = True
        elif action == "deactivate":
            user.is_active = False
        else:
            if role is None:
                raise ValidationError("A role is required for changerole")
            user.role = role
            user.is_admin = role == UserRoleEnum.admin

        db.commit()
        db.refresh(user)
        logger.info(f"User {user.id} {action} by admin {admin.id}")
        return user

    @staticmethod
    def adjust_wallet(db: Session, admin: User, user_id: int, amount,
                      direction: str, reason: str) -> Dict[str, Any]:
        """Manual correction of a wallet, mirrored against external
        clearing in the ledger"""
        if direction not in ("credit", "debit"):
            raise ValidationError("Direction must be credit or debit")
        if not reason or not reason.strip():
            raise ValidationError("A reason is required")
        amount = to_decimal(amount)

        with atomic_operation(db):
            user = db.query(User).filter(User.id == user_id).first()
            if not user:
                raise NotFoundError(f"User {user_id} not found")
            wallet = WalletService.get_or_create_wallet(db, user.id, lock=True)
            description = f"Admin adjustment: {reason.strip()}"

            clearing = LedgerService.system_account(
                db, LedgerAccountTypeEnum.external_clearing, wallet.currency)
            user_account = LedgerService.user_account(db, user,
                                                      wallet.currency)
            if direction == "credit":
                transaction = WalletService.credit(
                    db, wallet, amount, reason=description,
                    reference_id=admin.id, reference_type="admin_adjustment")
                debit_account, credit_account = clearing, user_account
            else:
                transaction = WalletService.debit(
                    db, wallet, amount, reason=description,
                    reference_id=admin.id, reference_type="admin_adjustment")
                debit_account, credit_account = user_account, clearing

            LedgerService.post_entry(
                db, debit_account, credit_account, amount,
                LedgerReferenceTypeEnum.admin_adjustment,
                reference_id=transaction.id,
                description=f"{description} (admin {admin.id})")

        logger.info(
            f"Admin {admin.id} {direction}ed {amount} {wallet.currency} on user {user_id}: {reason}")
        return {
            "user_id": user_id,
            "direction": direction,
            "amount": amount,
            "currency": wallet.currency,
            "wallet_transaction_id": transaction.id,
            "balance": wallet.balance,
            "available_balance": wallet.available_balance
        }

    @staticmethod
    def stats(db: Session) -> Dict[str, Any]:
        users_by_role = dict(
            (role.value, count) for role, count in
            db.query(User.role, func.count(User.id)).group_by(User.role).all())
        orders_by_status = dict(
            (status.value, count) for status, count in
            db.query(Order.status, func.count(Order.id)).group_by(
                Order.status).all())

        escrow_held = db.query(func.coalesce(func.sum(Escrow.amount), 0)).filter(
            Escrow.status.in_([EscrowStatusEnum.funded,
                               EscrowStatusEnum.disputed])).scalar()
        fee_revenue = db.query(
            func.coalesce(func.sum(LedgerAccount.balance), 0)).filter(
            LedgerAccount.account_type == LedgerAccountTypeEnum.platform_fee_revenue,
            LedgerAccount.currency == settings.DEFAULT_CURRENCY
        ).scalar()

        return {
            "users": {
                "total": db.query(User).count(),
                "active": db.query(User).filter(User.is_active.is_(True)).count(),
                "by_role": users_by_role
            },
            "orders": {
                "total": sum(orders_by_status.values()),
                "by_status": orders_by_status,
                "completed": orders_by_status.get(
                    OrderStatusEnum.completed.value, 0)
            },
            "escrow_held": to_decimal(escrow_held),
            "fee_revenue": to_decimal(fee_revenue or Decimal("0")),
            "pending": {
                "top_ups": db.query(TopUp).filter(TopUp.status.in_([
                    TopUpStatusEnum.initiated,
                    TopUpStatusEnum.pending_confirmation])).count(),
                "withdrawals": db.query(Withdrawal).filter(
                    Withdrawal.status.in_([
                        WithdrawalStatusEnum.initiated,
                        WithdrawalStatusEnum.pending_provider])).count(),
                "disputes": db.query(Dispute).filter(Dispute.status.in_([
                    DisputeStatusEnum.open,
                    DisputeStatusEnum.escalated])).count(),
                "kyc_documents": db.query(KycDocument).filter(
                    KycDocument.status == VerificationStatusEnum.pending).count(),
                "seller_profiles": db.query(BusinessProfile).filter(
                    BusinessProfile.verification_status == VerificationStatusEnum.pending).count()
            }
        }
